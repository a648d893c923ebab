import uuid

from django.db import DatabaseError, transaction
from loguru import logger

from cinebook.exceptions import CineBookError, DependencyFailure, InvalidPayment, InvalidTransition, NotFound
from notifications import emails
from notifications.dispatcher import NotificationDispatcher, booking_template_data
from users.roles import ensure_back_office
from .history import RefundHistoryLog
from .models import Payment

TRANSITION_TEMPLATES = {
    Payment.STATUS_REFUND_PENDING: emails.BOOKING_CANCELLED,
    Payment.STATUS_REFUND_PROCESSING: emails.REFUND_PROCESSING,
    Payment.STATUS_REFUNDED: emails.REFUND_COMPLETED,
}

BULK_TARGETS = (Payment.STATUS_REFUND_PROCESSING, Payment.STATUS_REFUNDED)


def generate_transaction_id():
    return f"TXN-{uuid.uuid4().hex[:16].upper()}"


class PaymentService:
    """Records payments and walks them through the refund lifecycle.

    completed -> refund_pending -> refund_processing -> refunded, one step at
    a time. Each step writes one history row and queues one notification.
    """

    def __init__(self, history=None, dispatcher=None):
        self.history = history or RefundHistoryLog()
        self.dispatcher = dispatcher or NotificationDispatcher()

    def record_payment(self, booking, payment_method=Payment.METHOD_CARD, card_last_four=None, transaction_id=None):
        if payment_method not in dict(Payment.METHOD_CHOICES):
            raise InvalidPayment(f"Unsupported payment method: {payment_method}")
        if card_last_four is not None and not isinstance(card_last_four, str):
            raise InvalidPayment("card_last_four must be a string of 4 digits.")
        if card_last_four and (len(card_last_four) != 4 or not card_last_four.isdigit()):
            raise InvalidPayment("card_last_four must be exactly 4 digits.")

        payment = Payment.objects.create(
            booking=booking,
            user=booking.user,
            amount=booking.total_price,
            payment_method=payment_method,
            card_last_four=card_last_four or None,
            transaction_id=transaction_id or generate_transaction_id(),
            status=Payment.STATUS_COMPLETED,
        )
        logger.info(f"Recorded payment {payment.transaction_id} for booking {booking.id}: {payment.amount}")
        return payment

    def get_payment(self, payment_id):
        try:
            return Payment.objects.select_related('booking', 'user').get(pk=payment_id)
        except Payment.DoesNotExist:
            raise NotFound(f"Payment {payment_id} not found.")

    def refundable_payments(self):
        return Payment.objects.select_related('booking', 'user').filter(
            status__in=Payment.REFUND_STATUSES
        ).order_by('-created_at')

    def request_refund(self, booking, actor=None, notes=None):
        try:
            payment = Payment.objects.get(booking=booking)
        except Payment.DoesNotExist:
            raise NotFound(f"No payment recorded for booking {booking.id}.")
        return self._transition(payment.pk, Payment.STATUS_REFUND_PENDING, actor, notes)

    def start_processing(self, payment_id, actor, notes=None):
        ensure_back_office(actor, "process refunds")
        return self._transition(payment_id, Payment.STATUS_REFUND_PROCESSING, actor, notes)

    def complete_refund(self, payment_id, actor, notes=None):
        ensure_back_office(actor, "complete refunds")
        return self._transition(payment_id, Payment.STATUS_REFUNDED, actor, notes)

    def bulk_transition(self, payment_ids, target_status, actor, notes=None):
        """Apply one refund step to many payments, skipping the ones that fail."""
        ensure_back_office(actor, "process refunds")
        if target_status not in BULK_TARGETS:
            raise InvalidTransition(f"Bulk updates can only move refunds to {' or '.join(BULK_TARGETS)}.")

        processed = 0
        for payment_id in payment_ids:
            try:
                self._transition(payment_id, target_status, actor, notes)
            except CineBookError as e:
                logger.warning(f"Skipping payment {payment_id} in bulk update: {e.message}")
                continue
            processed += 1

        logger.info(f"Bulk refund update to {target_status}: {processed}/{len(payment_ids)} processed")
        return {'processed': processed, 'total': len(payment_ids)}

    def _transition(self, payment_id, target_status, actor=None, notes=None):
        try:
            with transaction.atomic():
                try:
                    payment = Payment.objects.select_for_update().select_related('booking', 'user').get(pk=payment_id)
                except (Payment.DoesNotExist, ValueError, TypeError):
                    raise NotFound(f"Payment {payment_id} not found.")

                if not payment.can_transition_to(target_status):
                    raise InvalidTransition(
                        f"Payment {payment_id} cannot move from {payment.status} to {target_status}."
                    )

                old_status = payment.status
                payment.status = target_status
                payment.save(update_fields=['status', 'updated_at'])
                self.history.append(payment, old_status, target_status, notes=notes, actor=actor)

                self.dispatcher.notify(
                    TRANSITION_TEMPLATES[target_status],
                    payment.user.email,
                    booking_template_data(payment.booking, amount=payment.amount, transaction_id=payment.transaction_id),
                    user=payment.user,
                )
        except DatabaseError as e:
            logger.error(f"Refund transition of payment {payment_id} to {target_status} failed: {e}")
            raise DependencyFailure(f"Could not update payment {payment_id}; please retry.") from e

        logger.info(f"Payment {payment_id}: {old_status} -> {target_status}")
        return payment
