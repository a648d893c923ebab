from django.conf import settings
from django.db import models

from booking.models import Booking


class Payment(models.Model):
    STATUS_COMPLETED = 'completed'
    STATUS_REFUND_PENDING = 'refund_pending'
    STATUS_REFUND_PROCESSING = 'refund_processing'
    STATUS_REFUNDED = 'refunded'

    STATUS_CHOICES = (
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REFUND_PENDING, 'Refund Pending'),
        (STATUS_REFUND_PROCESSING, 'Refund Processing'),
        (STATUS_REFUNDED, 'Refunded'),
    )

    # Each status has exactly one successor
    NEXT_STATUS = {
        STATUS_COMPLETED: STATUS_REFUND_PENDING,
        STATUS_REFUND_PENDING: STATUS_REFUND_PROCESSING,
        STATUS_REFUND_PROCESSING: STATUS_REFUNDED,
    }

    REFUND_STATUSES = (STATUS_REFUND_PENDING, STATUS_REFUND_PROCESSING, STATUS_REFUNDED)

    METHOD_CARD = 'card'
    METHOD_WALLET = 'wallet'

    METHOD_CHOICES = (
        (METHOD_CARD, 'Credit Card'),
        (METHOD_WALLET, 'E-Wallet'),
    )

    booking = models.OneToOneField(Booking, on_delete=models.PROTECT, related_name='payment')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='payments'
    )
    amount = models.DecimalField(max_digits=8, decimal_places=2)
    payment_method = models.CharField(max_length=10, choices=METHOD_CHOICES, default=METHOD_CARD)
    card_last_four = models.CharField(max_length=4, null=True, blank=True)
    transaction_id = models.CharField(max_length=40, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']

    def can_transition_to(self, status):
        return self.NEXT_STATUS.get(self.status) == status

    def __str__(self):
        return f"Payment {self.transaction_id} ({self.status})"


class RefundStatusChange(models.Model):
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='status_history')
    old_status = models.CharField(max_length=20, choices=Payment.STATUS_CHOICES, null=True, blank=True)
    new_status = models.CharField(max_length=20, choices=Payment.STATUS_CHOICES)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='refund_status_changes'
    )
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'refund_status_history'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.payment_id}: {self.old_status} -> {self.new_status}"
