from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from loguru import logger

from . import emails
from .models import Notification


class NotificationDispatcher:
    """Best-effort email and in-app notifications.

    Delivery is queued with ``transaction.on_commit`` so it only happens for
    committed state changes. Failures are logged and never raised.
    """

    def notify(self, kind, recipient_email, template_data, user=None):
        if kind not in emails.KINDS:
            raise ValueError(f"Unknown notification kind: {kind}")
        data = dict(template_data)
        transaction.on_commit(lambda: self.deliver(kind, recipient_email, data, user))

    def deliver(self, kind, recipient_email, template_data, user=None):
        sent = False
        if user is not None:
            self._store_in_app(kind, template_data, user)
        if recipient_email:
            sent = self._send_email(kind, recipient_email, template_data)
        else:
            logger.warning(f"No email address for {kind} notification (booking {template_data.get('booking_id')})")
        return sent

    def _store_in_app(self, kind, template_data, user):
        try:
            Notification.objects.create(
                user=user,
                kind=kind,
                title=emails.TITLES[kind],
                message=emails.summary(kind, template_data),
            )
        except Exception as e:
            logger.error(f"Storing {kind} notification for user {user.pk} failed: {e}")

    def _send_email(self, kind, recipient_email, template_data):
        subject, message = emails.compose(kind, template_data, settings.CINEMA_NAME)
        try:
            send_mail(
                subject,
                message,
                settings.DEFAULT_FROM_EMAIL,
                [recipient_email],
                fail_silently=False,
            )
            logger.info(f"Sent {kind} email to {recipient_email}")
            return True
        except Exception as e:
            logger.error(f"Email sending failed for {kind} to {recipient_email}: {e}")
            return False


def booking_template_data(booking, amount=None, transaction_id=None):
    user = booking.user
    return {
        'booking_id': booking.id,
        'user_name': user.get_full_name() or user.username,
        'movie_title': booking.movie_title,
        'screen_name': booking.screen_name,
        'show_date': booking.showtime_date.strftime('%A, %d %B %Y'),
        'show_time': booking.showtime_time.strftime('%I:%M %p'),
        'seats': list(booking.seats),
        'amount': f"{amount if amount is not None else booking.total_price:.2f}",
        'transaction_id': transaction_id or '',
    }
