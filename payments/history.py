from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from cinebook.exceptions import NotFound
from .models import Payment, RefundStatusChange


@dataclass(frozen=True)
class TimelineEvent:
    id: str
    status: str
    timestamp: datetime
    old_status: Optional[str] = None
    notes: Optional[str] = None
    changed_by_id: Optional[int] = None
    is_initial: bool = False

    def as_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'old_status': self.old_status,
            'timestamp': self.timestamp.isoformat(),
            'notes': self.notes,
            'changed_by': self.changed_by_id,
            'is_initial': self.is_initial,
        }


class RefundHistoryLog:
    """Append-only log of payment status transitions."""

    def append(self, payment, old_status, new_status, notes=None, actor=None):
        notes = notes.strip() if notes else None
        return RefundStatusChange.objects.create(
            payment=payment,
            old_status=old_status,
            new_status=new_status,
            notes=notes or None,
            changed_by=actor if actor is not None and actor.is_authenticated else None,
        )

    def entries(self, payment_id):
        return RefundStatusChange.objects.filter(payment_id=payment_id).order_by('created_at', 'id')

    def timeline(self, payment_id, booking_created_at) -> List[TimelineEvent]:
        """Build the status history shown for a payment.

        Starts with a synthetic "completed" event at ``booking_created_at``
        unless a recorded change already sits at or before that instant.
        """
        try:
            payment = Payment.objects.get(pk=payment_id)
        except Payment.DoesNotExist:
            raise NotFound(f"Payment {payment_id} not found.")

        rows = list(self.entries(payment_id))
        events = []

        if not rows or rows[0].created_at > booking_created_at:
            events.append(TimelineEvent(
                id='initial',
                status=Payment.STATUS_COMPLETED,
                timestamp=booking_created_at,
                is_initial=True,
            ))

        for change in rows:
            events.append(TimelineEvent(
                id=str(change.id),
                status=change.new_status,
                old_status=change.old_status,
                timestamp=change.created_at,
                notes=change.notes,
                changed_by_id=change.changed_by_id,
            ))

        if not rows and payment.status != Payment.STATUS_COMPLETED:
            # Status moved without a recorded change (e.g. rows imported by hand)
            events.append(TimelineEvent(
                id='current',
                status=payment.status,
                timestamp=booking_created_at,
            ))

        return events
