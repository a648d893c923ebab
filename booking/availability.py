from django.db.models import Q
from django.utils import timezone

from .models import Booking


class AvailabilityIndex:
    """Answers which seats of a showtime are currently held.

    A seat is held while it belongs to a confirmed booking or to a pending
    booking whose hold has not lapsed. Bookings are matched on the showtime
    they point to or on their copied showtime date, time and screen name, so
    renaming a screen does not hide earlier bookings.
    """

    def live_bookings(self, showtime, now=None):
        now = now or timezone.now()
        return Booking.objects.filter(
            Q(showtime=showtime) |
            Q(
                showtime_date=showtime.show_date,
                showtime_time=showtime.show_time,
                screen_name=showtime.screen.name,
            )
        ).filter(
            Q(status=Booking.STATUS_CONFIRMED) |
            Q(status=Booking.STATUS_PENDING, hold_expires_at__isnull=True) |
            Q(status=Booking.STATUS_PENDING, hold_expires_at__gt=now)
        )

    def booked_seats(self, showtime, now=None):
        booked = set()
        for seats in self.live_bookings(showtime, now).values_list('seats', flat=True):
            booked.update(seats or [])
        return booked

    def is_available(self, showtime, requested_seats, now=None):
        return not (set(requested_seats) & self.booked_seats(showtime, now))
