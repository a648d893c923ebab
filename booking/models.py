from django.conf import settings
from django.db import models
from django.utils import timezone

from movies.models import Movie, Showtime


class Booking(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ticket_bookings'
    )
    showtime = models.ForeignKey(Showtime, on_delete=models.PROTECT, related_name='bookings')
    movie = models.ForeignKey(Movie, on_delete=models.PROTECT, related_name='bookings')

    # Copied from the catalog when the booking is made
    movie_title = models.CharField(max_length=255)
    movie_duration = models.PositiveIntegerField()
    showtime_date = models.DateField()
    showtime_time = models.TimeField()
    cinema_name = models.CharField(max_length=100)
    screen_name = models.CharField(max_length=100)

    seats = models.JSONField(default=list)
    total_price = models.DecimalField(max_digits=8, decimal_places=2)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    hold_expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['showtime_date', 'showtime_time', 'status'], name='bookings_slot_status_idx'),
        ]

    @property
    def hold_expired(self):
        if self.status != self.STATUS_PENDING or self.hold_expires_at is None:
            return False
        return timezone.now() >= self.hold_expires_at

    @property
    def is_live(self):
        if self.status == self.STATUS_CONFIRMED:
            return True
        return self.status == self.STATUS_PENDING and not self.hold_expired

    def __str__(self):
        return f"Booking {self.id} - {self.user.username}"


class SeatClaim(models.Model):
    """One row per seat of a live booking; unique per showtime."""

    showtime = models.ForeignKey(Showtime, on_delete=models.CASCADE, related_name='seat_claims')
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='seat_claims')
    label = models.CharField(max_length=3)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'booked_seats'
        constraints = [
            models.UniqueConstraint(fields=['showtime', 'label'], name='unique_seat_per_showtime'),
        ]

    def __str__(self):
        return f"{self.label} (Showtime: {self.showtime_id})"
