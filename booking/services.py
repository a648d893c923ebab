from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from loguru import logger

from cinebook.exceptions import (
    DependencyFailure, Forbidden, InvalidPayment, InvalidSeatCount,
    InvalidSeatSelection, InvalidTransition, NotFound, SeatUnavailable,
)
from movies.catalog import CatalogStore
from movies.models import Showtime
from notifications import emails
from notifications.dispatcher import NotificationDispatcher, booking_template_data
from payments.models import Payment
from payments.services import PaymentService
from users.roles import is_back_office
from .availability import AvailabilityIndex
from .models import Booking, SeatClaim


def normalize_seats(seats):
    """Trim and upper-case seat labels, keeping the caller's order."""
    return [str(seat).strip().upper() for seat in seats or []]


class BookingService:
    """Creates and cancels bookings.

    The availability check and the booking insert share one transaction that
    holds a row lock on the showtime. Every seat of a live booking also gets a
    SeatClaim row, unique per showtime, so a write that slips past the check
    still fails with SeatUnavailable instead of double booking.
    """

    def __init__(self, catalog=None, availability=None, payments=None, dispatcher=None):
        self.catalog = catalog or CatalogStore()
        self.availability = availability or AvailabilityIndex()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.payments = payments or PaymentService(dispatcher=self.dispatcher)

    def get_booking(self, booking_id):
        try:
            return Booking.objects.select_related('user', 'showtime').get(pk=booking_id)
        except Booking.DoesNotExist:
            raise NotFound(f"Booking {booking_id} not found.")

    def create_booking(self, user, showtime_id, seats, total_price=None,
                       payment_method=Payment.METHOD_CARD, card_last_four=None, transaction_id=None):
        seats = self._validate_seat_count(seats)
        showtime = self.catalog.get_showtime(showtime_id)
        self._validate_layout(showtime, seats)
        total = showtime.price * len(seats)
        if total_price is not None:
            try:
                supplied = Decimal(str(total_price))
            except InvalidOperation:
                raise InvalidPayment(f"Total price {total_price!r} is not a number.")
            if supplied != total:
                raise InvalidPayment(f"Total price {total_price} does not match {total} for {len(seats)} seat(s).")

        try:
            with transaction.atomic():
                booking = self._claim(user, showtime, seats, total, Booking.STATUS_CONFIRMED)
                payment = self.payments.record_payment(
                    booking,
                    payment_method=payment_method,
                    card_last_four=card_last_four,
                    transaction_id=transaction_id,
                )
                self._notify_confirmed(booking, payment)
        except IntegrityError as e:
            raise InvalidPayment(f"Payment could not be recorded: {e}") from e
        except DatabaseError as e:
            logger.error(f"Booking for showtime {showtime_id} failed: {e}")
            raise DependencyFailure("Booking could not be saved; please retry.") from e

        logger.info(f"Booking {booking.id} confirmed: {user.username} {', '.join(seats)} for showtime {showtime.id}")
        return booking

    def hold_seats(self, user, showtime_id, seats):
        seats = self._validate_seat_count(seats)
        showtime = self.catalog.get_showtime(showtime_id)
        self._validate_layout(showtime, seats)

        try:
            with transaction.atomic():
                booking = self._claim(user, showtime, seats, showtime.price * len(seats), Booking.STATUS_PENDING)
        except DatabaseError as e:
            logger.error(f"Seat hold for showtime {showtime_id} failed: {e}")
            raise DependencyFailure("Seats could not be held; please retry.") from e

        logger.info(f"Booking {booking.id} holding {', '.join(seats)} until {booking.hold_expires_at}")
        return booking

    def confirm_booking(self, booking_id, user, payment_method=Payment.METHOD_CARD,
                        card_last_four=None, transaction_id=None):
        booking = self.get_booking(booking_id)
        if booking.user_id != user.id:
            raise Forbidden("You can only pay for your own booking.")
        if booking.status != Booking.STATUS_PENDING:
            raise InvalidTransition(f"Booking {booking_id} is {booking.status}, not pending.")
        if booking.hold_expired:
            self.expire_holds(showtime=booking.showtime)
            raise InvalidTransition(f"The seat hold for booking {booking_id} has expired.")

        try:
            with transaction.atomic():
                booking = Booking.objects.select_for_update().get(pk=booking_id)
                if booking.status != Booking.STATUS_PENDING:
                    raise InvalidTransition(f"Booking {booking_id} is {booking.status}, not pending.")
                booking.status = Booking.STATUS_CONFIRMED
                booking.hold_expires_at = None
                booking.save(update_fields=['status', 'hold_expires_at', 'updated_at'])
                payment = self.payments.record_payment(
                    booking,
                    payment_method=payment_method,
                    card_last_four=card_last_four,
                    transaction_id=transaction_id,
                )
                self._notify_confirmed(booking, payment)
        except IntegrityError as e:
            raise InvalidPayment(f"Payment could not be recorded: {e}") from e
        except DatabaseError as e:
            logger.error(f"Confirming booking {booking_id} failed: {e}")
            raise DependencyFailure("Booking could not be confirmed; please retry.") from e

        logger.info(f"Booking {booking.id} confirmed after hold")
        return booking

    def cancel_booking(self, booking_id, user):
        booking = self.get_booking(booking_id)
        if booking.user_id != user.id and not is_back_office(user):
            raise Forbidden("You can only cancel your own bookings.")
        if booking.status != Booking.STATUS_CONFIRMED:
            raise InvalidTransition(f"Booking {booking_id} is {booking.status} and cannot be cancelled.")

        try:
            with transaction.atomic():
                booking = Booking.objects.select_for_update().select_related('user').get(pk=booking_id)
                if booking.status != Booking.STATUS_CONFIRMED:
                    raise InvalidTransition(f"Booking {booking_id} is {booking.status} and cannot be cancelled.")
                self._release(booking)
        except DatabaseError as e:
            logger.error(f"Cancelling booking {booking_id} failed: {e}")
            raise DependencyFailure("Booking could not be cancelled; please retry.") from e

        logger.info(f"Booking {booking.id} cancelled by {user.username}; seats {', '.join(booking.seats)} released")

        # The cancellation stands even if the refund request below fails.
        try:
            self.payments.request_refund(booking, actor=user)
        except NotFound:
            logger.warning(f"Booking {booking.id} is cancelled but has no payment to refund")
        except DependencyFailure:
            logger.error(f"Booking {booking.id} is cancelled but its refund request failed")
            raise
        return booking

    def expire_holds(self, showtime=None, now=None):
        """Cancel pending bookings whose hold has lapsed and free their seats."""
        now = now or timezone.now()
        expired = Booking.objects.filter(status=Booking.STATUS_PENDING, hold_expires_at__lte=now)
        if showtime is not None:
            expired = expired.filter(showtime=showtime)

        released = []
        with transaction.atomic():
            for booking in expired.select_for_update():
                self._release(booking)
                released.append(booking)

        for booking in released:
            logger.info(f"Released expired hold {booking.id}: {', '.join(booking.seats)} (Showtime: {booking.showtime_id})")
        return released

    def _validate_seat_count(self, seats):
        seats = normalize_seats(seats)
        if not seats:
            raise InvalidSeatCount("Please select at least one seat.")
        if len(seats) > settings.BOOKING_MAX_SEATS:
            raise InvalidSeatCount(f"You can only select up to {settings.BOOKING_MAX_SEATS} seats.")
        if len(set(seats)) != len(seats):
            raise InvalidSeatSelection("Each seat can only be selected once.")
        return seats

    def _validate_layout(self, showtime, seats):
        unknown = [seat for seat in seats if not showtime.screen.has_seat(seat)]
        if unknown:
            raise InvalidSeatSelection(f"Seats not on {showtime.screen.name}: {', '.join(unknown)}")

    def _claim(self, user, showtime, seats, total, status):
        # Serialize writers for this showtime
        Showtime.objects.select_for_update().get(pk=showtime.pk)
        self.expire_holds(showtime=showtime)

        taken = set(seats) & self.availability.booked_seats(showtime)
        if taken:
            raise SeatUnavailable(taken)

        booking = Booking.objects.create(
            user=user,
            showtime=showtime,
            movie=showtime.movie,
            movie_title=showtime.movie.title,
            movie_duration=showtime.movie.duration,
            showtime_date=showtime.show_date,
            showtime_time=showtime.show_time,
            cinema_name=settings.CINEMA_NAME,
            screen_name=showtime.screen.name,
            seats=seats,
            total_price=total,
            status=status,
            hold_expires_at=(
                timezone.now() + timedelta(minutes=settings.SEAT_HOLD_MINUTES)
                if status == Booking.STATUS_PENDING else None
            ),
        )

        try:
            with transaction.atomic():
                SeatClaim.objects.bulk_create([
                    SeatClaim(showtime=showtime, booking=booking, label=seat) for seat in seats
                ])
        except IntegrityError as e:
            contested = SeatClaim.objects.filter(showtime=showtime, label__in=seats).values_list('label', flat=True)
            raise SeatUnavailable(set(contested)) from e
        return booking

    def _release(self, booking):
        booking.status = Booking.STATUS_CANCELLED
        booking.hold_expires_at = None
        booking.save(update_fields=['status', 'hold_expires_at', 'updated_at'])
        booking.seat_claims.all().delete()

    def _notify_confirmed(self, booking, payment):
        self.dispatcher.notify(
            emails.BOOKING_CONFIRMED,
            booking.user.email,
            booking_template_data(booking, amount=payment.amount, transaction_id=payment.transaction_id),
            user=booking.user,
        )
