import json
import threading
from datetime import date, time, timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core import mail
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from django.utils import timezone

from booking.availability import AvailabilityIndex
from booking.models import Booking, SeatClaim
from booking.services import BookingService
from cinebook.exceptions import (
    DependencyFailure, Forbidden, InvalidPayment, InvalidSeatCount,
    InvalidSeatSelection, InvalidTransition, NotFound, SeatUnavailable,
)
from movies.models import Movie, Screen, Showtime
from notifications.models import Notification
from payments.models import Payment
from payments.services import PaymentService


class RacingAvailability(AvailabilityIndex):
    """Reports every seat as free, like a reader that lost the race."""

    def booked_seats(self, showtime, now=None):
        return set()


class BookingTestMixin:
    def setUp(self):
        self.user = User.objects.create_user(
            username='testuser',
            email='test@example.com',
            password='testpass123'
        )
        self.other_user = User.objects.create_user(
            username='otheruser',
            email='other@example.com',
            password='testpass123'
        )
        self.staff = User.objects.create_user(
            username='staffer',
            email='staff@example.com',
            password='testpass123',
            is_staff=True
        )

        self.movie = Movie.objects.create(
            title="Test Movie",
            duration=120,
            genre=["Action"],
            status=Movie.STATUS_NOW_SHOWING
        )
        self.screen = Screen.objects.create(name="Screen 1", rows=10, seats_per_row=10)
        self.showtime = Showtime.objects.create(
            movie=self.movie,
            screen=self.screen,
            show_date=date.today() + timedelta(days=1),
            show_time=time(14, 0),
            price=Decimal('12.50')
        )
        self.service = BookingService()


class CreateBookingTestCase(BookingTestMixin, TestCase):
    def test_booking_two_seats(self):
        booking = self.service.create_booking(self.user, self.showtime.id, ["A1", "A2"])

        self.assertEqual(booking.total_price, Decimal('25.00'))
        self.assertEqual(booking.status, Booking.STATUS_CONFIRMED)
        self.assertEqual(booking.seats, ["A1", "A2"])
        self.assertEqual(booking.movie_title, "Test Movie")
        self.assertEqual(booking.movie_duration, 120)
        self.assertEqual(booking.screen_name, "Screen 1")
        self.assertEqual(booking.payment.status, Payment.STATUS_COMPLETED)
        self.assertEqual(booking.payment.amount, Decimal('25.00'))
        self.assertTrue(booking.payment.transaction_id.startswith("TXN-"))
        self.assertEqual(
            set(SeatClaim.objects.filter(booking=booking).values_list('label', flat=True)),
            {"A1", "A2"}
        )

    def test_contested_seat_is_rejected(self):
        self.service.create_booking(self.user, self.showtime.id, ["A1", "A2"])

        with self.assertRaises(SeatUnavailable) as ctx:
            self.service.create_booking(self.other_user, self.showtime.id, ["A2", "A3"])

        self.assertEqual(ctx.exception.seats, ["A2"])
        self.assertEqual(Booking.objects.count(), 1)
        self.assertEqual(Payment.objects.count(), 1)
        self.assertTrue(self.service.availability.is_available(self.showtime, ["A3"]))

    def test_claim_constraint_catches_a_missed_check(self):
        self.service.create_booking(self.user, self.showtime.id, ["A1", "A2"])
        racing = BookingService(availability=RacingAvailability())

        with self.assertRaises(SeatUnavailable) as ctx:
            racing.create_booking(self.other_user, self.showtime.id, ["A2", "A3"])

        self.assertEqual(ctx.exception.seats, ["A2"])
        self.assertEqual(Booking.objects.count(), 1)
        self.assertFalse(SeatClaim.objects.filter(label="A3").exists())

    def test_every_contested_seat_goes_to_exactly_one_booking(self):
        """Interleaves stale readers with normal ones, one request at a time.

        The row lock itself is exercised by ConcurrentBookingTestCase on
        databases that support SELECT ... FOR UPDATE.
        """
        requests = [
            (self.user, ["A1", "A2", "A3"]),
            (self.other_user, ["A3", "A4"]),
            (self.staff, ["A4", "A5"]),
            (self.other_user, ["A5", "A6"]),
            (self.user, ["B1"]),
        ]
        racing = BookingService(availability=RacingAvailability())
        for i, (user, seats) in enumerate(requests):
            service = racing if i % 2 else self.service
            try:
                service.create_booking(user, self.showtime.id, seats)
            except SeatUnavailable:
                pass

        held = []
        for booking in Booking.objects.filter(status=Booking.STATUS_CONFIRMED):
            held.extend(booking.seats)
        self.assertEqual(len(held), len(set(held)))
        self.assertEqual(set(held), {"A1", "A2", "A3", "A4", "A5", "B1"})

    def test_seat_count_limits(self):
        with self.assertRaises(InvalidSeatCount):
            self.service.create_booking(self.user, self.showtime.id, [])
        eleven = [f"C{n}" for n in range(1, 12)]
        with self.assertRaises(InvalidSeatCount):
            self.service.create_booking(self.user, self.showtime.id, eleven)

        booking = self.service.create_booking(self.user, self.showtime.id, eleven[:10])
        self.assertEqual(len(booking.seats), 10)

    def test_duplicate_and_unknown_seats(self):
        with self.assertRaises(InvalidSeatSelection):
            self.service.create_booking(self.user, self.showtime.id, ["A1", "a1"])
        with self.assertRaises(InvalidSeatSelection):
            self.service.create_booking(self.user, self.showtime.id, ["K1"])
        self.assertEqual(Booking.objects.count(), 0)

    def test_labels_are_normalized(self):
        booking = self.service.create_booking(self.user, self.showtime.id, [" b4 "])
        self.assertEqual(booking.seats, ["B4"])

    def test_total_price_must_match(self):
        with self.assertRaises(InvalidPayment):
            self.service.create_booking(self.user, self.showtime.id, ["A1"], total_price="10.00")
        booking = self.service.create_booking(self.user, self.showtime.id, ["A1"], total_price=12.5)
        self.assertEqual(booking.total_price, Decimal('12.50'))

    def test_bad_card_digits_roll_back_booking(self):
        with self.assertRaises(InvalidPayment):
            self.service.create_booking(self.user, self.showtime.id, ["A1"], card_last_four="12a4")
        self.assertEqual(Booking.objects.count(), 0)
        self.assertEqual(SeatClaim.objects.count(), 0)

    def test_unknown_showtime(self):
        with self.assertRaises(NotFound):
            self.service.create_booking(self.user, 9999, ["A1"])

    def test_confirmation_is_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            booking = self.service.create_booking(self.user, self.showtime.id, ["A1"])

        self.assertGreaterEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Booking Confirmed", mail.outbox[0].subject)
        self.assertIn("A1", mail.outbox[0].body)
        self.assertEqual(mail.outbox[0].to, ["test@example.com"])
        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.kind, "booking_confirmed")
        self.assertIn(booking.movie_title, notification.message)

    def test_failed_booking_sends_nothing(self):
        self.service.create_booking(self.user, self.showtime.id, ["A1"])
        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(SeatUnavailable):
                self.service.create_booking(self.other_user, self.showtime.id, ["A1"])
        self.assertEqual(len(mail.outbox), 0)


class CancelBookingTestCase(BookingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.booking = self.service.create_booking(self.user, self.showtime.id, ["A1", "A2"])

    def test_cancel_releases_seats_and_requests_refund(self):
        with self.assertRaises(SeatUnavailable):
            self.service.create_booking(self.other_user, self.showtime.id, ["A1", "A2"])

        booking = self.service.cancel_booking(self.booking.id, self.user)

        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.assertFalse(SeatClaim.objects.filter(booking=booking).exists())
        self.assertTrue(self.service.availability.is_available(self.showtime, ["A1", "A2"]))
        payment = Payment.objects.get(booking=booking)
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PENDING)
        self.assertEqual(payment.status_history.count(), 1)

        rebooked = self.service.create_booking(self.other_user, self.showtime.id, ["A1", "A2"])
        self.assertEqual(rebooked.status, Booking.STATUS_CONFIRMED)

    def test_cancel_sends_cancellation_email(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.service.cancel_booking(self.booking.id, self.user)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Cancellation", mail.outbox[0].subject)
        self.assertIn("25.00", mail.outbox[0].body)

    def test_only_owner_can_cancel(self):
        with self.assertRaises(Forbidden):
            self.service.cancel_booking(self.booking.id, self.other_user)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CONFIRMED)

    def test_staff_can_cancel_for_customer(self):
        booking = self.service.cancel_booking(self.booking.id, self.staff)
        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        change = Payment.objects.get(booking=booking).status_history.get()
        self.assertEqual(change.changed_by, self.staff)

    def test_cannot_cancel_twice(self):
        self.service.cancel_booking(self.booking.id, self.user)
        with self.assertRaises(InvalidTransition):
            self.service.cancel_booking(self.booking.id, self.user)
        payment = Payment.objects.get(booking=self.booking)
        self.assertEqual(payment.status_history.count(), 1)

    def test_unknown_booking(self):
        with self.assertRaises(NotFound):
            self.service.cancel_booking(9999, self.user)

    def test_refund_failure_keeps_cancellation(self):
        with patch.object(PaymentService, 'request_refund', side_effect=DependencyFailure("store down")):
            with self.assertRaises(DependencyFailure):
                self.service.cancel_booking(self.booking.id, self.user)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CANCELLED)
        self.assertTrue(self.service.availability.is_available(self.showtime, ["A1", "A2"]))
        payment = Payment.objects.get(booking=self.booking)
        self.assertEqual(payment.status, Payment.STATUS_COMPLETED)

        # Retrying the refund request later moves the payment on
        PaymentService().request_refund(self.booking, actor=self.user)
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PENDING)

    def test_cancel_without_payment_still_succeeds(self):
        Payment.objects.filter(booking=self.booking).delete()

        booking = self.service.cancel_booking(self.booking.id, self.user)

        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.assertTrue(self.service.availability.is_available(self.showtime, ["A1", "A2"]))


class SeatHoldTestCase(BookingTestMixin, TestCase):
    def expire(self, booking):
        Booking.objects.filter(pk=booking.pk).update(hold_expires_at=timezone.now() - timedelta(minutes=1))

    def test_hold_blocks_seats_until_confirmed(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1", "D2"])

        self.assertEqual(hold.status, Booking.STATUS_PENDING)
        self.assertIsNotNone(hold.hold_expires_at)
        self.assertFalse(Payment.objects.filter(booking=hold).exists())
        with self.assertRaises(SeatUnavailable):
            self.service.create_booking(self.other_user, self.showtime.id, ["D2"])

        booking = self.service.confirm_booking(hold.id, self.user, payment_method="wallet")
        self.assertEqual(booking.status, Booking.STATUS_CONFIRMED)
        self.assertIsNone(booking.hold_expires_at)
        self.assertEqual(booking.payment.payment_method, "wallet")
        self.assertEqual(booking.payment.amount, Decimal('25.00'))

    def test_expired_hold_frees_seats(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1"])
        self.expire(hold)

        self.assertTrue(self.service.availability.is_available(self.showtime, ["D1"]))
        booking = self.service.create_booking(self.other_user, self.showtime.id, ["D1"])

        self.assertEqual(booking.seats, ["D1"])
        hold.refresh_from_db()
        self.assertEqual(hold.status, Booking.STATUS_CANCELLED)

    def test_confirming_expired_hold_fails(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1"])
        self.expire(hold)

        with self.assertRaises(InvalidTransition):
            self.service.confirm_booking(hold.id, self.user)

        hold.refresh_from_db()
        self.assertEqual(hold.status, Booking.STATUS_CANCELLED)
        self.assertFalse(SeatClaim.objects.filter(booking=hold).exists())

    def test_only_owner_can_confirm(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1"])
        with self.assertRaises(Forbidden):
            self.service.confirm_booking(hold.id, self.other_user)

    def test_pending_hold_cannot_be_cancelled(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1"])
        with self.assertRaises(InvalidTransition):
            self.service.cancel_booking(hold.id, self.user)

    def test_release_command(self):
        hold = self.service.hold_seats(self.user, self.showtime.id, ["D1", "D2"])
        self.service.hold_seats(self.other_user, self.showtime.id, ["E1"])
        self.expire(hold)

        out = StringIO()
        call_command('release_expired_holds', stdout=out)

        self.assertIn("Released 1 expired holds", out.getvalue())
        self.assertIn("D1, D2", out.getvalue())
        self.assertEqual(Booking.objects.filter(status=Booking.STATUS_PENDING).count(), 1)

        out = StringIO()
        call_command('release_expired_holds', stdout=out)
        self.assertIn("No expired holds found.", out.getvalue())


class BookingViewsTestCase(BookingTestMixin, TestCase):
    def post_json(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type='application/json')

    def test_seat_map(self):
        self.service.create_booking(self.user, self.showtime.id, ["A2", "A1"])
        response = self.client.get(f'/booking/showtimes/{self.showtime.id}/seats/')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['booked'], ["A1", "A2"])
        self.assertEqual(body['capacity'], 100)
        self.assertEqual(body['available'], 98)

    def test_seat_map_survives_screen_rename(self):
        self.service.create_booking(self.user, self.showtime.id, ["A1"])
        self.screen.name = "IMAX 1"
        self.screen.save()

        response = self.client.get(f'/booking/showtimes/{self.showtime.id}/seats/')

        self.assertEqual(response.json()['booked'], ["A1"])
        with self.assertRaises(SeatUnavailable):
            self.service.create_booking(self.other_user, self.showtime.id, ["A1"])

    def test_booking_requires_login(self):
        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {'seats': ["A1"]})
        self.assertEqual(response.status_code, 302)

    def test_create_and_cancel_through_views(self):
        self.client.force_login(self.user)

        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {
            'seats': ["A1", "A2"],
            'payment_method': 'card',
            'card_last_four': '4242',
        })
        self.assertEqual(response.status_code, 201)
        booking = response.json()['booking']
        self.assertEqual(booking['total_price'], "25.00")
        self.assertEqual(booking['status'], "confirmed")

        response = self.client.get('/booking/bookings/')
        self.assertEqual(len(response.json()['bookings']), 1)

        response = self.post_json(f"/booking/bookings/{booking['id']}/cancel/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['booking']['status'], "cancelled")

    def test_conflict_renders_409(self):
        self.service.create_booking(self.user, self.showtime.id, ["A2"])
        self.client.force_login(self.other_user)

        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {'seats': ["A2", "A3"]})

        self.assertEqual(response.status_code, 409)
        self.assertIn("A2", response.json()['detail'])

    def test_too_many_seats_renders_400(self):
        self.client.force_login(self.user)
        seats = [f"A{n}" for n in range(1, 12)]
        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {'seats': seats})
        self.assertEqual(response.status_code, 400)

    def test_malformed_total_price_renders_400(self):
        self.client.force_login(self.user)
        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {
            'seats': ["A1"],
            'total_price': "abc",
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Booking.objects.count(), 0)

    def test_numeric_card_digits_render_400(self):
        self.client.force_login(self.user)
        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/book/', {
            'seats': ["A1"],
            'card_last_four': 1234,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn("card_last_four", response.json()['detail'])
        self.assertEqual(Booking.objects.count(), 0)

    def test_cancel_someone_elses_booking_renders_403(self):
        booking = self.service.create_booking(self.user, self.showtime.id, ["A1"])
        self.client.force_login(self.other_user)
        response = self.post_json(f'/booking/bookings/{booking.id}/cancel/')
        self.assertEqual(response.status_code, 403)

    def test_hold_and_confirm_through_views(self):
        self.client.force_login(self.user)
        response = self.post_json(f'/booking/showtimes/{self.showtime.id}/hold/', {'seats': ["F1"]})
        self.assertEqual(response.status_code, 201)
        booking = response.json()['booking']
        self.assertEqual(booking['status'], "pending")

        response = self.post_json(f"/booking/bookings/{booking['id']}/confirm/", {'payment_method': 'card'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['booking']['status'], "confirmed")


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentBookingTestCase(BookingTestMixin, TransactionTestCase):
    def test_parallel_requests_for_the_same_seats(self):
        users = [self.user, self.other_user, self.staff, self.user]
        barrier = threading.Barrier(len(users))
        outcomes = []

        def attempt(user):
            try:
                barrier.wait()
                BookingService().create_booking(user, self.showtime.id, ["A1", "A2"])
                outcomes.append('booked')
            except SeatUnavailable:
                outcomes.append('rejected')
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(user,)) for user in users]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ['booked', 'rejected', 'rejected', 'rejected'])
        self.assertEqual(SeatClaim.objects.filter(showtime=self.showtime).count(), 2)
