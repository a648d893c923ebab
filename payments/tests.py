import json
from datetime import date, time, timedelta
from decimal import Decimal
from smtplib import SMTPException
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core import mail
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from booking.models import Booking
from booking.services import BookingService
from cinebook.exceptions import DependencyFailure, Forbidden, InvalidTransition, NotFound
from movies.models import Movie, Screen, Showtime
from payments.history import RefundHistoryLog
from payments.models import Payment, RefundStatusChange
from payments.services import PaymentService

FORWARD_CHAIN = [
    Payment.STATUS_COMPLETED,
    Payment.STATUS_REFUND_PENDING,
    Payment.STATUS_REFUND_PROCESSING,
    Payment.STATUS_REFUNDED,
]


class RefundTestCase(TestCase):
    def setUp(self):
        self.customer = User.objects.create_user(
            username='customer',
            email='customer@example.com',
            password='testpass123',
            first_name='Casey',
            last_name='Customer'
        )
        self.admin = User.objects.create_superuser(
            username='admin',
            email='admin@example.com',
            password='testpass123'
        )
        movie = Movie.objects.create(title="Refund Movie", duration=110)
        screen = Screen.objects.create(name="Screen 7", rows=5, seats_per_row=10)
        self.showtime = Showtime.objects.create(
            movie=movie,
            screen=screen,
            show_date=date.today() + timedelta(days=2),
            show_time=time(20, 15),
            price=Decimal('12.50')
        )
        self.bookings = BookingService()
        self.service = PaymentService()
        self.history = RefundHistoryLog()

    def book(self, seats):
        booking = self.bookings.create_booking(self.customer, self.showtime.id, seats)
        return booking.payment

    def cancelled_payment(self, seats):
        payment = self.book(seats)
        self.bookings.cancel_booking(payment.booking_id, self.customer)
        payment.refresh_from_db()
        return payment

    def statuses(self, payment):
        changes = list(payment.status_history.all())
        if not changes:
            return [payment.status]
        return [changes[0].old_status] + [c.new_status for c in changes]


class RefundStateMachineTestCase(RefundTestCase):
    def test_full_refund_lifecycle(self):
        payment = self.cancelled_payment(["A1", "A2"])
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PENDING)

        payment = self.service.start_processing(payment.id, self.admin, notes="Approved by support")
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PROCESSING)

        payment = self.service.complete_refund(payment.id, self.admin)
        self.assertEqual(payment.status, Payment.STATUS_REFUNDED)

        self.assertEqual(self.statuses(payment), FORWARD_CHAIN)
        processing = payment.status_history.get(new_status=Payment.STATUS_REFUND_PROCESSING)
        self.assertEqual(processing.notes, "Approved by support")
        self.assertEqual(processing.changed_by, self.admin)

    def test_skipping_a_step_is_rejected(self):
        payment = self.book(["A1"])
        with self.assertRaises(InvalidTransition):
            self.service.complete_refund(payment.id, self.admin)
        with self.assertRaises(InvalidTransition):
            self.service.start_processing(payment.id, self.admin)

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.STATUS_COMPLETED)
        self.assertFalse(payment.status_history.exists())

    def test_no_backward_transitions(self):
        payment = self.cancelled_payment(["A1"])
        self.service.start_processing(payment.id, self.admin)
        self.service.complete_refund(payment.id, self.admin)

        for step in (self.service.start_processing, self.service.complete_refund):
            with self.assertRaises(InvalidTransition):
                step(payment.id, self.admin)
        with self.assertRaises(InvalidTransition):
            self.service.request_refund(payment.booking)
        self.assertEqual(payment.status_history.count(), 3)

    def test_history_is_always_a_prefix_of_the_chain(self):
        payments = [
            self.book(["B1"]),
            self.cancelled_payment(["B2"]),
            self.cancelled_payment(["B3"]),
            self.cancelled_payment(["B4"]),
        ]
        self.service.start_processing(payments[2].id, self.admin)
        self.service.start_processing(payments[3].id, self.admin)
        self.service.complete_refund(payments[3].id, self.admin)
        for payment in payments:
            try:
                self.service.complete_refund(payment.id, self.admin)
            except InvalidTransition:
                pass

        for payment in payments:
            payment.refresh_from_db()
            observed = self.statuses(payment)
            self.assertEqual(observed, FORWARD_CHAIN[:len(observed)])

    def test_customers_cannot_process_refunds(self):
        payment = self.cancelled_payment(["A1"])
        with self.assertRaises(Forbidden):
            self.service.start_processing(payment.id, self.customer)
        with self.assertRaises(Forbidden):
            self.service.start_processing(payment.id, None)

    def test_unknown_payment(self):
        with self.assertRaises(NotFound):
            self.service.start_processing(9999, self.admin)

    def test_store_failure_leaves_payment_untouched(self):
        payment = self.cancelled_payment(["A1"])
        with patch.object(RefundHistoryLog, 'append', side_effect=DatabaseError("connection lost")):
            with self.assertRaises(DependencyFailure):
                self.service.start_processing(payment.id, self.admin)

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PENDING)
        self.assertEqual(payment.status_history.count(), 1)

    def test_refund_emails(self):
        payment = self.cancelled_payment(["A1"])
        with self.captureOnCommitCallbacks(execute=True):
            self.service.start_processing(payment.id, self.admin)
        with self.captureOnCommitCallbacks(execute=True):
            self.service.complete_refund(payment.id, self.admin)

        subjects = [m.subject for m in mail.outbox]
        self.assertEqual(subjects, ["Refund Processing - CineBook", "Refund Completed - CineBook"])
        self.assertIn("Dear Casey Customer", mail.outbox[1].body)
        self.assertIn("$12.50", mail.outbox[1].body)

    def test_email_failure_does_not_undo_transition(self):
        payment = self.cancelled_payment(["A1"])
        with patch('notifications.dispatcher.send_mail', side_effect=SMTPException("smtp down")):
            with self.captureOnCommitCallbacks(execute=True):
                payment = self.service.start_processing(payment.id, self.admin)

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.STATUS_REFUND_PROCESSING)
        self.assertEqual(len(mail.outbox), 0)
        self.assertTrue(self.customer.notifications.filter(kind="refund_processing").exists())

    def test_refundable_payments(self):
        self.book(["C1"])
        refund = self.cancelled_payment(["C2"])
        self.assertEqual(list(self.service.refundable_payments()), [refund])


class BulkTransitionTestCase(RefundTestCase):
    def test_partial_success_is_reported(self):
        p1 = self.cancelled_payment(["A1"])
        p2 = self.cancelled_payment(["A2"])
        p3 = self.cancelled_payment(["A3"])
        for payment in (p1, p2, p3):
            self.service.start_processing(payment.id, self.admin)
        # p2 drifts out of refund_processing
        self.service.complete_refund(p2.id, self.admin)

        result = self.service.bulk_transition([p1.id, p2.id, p3.id], 'refunded', self.admin, notes="Batch 42")

        self.assertEqual(result, {'processed': 2, 'total': 3})
        for payment in (p1, p2, p3):
            payment.refresh_from_db()
            self.assertEqual(payment.status, Payment.STATUS_REFUNDED)
        self.assertEqual(p2.status_history.filter(new_status=Payment.STATUS_REFUNDED).count(), 1)
        self.assertEqual(p1.status_history.get(new_status=Payment.STATUS_REFUNDED).notes, "Batch 42")

    def test_pending_payment_is_skipped(self):
        p1 = self.cancelled_payment(["A1"])
        p2 = self.book(["A2"])
        p3 = self.cancelled_payment(["A3"])
        for payment in (p1, p3):
            self.service.start_processing(payment.id, self.admin)

        result = self.service.bulk_transition([p1.id, p2.id, p3.id], 'refunded', self.admin)

        self.assertEqual(result, {'processed': 2, 'total': 3})
        p2.refresh_from_db()
        self.assertEqual(p2.status, Payment.STATUS_COMPLETED)

    def test_missing_ids_are_counted_but_not_processed(self):
        p1 = self.cancelled_payment(["A1"])
        result = self.service.bulk_transition([p1.id, 9999], 'refund_processing', self.admin)
        self.assertEqual(result, {'processed': 1, 'total': 2})

    def test_malformed_ids_are_skipped(self):
        p1 = self.cancelled_payment(["A1"])
        p3 = self.cancelled_payment(["A3"])

        result = self.service.bulk_transition([p1.id, "abc", p3.id], 'refund_processing', self.admin)

        self.assertEqual(result, {'processed': 2, 'total': 3})
        for payment in (p1, p3):
            payment.refresh_from_db()
            self.assertEqual(payment.status, Payment.STATUS_REFUND_PROCESSING)

    def test_bulk_rejects_other_targets(self):
        p1 = self.cancelled_payment(["A1"])
        with self.assertRaises(InvalidTransition):
            self.service.bulk_transition([p1.id], 'refund_pending', self.admin)

    def test_bulk_requires_back_office(self):
        with self.assertRaises(Forbidden):
            self.service.bulk_transition([], 'refunded', self.customer)


class RefundTimelineTestCase(RefundTestCase):
    def setUp(self):
        super().setUp()
        self.payment = self.book(["A1", "A2"])
        Booking.objects.filter(pk=self.payment.booking_id).update(
            created_at=timezone.now() - timedelta(hours=1)
        )
        self.booking = Booking.objects.get(pk=self.payment.booking_id)

    def test_untouched_payment_has_single_synthetic_event(self):
        events = self.history.timeline(self.payment.id, self.booking.created_at)

        self.assertEqual(len(events), 1)
        self.assertTrue(events[0].is_initial)
        self.assertEqual(events[0].status, Payment.STATUS_COMPLETED)
        self.assertEqual(events[0].timestamp, self.booking.created_at)

    def test_cancel_then_refund(self):
        self.bookings.cancel_booking(self.booking.id, self.customer)
        self.service.start_processing(self.payment.id, self.admin)
        self.service.complete_refund(self.payment.id, self.admin, notes="Card credited")

        events = self.history.timeline(self.payment.id, self.booking.created_at)

        self.assertEqual(
            [(e.old_status, e.status) for e in events],
            [
                (None, Payment.STATUS_COMPLETED),
                (Payment.STATUS_COMPLETED, Payment.STATUS_REFUND_PENDING),
                (Payment.STATUS_REFUND_PENDING, Payment.STATUS_REFUND_PROCESSING),
                (Payment.STATUS_REFUND_PROCESSING, Payment.STATUS_REFUNDED),
            ]
        )
        self.assertEqual(RefundStatusChange.objects.filter(payment=self.payment).count(), 3)
        self.assertEqual(events[-1].notes, "Card credited")
        timestamps = [e.timestamp for e in events]
        self.assertEqual(timestamps, sorted(timestamps))

    def test_timeline_is_repeatable(self):
        self.bookings.cancel_booking(self.booking.id, self.customer)

        first = self.history.timeline(self.payment.id, self.booking.created_at)
        second = self.history.timeline(self.payment.id, self.booking.created_at)

        self.assertEqual(first, second)
        self.assertEqual(RefundStatusChange.objects.filter(payment=self.payment).count(), 1)

    def test_initial_row_suppresses_synthetic_event(self):
        RefundStatusChange.objects.create(
            payment=self.payment, old_status=None, new_status=Payment.STATUS_COMPLETED
        )
        RefundStatusChange.objects.filter(payment=self.payment).update(created_at=self.booking.created_at)

        events = self.history.timeline(self.payment.id, self.booking.created_at)

        self.assertEqual(len(events), 1)
        self.assertFalse(events[0].is_initial)

    def test_status_without_history_shows_current(self):
        Payment.objects.filter(pk=self.payment.id).update(status=Payment.STATUS_REFUND_PENDING)

        events = self.history.timeline(self.payment.id, self.booking.created_at)

        self.assertEqual([e.id for e in events], ['initial', 'current'])
        self.assertEqual(events[1].status, Payment.STATUS_REFUND_PENDING)

    def test_unknown_payment(self):
        with self.assertRaises(NotFound):
            self.history.timeline(9999, self.booking.created_at)


class RefundViewsTestCase(RefundTestCase):
    def post_json(self, url, data=None):
        return self.client.post(url, data=json.dumps(data or {}), content_type='application/json')

    def test_admin_walks_refund_through_views(self):
        payment = self.cancelled_payment(["A1"])
        self.client.force_login(self.admin)

        response = self.client.get('/payments/refunds/')
        self.assertEqual(response.status_code, 200)
        listed = response.json()['payments']
        self.assertEqual([p['id'] for p in listed], [payment.id])
        self.assertEqual(listed[0]['profile']['email'], "customer@example.com")

        response = self.post_json(f'/payments/refunds/{payment.id}/process/', {'notes': "ok"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['payment']['status'], "refund_processing")

        response = self.post_json(f'/payments/refunds/{payment.id}/complete/')
        self.assertEqual(response.json()['payment']['status'], "refunded")

        response = self.client.get(f'/payments/refunds/{payment.id}/timeline/')
        events = response.json()['events']
        self.assertEqual([e['status'] for e in events], FORWARD_CHAIN)

    def test_out_of_order_renders_409(self):
        payment = self.book(["A1"])
        self.client.force_login(self.admin)
        response = self.post_json(f'/payments/refunds/{payment.id}/complete/')
        self.assertEqual(response.status_code, 409)

    def test_customer_gets_403(self):
        payment = self.cancelled_payment(["A1"])
        self.client.force_login(self.customer)
        response = self.post_json(f'/payments/refunds/{payment.id}/process/')
        self.assertEqual(response.status_code, 403)

    def test_bulk_view(self):
        p1 = self.cancelled_payment(["A1"])
        p2 = self.book(["A2"])
        self.client.force_login(self.admin)

        response = self.post_json('/payments/refunds/bulk/', {
            'payment_ids': [p1.id, p2.id],
            'status': 'refund_processing',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'processed': 1, 'total': 2})

    def test_bulk_view_skips_malformed_ids(self):
        p1 = self.cancelled_payment(["A1"])
        p3 = self.cancelled_payment(["A3"])
        self.client.force_login(self.admin)

        response = self.post_json('/payments/refunds/bulk/', {
            'payment_ids': [p1.id, "x", p3.id],
            'status': 'refund_processing',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'processed': 2, 'total': 3})

    def test_bulk_view_needs_a_list(self):
        self.client.force_login(self.admin)
        response = self.post_json('/payments/refunds/bulk/', {'payment_ids': "1,2", 'status': 'refunded'})
        self.assertEqual(response.status_code, 400)
