from smtplib import SMTPException
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core import mail
from django.db import transaction
from django.test import SimpleTestCase, TestCase

from movies.models import Movie
from notifications import changefeed, emails
from notifications.dispatcher import NotificationDispatcher
from notifications.models import Notification

TEMPLATE_DATA = {
    'booking_id': 42,
    'user_name': "Jordan Doe",
    'movie_title': "The Matrix",
    'screen_name': "Screen 1",
    'show_date': "Sunday, 01 November 2026",
    'show_time': "07:30 PM",
    'seats': ["A1", "A2"],
    'amount': "25.00",
    'transaction_id': "TXN-0123456789ABCDEF",
}


class ComposeTestCase(SimpleTestCase):
    def test_booking_confirmed(self):
        subject, body = emails.compose(emails.BOOKING_CONFIRMED, TEMPLATE_DATA, "Grand Cinema")
        self.assertEqual(subject, "Booking Confirmed - The Matrix | Grand Cinema")
        self.assertIn("Dear Jordan Doe", body)
        self.assertIn("Seats Booked: A1, A2", body)
        self.assertIn("Total Amount: $25.00", body)
        self.assertIn("TXN-0123456789ABCDEF", body)

    def test_cancellation_mentions_refund(self):
        subject, body = emails.compose(emails.BOOKING_CANCELLED, TEMPLATE_DATA)
        self.assertEqual(subject, "Booking Cancellation Confirmation - CineBook")
        self.assertIn("Refund Amount: $25.00", body)
        self.assertIn("Refund Status: Pending", body)

    def test_refund_kinds(self):
        subject, body = emails.compose(emails.REFUND_PROCESSING, TEMPLATE_DATA)
        self.assertEqual(subject, "Refund Processing - CineBook")
        self.assertIn("Status: Processing", body)

        subject, body = emails.compose(emails.REFUND_COMPLETED, TEMPLATE_DATA)
        self.assertEqual(subject, "Refund Completed - CineBook")
        self.assertIn("Status: Completed", body)

    def test_missing_fields_fall_back(self):
        subject, body = emails.compose(emails.REFUND_COMPLETED, {})
        self.assertIn("Dear Valued Customer", body)
        self.assertIn("Movie: Movie", body)

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            emails.compose('birthday', TEMPLATE_DATA)
        with self.assertRaises(ValueError):
            emails.summary('birthday', TEMPLATE_DATA)

    def test_every_kind_has_a_summary(self):
        for kind in emails.KINDS:
            self.assertIn("The Matrix", emails.summary(kind, TEMPLATE_DATA))


class DispatcherTestCase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='jordan', email='jordan@example.com', password='testpass123')
        self.dispatcher = NotificationDispatcher()

    def test_deliver_sends_email_and_stores_notification(self):
        sent = self.dispatcher.deliver(emails.BOOKING_CONFIRMED, self.user.email, TEMPLATE_DATA, user=self.user)

        self.assertTrue(sent)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["jordan@example.com"])
        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.title, "Booking Confirmed")
        self.assertFalse(notification.is_read)

    def test_smtp_failure_is_logged_not_raised(self):
        with patch('notifications.dispatcher.send_mail', side_effect=SMTPException("relay refused")):
            sent = self.dispatcher.deliver(emails.REFUND_COMPLETED, self.user.email, TEMPLATE_DATA, user=self.user)

        self.assertFalse(sent)
        self.assertEqual(Notification.objects.filter(user=self.user).count(), 1)

    def test_missing_address_skips_email(self):
        sent = self.dispatcher.deliver(emails.REFUND_PROCESSING, "", TEMPLATE_DATA, user=self.user)
        self.assertFalse(sent)
        self.assertEqual(len(mail.outbox), 0)
        self.assertEqual(Notification.objects.filter(user=self.user).count(), 1)

    def test_notify_waits_for_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.dispatcher.notify(emails.BOOKING_CANCELLED, self.user.email, TEMPLATE_DATA, user=self.user)
            self.assertEqual(len(mail.outbox), 0)

        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        self.assertEqual(len(mail.outbox), 1)

    def test_notify_rejects_unknown_kind(self):
        with self.assertRaises(ValueError):
            self.dispatcher.notify('birthday', self.user.email, TEMPLATE_DATA)


class NotificationViewsTestCase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='jordan', email='jordan@example.com', password='testpass123')
        for kind in (emails.BOOKING_CONFIRMED, emails.BOOKING_CANCELLED):
            Notification.objects.create(user=self.user, kind=kind, title=emails.TITLES[kind], message="...")
        self.client.force_login(self.user)

    def test_list_and_mark_read(self):
        response = self.client.get('/notifications/')
        self.assertEqual(response.json()['unread'], 2)
        self.assertEqual(len(response.json()['notifications']), 2)

        response = self.client.post('/notifications/read/')
        self.assertEqual(response.json(), {'updated': 2})
        self.assertEqual(self.client.get('/notifications/').json()['unread'], 0)


class ChangeFeedTestCase(TestCase):
    def setUp(self):
        self.events = []

    def subscribe(self, table):
        unsubscribe = changefeed.on_change(table, self.events.append)
        self.addCleanup(unsubscribe)
        return unsubscribe

    def test_insert_update_delete_after_commit(self):
        self.subscribe('movies')

        with self.captureOnCommitCallbacks(execute=True):
            movie = Movie.objects.create(title="Feed Movie", duration=90)
            self.assertEqual(self.events, [])
        with self.captureOnCommitCallbacks(execute=True):
            movie.synopsis = "Updated"
            movie.save()
        movie_id = movie.pk
        with self.captureOnCommitCallbacks(execute=True):
            movie.delete()

        self.assertEqual([e.event for e in self.events], [changefeed.INSERT, changefeed.UPDATE, changefeed.DELETE])
        self.assertTrue(all(e.pk == movie_id for e in self.events))
        self.assertTrue(all(e.table == 'movies' for e in self.events))

    def test_other_tables_are_not_delivered(self):
        self.subscribe('bookings')
        with self.captureOnCommitCallbacks(execute=True):
            Movie.objects.create(title="Quiet Movie", duration=90)
        self.assertEqual(self.events, [])

    def test_unsubscribe(self):
        unsubscribe = self.subscribe('movies')
        unsubscribe()
        with self.captureOnCommitCallbacks(execute=True):
            Movie.objects.create(title="Unheard Movie", duration=90)
        self.assertEqual(self.events, [])

    def test_failing_subscriber_does_not_break_others(self):
        def broken(change):
            raise RuntimeError("subscriber bug")

        self.addCleanup(changefeed.on_change('movies', broken))
        self.subscribe('movies')

        with self.captureOnCommitCallbacks(execute=True):
            Movie.objects.create(title="Sturdy Movie", duration=90)

        self.assertEqual(len(self.events), 1)

    def test_rolled_back_write_is_not_published(self):
        self.subscribe('movies')
        with self.captureOnCommitCallbacks(execute=True):
            try:
                with transaction.atomic():
                    Movie.objects.create(title="Ghost Movie", duration=90)
                    raise RuntimeError("abort")
            except RuntimeError:
                pass
        self.assertEqual(self.events, [])
