from django.contrib.auth.models import AnonymousUser, User
from django.test import TestCase

from cinebook.exceptions import Forbidden
from users.models import UserRole
from users.roles import ensure_back_office, is_back_office, role_for


class RoleTestCase(TestCase):
    def setUp(self):
        self.customer = User.objects.create_user(username='customer', password='testpass123')
        self.staff = User.objects.create_user(username='staff', password='testpass123', is_staff=True)
        self.admin = User.objects.create_superuser(username='admin', email='admin@example.com', password='testpass123')

    def test_roles_from_account_flags(self):
        self.assertEqual(role_for(self.customer), UserRole.ROLE_CUSTOMER)
        self.assertEqual(role_for(self.staff), UserRole.ROLE_STAFF)
        self.assertEqual(role_for(self.admin), UserRole.ROLE_ADMIN)
        self.assertIsNone(role_for(AnonymousUser()))
        self.assertIsNone(role_for(None))

    def test_explicit_role_wins(self):
        UserRole.objects.create(user=self.customer, role=UserRole.ROLE_STAFF)
        UserRole.objects.create(user=self.staff, role=UserRole.ROLE_CUSTOMER)

        self.assertEqual(role_for(User.objects.get(pk=self.customer.pk)), UserRole.ROLE_STAFF)
        self.assertFalse(is_back_office(User.objects.get(pk=self.staff.pk)))

    def test_ensure_back_office(self):
        ensure_back_office(self.staff)
        ensure_back_office(self.admin)
        with self.assertRaises(Forbidden):
            ensure_back_office(self.customer, "process refunds")


class MeViewTestCase(TestCase):
    def test_me_reports_role(self):
        user = User.objects.create_user(username='staff', password='testpass123', is_staff=True)
        self.client.force_login(user)

        response = self.client.get('/users/me/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'id': user.id, 'role': 'staff'})

    def test_me_requires_login(self):
        response = self.client.get('/users/me/')
        self.assertEqual(response.status_code, 302)
