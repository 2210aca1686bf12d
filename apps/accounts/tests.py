from django.test import TestCase
from rest_framework.test import APIRequestFactory
from django.contrib.auth.models import AnonymousUser

from apps.accounts.models import User, Role
from apps.accounts.permissions import IsAdmin


class UserManagerTests(TestCase):
    def test_create_user_defaults_to_customer(self):
        user = User.objects.create_user(email="buyer@Example.com", password="pass12345")

        self.assertEqual(user.role, Role.CUSTOMER)
        self.assertEqual(user.email, "buyer@example.com")
        self.assertFalse(user.is_staff)
        self.assertFalse(user.is_admin)
        self.assertTrue(user.check_password("pass12345"))

    def test_create_admin(self):
        admin = User.objects.create_admin(email="admin@shop.test", password="pass12345")

        self.assertEqual(admin.role, Role.ADMIN)
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_admin)

    def test_superuser_is_admin(self):
        root = User.objects.create_superuser(email="root@shop.test", password="pass12345")
        self.assertTrue(root.is_admin)
        self.assertTrue(root.is_superuser)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email="")


class PermissionTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.customer = User.objects.create_user(email="c@shop.test")
        self.admin = User.objects.create_admin(email="a@shop.test")

    def _request(self, user):
        request = self.factory.get("/")
        request.user = user
        return request

    def test_is_admin(self):
        self.assertTrue(IsAdmin().has_permission(self._request(self.admin), None))
        self.assertFalse(IsAdmin().has_permission(self._request(self.customer), None))
        self.assertFalse(IsAdmin().has_permission(self._request(AnonymousUser()), None))
