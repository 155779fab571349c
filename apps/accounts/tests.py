
from django.test import TestCase
from rest_framework.test import APIClient
from .models import User


class UserManagerTest(TestCase):
    def test_create_user(self):
        user = User.objects.create_user(email="Holder@Example.COM", wallet_address="  0x" + "ab" * 20 + " ")
        self.assertEqual(user.email, "Holder@example.com")
        self.assertEqual(user.wallet_address, "0x" + "ab" * 20)
        self.assertTrue(user.has_wallet)
        self.assertFalse(user.has_usable_password())
        self.assertFalse(user.is_company)

    def test_blank_wallet_is_stored_as_null(self):
        user = User.objects.create_user(email="nowallet@example.com", password="correct horse battery", wallet_address="")
        self.assertIsNone(user.wallet_address)
        self.assertTrue(user.check_password("correct horse battery"))

    def test_natural_key_lookup_ignores_case(self):
        user = User.objects.create_user(email="org@example.com", user_type=User.UserType.COMPANY)
        self.assertEqual(User.objects.get_by_natural_key("ORG@example.com"), user)
        self.assertTrue(user.is_company)

    def test_create_superuser_requires_password(self):
        with self.assertRaises(ValueError):
            User.objects.create_superuser(email="root@example.com", password="")
        admin = User.objects.create_superuser(email="root@example.com", password="s3cret-pass-123")
        self.assertTrue(admin.is_staff and admin.is_superuser)


class AccountsApiTest(TestCase):
    def setUp(self):
        self.api = APIClient()

    def test_register_returns_tokens(self):
        response = self.api.post(
            "/api/v1/auth/register/",
            {"email": "fan@example.com", "password": "a-long-passphrase", "password2": "a-long-passphrase"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertIn("access", response.data)
        self.assertIsNone(response.data["wallet_address"])

    def test_set_wallet(self):
        user = User.objects.create_user(email="fan@example.com")
        self.api.force_authenticate(user)

        response = self.api.patch("/api/v1/users/me/", {"wallet_address": "0xnot-an-address"}, format="json")
        self.assertEqual(response.status_code, 400)

        response = self.api.patch("/api/v1/users/me/", {"wallet_address": "0x" + "ab" * 20}, format="json")
        self.assertEqual(response.status_code, 200)
        user.refresh_from_db()
        self.assertEqual(user.wallet_address, "0x" + "ab" * 20)
