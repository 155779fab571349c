
from datetime import timedelta
from unittest import mock

from django.apps import apps as django_apps
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from apps.accounts.models import User
from apps.blockchain import tasks as blockchain_tasks
from apps.blockchain.testing import FakeChainClient
from . import models, services

WALLET = "0x" + "ab" * 20


class TicketFixturesMixin:
    def setUp(self):
        cache.clear()
        self.now = timezone.now()
        self.company = User.objects.create_user(email="org@example.com", user_type=User.UserType.COMPANY)
        self.other_company = User.objects.create_user(email="rival@example.com", user_type=User.UserType.COMPANY)
        self.holder = User.objects.create_user(email="holder@example.com", wallet_address=WALLET)
        self.event = models.Event.objects.create(
            company=self.company, title="Jazz Night", start_at=self.now, end_at=self.now + timedelta(hours=4)
        )

    def make_ticket(self, **kwargs):
        data = {"event": self.event, "owner": self.holder, "name": "Front row", "start_at": self.now - timedelta(hours=1)}
        data.update(kwargs)
        return models.Ticket.objects.create(**data)


class TicketModelTest(TicketFixturesMixin, TestCase):
    def test_defaults(self):
        ticket = self.make_ticket()
        self.assertEqual(ticket.status, models.Ticket.Status.VALID)
        self.assertEqual(ticket.rarity, models.Ticket.Rarity.COMMON)
        self.assertEqual(len(ticket.external_id), 32)
        self.assertIsNone(ticket.token_id)
        self.assertNotEqual(ticket.external_id, self.make_ticket().external_id)

    def test_pending_mint(self):
        due = self.make_ticket(start_at=self.now - timedelta(hours=2))
        due_later = self.make_ticket(start_at=self.now - timedelta(minutes=1))
        self.make_ticket(start_at=self.now + timedelta(hours=1))
        self.make_ticket(status=models.Ticket.Status.CANCELED)
        self.make_ticket(is_deleted=True)
        self.make_ticket(status=models.Ticket.Status.MINTED, token_id="3")

        pending = list(models.Ticket.objects.pending_mint(self.now))

        self.assertEqual(pending, [due, due_later])

    def test_mint_wait(self):
        ticket = self.make_ticket(start_at=self.now + timedelta(minutes=10))
        self.assertEqual(ticket.mint_wait(self.now), timedelta(minutes=10))
        self.assertEqual(ticket.mint_wait(self.now + timedelta(hours=1)), timedelta(0))


class TicketStoreTest(TicketFixturesMixin, TestCase):
    def test_commit_mint_only_once(self):
        ticket = self.make_ticket()
        self.assertTrue(services.commit_mint(ticket.id, "10", "0x" + "aa" * 32, "rare"))
        self.assertFalse(services.commit_mint(ticket.id, "11", "0x" + "bb" * 32, "epic"))
        ticket.refresh_from_db()
        self.assertEqual(ticket.token_id, "10")
        self.assertEqual(ticket.rarity, "rare")

    def test_commit_mint_refuses_canceled_ticket(self):
        ticket = self.make_ticket(status=models.Ticket.Status.CANCELED)
        self.assertFalse(services.commit_mint(ticket.id, "10", "0x" + "aa" * 32, "rare"))

    def test_cancel(self):
        ticket = self.make_ticket()
        self.assertTrue(services.cancel_ticket(ticket.id))
        self.assertFalse(services.cancel_ticket(ticket.id))

    def test_pending_ids_and_counts(self):
        first = self.make_ticket(start_at=self.now - timedelta(hours=3))
        self.make_ticket(start_at=self.now - timedelta(hours=1))
        self.make_ticket(status=models.Ticket.Status.CANCELED)

        self.assertEqual(services.pending_mint_ticket_ids(self.now, limit=1), [first.id])
        self.assertEqual(services.ticket_status_counts(), {"valid": 2, "canceled": 1, "minted": 0})

    def test_get_ticket_for_sync_rejects_bad_ids(self):
        with self.assertRaises(models.Ticket.DoesNotExist):
            services.get_ticket_for_sync("nope")


class TicketCreatedSignalTest(TicketFixturesMixin, TestCase):
    @override_settings(BLOCKCHAIN_SCHEDULE_ON_CREATE=True)
    def test_schedules_mint_after_commit(self):
        with mock.patch.object(blockchain_tasks.schedule_ticket_minting, "delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                ticket = self.make_ticket()
        delay.assert_called_once_with(str(ticket.id), self.event.end_at.isoformat())

    def test_disabled_by_setting(self):
        with mock.patch.object(blockchain_tasks.schedule_ticket_minting, "delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.make_ticket()
        delay.assert_not_called()

    @override_settings(BLOCKCHAIN_SCHEDULE_ON_CREATE=True)
    def test_updates_do_not_reschedule(self):
        ticket = self.make_ticket()
        with mock.patch.object(blockchain_tasks.schedule_ticket_minting, "delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                ticket.name = "Back row"
                ticket.save()
        delay.assert_not_called()


class EventApiTest(TicketFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.api = APIClient()

    def test_company_creates_and_lists_own_events(self):
        self.api.force_authenticate(self.company)
        response = self.api.post(
            "/api/v1/events/",
            {"title": "Rock Night", "start_at": self.now.isoformat(), "postback_url": "https://org.example.com/hook"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["company"], self.company.id)

        self.api.force_authenticate(self.other_company)
        self.assertEqual(self.api.get("/api/v1/events/").data["meta"]["count"], 0)

    def test_holder_cannot_create_events(self):
        self.api.force_authenticate(self.holder)
        response = self.api.post("/api/v1/events/", {"title": "X", "start_at": self.now.isoformat()}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_end_before_start_is_rejected(self):
        self.api.force_authenticate(self.company)
        response = self.api.post(
            "/api/v1/events/",
            {"title": "X", "start_at": self.now.isoformat(), "end_at": (self.now - timedelta(hours=1)).isoformat()},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_delete_is_soft_and_deactivate(self):
        self.api.force_authenticate(self.company)
        response = self.api.post(f"/api/v1/events/{self.event.id}/deactivate/")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["is_active"])

        response = self.api.delete(f"/api/v1/events/{self.event.id}/")
        self.assertEqual(response.status_code, 204)
        self.event.refresh_from_db()
        self.assertTrue(self.event.is_deleted)


class TicketApiTest(TicketFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.api = APIClient()

    def ticket_payload(self, **overrides):
        payload = {
            "event": str(self.event.id),
            "owner_email": "newcomer@example.com",
            "name": "General admission",
            "amount": 2,
            "start_at": self.now.isoformat(),
        }
        payload.update(overrides)
        return payload

    def test_company_issues_ticket_to_new_holder(self):
        self.api.force_authenticate(self.company)
        response = self.api.post("/api/v1/tickets/", self.ticket_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "valid")
        self.assertEqual(response.data["rarity"], "common")
        self.assertEqual(response.data["owner"]["email"], "newcomer@example.com")
        self.assertIsNone(response.data["owner"]["wallet_address"])
        self.assertTrue(User.objects.filter(email="newcomer@example.com").exists())

    def test_rarity_cannot_be_chosen(self):
        self.api.force_authenticate(self.company)
        response = self.api.post("/api/v1/tickets/", self.ticket_payload(rarity="legendary"), format="json")
        self.assertEqual(response.data["rarity"], "common")

    def test_cannot_issue_for_someone_elses_event(self):
        self.api.force_authenticate(self.other_company)
        response = self.api.post("/api/v1/tickets/", self.ticket_payload(), format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("event", response.data)

    def test_cannot_issue_for_inactive_event(self):
        models.Event.objects.filter(id=self.event.id).update(is_active=False)
        self.api.force_authenticate(self.company)
        response = self.api.post("/api/v1/tickets/", self.ticket_payload(), format="json")
        self.assertEqual(response.status_code, 400)

    def test_holder_sees_only_own_tickets(self):
        mine = self.make_ticket()
        someone = User.objects.create_user(email="someone@example.com")
        self.make_ticket(owner=someone)

        self.api.force_authenticate(self.holder)
        response = self.api.get("/api/v1/tickets/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([t["id"] for t in response.data["results"]], [str(mine.id)])

    def test_filter_by_status(self):
        self.make_ticket()
        self.make_ticket(status=models.Ticket.Status.CANCELED)
        self.api.force_authenticate(self.company)
        response = self.api.get("/api/v1/tickets/", {"status": "canceled"})
        self.assertEqual(response.data["meta"]["count"], 1)

    def test_cancel(self):
        ticket = self.make_ticket()
        self.api.force_authenticate(self.company)

        response = self.api.post(f"/api/v1/tickets/{ticket.id}/cancel/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "canceled")

        response = self.api.post(f"/api/v1/tickets/{ticket.id}/cancel/")
        self.assertEqual(response.status_code, 409)

    def test_holder_cannot_cancel(self):
        ticket = self.make_ticket()
        self.api.force_authenticate(self.holder)
        response = self.api.post(f"/api/v1/tickets/{ticket.id}/cancel/")
        self.assertEqual(response.status_code, 403)

    def test_sync_then_verify(self):
        ticket = self.make_ticket()
        fake = FakeChainClient()
        self.api.force_authenticate(self.company)

        with mock.patch.object(django_apps.get_app_config("blockchain"), "chain_client", return_value=fake):
            response = self.api.post(f"/api/v1/tickets/{ticket.id}/sync/")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.data["status"], "minted")
            self.assertEqual(response.data["token_id"], "1")

            response = self.api.post(f"/api/v1/tickets/{ticket.id}/sync/")
            self.assertEqual(response.data["status"], "already_minted")

            self.api.force_authenticate(self.holder)
            response = self.api.get(f"/api/v1/tickets/{ticket.id}/verify/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["verified"])
        self.assertEqual(len(fake.submitted), 1)

    def test_sync_before_start_is_not_yet_eligible(self):
        ticket = self.make_ticket(start_at=timezone.now() + timedelta(hours=2))
        self.api.force_authenticate(self.company)
        with mock.patch.object(
            django_apps.get_app_config("blockchain"), "chain_client", return_value=FakeChainClient()
        ):
            response = self.api.post(f"/api/v1/tickets/{ticket.id}/sync/")
        self.assertEqual(response.data["status"], "not_yet_eligible")
        self.assertGreater(response.data["wait_seconds"], 7000)

    def test_anonymous_is_rejected(self):
        response = self.api.get("/api/v1/tickets/")
        self.assertEqual(response.status_code, 401)
