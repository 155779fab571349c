
import json
from datetime import timedelta
from io import StringIO
from unittest import mock

import requests
from celery.exceptions import Retry
from django.apps import apps as django_apps
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from eth_abi import encode as abi_encode
from rest_framework.test import APIClient
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from apps.accounts.models import User
from apps.events import services as ticket_store
from apps.events.models import Event, Ticket
from apps.events.utils import sign_payload

from . import abi, tasks
from .client import SIGNER_LOCK_PREFIX, ChainClient, ChainConfig
from .exceptions import (
    ChainConfigurationError,
    ChainTimeoutError,
    ChainTransientError,
    ContractRevertError,
    MissingMintEventError,
    TicketNotFound,
)
from .hashing import to_chain_id
from .reconciler import LedgerReconciler
from .services import MINT_LOCK_PREFIX, MintStatus, NotReadyCode, SyncEngine
from .testing import CONTRACT_ADDRESS, FakeChainClient
from .webhooks import send_confirmation_webhook

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20


def use_chain(fake):
    """Inject `fake` wherever the app asks for the process-wide chain client."""
    return mock.patch.object(django_apps.get_app_config("blockchain"), "chain_client", return_value=fake)


def quiet_webhook():
    return mock.patch(
        "apps.blockchain.webhooks.requests.post", return_value=mock.Mock(status_code=200, text="ok")
    )


class SyncFixturesMixin:
    def setUp(self):
        cache.clear()
        self.now = timezone.now()
        self.company = User.objects.create_user(email="org@example.com", name="Org", user_type=User.UserType.COMPANY)
        self.holder = User.objects.create_user(email="holder@example.com", wallet_address=WALLET)
        self.event = Event.objects.create(
            company=self.company,
            title="Summer Fest",
            start_at=self.now - timedelta(days=1),
            end_at=self.now - timedelta(hours=2),
            postback_url="https://org.example.com/postback",
        )
        self.client_chain = FakeChainClient()
        self.notified = []

    def make_ticket(self, **kwargs):
        data = {
            "event": self.event,
            "owner": self.holder,
            "name": "VIP pass",
            "seat": "A1",
            "sector": "North",
            "start_at": self.now - timedelta(hours=1),
        }
        data.update(kwargs)
        return Ticket.objects.create(**data)

    def engine(self, client=None, clock=None):
        return SyncEngine(
            client or self.client_chain,
            notifier=self.notified.append,
            clock=clock or (lambda: self.now),
        )


class HashingTest(TestCase):
    def test_first_64_bits_of_sha256(self):
        # sha256("abc") = ba7816bf8f01cfea...
        self.assertEqual(to_chain_id("abc"), int("ba7816bf8f01cfea", 16))

    def test_uuid_and_its_string_agree(self):
        event = Event(title="x", start_at=timezone.now())
        self.assertEqual(to_chain_id(event.id), to_chain_id(str(event.id)))
        self.assertLess(to_chain_id(event.id), 2 ** 64)

    def test_empty_and_non_ascii_input(self):
        self.assertEqual(to_chain_id(""), int("e3b0c44298fc1c14", 16))
        self.assertEqual(to_chain_id("ingresso-ção"), to_chain_id("ingresso-ção"))
        self.assertNotEqual(to_chain_id("ingresso-ção"), to_chain_id("ingresso-cao"))


class AbiTest(TestCase):
    def test_event_signature(self):
        signature = abi.event_signature(abi.find_event_abi(abi.MINT_EVENT))
        self.assertEqual(signature, "TicketMinted(uint256,address,uint256,string,uint8)")

    def test_rarity_labels(self):
        self.assertEqual(abi.rarity_label(3), "legendary")
        self.assertEqual(abi.rarity_label(None), "common")
        self.assertEqual(abi.rarity_label(42), "common")

    def test_ticket_info_tuple_is_named(self):
        info = abi.ticket_info_as_dict(tuple(range(13)))
        self.assertEqual(info["externalId"], 1)
        self.assertEqual(info["eventId"], 10)


class ChainClientDecodeTest(TestCase):
    def setUp(self):
        self.client = ChainClient(ChainConfig(contract_address=CONTRACT_ADDRESS), w3=Web3())
        event_abi = abi.find_event_abi(abi.MINT_EVENT)
        self.topics = [
            bytes(Web3.keccak(text=abi.event_signature(event_abi))),
            abi_encode(["uint256"], [7]),
            abi_encode(["address"], [Web3.to_checksum_address(WALLET)]),
            abi_encode(["uint256"], [55]),
        ]

    def log(self, data, address=CONTRACT_ADDRESS, topics=None):
        return {
            "address": Web3.to_checksum_address(address),
            "topics": topics or self.topics,
            "data": data,
            "logIndex": 0,
            "transactionIndex": 0,
            "transactionHash": b"\x11" * 32,
            "blockHash": b"\x22" * 32,
            "blockNumber": 10,
        }

    def test_decodes_indexed_and_data_fields(self):
        receipt = {"logs": [self.log(abi_encode(["string", "uint8"], ["abc123", 2]))]}
        events = self.client.decode_events(abi.MINT_EVENT, receipt)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["tokenId"], 7)
        self.assertEqual(events[0]["eventId"], 55)
        self.assertEqual(events[0]["externalId"], "abc123")
        self.assertEqual(events[0]["rarity"], 2)
        self.assertEqual(events[0]["to"].lower(), WALLET)

    def test_skips_logs_from_other_contracts_and_events(self):
        other_topics = [bytes(Web3.keccak(text="Transfer(address,address,uint256)"))] + self.topics[1:]
        receipt = {
            "logs": [
                self.log(abi_encode(["string", "uint8"], ["x", 0]), address=OTHER_WALLET),
                self.log(b"", topics=other_topics),
            ]
        }
        self.assertEqual(self.client.decode_events(abi.MINT_EVENT, receipt), [])

    def test_undecodable_data_keeps_indexed_fields(self):
        receipt = {"logs": [self.log(b"\x00")]}
        events = self.client.decode_events(abi.MINT_EVENT, receipt)
        self.assertEqual(events[0]["tokenId"], 7)
        self.assertEqual(events[0]["eventId"], 55)
        self.assertNotIn("rarity", events[0])

    def test_missing_key_is_a_configuration_error(self):
        with self.assertRaises(ChainConfigurationError):
            self.client.signer_address

    def test_missing_contract_address_is_a_configuration_error(self):
        client = ChainClient(ChainConfig(), w3=Web3())
        with self.assertRaises(ChainConfigurationError):
            client.contract_address

    @override_settings(BLOCKCHAIN_NETWORK="mainnet")
    def test_unknown_network_is_rejected(self):
        with self.assertRaises(ChainConfigurationError):
            ChainConfig.from_settings()


class ChainClientSubmitTest(TestCase):
    SIGNER = "0x" + "5a" * 20
    TX_HASH = b"\x12" * 32

    def setUp(self):
        cache.clear()
        self.w3 = mock.MagicMock()
        self.w3.eth.chain_id = 11155111
        self.w3.eth.get_transaction_count.return_value = 7
        self.w3.eth.send_raw_transaction.return_value = self.TX_HASH
        self.w3.eth.wait_for_transaction_receipt.return_value = {
            "transactionHash": self.TX_HASH,
            "status": 1,
            "blockNumber": 5,
            "logs": [],
        }
        self.fn = self.w3.eth.contract.return_value.functions.mintTicket.return_value
        self.fn.build_transaction.return_value = {"nonce": 7, "chainId": 11155111, "data": "0x"}
        self.signer = mock.Mock(address=self.SIGNER)
        self.signer.sign_transaction.return_value = mock.Mock(raw_transaction=b"\xf8signed")
        config = ChainConfig(contract_address=CONTRACT_ADDRESS, tx_timeout=120, signer_lock_wait=5)
        self.client = ChainClient(config, w3=self.w3)
        self.lock_key = f"{SIGNER_LOCK_PREFIX}:{self.SIGNER}"

    def submit(self):
        return self.client.submit_transaction(abi.MINT_METHOD, [WALLET, 1], signer=self.signer)

    def test_builds_with_pending_nonce_and_chain_id(self):
        receipt = self.submit()

        self.w3.eth.get_transaction_count.assert_called_once_with(self.SIGNER, "pending")
        self.fn.build_transaction.assert_called_once_with({"from": self.SIGNER, "nonce": 7, "chainId": 11155111})
        self.signer.sign_transaction.assert_called_once_with(self.fn.build_transaction.return_value)
        self.w3.eth.send_raw_transaction.assert_called_once_with(b"\xf8signed")
        self.assertEqual(self.w3.eth.wait_for_transaction_receipt.call_args.kwargs["timeout"], 120)
        self.assertTrue(receipt.status)
        self.assertEqual(receipt.tx_hash, "0x" + "12" * 32)
        self.assertEqual(receipt.block_number, 5)
        self.assertIsNone(cache.get(self.lock_key))

    def test_failed_receipt_has_false_status(self):
        self.w3.eth.wait_for_transaction_receipt.return_value = {
            "transactionHash": self.TX_HASH,
            "status": 0,
            "blockNumber": 5,
            "logs": [],
        }
        self.assertIs(self.submit().status, False)

    def test_receipt_timeout_is_retryable(self):
        self.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
        with self.assertRaises(ChainTimeoutError) as ctx:
            self.submit()
        self.assertIsInstance(ctx.exception, ChainTransientError)
        self.assertIsNone(cache.get(self.lock_key))

    def test_contract_revert_on_build(self):
        self.fn.build_transaction.side_effect = ContractLogicError("execution reverted: not owner")
        with self.assertRaises(ContractRevertError):
            self.submit()
        self.w3.eth.send_raw_transaction.assert_not_called()

    def test_connection_error_is_transient(self):
        self.w3.eth.get_transaction_count.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(ChainTransientError) as ctx:
            self.submit()
        self.assertNotIsInstance(ctx.exception, ChainTimeoutError)

    def test_waits_for_signer_held_by_another_process(self):
        cache.add(self.lock_key, "other-process", timeout=60)

        def other_process_finishes(seconds):
            self.w3.eth.send_raw_transaction.assert_not_called()
            cache.delete(self.lock_key)

        with mock.patch("apps.blockchain.client.time.sleep", side_effect=other_process_finishes) as sleep:
            receipt = self.submit()

        sleep.assert_called_once()
        self.assertTrue(receipt.status)
        self.w3.eth.send_raw_transaction.assert_called_once()

    def test_gives_up_when_signer_stays_busy(self):
        self.client.config.signer_lock_wait = 0
        cache.add(self.lock_key, "other-process", timeout=60)
        with self.assertRaises(ChainTransientError):
            self.submit()
        self.w3.eth.get_transaction_count.assert_not_called()
        self.assertEqual(cache.get(self.lock_key), "other-process")

    def test_unknown_transaction_receipt_is_none(self):
        self.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("unknown")
        self.assertIsNone(self.client.get_transaction_receipt("0x" + "99" * 32))


class SyncEngineTest(SyncFixturesMixin, TestCase):
    def test_mints_eligible_ticket_once(self):
        ticket = self.make_ticket()

        outcome = self.engine().mint_if_eligible(ticket.id)

        self.assertEqual(outcome.status, MintStatus.MINTED)
        self.assertEqual(outcome.token_id, "1")
        self.assertEqual(outcome.rarity, "rare")
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.Status.MINTED)
        self.assertEqual(ticket.token_id, "1")
        self.assertEqual(ticket.tx_hash, outcome.tx_hash)
        self.assertEqual(ticket.rarity, "rare")
        self.assertEqual(self.notified, [ticket.id])

        again = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(again.status, MintStatus.ALREADY_MINTED)
        self.assertEqual(again.token_id, "1")
        self.assertEqual(len(self.client_chain.submitted), 1)

    def test_worked_example(self):
        ticket = self.make_ticket(start_at=self.now - timedelta(seconds=1))
        fake = FakeChainClient(rarity=0)
        fake.next_token_id = 42

        outcome = self.engine(fake).mint_if_eligible(ticket.id)

        ticket.refresh_from_db()
        self.assertEqual((ticket.status, ticket.token_id, ticket.rarity), ("minted", "42", "common"))
        self.assertEqual(outcome.tx_hash, ticket.tx_hash)

    def test_mint_arguments(self):
        ticket = self.make_ticket(description=None, banner_url=None)
        self.engine().mint_if_eligible(ticket.id)

        method, args = self.client_chain.submitted[0]
        self.assertEqual(method, "mintTicket")
        self.assertEqual(args[0], Web3.to_checksum_address(WALLET))
        self.assertEqual(args[1], to_chain_id(ticket.id))
        self.assertEqual(args[2], ticket.external_id)
        self.assertEqual(args[4], "")
        self.assertEqual(args[6], int(ticket.start_at.timestamp()))
        self.assertEqual(args[10], to_chain_id(self.event.id))
        self.assertEqual(args[11], "Summer Fest")
        self.assertEqual(args[13], f"https://tickets.example.com/metadata/{ticket.external_id}")

    def test_ticket_without_event_mints_with_zero_event_id(self):
        ticket = self.make_ticket(event=None)
        outcome = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(outcome.status, MintStatus.MINTED)
        args = self.client_chain.submitted[0][1]
        self.assertEqual(args[10], 0)
        self.assertEqual(args[11], "")

    def test_not_yet_eligible_before_start(self):
        ticket = self.make_ticket(start_at=self.now + timedelta(minutes=30))
        outcome = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(outcome.status, MintStatus.NOT_YET_ELIGIBLE)
        self.assertEqual(outcome.wait, timedelta(minutes=30))
        self.assertEqual(outcome.as_dict()["wait_seconds"], 1800)
        self.assertEqual(self.client_chain.submitted, [])

    def test_rejections(self):
        no_wallet = User.objects.create_user(email="nowallet@example.com")
        bad_wallet = User.objects.create_user(email="bad@example.com", wallet_address="0x1234")
        cases = {
            "no wallet": self.make_ticket(owner=no_wallet),
            "invalid wallet address": self.make_ticket(owner=bad_wallet),
            "ticket deleted": self.make_ticket(is_deleted=True),
        }
        for reason, ticket in cases.items():
            with self.subTest(reason=reason):
                outcome = self.engine().mint_if_eligible(ticket.id)
                self.assertEqual(outcome.status, MintStatus.REJECTED)
                self.assertEqual(outcome.reason, reason)

        canceled = self.make_ticket(status=Ticket.Status.CANCELED)
        outcome = self.engine().mint_if_eligible(canceled.id)
        self.assertEqual(outcome.status, MintStatus.REJECTED)
        self.assertIn("canceled", outcome.reason)
        self.assertEqual(self.client_chain.submitted, [])

    def test_unknown_and_malformed_ids(self):
        with self.assertRaises(TicketNotFound):
            self.engine().mint_if_eligible("5f0c8a9e-0000-4000-8000-000000000000")
        with self.assertRaises(TicketNotFound):
            self.engine().mint_if_eligible("not-a-uuid")

    def test_contract_not_deployed(self):
        ticket = self.make_ticket()
        with self.assertRaises(ChainConfigurationError):
            self.engine(FakeChainClient(code=b"")).mint_if_eligible(ticket.id)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.Status.VALID)
        self.assertIsNone(ticket.token_id)

    def test_signer_must_own_contract(self):
        ticket = self.make_ticket()
        fake = FakeChainClient(owner=OTHER_WALLET)
        with self.assertRaises(ChainConfigurationError):
            self.engine(fake).mint_if_eligible(ticket.id)
        self.assertEqual(fake.submitted, [])

    def test_reverted_transaction_leaves_ticket_untouched(self):
        ticket = self.make_ticket()
        with self.assertRaises(ContractRevertError):
            self.engine(FakeChainClient(receipt_status=False)).mint_if_eligible(ticket.id)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.Status.VALID)
        self.assertIsNone(ticket.tx_hash)

    def test_missing_mint_event_leaves_ticket_untouched(self):
        ticket = self.make_ticket()
        with self.assertRaises(MissingMintEventError):
            self.engine(FakeChainClient(emit_event=False)).mint_if_eligible(ticket.id)
        ticket.refresh_from_db()
        self.assertIsNone(ticket.token_id)

    def test_transient_failure_then_retry(self):
        ticket = self.make_ticket()
        self.client_chain.fail_for.add(ticket.external_id)
        with self.assertRaises(ChainTransientError):
            self.engine().mint_if_eligible(ticket.id)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.Status.VALID)

        self.client_chain.fail_for.clear()
        outcome = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(outcome.status, MintStatus.MINTED)
        # the lock from the failed attempt was released
        self.assertIsNone(cache.get(f"{MINT_LOCK_PREFIX}:{ticket.id}"))

    def test_notifier_failure_does_not_undo_mint(self):
        ticket = self.make_ticket()

        def broken_notifier(ticket_id):
            raise RuntimeError("webhook exploded")

        engine = SyncEngine(self.client_chain, notifier=broken_notifier, clock=lambda: self.now)
        outcome = engine.mint_if_eligible(ticket.id)
        self.assertEqual(outcome.status, MintStatus.MINTED)
        ticket.refresh_from_db()
        self.assertTrue(ticket.is_minted)

    def test_mint_in_progress_elsewhere(self):
        ticket = self.make_ticket()
        expires = int((self.now + timedelta(seconds=90)).timestamp())
        cache.add(f"{MINT_LOCK_PREFIX}:{ticket.id}", f"other-worker:{expires}", timeout=90)
        outcome = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(outcome.status, MintStatus.NOT_YET_ELIGIBLE)
        self.assertEqual(outcome.code, NotReadyCode.MINT_IN_PROGRESS)
        self.assertEqual(outcome.reason, "mint already in progress")
        self.assertIn(outcome.as_dict()["wait_seconds"], (89, 90))
        self.assertEqual(self.client_chain.submitted, [])

    def test_start_date_and_busy_lock_have_distinct_codes(self):
        ticket = self.make_ticket(start_at=self.now + timedelta(minutes=5))
        outcome = self.engine().mint_if_eligible(ticket.id)
        self.assertEqual(outcome.as_dict()["code"], "not_started")
        self.assertEqual(outcome.as_dict()["wait_seconds"], 300)

    def test_lost_race_reports_existing_mint(self):
        ticket = self.make_ticket()

        def concurrent_commit(args):
            ticket_store.commit_mint(ticket.id, "999", "0x" + "ee" * 32, "epic")

        self.client_chain.on_submit = concurrent_commit
        outcome = self.engine().mint_if_eligible(ticket.id)

        self.assertEqual(outcome.status, MintStatus.ALREADY_MINTED)
        self.assertEqual(outcome.token_id, "999")
        ticket.refresh_from_db()
        self.assertEqual(ticket.token_id, "999")
        self.assertEqual(self.notified, [])

    def test_rarity_read_back_when_event_lacks_it(self):
        ticket = self.make_ticket()
        fake = FakeChainClient(rarity=3)
        original = fake.decode_events

        def without_rarity(event_name, receipt):
            return [{k: v for k, v in event.items() if k != "rarity"} for event in original(event_name, receipt)]

        fake.decode_events = without_rarity
        outcome = self.engine(fake).mint_if_eligible(ticket.id)
        self.assertEqual(outcome.rarity, "legendary")

    def test_rarity_defaults_to_common_when_unreadable(self):
        ticket = self.make_ticket()
        fake = FakeChainClient()
        fake.decode_events = lambda event_name, receipt: [{"tokenId": 77}]
        outcome = self.engine(fake).mint_if_eligible(ticket.id)
        self.assertEqual(outcome.token_id, "77")
        self.assertEqual(outcome.rarity, "common")


class ProcessAllPendingTest(SyncFixturesMixin, TestCase):
    def test_sweep_summary(self):
        self.make_ticket()
        self.make_ticket(start_at=self.now + timedelta(hours=1))
        self.make_ticket(owner=User.objects.create_user(email="nowallet@example.com"))
        self.make_ticket(status=Ticket.Status.CANCELED)

        summary = self.engine().process_all_pending()

        self.assertEqual(summary["processed"], 2)
        self.assertEqual(summary["minted"], 1)
        self.assertEqual(summary["rejected"], 1)
        self.assertEqual(summary["failed"], 0)

    def test_one_failure_does_not_stop_the_sweep(self):
        first = self.make_ticket(start_at=self.now - timedelta(hours=3))
        middle = self.make_ticket(start_at=self.now - timedelta(hours=2))
        third = self.make_ticket(start_at=self.now - timedelta(hours=1))
        self.client_chain.fail_for.add(middle.external_id)

        summary = self.engine().process_all_pending()

        self.assertEqual(summary["failed"], 1)
        self.assertEqual(summary["minted"], 2)
        for ticket, minted in ((first, True), (middle, False), (third, True)):
            ticket.refresh_from_db()
            self.assertEqual(ticket.is_minted, minted)

    def test_respects_limit_and_start_order(self):
        late = self.make_ticket(start_at=self.now - timedelta(minutes=5))
        early = self.make_ticket(start_at=self.now - timedelta(hours=5))

        summary = self.engine().process_all_pending(limit=1)

        self.assertEqual(summary["processed"], 1)
        early.refresh_from_db()
        late.refresh_from_db()
        self.assertTrue(early.is_minted)
        self.assertFalse(late.is_minted)

    def test_misconfiguration_is_reported_as_critical(self):
        self.make_ticket()
        self.make_ticket()
        with self.assertLogs("apps.blockchain.services", level="CRITICAL"):
            summary = self.engine(FakeChainClient(code=b"")).process_all_pending()
        self.assertEqual(summary["failed"], 2)


class LedgerReconcilerTest(SyncFixturesMixin, TestCase):
    def test_verified_after_mint(self):
        ticket = self.make_ticket()
        self.engine().mint_if_eligible(ticket.id)

        result = LedgerReconciler(self.client_chain).verify_by_id(ticket.id)

        self.assertTrue(result.verified)
        self.assertTrue(result.owner_matches)
        self.assertTrue(result.ticket_code_matches)
        self.assertTrue(result.event_id_matches)
        self.assertEqual(result.on_chain.rarity, "rare")
        self.assertEqual(result.on_chain.event_name, "Summer Fest")
        self.assertEqual(result.as_dict()["comparison"]["mismatches"], [])

    def test_owner_changed_off_chain(self):
        ticket = self.make_ticket()
        self.engine().mint_if_eligible(ticket.id)
        User.objects.filter(id=self.holder.id).update(wallet_address=OTHER_WALLET)

        result = LedgerReconciler(self.client_chain).verify_by_id(ticket.id)

        self.assertFalse(result.verified)
        self.assertFalse(result.owner_matches)
        self.assertEqual([m.field for m in result.mismatches], ["owner"])

    def test_ticket_without_event_verifies_against_zero(self):
        ticket = self.make_ticket(event=None)
        self.engine().mint_if_eligible(ticket.id)
        result = LedgerReconciler(self.client_chain).verify_by_id(ticket.id)
        self.assertTrue(result.event_id_matches)
        self.assertTrue(result.verified)

    def test_not_minted_yet(self):
        ticket = self.make_ticket()
        result = LedgerReconciler(self.client_chain).verify(ticket)
        self.assertFalse(result.exists)
        self.assertFalse(result.verified)
        self.assertIsNone(result.on_chain)

    def test_token_missing_on_chain(self):
        ticket = self.make_ticket()
        Ticket.objects.filter(id=ticket.id).update(status=Ticket.Status.MINTED, token_id="42")
        result = LedgerReconciler(self.client_chain).verify_by_id(ticket.id)
        self.assertFalse(result.exists)
        self.assertIn("ERC721NonexistentToken", result.error)

    def test_unknown_ticket(self):
        with self.assertRaises(TicketNotFound):
            LedgerReconciler(self.client_chain).verify_by_id("5f0c8a9e-0000-4000-8000-000000000000")


class WebhookTest(SyncFixturesMixin, TestCase):
    def minted_ticket(self):
        ticket = self.make_ticket()
        ticket_store.commit_mint(ticket.id, "5", "0x" + "aa" * 32, "epic")
        return ticket

    @mock.patch("apps.blockchain.webhooks.requests.post")
    def test_posts_confirmation(self, post):
        post.return_value = mock.Mock(status_code=200, text="ok")
        ticket = self.minted_ticket()

        self.assertTrue(send_confirmation_webhook(ticket.id))

        url = post.call_args.args[0]
        body = json.loads(post.call_args.kwargs["data"])
        self.assertEqual(url, "https://org.example.com/postback")
        self.assertEqual(body["ticket"]["tokenId"], "5")
        self.assertEqual(body["ticket"]["rarity"], "epic")
        self.assertEqual(body["event"]["company"]["email"], "org@example.com")
        self.assertEqual(body["user"]["walletAddress"], WALLET)
        self.assertNotIn("X-Signature", post.call_args.kwargs["headers"])

    @override_settings(EVENTS_WEBHOOK_SECRET="s3cret")
    @mock.patch("apps.blockchain.webhooks.requests.post")
    def test_signs_body_when_secret_configured(self, post):
        post.return_value = mock.Mock(status_code=204, text="")
        ticket = self.minted_ticket()

        self.assertTrue(send_confirmation_webhook(ticket.id))

        kwargs = post.call_args.kwargs
        self.assertEqual(kwargs["headers"]["X-Signature"], sign_payload(kwargs["data"]))

    @mock.patch("apps.blockchain.webhooks.requests.post")
    def test_failures_are_swallowed(self, post):
        ticket = self.minted_ticket()

        post.return_value = mock.Mock(status_code=500, text="boom")
        self.assertFalse(send_confirmation_webhook(ticket.id))

        post.side_effect = requests.ConnectionError("refused")
        self.assertFalse(send_confirmation_webhook(ticket.id))

    @mock.patch("apps.blockchain.webhooks.requests.post")
    def test_skipped_without_postback_url(self, post):
        Event.objects.filter(id=self.event.id).update(postback_url=None)
        ticket = self.minted_ticket()
        self.assertFalse(send_confirmation_webhook(ticket.id))
        self.assertFalse(send_confirmation_webhook("5f0c8a9e-0000-4000-8000-000000000000"))
        post.assert_not_called()


class TaskTest(SyncFixturesMixin, TestCase):
    def test_sync_ticket_success(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        with use_chain(self.client_chain), quiet_webhook():
            result = tasks.sync_ticket(str(ticket.id))
        self.assertTrue(result["success"])
        self.assertEqual(result["status"], "minted")
        self.assertEqual(result["token_id"], "1")

    def test_sync_ticket_not_ready(self):
        ticket = self.make_ticket(start_at=timezone.now() + timedelta(hours=1))
        with use_chain(self.client_chain):
            result = tasks.sync_ticket(str(ticket.id))
        self.assertFalse(result["success"])
        self.assertEqual(result["reason"], "not_ready")

    def test_transient_error_is_retried_with_backoff(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        self.client_chain.fail_for.add(ticket.external_id)
        with use_chain(self.client_chain), mock.patch.object(tasks.sync_ticket, "retry", side_effect=Retry()) as retry:
            with self.assertRaises(Retry):
                tasks.sync_ticket(str(ticket.id))
        self.assertEqual(retry.call_args.kwargs["countdown"], 60)
        self.assertIsInstance(retry.call_args.kwargs["exc"], ChainTransientError)

    def test_configuration_error_is_not_retried(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        with use_chain(FakeChainClient(code=b"")), mock.patch.object(tasks.sync_ticket, "retry") as retry:
            with self.assertRaises(ChainConfigurationError):
                tasks.sync_ticket(str(ticket.id))
        retry.assert_not_called()

    def test_schedule_after_event_end(self):
        end = timezone.now() + timedelta(hours=1)
        with mock.patch.object(tasks.sync_ticket, "apply_async") as apply_async:
            countdown = tasks.schedule_ticket_minting("abc", end.isoformat())
        self.assertTrue(3600 + 170 <= countdown <= 3600 + 180)
        apply_async.assert_called_once_with(args=["abc"], countdown=countdown)

    def test_schedule_immediately_without_or_after_end(self):
        with mock.patch.object(tasks.sync_ticket, "apply_async"):
            self.assertEqual(tasks.schedule_ticket_minting("abc", None), 0)
            self.assertEqual(tasks.schedule_ticket_minting("abc", (timezone.now() - timedelta(days=1)).isoformat()), 0)

    def test_process_pending_tickets(self):
        self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        with use_chain(self.client_chain), quiet_webhook():
            summary = tasks.process_pending_tickets()
        self.assertEqual(summary["minted"], 1)


class SyncApiTest(SyncFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.api = APIClient()
        self.staff = User.objects.create_user(email="ops@example.com", is_staff=True)

    def test_process_inline(self):
        self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        self.api.force_authenticate(self.staff)
        with use_chain(self.client_chain), quiet_webhook():
            response = self.api.post("/api/v1/sync/process/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["minted"], 1)

    def test_process_async(self):
        self.api.force_authenticate(self.staff)
        with mock.patch.object(tasks.process_pending_tickets, "delay") as delay:
            delay.return_value = mock.Mock(id="task-1")
            response = self.api.post("/api/v1/sync/process/", {"async": True, "limit": 5}, format="json")
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.data["task_id"], "task-1")
        delay.assert_called_once_with(limit=5)

    def test_process_requires_staff(self):
        self.api.force_authenticate(self.holder)
        response = self.api.post("/api/v1/sync/process/", {}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_misconfigured_chain_answers_503(self):
        self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        self.api.force_authenticate(self.staff)
        with use_chain(FakeChainClient(code=b"")):
            ticket = Ticket.objects.get()
            response = self.api.post(f"/api/v1/tickets/{ticket.id}/sync/", {}, format="json")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["status_code"], 503)

    def test_confirmation_receiver_is_public(self):
        response = APIClient().post("/api/v1/webhooks/confirmation/", {"ticket": {"id": "x"}}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Confirmation received")


class CommandTest(SyncFixturesMixin, TestCase):
    def test_sync_tickets_sweep(self):
        self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        out = StringIO()
        with use_chain(self.client_chain), quiet_webhook():
            call_command("sync_tickets", stdout=out)
        self.assertIn("1 minted", out.getvalue())

    def test_sync_single_ticket(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        out = StringIO()
        with use_chain(self.client_chain), quiet_webhook():
            call_command("sync_tickets", ticket=str(ticket.id), stdout=out)
        self.assertIn("minted token 1", out.getvalue())

    def test_mint_status_reports_issues(self):
        self.make_ticket(owner=User.objects.create_user(email="nowallet@example.com"))
        out = StringIO()
        call_command("mint_status", stdout=out)
        output = out.getvalue()
        self.assertIn("CONTRACT_ADDRESS: MISSING", output)
        self.assertIn("has no wallet", output)

    def test_query_contract(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        with use_chain(self.client_chain), quiet_webhook():
            tasks.sync_ticket(str(ticket.id))
            out = StringIO()
            call_command("query_contract", token_id="1", address=WALLET, list_events=True, stdout=out)
        output = out.getvalue()
        self.assertIn("total minted: 1", output)
        self.assertIn(f"balance of {WALLET}: 1", output)
        self.assertIn(ticket.external_id, output)

    def test_query_contract_transaction_receipt(self):
        ticket = self.make_ticket(start_at=timezone.now() - timedelta(hours=1))
        with use_chain(self.client_chain), quiet_webhook():
            result = tasks.sync_ticket(str(ticket.id))
            out = StringIO()
            call_command("query_contract", tx=result["tx_hash"], stdout=out)
            call_command("query_contract", tx="0x" + "99" * 32, stdout=out)
        output = out.getvalue()
        self.assertIn("status: success", output)
        self.assertIn(f"TicketMinted: token 1 to {Web3.to_checksum_address(WALLET)}", output)
        self.assertIn("not found or not mined yet", output)
