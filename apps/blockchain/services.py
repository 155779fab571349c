"""
Blockchain sync engine.

Mints tickets recorded as `valid` in the database as TicketNFT tokens, exactly once.

Nothing is written to the ticket before the chain confirms the mint; the outcome is
committed by a single conditional update. A crash or error anywhere before that
leaves the ticket `valid` and unminted, so the next sweep simply tries again.
"""
import enum
import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Optional

from django.apps import apps as django_apps
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from web3 import Web3

from apps.events import services as ticket_store
from apps.events.models import Ticket

from . import abi
from .exceptions import ChainConfigurationError, MissingMintEventError, ContractRevertError, TicketNotFound
from .hashing import to_chain_id
from .webhooks import send_confirmation_webhook

logger = logging.getLogger(__name__)

MINT_LOCK_PREFIX = "blockchain:mint-lock"


class MintStatus(str, enum.Enum):
    ALREADY_MINTED = "already_minted"
    MINTED = "minted"
    NOT_YET_ELIGIBLE = "not_yet_eligible"
    REJECTED = "rejected"


class NotReadyCode(str, enum.Enum):
    NOT_STARTED = "not_started"
    MINT_IN_PROGRESS = "mint_in_progress"


@dataclass
class MintOutcome:
    status: MintStatus
    token_id: Optional[str] = None
    tx_hash: Optional[str] = None
    rarity: Optional[str] = None
    reason: Optional[str] = None
    wait: Optional[timedelta] = None
    code: Optional[NotReadyCode] = None

    @classmethod
    def already_minted(cls, ticket):
        return cls(MintStatus.ALREADY_MINTED, token_id=ticket.token_id, tx_hash=ticket.tx_hash, rarity=ticket.rarity)

    @classmethod
    def minted(cls, token_id, tx_hash, rarity):
        return cls(MintStatus.MINTED, token_id=token_id, tx_hash=tx_hash, rarity=rarity)

    @classmethod
    def not_yet_eligible(cls, reason, wait=None, code=NotReadyCode.NOT_STARTED):
        return cls(MintStatus.NOT_YET_ELIGIBLE, reason=reason, wait=wait, code=code)

    @classmethod
    def rejected(cls, reason):
        return cls(MintStatus.REJECTED, reason=reason)

    @property
    def is_final(self):
        """True when no later attempt can change the result."""
        return self.status in (MintStatus.ALREADY_MINTED, MintStatus.MINTED)

    def as_dict(self):
        return {
            "status": self.status.value,
            "token_id": self.token_id,
            "tx_hash": self.tx_hash,
            "rarity": self.rarity,
            "reason": self.reason,
            "code": self.code.value if self.code is not None else None,
            "wait_seconds": int(self.wait.total_seconds()) if self.wait is not None else None,
        }


class SyncEngine:
    """Decides whether a ticket may be minted, mints it, and records the outcome."""

    def __init__(self, client, notifier=send_confirmation_webhook, clock=timezone.now):
        self.client = client
        self.notifier = notifier
        self.clock = clock

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------
    def mint_if_eligible(self, ticket_id) -> MintOutcome:
        ticket = self._load(ticket_id)

        outcome = self._check_eligibility(ticket)
        if outcome is not None:
            return outcome

        lock_key = f"{MINT_LOCK_PREFIX}:{ticket.id}"
        lock_timeout = getattr(settings, "BLOCKCHAIN_MINT_LOCK_TIMEOUT", 600)
        # the value carries its own expiry so a waiting caller can learn how long the lock may still be held
        expires_at = self.clock() + timedelta(seconds=lock_timeout)
        lock_token = f"{uuid.uuid4().hex}:{int(expires_at.timestamp())}"
        if not cache.add(lock_key, lock_token, timeout=lock_timeout):
            logger.info("Ticket %s is already being minted by another worker", ticket.id)
            return MintOutcome.not_yet_eligible(
                "mint already in progress",
                wait=self._lock_wait(cache.get(lock_key)),
                code=NotReadyCode.MINT_IN_PROGRESS,
            )

        try:
            # re-read under the lock: a concurrent worker may have finished meanwhile
            ticket = self._load(ticket.id)
            outcome = self._check_eligibility(ticket)
            if outcome is not None:
                return outcome
            return self._mint(ticket)
        finally:
            if cache.get(lock_key) == lock_token:
                cache.delete(lock_key)

    def process_all_pending(self, limit=None) -> dict:
        """Sweep: try every currently eligible ticket, oldest start date first.

        One failing ticket never stops the pass; its error is logged and the sweep
        moves on.
        """
        limit = limit or getattr(settings, "BLOCKCHAIN_SYNC_BATCH_SIZE", 10)
        ticket_ids = ticket_store.pending_mint_ticket_ids(now=self.clock(), limit=limit)

        summary = Counter({status.value: 0 for status in MintStatus})
        summary["failed"] = 0
        config_failures = 0

        for ticket_id in ticket_ids:
            try:
                outcome = self.mint_if_eligible(ticket_id)
            except ChainConfigurationError as exc:
                config_failures += 1
                summary["failed"] += 1
                logger.error("Configuration error while minting ticket %s: %s", ticket_id, exc)
                continue
            except Exception:
                summary["failed"] += 1
                logger.exception("Error processing ticket %s", ticket_id)
                continue

            summary[outcome.status.value] += 1
            if outcome.status == MintStatus.NOT_YET_ELIGIBLE:
                logger.info("Ticket %s: %s", ticket_id, outcome.reason)

        if ticket_ids and config_failures == len(ticket_ids):
            logger.critical(
                "Every ticket in the sweep failed with a configuration error; check CONTRACT_ADDRESS, "
                "SYSTEM_WALLET_PRIVATE_KEY and BLOCKCHAIN_RPC_URL"
            )

        result = dict(summary)
        result["processed"] = len(ticket_ids)
        return result

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------
    def _load(self, ticket_id):
        try:
            return ticket_store.get_ticket_for_sync(ticket_id)
        except Ticket.DoesNotExist as exc:
            raise TicketNotFound(f"Ticket {ticket_id} not found") from exc

    def _lock_wait(self, lock_value) -> Optional[timedelta]:
        """Time left until a held mint lock expires, or None when it is already gone."""
        if not lock_value:
            return None
        _, _, expires = str(lock_value).rpartition(":")
        try:
            expires_at = datetime.fromtimestamp(int(expires), tz=dt_timezone.utc)
        except ValueError:
            return None
        return max(expires_at - self.clock(), timedelta(0))

    def _check_eligibility(self, ticket) -> Optional[MintOutcome]:
        if ticket.status == Ticket.Status.MINTED:
            return MintOutcome.already_minted(ticket)
        if ticket.status != Ticket.Status.VALID:
            return MintOutcome.rejected(f"ticket is not valid for minting (status: {ticket.status})")
        if ticket.is_deleted:
            return MintOutcome.rejected("ticket deleted")

        now = self.clock()
        if now < ticket.start_at:
            return MintOutcome.not_yet_eligible(
                f"minting allowed after {ticket.start_at.isoformat()}",
                wait=ticket.mint_wait(now),
            )

        wallet = ticket.owner.wallet_address
        if not wallet:
            return MintOutcome.rejected("no wallet")
        if not Web3.is_address(wallet):
            return MintOutcome.rejected("invalid wallet address")
        return None

    def _ensure_contract_ready(self):
        address = self.client.contract_address
        if not self.client.get_code(address):
            raise ChainConfigurationError(f"No contract deployed at {address}")

        owner = self.client.call_view("owner")
        signer = self.client.signer_address
        if str(owner).lower() != signer.lower():
            raise ChainConfigurationError(
                f"System wallet {signer} is not the contract owner (owner is {owner}); "
                "configure SYSTEM_WALLET_PRIVATE_KEY with the deployer key"
            )

    def mint_arguments(self, ticket):
        event = ticket.event
        base_url = getattr(settings, "TICKET_METADATA_BASE_URL", "").rstrip("/")
        return [
            Web3.to_checksum_address(ticket.owner.wallet_address),
            to_chain_id(ticket.id),
            ticket.external_id,
            ticket.name,
            ticket.description or "",
            ticket.banner_url or "",
            int(ticket.start_at.timestamp()),
            ticket.amount or 1,
            ticket.seat or "",
            ticket.sector or "",
            to_chain_id(event.id) if event else 0,
            event.title if event else "",
            int(ticket.created_at.timestamp()),
            f"{base_url}/{ticket.external_id}",
        ]

    def _mint(self, ticket) -> MintOutcome:
        self._ensure_contract_ready()

        receipt = self.client.submit_transaction(abi.MINT_METHOD, self.mint_arguments(ticket))
        if not receipt.status:
            raise ContractRevertError(f"Mint transaction {receipt.tx_hash} for ticket {ticket.id} reverted")

        events = self.client.decode_events(abi.MINT_EVENT, receipt)
        if not events or events[0].get("tokenId") is None:
            raise MissingMintEventError(
                f"{abi.MINT_EVENT} not found in transaction {receipt.tx_hash} for ticket {ticket.id}"
            )
        minted = events[0]
        token_id = str(int(minted["tokenId"]))
        rarity = self._resolve_rarity(token_id, minted.get("rarity"))

        if not ticket_store.commit_mint(ticket.id, token_id, receipt.tx_hash, rarity):
            return self._lost_race(ticket.id, token_id, receipt.tx_hash)

        logger.info("Ticket %s minted as token %s (tx %s, rarity %s)", ticket.id, token_id, receipt.tx_hash, rarity)

        try:
            self.notifier(ticket.id)
        except Exception:
            logger.exception("Confirmation webhook failed for ticket %s", ticket.id)

        return MintOutcome.minted(token_id, receipt.tx_hash, rarity)

    def _resolve_rarity(self, token_id, emitted):
        if emitted is not None:
            return abi.rarity_label(emitted)
        try:
            info = abi.ticket_info_as_dict(self.client.call_view("getTicketInfo", [int(token_id)]))
            return abi.rarity_label(info.get("rarity"))
        except Exception as exc:
            logger.warning(
                "Could not read rarity for token %s, defaulting to %s: %s", token_id, abi.DEFAULT_RARITY, exc
            )
            return abi.DEFAULT_RARITY

    def _lost_race(self, ticket_id, token_id, tx_hash) -> MintOutcome:
        current = self._load(ticket_id)
        logger.error(
            "Ticket %s changed while token %s (tx %s) was being minted; ticket is now %s with token %s",
            ticket_id,
            token_id,
            tx_hash,
            current.status,
            current.token_id,
        )
        if current.status == Ticket.Status.MINTED:
            return MintOutcome.already_minted(current)
        return MintOutcome.rejected(f"ticket became {current.status} during mint")


def get_sync_engine(**kwargs) -> SyncEngine:
    client = django_apps.get_app_config("blockchain").chain_client()
    return SyncEngine(client, **kwargs)


def get_reconciler():
    from .reconciler import LedgerReconciler

    return LedgerReconciler(django_apps.get_app_config("blockchain").chain_client())
