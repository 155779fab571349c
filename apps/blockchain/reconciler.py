import logging
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional

from apps.events import services as ticket_store
from apps.events.models import Ticket

from . import abi
from .exceptions import ContractError, TicketNotFound
from .hashing import to_chain_id

logger = logging.getLogger(__name__)


@dataclass
class OnChainTicket:
    token_id: str
    exists: bool
    owner: Optional[str] = None
    id: Optional[str] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    rarity: Optional[str] = None
    banner_url: Optional[str] = None
    start_date: Optional[str] = None
    amount: Optional[str] = None
    seat: Optional[str] = None
    sector: Optional[str] = None
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    created_at: Optional[str] = None
    token_uri: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Mismatch:
    field: str
    off_chain: Any
    on_chain: Any


@dataclass
class VerificationResult:
    verified: bool
    exists: bool
    off_chain: dict
    on_chain: Optional[OnChainTicket] = None
    owner_matches: bool = False
    ticket_code_matches: bool = False
    event_id_matches: bool = False
    mismatches: List[Mismatch] = field(default_factory=list)
    error: Optional[str] = None

    def as_dict(self):
        return {
            "verified": self.verified,
            "exists": self.exists,
            "off_chain": self.off_chain,
            "on_chain": asdict(self.on_chain) if self.on_chain else None,
            "comparison": {
                "owner_matches": self.owner_matches,
                "ticket_code_matches": self.ticket_code_matches,
                "event_id_matches": self.event_id_matches,
                "mismatches": [asdict(m) for m in self.mismatches],
            },
            "error": self.error,
        }


def _text(value):
    return None if value is None else str(value)


class LedgerReconciler:
    """Compares a ticket row against the token the contract holds for it."""

    def __init__(self, client):
        self.client = client

    def fetch(self, token_id) -> OnChainTicket:
        token = int(token_id)
        try:
            owner = self.client.call_view("ownerOf", [token])
        except ContractError as exc:
            # ownerOf reverts for tokens that were never minted
            return OnChainTicket(token_id=str(token_id), exists=False, error=str(exc) or "token not found on chain")

        record = OnChainTicket(token_id=str(token_id), exists=True, owner=str(owner).lower())
        try:
            info = abi.ticket_info_as_dict(self.client.call_view("getTicketInfo", [token]))
            record.token_uri = self.client.call_view("tokenURI", [token])
        except ContractError as exc:
            logger.error("Could not read ticket info for token %s: %s", token_id, exc)
            return record

        record.id = _text(info.get("id"))
        record.external_id = info.get("externalId")
        record.name = info.get("name")
        record.description = info.get("description")
        record.rarity = abi.rarity_label(info.get("rarity"))
        record.banner_url = info.get("bannerUrl")
        record.start_date = _text(info.get("startDate"))
        record.amount = _text(info.get("amount"))
        record.seat = info.get("seat")
        record.sector = info.get("sector")
        record.event_id = _text(info.get("eventId"))
        record.event_name = info.get("eventName")
        record.created_at = _text(info.get("createdAt"))
        return record

    def verify(self, ticket) -> VerificationResult:
        off_chain = self._off_chain(ticket)

        if not ticket.token_id:
            return VerificationResult(
                verified=False,
                exists=False,
                off_chain=off_chain,
                mismatches=[Mismatch("token_id", None, None)],
                error="ticket is not on chain yet",
            )

        on_chain = self.fetch(ticket.token_id)
        if not on_chain.exists:
            return VerificationResult(
                verified=False,
                exists=False,
                off_chain=off_chain,
                on_chain=on_chain,
                mismatches=[Mismatch("token_id", ticket.token_id, None)],
                error=on_chain.error,
            )

        mismatches = []

        wallet = off_chain["owner"]["wallet_address"]
        owner_matches = wallet is not None and wallet == on_chain.owner
        if not owner_matches:
            mismatches.append(Mismatch("owner", wallet, on_chain.owner))

        ticket_code_matches = ticket.external_id == on_chain.external_id
        if not ticket_code_matches:
            mismatches.append(Mismatch("external_id", ticket.external_id, on_chain.external_id))

        # the chain only stores the hashed event id; tickets without an event were minted with 0
        expected_event_id = to_chain_id(ticket.event.id) if ticket.event else 0
        on_chain_event_id = int(on_chain.event_id) if on_chain.event_id is not None else None
        event_id_matches = expected_event_id == on_chain_event_id
        if not event_id_matches:
            mismatches.append(Mismatch("event_id", str(expected_event_id), _text(on_chain_event_id)))

        return VerificationResult(
            verified=not mismatches,
            exists=True,
            off_chain=off_chain,
            on_chain=on_chain,
            owner_matches=owner_matches,
            ticket_code_matches=ticket_code_matches,
            event_id_matches=event_id_matches,
            mismatches=mismatches,
        )

    def verify_by_id(self, ticket_id) -> VerificationResult:
        try:
            ticket = ticket_store.get_ticket_for_sync(ticket_id)
        except Ticket.DoesNotExist as exc:
            raise TicketNotFound(f"Ticket {ticket_id} not found") from exc
        return self.verify(ticket)

    @staticmethod
    def _off_chain(ticket):
        wallet = ticket.owner.wallet_address
        return {
            "id": str(ticket.id),
            "token_id": ticket.token_id,
            "external_id": ticket.external_id,
            "status": ticket.status,
            "tx_hash": ticket.tx_hash,
            "owner": {
                "email": ticket.owner.email,
                "wallet_address": wallet.lower() if wallet else None,
            },
            "event": {"id": str(ticket.event.id), "name": ticket.event.title} if ticket.event else None,
        }
