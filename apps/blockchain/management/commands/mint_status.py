# blockchain/management/commands/mint_status.py
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone
from web3 import Web3

from apps.events import services as ticket_store
from apps.events.models import Ticket

PENDING_SHOWN = 10
MINTED_SHOWN = 5


class Command(BaseCommand):
    help = "Show blockchain configuration, ticket counts and why pending tickets are not minted"

    def handle(self, *args, **options):
        now = timezone.now()
        issues = []

        self.stdout.write(self.style.MIGRATE_HEADING("Configuration"))
        for name in ("BLOCKCHAIN_NETWORK", "BLOCKCHAIN_RPC_URL", "CONTRACT_ADDRESS", "SYSTEM_WALLET_PRIVATE_KEY"):
            configured = bool(getattr(settings, name, ""))
            self.stdout.write(f"  {name}: {'configured' if configured else 'MISSING'}")
            if not configured:
                issues.append(f"{name} is not configured")

        self.stdout.write(self.style.MIGRATE_HEADING("Tickets by status"))
        for status, total in ticket_store.ticket_status_counts().items():
            self.stdout.write(f"  {status}: {total}")

        self.stdout.write(self.style.MIGRATE_HEADING(f"Pending mint (first {PENDING_SHOWN})"))
        pending = (
            Ticket.objects.alive()
            .filter(status=Ticket.Status.VALID, token_id__isnull=True)
            .select_related("owner")
            .order_by("start_at")[:PENDING_SHOWN]
        )
        for ticket in pending:
            wallet = ticket.owner.wallet_address
            if not wallet:
                state = "no wallet"
                issues.append(f"ticket {ticket.id} owner {ticket.owner.email} has no wallet")
            elif not Web3.is_address(wallet):
                state = "invalid wallet"
                issues.append(f"ticket {ticket.id} owner {ticket.owner.email} has an invalid wallet")
            elif ticket.start_at > now:
                state = f"eligible in {ticket.mint_wait(now)}"
            else:
                state = "eligible now"
            self.stdout.write(f"  {ticket.id} {ticket.name!r} wallet={wallet or '-'} start={ticket.start_at.isoformat()} [{state}]")

        self.stdout.write(self.style.MIGRATE_HEADING(f"Last {MINTED_SHOWN} minted"))
        for ticket in Ticket.objects.minted().order_by("-updated_at")[:MINTED_SHOWN]:
            self.stdout.write(f"  {ticket.id} token={ticket.token_id} tx={ticket.tx_hash} rarity={ticket.rarity}")

        if issues:
            self.stdout.write(self.style.WARNING(f"{len(issues)} issue(s) found:"))
            for issue in issues:
                self.stdout.write(self.style.WARNING(f"  - {issue}"))
        else:
            self.stdout.write(self.style.SUCCESS("No issues found."))
