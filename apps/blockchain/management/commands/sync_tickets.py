# blockchain/management/commands/sync_tickets.py
from django.core.management.base import BaseCommand, CommandError

from apps.blockchain.exceptions import SyncError
from apps.blockchain.services import MintStatus, get_sync_engine


class Command(BaseCommand):
    help = "Mint one ticket, or run one sweep over every ticket due for minting"

    def add_arguments(self, parser):
        parser.add_argument("--ticket", help="Mint only this ticket id")
        parser.add_argument("--limit", type=int, default=None, help="Maximum tickets per sweep")

    def handle(self, *args, **options):
        try:
            engine = get_sync_engine()
            if options["ticket"]:
                outcome = engine.mint_if_eligible(options["ticket"])
            else:
                summary = engine.process_all_pending(limit=options["limit"])
                self.stdout.write(self.style.SUCCESS(
                    f"Processed {summary['processed']} tickets: {summary['minted']} minted, "
                    f"{summary['already_minted']} already minted, {summary['not_yet_eligible']} not yet eligible, "
                    f"{summary['rejected']} rejected, {summary['failed']} failed."
                ))
                return
        except SyncError as exc:
            raise CommandError(str(exc)) from exc

        line = f"Ticket {options['ticket']}: {outcome.status.value}"
        if outcome.token_id:
            line += f" token {outcome.token_id} (tx {outcome.tx_hash}, rarity {outcome.rarity})"
        if outcome.reason:
            line += f" ({outcome.reason})"
        style = self.style.SUCCESS if outcome.is_final else self.style.WARNING
        if outcome.status == MintStatus.REJECTED:
            style = self.style.ERROR
        self.stdout.write(style(line))
