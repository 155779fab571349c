# blockchain/management/commands/query_contract.py
from django.apps import apps as django_apps
from django.core.management.base import BaseCommand, CommandError
from web3 import Web3

from apps.blockchain import abi
from apps.blockchain.exceptions import SyncError
from apps.blockchain.services import get_reconciler


class Command(BaseCommand):
    help = "Inspect the deployed TicketNFT contract"

    def add_arguments(self, parser):
        parser.add_argument("--token-id", help="Show the on-chain details of one token")
        parser.add_argument("--address", help="Show the token balance of a wallet")
        parser.add_argument("--list-all", action="store_true", help="Show the details of every minted token")
        parser.add_argument("--list-events", action="store_true", help="List TicketMinted events")
        parser.add_argument("--tx", help="Show the receipt and TicketMinted events of a transaction")
        parser.add_argument("--from-block", type=int, default=0)
        parser.add_argument("--to-block", type=int, default=None)

    def handle(self, *args, **options):
        try:
            self._handle(options)
        except SyncError as exc:
            raise CommandError(str(exc)) from exc

    def _handle(self, options):
        client = django_apps.get_app_config("blockchain").chain_client()
        to_block = options["to_block"] if options["to_block"] is not None else "latest"

        self.stdout.write(self.style.MIGRATE_HEADING(f"Contract {client.contract_address}"))
        if not client.get_code():
            raise CommandError(f"No contract deployed at {client.contract_address}")
        self.stdout.write(f"  name: {client.call_view('name')}")
        self.stdout.write(f"  symbol: {client.call_view('symbol')}")
        self.stdout.write(f"  owner: {client.call_view('owner')}")
        self.stdout.write(f"  current block: {client.get_block_number()}")

        minted = client.query_events(abi.MINT_EVENT, from_block=options["from_block"], to_block=to_block)
        self.stdout.write(f"  total minted: {len(minted)}")

        if options["address"]:
            if not Web3.is_address(options["address"]):
                raise CommandError(f"Invalid address: {options['address']}")
            balance = client.call_view("balanceOf", [Web3.to_checksum_address(options["address"])])
            self.stdout.write(f"  balance of {options['address']}: {balance}")

        if options["list_events"]:
            self.stdout.write(self.style.MIGRATE_HEADING(f"{abi.MINT_EVENT} events"))
            for log in minted:
                args = log["args"]
                self.stdout.write(
                    f"  block {log['block_number']} tx {log['tx_hash']}: token {args.get('tokenId')} "
                    f"to {args.get('to')} event {args.get('eventId')} rarity {abi.rarity_label(args.get('rarity'))}"
                )

        if options["tx"]:
            self._print_transaction(client, options["tx"])

        token_ids = []
        if options["token_id"]:
            token_ids.append(options["token_id"])
        if options["list_all"]:
            token_ids.extend(str(log["args"]["tokenId"]) for log in minted)

        reconciler = get_reconciler()
        for token_id in token_ids:
            self._print_token(reconciler.fetch(token_id))

    def _print_transaction(self, client, tx_hash):
        self.stdout.write(self.style.MIGRATE_HEADING(f"Transaction {tx_hash}"))
        receipt = client.get_transaction_receipt(tx_hash)
        if receipt is None:
            self.stdout.write(self.style.WARNING("  not found or not mined yet"))
            return
        self.stdout.write(f"  status: {'success' if receipt.status else 'reverted'}")
        self.stdout.write(f"  block: {receipt.block_number}")
        for event in client.decode_events(abi.MINT_EVENT, receipt):
            self.stdout.write(
                f"  {abi.MINT_EVENT}: token {event.get('tokenId')} to {event.get('to')} "
                f"rarity {abi.rarity_label(event.get('rarity'))}"
            )

    def _print_token(self, token):
        self.stdout.write(self.style.MIGRATE_HEADING(f"Token {token.token_id}"))
        if not token.exists:
            self.stdout.write(self.style.WARNING(f"  does not exist ({token.error})"))
            return
        for label, value in (
            ("owner", token.owner),
            ("external id", token.external_id),
            ("name", token.name),
            ("rarity", token.rarity),
            ("event", f"{token.event_name} ({token.event_id})"),
            ("seat", token.seat),
            ("sector", token.sector),
            ("start date", token.start_date),
            ("token uri", token.token_uri),
        ):
            self.stdout.write(f"  {label}: {value}")
