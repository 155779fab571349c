"""
In-memory stand-in for ChainClient.

Behaves like a freshly deployed TicketNFT owned by the system wallet: every
mintTicket call is "mined" at once and stored, so views can read it back.
"""
from .client import Receipt
from .exceptions import ChainTransientError, ContractRevertError

CONTRACT_ADDRESS = "0x" + "c0" * 20
SIGNER_ADDRESS = "0x" + "5a" * 20


class FakeChainClient:
    def __init__(self, owner=SIGNER_ADDRESS, code=b"\x60\x80\x60\x40", rarity=1, emit_event=True, receipt_status=True):
        self.contract_address = CONTRACT_ADDRESS
        self.signer_address = SIGNER_ADDRESS
        self.owner = owner
        self.code = code
        self.rarity = rarity
        self.emit_event = emit_event
        self.receipt_status = receipt_status
        self.submitted = []
        self.tokens = {}
        self.next_token_id = 1
        # external ids whose mint fails with a transient error
        self.fail_for = set()
        self.on_submit = None

    # reads
    def get_code(self, address=None):
        return self.code

    def get_block_number(self):
        return 1000

    def call_view(self, method, args=()):
        if method == "owner":
            return self.owner
        if method == "name":
            return "TicketNFT"
        if method == "symbol":
            return "TKT"
        if method == "balanceOf":
            return sum(1 for token in self.tokens.values() if token["owner"] == str(args[0]).lower())
        token = self.tokens.get(int(args[0]))
        if token is None:
            raise ContractRevertError(f"{method} reverted: ERC721NonexistentToken({args[0]})")
        if method == "ownerOf":
            return token["owner"]
        if method == "getTicketInfo":
            return token["info"]
        if method == "tokenURI":
            return token["uri"]
        raise AssertionError(f"unexpected view call {method}")

    def query_events(self, event_name, from_block=0, to_block="latest", argument_filters=None):
        return [
            {
                "event": event_name,
                "args": token["event"],
                "block_number": token_id,
                "tx_hash": token["tx_hash"],
                "log_index": 0,
            }
            for token_id, token in sorted(self.tokens.items())
        ]

    def get_transaction_receipt(self, tx_hash):
        for token in self.tokens.values():
            if token["tx_hash"] == tx_hash:
                return token["receipt"]
        return None

    # writes
    def submit_transaction(self, method, args=(), signer=None):
        args = list(args)
        self.submitted.append((method, args))
        (to, ticket_hash, external_id, name, description, banner_url, start_date, amount,
         seat, sector, event_id, event_name, created_at, metadata_uri) = args
        if external_id in self.fail_for:
            raise ChainTransientError(f"{method} failed: connection reset")
        if self.on_submit is not None:
            self.on_submit(args)

        token_id = self.next_token_id
        self.next_token_id += 1
        tx_hash = "0x" + format(token_id, "064x")
        event = {"tokenId": token_id, "to": to, "eventId": event_id, "externalId": external_id, "rarity": self.rarity}
        receipt = Receipt(
            tx_hash=tx_hash,
            status=self.receipt_status,
            block_number=token_id,
            logs=[event] if self.emit_event else [],
        )
        if self.receipt_status:
            self.tokens[token_id] = {
                "owner": to.lower(),
                "uri": metadata_uri,
                "tx_hash": tx_hash,
                "event": event,
                "receipt": receipt,
                "info": (
                    ticket_hash, external_id, name, description, self.rarity, banner_url,
                    start_date, amount, seat, sector, event_id, event_name, created_at,
                ),
            }
        return receipt

    def decode_events(self, event_name, receipt):
        return [dict(log) for log in receipt.logs]
