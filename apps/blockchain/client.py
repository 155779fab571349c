"""
Chain client for the TicketNFT contract.

Thin wrapper over web3.py for the one contract this backend talks to:
- reads: get_code, call_view, query_events, receipts
- writes: submit_transaction (locally signed, waits for the receipt)
- decode_events: log decoding driven by the static ABI in `abi.py`

Provider failures are translated into the `exceptions` taxonomy so callers can
tell "retry later" from "fix the configuration" from "the contract said no".
"""

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests
from django.conf import settings
from django.core.cache import cache
from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
    Web3ValidationError,
)

from . import abi
from .exceptions import (
    ChainConfigurationError,
    ChainTimeoutError,
    ChainTransientError,
    ContractError,
    ContractRevertError,
)

logger = logging.getLogger(__name__)

SUPPORTED_NETWORKS = ("sepolia", "polygon", "polygon-mumbai", "localhost")

SIGNER_LOCK_PREFIX = "blockchain:signer-lock"


@contextmanager
def signer_lock(address: str, timeout: int, wait: float, poll_interval: float = 0.5):
    """Hold the lock that serializes every transaction sent from `address`.

    The lock lives in the shared cache (Redis in production), so web workers,
    Celery workers and management commands all queue on the same key. `timeout`
    caps how long a crashed holder blocks the others; `wait` caps how long we
    queue before giving up with a retryable error.
    """
    key = f"{SIGNER_LOCK_PREFIX}:{address.lower()}"
    token = uuid.uuid4().hex
    deadline = time.monotonic() + wait
    while not cache.add(key, token, timeout=timeout):
        if time.monotonic() >= deadline:
            raise ChainTransientError(f"signer {address} is busy; gave up waiting after {wait}s")
        time.sleep(poll_interval)
    try:
        yield
    finally:
        if cache.get(key) == token:
            cache.delete(key)


@dataclass
class ChainConfig:
    """Connection and signing settings for the TicketNFT contract."""
    network: str = "sepolia"
    rpc_url: str = "http://127.0.0.1:8545"
    contract_address: str = ""
    private_key: str = ""
    rpc_timeout: int = 30
    tx_timeout: int = 180
    poll_latency: float = 2.0
    signer_lock_wait: float = 300.0

    @classmethod
    def from_settings(cls) -> "ChainConfig":
        network = (getattr(settings, "BLOCKCHAIN_NETWORK", "") or "sepolia").strip().lower()
        if network not in SUPPORTED_NETWORKS:
            raise ChainConfigurationError(
                f"Unsupported network {network!r}; expected one of {', '.join(SUPPORTED_NETWORKS)}"
            )
        rpc_url = getattr(settings, "BLOCKCHAIN_RPC_URL", "")
        if not rpc_url:
            raise ChainConfigurationError("BLOCKCHAIN_RPC_URL is not configured")
        return cls(
            network=network,
            rpc_url=rpc_url,
            contract_address=getattr(settings, "CONTRACT_ADDRESS", "") or "",
            private_key=getattr(settings, "SYSTEM_WALLET_PRIVATE_KEY", "") or "",
            rpc_timeout=int(getattr(settings, "BLOCKCHAIN_RPC_TIMEOUT", 30)),
            tx_timeout=int(getattr(settings, "BLOCKCHAIN_TX_TIMEOUT", 180)),
            poll_latency=float(getattr(settings, "BLOCKCHAIN_TX_POLL_LATENCY", 2.0)),
            signer_lock_wait=float(getattr(settings, "BLOCKCHAIN_SIGNER_LOCK_WAIT", 300)),
        )


@dataclass
class Receipt:
    tx_hash: str
    status: bool
    block_number: Optional[int] = None
    logs: List[Any] = field(default_factory=list)
    raw: Any = None


class ChainClient:
    """Read/write access to the deployed TicketNFT contract."""

    def __init__(self, config: ChainConfig, w3: Optional[Web3] = None):
        self.config = config
        self.w3 = w3 or Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.rpc_timeout}))
        self._contract = None
        self._account = None

    @classmethod
    def from_settings(cls) -> "ChainClient":
        return cls(ChainConfig.from_settings())

    # ------------------------------------------------------------------
    # configuration-derived handles
    # ------------------------------------------------------------------
    @property
    def contract_address(self) -> str:
        if not self.config.contract_address:
            raise ChainConfigurationError("CONTRACT_ADDRESS is not configured; deploy the contract first")
        try:
            return Web3.to_checksum_address(self.config.contract_address)
        except ValueError as exc:
            raise ChainConfigurationError(
                f"CONTRACT_ADDRESS is not a valid address: {self.config.contract_address}"
            ) from exc

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.w3.eth.contract(address=self.contract_address, abi=abi.TICKET_NFT_ABI)
        return self._contract

    @property
    def account(self):
        if self._account is None:
            if not self.config.private_key:
                raise ChainConfigurationError("SYSTEM_WALLET_PRIVATE_KEY is not configured")
            try:
                self._account = Account.from_key(self.config.private_key)
            except (ValueError, TypeError) as exc:
                raise ChainConfigurationError("SYSTEM_WALLET_PRIVATE_KEY is not a valid private key") from exc
        return self._account

    @property
    def signer_address(self) -> str:
        return self.account.address

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_code(self, address: Optional[str] = None) -> bytes:
        target = Web3.to_checksum_address(address) if address else self.contract_address
        with self._provider_errors("get_code"):
            return bytes(self.w3.eth.get_code(target))

    def get_block_number(self) -> int:
        with self._provider_errors("get_block_number"):
            return self.w3.eth.block_number

    def call_view(self, method: str, args: Sequence[Any] = ()) -> Any:
        fn = self._function(method, args)
        with self._provider_errors(method):
            return fn.call()

    def query_events(
        self,
        event_name: str,
        from_block: Any = 0,
        to_block: Any = "latest",
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        event = self._event(event_name)
        with self._provider_errors(f"get_logs({event_name})"):
            logs = event.get_logs(from_block=from_block, to_block=to_block, argument_filters=argument_filters)
        return [
            {
                "event": log["event"],
                "args": dict(log["args"]),
                "block_number": log["blockNumber"],
                "tx_hash": Web3.to_hex(log["transactionHash"]),
                "log_index": log["logIndex"],
            }
            for log in logs
        ]

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        with self._provider_errors("get_transaction_receipt"):
            try:
                raw = self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
        return self._wrap_receipt(raw)

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def submit_transaction(self, method: str, args: Sequence[Any] = (), signer=None) -> Receipt:
        """Sign and send a state-changing call, then block until it is mined.

        Raises ChainTimeoutError when the receipt does not show up within
        `tx_timeout`; the transaction may still be mined later.
        """
        account = signer or self.account
        fn = self._function(method, args)
        lock_timeout = self.config.tx_timeout + 2 * self.config.rpc_timeout
        with signer_lock(account.address, timeout=lock_timeout, wait=self.config.signer_lock_wait):
            with self._provider_errors(method):
                tx = fn.build_transaction(
                    {
                        "from": account.address,
                        "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                        "chainId": self.w3.eth.chain_id,
                    }
                )
                signed = account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
                logger.info("Submitted %s transaction %s", method, Web3.to_hex(tx_hash))
                raw = self.w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self.config.tx_timeout,
                    poll_latency=self.config.poll_latency,
                )
        return self._wrap_receipt(raw)

    # ------------------------------------------------------------------
    # log decoding
    # ------------------------------------------------------------------
    def decode_events(self, event_name: str, receipt) -> List[Dict[str, Any]]:
        """Decode every `event_name` log the contract emitted in `receipt`.

        Logs from other addresses or with another signature are skipped. A log with
        the right signature whose data does not decode yields its indexed fields only.
        """
        logs = receipt.logs if isinstance(receipt, Receipt) else receipt["logs"]
        event_abi = abi.find_event_abi(event_name)
        topic = bytes(Web3.keccak(text=abi.event_signature(event_abi)))
        contract_address = self.contract_address.lower()
        event = self._event(event_name)

        decoded = []
        for log in logs:
            if str(log["address"]).lower() != contract_address:
                continue
            topics = log["topics"]
            if not topics or bytes(topics[0]) != topic:
                continue
            try:
                decoded.append(dict(event.process_log(log)["args"]))
            except (Web3Exception, DecodingError) as exc:
                logger.warning("Could not decode %s log data, keeping indexed fields only: %s", event_name, exc)
                decoded.append(self._decode_indexed(event_abi, topics))
        return decoded

    @staticmethod
    def _decode_indexed(event_abi, topics) -> Dict[str, Any]:
        values = {}
        indexed = [arg for arg in event_abi["inputs"] if arg.get("indexed")]
        for arg, topic in zip(indexed, topics[1:]):
            values[arg["name"]] = abi_decode([arg["type"]], bytes(topic))[0]
        return values

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _function(self, method: str, args: Sequence[Any]):
        try:
            return getattr(self.contract.functions, method)(*args)
        except (Web3ValidationError, TypeError) as exc:
            raise ContractError(f"invalid arguments for {method}: {exc}") from exc

    def _event(self, event_name: str):
        return getattr(self.contract.events, event_name)()

    @staticmethod
    def _wrap_receipt(raw) -> Receipt:
        return Receipt(
            tx_hash=Web3.to_hex(raw["transactionHash"]),
            status=raw.get("status", 0) == 1,
            block_number=raw.get("blockNumber"),
            logs=list(raw.get("logs", [])),
            raw=raw,
        )

    @contextmanager
    def _provider_errors(self, action: str):
        try:
            yield
        except ContractLogicError as exc:
            raise ContractRevertError(f"{action} reverted: {exc}") from exc
        except TimeExhausted as exc:
            raise ChainTimeoutError(f"{action} was not mined within {self.config.tx_timeout}s") from exc
        except (Web3Exception, requests.exceptions.RequestException, OSError) as exc:
            raise ChainTransientError(f"{action} failed: {exc}") from exc
