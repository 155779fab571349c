"""
Error taxonomy for the blockchain sync subsystem.

Configuration errors are fatal and never retried by the queue. Transient
errors are retried with backoff. Contract errors were executed and rejected
(or produced no verifiable artifact) and will usually fail the same way again.
"""


class SyncError(Exception):
    """Base class for everything the sync subsystem raises."""


class TicketNotFound(SyncError):
    pass


class ChainError(SyncError):
    pass


class ChainConfigurationError(ChainError):
    """Missing contract address or key, unknown network, contract not deployed, key is not the owner."""


class ChainTransientError(ChainError):
    """Provider or network failure. Safe to retry."""


class ChainTimeoutError(ChainTransientError):
    """The transaction was not mined within the configured wait."""


class ContractError(ChainError):
    pass


class ContractRevertError(ContractError):
    """The network executed the call and the contract rejected it."""


class MissingMintEventError(ContractError):
    """The mint transaction succeeded but emitted no TicketMinted log."""
