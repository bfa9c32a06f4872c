"""
Error taxonomy for the ledger mirror.

Read paths absorb ``NetworkFailure`` into safe defaults at the reconciler
boundary.  ``NotConfigured`` and its subclasses describe a configuration
state ("not yet available"), not a transient failure.
``InvalidAmount`` is a local precondition and always fails fast.
``LedgerRejection`` is a write the ledger (or the wallet) refused.
"""

from __future__ import annotations

from enum import Enum


class MirrorError(Exception):
    """Base class for everything raised by this package."""


class NetworkFailure(MirrorError):
    """A remote call did not complete (transport error, bad status, bad payload)."""


class LedgerDataError(NetworkFailure):
    """The remote answered, but with data that fails validation."""


class NotConfigured(MirrorError):
    """A contract or pool this network does not (yet) provide."""


class PoolUninitialized(NotConfigured):
    """The AMM pool has no liquidity yet (total LP shares is zero)."""


class StakingNotConfigured(NotConfigured):
    """No staking contract on this network, or the staking pool is not initialized."""


class PollsNotConfigured(NotConfigured):
    """No poll contract on this network."""


class InvalidAmount(MirrorError, ValueError):
    """Negative, non-finite or non-numeric amount."""


class InvalidLockDuration(MirrorError, ValueError):
    """Lock duration outside the staking contract's fixed catalog."""


class RejectionCategory(str, Enum):
    """Closed set of user-facing reasons a write can fail."""

    VAULT_NOT_INITIALIZED = "vault_not_initialized"
    NOT_AUTHORIZED = "not_authorized"
    POLL_NOT_ACTIVE = "poll_not_active"
    ALREADY_VOTED = "already_voted"
    INVALID_OPTION = "invalid_option"
    POLL_ENDED = "poll_ended"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    MAX_VOTERS_REACHED = "max_voters_reached"
    ALREADY_CLAIMED = "already_claimed"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    USER_REJECTED = "user_rejected"
    TIMEOUT = "timeout"
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    UNKNOWN = "unknown"


class LedgerRejection(MirrorError):
    """A write that was refused, classified into a ``RejectionCategory``."""

    def __init__(
        self,
        category: RejectionCategory,
        title: str,
        description: str,
        raw: str = "",
    ):
        super().__init__(f"{title}: {description}")
        self.category = category
        self.title = title
        self.description = description
        self.raw = raw
