"""
Classification of refused writes.

Move aborts surface as strings like ``"Move abort ... E_ALREADY_CLAIMED(0x7)"``.
Known codes map to a fixed user-facing category; anything else falls back
to ``UNKNOWN`` with the raw message (truncated, never hidden).
"""

from __future__ import annotations

from typing import Union

from ..errors import LedgerRejection, RejectionCategory

MAX_DESCRIPTION = 200

MOVE_ERRORS: dict[str, tuple[RejectionCategory, str, str]] = {
    "E_FA_VAULT_NOT_INITIALIZED": (
        RejectionCategory.VAULT_NOT_INITIALIZED,
        "Token Vault Not Initialized",
        "The reward token vault hasn't been set up on this network.",
    ),
    "E_NOT_AUTHORIZED": (
        RejectionCategory.NOT_AUTHORIZED,
        "Not Authorized",
        "You don't have permission to perform this action.",
    ),
    "E_POLL_NOT_ACTIVE": (
        RejectionCategory.POLL_NOT_ACTIVE,
        "Poll Not Active",
        "This poll is no longer accepting votes.",
    ),
    "E_ALREADY_VOTED": (
        RejectionCategory.ALREADY_VOTED,
        "Already Voted",
        "You have already voted on this poll.",
    ),
    "E_INVALID_OPTION": (
        RejectionCategory.INVALID_OPTION,
        "Invalid Option",
        "The selected option is not valid for this poll.",
    ),
    "E_POLL_ENDED": (
        RejectionCategory.POLL_ENDED,
        "Poll Ended",
        "This poll has ended and is no longer accepting votes.",
    ),
    "E_INSUFFICIENT_FUNDS": (
        RejectionCategory.INSUFFICIENT_FUNDS,
        "Insufficient Funds",
        "You don't have enough tokens to complete this transaction.",
    ),
    "E_MAX_VOTERS_REACHED": (
        RejectionCategory.MAX_VOTERS_REACHED,
        "Maximum Voters Reached",
        "This poll has reached its maximum number of voters.",
    ),
    "E_ALREADY_CLAIMED": (
        RejectionCategory.ALREADY_CLAIMED,
        "Already Claimed",
        "You have already claimed your reward from this poll.",
    ),
}

# Substring patterns checked after the Move codes, in order
_PATTERNS: tuple[tuple[tuple[str, ...], RejectionCategory, str, str], ...] = (
    (
        ("INSUFFICIENT_BALANCE", "insufficient balance"),
        RejectionCategory.INSUFFICIENT_BALANCE,
        "Insufficient Balance",
        "You don't have enough tokens to complete this transaction.",
    ),
    (
        ("rejected",),
        RejectionCategory.USER_REJECTED,
        "Transaction Rejected",
        "You cancelled the transaction.",
    ),
    (
        ("timeout", "Timeout"),
        RejectionCategory.TIMEOUT,
        "Transaction Timeout",
        "The transaction took too long. Please try again.",
    ),
)


def _truncate(message: str) -> str:
    if len(message) > MAX_DESCRIPTION:
        return f"{message[:MAX_DESCRIPTION]}..."
    return message


def classify_rejection(error: Union[BaseException, str]) -> LedgerRejection:
    """Map a wallet/ledger error (or vm_status string) to a LedgerRejection."""
    if isinstance(error, LedgerRejection):
        return error
    message = error if isinstance(error, str) else str(error)

    for code, (category, title, description) in MOVE_ERRORS.items():
        if code in message:
            return LedgerRejection(category, title, description, raw=message)

    for needles, category, title, description in _PATTERNS:
        if any(n in message for n in needles):
            return LedgerRejection(category, title, description, raw=message)

    return LedgerRejection(
        RejectionCategory.UNKNOWN,
        "Transaction Failed",
        _truncate(message),
        raw=message,
    )
