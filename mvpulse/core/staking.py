"""
Time-locked staking accounting.

A position is unlockable from ``unlock_at`` onwards (inclusive).  Every
position lands in exactly one of the two buckets, so
``locked_amount + unlockable_amount == total_staked`` for any ``now``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..errors import InvalidLockDuration
from ..ledger.models import StakePosition, StakingInfo

logger = logging.getLogger(__name__)

DAY = 86_400


@dataclass(frozen=True)
class LockPeriod:
    days: int
    label: str

    @property
    def seconds(self) -> int:
        return self.days * DAY


# Must match the staking contract's constants
LOCK_PERIODS: tuple[LockPeriod, ...] = (
    LockPeriod(7, "7 days"),
    LockPeriod(14, "14 days"),
    LockPeriod(21, "21 days"),
    LockPeriod(30, "30 days"),
    LockPeriod(90, "90 days"),
    LockPeriod(180, "180 days"),
    LockPeriod(365, "1 year"),
)

LOCK_DURATIONS: frozenset[int] = frozenset(p.seconds for p in LOCK_PERIODS)


def is_catalog_duration(seconds: int) -> bool:
    return seconds in LOCK_DURATIONS


def validate_lock_duration(seconds: int) -> int:
    """Reject a lock duration the contract does not offer."""
    if not is_catalog_duration(seconds):
        allowed = ", ".join(str(p.seconds) for p in LOCK_PERIODS)
        raise InvalidLockDuration(
            f"Lock duration {seconds}s is not one of the permitted periods ({allowed})"
        )
    return seconds


def lock_anomalies(positions: Sequence[StakePosition]) -> list[tuple[int, StakePosition]]:
    """Positions (with their index) whose lock duration is outside the catalog."""
    return [
        (i, p) for i, p in enumerate(positions)
        if not is_catalog_duration(p.lock_duration)
    ]


# ── Partitioning ─────────────────────────────────────────────────────

def is_unlocked(position: StakePosition, now: int) -> bool:
    return now >= position.unlock_at


def partition(
    positions: Iterable[StakePosition], now: int
) -> tuple[list[StakePosition], list[StakePosition]]:
    """Split positions into ``(locked, unlockable)``, preserving order."""
    locked: list[StakePosition] = []
    unlockable: list[StakePosition] = []
    for p in positions:
        (unlockable if is_unlocked(p, now) else locked).append(p)
    return locked, unlockable


def unlockable_amount(positions: Iterable[StakePosition], now: int) -> int:
    return sum(p.amount for p in positions if is_unlocked(p, now))


def locked_amount(positions: Iterable[StakePosition], now: int) -> int:
    return sum(p.amount for p in positions if not is_unlocked(p, now))


def total_staked(positions: Iterable[StakePosition]) -> int:
    return sum(p.amount for p in positions)


def seconds_until_unlock(position: StakePosition, now: int) -> int:
    return max(0, position.unlock_at - now)


def next_unlock_at(positions: Iterable[StakePosition], now: int) -> Optional[int]:
    """Earliest ``unlock_at`` still in the future, or None if nothing is locked."""
    pending = [p.unlock_at for p in positions if not is_unlocked(p, now)]
    return min(pending) if pending else None


def summarize(
    address: str,
    positions: Sequence[StakePosition],
    now: int,
    pool_total_staked: int = 0,
    stakers_count: int = 0,
) -> StakingInfo:
    """Build a StakingInfo snapshot for ``address`` at time ``now``."""
    for index, position in lock_anomalies(positions):
        logger.warning(
            "Stake position %d of %s has non-catalog lock duration %ds",
            index, address, position.lock_duration,
        )
    locked, unlockable = partition(positions, now)
    return StakingInfo(
        address=address,
        positions=list(positions),
        total_staked=total_staked(positions),
        unlockable_amount=total_staked(unlockable),
        locked_amount=total_staked(locked),
        pool_total_staked=pool_total_staked,
        stakers_count=stakers_count,
        as_of=now,
    )
