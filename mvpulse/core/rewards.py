"""
Poll reward accounting under the two payout regimes.

Push mode: the creator settled the whole pool in one ``distribute_rewards``
transaction (``rewards_distributed`` is set).  Pull mode: each voter calls
``claim_reward`` and only claimed amounts count as distributed.

Equal-split polls (``reward_per_vote == 0``) pay each claimer
``reward_pool // len(voters)``.  The remainder ("dust") is never paid out,
matching the contract.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..ledger.models import DatabaseStats, PlatformStats, Poll, normalize_address

logger = logging.getLogger(__name__)


def per_voter_reward(poll: Poll) -> int:
    """Amount one voter receives (or received) from ``poll``."""
    if poll.reward_per_vote > 0:
        return poll.reward_per_vote
    if poll.voters:
        return poll.reward_pool // len(poll.voters)
    return 0


def distributed_total(poll: Poll) -> int:
    """Amount of the reward pool already paid out."""
    if poll.rewards_distributed:
        return poll.reward_pool
    total = per_voter_reward(poll) * len(poll.claimed)
    if total > poll.reward_pool:
        logger.warning(
            "Poll %d: %d claims x %d exceed reward pool %d; capping at pool",
            poll.poll_id, len(poll.claimed), per_voter_reward(poll), poll.reward_pool,
        )
        return poll.reward_pool
    return total


def aggregate(polls: Iterable[Poll]) -> int:
    """Platform-wide rewards distributed across ``polls``."""
    return sum(distributed_total(p) for p in polls)


def remaining_pool(poll: Poll) -> int:
    """What is still held by the poll (what ``withdraw_remaining`` would return)."""
    return poll.reward_pool - distributed_total(poll)


def undistributed_dust(poll: Poll) -> int:
    """Remainder of an equal split that no voter will ever receive."""
    if poll.reward_per_vote > 0 or not poll.voters:
        return 0
    return poll.reward_pool % len(poll.voters)


def claimable_reward(poll: Poll, address: str) -> int:
    """Reward ``address`` could still claim from ``poll`` in pull mode."""
    address = normalize_address(address)
    if poll.rewards_distributed:
        return 0
    if address not in poll.voters or address in poll.claimed:
        return 0
    return min(per_voter_reward(poll), remaining_pool(poll))


def platform_stats(
    polls: Optional[list[Poll]],
    db_stats: Optional[DatabaseStats],
) -> PlatformStats:
    """
    Combine on-chain poll data with off-chain counts.

    Either source may be None (its sub-query failed); the matching fields
    are then left as None instead of being reported as zero.
    """
    return PlatformStats(
        polls_created=len(polls) if polls is not None else None,
        rewards_distributed=aggregate(polls) if polls is not None else None,
        total_responses=db_stats.total_votes if db_stats is not None else None,
        active_users=db_stats.total_users if db_stats is not None else None,
    )
