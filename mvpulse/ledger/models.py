"""
Pydantic snapshot models for ledger state.

Every model is frozen: a snapshot is rebuilt from each fresh read and
never mutated.  u64 values arrive from the REST API as decimal strings;
pydantic's lax mode coerces them to ``int``.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import RejectionCategory


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


# ── AMM ──────────────────────────────────────────────────────────────

class SwapDirection(str, Enum):
    """Which reserve receives the input.  Token A is PULSE, token B is USDC."""

    A_TO_B = "a_to_b"
    B_TO_A = "b_to_a"

    @property
    def a_is_input(self) -> bool:
        return self is SwapDirection.A_TO_B


class Pool(Snapshot):
    """Reserves of the two-token constant-product pool."""

    reserve_a: int = Field(..., ge=0)
    reserve_b: int = Field(..., ge=0)
    total_lp_shares: int = Field(..., ge=0)
    fee_bps: int = Field(..., ge=0, le=10_000)

    @model_validator(mode="after")
    def _check_initialization(self) -> "Pool":
        empty = self.reserve_a == 0 and self.reserve_b == 0
        if (self.total_lp_shares == 0) != empty:
            raise ValueError(
                f"Inconsistent pool: reserves=({self.reserve_a}, {self.reserve_b}) "
                f"with total_lp_shares={self.total_lp_shares}"
            )
        if not empty and (self.reserve_a == 0 or self.reserve_b == 0):
            raise ValueError("Initialized pool must hold both reserves")
        return self

    @property
    def is_initialized(self) -> bool:
        return self.total_lp_shares > 0


class SwapQuote(Snapshot):
    """An estimate derived from a Pool snapshot.  Not ledger state."""

    direction: SwapDirection
    amount_in: int
    amount_in_after_fee: int
    amount_out: int
    price_impact_bps: int
    min_amount_out: int
    slippage_bps: int
    verified: bool = False


class LiquidityPosition(Snapshot):
    shares: int = 0
    pool_share_bps: int = 0
    value_a: int = 0
    value_b: int = 0


# ── Staking ──────────────────────────────────────────────────────────

class StakePosition(Snapshot):
    """A single time-locked stake.  Immutable once created on the ledger."""

    amount: int = Field(..., ge=0)
    staked_at: int = Field(..., ge=0)
    lock_duration: int = Field(..., ge=0)

    @property
    def unlock_at(self) -> int:
        return self.staked_at + self.lock_duration


class StakingInfo(Snapshot):
    address: str
    positions: list[StakePosition] = Field(default_factory=list)
    total_staked: int = 0
    unlockable_amount: int = 0
    locked_amount: int = 0
    pool_total_staked: int = 0
    stakers_count: int = 0
    as_of: int = 0


# ── Polls ────────────────────────────────────────────────────────────

class DistributionMode(IntEnum):
    """Payout regime chosen when a poll is closed."""

    MANUAL_PULL = 0
    MANUAL_PUSH = 1


def normalize_address(address: str) -> str:
    return address.strip().lower()


class Poll(Snapshot):
    """Reward-relevant fields of an on-chain poll."""

    poll_id: int = Field(..., ge=0, alias="id")
    reward_pool: int = Field(0, ge=0)
    reward_per_vote: int = Field(0, ge=0)
    voters: list[str] = Field(default_factory=list)
    claimed: list[str] = Field(default_factory=list)
    rewards_distributed: bool = False
    title: str = ""
    status: Optional[int] = None
    distribution_mode: Optional[int] = None

    @field_validator("voters", "claimed")
    @classmethod
    def _normalize(cls, v: list[str]) -> list[str]:
        return [normalize_address(a) for a in v]

    @model_validator(mode="after")
    def _claimed_subset_of_voters(self) -> "Poll":
        strangers = set(self.claimed) - set(self.voters)
        if strangers:
            raise ValueError(
                f"Poll {self.poll_id}: claimed addresses not among voters: {sorted(strangers)}"
            )
        return self

    @property
    def is_equal_split(self) -> bool:
        return self.reward_per_vote == 0


# ── Off-chain stats ──────────────────────────────────────────────────

class DatabaseStats(Snapshot):
    """Payload of ``GET /api/platform/stats``."""

    total_users: int = Field(0, alias="totalUsers")
    total_votes: int = Field(0, alias="totalVotes")
    total_questionnaire_completions: int = Field(0, alias="totalQuestionnaireCompletions")
    network: str = ""


class PlatformStats(Snapshot):
    """
    Landing-page statistics.

    A field is ``None`` when the sub-query it comes from failed, so the
    caller can show a placeholder instead of a misleading zero.
    """

    polls_created: Optional[int] = None
    total_responses: Optional[int] = None
    rewards_distributed: Optional[int] = None
    active_users: Optional[int] = None


# ── Writes ───────────────────────────────────────────────────────────

class TransactionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class TransactionOutcome(Snapshot):
    tx_hash: str
    status: TransactionStatus
    vm_status: str = ""

    @property
    def confirmed(self) -> bool:
        return self.status is TransactionStatus.SUCCESS


class WriteResult(Snapshot):
    """What a write action hands back to its caller."""

    action: str
    success: bool
    tx_hash: Optional[str] = None
    category: Optional[RejectionCategory] = None
    title: str = ""
    description: str = ""
