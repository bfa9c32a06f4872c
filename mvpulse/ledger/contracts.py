"""
Typed readers for the MVPulse contracts.

Each reader turns raw view results into snapshot models.  Independent
views are issued concurrently with ``asyncio.gather``; nothing here caches
or absorbs errors (that is the reconciler's job).

Modules and views:
  swap     get_pool_info, get_amount_out, get_price_impact, get_lp_position,
           get_spot_price
  staking  is_initialized, get_staked_amount, get_positions_count,
           get_position, get_total_staked, get_stakers_count
  poll     get_poll_count, get_poll
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import LedgerDataError, StakingNotConfigured
from .client import LedgerClient
from .models import Pool, Poll, StakePosition, SwapDirection
from .utils import as_bool, as_int, expect_values, function_id, safe_json

logger = logging.getLogger(__name__)


def _model(cls, what: str, **data: Any):
    try:
        return cls(**data)
    except ValidationError as e:
        raise LedgerDataError(f"{what}: malformed ledger data: {e}") from e


class SwapContract:
    """PULSE/USDC pool, generic over the stablecoin type argument."""

    MODULE = "swap"

    def __init__(self, ledger: LedgerClient, address: str, stable_type: str):
        self.ledger = ledger
        self.address = address
        self.stable_type = stable_type

    def fn(self, name: str) -> str:
        return function_id(self.address, self.MODULE, name)

    async def _view(self, name: str, *args: Any) -> list:
        return await self.ledger.view(self.fn(name), [self.stable_type], args)

    async def get_pool(self) -> Pool:
        result = expect_values(await self._view("get_pool_info"), 4, "get_pool_info")
        return _model(
            Pool,
            "get_pool_info",
            reserve_a=as_int(result[0], "pulse_reserve"),
            reserve_b=as_int(result[1], "stable_reserve"),
            total_lp_shares=as_int(result[2], "total_lp_shares"),
            fee_bps=as_int(result[3], "fee_bps"),
        )

    async def get_amount_out(self, amount_in: int, direction: SwapDirection) -> int:
        """The contract's own quote, used to cross-check local math."""
        result = await self._view("get_amount_out", amount_in, direction.a_is_input)
        return as_int(expect_values(result, 1, "get_amount_out")[0], "amount_out")

    async def get_price_impact(self, amount_in: int, direction: SwapDirection) -> int:
        """The contract's price impact for the same trade, in basis points."""
        result = await self._view("get_price_impact", amount_in, direction.a_is_input)
        return as_int(expect_values(result, 1, "get_price_impact")[0], "price_impact_bps")

    async def get_lp_shares(self, address: str) -> int:
        result = await self._view("get_lp_position", address)
        return as_int(expect_values(result, 1, "get_lp_position")[0], "lp_shares")

    async def get_spot_price_scaled(self, a_over_b: bool = True) -> int:
        result = await self._view("get_spot_price", a_over_b)
        return as_int(expect_values(result, 1, "get_spot_price")[0], "spot_price")


class StakingContract:
    MODULE = "staking"

    def __init__(self, ledger: LedgerClient, address: Optional[str]):
        self.ledger = ledger
        self.address = address

    @property
    def is_configured(self) -> bool:
        return bool(self.address)

    def fn(self, name: str) -> str:
        if not self.address:
            raise StakingNotConfigured("Staking contract address not configured")
        return function_id(self.address, self.MODULE, name)

    async def _view_int(self, name: str, *args: Any) -> int:
        result = await self.ledger.view(self.fn(name), [], args)
        return as_int(expect_values(result, 1, name)[0], name)

    async def is_initialized(self) -> bool:
        result = await self.ledger.view(self.fn("is_initialized"))
        return as_bool(expect_values(result, 1, "is_initialized")[0])

    async def get_staked_amount(self, address: str) -> int:
        return await self._view_int("get_staked_amount", address)

    async def get_positions_count(self, address: str) -> int:
        return await self._view_int("get_positions_count", address)

    async def get_total_staked(self) -> int:
        return await self._view_int("get_total_staked")

    async def get_stakers_count(self) -> int:
        return await self._view_int("get_stakers_count")

    async def get_position(self, address: str, index: int) -> StakePosition:
        result = await self.ledger.view(self.fn("get_position"), [], [address, index])
        amount, staked_at, lock_duration, unlock_at = expect_values(result, 4, "get_position")[:4]
        position = _model(
            StakePosition,
            "get_position",
            amount=as_int(amount, "amount"),
            staked_at=as_int(staked_at, "staked_at"),
            lock_duration=as_int(lock_duration, "lock_duration"),
        )
        reported = as_int(unlock_at, "unlock_at")
        if reported != position.unlock_at:
            logger.warning(
                "Position %d of %s: ledger unlock_at %d != staked_at + lock_duration %d",
                index, address, reported, position.unlock_at,
            )
        return position

    async def get_positions(self, address: str) -> list[StakePosition]:
        """All positions of ``address`` in creation order, fetched concurrently."""
        count = await self.get_positions_count(address)
        if count == 0:
            return []
        return list(await asyncio.gather(
            *[self.get_position(address, i) for i in range(count)]
        ))


class PollContract:
    MODULE = "poll"

    def __init__(self, ledger: LedgerClient, address: str):
        self.ledger = ledger
        self.address = address

    def fn(self, name: str) -> str:
        return function_id(self.address, self.MODULE, name)

    async def get_poll_count(self) -> int:
        result = await self.ledger.view(self.fn("get_poll_count"), [], [self.address])
        return as_int(expect_values(result, 1, "get_poll_count")[0], "poll_count")

    async def get_poll(self, poll_id: int) -> Poll:
        result = await self.ledger.view(self.fn("get_poll"), [], [self.address, poll_id])
        raw = expect_values(result, 1, "get_poll")[0]
        if not isinstance(raw, dict):
            raise LedgerDataError(f"get_poll({poll_id}): expected object, got {raw!r}")
        data = dict(raw)
        data.setdefault("id", poll_id)
        data["voters"] = safe_json(data.get("voters", []))
        data["claimed"] = safe_json(data.get("claimed", []))
        data["rewards_distributed"] = as_bool(data.get("rewards_distributed", False))
        return _model(Poll, f"get_poll({poll_id})", **data)

    async def get_all_polls(self) -> list[Poll]:
        """
        Every poll, fetched concurrently.

        A poll whose data fails validation is logged and skipped; a transport
        failure on any poll fails the whole read.
        """
        count = await self.get_poll_count()
        results = await asyncio.gather(
            *[self.get_poll(i) for i in range(count)], return_exceptions=True
        )
        polls: list[Poll] = []
        for poll_id, result in enumerate(results):
            if isinstance(result, LedgerDataError):
                logger.warning("Skipping poll %d: %s", poll_id, result)
                continue
            if isinstance(result, BaseException):
                raise result
            polls.append(result)
        return polls
