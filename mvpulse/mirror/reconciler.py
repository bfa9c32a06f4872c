"""
State reconciler: the single owner of ledger snapshots.

Reads:
  fetch (concurrently) -> cache -> pure core math -> ReadResult
  Network failures are absorbed into documented safe defaults; a missing
  pool, staking or poll configuration is reported as NOT_CONFIGURED.

Writes:
  validate -> submit -> wait for confirmation -> invalidate -> WriteResult
  Nothing cached is ever edited to "predict" a write.  Writes are
  serialized and never retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from ..core import amm, staking
from ..core.amounts import check_smallest_unit
from ..core.rewards import platform_stats
from ..errors import (
    LedgerRejection,
    NetworkFailure,
    NotConfigured,
    PollsNotConfigured,
    PoolUninitialized,
    RejectionCategory,
    StakingNotConfigured,
)
from ..ledger.client import LedgerClient, Submitter
from ..ledger.contracts import PollContract, StakingContract, SwapContract
from ..ledger.feedback import classify_rejection
from ..ledger.models import (
    DatabaseStats,
    DistributionMode,
    LiquidityPosition,
    PlatformStats,
    Pool,
    Poll,
    StakePosition,
    StakingInfo,
    SwapDirection,
    SwapQuote,
    TransactionStatus,
    WriteResult,
    normalize_address,
)
from ..ledger.stats import StatsClient
from .cache import CacheKey, EntityClass, SnapshotCache
from .config import staleness_windows

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReadStatus(str, Enum):
    OK = "ok"
    NETWORK_FAILURE = "network_failure"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """A read outcome.  ``value`` is a safe default unless status is OK."""

    value: T
    status: ReadStatus = ReadStatus.OK
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ReadStatus.OK


class StateReconciler:
    """
    Reads and writes against the MVPulse contracts for one network.

    Args:
        ledger: Ledger REST client (with a submitter for writes)
        swap / staking_contract / polls: contract readers
        stats: Stats API client (optional)
        network: network name passed to the stats API
        cache: snapshot cache (default staleness windows if omitted)
        clock: wall-clock seconds, used for lock/unlock decisions
        verify_quotes: cross-check local swap quotes against the contract
        confirmation_timeout: seconds to wait for a write to commit
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        swap: Optional[SwapContract] = None,
        staking_contract: Optional[StakingContract] = None,
        polls: Optional[PollContract] = None,
        stats: Optional[StatsClient] = None,
        network: str = "testnet",
        cache: Optional[SnapshotCache] = None,
        clock: Callable[[], float] = time.time,
        verify_quotes: bool = False,
        default_slippage_bps: int = amm.DEFAULT_SLIPPAGE_BPS,
        confirmation_timeout: float = 60.0,
    ):
        self.ledger = ledger
        self.swap_contract = swap
        self.staking_contract = staking_contract
        self.poll_contract = polls
        self.stats = stats
        self.network = network
        self.cache = cache or SnapshotCache()
        self._clock = clock
        self.verify_quotes = verify_quotes
        self.default_slippage_bps = default_slippage_bps
        self.confirmation_timeout = confirmation_timeout
        self._write_lock = asyncio.Lock()

    def now(self) -> int:
        return int(self._clock())

    # ── Keys ─────────────────────────────────────────────────────────

    @staticmethod
    def pool_key() -> CacheKey:
        return (EntityClass.POOL, "pool")

    @staticmethod
    def lp_key(address: str) -> CacheKey:
        return (EntityClass.LP_POSITION, normalize_address(address))

    @staticmethod
    def staking_key(address: str) -> CacheKey:
        return (EntityClass.STAKING, normalize_address(address))

    @staticmethod
    def polls_key() -> CacheKey:
        return (EntityClass.POLLS, "all")

    def platform_key(self) -> CacheKey:
        return (EntityClass.PLATFORM_STATS, self.network)

    # ── Raw snapshot fetches (cached, may raise) ─────────────────────

    def _require_swap(self) -> SwapContract:
        if self.swap_contract is None:
            raise PoolUninitialized("Swap contract not configured for this network")
        return self.swap_contract

    def _require_staking(self) -> StakingContract:
        if self.staking_contract is None or not self.staking_contract.is_configured:
            raise StakingNotConfigured("Staking contract not configured for this network")
        return self.staking_contract

    def _require_polls(self) -> PollContract:
        if self.poll_contract is None:
            raise PollsNotConfigured("Poll contract not configured for this network")
        return self.poll_contract

    async def _pool(self, force: bool = False) -> Pool:
        contract = self._require_swap()
        return await self.cache.get(self.pool_key(), contract.get_pool, force=force)

    async def _lp_shares(self, address: str, force: bool = False) -> int:
        contract = self._require_swap()
        return await self.cache.get(
            self.lp_key(address), lambda: contract.get_lp_shares(address), force=force
        )

    async def _polls(self, force: bool = False) -> list[Poll]:
        """The cached poll list itself; callers must not hand it out."""
        contract = self._require_polls()
        return await self.cache.get(self.polls_key(), contract.get_all_polls, force=force)

    async def _staking_info(self, address: str, force: bool = False) -> StakingInfo:
        contract = self._require_staking()

        async def fetch() -> tuple[list[StakePosition], int, int]:
            if not await contract.is_initialized():
                raise StakingNotConfigured("Staking pool is not initialized")
            positions, ledger_total, pool_total, stakers = await asyncio.gather(
                contract.get_positions(address),
                contract.get_staked_amount(address),
                contract.get_total_staked(),
                contract.get_stakers_count(),
            )
            if staking.total_staked(positions) != ledger_total:
                logger.warning(
                    "Staked amount for %s: positions sum to %d, ledger reports %d",
                    address, staking.total_staked(positions), ledger_total,
                )
            return positions, pool_total, stakers

        # raw positions are cached; the lock partition is redone against `now`
        positions, pool_total, stakers = await self.cache.get(
            self.staking_key(address), fetch, force=force
        )
        return staking.summarize(
            address, positions, self.now(),
            pool_total_staked=pool_total, stakers_count=stakers,
        )

    # ── Reads (never raise on network failure) ───────────────────────

    async def _read(self, default: T, make: Callable[[], Any]) -> ReadResult[T]:
        try:
            return ReadResult(await make())
        except NotConfigured as e:
            return ReadResult(default, ReadStatus.NOT_CONFIGURED, str(e))
        except NetworkFailure as e:
            logger.warning("Read failed, using default: %s", e)
            return ReadResult(default, ReadStatus.NETWORK_FAILURE, str(e))

    async def get_pool(self, force: bool = False) -> ReadResult[Optional[Pool]]:
        """Pool snapshot; NOT_CONFIGURED when the pool holds no liquidity."""

        async def make() -> Pool:
            pool = await self._pool(force)
            if not pool.is_initialized:
                raise PoolUninitialized("Pool has no liquidity yet")
            return pool

        return await self._read(None, make)

    async def get_swap_quote(
        self,
        amount_in: int,
        direction: SwapDirection,
        slippage_bps: Optional[int] = None,
        force: bool = False,
    ) -> ReadResult[Optional[SwapQuote]]:
        """
        Quote a swap from the cached pool snapshot.

        With ``verify_quotes`` the contract's own ``get_amount_out`` and
        ``get_price_impact`` are read concurrently once the pool is known to
        hold liquidity; on disagreement the contract's figures are used.

        Raises:
            InvalidAmount: negative or non-integer amount_in
        """
        check_smallest_unit(amount_in, "amount_in")
        slippage = self.default_slippage_bps if slippage_bps is None else slippage_bps

        async def make() -> SwapQuote:
            # raises PoolUninitialized before any verification view is issued
            quote = amm.build_quote(await self._pool(force), amount_in, direction, slippage)
            if not self.verify_quotes or amount_in == 0:
                return quote
            contract = self._require_swap()
            ledger_out, ledger_impact = await asyncio.gather(
                contract.get_amount_out(amount_in, direction),
                contract.get_price_impact(amount_in, direction),
            )
            update: dict[str, Any] = {"verified": True}
            if ledger_out != quote.amount_out:
                logger.warning(
                    "Quote mismatch for %d %s: local %d, contract %d; using contract value",
                    amount_in, direction.value, quote.amount_out, ledger_out,
                )
                update["amount_out"] = ledger_out
                update["min_amount_out"] = amm.min_amount_out(ledger_out, slippage)
            if ledger_impact != quote.price_impact_bps:
                logger.warning(
                    "Price impact mismatch for %d %s: local %d bps, contract %d bps; "
                    "using contract value",
                    amount_in, direction.value, quote.price_impact_bps, ledger_impact,
                )
                update["price_impact_bps"] = ledger_impact
            return quote.model_copy(update=update)

        return await self._read(None, make)

    async def get_spot_price(self, a_over_b: bool = True) -> ReadResult[Optional[float]]:
        async def make() -> float:
            return amm.spot_price(await self._pool(), a_over_b)

        return await self._read(None, make)

    async def get_lp_position(
        self, address: str, force: bool = False
    ) -> ReadResult[LiquidityPosition]:
        """LP shares of ``address`` valued against the current pool."""

        async def make() -> LiquidityPosition:
            pool, shares = await asyncio.gather(
                self._pool(force), self._lp_shares(address, force)
            )
            return amm.liquidity_position(pool, shares)

        return await self._read(LiquidityPosition(), make)

    async def get_staking_info(
        self, address: str, force: bool = False
    ) -> ReadResult[StakingInfo]:
        """Positions and locked/unlockable totals for ``address``."""
        return await self._read(
            StakingInfo(address=address), lambda: self._staking_info(address, force)
        )

    async def get_polls(self, force: bool = False) -> ReadResult[list[Poll]]:
        """Every poll, as copies the caller owns."""

        async def make() -> list[Poll]:
            return [poll.model_copy(deep=True) for poll in await self._polls(force)]

        return await self._read([], make)

    async def get_poll(self, poll_id: int, force: bool = False) -> ReadResult[Optional[Poll]]:
        async def make() -> Optional[Poll]:
            for poll in await self._polls(force):
                if poll.poll_id == poll_id:
                    return poll.model_copy(deep=True)
            return None

        return await self._read(None, make)

    async def get_platform_stats(self, force: bool = False) -> ReadResult[PlatformStats]:
        """
        On-chain reward totals combined with off-chain user/vote counts.

        Each half is fetched independently; a failed half leaves its fields
        as None and the status NETWORK_FAILURE, the other half still shows.
        Without a poll contract the on-chain half is None and the status is
        NOT_CONFIGURED.
        """

        async def fetch_db() -> Optional[DatabaseStats]:
            if self.stats is None:
                return None
            client = self.stats
            return await self.cache.get(
                self.platform_key(),
                lambda: client.get_platform_stats(self.network),
                force=force,
            )

        polls, db = await asyncio.gather(
            self._polls(force), fetch_db(), return_exceptions=True
        )
        errors: list[str] = []
        missing: list[str] = []
        for part in (polls, db):
            if isinstance(part, NetworkFailure):
                errors.append(str(part))
            elif isinstance(part, NotConfigured):
                missing.append(str(part))
            elif isinstance(part, BaseException):
                raise part
        stats = platform_stats(
            None if isinstance(polls, BaseException) else polls,
            None if isinstance(db, BaseException) else db,
        )
        if errors:
            logger.warning("Platform stats partially unavailable: %s", "; ".join(errors))
            return ReadResult(stats, ReadStatus.NETWORK_FAILURE, "; ".join(errors))
        if missing:
            return ReadResult(stats, ReadStatus.NOT_CONFIGURED, "; ".join(missing))
        return ReadResult(stats)

    # ── Writes ───────────────────────────────────────────────────────

    async def _write(
        self,
        action: str,
        payload: Callable[[], tuple[str, list[str], list[Any]]],
        invalidates: Iterable[CacheKey],
    ) -> WriteResult:
        """
        Submit, wait for confirmation, and invalidate only on success.

        ``payload`` resolves the target contract and returns
        ``(function, type_arguments, arguments)``; a contract missing on this
        network becomes a failed WriteResult, nothing is submitted.
        """
        try:
            function, type_arguments, arguments = payload()
        except NotConfigured as e:
            return _rejected(action, None, LedgerRejection(
                RejectionCategory.UNKNOWN, "Not Available", str(e), raw=str(e),
            ))

        async with self._write_lock:
            try:
                tx_hash = await self.ledger.submit(function, type_arguments, arguments)
            except (LedgerRejection, NetworkFailure) as e:
                return _rejected(action, None, classify_rejection(e))
            except Exception as e:
                # wallet adapters raise arbitrary errors (user cancelled, ...)
                logger.warning("%s submission failed: %s", action, e)
                return _rejected(action, None, classify_rejection(e))

            outcome = await self.ledger.wait_for_transaction(
                tx_hash, timeout=self.confirmation_timeout
            )
            if outcome.status is TransactionStatus.PENDING:
                logger.warning("%s %s not confirmed within %.0fs", action, tx_hash,
                               self.confirmation_timeout)
                return _rejected(action, tx_hash, classify_rejection(
                    f"Transaction {tx_hash} not confirmed (timeout)"
                ))
            if not outcome.confirmed:
                return _rejected(action, tx_hash, classify_rejection(outcome.vm_status))

            for key in invalidates:
                self.cache.invalidate(key)
            logger.info("%s confirmed: %s", action, tx_hash)
            return WriteResult(action=action, success=True, tx_hash=tx_hash)

    async def swap(
        self,
        amount_in: int,
        direction: SwapDirection,
        min_amount_out: int,
        address: Optional[str] = None,
    ) -> WriteResult:
        check_smallest_unit(amount_in, "amount_in")
        check_smallest_unit(min_amount_out, "min_amount_out")
        name = "swap_pulse_to_stable" if direction.a_is_input else "swap_stable_to_pulse"

        def payload():
            contract = self._require_swap()
            return contract.fn(name), [contract.stable_type], [amount_in, min_amount_out]

        keys = [self.pool_key()] + ([self.lp_key(address)] if address else [])
        return await self._write("swap", payload, keys)

    async def add_liquidity(
        self, address: str, amount_a: int, amount_b: int, min_lp_shares: int
    ) -> WriteResult:
        for name, value in (("amount_a", amount_a), ("amount_b", amount_b),
                            ("min_lp_shares", min_lp_shares)):
            check_smallest_unit(value, name)

        def payload():
            contract = self._require_swap()
            return (contract.fn("add_liquidity"), [contract.stable_type],
                    [amount_a, amount_b, min_lp_shares])

        return await self._write(
            "add_liquidity", payload, [self.pool_key(), self.lp_key(address)]
        )

    async def remove_liquidity(
        self, address: str, lp_shares: int, min_a_out: int, min_b_out: int
    ) -> WriteResult:
        for name, value in (("lp_shares", lp_shares), ("min_a_out", min_a_out),
                            ("min_b_out", min_b_out)):
            check_smallest_unit(value, name)

        def payload():
            contract = self._require_swap()
            return (contract.fn("remove_liquidity"), [contract.stable_type],
                    [lp_shares, min_a_out, min_b_out])

        return await self._write(
            "remove_liquidity", payload, [self.pool_key(), self.lp_key(address)]
        )

    def _staking_payload(self, name: str, *arguments: Any):
        def payload():
            return self._require_staking().fn(name), [], list(arguments)
        return payload

    async def stake(self, address: str, amount: int, lock_duration: int) -> WriteResult:
        """
        Raises:
            InvalidAmount / InvalidLockDuration: before anything is submitted
        """
        check_smallest_unit(amount, "amount")
        staking.validate_lock_duration(lock_duration)
        return await self._write(
            "stake", self._staking_payload("stake", amount, lock_duration),
            [self.staking_key(address)],
        )

    async def unstake(self, address: str, position_index: int) -> WriteResult:
        check_smallest_unit(position_index, "position_index")
        return await self._write(
            "unstake", self._staking_payload("unstake", position_index),
            [self.staking_key(address)],
        )

    async def unstake_all(self, address: str) -> WriteResult:
        return await self._write(
            "unstake_all", self._staking_payload("unstake_all"),
            [self.staking_key(address)],
        )

    def _poll_payload(self, name: str, *arguments: Any):
        # poll entry functions take the registry address first
        def payload():
            contract = self._require_polls()
            return contract.fn(name), [], [contract.address, *arguments]
        return payload

    async def vote(self, poll_id: int, option_index: int) -> WriteResult:
        check_smallest_unit(poll_id, "poll_id")
        check_smallest_unit(option_index, "option_index")
        return await self._write(
            "vote", self._poll_payload("vote", poll_id, option_index),
            [self.polls_key(), self.platform_key()],
        )

    async def close_poll(self, poll_id: int, distribution_mode: DistributionMode) -> WriteResult:
        """Close a poll and fix its payout regime."""
        check_smallest_unit(poll_id, "poll_id")
        return await self._write(
            "close_poll",
            self._poll_payload("close_poll", poll_id, int(distribution_mode)),
            [self.polls_key(), self.platform_key()],
        )

    async def claim_reward(self, poll_id: int) -> WriteResult:
        """Pull mode: the caller claims their own share."""
        check_smallest_unit(poll_id, "poll_id")
        return await self._write(
            "claim_reward", self._poll_payload("claim_reward", poll_id),
            [self.polls_key(), self.platform_key()],
        )

    async def distribute_rewards(self, poll_id: int) -> WriteResult:
        """Push mode: the creator pays every voter in one transaction."""
        check_smallest_unit(poll_id, "poll_id")
        return await self._write(
            "distribute_rewards", self._poll_payload("distribute_rewards", poll_id),
            [self.polls_key(), self.platform_key()],
        )

    async def aclose(self) -> None:
        await self.ledger.aclose()
        if self.stats is not None:
            await self.stats.aclose()


def _rejected(action: str, tx_hash: Optional[str], rejection: LedgerRejection) -> WriteResult:
    logger.warning("%s rejected (%s): %s", action, rejection.category.value, rejection.raw)
    return WriteResult(
        action=action,
        success=False,
        tx_hash=tx_hash,
        category=rejection.category,
        title=rejection.title,
        description=rejection.description,
    )


def build_reconciler(config: dict, submitter: Optional[Submitter] = None) -> StateReconciler:
    """Construct a StateReconciler from a loaded config dict."""
    ledger_cfg = config.get("ledger", {})
    ledger = LedgerClient(
        ledger_cfg["rpc_url"],
        timeout=float(ledger_cfg.get("timeout", 30.0)),
        submitter=submitter,
    )

    swap = None
    if ledger_cfg.get("swap_contract") and ledger_cfg.get("usdc_type"):
        swap = SwapContract(ledger, ledger_cfg["swap_contract"], ledger_cfg["usdc_type"])

    polls = None
    if ledger_cfg.get("poll_contract"):
        polls = PollContract(ledger, ledger_cfg["poll_contract"])

    stats = None
    base_url = config.get("stats_api", {}).get("base_url")
    if base_url:
        stats = StatsClient(base_url, timeout=float(ledger_cfg.get("timeout", 30.0)))

    swap_cfg = config.get("swap", {})
    return StateReconciler(
        ledger,
        swap=swap,
        staking_contract=StakingContract(ledger, ledger_cfg.get("staking_contract")),
        polls=polls,
        stats=stats,
        network=config.get("network", "testnet"),
        cache=SnapshotCache(staleness_windows(config)),
        verify_quotes=bool(swap_cfg.get("verify_quotes", False)),
        default_slippage_bps=int(swap_cfg.get("default_slippage_bps", amm.DEFAULT_SLIPPAGE_BPS)),
        confirmation_timeout=float(ledger_cfg.get("confirmation_timeout", 60.0)),
    )
