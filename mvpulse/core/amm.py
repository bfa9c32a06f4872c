"""
Constant-product AMM math for the PULSE/USDC pool.

Mirrors the swap contract's integer arithmetic:

    amount_in_after_fee = amount_in - amount_in * fee_bps // 10000
    amount_out          = reserve_out * amount_in_after_fee
                          // (reserve_in + amount_in_after_fee)

Everything here is a pure estimate over a Pool snapshot.  The amount
actually settled is whatever the ledger reports after confirmation.
"""

from __future__ import annotations

import math

from ..errors import InvalidAmount, PoolUninitialized
from ..ledger.models import LiquidityPosition, Pool, SwapDirection, SwapQuote
from .amounts import check_smallest_unit

BPS_DENOMINATOR = 10_000
PRICE_SCALE = 10**8
DEFAULT_SLIPPAGE_BPS = 50


def _require_initialized(pool: Pool) -> None:
    if not pool.is_initialized:
        raise PoolUninitialized("Pool has no liquidity yet")


def _reserves(pool: Pool, direction: SwapDirection) -> tuple[int, int]:
    """Return ``(reserve_in, reserve_out)`` for a swap direction."""
    if direction.a_is_input:
        return pool.reserve_a, pool.reserve_b
    return pool.reserve_b, pool.reserve_a


def _check_bps(value: int, name: str) -> int:
    check_smallest_unit(value, name)
    if value > BPS_DENOMINATOR:
        raise InvalidAmount(f"{name} must be at most {BPS_DENOMINATOR} bps, got {value}")
    return value


# ── Swaps ────────────────────────────────────────────────────────────

def amount_in_after_fee(amount_in: int, fee_bps: int) -> int:
    """Input left after the pool fee is taken (fee rounds down)."""
    check_smallest_unit(amount_in, "amount_in")
    _check_bps(fee_bps, "fee_bps")
    return amount_in - amount_in * fee_bps // BPS_DENOMINATOR


def quote_swap(pool: Pool, amount_in: int, direction: SwapDirection) -> int:
    """
    Output amount for swapping ``amount_in`` through ``pool``.

    Raises:
        PoolUninitialized: pool has no LP shares
        InvalidAmount: negative or non-integer amount_in
    """
    check_smallest_unit(amount_in, "amount_in")
    _require_initialized(pool)
    if amount_in == 0:
        return 0
    reserve_in, reserve_out = _reserves(pool, direction)
    after_fee = amount_in_after_fee(amount_in, pool.fee_bps)
    return reserve_out * after_fee // (reserve_in + after_fee)


def price_impact_bps(pool: Pool, amount_in: int, direction: SwapDirection) -> int:
    """
    Price impact of a swap in basis points, fee included.

    Compares the average execution rate on the fee-adjusted curve with the
    spot rate ``reserve_out / reserve_in``:

        impact = 1 - execution_rate / spot_rate
               = 1 - reserve_in * g / (10000 * reserve_in + amount_in * g)

    with ``g = 10000 - fee_bps``.  Evaluated exactly in integers and rounded
    half-up, so it is never negative and never decreases as ``amount_in``
    grows.  Zero for a zero input.
    """
    check_smallest_unit(amount_in, "amount_in")
    _require_initialized(pool)
    if amount_in == 0:
        return 0
    reserve_in, _ = _reserves(pool, direction)
    g = BPS_DENOMINATOR - pool.fee_bps
    den = BPS_DENOMINATOR * reserve_in + amount_in * g
    num = BPS_DENOMINATOR * (den - reserve_in * g)
    return (2 * num + den) // (2 * den)


def min_amount_out(amount_out: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> int:
    """Minimum acceptable output for a given slippage tolerance (rounds down)."""
    check_smallest_unit(amount_out, "amount_out")
    _check_bps(slippage_bps, "slippage_bps")
    return amount_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def build_quote(
    pool: Pool,
    amount_in: int,
    direction: SwapDirection,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
) -> SwapQuote:
    """Full quote: output, price impact and slippage-protected minimum."""
    amount_out = quote_swap(pool, amount_in, direction)
    return SwapQuote(
        direction=direction,
        amount_in=amount_in,
        amount_in_after_fee=amount_in_after_fee(amount_in, pool.fee_bps),
        amount_out=amount_out,
        price_impact_bps=price_impact_bps(pool, amount_in, direction),
        min_amount_out=min_amount_out(amount_out, slippage_bps),
        slippage_bps=slippage_bps,
    )


# ── Prices ───────────────────────────────────────────────────────────

def spot_price_scaled(pool: Pool, a_over_b: bool = True) -> int:
    """Spot price scaled by ``PRICE_SCALE`` (1e8), rounded down."""
    _require_initialized(pool)
    if a_over_b:
        return pool.reserve_a * PRICE_SCALE // pool.reserve_b
    return pool.reserve_b * PRICE_SCALE // pool.reserve_a


def spot_price(pool: Pool, a_over_b: bool = True) -> float:
    """Spot price as a float.  Presentation only; never feed back into math."""
    return spot_price_scaled(pool, a_over_b) / PRICE_SCALE


# ── Liquidity ────────────────────────────────────────────────────────

def lp_value(pool: Pool, shares: int) -> tuple[int, int]:
    """Reserves redeemable for ``shares`` LP shares: ``(value_a, value_b)``."""
    check_smallest_unit(shares, "shares")
    if not pool.is_initialized:
        return 0, 0
    return (
        pool.reserve_a * shares // pool.total_lp_shares,
        pool.reserve_b * shares // pool.total_lp_shares,
    )


def pool_share_bps(pool: Pool, shares: int) -> int:
    """Ownership of the pool in basis points, rounded down."""
    check_smallest_unit(shares, "shares")
    if not pool.is_initialized:
        return 0
    return shares * BPS_DENOMINATOR // pool.total_lp_shares


def liquidity_position(pool: Pool, shares: int) -> LiquidityPosition:
    value_a, value_b = lp_value(pool, shares)
    return LiquidityPosition(
        shares=shares,
        pool_share_bps=pool_share_bps(pool, shares),
        value_a=value_a,
        value_b=value_b,
    )


def quote_add_liquidity(pool: Pool, amount_a: int, amount_b: int) -> int:
    """
    LP shares minted for depositing ``amount_a`` and ``amount_b``.

    The first deposit mints ``isqrt(amount_a * amount_b)``.  Later deposits
    mint the smaller of the two proportional amounts, so any excess on one
    side is not rewarded.
    """
    check_smallest_unit(amount_a, "amount_a")
    check_smallest_unit(amount_b, "amount_b")
    if not pool.is_initialized:
        return math.isqrt(amount_a * amount_b)
    return min(
        amount_a * pool.total_lp_shares // pool.reserve_a,
        amount_b * pool.total_lp_shares // pool.reserve_b,
    )


def matching_amount(pool: Pool, amount: int, direction: SwapDirection) -> int:
    """
    Amount of the other token that keeps a deposit at the pool ratio.

    ``direction`` names the token being supplied: ``A_TO_B`` means
    ``amount`` is token A and the result is token B.
    """
    check_smallest_unit(amount, "amount")
    _require_initialized(pool)
    reserve_given, reserve_other = _reserves(pool, direction)
    return amount * reserve_other // reserve_given


def quote_remove_liquidity(pool: Pool, shares: int) -> tuple[int, int]:
    """Reserves returned for burning ``shares``."""
    check_smallest_unit(shares, "shares")
    _require_initialized(pool)
    if shares > pool.total_lp_shares:
        raise InvalidAmount(
            f"Cannot burn {shares} shares; pool has {pool.total_lp_shares}"
        )
    return lp_value(pool, shares)
