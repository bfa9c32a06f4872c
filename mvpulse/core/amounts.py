"""
Fixed-point token amounts.

Every amount on the ledger is an integer in the token's smallest unit
(octas for MOVE/PULSE, micro-units for USDC).  This module is the only
place those integers are turned into human-readable strings and back.

All arithmetic goes through ``Decimal`` so that a display string never
carries binary floating-point error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import (
    ROUND_FLOOR,
    ROUND_HALF_UP,
    Decimal,
    InvalidOperation,
    localcontext,
)
from typing import Union

from ..errors import InvalidAmount

Number = Union[int, float, str, Decimal]

# u64 * 10**decimals never needs more than this many significant digits
_PRECISION = 80


@dataclass(frozen=True)
class Token:
    symbol: str
    decimals: int


MOVE = Token("MOVE", 8)
PULSE = Token("PULSE", 8)
USDC = Token("USDC", 6)

TOKENS: dict[str, Token] = {t.symbol: t for t in (MOVE, PULSE, USDC)}


def get_token(symbol: str) -> Token:
    """Look up a token by symbol (case-insensitive)."""
    try:
        return TOKENS[symbol.upper()]
    except KeyError:
        raise KeyError(f"Unknown token: {symbol}") from None


# ── Validation ───────────────────────────────────────────────────────

def check_smallest_unit(value: int, name: str = "amount") -> int:
    """Ensure ``value`` is a non-negative integer amount."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} cannot be negative: {value}")
    return value


def _as_decimal(amount: Number) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(f"Not a numeric amount: {amount!r}")
    if isinstance(amount, float):
        # repr() gives the shortest string that round-trips, so 0.29 stays 0.29
        amount = repr(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Not a numeric amount: {amount!r}") from None
    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite: {amount!r}")
    if value < 0:
        raise InvalidAmount(f"Amount cannot be negative: {amount!r}")
    return value


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise ValueError(f"decimals must be a non-negative integer, got {decimals!r}")


# ── Conversions ──────────────────────────────────────────────────────

def to_decimal(smallest_unit: int, decimals: int) -> Decimal:
    """Exact value of ``smallest_unit / 10**decimals``."""
    check_smallest_unit(smallest_unit)
    _check_decimals(decimals)
    return Decimal(smallest_unit).scaleb(-decimals)


def to_display(smallest_unit: int, decimals: int, display_decimals: int = 4) -> str:
    """
    Render a smallest-unit integer for display.

    Rounds half-up to ``display_decimals`` fractional digits.

    Args:
        smallest_unit: Amount in the token's smallest unit
        decimals: Decimal count of the token (8 for MOVE/PULSE, 6 for USDC)
        display_decimals: Fractional digits to show (default: 4)

    Returns:
        e.g. ``to_display(123_456_789, 8) == "1.2346"``
    """
    _check_decimals(display_decimals)
    value = to_decimal(smallest_unit, decimals)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        quantum = Decimal(1).scaleb(-display_decimals)
        return format(value.quantize(quantum, rounding=ROUND_HALF_UP), "f")


def to_smallest_unit(amount: Number, decimals: int) -> int:
    """
    Convert a token amount to its smallest unit: ``floor(amount * 10**decimals)``.

    Raises:
        InvalidAmount: negative, non-finite or non-numeric input
    """
    _check_decimals(decimals)
    value = _as_decimal(amount)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return int(value.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR))


def format_with_symbol(smallest_unit: int, token: Token, display_decimals: int = 4) -> str:
    """``to_display`` followed by the token symbol, e.g. ``"1.5000 PULSE"``."""
    return f"{to_display(smallest_unit, token.decimals, display_decimals)} {token.symbol}"


# ── Compact formatting (landing-page statistics) ─────────────────────

def _round_half_up(value: Decimal, places: int) -> str:
    return format(value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP), "f")


def format_compact_count(n: int) -> str:
    """Compact count: ``1.2M+``, ``12k+``, ``7+`` or ``0``."""
    check_smallest_unit(n, "count")
    if n >= 1_000_000:
        return f"{_round_half_up(Decimal(n) / 1_000_000, 1)}M+"
    if n >= 1000:
        return f"{_round_half_up(Decimal(n) / 1000, 0)}k+"
    return f"{n}+" if n > 0 else "0"


def format_compact_reward(smallest_unit: int, decimals: int = 8) -> str:
    """Compact reward total in whole tokens: ``$1.2M+``, ``$12k+``, ``$7+`` or ``$0``."""
    value = to_decimal(smallest_unit, decimals)
    if value >= 1_000_000:
        return f"${_round_half_up(value / 1_000_000, 1)}M+"
    if value >= 1000:
        return f"${_round_half_up(value / 1000, 0)}k+"
    return f"${_round_half_up(value, 0)}+" if value > 0 else "$0"
