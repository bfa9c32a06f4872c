"""Shared helpers for decoding view-function results."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import LedgerDataError

logger = logging.getLogger(__name__)

API_TIMEOUT = 30.0


def safe_json(val: Any) -> list:
    """Parse a JSON-encoded string, or return as-is if already a list."""
    if isinstance(val, list):
        return val
    if isinstance(val, str):
        try:
            return json.loads(val)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Not a JSON list, treating as empty: %r", val)
            return []
    return []


def function_id(address: str, module: str, name: str) -> str:
    """Fully-qualified entry/view function id, e.g. ``0x1::swap::get_pool_info``."""
    return f"{address}::{module}::{name}"


def expect_values(result: list, count: int, what: str) -> list:
    """Ensure a view returned at least ``count`` values."""
    if not isinstance(result, list) or len(result) < count:
        raise LedgerDataError(f"{what}: expected {count} value(s), got {result!r}")
    return result


def as_int(value: Any, what: str = "value") -> int:
    """Decode a u64/u128 (serialized as a decimal string) into an int."""
    if isinstance(value, bool):
        raise LedgerDataError(f"{what}: expected integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise LedgerDataError(f"{what}: expected integer, got {value!r}") from None


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)
