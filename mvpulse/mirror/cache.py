"""
Per-entity snapshot cache.

Each key moves through three states:

    STALE ──access/refresh──▶ FETCHING ──all reads resolve──▶ FRESH
      ▲                                                          │
      └──────── staleness window elapsed / invalidate() ─────────┘

The cache never edits a stored snapshot.  Invalidation bumps the key's
generation; a fetch that started under an older generation may still
return its value to its own caller but is never stored as FRESH.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class EntityState(str, Enum):
    STALE = "stale"
    FETCHING = "fetching"
    FRESH = "fresh"


class EntityClass(str, Enum):
    POOL = "pool"
    LP_POSITION = "lp_position"
    STAKING = "staking"
    POLLS = "polls"
    PLATFORM_STATS = "platform_stats"


# Seconds; pool/staking data moves faster than platform aggregates
DEFAULT_STALENESS: dict[EntityClass, float] = {
    EntityClass.POOL: 10.0,
    EntityClass.LP_POSITION: 10.0,
    EntityClass.STAKING: 30.0,
    EntityClass.POLLS: 300.0,
    EntityClass.PLATFORM_STATS: 300.0,
}

CacheKey = tuple[EntityClass, Hashable]


@dataclass
class _Entry:
    value: Any = None
    has_value: bool = False
    fetched_at: float = 0.0
    generation: int = 0
    inflight: Optional[asyncio.Task] = None
    inflight_generation: int = 0


class SnapshotCache:
    """Staleness-windowed cache of ledger snapshots, keyed by entity."""

    def __init__(
        self,
        staleness: Optional[dict[EntityClass, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.staleness = {**DEFAULT_STALENESS, **(staleness or {})}
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}

    def _entry(self, key: CacheKey) -> _Entry:
        return self._entries.setdefault(key, _Entry())

    def _is_fresh(self, key: CacheKey, entry: _Entry) -> bool:
        if not entry.has_value:
            return False
        return self._clock() - entry.fetched_at < self.staleness[key[0]]

    # ── State ────────────────────────────────────────────────────────

    def state(self, key: CacheKey) -> EntityState:
        entry = self._entries.get(key)
        if entry is None:
            return EntityState.STALE
        if entry.inflight is not None and not entry.inflight.done():
            return EntityState.FETCHING
        if self._is_fresh(key, entry):
            return EntityState.FRESH
        return EntityState.STALE

    def peek(self, key: CacheKey) -> Any:
        """Stored value if FRESH, else None.  Never triggers a fetch."""
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(key, entry):
            return entry.value
        return None

    # ── Reads ────────────────────────────────────────────────────────

    async def get(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[Any]],
        *,
        force: bool = False,
    ) -> Any:
        """
        Return a FRESH snapshot for ``key``, fetching it if needed.

        Concurrent callers share one in-flight fetch.  ``force`` skips both
        the stored value and any in-flight fetch; its result wins.

        Raises:
            Whatever ``fetch`` raises.  The key is left STALE.
        """
        entry = self._entry(key)
        if not force:
            if self._is_fresh(key, entry) and entry.inflight is None:
                return entry.value
            if (
                entry.inflight is not None
                and not entry.inflight.done()
                and entry.inflight_generation == entry.generation
            ):
                return await asyncio.shield(entry.inflight)
        else:
            # a forced read supersedes anything already running
            entry.generation += 1

        generation = entry.generation
        task = asyncio.ensure_future(fetch())
        entry.inflight = task
        entry.inflight_generation = generation
        try:
            value = await task
        except BaseException:
            if entry.generation == generation:
                entry.has_value = False
            raise
        finally:
            if entry.inflight is task:
                entry.inflight = None
        if entry.generation == generation:
            entry.value = value
            entry.has_value = True
            entry.fetched_at = self._clock()
        else:
            logger.debug("Discarding superseded fetch for %s", key)
        return value

    # ── Invalidation ─────────────────────────────────────────────────

    def invalidate(self, key: CacheKey) -> None:
        """Mark ``key`` STALE immediately."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.generation += 1
        entry.has_value = False
        logger.debug("Invalidated %s", key)

    def invalidate_class(self, entity_class: EntityClass) -> None:
        for key in [k for k in self._entries if k[0] is entity_class]:
            self.invalidate(key)
