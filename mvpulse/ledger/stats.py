"""
Stats API client for off-chain platform counts.

Endpoint used:
  GET /api/platform/stats?network=X   -- total users, total votes
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..errors import LedgerDataError, NetworkFailure
from .models import DatabaseStats
from .utils import API_TIMEOUT

logger = logging.getLogger(__name__)


class StatsClient:

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = API_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Issue a GET to the stats API and return parsed JSON."""
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)
        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                f"Failed to fetch {path}: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkFailure(f"Failed to fetch {path}: {e}") from e

    async def get_platform_stats(self, network: str) -> DatabaseStats:
        """
        Fetch user/vote totals for one network.

        Returns:
            DatabaseStats parsed from ``{"success": true, "data": {...}}``
        """
        body = await self._get("/api/platform/stats", params={"network": network})
        if not isinstance(body, dict) or not body.get("success"):
            raise NetworkFailure("Failed to fetch platform stats")
        try:
            return DatabaseStats.model_validate(body.get("data") or {})
        except ValidationError as e:
            raise LedgerDataError(f"Malformed platform stats: {e}") from e
