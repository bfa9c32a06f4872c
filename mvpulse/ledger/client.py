"""
Ledger REST client (Aptos / Movement fullnode API).

Endpoints used:
  POST /view                          -- call a view function
  GET  /transactions/by_hash/{hash}   -- poll a submitted transaction

Signing is not done here.  Writes go through an injected ``Submitter``
(a wallet) that signs and submits the payload and returns the hash.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from ..errors import LedgerRejection, NetworkFailure, RejectionCategory
from .models import TransactionOutcome, TransactionStatus
from .utils import API_TIMEOUT

logger = logging.getLogger(__name__)

# payload -> transaction hash
Submitter = Callable[[dict[str, Any]], Awaitable[str]]


class LedgerClient:
    """Thin async wrapper around the fullnode REST API."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = API_TIMEOUT,
        submitter: Optional[Submitter] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.submitter = submitter
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Reads ────────────────────────────────────────────────────────

    async def view(
        self,
        function: str,
        type_arguments: Sequence[str] = (),
        arguments: Sequence[Any] = (),
    ) -> list:
        """
        Call a view function and return its result array.

        Raises:
            NetworkFailure: transport error, non-2xx status or non-list body
        """
        payload = {
            "function": function,
            "type_arguments": list(type_arguments),
            "arguments": [_encode_arg(a) for a in arguments],
        }
        url = f"{self.rpc_url}/view"
        logger.debug("POST %s function=%s args=%s", url, function, payload["arguments"])
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            result = resp.json()
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                f"View {function} failed: HTTP {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkFailure(f"View {function} failed: {e}") from e
        if not isinstance(result, list):
            raise NetworkFailure(f"View {function} returned non-list body: {result!r}")
        return result

    # ── Writes ───────────────────────────────────────────────────────

    async def submit(
        self,
        function: str,
        type_arguments: Sequence[str] = (),
        arguments: Sequence[Any] = (),
    ) -> str:
        """
        Hand an entry-function payload to the wallet and return the tx hash.

        Submission is not execution: call ``wait_for_transaction`` before
        treating the write as settled.
        """
        if self.submitter is None:
            raise LedgerRejection(
                RejectionCategory.WALLET_NOT_CONNECTED,
                "Wallet Not Connected",
                "Connect a wallet to submit transactions.",
            )
        payload = {
            "function": function,
            "typeArguments": list(type_arguments),
            "functionArguments": [_encode_arg(a) for a in arguments],
        }
        logger.debug("Submitting %s args=%s", function, payload["functionArguments"])
        return await self.submitter(payload)

    async def get_transaction(self, tx_hash: str) -> Optional[dict]:
        """Fetch a transaction by hash; None while the node has not seen it yet."""
        url = f"{self.rpc_url}/transactions/by_hash/{tx_hash}"
        logger.debug("GET %s", url)
        try:
            resp = await self._client.get(url)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                f"Transaction lookup {tx_hash} failed: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkFailure(f"Transaction lookup {tx_hash} failed: {e}") from e

    async def wait_for_transaction(
        self,
        tx_hash: str,
        *,
        timeout: float = 60.0,
        poll_interval: float = 1.0,
    ) -> TransactionOutcome:
        """
        Poll until the transaction is committed or ``timeout`` elapses.

        A timeout yields a PENDING outcome, never a success.
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                txn = await self.get_transaction(tx_hash)
            except NetworkFailure as e:
                logger.warning("Confirmation poll for %s failed: %s", tx_hash, e)
                txn = None
            if txn is not None and txn.get("type") != "pending_transaction":
                success = bool(txn.get("success"))
                return TransactionOutcome(
                    tx_hash=tx_hash,
                    status=TransactionStatus.SUCCESS if success else TransactionStatus.FAILED,
                    vm_status=str(txn.get("vm_status", "")),
                )
            if time.monotonic() >= deadline:
                return TransactionOutcome(tx_hash=tx_hash, status=TransactionStatus.PENDING)
            await asyncio.sleep(poll_interval)


def _encode_arg(value: Any) -> Any:
    """u64 arguments travel as strings; bools and addresses as-is."""
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    return value
