"""Shared fixtures: a scripted fullnode and stats API behind httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from mvpulse.ledger.client import LedgerClient
from mvpulse.ledger.contracts import PollContract, StakingContract, SwapContract
from mvpulse.ledger.stats import StatsClient
from mvpulse.mirror.cache import SnapshotCache
from mvpulse.mirror.reconciler import StateReconciler

RPC_URL = "http://node.test/v1"
STATS_URL = "http://stats.test"
SWAP_ADDR = "0x5a"
STAKING_ADDR = "0x57"
POLL_ADDR = "0x90"
USDC_TYPE = "0xcafe::usdc::USDC"

ALICE = "0xa11ce"
BOB = "0xb0b"
CAROL = "0xca401"

WEEK = 7 * 86_400
STAKED_AT = 1_700_000_000

ViewResult = Union[list, Callable[[list], list]]


class FakeNode:
    """
    Minimal fullnode: view results keyed by function name, transactions
    keyed by hash.  Every request is recorded.
    """

    def __init__(self):
        self.views: dict[str, ViewResult] = {}
        self.transactions: dict[str, dict] = {}
        self.view_calls: list[tuple[str, list]] = []
        self.down = False

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.view_calls if n == name)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("node unreachable", request=request)
        path = request.url.path
        if path.endswith("/view"):
            body = json.loads(request.content)
            name = body["function"].rsplit("::", 1)[1]
            args = body["arguments"]
            self.view_calls.append((name, args))
            result = self.views.get(name)
            if result is None:
                return httpx.Response(400, json={"message": f"no view {name}"})
            if callable(result):
                result = result(args)
            return httpx.Response(200, json=result)
        if "/transactions/by_hash/" in path:
            txn = self.transactions.get(path.rsplit("/", 1)[1])
            if txn is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=txn)
        return httpx.Response(404)


def poll_json(
    poll_id: int,
    reward_pool: int = 0,
    reward_per_vote: int = 0,
    voters: Optional[list[str]] = None,
    claimed: Optional[list[str]] = None,
    rewards_distributed: bool = False,
) -> dict[str, Any]:
    """A poll object as the get_poll view serializes it."""
    return {
        "id": str(poll_id),
        "title": f"Poll {poll_id}",
        "reward_pool": str(reward_pool),
        "reward_per_vote": str(reward_per_vote),
        "voters": voters or [],
        "claimed": claimed or [],
        "rewards_distributed": rewards_distributed,
        "status": 1,
    }


@pytest.fixture
def node() -> FakeNode:
    node = FakeNode()
    positions = [
        [str(1_000), str(STAKED_AT), str(WEEK), str(STAKED_AT + WEEK)],
        [str(2_500), str(STAKED_AT), str(4 * WEEK + 2 * 86_400), str(STAKED_AT + 30 * 86_400)],
    ]
    polls = [
        poll_json(0, reward_pool=1000, voters=[ALICE, BOB, CAROL], claimed=[ALICE]),
        poll_json(1, reward_pool=500, voters=[ALICE, BOB], rewards_distributed=True),
    ]
    node.views.update({
        "get_pool_info": ["1000000", "1000000", "1000000", "30"],
        "get_amount_out": ["9871"],
        "get_price_impact": ["128"],
        "get_lp_position": ["250000"],
        "get_spot_price": ["100000000"],
        "is_initialized": [True],
        "get_staked_amount": ["3500"],
        "get_positions_count": [str(len(positions))],
        "get_position": lambda args: positions[int(args[1])],
        "get_total_staked": ["90000"],
        "get_stakers_count": ["12"],
        "get_poll_count": [str(len(polls))],
        "get_poll": lambda args: [polls[int(args[1])]],
    })
    return node


class FakeStats:
    def __init__(self):
        self.calls = 0
        self.body: Any = {
            "success": True,
            "data": {
                "totalUsers": 42,
                "totalVotes": 1234,
                "totalQuestionnaireCompletions": 7,
                "network": "testnet",
            },
        }
        self.status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status, json=self.body)


@pytest.fixture
def stats_api() -> FakeStats:
    return FakeStats()


class Wallet:
    """Submitter that records payloads and returns scripted hashes."""

    def __init__(self, node: FakeNode):
        self.node = node
        self.payloads: list[dict] = []
        self.error: Optional[Exception] = None
        self.next_status: Optional[dict] = {"success": True, "vm_status": "Executed successfully"}

    async def __call__(self, payload: dict) -> str:
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)
        tx_hash = f"0x{len(self.payloads):064x}"
        if self.next_status is not None:
            self.node.transactions[tx_hash] = {
                "type": "user_transaction", "hash": tx_hash, **self.next_status,
            }
        return tx_hash


@pytest.fixture
def wallet(node) -> Wallet:
    return Wallet(node)


def make_ledger(node: FakeNode, submitter=None) -> LedgerClient:
    return LedgerClient(
        RPC_URL,
        submitter=submitter,
        client=httpx.AsyncClient(transport=httpx.MockTransport(node.handler)),
    )


@pytest.fixture
def make_reconciler(node, stats_api):
    """
    Build a StateReconciler wired to the fake node.  Call it inside the
    coroutine under test so its lock and cache bind to that event loop.
    """

    def build(
        *,
        submitter=None,
        now: float = STAKED_AT + WEEK,
        staking: bool = True,
        with_stats: bool = True,
        **kwargs: Any,
    ) -> StateReconciler:
        ledger = make_ledger(node, submitter)
        stats = None
        if with_stats:
            stats = StatsClient(
                STATS_URL,
                client=httpx.AsyncClient(transport=httpx.MockTransport(stats_api.handler)),
            )
        kwargs.setdefault("confirmation_timeout", 0.0)
        return StateReconciler(
            ledger,
            swap=SwapContract(ledger, SWAP_ADDR, USDC_TYPE),
            staking_contract=StakingContract(ledger, STAKING_ADDR if staking else None),
            polls=PollContract(ledger, POLL_ADDR),
            stats=stats,
            cache=kwargs.pop("cache", SnapshotCache()),
            clock=lambda: now,
            **kwargs,
        )

    return build
