"""Read-only MCP server exposing mirrored MVPulse state."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Optional

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from ..core import rewards
from ..core.amounts import (
    PULSE,
    USDC,
    Token,
    format_compact_count,
    format_compact_reward,
    format_with_symbol,
    to_display,
    to_smallest_unit,
)
from ..core.staking import LOCK_PERIODS, seconds_until_unlock
from ..ledger.models import (
    LiquidityPosition,
    Pool,
    Poll,
    StakingInfo,
    SwapDirection,
    SwapQuote,
)
from ..mirror.config import load_config
from ..mirror.reconciler import ReadResult, StateReconciler, build_reconciler

logger = logging.getLogger(__name__)

# Poll rewards are funded in 8-decimal tokens (MOVE or PULSE)
REWARD_DECIMALS = 8

# LP shares mint as isqrt(pulse * usdc), so they carry (8 + 6) / 2 decimals
LP_DECIMALS = 7

_ADDRESS_SCHEMA = {
    "type": "object",
    "properties": {
        "address": {
            "type": "string",
            "description": "Account address (0x...).",
        },
    },
    "required": ["address"],
}


class MirrorMCPServer:

    def __init__(self, reconciler: StateReconciler, name: str = "mvpulse"):
        self.reconciler = reconciler
        self.server = Server(name)
        self._register_handlers()

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self._tools()

        @self.server.call_tool()
        async def call_tool(
            name: str, arguments: dict[str, Any]
        ) -> list[types.TextContent]:
            try:
                result = await self._dispatch(name, arguments or {})
                text = json.dumps(result, indent=2, default=str)
            except Exception as e:
                logger.error("Tool %s failed: %s", name, e)
                text = json.dumps({"error": str(e), "tool": name}, indent=2)
            return [types.TextContent(type="text", text=text)]

    @staticmethod
    def _tools() -> list[types.Tool]:
        return [
            types.Tool(
                name="get_pool",
                description=(
                    "Get the PULSE/USDC pool: reserves, total LP shares, fee and "
                    "spot price. Reports 'not_configured' if the pool has no liquidity."
                ),
                inputSchema={"type": "object", "properties": {}},
            ),
            types.Tool(
                name="quote_swap",
                description=(
                    "Estimate a swap against the current pool snapshot. "
                    "Returns expected output, price impact and the minimum output "
                    "after slippage. This is an estimate, not ledger state."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "amount_in": {
                            "type": "string",
                            "description": "Input amount in display units, e.g. '12.5'.",
                        },
                        "direction": {
                            "type": "string",
                            "enum": [d.value for d in SwapDirection],
                            "description": "'a_to_b' sells PULSE for USDC, 'b_to_a' the reverse.",
                        },
                        "slippage_bps": {
                            "type": "integer",
                            "description": "Slippage tolerance in basis points. Default 50.",
                        },
                    },
                    "required": ["amount_in", "direction"],
                },
            ),
            types.Tool(
                name="get_lp_position",
                description=(
                    "Get an account's LP shares, its share of the pool and the "
                    "PULSE/USDC those shares are worth now."
                ),
                inputSchema=_ADDRESS_SCHEMA,
            ),
            types.Tool(
                name="get_staking_info",
                description=(
                    "Get an account's PULSE stake positions with lock status, plus "
                    "unlockable and locked totals."
                ),
                inputSchema=_ADDRESS_SCHEMA,
            ),
            types.Tool(
                name="get_poll_rewards",
                description=(
                    "Get reward accounting for one poll: pool, per-voter reward, "
                    "amount distributed so far and, if an address is given, what "
                    "that address can still claim."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "poll_id": {"type": "integer", "description": "Poll id."},
                        "address": {
                            "type": "string",
                            "description": "Optional voter address.",
                        },
                    },
                    "required": ["poll_id"],
                },
            ),
            types.Tool(
                name="get_platform_stats",
                description=(
                    "Get landing-page statistics: polls created, total responses, "
                    "rewards distributed and active users."
                ),
                inputSchema={"type": "object", "properties": {}},
            ),
        ]

    async def _dispatch(self, name: str, args: dict[str, Any]) -> Any:
        r = self.reconciler

        if name == "get_pool":
            result = await r.get_pool()
            spot = await r.get_spot_price() if result.ok else None
            return _envelope(result, format_pool(result.value, spot.value if spot else None))

        if name == "quote_swap":
            direction = SwapDirection(args["direction"])
            token_in, token_out = (PULSE, USDC) if direction.a_is_input else (USDC, PULSE)
            amount_in = to_smallest_unit(args["amount_in"], token_in.decimals)
            result = await r.get_swap_quote(amount_in, direction, args.get("slippage_bps"))
            return _envelope(result, format_quote(result.value, token_in, token_out))

        if name == "get_lp_position":
            result = await r.get_lp_position(args["address"])
            return _envelope(result, format_lp_position(result.value))

        if name == "get_staking_info":
            result = await r.get_staking_info(args["address"])
            return _envelope(result, format_staking_info(result.value, r.now()))

        if name == "get_poll_rewards":
            result = await r.get_poll(int(args["poll_id"]))
            if result.ok and result.value is None:
                return {"error": f"Poll {args['poll_id']} not found"}
            return _envelope(result, format_poll_rewards(result.value, args.get("address")))

        if name == "get_platform_stats":
            result = await r.get_platform_stats()
            stats = result.value
            return _envelope(result, {
                "polls_created": _compact(stats.polls_created, format_compact_count),
                "total_responses": _compact(stats.total_responses, format_compact_count),
                "rewards_distributed": _compact(stats.rewards_distributed, format_compact_reward),
                "active_users": _compact(stats.active_users, format_compact_count),
            })

        return {"error": f"Unknown tool: {name}"}

    async def run(self) -> None:
        logger.info("Starting MCP server '%s' ...", self.server.name)
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


# ── Formatting ───────────────────────────────────────────────────────

def _envelope(result: ReadResult, data: Any) -> dict:
    out = {"status": result.status.value, "data": data}
    if result.detail:
        out["detail"] = result.detail
    return out


def _compact(value: Optional[int], fmt) -> str:
    return "-" if value is None else fmt(value)


def format_pool(pool: Optional[Pool], spot: Optional[float] = None) -> Optional[dict]:
    if pool is None:
        return None
    return {
        "reserve_pulse": format_with_symbol(pool.reserve_a, PULSE),
        "reserve_usdc": format_with_symbol(pool.reserve_b, USDC),
        "total_lp_shares": to_display(pool.total_lp_shares, LP_DECIMALS),
        "fee": f"{pool.fee_bps / 100:.2f}%",
        "spot_price": f"{spot:.6f} USDC per PULSE" if spot is not None else None,
    }


def format_quote(quote: Optional[SwapQuote], token_in: Token, token_out: Token) -> Optional[dict]:
    if quote is None:
        return None
    return {
        "amount_in": format_with_symbol(quote.amount_in, token_in),
        "expected_out": format_with_symbol(quote.amount_out, token_out),
        "min_out": format_with_symbol(quote.min_amount_out, token_out),
        "price_impact": f"{quote.price_impact_bps / 100:.2f}%",
        "slippage": f"{quote.slippage_bps / 100:.2f}%",
        "verified_on_chain": quote.verified,
    }


def format_lp_position(position: LiquidityPosition) -> dict:
    return {
        "shares": to_display(position.shares, LP_DECIMALS),
        "pool_share": f"{position.pool_share_bps / 100:.2f}%",
        "value_pulse": format_with_symbol(position.value_a, PULSE),
        "value_usdc": format_with_symbol(position.value_b, USDC),
    }


def _lock_label(seconds: int) -> str:
    for period in LOCK_PERIODS:
        if period.seconds == seconds:
            return period.label
    return f"{seconds}s"


def format_staking_info(info: StakingInfo, now: int) -> dict:
    positions = []
    for index, p in enumerate(info.positions):
        remaining = seconds_until_unlock(p, now)
        positions.append({
            "index": index,
            "amount": format_with_symbol(p.amount, PULSE),
            "lock": _lock_label(p.lock_duration),
            "unlock_at": p.unlock_at,
            "unlocked": remaining == 0,
            "seconds_until_unlock": remaining,
        })
    return {
        "address": info.address,
        "total_staked": format_with_symbol(info.total_staked, PULSE),
        "unlockable": format_with_symbol(info.unlockable_amount, PULSE),
        "locked": format_with_symbol(info.locked_amount, PULSE),
        "pool_total_staked": format_with_symbol(info.pool_total_staked, PULSE),
        "stakers": info.stakers_count,
        "positions": positions,
    }


def format_poll_rewards(poll: Optional[Poll], address: Optional[str] = None) -> Optional[dict]:
    if poll is None:
        return None
    out = {
        "poll_id": poll.poll_id,
        "title": poll.title,
        "mode": "equal split" if poll.is_equal_split else "fixed per vote",
        "reward_pool": to_display(poll.reward_pool, REWARD_DECIMALS),
        "per_voter": to_display(rewards.per_voter_reward(poll), REWARD_DECIMALS),
        "voters": len(poll.voters),
        "claimed": len(poll.claimed),
        "distributed": to_display(rewards.distributed_total(poll), REWARD_DECIMALS),
        "remaining": to_display(rewards.remaining_pool(poll), REWARD_DECIMALS),
    }
    if address:
        out["claimable"] = to_display(
            rewards.claimable_reward(poll, address), REWARD_DECIMALS
        )
    return out


# ── Entry point ──────────────────────────────────────────────────────

async def run(config_path: str = "config.yaml") -> None:
    reconciler = build_reconciler(load_config(config_path))
    try:
        await MirrorMCPServer(reconciler).run()
    finally:
        await reconciler.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="MVPulse read-only MCP server")
    parser.add_argument(
        "--config", default="config.yaml", help="Config file path"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run(args.config))


if __name__ == "__main__":
    main()
