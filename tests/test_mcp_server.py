"""MCP tool dispatch and display formatting."""

import asyncio

from mvpulse.ledger.models import Poll, StakePosition, StakingInfo
from mvpulse.mcp.server import MirrorMCPServer, format_poll_rewards, format_staking_info

from conftest import ALICE, BOB, STAKED_AT, WEEK


def dispatch(make_reconciler, name, args=None, **kwargs):
    async def main():
        server = MirrorMCPServer(make_reconciler(**kwargs))
        return await server._dispatch(name, args or {})

    return asyncio.run(main())


def test_tool_names():
    names = {t.name for t in MirrorMCPServer._tools()}
    assert names == {
        "get_pool", "quote_swap", "get_lp_position",
        "get_staking_info", "get_poll_rewards", "get_platform_stats",
    }


def test_get_pool(make_reconciler):
    out = dispatch(make_reconciler, "get_pool")
    assert out["status"] == "ok"
    assert out["data"]["reserve_pulse"] == "0.0100 PULSE"
    assert out["data"]["reserve_usdc"] == "1.0000 USDC"
    assert out["data"]["fee"] == "0.30%"
    assert out["data"]["total_lp_shares"] == "0.1000"


def test_lp_position_shares_are_display_strings(make_reconciler):
    out = dispatch(make_reconciler, "get_lp_position", {"address": ALICE})
    assert out["data"]["shares"] == "0.0250"
    assert out["data"]["pool_share"] == "25.00%"
    assert out["data"]["value_pulse"] == "0.0025 PULSE"


def test_quote_swap_converts_display_amount(node, make_reconciler):
    out = dispatch(make_reconciler, "quote_swap", {"amount_in": "0.01", "direction": "b_to_a"})
    assert out["status"] == "ok"
    assert out["data"]["amount_in"] == "0.0100 USDC"
    # 0.01 USDC = 10_000 micro-units -> 9_871 octas of PULSE
    assert out["data"]["expected_out"] == "0.0001 PULSE"
    assert out["data"]["price_impact"] == "1.28%"


def test_not_configured_staking(make_reconciler):
    out = dispatch(make_reconciler, "get_staking_info", {"address": ALICE}, staking=False)
    assert out["status"] == "not_configured"
    assert out["data"]["total_staked"] == "0.0000 PULSE"
    assert "detail" in out


def test_poll_rewards_for_voter(make_reconciler):
    out = dispatch(make_reconciler, "get_poll_rewards", {"poll_id": 0, "address": BOB})
    data = out["data"]
    assert data["mode"] == "equal split"
    assert data["per_voter"] == "0.0000"
    assert data["claimed"] == 1
    assert "claimable" in data


def test_unknown_poll(make_reconciler):
    out = dispatch(make_reconciler, "get_poll_rewards", {"poll_id": 99})
    assert out == {"error": "Poll 99 not found"}


def test_platform_stats_placeholders(make_reconciler, stats_api):
    stats_api.status = 500
    out = dispatch(make_reconciler, "get_platform_stats")
    assert out["status"] == "network_failure"
    assert out["data"]["polls_created"] == "2+"
    assert out["data"]["active_users"] == "-"


def test_unknown_tool(make_reconciler):
    assert dispatch(make_reconciler, "place_order") == {"error": "Unknown tool: place_order"}


def test_format_staking_info():
    info = StakingInfo(
        address=ALICE,
        positions=[StakePosition(amount=150_000_000, staked_at=STAKED_AT, lock_duration=WEEK)],
        total_staked=150_000_000,
        locked_amount=150_000_000,
    )
    out = format_staking_info(info, STAKED_AT + WEEK - 60)
    position = out["positions"][0]
    assert position["amount"] == "1.5000 PULSE"
    assert position["lock"] == "7 days"
    assert position["seconds_until_unlock"] == 60
    assert not position["unlocked"]


def test_format_poll_rewards():
    poll = Poll(id=4, reward_pool=3 * 10**8, voters=[ALICE, BOB], claimed=[ALICE])
    out = format_poll_rewards(poll, BOB)
    assert out["reward_pool"] == "3.0000"
    assert out["per_voter"] == "1.5000"
    assert out["distributed"] == "1.5000"
    assert out["claimable"] == "1.5000"
