"""Time-locked staking: lock catalog and the locked/unlockable partition."""

import logging

import pytest

from mvpulse.core import staking
from mvpulse.errors import InvalidLockDuration
from mvpulse.ledger.models import StakePosition

WEEK = 604_800
T0 = 1_700_000_000


def position(amount: int, days: int = 7, staked_at: int = T0) -> StakePosition:
    return StakePosition(amount=amount, staked_at=staked_at, lock_duration=days * 86_400)


@pytest.fixture
def positions() -> list[StakePosition]:
    return [
        position(1_000, 7),
        position(2_000, 30),
        position(500, 7, staked_at=T0 + 3_600),
        position(4_000, 365),
    ]


class TestUnlockBoundary:

    def test_unlocks_exactly_at_unlock_time(self):
        p = position(1_000, 7)
        assert p.unlock_at == T0 + WEEK
        assert not staking.is_unlocked(p, T0 + WEEK - 1)
        assert staking.is_unlocked(p, T0 + WEEK)

    def test_seconds_until_unlock(self):
        p = position(1_000, 7)
        assert staking.seconds_until_unlock(p, T0) == WEEK
        assert staking.seconds_until_unlock(p, T0 + WEEK + 10) == 0


class TestPartition:

    @pytest.mark.parametrize("now", [
        T0 - 1, T0, T0 + WEEK - 1, T0 + WEEK, T0 + WEEK + 3_600,
        T0 + 30 * 86_400, T0 + 400 * 86_400,
    ])
    def test_buckets_sum_to_total(self, positions, now):
        total = staking.total_staked(positions)
        assert staking.locked_amount(positions, now) + staking.unlockable_amount(positions, now) == total

    def test_partition_preserves_order(self, positions):
        locked, unlockable = staking.partition(positions, T0 + WEEK)
        assert [p.amount for p in unlockable] == [1_000]
        assert [p.amount for p in locked] == [2_000, 500, 4_000]

    def test_next_unlock_at(self, positions):
        assert staking.next_unlock_at(positions, T0) == T0 + WEEK
        assert staking.next_unlock_at(positions, T0 + WEEK) == T0 + 3_600 + WEEK
        assert staking.next_unlock_at(positions, T0 + 366 * 86_400) is None

    def test_empty(self):
        info = staking.summarize("0xa", [], T0)
        assert (info.total_staked, info.locked_amount, info.unlockable_amount) == (0, 0, 0)


class TestSummarize:

    def test_totals(self, positions):
        info = staking.summarize("0xa", positions, T0 + WEEK + 3_600,
                                 pool_total_staked=99_999, stakers_count=3)
        assert info.total_staked == 7_500
        assert info.unlockable_amount == 1_500
        assert info.locked_amount == 6_000
        assert info.pool_total_staked == 99_999
        assert info.stakers_count == 3
        assert info.as_of == T0 + WEEK + 3_600

    def test_off_catalog_position_is_reported(self, caplog):
        odd = StakePosition(amount=10, staked_at=T0, lock_duration=12_345)
        with caplog.at_level(logging.WARNING, logger="mvpulse.core.staking"):
            info = staking.summarize("0xa", [position(1), odd], T0)
        assert info.total_staked == 11
        assert "non-catalog lock duration 12345s" in caplog.text


class TestLockCatalog:

    @pytest.mark.parametrize("days", [7, 14, 21, 30, 90, 180, 365])
    def test_catalog_accepted(self, days):
        assert staking.validate_lock_duration(days * 86_400) == days * 86_400

    @pytest.mark.parametrize("seconds", [0, 1, WEEK - 1, WEEK + 1, 60 * 86_400, 730 * 86_400])
    def test_other_durations_rejected(self, seconds):
        with pytest.raises(InvalidLockDuration):
            staking.validate_lock_duration(seconds)

    def test_lock_anomalies(self):
        ps = [position(1), StakePosition(amount=2, staked_at=T0, lock_duration=5)]
        assert staking.lock_anomalies(ps) == [(1, ps[1])]
