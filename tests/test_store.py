"""Tests for the SQLite signal and trigger store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from whale_consensus.signals.models import ConfidenceLevel, Signal, Side
from whale_consensus.store import MIN_RESOLVED_FOR_WIN_RATE
from whale_consensus.swarm.models import ConsensusResult, Decision, VoteDistribution
from whale_consensus.triggers.models import (
    PriceMovementPayload,
    Trigger,
    TriggerStatus,
    TriggerType,
)


def _make_consensus(decision: Decision = Decision.YES, pct: float = 80.0) -> ConsensusResult:
    return ConsensusResult(
        decision=decision,
        consensus_percentage=pct,
        total_models=5,
        successful_models=5,
        vote_distribution=VoteDistribution(yes=4, no=1),
        average_confidence=75.0,
        confidence_min=60.0,
        confidence_max=90.0,
        key_factors=["Polling lead"],
        risks=["Late swing"],
        reasoning="Most models lean YES.",
    )


def _make_signal(trade, timestamp, market_id="m1", level=ConfidenceLevel.HIGH, decision=Decision.YES) -> Signal:
    return Signal(
        market_id=market_id,
        consensus=_make_consensus(decision),
        price_at_trigger=trade.yes_price,
        signal_timestamp=timestamp,
        confidence_level=level,
        trigger_trades=[trade],
    )


def _make_trigger(now, market_id="m1", expires_in=timedelta(hours=24), score=15.0) -> Trigger:
    return Trigger(
        market_id=market_id,
        trigger_type=TriggerType.PRICE_MOVEMENT,
        status=TriggerStatus.ACTIVE,
        payload=PriceMovementPayload(
            direction="up", magnitude=0.15, window_ms=4 * 3600 * 1000,
            start_price=0.40, current_price=0.55, started_at_ms=0,
        ),
        score=score,
        created_at=now,
        expires_at=now + expires_in,
    )


class TestSignals:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, store, make_trade, now):
        signal_id = await store.insert_signal(_make_signal(make_trade(), now))
        loaded = await store.get_signal(signal_id)

        assert loaded is not None
        assert loaded.id == signal_id
        assert loaded.decision is Decision.YES
        assert loaded.confidence_level is ConfidenceLevel.HIGH
        assert loaded.signal_timestamp == now
        assert loaded.consensus.key_factors == ["Polling lead"]
        assert loaded.trigger_trades[0].taker == "0xWhale"

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_signal(999) is None

    @pytest.mark.asyncio
    async def test_recent_signal_window(self, store, make_trade, now):
        await store.insert_signal(_make_signal(make_trade(), now))

        assert await store.get_recent_signal("m1", now - timedelta(seconds=60)) is not None
        assert await store.get_recent_signal("m1", now + timedelta(seconds=1)) is None
        assert await store.get_recent_signal("other", now - timedelta(hours=1)) is None

    @pytest.mark.asyncio
    async def test_recent_signal_is_latest(self, store, make_trade, now):
        await store.insert_signal(_make_signal(make_trade(), now - timedelta(seconds=30)))
        latest_id = await store.insert_signal(_make_signal(make_trade(), now))

        recent = await store.get_recent_signal("m1", now - timedelta(minutes=5))
        assert recent.id == latest_id

    @pytest.mark.asyncio
    async def test_append_trigger_trade(self, store, make_trade, now):
        signal_id = await store.insert_signal(_make_signal(make_trade(size=10_000), now))
        await store.append_trigger_trade(signal_id, make_trade(size=20_000, side=Side.NO, price=0.6))
        await store.append_trigger_trade(signal_id, make_trade(size=30_000))

        loaded = await store.get_signal(signal_id)
        assert [t.size for t in loaded.trigger_trades] == [10_000, 20_000, 30_000]
        assert loaded.trigger_trades[1].side is Side.NO

    @pytest.mark.asyncio
    async def test_append_to_missing_signal(self, store, make_trade):
        with pytest.raises(KeyError):
            await store.append_trigger_trade(42, make_trade())

    @pytest.mark.asyncio
    async def test_list_and_stats(self, store, make_trade, now):
        await store.insert_signal(_make_signal(make_trade(), now - timedelta(days=3), market_id="a"))
        await store.insert_signal(_make_signal(
            make_trade(), now - timedelta(hours=2), market_id="b", level=ConfidenceLevel.LOW,
        ))
        await store.insert_signal(_make_signal(
            make_trade(), now, market_id="c", decision=Decision.NO,
        ))

        listed = await store.list_signals()
        assert [s.market_id for s in listed] == ["c", "b", "a"]
        high = await store.list_signals(only_high_confidence=True)
        assert {s.market_id for s in high} == {"a", "c"}
        no_only = await store.list_signals(decision=Decision.NO)
        assert [s.market_id for s in no_only] == ["c"]

        stats = await store.get_signal_stats(now)
        assert stats["total_signals"] == 3
        assert stats["signals_last_24h"] == 2
        assert stats["signals_last_7d"] == 3
        assert stats["high_confidence_signals"] == 2
        assert stats["high_confidence_percentage"] == 67

    @pytest.mark.asyncio
    async def test_stats_empty(self, store, now):
        stats = await store.get_signal_stats(now)
        assert stats["total_signals"] == 0
        assert stats["high_confidence_percentage"] == 0


class TestTriggers:
    @pytest.mark.asyncio
    async def test_create_and_get_active(self, store, now):
        trigger_id = await store.create_trigger_if_absent(_make_trigger(now), now)
        assert trigger_id is not None

        active = await store.get_active_trigger("m1", TriggerType.PRICE_MOVEMENT, now)
        assert active.id == trigger_id
        assert active.payload.direction == "up"

    @pytest.mark.asyncio
    async def test_second_active_is_rejected(self, store, now):
        first = await store.create_trigger_if_absent(_make_trigger(now), now)
        second = await store.create_trigger_if_absent(_make_trigger(now, score=99), now)

        assert first is not None
        assert second is None
        assert len(await store.list_active_triggers(now)) == 1

    @pytest.mark.asyncio
    async def test_lapsed_active_is_replaced(self, store, now):
        """An active row past its expiry does not block a new trigger."""
        old_id = await store.create_trigger_if_absent(_make_trigger(now, expires_in=timedelta(hours=1)), now)
        later = now + timedelta(hours=2)
        new_id = await store.create_trigger_if_absent(_make_trigger(later), later)

        assert new_id is not None
        assert (await store.get_trigger(old_id)).status is TriggerStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_other_market_not_blocked(self, store, now):
        await store.create_trigger_if_absent(_make_trigger(now, market_id="a"), now)
        assert await store.create_trigger_if_absent(_make_trigger(now, market_id="b"), now) is not None

    @pytest.mark.asyncio
    async def test_mark_triggered(self, store, now):
        trigger_id = await store.create_trigger_if_absent(_make_trigger(now), now)
        await store.mark_trigger_triggered(trigger_id, now)

        trigger = await store.get_trigger(trigger_id)
        assert trigger.status is TriggerStatus.TRIGGERED
        assert trigger.triggered_at == now

        with pytest.raises(ValueError):
            await store.mark_trigger_triggered(trigger_id, now)

    @pytest.mark.asyncio
    async def test_mark_missing_trigger(self, store, now):
        with pytest.raises(KeyError):
            await store.mark_trigger_triggered(123, now)

    @pytest.mark.asyncio
    async def test_expire_triggers(self, store, now):
        short = await store.create_trigger_if_absent(
            _make_trigger(now, market_id="a", expires_in=timedelta(hours=1)), now,
        )
        await store.create_trigger_if_absent(_make_trigger(now, market_id="b"), now)

        expired = await store.expire_triggers(now + timedelta(hours=2))
        assert expired == 1
        assert (await store.get_trigger(short)).status is TriggerStatus.EXPIRED

        with pytest.raises(ValueError):
            await store.mark_trigger_triggered(short, now + timedelta(hours=2))

    @pytest.mark.asyncio
    async def test_list_active_ordered_by_score(self, store, now):
        await store.create_trigger_if_absent(_make_trigger(now, market_id="a", score=10), now)
        await store.create_trigger_if_absent(_make_trigger(now, market_id="b", score=30), now)
        await store.create_trigger_if_absent(_make_trigger(now, market_id="c", score=20), now)

        listed = await store.list_active_triggers(now)
        assert [t.market_id for t in listed] == ["b", "c", "a"]
        assert [t.market_id for t in await store.list_active_triggers(now, market_id="c")] == ["c"]


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_window_ordered_oldest_first(self, store, now):
        for minutes, price in [(300, 0.1), (120, 0.4), (60, 0.5), (0, 0.6)]:
            await store.record_price_snapshot("m1", price, now - timedelta(minutes=minutes))

        window = await store.get_price_snapshots("m1", now - timedelta(hours=4))
        assert [s.price for s in window] == [0.4, 0.5, 0.6]

    @pytest.mark.asyncio
    async def test_prune_in_batches(self, store, now):
        for i in range(5):
            await store.record_price_snapshot("m1", 0.5, now - timedelta(days=10, minutes=i))
        await store.record_price_snapshot("m1", 0.5, now)

        assert await store.prune_price_snapshots(now - timedelta(days=7), limit=3) == 3
        assert await store.prune_price_snapshots(now - timedelta(days=7), limit=3) == 2
        assert len(await store.get_price_snapshots("m1", now - timedelta(days=30))) == 1


class TestWhaleProfiles:
    @pytest.mark.asyncio
    async def test_upsert_accumulates(self, store, now):
        await store.upsert_whale_profile("0xABC", 10_000, "Politics", now)
        profile = await store.upsert_whale_profile("0xabc", 30_000, "Economics", now)

        assert profile.address == "0xabc"
        assert profile.total_trades == 2
        assert profile.total_volume == 40_000
        assert profile.avg_trade_size == 20_000
        assert profile.preferred_categories == ("Politics", "Economics")
        assert profile.win_rate is None

    @pytest.mark.asyncio
    async def test_win_rate_needs_enough_resolved_trades(self, store, now):
        await store.upsert_whale_profile("0xabc", 10_000, "", now)
        for _ in range(MIN_RESOLVED_FOR_WIN_RATE - 1):
            profile = await store.record_whale_outcome("0xabc", True)
        assert profile.win_rate is None
        assert not profile.is_smart_money

        profile = await store.record_whale_outcome("0xabc", False)
        assert profile.resolved_trades == MIN_RESOLVED_FOR_WIN_RATE
        assert profile.win_rate == pytest.approx(0.9)
        assert profile.is_smart_money

    @pytest.mark.asyncio
    async def test_outcome_for_unknown_whale(self, store):
        assert await store.record_whale_outcome("0xnobody", True) is None


class TestFilterOverrides:
    @pytest.mark.asyncio
    async def test_empty_by_default(self, store):
        assert await store.load_filter_overrides() == {}

    @pytest.mark.asyncio
    async def test_overrides_merge(self, store, now):
        await store.save_filter_overrides({"min_consensus_percentage": 70.0}, now)
        await store.save_filter_overrides({"is_enabled": False}, now)
        assert await store.load_filter_overrides() == {
            "min_consensus_percentage": 70.0,
            "is_enabled": False,
        }
