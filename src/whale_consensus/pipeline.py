"""Event handlers.

Wires together: trade qualification → dedup/consensus → contrarian check →
whale profile, and price observation → snapshot → trigger detection.
Each handler is a self-contained invocation that an external scheduler may
run concurrently with others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from whale_consensus.common.types import Clock, utc_now
from whale_consensus.config import SignalFilters, Settings
from whale_consensus.markets.models import Market
from whale_consensus.signals.deduplicator import HandleResult, SignalDeduplicator
from whale_consensus.signals.models import Trade
from whale_consensus.signals.qualifier import rejection_reason, tier_for_size
from whale_consensus.store import SignalStore
from whale_consensus.swarm.engine import ConsensusEngine
from whale_consensus.triggers.detector import Detection, TriggerDetector, TriggerThresholds
from whale_consensus.triggers.models import WhaleProfile

logger = logging.getLogger(__name__)


@dataclass
class TradeOutcome:
    """What handling one whale trade produced."""

    result: HandleResult
    contrarian: Detection | None = None
    whale: WhaleProfile | None = None


@dataclass
class PriceOutcome:
    price_movement: Detection
    resolution_proximity: Detection


@dataclass
class SweepResult:
    expired_triggers: int = 0
    pruned_snapshots: int = 0
    details: list[str] = field(default_factory=list)


async def load_filters(store: SignalStore, settings: Settings) -> SignalFilters:
    """Settings-based filters with persisted overrides applied on top."""
    overrides = await store.load_filter_overrides()
    return SignalFilters.from_settings(settings).with_overrides(overrides)


async def handle_whale_trade(
    market: Market,
    trade: Trade,
    *,
    store: SignalStore,
    engine: ConsensusEngine,
    settings: Settings,
    filters: SignalFilters | None = None,
    clock: Clock = utc_now,
) -> TradeOutcome:
    """Turn one large trade into a new or aggregated signal.

    ``filters`` is resolved once per call (settings plus stored overrides)
    unless the caller passes its own.
    """
    if filters is None:
        filters = await load_filters(store, settings)

    reason = rejection_reason(trade, filters, market.question, market.event_slug or market.slug)
    if reason is not None:
        logger.debug("Trade on market %s not qualified: %s", market.market_id, reason)
        return TradeOutcome(result=HandleResult(skipped=True, reason=reason))

    tier = tier_for_size(trade.size)
    logger.info(
        "Qualified %s trade on market %s: $%.0f %s @ %.3f",
        tier.value if tier else "untiered", market.market_id, trade.size, trade.side.value, trade.price,
    )

    async def consensus_provider():
        return await engine.analyze(market, yes_price=trade.yes_price)

    deduplicator = SignalDeduplicator(store, clock=clock)
    result = await deduplicator.handle_trigger(market.market_id, trade, consensus_provider, filters)

    outcome = TradeOutcome(result=result)
    if trade.taker:
        detector = TriggerDetector(store, TriggerThresholds.from_settings(settings), clock=clock)
        outcome.contrarian = await detector.detect_contrarian_whale(
            market.market_id, trade.taker, trade.side, trade.size,
        )
        outcome.whale = await store.upsert_whale_profile(
            trade.taker, trade.size, market.category, clock(),
        )
    return outcome


async def handle_price_update(
    market_id: str,
    price: float,
    *,
    store: SignalStore,
    settings: Settings,
    estimated_resolution_at: datetime | None = None,
    clock: Clock = utc_now,
) -> PriceOutcome:
    """Record a price observation, then run the price-based detectors.

    The new snapshot is written first, so the first observation of a market
    compares against itself and never fires a price-movement trigger.
    """
    if not 0.0 <= price <= 1.0:
        raise ValueError(f"price must be in [0, 1], got {price}")

    await store.record_price_snapshot(market_id, price, clock())
    detector = TriggerDetector(store, TriggerThresholds.from_settings(settings), clock=clock)
    movement = await detector.detect_price_movement(market_id, price)
    proximity = await detector.detect_resolution_proximity(market_id, price, estimated_resolution_at)
    return PriceOutcome(price_movement=movement, resolution_proximity=proximity)


async def sweep(
    *,
    store: SignalStore,
    settings: Settings,
    clock: Clock = utc_now,
    max_batches: int = 100,
) -> SweepResult:
    """Expire stale triggers and prune snapshots past retention."""
    result = SweepResult()
    detector = TriggerDetector(store, TriggerThresholds.from_settings(settings), clock=clock)
    result.expired_triggers = await detector.expire_old_triggers()

    cutoff = clock() - timedelta(days=settings.snapshot_retention_days)
    for _ in range(max_batches):
        deleted = await store.prune_price_snapshots(cutoff, limit=1000)
        result.pruned_snapshots += deleted
        if deleted < 1000:
            break
    else:
        result.details.append("snapshot pruning stopped at batch limit")
        logger.warning("Snapshot pruning stopped after %d batches", max_batches)

    logger.info(
        "Sweep: expired %d trigger(s), pruned %d snapshot(s)",
        result.expired_triggers, result.pruned_snapshots,
    )
    return result
