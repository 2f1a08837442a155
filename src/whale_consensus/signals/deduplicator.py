"""Time-windowed signal deduplication.

A burst of whale trades on one market usually reflects one piece of news.
The first qualifying trade pays for a swarm consensus and creates a signal;
every trade landing inside the dedup window after it is appended to that
signal instead of triggering another round of model calls.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from whale_consensus.common.types import Clock, utc_now
from whale_consensus.config import SignalFilters
from whale_consensus.signals.models import Signal, Trade, confidence_level_for
from whale_consensus.store import SignalStore
from whale_consensus.swarm.models import ConsensusResult

logger = logging.getLogger(__name__)

ConsensusProvider = Callable[[], Awaitable[ConsensusResult]]


@dataclass(frozen=True)
class HandleResult:
    """Outcome of feeding one trade through the deduplicator.

    Exactly one of these holds: a new signal was created, the trade was
    merged into an existing signal (``created`` False, ``skipped`` False),
    or no signal was produced (``skipped`` True, ``reason`` set).
    """

    signal_id: int | None = None
    created: bool = False
    skipped: bool = False
    reason: str = ""
    consensus: ConsensusResult | None = None


class SignalDeduplicator:
    """Create-or-merge signals per market.

    The recent-signal lookup and the insert are separate store calls, so
    two concurrent handlers for the same market can both miss and create
    two signals inside one window. At-least-one per window is accepted.
    """

    def __init__(self, store: SignalStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def handle_trigger(
        self,
        market_id: str,
        trade: Trade,
        consensus_provider: ConsensusProvider,
        filters: SignalFilters,
    ) -> HandleResult:
        now = self._clock()
        since = now - timedelta(milliseconds=filters.dedup_window_ms)

        recent = await self._store.get_recent_signal(market_id, since)
        if recent is not None and recent.id is not None:
            await self._store.append_trigger_trade(recent.id, trade)
            logger.info(
                "Aggregated trade into signal %d for market %s (%d trades)",
                recent.id, market_id, len(recent.trigger_trades) + 1,
            )
            return HandleResult(signal_id=recent.id, created=False, consensus=recent.consensus)

        consensus = await consensus_provider()

        if consensus.total_models == 0:
            logger.warning("No swarm models available, skipping signal for market %s", market_id)
            return HandleResult(skipped=True, reason="no models configured", consensus=consensus)

        if consensus.consensus_percentage < filters.min_consensus_percentage:
            logger.info(
                "Consensus %.1f%% below minimum %.1f%% for market %s, skipping",
                consensus.consensus_percentage, filters.min_consensus_percentage, market_id,
            )
            return HandleResult(
                skipped=True,
                reason=(
                    f"consensus {consensus.consensus_percentage:.1f}% below "
                    f"{filters.min_consensus_percentage:.1f}%"
                ),
                consensus=consensus,
            )

        signal = Signal(
            market_id=market_id,
            consensus=consensus,
            price_at_trigger=trade.yes_price,
            # Stamped after the swarm returns, so the window opens when the signal exists
            signal_timestamp=self._clock(),
            confidence_level=confidence_level_for(
                consensus.consensus_percentage,
                filters.high_confidence_threshold,
                filters.medium_confidence_threshold,
            ),
            trigger_trades=[trade],
        )
        signal_id = await self._store.insert_signal(signal)
        logger.info(
            "Created signal %d for market %s: %s (%.1f%% consensus, %s confidence)",
            signal_id, market_id, consensus.decision.value,
            consensus.consensus_percentage, signal.confidence_level.value,
        )
        return HandleResult(signal_id=signal_id, created=True, consensus=consensus)
