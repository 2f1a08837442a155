"""Market anomaly heuristics: price movement, contrarian whales, resolution proximity.

Every detector follows the same shape: compute a score from the market's
recent history, and when the detection condition holds write an ACTIVE
trigger with a type-specific expiry. The store refuses a second ACTIVE
trigger of the same type for a market, so a repeated detection is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from whale_consensus.common.types import Clock, to_ms, utc_now
from whale_consensus.config import Settings
from whale_consensus.signals.models import Side
from whale_consensus.store import SignalStore
from whale_consensus.triggers.models import (
    ContrarianWhalePayload,
    PriceExtremity,
    PriceMovementPayload,
    ResolutionProximityPayload,
    Trigger,
    TriggerPayload,
    TriggerStatus,
    TriggerType,
)

logger = logging.getLogger(__name__)

CONTRARIAN_BASE_SCORE = 50.0
SMART_MONEY_BONUS = 30.0
HIGH_WIN_RATE_BONUS = 20.0
HIGH_WIN_RATE = 0.60
# Trade size adds one point per $10k, up to this cap
MAX_SIZE_BONUS = 20.0

_EXTREMITY_SCORES = {
    PriceExtremity.VERY_HIGH: 40.0,
    PriceExtremity.HIGH: 25.0,
    PriceExtremity.MEDIUM: 10.0,
    PriceExtremity.LOW: 0.0,
}


@dataclass(frozen=True)
class TriggerThresholds:
    """Detection thresholds and expiries, threaded into the detector explicitly."""

    price_movement_threshold: float = 0.10
    price_movement_window: timedelta = timedelta(hours=4)
    contrarian_min_win_rate: float = 0.55
    contrarian_lookback: timedelta = timedelta(hours=24)
    resolution_proximity_days: float = 7.0
    trigger_expiry: timedelta = timedelta(hours=24)
    resolution_trigger_expiry: timedelta = timedelta(hours=72)

    @classmethod
    def from_settings(cls, settings: Settings) -> TriggerThresholds:
        return cls(
            price_movement_threshold=settings.price_movement_threshold,
            price_movement_window=timedelta(hours=settings.price_movement_window_hours),
            contrarian_min_win_rate=settings.contrarian_min_win_rate,
            contrarian_lookback=timedelta(hours=settings.contrarian_lookback_hours),
            resolution_proximity_days=settings.resolution_proximity_days,
            trigger_expiry=timedelta(hours=settings.trigger_expiry_hours),
            resolution_trigger_expiry=timedelta(hours=settings.resolution_trigger_expiry_hours),
        )


@dataclass(frozen=True)
class Detection:
    """Result of one detector call.

    ``trigger`` is set only when a new trigger was written. ``is_contrarian``
    is only meaningful for the contrarian-whale detector.
    """

    detected: bool
    trigger: Trigger | None = None
    is_contrarian: bool | None = None

    @property
    def trigger_id(self) -> int | None:
        return self.trigger.id if self.trigger is not None else None


def classify_price_extremity(price: float) -> PriceExtremity:
    """How close a price is to either end: by max(p, 1 - p)."""
    extreme = max(price, 1.0 - price)
    if extreme >= 0.9:
        return PriceExtremity.VERY_HIGH
    if extreme >= 0.8:
        return PriceExtremity.HIGH
    if extreme >= 0.7:
        return PriceExtremity.MEDIUM
    return PriceExtremity.LOW


def proximity_score(days_until_resolution: float | None) -> float:
    if days_until_resolution is None:
        return 0.0
    if days_until_resolution <= 1:
        return 40.0
    if days_until_resolution <= 3:
        return 30.0
    if days_until_resolution <= 7:
        return 20.0
    return 0.0


def contrarian_score(trade_size: float, win_rate: float | None, is_smart_money: bool) -> float:
    score = CONTRARIAN_BASE_SCORE
    if is_smart_money:
        score += SMART_MONEY_BONUS
    if win_rate is not None and win_rate > HIGH_WIN_RATE:
        score += HIGH_WIN_RATE_BONUS
    return score + min(trade_size / 10_000, MAX_SIZE_BONUS)


class TriggerDetector:
    """Runs the three heuristics for a market and owns trigger lifecycle moves."""

    def __init__(
        self,
        store: SignalStore,
        thresholds: TriggerThresholds | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._thresholds = thresholds or TriggerThresholds()
        self._clock = clock

    async def _create(
        self,
        market_id: str,
        trigger_type: TriggerType,
        payload: TriggerPayload,
        score: float,
        now: datetime,
        expiry: timedelta,
    ) -> Trigger | None:
        trigger = Trigger(
            market_id=market_id,
            trigger_type=trigger_type,
            status=TriggerStatus.ACTIVE,
            payload=payload,
            score=score,
            created_at=now,
            expires_at=now + expiry,
        )
        trigger_id = await self._store.create_trigger_if_absent(trigger, now)
        if trigger_id is None:
            logger.debug("Active %s trigger already exists for market %s", trigger_type.value, market_id)
            return None
        logger.info(
            "[TRIGGER] %s on market %s (score %.1f, id %d)",
            trigger_type.value, market_id, score, trigger_id,
        )
        return trigger

    async def detect_price_movement(self, market_id: str, current_price: float) -> Detection:
        """Compare the current price with the oldest snapshot inside the window."""
        now = self._clock()
        t = self._thresholds
        snapshots = await self._store.get_price_snapshots(market_id, now - t.price_movement_window)
        if not snapshots:
            return Detection(detected=False)

        oldest = snapshots[0]
        delta = current_price - oldest.price
        magnitude = abs(delta)
        if magnitude < t.price_movement_threshold:
            return Detection(detected=False)

        payload = PriceMovementPayload(
            direction="up" if delta > 0 else "down",
            magnitude=magnitude,
            window_ms=int(t.price_movement_window.total_seconds() * 1000),
            start_price=oldest.price,
            current_price=current_price,
            started_at_ms=to_ms(oldest.timestamp),
        )
        trigger = await self._create(
            market_id, TriggerType.PRICE_MOVEMENT, payload, magnitude * 100, now, t.trigger_expiry,
        )
        return Detection(detected=trigger is not None, trigger=trigger)

    async def detect_contrarian_whale(
        self,
        market_id: str,
        whale_address: str,
        whale_side: Side,
        trade_size: float,
    ) -> Detection:
        """Flag a large trade that bets against the market's latest trading consensus."""
        now = self._clock()
        t = self._thresholds
        signal = await self._store.get_recent_signal(market_id, now - t.contrarian_lookback)
        if signal is None or not signal.decision.is_trading:
            return Detection(detected=False)

        consensus_side = signal.decision.value
        if whale_side.value == consensus_side:
            return Detection(detected=False, is_contrarian=False)

        profile = await self._store.get_whale_profile(whale_address)
        win_rate = profile.win_rate if profile is not None else None
        is_smart_money = (profile is not None and profile.is_smart_money) or (
            win_rate is not None and win_rate >= t.contrarian_min_win_rate
        )

        score = contrarian_score(trade_size, win_rate, is_smart_money)
        payload = ContrarianWhalePayload(
            whale_address=whale_address,
            whale_side=whale_side.value,
            consensus_side=consensus_side,
            trade_size=trade_size,
            whale_win_rate=win_rate,
        )
        trigger = await self._create(
            market_id, TriggerType.CONTRARIAN_WHALE, payload, score, now, t.trigger_expiry,
        )
        if trigger is not None:
            logger.info(
                "Contrarian whale %s: %s vs consensus %s (score %.1f)",
                whale_address, whale_side.value, consensus_side, score,
            )
        return Detection(detected=trigger is not None, trigger=trigger, is_contrarian=True)

    async def detect_resolution_proximity(
        self,
        market_id: str,
        current_price: float,
        estimated_resolution_at: datetime | None = None,
    ) -> Detection:
        """Flag markets priced near an extreme or close to their resolution date."""
        now = self._clock()
        t = self._thresholds
        extremity = classify_price_extremity(current_price)

        days: float | None = None
        if estimated_resolution_at is not None:
            days = max(0.0, (estimated_resolution_at - now).total_seconds() / 86_400)

        near_resolution = days is not None and days <= t.resolution_proximity_days
        price_extreme = extremity in (PriceExtremity.VERY_HIGH, PriceExtremity.HIGH)
        if not near_resolution and not price_extreme:
            return Detection(detected=False)

        score = _EXTREMITY_SCORES[extremity] + proximity_score(days)
        payload = ResolutionProximityPayload(
            current_price=current_price,
            price_extreme_level=extremity.value,
            estimated_resolution_at_ms=(
                to_ms(estimated_resolution_at) if estimated_resolution_at is not None else None
            ),
            days_until_resolution=days,
        )
        trigger = await self._create(
            market_id, TriggerType.RESOLUTION_PROXIMITY, payload, score, now,
            t.resolution_trigger_expiry,
        )
        return Detection(detected=trigger is not None, trigger=trigger)

    async def mark_triggered(self, trigger_id: int) -> None:
        """Consume an active trigger (ACTIVE -> TRIGGERED)."""
        await self._store.mark_trigger_triggered(trigger_id, self._clock())

    async def expire_old_triggers(self) -> int:
        """Move every ACTIVE trigger past its expiry to EXPIRED."""
        expired = await self._store.expire_triggers(self._clock())
        if expired:
            logger.info("Expired %d trigger(s)", expired)
        return expired

    async def get_top_triggers(self, limit: int = 10, market_id: str | None = None) -> list[Trigger]:
        triggers = await self._store.list_active_triggers(self._clock(), market_id=market_id)
        return triggers[:limit]
