"""Market trigger data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import TypeAlias


class TriggerType(Enum):
    PRICE_MOVEMENT = "price_movement"
    CONTRARIAN_WHALE = "contrarian_whale"
    RESOLUTION_PROXIMITY = "resolution_proximity"


class TriggerStatus(Enum):
    """Lifecycle: ACTIVE -> TRIGGERED or ACTIVE -> EXPIRED; both terminal."""

    ACTIVE = "active"
    TRIGGERED = "triggered"
    EXPIRED = "expired"


class PriceExtremity(Enum):
    VERY_HIGH = "very_high"  # max(p, 1-p) >= 0.90
    HIGH = "high"  # >= 0.80
    MEDIUM = "medium"  # >= 0.70
    LOW = "low"


@dataclass(frozen=True)
class PriceMovementPayload:
    direction: str  # "up" or "down"
    magnitude: float
    window_ms: int
    start_price: float
    current_price: float
    started_at_ms: int


@dataclass(frozen=True)
class ContrarianWhalePayload:
    whale_address: str
    whale_side: str
    consensus_side: str
    trade_size: float
    whale_win_rate: float | None = None


@dataclass(frozen=True)
class ResolutionProximityPayload:
    current_price: float
    price_extreme_level: str
    estimated_resolution_at_ms: int | None = None
    days_until_resolution: float | None = None


TriggerPayload: TypeAlias = PriceMovementPayload | ContrarianWhalePayload | ResolutionProximityPayload

_PAYLOAD_TYPES: dict[TriggerType, type] = {
    TriggerType.PRICE_MOVEMENT: PriceMovementPayload,
    TriggerType.CONTRARIAN_WHALE: ContrarianWhalePayload,
    TriggerType.RESOLUTION_PROXIMITY: ResolutionProximityPayload,
}


def payload_to_dict(payload: TriggerPayload) -> dict:
    return asdict(payload)


def payload_from_dict(trigger_type: TriggerType, data: dict) -> TriggerPayload:
    return _PAYLOAD_TYPES[trigger_type](**data)


@dataclass
class Trigger:
    """A time-bounded market anomaly flag.

    At most one ACTIVE trigger exists per (market_id, trigger_type).
    """

    market_id: str
    trigger_type: TriggerType
    status: TriggerStatus
    payload: TriggerPayload
    score: float
    created_at: datetime
    expires_at: datetime
    triggered_at: datetime | None = None
    id: int | None = None


@dataclass(frozen=True)
class PriceSnapshot:
    market_id: str
    price: float
    timestamp: datetime
    id: int | None = None


@dataclass
class WhaleProfile:
    """Track record of a large trader.

    ``win_rate`` is a fraction in [0, 1] and stays None until enough trades
    have resolved to make it meaningful.
    """

    address: str
    total_trades: int = 0
    total_volume: float = 0.0
    resolved_trades: int = 0
    correct_predictions: int = 0
    win_rate: float | None = None
    is_smart_money: bool = False
    preferred_categories: tuple[str, ...] = ()

    @property
    def avg_trade_size(self) -> float:
        return self.total_volume / self.total_trades if self.total_trades else 0.0
