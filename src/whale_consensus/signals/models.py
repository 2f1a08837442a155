"""Signal data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from whale_consensus.common.types import from_ms, to_ms
from whale_consensus.swarm.models import ConsensusResult, Decision


class Side(Enum):
    """Outcome token a trade bought."""

    YES = "YES"
    NO = "NO"


class ConfidenceLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def confidence_level_for(
    consensus_percentage: float,
    high_threshold: float = 80.0,
    medium_threshold: float = 60.0,
) -> ConfidenceLevel:
    """Bucket a consensus percentage: >= high -> high, >= medium -> medium, else low."""
    if consensus_percentage >= high_threshold:
        return ConfidenceLevel.HIGH
    if consensus_percentage >= medium_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


@dataclass(frozen=True)
class Trade:
    """A large trade observed on a market.

    Attributes:
        size: notional size in USD
        price: fill price of the bought side (0-1)
        side: which outcome token was bought
        timestamp: when the trade happened
        taker: wallet address of the taker, if known
    """

    size: float
    price: float
    side: Side
    timestamp: datetime
    taker: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.price <= 1.0:
            raise ValueError(f"price must be in [0, 1], got {self.price}")
        if self.size < 0:
            raise ValueError(f"size must be >= 0, got {self.size}")

    @property
    def yes_price(self) -> float:
        """Implied YES price: a NO fill at p means YES trades at 1 - p."""
        return self.price if self.side is Side.YES else 1.0 - self.price

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "price": self.price,
            "side": self.side.value,
            "taker": self.taker,
            "timestamp": to_ms(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Trade:
        return cls(
            size=float(data["size"]),
            price=float(data["price"]),
            side=Side(data["side"]),
            taker=data.get("taker"),
            timestamp=from_ms(int(data["timestamp"])),
        )


@dataclass
class Signal:
    """A consensus-backed trading signal for one market.

    ``trigger_trades`` starts with the trade that caused the signal and only
    grows while later trades land inside the dedup window.
    """

    market_id: str
    consensus: ConsensusResult
    price_at_trigger: float
    signal_timestamp: datetime
    confidence_level: ConfidenceLevel
    trigger_trades: list[Trade] = field(default_factory=list)
    id: int | None = None

    @property
    def decision(self) -> Decision:
        return self.consensus.decision

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence_level is ConfidenceLevel.HIGH
