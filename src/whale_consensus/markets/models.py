"""Market data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Market:
    """A Polymarket binary market as seen by the signal engine."""

    market_id: str
    question: str
    yes_price: float  # Current YES price (0-1)
    no_price: float
    slug: str = ""
    event_slug: str = ""
    category: str = ""
    end_date: datetime | None = None
    volume: float = 0.0
    liquidity: float = 0.0
    active: bool = True
