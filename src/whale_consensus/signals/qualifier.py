"""Cheap pre-filters deciding whether a whale trade is worth a swarm run."""

from __future__ import annotations

import re
from enum import Enum

from whale_consensus.config import SignalFilters
from whale_consensus.signals.models import Trade

IGNORE_CRYPTO_KEYWORDS = (
    "bitcoin", "btc", "ethereum", "eth", "crypto", "solana", "sol",
    "dogecoin", "doge", "shiba", "cardano", "ada", "ripple", "xrp",
)

IGNORE_SPORTS_KEYWORDS = (
    "nba", "nfl", "mlb", "nhl", "mls", "ufc", "boxing", "football",
    "basketball", "baseball", "hockey", "soccer", "super bowl",
    "world series", "playoffs", "championship", "lakers", "warriors",
    "celtics", "knicks", "heat", "bucks", "cowboys", "patriots", "chiefs",
    "eagles", "packers", "yankees", "dodgers", "red sox", "mets",
    "premier league", "la liga", "champions league", "tennis", "golf",
    "nascar", "formula 1", "f1", "cricket",
)

# Whole-word match, so "eth" does not hit "method" and "sol" does not hit "resolve"
_IGNORE_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in IGNORE_CRYPTO_KEYWORDS + IGNORE_SPORTS_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


class TradeTier(Enum):
    BRONZE = "bronze"  # $5k - $15k
    SILVER = "silver"  # $15k - $50k
    GOLD = "gold"  # $50k - $100k
    PLATINUM = "platinum"  # $100k+


def tier_for_size(size: float) -> TradeTier | None:
    """Size bucket of a trade; None below the $5k floor."""
    if size < 5_000:
        return None
    if size < 15_000:
        return TradeTier.BRONZE
    if size < 50_000:
        return TradeTier.SILVER
    if size < 100_000:
        return TradeTier.GOLD
    return TradeTier.PLATINUM


def ignored_keyword(*texts: str) -> str | None:
    """First crypto/sports keyword found in any of the texts."""
    for text in texts:
        match = _IGNORE_PATTERN.search(text or "")
        if match:
            return match.group(1).lower()
    return None


def rejection_reason(
    trade: Trade,
    filters: SignalFilters,
    title: str = "",
    event_slug: str = "",
) -> str | None:
    """Why a trade should not produce a signal, or None if it qualifies.

    Prices at or beyond the ignore bounds are near-settled markets where a
    large fill carries no information.
    """
    if not filters.is_enabled:
        return "signal generation disabled"
    if trade.size < filters.min_trade_size:
        return f"trade size ${trade.size:,.0f} below ${filters.min_trade_size:,.0f}"
    if trade.price <= filters.min_price or trade.price >= filters.max_price:
        return f"price {trade.price:.3f} outside ({filters.min_price}, {filters.max_price})"
    keyword = ignored_keyword(title, event_slug.replace("-", " "))
    if keyword is not None:
        return f"ignored market category ({keyword})"
    return None
