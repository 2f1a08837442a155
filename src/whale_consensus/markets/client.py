"""Polymarket Gamma API client (read-only)."""

from __future__ import annotations

import json
import logging
from datetime import datetime

import httpx

from whale_consensus.common.http import HttpClient
from whale_consensus.config import get_settings
from whale_consensus.markets.models import Market

logger = logging.getLogger(__name__)


def _parse_iso(s: str | None) -> datetime | None:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None


def _event_slug(raw: dict) -> str:
    events = raw.get("events") or []
    if events and isinstance(events[0], dict):
        return events[0].get("slug", "") or ""
    return raw.get("eventSlug", "") or ""


def raw_to_market(raw: dict) -> Market:
    """Convert a raw Gamma API market dict to a Market.

    Prices come from ``outcomePrices`` (a JSON-encoded string list), or
    default to 0.5 if not available.
    """
    market_id = str(raw.get("id", ""))
    yes_price = 0.5
    no_price = 0.5

    outcome_prices = raw.get("outcomePrices", "")
    if outcome_prices:
        try:
            prices = json.loads(outcome_prices) if isinstance(outcome_prices, str) else outcome_prices
            if len(prices) >= 2:
                yes_price = float(prices[0])
                no_price = float(prices[1])
        except (json.JSONDecodeError, ValueError, TypeError, IndexError):
            logger.debug("Failed to parse outcomePrices for market %s", market_id)

    if not (0.0 <= yes_price <= 1.0 and 0.0 <= no_price <= 1.0):
        logger.warning(
            "Market %s has out-of-range prices: YES=%.4f, NO=%.4f, defaulting to 0.5",
            market_id, yes_price, no_price,
        )
        yes_price, no_price = 0.5, 0.5

    return Market(
        market_id=market_id,
        question=raw.get("question", ""),
        yes_price=yes_price,
        no_price=no_price,
        slug=raw.get("slug", "") or "",
        event_slug=_event_slug(raw),
        category=raw.get("category", "") or "",
        end_date=_parse_iso(raw.get("endDate") or raw.get("end_date_iso")),
        volume=float(raw.get("volume", 0) or 0),
        liquidity=float(raw.get("liquidity", 0) or 0),
        active=raw.get("active", True),
    )


async def fetch_market(market_ref: str) -> Market | None:
    """Fetch one market by numeric ID or slug. Returns None if not found."""
    settings = get_settings()
    async with HttpClient(base_url=settings.gamma_api_url) as client:
        if market_ref.isdigit():
            try:
                resp = await client.get(f"/markets/{market_ref}")
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 404:
                    return None
                raise
            raw = resp.json()
        else:
            resp = await client.get("/markets", params={"slug": market_ref})
            results = resp.json()
            if not results:
                return None
            raw = results[0]

    if not raw:
        return None
    return raw_to_market(raw)
