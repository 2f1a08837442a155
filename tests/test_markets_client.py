"""Tests for Polymarket Gamma API client."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from whale_consensus.markets.client import fetch_market, raw_to_market


def _mock_http_client(MockClient, get):
    instance = AsyncMock()
    instance.get = get
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    MockClient.return_value = instance
    return instance


def test_raw_to_market(gamma_market_response):
    market = raw_to_market(gamma_market_response)

    assert market.market_id == "540816"
    assert market.yes_price == 0.42
    assert market.no_price == 0.58
    assert market.event_slug == "fed-decision-september"
    assert market.category == "Economics"
    assert market.end_date == datetime(2025, 9, 17, 18, 0, tzinfo=timezone.utc)
    assert market.volume == 1_250_000


def test_raw_to_market_bad_prices():
    market = raw_to_market({"id": 1, "question": "Q", "outcomePrices": "not json"})
    assert (market.yes_price, market.no_price) == (0.5, 0.5)

    market = raw_to_market({"id": 2, "question": "Q", "outcomePrices": '["1.7","-0.7"]'})
    assert (market.yes_price, market.no_price) == (0.5, 0.5)


@pytest.mark.asyncio
async def test_fetch_market_by_id(gamma_market_response):
    resp = MagicMock()
    resp.json.return_value = gamma_market_response

    with patch("whale_consensus.markets.client.HttpClient") as MockClient:
        instance = _mock_http_client(MockClient, AsyncMock(return_value=resp))
        market = await fetch_market("540816")

    instance.get.assert_awaited_once_with("/markets/540816")
    assert market.question == "Will the Fed cut rates in September?"


@pytest.mark.asyncio
async def test_fetch_market_by_slug(gamma_market_response):
    resp = MagicMock()
    resp.json.return_value = [gamma_market_response]

    with patch("whale_consensus.markets.client.HttpClient") as MockClient:
        instance = _mock_http_client(MockClient, AsyncMock(return_value=resp))
        market = await fetch_market("fed-cut-september")

    instance.get.assert_awaited_once_with("/markets", params={"slug": "fed-cut-september"})
    assert market.market_id == "540816"


@pytest.mark.asyncio
async def test_fetch_market_slug_not_found():
    resp = MagicMock()
    resp.json.return_value = []

    with patch("whale_consensus.markets.client.HttpClient") as MockClient:
        _mock_http_client(MockClient, AsyncMock(return_value=resp))
        assert await fetch_market("nope") is None


@pytest.mark.asyncio
async def test_fetch_market_id_404():
    request = httpx.Request("GET", "https://gamma-api.polymarket.com/markets/1")
    error = httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))

    with patch("whale_consensus.markets.client.HttpClient") as MockClient:
        _mock_http_client(MockClient, AsyncMock(side_effect=error))
        assert await fetch_market("1") is None


@pytest.mark.asyncio
async def test_fetch_market_server_error_propagates():
    request = httpx.Request("GET", "https://gamma-api.polymarket.com/markets/1")
    error = httpx.HTTPStatusError("500", request=request, response=httpx.Response(500, request=request))

    with patch("whale_consensus.markets.client.HttpClient") as MockClient:
        _mock_http_client(MockClient, AsyncMock(side_effect=error))
        with pytest.raises(httpx.HTTPStatusError):
            await fetch_market("1")
