"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from whale_consensus.common.retry import RetryPolicy
from whale_consensus.config import Settings, SignalFilters
from whale_consensus.markets.models import Market
from whale_consensus.signals.models import Side, Trade
from whale_consensus.store import SignalStore
from whale_consensus.swarm.models import Decision, ModelVote, Prediction, VoteFailure


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeModelClient:
    """Stands in for ModelClient: answers from a per-model script.

    ``script`` maps a model id to a list of outcomes returned on successive
    calls; the last outcome repeats once the list runs out.
    """

    def __init__(self, script: dict[str, list[Prediction | VoteFailure]]) -> None:
        self.script = script
        self.calls: list[str] = []

    async def query(self, model_id: str, system: str, user: str) -> ModelVote:
        self.calls.append(model_id)
        outcomes = self.script[model_id]
        index = min(self.calls.count(model_id) - 1, len(outcomes) - 1)
        return ModelVote(model_id=model_id, outcome=outcomes[index], elapsed_ms=5)

    async def close(self) -> None:
        pass


def make_prediction(
    decision: Decision,
    confidence: float = 70.0,
    factors: tuple[str, ...] = ("factor",),
    risks: tuple[str, ...] = (),
    summary: str = "summary",
) -> Prediction:
    return Prediction(
        decision=decision, confidence=confidence,
        key_factors=factors, risks=risks, summary=summary,
    )


def make_vote(model_id: str, decision: Decision, confidence: float = 70.0, **kwargs) -> ModelVote:
    return ModelVote(model_id=model_id, outcome=make_prediction(decision, confidence, **kwargs))


def failed_vote(model_id: str, reason: str = "TimeoutError: boom") -> ModelVote:
    return ModelVote(model_id=model_id, outcome=VoteFailure(reason))


@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FakeClock(now)


@pytest.fixture
def tmp_db():
    """Temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_signals.db"


@pytest.fixture
def store(tmp_db):
    return SignalStore(db_path=tmp_db)


@pytest.fixture
def settings(tmp_db):
    """Settings isolated from the environment: no keys, temp database."""
    return Settings(
        _env_file=None,
        openrouter_api_key="",
        anthropic_api_key="",
        db_path=tmp_db,
    )


@pytest.fixture
def filters():
    return SignalFilters()


@pytest.fixture
def fast_retry():
    """Backoff policy that never sleeps."""
    return RetryPolicy(base_delay=0.0, max_retries=3)


@pytest.fixture
def sample_market():
    return Market(
        market_id="540816",
        question="Will the Fed cut rates in September?",
        yes_price=0.42,
        no_price=0.58,
        slug="fed-cut-september",
        event_slug="fed-decision-september",
        category="Economics",
    )


@pytest.fixture
def make_trade(now):
    def _make(
        size: float = 25_000.0,
        price: float = 0.42,
        side: Side = Side.YES,
        taker: str | None = "0xWhale",
        timestamp: datetime | None = None,
    ) -> Trade:
        return Trade(size=size, price=price, side=side, timestamp=timestamp or now, taker=taker)

    return _make


@pytest.fixture
def gamma_market_response():
    """Mock Gamma API market payload."""
    return {
        "id": "540816",
        "question": "Will the Fed cut rates in September?",
        "slug": "fed-cut-september",
        "category": "Economics",
        "outcomePrices": '["0.42","0.58"]',
        "endDate": "2025-09-17T18:00:00Z",
        "volume": "1250000",
        "liquidity": "84000",
        "active": True,
        "events": [{"slug": "fed-decision-september"}],
    }
