"""Tests for CLI commands with mocked market data and swarm."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from whale_consensus.cli import app
from whale_consensus.swarm.models import ConsensusResult, Decision, VoteDistribution

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_db):
    """Point the CLI at a temp database with no provider keys."""
    monkeypatch.setenv("DB_PATH", str(tmp_db))
    monkeypatch.setenv("OPENROUTER_API_KEY", "")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")


@pytest.fixture
def consensus():
    return ConsensusResult(
        decision=Decision.YES,
        consensus_percentage=80.0,
        total_models=5,
        successful_models=5,
        vote_distribution=VoteDistribution(yes=4, no=1),
        average_confidence=74.0,
        confidence_min=60.0,
        confidence_max=88.0,
        key_factors=["Cooling inflation"],
        risks=["Strong payrolls"],
        reasoning="Most models expect a cut.",
    )


@pytest.fixture
def mock_engine(consensus):
    engine = MagicMock()
    engine.analyze = AsyncMock(return_value=consensus)
    engine.__aenter__ = AsyncMock(return_value=engine)
    engine.__aexit__ = AsyncMock(return_value=False)
    with patch("whale_consensus.swarm.engine.ConsensusEngine", return_value=engine):
        yield engine


def _soon() -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=12)).isoformat()


class TestAnalyzeCommand:
    def test_analyze_json(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            result = runner.invoke(app, ["analyze", "540816", "--output", "json"])

        assert result.exit_code == 0
        assert '"consensusPercentage": 80.0' in result.output
        mock_engine.analyze.assert_awaited_once()

    def test_analyze_table(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            result = runner.invoke(app, ["analyze", "fed-cut-september"])

        assert result.exit_code == 0
        assert "Cooling inflation" in result.output

    def test_analyze_unknown_market(self, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = None
            result = runner.invoke(app, ["analyze", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestTradeCommand:
    def test_trade_creates_signal(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            result = runner.invoke(
                app, ["trade", "540816", "--size", "25000", "--price", "0.42", "--taker", "0xwhale"],
            )

        assert result.exit_code == 0
        assert "Created signal 1" in result.output

        listed = runner.invoke(app, ["signals", "--output", "json"])
        data = json.loads(listed.output)
        assert data[0]["market_id"] == "540816"
        assert data[0]["trigger_trades"][0]["taker"] == "0xwhale"

    def test_trade_skipped(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            result = runner.invoke(app, ["trade", "540816", "--size", "100", "--price", "0.42"])

        assert result.exit_code == 0
        assert "Skipped" in result.output
        mock_engine.analyze.assert_not_awaited()

    def test_trade_second_is_aggregated(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            runner.invoke(app, ["trade", "540816", "--size", "25000", "--price", "0.42"])
            result = runner.invoke(
                app, ["trade", "540816", "--size", "9000", "--price", "0.40", "--side", "NO"],
            )

        assert result.exit_code == 0
        assert "Aggregated into signal 1" in result.output

    def test_trade_invalid_price(self, sample_market, mock_engine):
        with patch("whale_consensus.markets.client.fetch_market", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = sample_market
            result = runner.invoke(app, ["trade", "540816", "--size", "25000", "--price", "1.4"])

        assert result.exit_code != 0


class TestTriggerCommands:
    def test_price_then_triggers(self):
        first = runner.invoke(app, ["price", "m1", "0.5"])
        assert first.exit_code == 0
        assert "no new trigger" in first.output

        flagged = runner.invoke(app, ["price", "m1", "0.5", "--resolves", _soon()])
        assert flagged.exit_code == 0
        assert "Resolution proximity trigger" in flagged.output

        listed = runner.invoke(app, ["triggers", "--output", "json"])
        data = json.loads(listed.output)
        assert data[0]["trigger_type"] == "resolution_proximity"

    def test_price_bad_timestamp(self):
        result = runner.invoke(app, ["price", "m1", "0.5", "--resolves", "next tuesday"])
        assert result.exit_code != 0

    def test_triggers_empty(self):
        result = runner.invoke(app, ["triggers"])
        assert result.exit_code == 0
        assert "No active triggers" in result.output

    def test_sweep(self):
        result = runner.invoke(app, ["sweep"])
        assert result.exit_code == 0
        assert "Expired 0 trigger(s)" in result.output


class TestAdminCommands:
    def test_stats(self):
        result = runner.invoke(app, ["--verbose", "stats"])
        assert result.exit_code == 0
        assert "Total signals: 0" in result.output

    def test_filters_override(self):
        result = runner.invoke(app, ["filters", "--disable", "--min-consensus", "70"])
        assert result.exit_code == 0
        assert "Saved 2 override(s)" in result.output
        assert "is_enabled: False" in result.output

        shown = runner.invoke(app, ["filters"])
        assert "min_consensus_percentage: 70.0" in shown.output
