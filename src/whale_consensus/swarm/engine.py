"""One-call swarm analysis: prompt, fan out, aggregate."""

from __future__ import annotations

import logging

from whale_consensus.common.retry import RetryPolicy
from whale_consensus.config import Settings
from whale_consensus.markets.models import Market
from whale_consensus.swarm.client import ModelClient
from whale_consensus.swarm.consensus import ConsensusAggregator
from whale_consensus.swarm.models import ConsensusResult
from whale_consensus.swarm.orchestrator import SwarmOrchestrator
from whale_consensus.swarm.prompts import build_prompt
from whale_consensus.swarm.registry import get_aggregation_model, get_configured_models

logger = logging.getLogger(__name__)


class ConsensusEngine:
    """Wires a ModelClient, SwarmOrchestrator and ConsensusAggregator from settings."""

    def __init__(self, settings: Settings, client: ModelClient | None = None) -> None:
        self._settings = settings
        self._client = client or ModelClient(settings)
        retry_policy = RetryPolicy.from_settings(settings)
        self._orchestrator = SwarmOrchestrator(
            self._client,
            max_concurrency=settings.max_concurrency,
            retry_policy=retry_policy,
        )
        self._aggregator = ConsensusAggregator(
            client=self._client,
            aggregation_model=get_aggregation_model(settings),
            retry_policy=retry_policy,
            timeout=settings.aggregation_timeout,
        )
        self.models = get_configured_models(settings)

    async def analyze(self, market: Market, yes_price: float | None = None) -> ConsensusResult:
        """Run the swarm on a market, optionally at a price other than its quote."""
        price = market.yes_price if yes_price is None else yes_price
        system, user = build_prompt(market.question, market.event_slug or market.slug, price, 1.0 - price)
        votes = await self._orchestrator.run(system, user, self.models)
        result = await self._aggregator.aggregate(votes)
        logger.info(
            "Consensus for market %s: %s (%.1f%%, %d/%d models)",
            market.market_id, result.decision.value, result.consensus_percentage,
            result.successful_models, result.total_models,
        )
        return result

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> ConsensusEngine:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
