"""Confidence-weighted consensus over swarm votes.

The winner is picked by summed confidence, not by head count, so one
strongly-held YES can outweigh several lukewarm NOs. The reported
consensus percentage is still a head count (share of successful votes that
agree with the winner), which is what downstream thresholds consume.

Factors, risks and reasoning of the agreeing votes are merged by a
secondary model call when one is configured, with a deterministic local
merge as the fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from whale_consensus.common.retry import RetryPolicy
from whale_consensus.swarm.client import PROVIDER_ERRORS, ModelClient
from whale_consensus.swarm.models import (
    AggregationOutput,
    ConsensusResult,
    Decision,
    ModelVote,
    Prediction,
    VoteDistribution,
)
from whale_consensus.swarm.prompts import build_aggregation_prompt

logger = logging.getLogger(__name__)

MAX_KEY_FACTORS = 5
MAX_RISKS = 3
MAX_REASONING_CHARS = 500


@dataclass(frozen=True)
class Synthesis:
    key_factors: tuple[str, ...]
    risks: tuple[str, ...]
    reasoning: str


def _dedupe(items: list[str]) -> list[str]:
    """Case-insensitive, whitespace-trimmed dedup keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        key = item.strip().lower()
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def fallback_synthesis(predictions: list[Prediction]) -> Synthesis:
    """Merge factors, risks and summaries without calling a model.

    Pure function of its input: identical predictions always give an
    identical result.
    """
    factors = _dedupe([f for p in predictions for f in p.key_factors])
    risks = _dedupe([r for p in predictions for r in p.risks])
    reasoning = " | ".join(p.summary for p in predictions)
    return Synthesis(
        key_factors=tuple(factors[:MAX_KEY_FACTORS]),
        risks=tuple(risks[:MAX_RISKS]),
        reasoning=reasoning[:MAX_REASONING_CHARS],
    )


def _confidence_stats(predictions: list[Prediction]) -> tuple[float, float, float]:
    confidences = [p.confidence for p in predictions]
    return sum(confidences) / len(confidences), min(confidences), max(confidences)


class ConsensusAggregator:
    """Turn N independent votes into one decision.

    Args:
        client: model client for the synthesis call (None disables it)
        aggregation_model: model id for the synthesis call (None disables it)
        retry_policy: backoff for the synthesis call
        timeout: per-attempt timeout for the synthesis call, seconds
    """

    def __init__(
        self,
        client: ModelClient | None = None,
        aggregation_model: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._aggregation_model = aggregation_model
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout = timeout

    async def _ai_synthesis(
        self, client: ModelClient, model_id: str, votes: list[ModelVote], decision: Decision,
    ) -> Synthesis:
        system, user = build_aggregation_prompt(votes, decision)
        retrying = self._retry_policy.on_exception(lambda exc: isinstance(exc, PROVIDER_ERRORS))
        output: AggregationOutput = await retrying(
            client.complete_json,
            model_id,
            system,
            user,
            AggregationOutput,
            self._timeout,
        )
        return Synthesis(
            key_factors=tuple(output.key_factors[:MAX_KEY_FACTORS]),
            risks=tuple(output.risks[:MAX_RISKS]),
            reasoning=output.reasoning[:MAX_REASONING_CHARS],
        )

    async def synthesize(self, votes: list[ModelVote], decision: Decision) -> Synthesis:
        """Merge the agreeing votes, preferring the model call when available."""
        predictions = [v.prediction for v in votes if v.prediction is not None]
        if not predictions or self._client is None or not self._aggregation_model:
            logger.debug("Aggregation model not configured, using simple fallback")
            return fallback_synthesis(predictions)

        try:
            synthesis = await self._ai_synthesis(self._client, self._aggregation_model, votes, decision)
        except PROVIDER_ERRORS as exc:
            logger.warning("AI aggregation failed, using fallback: %s", exc)
            return fallback_synthesis(predictions)

        logger.debug("AI aggregation completed successfully")
        return synthesis

    async def aggregate(self, votes: list[ModelVote]) -> ConsensusResult:
        successful = [v for v in votes if v.ok]
        total = len(votes)

        if not successful:
            synthesis = await self.synthesize([], Decision.NO_TRADE)
            return ConsensusResult(
                decision=Decision.NO_TRADE,
                consensus_percentage=0.0,
                total_models=total,
                successful_models=0,
                reasoning=synthesis.reasoning,
                key_factors=list(synthesis.key_factors),
                risks=list(synthesis.risks),
                votes=list(votes),
            )

        distribution = VoteDistribution()
        for vote in successful:
            distribution.add(vote.decision)

        trading = [v for v in successful if v.decision.is_trading]
        if not trading:
            decision = Decision.NO_TRADE
            agreeing = successful
        else:
            yes_score = sum(v.prediction.confidence for v in trading if v.decision is Decision.YES)
            no_score = sum(v.prediction.confidence for v in trading if v.decision is Decision.NO)
            if yes_score > no_score:
                decision = Decision.YES
                agreeing = [v for v in successful if v.decision is Decision.YES]
            elif no_score > yes_score:
                decision = Decision.NO
                agreeing = [v for v in successful if v.decision is Decision.NO]
            else:
                # Tie: abstain, and every successful vote counts toward it
                decision = Decision.NO_TRADE
                agreeing = successful
            logger.debug("Weighted scores: YES=%.1f NO=%.1f -> %s", yes_score, no_score, decision.value)

        average, low, high = _confidence_stats([v.prediction for v in agreeing])
        synthesis = await self.synthesize(agreeing, decision)

        return ConsensusResult(
            decision=decision,
            consensus_percentage=len(agreeing) / len(successful) * 100,
            total_models=total,
            successful_models=len(successful),
            vote_distribution=distribution,
            average_confidence=average,
            confidence_min=low,
            confidence_max=high,
            key_factors=list(synthesis.key_factors),
            risks=list(synthesis.risks),
            reasoning=synthesis.reasoning,
            votes=list(votes),
        )
