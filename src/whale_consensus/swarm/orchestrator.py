"""Concurrent fan-out of one analysis request to every swarm model.

Each model call is retried independently with exponential backoff. A
semaphore caps how many calls are in flight at once, to respect provider
rate limits. ``run`` only returns after every model has either answered or
exhausted its retries.
"""

from __future__ import annotations

import asyncio
import logging
import time

from whale_consensus.common.retry import RetryPolicy
from whale_consensus.swarm.client import ModelClient
from whale_consensus.swarm.models import ModelVote

logger = logging.getLogger(__name__)


class SwarmOrchestrator:
    """Query a set of models concurrently and collect one vote per model."""

    def __init__(
        self,
        client: ModelClient,
        max_concurrency: int = 4,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._client = client
        self._max_concurrency = max_concurrency
        self._retry_policy = retry_policy or RetryPolicy()

    async def _query_with_retry(
        self,
        sem: asyncio.Semaphore,
        model_id: str,
        system: str,
        user: str,
    ) -> ModelVote:
        attempts = 0

        async def _attempt() -> ModelVote:
            nonlocal attempts
            attempts += 1
            async with sem:
                return await self._client.query(model_id, system, user)

        vote = await self._retry_policy.on_result(lambda v: not v.ok)(_attempt)
        if not vote.ok:
            logger.info("Model %s gave up after %d attempt(s): %s", model_id, attempts, vote.error)
        elif attempts > 1:
            logger.debug("Model %s succeeded on attempt %d", model_id, attempts)
        return vote

    async def run(self, system: str, user: str, models: list[str]) -> list[ModelVote]:
        """Query every model and return exactly one vote per model.

        Votes are returned in completion order, not request order.
        """
        if not models:
            return []

        logger.info("Querying %d model(s): %s", len(models), ", ".join(models))
        started = time.monotonic()
        sem = asyncio.Semaphore(self._max_concurrency)

        tasks = [
            asyncio.ensure_future(self._query_with_retry(sem, model_id, system, user))
            for model_id in models
        ]
        votes: list[ModelVote] = []
        for next_done in asyncio.as_completed(tasks):
            votes.append(await next_done)

        total_ms = int((time.monotonic() - started) * 1000)
        logger.info("All %d model(s) finished in %dms", len(votes), total_ms)
        for vote in votes:
            if vote.prediction is not None:
                logger.debug(
                    "  %s: %s (%g%% confidence, %dms)",
                    vote.model_id, vote.prediction.decision.value,
                    vote.prediction.confidence, vote.elapsed_ms,
                )
            else:
                logger.debug("  %s: ERROR %s (%dms)", vote.model_id, (vote.error or "")[:50], vote.elapsed_ms)
        return votes
