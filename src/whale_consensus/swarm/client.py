"""Single-model structured-output client.

Routes ``anthropic/...`` ids through the Anthropic SDK when a key is set and
everything else through OpenRouter's chat completions endpoint. ``query``
never raises: every failure comes back as a ``VoteFailure`` so the swarm can
keep going with the models that did answer.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TypeVar

import anthropic
import httpx
from pydantic import BaseModel, ValidationError

from whale_consensus.common.http import HttpClient
from whale_consensus.common.llm import DEFAULT_CLAUDE_MODEL, ask_claude
from whale_consensus.common.retry import NO_RETRY
from whale_consensus.config import Settings
from whale_consensus.swarm.models import ModelVote, Prediction, PredictionOutput, VoteFailure
from whale_consensus.swarm.registry import is_anthropic_model

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# OpenRouter-style names mapped to Anthropic API model ids
_ANTHROPIC_MODEL_IDS = {"claude-haiku-4.5": DEFAULT_CLAUDE_MODEL}

# Errors a provider call may surface; all of them become a failed vote.
PROVIDER_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    anthropic.APIError,
    asyncio.TimeoutError,
    ValidationError,
    ValueError,
    KeyError,
    IndexError,
    TypeError,
)


def extract_json(text: str) -> dict:
    """Pull the outermost JSON object out of a model response.

    Handles markdown code fences and leading/trailing prose.
    """
    if not isinstance(text, str):
        raise ValueError(f"expected text content, got {type(text).__name__}")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("response contains no JSON object")
    data = json.loads(text[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("response JSON is not an object")
    return data


def describe_error(exc: BaseException) -> str:
    message = str(exc) or "no details"
    return f"{type(exc).__name__}: {message}"[:200]


class ModelClient:
    """Issues one structured-output request to one named model."""

    def __init__(self, settings: Settings, timeout: float | None = None) -> None:
        self._settings = settings
        self._timeout = timeout if timeout is not None else settings.model_timeout
        self._http: HttpClient | None = None

    async def _get_http(self) -> HttpClient:
        if self._http is None:
            self._http = HttpClient(
                base_url=self._settings.openrouter_api_url,
                headers={
                    "Authorization": f"Bearer {self._settings.openrouter_api_key}",
                    "X-Title": "Whale Consensus Swarm",
                },
                timeout=self._timeout,
                retry_policy=NO_RETRY,
            )
        return self._http

    async def _openrouter_json(
        self, model_id: str, system: str, user: str, schema: type[T],
    ) -> dict:
        http = await self._get_http()
        payload = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema(by_alias=True),
                },
            },
        }
        resp = await http.post_once("/chat/completions", json=payload)
        body = resp.json()
        content = body["choices"][0]["message"]["content"]
        if not content:
            raise ValueError("model returned empty content")
        return extract_json(content)

    async def _anthropic_json(
        self, model_id: str, system: str, user: str, schema: type[T],
    ) -> dict:
        model = model_id.split("/", 1)[-1] if model_id.startswith("anthropic/") else model_id
        model = _ANTHROPIC_MODEL_IDS.get(model, model)
        schema_hint = json.dumps(schema.model_json_schema(by_alias=True))
        text = await ask_claude(
            self._settings.anthropic_api_key,
            system + "\n\nRespond with ONLY a JSON object matching this schema:\n" + schema_hint,
            user,
            model=model,
        )
        return extract_json(text)

    async def complete_json(
        self,
        model_id: str,
        system: str,
        user: str,
        schema: type[T],
        timeout: float | None = None,
    ) -> T:
        """Request a schema-conformant object; raises on any failure."""
        if is_anthropic_model(model_id) and self._settings.anthropic_api_key:
            call = self._anthropic_json(model_id, system, user, schema)
        else:
            call = self._openrouter_json(model_id, system, user, schema)
        data = await asyncio.wait_for(call, timeout=timeout if timeout is not None else self._timeout)
        return schema.model_validate(data)

    async def query(self, model_id: str, system: str, user: str) -> ModelVote:
        """Ask one model for a prediction. Always returns, never raises."""
        started = time.monotonic()
        try:
            output = await self.complete_json(model_id, system, user, PredictionOutput)
            outcome: Prediction | VoteFailure = Prediction.from_output(output)
        except asyncio.TimeoutError:
            outcome = VoteFailure(f"TimeoutError: no response within {self._timeout:g}s")
        except PROVIDER_ERRORS as exc:
            outcome = VoteFailure(describe_error(exc))
        except Exception as exc:
            logger.warning("Unexpected error from model %s: %s", model_id, exc)
            outcome = VoteFailure(describe_error(exc))
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if isinstance(outcome, VoteFailure):
            logger.debug("Model %s failed after %dms: %s", model_id, elapsed_ms, outcome.reason)
        return ModelVote(model_id=model_id, outcome=outcome, elapsed_ms=elapsed_ms)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()
            self._http = None

    async def __aenter__(self) -> ModelClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
