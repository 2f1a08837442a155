"""Swarm model registry: which models vote, and how they are displayed."""

from __future__ import annotations

import logging

from whale_consensus.config import Settings

logger = logging.getLogger(__name__)

MODEL_DISPLAY_NAMES: dict[str, str] = {
    "qwen/qwen3-vl-32b-instruct": "Qwen 3 VL 32B",
    "google/gemini-3-flash-preview": "Gemini 3 Flash",
    "openai/gpt-5-mini": "GPT-5 Mini",
    "anthropic/claude-haiku-4.5": "Claude Haiku 4.5",
    "z-ai/glm-4.7": "GLM 4.7",
    "x-ai/grok-4.1-fast": "Grok 4.1 Fast",
    "moonshotai/kimi-k2-thinking": "Kimi K2",
    "openai/gpt-oss-20b": "GPT OSS 20B",
    "meta-llama/llama-3.1-8b-instruct": "Llama 3.1 8B",
}


def display_name(model_id: str) -> str:
    """Human-readable name, falling back to the bare model id."""
    return MODEL_DISPLAY_NAMES.get(model_id, model_id.split("/")[-1])


def is_anthropic_model(model_id: str) -> bool:
    return model_id.startswith("anthropic/") or model_id.startswith("claude-")


def _has_provider(settings: Settings, model_id: str) -> bool:
    if is_anthropic_model(model_id) and settings.anthropic_api_key:
        return True
    return bool(settings.openrouter_api_key)


def get_configured_models(settings: Settings) -> list[str]:
    """Swarm model ids that have a provider key configured.

    Returns an empty list when no key is set, which callers treat as
    "no signal possible".
    """
    models = [m for m in settings.swarm_models if _has_provider(settings, m)]
    if not models:
        logger.warning("No swarm models configured - check OPENROUTER_API_KEY")
    return models


def get_aggregation_model(settings: Settings) -> str | None:
    """Model id for the synthesis call, or None to use the local fallback."""
    model = settings.aggregation_model
    if not model or not _has_provider(settings, model):
        return None
    return model
