"""Application configuration via pydantic-settings."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SWARM_MODELS = [
    "qwen/qwen3-vl-32b-instruct",
    "google/gemini-3-flash-preview",
    "openai/gpt-5-mini",
    "z-ai/glm-4.7",
    "x-ai/grok-4.1-fast",
    "moonshotai/kimi-k2-thinking",
    "openai/gpt-oss-20b",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # OpenRouter key; without it no swarm models are configured
    openrouter_api_key: str = ""

    # OpenRouter chat completions base URL
    openrouter_api_url: str = "https://openrouter.ai/api/v1"

    # Anthropic API key; routes "anthropic/..." model ids through the SDK
    anthropic_api_key: str = ""

    # Models queried for every analysis
    swarm_models: list[str] = list(DEFAULT_SWARM_MODELS)

    # Model used to synthesize factors/risks/reasoning ("" disables it)
    aggregation_model: str = "meta-llama/llama-3.1-8b-instruct"

    # Polymarket Gamma API base URL
    gamma_api_url: str = "https://gamma-api.polymarket.com"

    # HTTP request timeout seconds (market data)
    http_timeout: float = 30.0

    # Max simultaneously in-flight model calls
    max_concurrency: int = 4

    # Exponential backoff: first delay, growth factor, retry count
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0
    max_retries: int = 3

    # Per-attempt timeouts (seconds)
    model_timeout: float = 120.0
    aggregation_timeout: float = 30.0

    # Signal moderation
    signals_enabled: bool = True
    dedup_window_ms: int = 60_000
    min_consensus_percentage: float = 60.0
    high_confidence_threshold: float = 80.0
    medium_confidence_threshold: float = 60.0
    min_trade_size: float = 5000.0
    min_price: float = 0.02
    max_price: float = 0.98

    # Trigger detection
    price_movement_threshold: float = 0.10
    price_movement_window_hours: float = 4.0
    contrarian_min_win_rate: float = 0.55
    contrarian_lookback_hours: float = 24.0
    resolution_proximity_days: float = 7.0
    trigger_expiry_hours: float = 24.0
    resolution_trigger_expiry_hours: float = 72.0
    snapshot_retention_days: float = 7.0

    # SQLite database path
    db_path: Path = Path.home() / ".whale-consensus" / "signals.db"

    @field_validator("max_concurrency")
    @classmethod
    def _concurrency_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {v}")
        return v

    @field_validator("max_retries")
    @classmethod
    def _retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must be >= 0, got {v}")
        return v

    @field_validator(
        "min_consensus_percentage",
        "high_confidence_threshold",
        "medium_confidence_threshold",
    )
    @classmethod
    def _percentage_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"percentage must be in [0, 100], got {v}")
        return v

    @field_validator("min_price", "max_price", "price_movement_threshold", "contrarian_min_win_rate")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"value must be in [0, 1], got {v}")
        return v


def get_settings() -> Settings:
    """Load settings from the environment and .env file."""
    return Settings()


@dataclass(frozen=True)
class SignalFilters:
    """Moderation thresholds for one handler invocation.

    Built once per invocation and passed down explicitly, so a run sees a
    consistent set of thresholds even if the persisted overrides change
    mid-flight.
    """

    is_enabled: bool = True
    dedup_window_ms: int = 60_000
    min_consensus_percentage: float = 60.0
    high_confidence_threshold: float = 80.0
    medium_confidence_threshold: float = 60.0
    min_trade_size: float = 5000.0
    min_price: float = 0.02
    max_price: float = 0.98

    @classmethod
    def from_settings(cls, settings: Settings) -> SignalFilters:
        return cls(
            is_enabled=settings.signals_enabled,
            dedup_window_ms=settings.dedup_window_ms,
            min_consensus_percentage=settings.min_consensus_percentage,
            high_confidence_threshold=settings.high_confidence_threshold,
            medium_confidence_threshold=settings.medium_confidence_threshold,
            min_trade_size=settings.min_trade_size,
            min_price=settings.min_price,
            max_price=settings.max_price,
        )

    def with_overrides(self, overrides: dict[str, object]) -> SignalFilters:
        """Return a copy with known fields replaced; unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known and v is not None})
