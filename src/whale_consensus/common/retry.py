"""Exponential backoff policy shared by every outbound call site."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from whale_consensus.config import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule as data.

    Attributes:
        base_delay: seconds to wait before the first retry
        multiplier: growth factor applied to each subsequent delay
        max_retries: retries after the initial attempt (0 = single attempt)
        max_delay: upper bound on any single wait
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_retries: int = 3
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            max_retries=settings.max_retries,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delays(self) -> list[float]:
        """Wait before each retry, in order: base, base*m, base*m^2, ..."""
        return [
            min(self.base_delay * self.multiplier**i, self.max_delay)
            for i in range(self.max_retries)
        ]

    def _wait(self) -> wait_exponential:
        # tenacity computes multiplier * exp_base ** (attempt - 1)
        return wait_exponential(
            multiplier=self.base_delay,
            exp_base=self.multiplier,
            min=0,
            max=self.max_delay,
        )

    def on_exception(self, predicate: Callable[[BaseException], bool]) -> AsyncRetrying:
        """Retry while the wrapped call raises an exception matching ``predicate``.

        The last exception is re-raised once attempts are exhausted.
        """
        return AsyncRetrying(
            retry=retry_if_exception(predicate),
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            reraise=True,
        )

    def on_result(self, predicate: Callable[[Any], bool]) -> AsyncRetrying:
        """Retry while the wrapped call returns a value matching ``predicate``.

        Once attempts are exhausted the last returned value is handed back
        instead of raising ``RetryError``.
        """
        return AsyncRetrying(
            retry=retry_if_result(predicate),
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry_error_callback=_last_result,
        )


def _last_result(state: RetryCallState) -> Any:
    return state.outcome.result()


NO_RETRY = RetryPolicy(base_delay=0.0, max_retries=0)
