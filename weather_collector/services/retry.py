"""Bounded retry with exponential backoff for provider calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from weather_collector.core.config import Settings
from weather_collector.services.metrics import PROVIDER_RETRIES_TOTAL
from weather_collector.services.provider import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised once the retry budget is spent on retryable failures."""

    def __init__(self, attempts: int, last_error: Exception, reason: str = "") -> None:
        self.attempts = attempts
        self.last_error = last_error
        message = (
            f"Failed to fetch weather data after {attempts} attempts. "
            f"Last error: {last_error}"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RetryController:
    """Retry a single-attempt callable on retryable ``ProviderError``s.

    After failed attempt ``k`` the controller waits ``backoff_base ** k``
    seconds, so the second attempt runs ~2s after the first and the third
    ~4s after the second. Terminal errors propagate on the first failure.
    ``max_elapsed_seconds`` bounds wall-clock time across all attempts.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        max_elapsed_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.max_elapsed_seconds = max_elapsed_seconds
        self._sleep = sleep
        self._clock = clock
        self.last_attempts = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryController":
        return cls(
            max_attempts=settings.weather_max_retries,
            backoff_base=settings.weather_backoff_base_seconds,
            max_elapsed_seconds=settings.weather_max_elapsed_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        return float(self.backoff_base ** attempt)

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        started = self._clock()
        self.last_attempts = 0
        last_error: ProviderError | None = None

        for attempt in range(1, self.max_attempts + 1):
            self.last_attempts = attempt
            logger.info("Provider attempt %s/%s", attempt, self.max_attempts)
            try:
                return fn(*args, **kwargs)
            except ProviderError as exc:
                if not exc.retryable:
                    logger.warning("Provider attempt %s failed with terminal error: %s", attempt, exc)
                    raise
                last_error = exc
                logger.warning("Provider attempt %s failed: %s", attempt, exc)

            if attempt == self.max_attempts:
                break
            delay = self.delay_for(attempt)
            if self.max_elapsed_seconds is not None:
                elapsed = self._clock() - started
                if elapsed + delay > self.max_elapsed_seconds:
                    raise RetryExhaustedError(
                        attempt,
                        last_error,
                        reason=f"time budget of {self.max_elapsed_seconds:g}s exhausted",
                    )
            logger.info("Waiting %.1fs before retry", delay)
            PROVIDER_RETRIES_TOTAL.inc()
            self._sleep(delay)

        raise RetryExhaustedError(self.last_attempts, last_error)


__all__ = ["RetryController", "RetryExhaustedError"]
