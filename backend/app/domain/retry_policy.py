"""Exponential backoff policy for failed processing attempts."""

import random
from dataclasses import dataclass

from app.domain.exceptions import ConfigurationError

# 2**63 ms is far beyond any sane max delay; larger exponents add nothing.
_MAX_EXPONENT = 63


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of consulting the policy after a failed attempt."""

    should_retry: bool
    delay_ms: float

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


class RetryPolicy:
    """Decides whether a failed job gets another attempt and how long to wait.

    ``delay(n) = min(base_delay_ms * 2**n, max_delay_ms)``, optionally spread by
    a symmetric jitter of ``±jitter_ratio`` and clamped back to
    ``[0, max_delay_ms]``. Jitter draws from a private ``random.Random`` so a
    ``seed`` makes timings reproducible; ``jitter_ratio=0`` disables it.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: float = 1000,
        max_delay_ms: float = 30000,
        jitter_ratio: float = 0.2,
        seed: int | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
        if base_delay_ms < 0 or max_delay_ms < 0:
            raise ConfigurationError("retry delays must be non-negative")
        if max_delay_ms < base_delay_ms:
            raise ConfigurationError(
                f"max_delay_ms ({max_delay_ms}) must be >= base_delay_ms ({base_delay_ms})"
            )
        if not 0 <= jitter_ratio < 1:
            raise ConfigurationError(f"jitter_ratio must be in [0, 1), got {jitter_ratio}")

        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.jitter_ratio = jitter_ratio
        self._rng = random.Random(seed)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        """Build the policy from application Settings."""
        return cls(
            max_attempts=settings.job_max_attempts,
            base_delay_ms=settings.job_retry_base_delay_ms,
            max_delay_ms=settings.job_retry_max_delay_ms,
            jitter_ratio=settings.job_retry_jitter_ratio,
            seed=settings.job_retry_jitter_seed,
        )

    @property
    def jitter_enabled(self) -> bool:
        return self.jitter_ratio > 0

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay(self, attempt: int) -> float:
        """Backoff in milliseconds to wait after ``attempt`` failed attempts."""
        exponent = min(max(attempt, 0), _MAX_EXPONENT)
        delay = min(self.base_delay_ms * (2**exponent), self.max_delay_ms)
        if self.jitter_enabled:
            delay += self._rng.uniform(-self.jitter_ratio, self.jitter_ratio) * delay
        return float(max(0.0, min(delay, self.max_delay_ms)))

    def decide(self, attempt: int) -> RetryDecision:
        if not self.should_retry(attempt):
            return RetryDecision(should_retry=False, delay_ms=0.0)
        return RetryDecision(should_retry=True, delay_ms=self.delay(attempt))
