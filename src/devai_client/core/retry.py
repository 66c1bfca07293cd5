"""Retry policy and backoff timing for the transport client."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times a request is attempted and how long to wait in between.

    Attributes:
        max_attempts: Total attempts per logical request (first try included)
        base_delay_ms: Delay before the second attempt
        backoff_multiplier: Growth factor applied per attempt
        jitter: Optional +/- ratio applied to each delay; 0 keeps delays deterministic
    """
    max_attempts: int = 2
    base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    def delay_ms(self, attempt: int) -> float:
        """
        Delay after the given zero-based attempt.

        0 -> base, 1 -> base*m, 2 -> base*m^2, ...
        """
        delay = self.base_delay_ms * (self.backoff_multiplier ** attempt)
        if self.jitter > 0:
            delay = random.uniform(delay * (1.0 - self.jitter), delay * (1.0 + self.jitter))
        return delay

    def delay_seconds(self, attempt: int) -> float:
        return self.delay_ms(attempt) / 1000.0

    def is_last_attempt(self, attempt: int) -> bool:
        return attempt >= self.max_attempts - 1
