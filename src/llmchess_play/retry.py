"""
Exponential backoff with jitter for move acquisition.

delay(n) = 2**n * base_delay_s + uniform(MIN_JITTER_S, jitter_max_s)

Jitter is always strictly positive, and with base_delay_s >= jitter_max_s / 2
delays never decrease from one attempt to the next. The random source and the
sleep function are injectable.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import Settings
from .errors import AttemptFailed, ErrorKind

log = logging.getLogger("retry")

MIN_JITTER_S = 0.001


@dataclass
class BackoffPolicy:
    max_retries: int = 5
    base_delay_s: float = 4.0
    jitter_max_s: float = 1.0
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self):
        # at least one attempt is always made
        self.max_retries = max(1, int(self.max_retries))

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> "BackoffPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay_s=settings.retry_base_delay_s,
            jitter_max_s=settings.retry_jitter_s,
            rng=rng or random.Random(),
            sleep=sleep or time.sleep,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        upper = max(self.jitter_max_s, MIN_JITTER_S)
        jitter = self.rng.uniform(MIN_JITTER_S, upper)
        return (2 ** attempt) * self.base_delay_s + jitter

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries

    def wait(self, attempt: int, error: AttemptFailed) -> float:
        """Sleep before the next attempt and return the delay used."""
        delay = self.delay_for(attempt)
        if error.kind == ErrorKind.RATE_LIMITED:
            log.warning("Rate limit detected on attempt %d/%d; waiting %.1fs", attempt, self.max_retries, delay)
        else:
            log.warning(
                "Attempt %d/%d failed (%s: %s); retrying in %.1fs",
                attempt,
                self.max_retries,
                error.kind.value,
                error.message,
                delay,
            )
        self.sleep(delay)
        return delay
