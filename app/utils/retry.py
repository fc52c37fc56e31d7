"""Exponential backoff for flaky upstream calls (OpenAI, AWS)."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.5
    cap_seconds: float = 30.0
    jitter: bool = True
    give_up_on: tuple[type[BaseException], ...] = field(default_factory=tuple)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        delay = min(self.base_delay**attempt, self.cap_seconds)
        if self.jitter:
            delay *= random.uniform(0.8, 1.2)
        return delay


def execute_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or the policy runs out of attempts.

    Exceptions listed in ``policy.give_up_on`` are raised immediately; the last
    failure is re-raised once ``max_attempts`` is reached.
    """
    max_attempts = max(policy.max_attempts, 1)
    attempt = 0
    while True:
        try:
            return func()
        except policy.give_up_on:
            raise
        except Exception as exc:
            attempt += 1
            if attempt >= max_attempts:
                logger.error("%s failed after %s attempt(s): %s", label, attempt, exc)
                raise
            delay = policy.delay_for(attempt)
            logger.warning("%s failed (attempt %s/%s), retrying in %.1fs: %s", label, attempt, max_attempts, delay, exc)
            sleep(delay)
