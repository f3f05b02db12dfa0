"""Retry policy for calls to external AI providers.

The policy is an injected value rather than module state so tests can swap in
a zero-delay policy.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from app.core.exceptions import TransientProviderError
from app.core.metrics import record_provider_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _no_sleep(_: float) -> None:
    return None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_jitter_seconds: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_jitter_seconds < 0:
            raise ValueError("retry delays must be non-negative")

    @classmethod
    def no_delay(cls, max_attempts: int = 3) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, base_delay_seconds=0.0, max_jitter_seconds=0.0, sleep=_no_sleep)

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is zero based)."""
        delay = self.base_delay_seconds * (2**attempt)
        if self.max_jitter_seconds:
            delay += random.uniform(0, self.max_jitter_seconds)
        return delay

    def run(self, func: Callable[[], T], *, operation: str) -> T:
        """Call ``func`` until it succeeds or the attempts run out.

        Only ``TransientProviderError`` is retried. Anything else propagates on
        the first occurrence. When every attempt fails the last transient error
        is re-raised.
        """
        for attempt in range(self.max_attempts):
            try:
                return func()
            except TransientProviderError as exc:
                if attempt + 1 >= self.max_attempts:
                    logger.error(
                        "%s exhausted retries attempts=%s error=%s",
                        operation,
                        self.max_attempts,
                        exc,
                    )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s transient failure attempt=%s/%s retry_in=%.2fs error=%s",
                    operation,
                    attempt + 1,
                    self.max_attempts,
                    delay,
                    exc,
                )
                record_provider_retry(operation)
                self.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
