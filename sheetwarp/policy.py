"""Retry policy used by translation providers."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .errors import TransientServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransientServiceError)


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with jitter.

    ``max_attempts`` counts the first call, so ``max_attempts=6`` allows five
    retries. The wait before retry ``n`` (zero based) is
    ``base_delay * 2 ** n`` plus a jitter drawn from ``[0, max_jitter)``.
    """

    max_attempts: int = 6
    base_delay: float = 5.0
    max_jitter: float = 1.0
    retryable: Callable[[BaseException], bool] = _is_transient
    sleep: Callable[[float], None] = time.sleep
    jitter: Callable[[float, float], float] = field(default=random.uniform, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

    def delay_for(self, retry_number: int) -> float:
        """Return the wait before the given retry (zero based)."""

        backoff = self.base_delay * (2 ** retry_number)
        if self.max_jitter <= 0:
            return backoff
        return backoff + self.jitter(0.0, self.max_jitter)

    def run(self, operation: Callable[[], T], *, description: str = "request") -> T:
        """Call ``operation`` until it succeeds or a non-retryable error occurs."""

        attempt = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                attempt += 1
                if not self.retryable(exc) or attempt >= self.max_attempts:
                    raise
                wait_time = self.delay_for(attempt - 1)
                logger.warning(
                    "%s failed (%s). Retrying in %.1fs (attempt %d/%d).",
                    description.capitalize(),
                    exc,
                    wait_time,
                    attempt,
                    self.max_attempts - 1,
                )
                self.sleep(wait_time)


NO_RETRY = RetryPolicy(max_attempts=1)
