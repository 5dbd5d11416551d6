import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from sec_shares_config import DEFAULT_BACKOFF_SECONDS
from sec_shares_errors import ExtractionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_REQUESTS_PER_SECOND = 10


class RateLimiter:
    def __init__(self, max_requests_per_second: float) -> None:
        self.min_interval = 1.0 / max_requests_per_second
        self.last_time = 0.0

    def wait(self) -> None:
        now = time.monotonic()
        wait_for = self.min_interval - (now - self.last_time)
        if wait_for > 0:
            time.sleep(wait_for)
        self.last_time = time.monotonic()


def linear_backoff(step_seconds: float = DEFAULT_BACKOFF_SECONDS) -> Callable[[int], float]:
    def backoff(attempt: int) -> float:
        return step_seconds * attempt

    return backoff


def is_retryable(exc: ExtractionError) -> bool:
    return exc.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """How many extra attempts to make, how long to wait, and for which errors.

    ``backoff`` receives the 1-based number of the retry about to happen.
    Errors rejected by ``retryable`` are raised immediately.
    """

    max_retries: int = 0
    backoff: Callable[[int], float] = field(default_factory=linear_backoff)
    retryable: Callable[[ExtractionError], bool] = is_retryable
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def linear(cls, max_retries: int, step_seconds: float = DEFAULT_BACKOFF_SECONDS) -> "RetryPolicy":
        return cls(max_retries=max_retries, backoff=linear_backoff(step_seconds))

    def call(self, operation: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return operation()
            except ExtractionError as exc:
                if attempt >= self.max_retries or not self.retryable(exc):
                    raise
                attempt += 1
                delay = self.backoff(attempt)
                logger.warning(
                    "request failed (%s); retry %d of %d in %.2fs",
                    exc,
                    attempt,
                    self.max_retries,
                    delay,
                )
                if delay > 0:
                    self.sleep(delay)


NO_RETRY = RetryPolicy()
