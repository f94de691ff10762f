import time
import logging
from typing import Callable, TypeVar, Optional

from .errors import TransientInferenceError, RateLimitError
from .rate_limiter import RateLimiter

T = TypeVar('T')


class RetryPolicy:
    """Retries transient inference failures with exponential backoff.

    Delay before retry n (1-based) is delay_base ** n seconds, or the
    provider's retry_after when a rate limit reports one. Malformed
    responses and other errors propagate immediately.
    """
    def __init__(
        self,
        max_retries: int = 3,
        delay_base: float = 2.0,
        rate_limiter: Optional[RateLimiter] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.max_retries = max_retries
        self.delay_base = delay_base
        self.rate_limiter = rate_limiter
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    def delay_for(self, attempt: int, error: Exception) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return float(error.retry_after)
        return self.delay_base ** attempt

    def execute_with_retry(self, fn: Callable[[], T], description: str = "request") -> T:
        attempt = 0
        while True:
            try:
                if self.rate_limiter:
                    self.rate_limiter.acquire()
                return fn()

            except TransientInferenceError as e:
                attempt += 1
                if isinstance(e, RateLimitError) and self.rate_limiter:
                    self.rate_limiter.record_429(e.retry_after)

                if attempt > self.max_retries:
                    self.logger.debug(f"{description}: retries exhausted after {attempt} attempts: {e}")
                    raise

                delay = self.delay_for(attempt, e)
                self.logger.debug(
                    f"{description}: {type(e).__name__} ({e}), retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                self._sleep(delay)
