"""
Bounded retry with fixed or exponential backoff.

A thin, injectable wrapper around ``tenacity.Retrying`` so the catalog pull and
any other flaky external call share one tested implementation. The ``sleep``
callable is injectable so tests run without real delays.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Tuple, Type

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

logger = logging.getLogger(__name__)

FIXED = "fixed"
EXPONENTIAL = "exponential"


@dataclass
class RetryPolicy:
    """Retry configuration for one class of operation.

    Attributes:
        max_attempts: Total attempts including the first one
        delay_seconds: Fixed delay, or the base delay for exponential backoff
        backoff: ``"fixed"`` or ``"exponential"``
        max_delay_seconds: Upper bound for exponential delays
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function used between attempts
    """
    max_attempts: int = 3
    delay_seconds: float = 2.0
    backoff: str = FIXED
    max_delay_seconds: float = 60.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        if self.backoff not in (FIXED, EXPONENTIAL):
            raise ValueError(f"Unknown backoff strategy: {self.backoff}")

    def _wait_strategy(self):
        if self.backoff == EXPONENTIAL:
            return wait_exponential(multiplier=self.delay_seconds, max=self.max_delay_seconds)
        return wait_fixed(self.delay_seconds)

    def retrying(self) -> Retrying:
        """Build a fresh tenacity controller for one call."""
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait_strategy(),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run *fn* until it succeeds or attempts are exhausted.

        The last exception is re-raised unchanged when every attempt fails.
        """
        return self.retrying()(fn, *args, **kwargs)
