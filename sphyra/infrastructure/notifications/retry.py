"""Retry policy for outbound notification calls.

The policy is plain configuration handed to the channel, so attempts, backoff
and the retryability predicate can be tested without a real gateway.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ...exceptions import ChannelTransientFailure

logger = logging.getLogger(__name__)


def is_retryable_gateway_error(exc: BaseException) -> bool:
    """Timeouts, connection failures and 5xx/429 responses are worth another try."""
    if isinstance(exc, ChannelTransientFailure):
        return True
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return False


@dataclass
class RetryPolicy:
    max_retries: int = 3  # retries after the first attempt
    backoff_base: float = 1.0
    backoff_max: float = 10.0
    jitter: float = 0.5
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_gateway_error)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def retrying(self, sleep: Callable[[float], None] = time.sleep) -> Retrying:
        return Retrying(
            retry=retry_if_exception(self.is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(initial=self.backoff_base, max=self.backoff_max, jitter=self.jitter),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )
