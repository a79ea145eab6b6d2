"""Retry policy for hosting API calls, built on tenacity."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from histofy.constants import (
    DEFAULT_RATE_LIMIT_MAX_WAIT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from histofy.errors import (
    AuthenticationError,
    HostingAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
)
from histofy.utils.logging import get_logger

if TYPE_CHECKING:
    from histofy.models.config import DeployConfig

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def is_transient_error(error: BaseException) -> bool:
    """
    Whether an error may succeed when the same call is repeated.

    Credential, permission and not-found errors are permanent. Other hosting
    API errors, network errors and timeouts are transient.
    """
    if isinstance(error, AuthenticationError | PermissionDeniedError | NotFoundError):
        return False
    return isinstance(error, HostingAPIError | aiohttp.ClientError | TimeoutError)


class RetryPolicy:
    """Exponential backoff with a rate-limit aware wait."""

    def __init__(
        self,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        rate_limit_max_wait: float = DEFAULT_RATE_LIMIT_MAX_WAIT,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Initialize retry policy.

        Args:
            attempts: Total attempts including the first call
            base_delay: Delay before the first retry in seconds, doubled afterwards
            max_delay: Upper bound of the exponential delay
            rate_limit_max_wait: Upper bound when waiting for a quota reset
            sleep: Awaitable sleep, injectable for tests
        """
        self.attempts = attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_max_wait = rate_limit_max_wait
        self._sleep = sleep
        self._backoff = wait_exponential(multiplier=base_delay, max=max_delay)

    @classmethod
    def from_config(cls, config: "DeployConfig", sleep: SleepFunc = asyncio.sleep) -> "RetryPolicy":
        return cls(
            attempts=config.retry_attempts,
            base_delay=config.retry_base_delay_seconds,
            max_delay=config.retry_max_delay_seconds,
            rate_limit_max_wait=config.rate_limit_max_wait_seconds,
            sleep=sleep,
        )

    def compute_wait(self, retry_state: RetryCallState) -> float:
        """Seconds to wait before the next attempt."""
        backoff = self._backoff(retry_state)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitExceeded):
            return min(max(error.retry_after, backoff), self.rate_limit_max_wait)
        return backoff

    def _log_retry(self, retry_state: RetryCallState, operation: str) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retrying after transient error",
            operation=operation,
            attempt=retry_state.attempt_number,
            max_attempts=self.attempts,
            delay_seconds=round(delay, 2),
            error=str(error),
        )

    async def run(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        operation: str = "request",
        **kwargs: Any,
    ) -> Any:
        """
        Call ``func`` until it succeeds, fails permanently or attempts run out.

        The same arguments are passed to every attempt. The last error is
        re-raised unchanged.

        Args:
            func: Coroutine function to call
            *args: Positional arguments for ``func``
            operation: Label used in retry log lines
            **kwargs: Keyword arguments for ``func``

        Returns:
            Whatever ``func`` returns
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=self.compute_wait,
            retry=retry_if_exception(is_transient_error),
            before_sleep=lambda state: self._log_retry(state, operation),
            sleep=self._sleep,
            reraise=True,
        )

        return await retrying(func, *args, **kwargs)
