"""Bounded exponential retry for search backend calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from pydantic import BaseModel, Field

from searcher.errors import RETRYABLE_STATUSES, status_of

logger = structlog.get_logger()

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Backoff parameters for the retry-limited executor.

    The defaults give delays of 200, 800, 3200 and 12800 ms.

    Attributes:
        delay_ms: Delay before the first retry.
        factor: Multiplier applied to the delay after each retry.
        max_attempts: Total attempts, including the first call.
    """

    delay_ms: int = Field(default=200, ge=0)
    factor: float = Field(default=4, ge=1)
    max_attempts: int = Field(default=4, ge=1)


class RetryLimiter:
    """Runs backend actions under a bounded retry policy.

    Only rate limiting (429) and upstream unavailability (502) are
    retried. Everything else aborts on the first failure. Actions must
    be safe to repeat; no idempotency checks are made here.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            policy: Backoff parameters. Uses defaults if None.
            sleep: Coroutine used to wait between attempts.
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """Check whether an error is worth another attempt.

        Args:
            error: Exception raised by a backend action.

        Returns:
            True for 429 and 502 statuses.
        """
        return status_of(error) in RETRYABLE_STATUSES

    async def execute(
        self,
        operation: str,
        action: Callable[[], Awaitable[T]],
    ) -> T:
        """Await an action, retrying transient backend failures.

        Args:
            operation: Name used in log lines ("Search", "Create", ...).
            action: Zero-argument coroutine factory for one backend call.

        Returns:
            The action's result.

        Raises:
            Exception: The last error raised by the action, unchanged.
        """
        delay = self.policy.delay_ms
        attempt = 0
        while True:
            try:
                return await action()
            except Exception as e:
                attempt += 1
                if not self.is_retryable(e):
                    logger.info(
                        "search_operation_failed",
                        operation=operation,
                        attempt=attempt,
                        error=str(e),
                    )
                    raise
                if attempt >= self.policy.max_attempts:
                    logger.info(
                        "search_retries_exhausted",
                        operation=operation,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise
                logger.debug(
                    "search_retry",
                    operation=operation,
                    attempt=attempt,
                    delay_ms=delay,
                    error=str(e),
                )
                await self._sleep(delay / 1000)
                delay = delay * self.policy.factor
