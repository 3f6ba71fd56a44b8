"""Retry handler with exponential backoff for pipeline operations."""

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger("chunk_embed_service.retry_handler")


class RetryConfig:
    """Configuration for retry behavior.

    The defaults give three attempts in total with 100 ms then 200 ms of
    backoff between them.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retryable_exceptions: tuple = (Exception,),
        respect_retryable_flag: bool = True
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions
        self.respect_retryable_flag = respect_retryable_flag


class RetryHandler:
    """Handles retry logic with exponential backoff.

    Every invocation keeps its own attempt counter and delay, so one handler
    can be shared by concurrent callers. ``asyncio.CancelledError`` is never
    caught: cancelling the caller abandons a pending backoff sleep or an
    in-flight attempt and no further attempts are made.
    """

    def __init__(
        self,
        config: RetryConfig,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self.config = config
        self._sleep = sleep or asyncio.sleep

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        operation_name: str = "unknown",
        **kwargs
    ) -> Any:
        """Execute ``func`` with retry logic.

        Returns the first successful result. Once the attempt budget is
        exhausted the exception from the final attempt is re-raised as is.
        Exceptions flagged ``retryable = False`` are re-raised immediately
        when ``respect_retryable_flag`` is set.
        """
        for attempt in range(self.config.max_attempts):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                if attempt > 0:
                    logger.info(
                        "Operation succeeded after retry",
                        operation=operation_name,
                        attempt=attempt + 1,
                        total_attempts=self.config.max_attempts
                    )

                return result

            except self.config.retryable_exceptions as e:
                if self.config.respect_retryable_flag and not getattr(e, "retryable", True):
                    logger.error(
                        "Operation failed with permanent error",
                        operation=operation_name,
                        attempt=attempt + 1,
                        error=str(e)
                    )
                    raise

                if attempt == self.config.max_attempts - 1:
                    logger.error(
                        "Operation failed after all retries",
                        operation=operation_name,
                        attempts=self.config.max_attempts,
                        error=str(e)
                    )
                    raise

                delay = self._calculate_delay(attempt)

                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt + 1,
                    total_attempts=self.config.max_attempts,
                    delay_seconds=delay,
                    error=str(e)
                )

                await self._sleep(delay)

        raise RuntimeError("Retry logic error")

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate the delay after the given (0-based) failed attempt."""
        # base_delay * (exponential_base ^ attempt)
        delay = self.config.base_delay * (self.config.exponential_base ** attempt)
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(delay, 0.0)
