"""Retry scheduling with capped exponential backoff for LLM calls."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..errors import (
    ConfigurationError,
    ErrorKind,
    ExhaustedRetriesError,
    LLMError,
    ParseError,
    ValidationError,
    kind_from_message,
)
from ..telemetry import safe_track

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raised unchanged instead of being wrapped in ExhaustedRetriesError.
PASSTHROUGH_ERRORS = (ValidationError, ParseError, ConfigurationError)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Total attempts allowed, including the first
        retry_delay: Delay in seconds before the first retry
        max_delay: Ceiling on any single delay in seconds
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        if self.max_delay < 0:
            raise ValueError("max_delay must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        return backoff_delay(attempt, self.retry_delay, self.max_delay)


def backoff_delay(attempt: int, retry_delay: float, max_delay: float) -> float:
    """Calculate ``min(retry_delay * 2^(attempt-1), max_delay)``.

    Args:
        attempt: The attempt that just failed, starting at 1
        retry_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds, never negative and never above max_delay
    """
    if attempt < 1:
        return 0.0
    return max(0.0, min(retry_delay * (2 ** (attempt - 1)), max_delay))


def classify_error(error: BaseException) -> ErrorKind:
    """Return the ErrorKind of an exception.

    Typed client errors carry their kind. Anything else is classified from
    its type, then by matching known phrases in its message.
    """
    if isinstance(error, LLMError):
        return error.kind
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorKind.NETWORK
    return kind_from_message(str(error))


def is_retryable(error: BaseException) -> bool:
    """Check if an exception should trigger another attempt."""
    return classify_error(error).retryable


class RetryScheduler:
    """Runs an async operation, retrying retryable failures with backoff.

    Each failed attempt is reported as ``track_error("llm_api_retry", ...)``
    and the last one as ``track_error("llm_api_final_failure", ...)``.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        telemetry: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or RetryConfig()
        self.telemetry = telemetry
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Execute ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            context: Extra fields (e.g. model) added to telemetry reports

        Returns:
            The operation's result

        Raises:
            ExhaustedRetriesError: When the last attempt fails with a
                transport, provider or unclassified error
            ValidationError, ParseError, ConfigurationError: Unwrapped, on
                the attempt where they occur
        """
        context = dict(context or {})
        max_retries = self.config.max_retries
        attempt = 1

        while True:
            try:
                return await operation()
            except Exception as e:
                kind = classify_error(e)
                safe_track(
                    self.telemetry,
                    "track_error",
                    "llm_api_retry",
                    f"Attempt {attempt}: {e}",
                    {**context, "attempt": attempt, "max_retries": max_retries, "kind": kind.value},
                )

                if kind.retryable and attempt < max_retries:
                    delay = self.config.delay_for(attempt)
                    logger.warning(
                        f"LLM call attempt {attempt}/{max_retries} failed ({kind.value}): {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue

                final = e if isinstance(e, PASSTHROUGH_ERRORS) else ExhaustedRetriesError(attempt, e)
                logger.error(f"LLM call failed after {attempt} attempt(s): {e}")
                safe_track(
                    self.telemetry,
                    "track_error",
                    "llm_api_final_failure",
                    str(final),
                    {**context, "attempts": attempt, "original_error": str(e), "kind": kind.value},
                )
                if final is e:
                    raise
                raise final from e
