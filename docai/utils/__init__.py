"""Utility modules for the LLM client."""

from .logging_factory import LoggingFactory, get_logger
from .retry import (
    RetryConfig,
    RetryScheduler,
    backoff_delay,
    classify_error,
    is_retryable,
)

__all__ = [
    "LoggingFactory",
    "RetryConfig",
    "RetryScheduler",
    "backoff_delay",
    "classify_error",
    "get_logger",
    "is_retryable",
]
