"""Exception hierarchy for the LLM client and its collaborators.

Every failure raised by the client carries an :class:`ErrorKind` assigned at
the point where the failure is first observed (usually the transport
boundary). Retry decisions are made on that discriminant. Provider replies
get their kind from the text of the error, so a 5xx with an unfamiliar
message is not retried and a 4xx that reports a timeout is.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification of a failed call."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    PARSE = "parse"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS = frozenset(
    {ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR}
)


class LLMError(Exception):
    """Base class for all client errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class ValidationError(LLMError):
    """Malformed request shape. Never retried."""

    kind = ErrorKind.VALIDATION


class ConfigurationError(LLMError):
    """Client is misconfigured (e.g. no API key outside mock mode)."""

    kind = ErrorKind.CLIENT_ERROR


class TransportError(LLMError):
    """Socket-level failure or timeout before an HTTP response arrived."""

    kind = ErrorKind.NETWORK


class ProviderError(LLMError):
    """The provider answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the provider
        provider_message: The provider's own error message, if it sent one
    """

    def __init__(
        self,
        status_code: int,
        provider_message: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        self.status_code = status_code
        self.provider_message = provider_message
        message = f"API Error {status_code}: {provider_message or 'no error message'}"
        super().__init__(message, kind or kind_from_message(message, ErrorKind.CLIENT_ERROR))


class ParseError(LLMError):
    """A 2xx response whose body could not be turned into a response."""

    kind = ErrorKind.PARSE


class ExhaustedRetriesError(LLMError):
    """Raised when a call has failed for the last time.

    Attributes:
        attempts: Total number of attempts made
        last_error: The final underlying exception
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        kind = last_error.kind if isinstance(last_error, LLMError) else ErrorKind.UNKNOWN
        super().__init__(
            f"LLM API call failed after {attempts} attempts: {last_error}", kind
        )

    @property
    def retryable(self) -> bool:
        return False


class AdmissionAbandonedError(LLMError):
    """A queued caller was dropped because its admission controller was reset."""

    kind = ErrorKind.UNKNOWN


# Checked in order; server phrases first so "gateway timeout" is a server error.
RETRYABLE_PHRASES = (
    ("service unavailable", ErrorKind.SERVER_ERROR),
    ("internal server error", ErrorKind.SERVER_ERROR),
    ("bad gateway", ErrorKind.SERVER_ERROR),
    ("gateway timeout", ErrorKind.SERVER_ERROR),
    ("rate limit", ErrorKind.RATE_LIMITED),
    ("too many requests", ErrorKind.RATE_LIMITED),
    ("timeout", ErrorKind.TIMEOUT),
    ("timed out", ErrorKind.TIMEOUT),
    ("network", ErrorKind.NETWORK),
)


def kind_from_message(message: str, default: ErrorKind = ErrorKind.UNKNOWN) -> ErrorKind:
    """Return the kind of the first retryable phrase found in ``message``."""
    text = message.lower()
    for phrase, kind in RETRYABLE_PHRASES:
        if phrase in text:
            return kind
    return default
