"""Chat-completion transports."""

from .base import BaseTransport
from .http_transport import HttpTransport
from .mock import MockTransport, mock_content_for

__all__ = [
    "BaseTransport",
    "HttpTransport",
    "MockTransport",
    "mock_content_for",
]
