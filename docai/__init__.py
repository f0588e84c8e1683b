"""docai: rate-limited async LLM client with a persistent response cache."""

__version__ = "1.0.0"

from .cache import ResponseCache
from .client import LLMClient
from .config import Config, get_config
from .errors import (
    AdmissionAbandonedError,
    ConfigurationError,
    ErrorKind,
    ExhaustedRetriesError,
    LLMError,
    ParseError,
    ProviderError,
    TransportError,
    ValidationError,
)
from .models import LLMRequest, LLMResponse, Message, Usage
from .orchestration import AdmissionController, BatchOptions

__all__ = [
    "AdmissionAbandonedError",
    "AdmissionController",
    "BatchOptions",
    "Config",
    "ConfigurationError",
    "ErrorKind",
    "ExhaustedRetriesError",
    "LLMClient",
    "LLMError",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "ParseError",
    "ProviderError",
    "ResponseCache",
    "TransportError",
    "Usage",
    "ValidationError",
    "get_config",
]
