"""Data models for the LLM client.

This module provides the request, message and response structures passed
between callers, the retry layer and the transports.
"""

from .llm import VALID_ROLES, LLMRequest, LLMResponse, Message, Usage

__all__ = [
    "LLMRequest",
    "LLMResponse",
    "Message",
    "Usage",
    "VALID_ROLES",
]
