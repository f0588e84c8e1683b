"""Abstract base class for chat-completion transports."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..models.llm import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """One attempt at a chat completion, with no retry or admission control.

    Implementations translate every failure into a typed ``LLMError`` from
    :mod:`docai.errors` so the retry layer can decide on its ``kind``.
    """

    def __init__(self, default_model: str) -> None:
        self.default_model = default_model

    @abstractmethod
    async def send(self, request: LLMRequest) -> LLMResponse:
        """Perform a single completion call.

        Args:
            request: Validated request; ``model=None`` means ``default_model``

        Returns:
            The normalized response
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Human-readable name of this transport."""

    async def aclose(self) -> None:
        """Release any held connections."""

    async def health_check_async(self) -> Dict[str, Any]:
        """Send a tiny request and report whether it produced content.

        Returns:
            Dictionary with "healthy", "status", "response_time_ms" and "details"
        """
        request = LLMRequest.coerce(
            {"messages": [{"role": "user", "content": "Test connection"}], "max_tokens": 10}
        )
        started = time.perf_counter()
        try:
            response = await self.send(request)
        except Exception as e:
            logger.warning(f"{self.get_provider_name()} health check failed: {e}")
            return {
                "healthy": False,
                "status": "error",
                "response_time_ms": (time.perf_counter() - started) * 1000,
                "details": {"error": str(e)},
            }
        return {
            "healthy": response.content is not None,
            "status": "ok",
            "response_time_ms": (time.perf_counter() - started) * 1000,
            "details": {"model": response.model},
        }
