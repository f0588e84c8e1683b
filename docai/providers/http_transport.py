"""HTTP transport for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ConfigurationError, ErrorKind, ParseError, ProviderError, TransportError
from ..models.llm import LLMRequest, LLMResponse
from .base import BaseTransport

logger = logging.getLogger(__name__)


class HttpTransport(BaseTransport):
    """Posts chat-completion requests with httpx.

    The whole call, connect through body read, is bounded by ``timeout``
    seconds via ``asyncio.wait_for``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        default_model: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(default_model)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def get_provider_name(self) -> str:
        return "OpenAI-compatible HTTP"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def send(self, request: LLMRequest) -> LLMResponse:
        """POST the request and map the reply.

        Raises:
            ConfigurationError: No API key is set; nothing is sent
            TransportError: Timeout (kind TIMEOUT) or connection failure (kind NETWORK)
            ProviderError: Non-2xx status
            ParseError: 2xx body that is not JSON or has no choices
        """
        if not self.api_key:
            raise ConfigurationError("API key is required when mock mode is disabled")

        payload = request.to_payload(self.default_model)
        client = self._get_client()

        try:
            response = await asyncio.wait_for(
                client.post(self.endpoint, json=payload, headers=self._headers()),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportError(
                f"Request timeout after {self.timeout}s", kind=ErrorKind.TIMEOUT
            ) from e
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {e}", kind=ErrorKind.NETWORK) from e

        return self._parse_response(response, payload["model"])

    def _parse_response(self, response: httpx.Response, model: str) -> LLMResponse:
        if not response.is_success:
            raise ProviderError(response.status_code, _provider_message(response))

        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(f"Invalid API response: body is not JSON ({e})") from e

        try:
            result = LLMResponse.from_completion(body)
        except (ValueError, AttributeError, TypeError) as e:
            raise ParseError(str(e)) from e

        if result.model is None:
            result.model = model
        logger.debug(
            f"Completion {result.id} from {result.model}: "
            f"{result.usage.total_tokens} tokens, finish_reason={result.finish_reason}"
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()


def _provider_message(response: httpx.Response) -> Optional[str]:
    """Pull ``error.message`` out of an error body, if there is one."""
    try:
        body: Any = response.json()
    except ValueError:
        return response.reason_phrase or None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return response.reason_phrase or None
