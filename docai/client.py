"""Rate-limited asynchronous client for chat-completion providers.

Single calls pass through the client's AdmissionController, then the
RetryScheduler, then the transport. Batch calls skip the shared controller
and are bounded per chunk by the BatchCoordinator instead.

Usage:
    async with LLMClient(Config.from_overrides(mock_mode=True)) as client:
        response = await client.call_llm(messages=[{"role": "user", "content": "Summarize this"}])
        results = await client.call_llm_batch([request_a, request_b])
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .config import Config, get_config
from .errors import LLMError
from .models.llm import LLMRequest, LLMResponse
from .orchestration.admission import AdmissionController
from .orchestration.batch import BatchCoordinator, BatchItemResult, BatchOptions, RequestLike
from .orchestration.grouper import IntelligentBatchGrouper
from .providers.base import BaseTransport
from .providers.http_transport import HttpTransport
from .providers.mock import MockTransport
from .telemetry import safe_track
from .utils.retry import RetryConfig, RetryScheduler

logger = logging.getLogger(__name__)

# Changing any of these rebuilds the transport.
TRANSPORT_FIELDS = frozenset(
    {"api_key", "base_url", "default_model", "timeout", "mock_mode", "mock_delay_min", "mock_delay_max"}
)
RETRY_FIELDS = frozenset({"max_retries", "retry_delay", "max_delay"})


class LLMClient:
    """Front door for single, batch and grouped chat-completion calls.

    Args:
        config: Client configuration; the process-wide config if None
        telemetry: Optional collaborator for retry, concurrency and usage events
        transport: Explicit transport; built from ``config`` when None
        **overrides: Config fields to override for this client
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        telemetry: Optional[Any] = None,
        transport: Optional[BaseTransport] = None,
        **overrides: Any,
    ) -> None:
        config = config or get_config()
        if overrides:
            config = config.with_overrides(**overrides)
        self.config = config
        self.telemetry = telemetry

        self._custom_transport = transport is not None
        self._transport = transport or self._build_transport()
        self._retired_transports: List[BaseTransport] = []
        self._retry = RetryScheduler(self._retry_config(), telemetry)
        self._admission = AdmissionController(config.max_concurrent_requests, telemetry, name="llm")
        self._coordinator = BatchCoordinator(self._execute, telemetry)

        logger.info(
            f"LLM client ready: transport={self._transport.get_provider_name()}, "
            f"model={config.default_model}, max_concurrent={config.max_concurrent_requests}"
        )

    def _build_transport(self) -> BaseTransport:
        if self.config.mock_mode:
            return MockTransport(
                self.config.default_model,
                delay_range=(self.config.mock_delay_min, self.config.mock_delay_max),
            )
        return HttpTransport(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            default_model=self.config.default_model,
            timeout=self.config.timeout,
        )

    def _retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            max_delay=self.config.max_delay,
        )

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def active_requests(self) -> int:
        return self._admission.active

    @property
    def queue_length(self) -> int:
        return self._admission.queue_length

    # ------------------------------------------------------------------ calls

    async def call_llm(
        self, request: Optional[Union[LLMRequest, Mapping[str, Any]]] = None, **params: Any
    ) -> LLMResponse:
        """Make one chat-completion call.

        The request may be an LLMRequest, a mapping, or keyword arguments
        (``messages=...``, ``model=...``, ``max_tokens=...``).

        Raises:
            ValidationError: Malformed request, before any waiting
            ExhaustedRetriesError: The call failed on its last attempt
            ParseError: The provider returned an unusable 2xx body
            ConfigurationError: No API key outside mock mode
        """
        req = LLMRequest.coerce(request if request is not None else params)
        req.validate()

        if req.bypass_concurrency:
            return await self._execute(req)

        # bind to the current controller; a resize must not move this caller
        controller = self._admission
        async with controller.permit():
            return await self._execute(req)

    async def _execute(self, request: LLMRequest) -> LLMResponse:
        """Retry-wrapped transport call with no admission control."""
        request.validate()
        model = request.model or self.config.default_model
        request = request.with_model(model)
        transport = self._transport

        response = await self._retry.run(lambda: transport.send(request), context={"model": model})

        safe_track(
            self.telemetry,
            "track_llm_usage",
            response.model or model,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
            response.usage.total_tokens,
        )
        return response

    def _batch_options(
        self,
        concurrency: Optional[int],
        batch_size: Optional[int],
        batch_delay: Optional[float],
        timeout: Optional[float],
        max_batch_size: Optional[int] = None,
    ) -> BatchOptions:
        item_timeout = self.config.batch_timeout if timeout is None else timeout
        return BatchOptions(
            concurrency=concurrency or self.config.max_concurrent_requests,
            batch_size=batch_size or self.config.batch_size,
            batch_delay=self.config.batch_delay if batch_delay is None else batch_delay,
            item_timeout=item_timeout or None,
            max_batch_size=max_batch_size or batch_size or self.config.batch_size,
        )

    async def call_llm_batch(
        self,
        requests: Sequence[RequestLike],
        concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> List[Optional[LLMResponse]]:
        """Run many requests; failures come back as None in their slot.

        Raises:
            ValidationError: If any request has no messages; nothing is sent
        """
        options = self._batch_options(concurrency, batch_size, batch_delay, timeout)
        return await self._coordinator.run(requests, options)

    async def call_llm_batch_detailed(
        self,
        requests: Sequence[RequestLike],
        concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> List[BatchItemResult[LLMResponse]]:
        """Like :meth:`call_llm_batch` but keeps per-item success and error."""
        options = self._batch_options(concurrency, batch_size, batch_delay, timeout)
        return await self._coordinator.run_detailed(requests, options)

    async def call_llm_intelligent_batch(
        self,
        requests: Sequence[RequestLike],
        key_fn: Optional[Callable[[LLMRequest], str]] = None,
        group_options: Optional[Mapping[str, BatchOptions]] = None,
        max_batch_size: Optional[int] = None,
    ) -> List[Optional[LLMResponse]]:
        """Group requests (by model unless ``key_fn`` says otherwise) and run each group.

        Args:
            requests: Requests in caller order
            key_fn: Maps a request to its group key
            group_options: Per-group BatchOptions; other groups use client defaults
            max_batch_size: Default sub-batch size for groups without options
        """
        grouper = IntelligentBatchGrouper(
            self._coordinator,
            self.config.default_model,
            self._batch_options(None, None, None, None, max_batch_size),
        )
        return await grouper.run(requests, key_fn=key_fn, group_options=group_options)

    async def test_connection(self) -> bool:
        """True if the provider answers a tiny request (always True in mock mode)."""
        if self.config.mock_mode:
            return True
        try:
            response = await self.call_llm(
                messages=[{"role": "user", "content": "Test connection"}],
                max_tokens=10,
            )
        except LLMError as e:
            logger.error(f"LLM connection test failed: {e}")
            return False
        return response.content is not None

    # ------------------------------------------------------------------ configuration

    def get_config(self) -> Dict[str, Any]:
        """Current effective settings, without exposing the API key."""
        return {
            "has_api_key": bool(self.config.api_key),
            "base_url": self.config.base_url,
            "default_model": self.config.default_model,
            "max_retries": self.config.max_retries,
            "retry_delay": self.config.retry_delay,
            "max_delay": self.config.max_delay,
            "timeout": self.config.timeout,
            "mock_mode": self.config.mock_mode,
            "max_concurrent_requests": self._admission.max_permits,
            "batch_size": self.config.batch_size,
            "batch_delay": self.config.batch_delay,
            "batch_timeout": self.config.batch_timeout,
            "transport": self._transport.get_provider_name(),
        }

    def update_config(self, **changes: Any) -> None:
        """Apply new settings to a live client.

        Raises:
            ConfigurationError: Unknown option or invalid value
        """
        if not changes:
            return
        new_limit = changes.pop("max_concurrent_requests", None)
        drain = changes.pop("drain", True)
        self.config = self.config.with_overrides(**changes)

        if TRANSPORT_FIELDS & set(changes):
            if self._custom_transport:
                self._transport.default_model = self.config.default_model
            else:
                self._retired_transports.append(self._transport)
                self._transport = self._build_transport()
        if RETRY_FIELDS & set(changes):
            self._retry.config = self._retry_config()
        if new_limit is not None:
            self.set_max_concurrent_requests(new_limit, drain=drain)

        logger.info(f"LLM client configuration updated: {', '.join(sorted(changes)) or 'limits'}")

    def set_max_concurrent_requests(self, limit: int, drain: bool = True) -> None:
        """Replace the admission controller with one of size ``limit``.

        With ``drain`` (the default) callers already queued keep waiting on the
        old controller at its old size. Without it they fail with
        AdmissionAbandonedError. Callers holding a slot are never interrupted.
        """
        self.config = self.config.with_overrides(max_concurrent_requests=limit)
        previous = self._admission
        queued = previous.queue_length
        self._admission = AdmissionController(limit, self.telemetry, name="llm")
        if not drain:
            previous.abandon(f"max_concurrent_requests changed to {limit}")
        logger.info(
            f"Concurrency limit changed {previous.max_permits} -> {limit} "
            f"({queued} queued caller(s) {'draining' if drain else 'abandoned'})"
        )

    def set_telemetry(self, telemetry: Optional[Any]) -> None:
        """Route future telemetry events to ``telemetry``."""
        self.telemetry = telemetry
        self._retry.telemetry = telemetry
        self._admission.telemetry = telemetry
        self._coordinator.telemetry = telemetry

    # ------------------------------------------------------------------ lifecycle

    async def aclose(self) -> None:
        """Close transports, including ones replaced by update_config()."""
        for transport in self._retired_transports:
            await transport.aclose()
        self._retired_transports.clear()
        await self._transport.aclose()

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
