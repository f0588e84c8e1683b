"""Optional telemetry hooks.

A telemetry collaborator is any object implementing some or all of the
methods of :class:`TelemetryCollector`. Missing methods are skipped, and an
exception raised from a hook is logged and never reaches the caller.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TelemetryCollector(Protocol):
    """Callbacks the client and cache report to."""

    def track_cache_performance(self, hit: bool, size: int, eviction: bool = False) -> None: ...

    def track_error(self, kind: str, message: str, context: Dict[str, Any]) -> None: ...

    def track_concurrency(self, active_requests: int, max_concurrent: int, queue_length: int) -> None: ...

    def track_llm_usage(
        self, model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int
    ) -> None: ...


def safe_track(telemetry: Optional[Any], hook: str, *args: Any, **kwargs: Any) -> None:
    """Invoke ``telemetry.<hook>(*args, **kwargs)`` if it exists.

    Args:
        telemetry: Collaborator or None
        hook: Method name, e.g. "track_error"
    """
    if telemetry is None:
        return
    callback = getattr(telemetry, hook, None)
    if not callable(callback):
        return
    try:
        callback(*args, **kwargs)
    except Exception as e:
        logger.debug(f"Telemetry hook {hook} failed: {e}", exc_info=True)


class NullTelemetry:
    """Collector that discards everything."""

    def track_cache_performance(self, hit: bool, size: int, eviction: bool = False) -> None:
        pass

    def track_error(self, kind: str, message: str, context: Dict[str, Any]) -> None:
        pass

    def track_concurrency(self, active_requests: int, max_concurrent: int, queue_length: int) -> None:
        pass

    def track_llm_usage(
        self, model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int
    ) -> None:
        pass


@dataclass
class TelemetryEvent:
    """A single recorded hook invocation."""

    hook: str
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)


class InMemoryTelemetry:
    """Collector that records every event, for tests and the CLI summary."""

    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    def _record(self, hook: str, **payload: Any) -> None:
        self.events.append(TelemetryEvent(hook=hook, payload=payload))

    def track_cache_performance(self, hit: bool, size: int, eviction: bool = False) -> None:
        self._record("track_cache_performance", hit=hit, size=size, eviction=eviction)

    def track_error(self, kind: str, message: str, context: Dict[str, Any]) -> None:
        self._record("track_error", kind=kind, message=message, context=dict(context))

    def track_concurrency(self, active_requests: int, max_concurrent: int, queue_length: int) -> None:
        self._record(
            "track_concurrency",
            active_requests=active_requests,
            max_concurrent=max_concurrent,
            queue_length=queue_length,
        )

    def track_llm_usage(
        self, model: str, prompt_tokens: int, completion_tokens: int, total_tokens: int
    ) -> None:
        self._record(
            "track_llm_usage",
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        )

    def by_hook(self, hook: str) -> List[TelemetryEvent]:
        return [event for event in self.events if event.hook == hook]

    def errors(self, kind: Optional[str] = None) -> List[TelemetryEvent]:
        """Return recorded track_error events, optionally filtered by kind."""
        return [
            event
            for event in self.by_hook("track_error")
            if kind is None or event.payload["kind"] == kind
        ]

    def clear(self) -> None:
        self.events.clear()
