"""FIFO admission control for outstanding LLM calls."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Deque, Optional

from ..errors import AdmissionAbandonedError
from ..telemetry import safe_track

logger = logging.getLogger(__name__)


class ConcurrencyPermit:
    """A held admission slot.

    ``release()`` is idempotent, so it is safe to call from every exit path.
    Also usable as ``async with await controller.acquire(): ...``.
    """

    __slots__ = ("_controller", "_released")

    def __init__(self, controller: "AdmissionController") -> None:
        self._controller = controller
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._controller.release()

    async def __aenter__(self) -> "ConcurrencyPermit":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class AdmissionController:
    """Counting gate that admits at most ``max_permits`` holders at a time.

    Waiters are served strictly in arrival order. A release with waiters
    queued hands the slot straight to the oldest one, so a newcomer can never
    overtake a queued caller.

    Args:
        max_permits: Number of concurrent holders allowed (>= 1)
        telemetry: Optional collaborator receiving ``track_concurrency``
        name: Label used in log lines
    """

    def __init__(self, max_permits: int, telemetry: Optional[Any] = None, name: str = "llm") -> None:
        if max_permits < 1:
            raise ValueError(f"max_permits must be at least 1, got {max_permits}")
        self._max_permits = max_permits
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._abandoned: Optional[str] = None
        self.telemetry = telemetry
        self.name = name

    @property
    def max_permits(self) -> int:
        return self._max_permits

    @property
    def active(self) -> int:
        return self._active

    @property
    def available(self) -> int:
        return self._max_permits - self._active

    @property
    def queue_length(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> ConcurrencyPermit:
        """Wait for a free slot and return a permit for it.

        Raises:
            AdmissionAbandonedError: If the controller is abandoned before
                or while waiting
        """
        if self._abandoned is not None:
            raise AdmissionAbandonedError(self._abandoned)

        if self._active < self._max_permits:
            self._active += 1
            self._report()
            return ConcurrencyPermit(self)

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"[{self.name}] queued, {self.queue_length} waiting for {self._max_permits} slots")
        self._report()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # slot was handed over just before cancellation; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

        # slot was transferred by release(); _active already counts it
        self._report()
        return ConcurrencyPermit(self)

    def release(self) -> None:
        """Free one slot, handing it to the oldest live waiter if any.

        Raises:
            RuntimeError: If no slot is currently held
        """
        if self._active <= 0:
            raise RuntimeError(f"[{self.name}] release() called more times than acquire()")

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

        self._active -= 1
        self._report()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[ConcurrencyPermit]:
        """Hold a slot for the duration of an ``async with`` block."""
        permit = await self.acquire()
        try:
            yield permit
        finally:
            permit.release()

    def abandon(self, reason: str = "admission controller was reset") -> int:
        """Fail every queued waiter and refuse further acquires.

        Holders keep their slots and release them normally.

        Returns:
            Number of waiters that were failed
        """
        self._abandoned = reason
        failed = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(AdmissionAbandonedError(reason))
                failed += 1
        if failed:
            logger.warning(f"[{self.name}] abandoned {failed} queued caller(s): {reason}")
        return failed

    def _report(self) -> None:
        safe_track(
            self.telemetry,
            "track_concurrency",
            self._active,
            self._max_permits,
            self.queue_length,
        )

    def __repr__(self) -> str:
        return (
            f"AdmissionController(name={self.name!r}, active={self._active}, "
            f"max_permits={self._max_permits}, queue_length={self.queue_length})"
        )
