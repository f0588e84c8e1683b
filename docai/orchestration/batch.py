"""Chunked, order-preserving batch execution of LLM requests."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Mapping, Optional, Sequence, TypeVar, Union

from ..errors import ValidationError
from ..models.llm import LLMRequest
from .admission import AdmissionController

logger = logging.getLogger(__name__)

T = TypeVar("T")

RequestLike = Union[LLMRequest, Mapping[str, Any]]


@dataclass
class BatchOptions:
    """Knobs for one batch run.

    Attributes:
        concurrency: Concurrent calls allowed within a chunk
        batch_size: Number of requests per chunk
        batch_delay: Pause in seconds between chunks, never after the last
        item_timeout: Per-item limit in seconds once admitted; None disables it
        max_batch_size: Sub-batch size used by the intelligent grouper
    """

    concurrency: int = 3
    batch_size: int = 5
    batch_delay: float = 0.1
    item_timeout: Optional[float] = None
    max_batch_size: int = 10

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if self.batch_delay < 0:
            raise ValueError("batch_delay must be non-negative")


@dataclass
class BatchItemResult(Generic[T]):
    """Outcome of one request in a batch."""

    index: int
    result: Optional[T]
    success: bool
    error: Optional[BaseException] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


def coerce_batch(requests: Sequence[RequestLike]) -> List[LLMRequest]:
    """Normalize a batch and check every request has messages.

    Raises:
        ValidationError: If any request lacks a non-empty messages list
    """
    coerced = []
    for index, request in enumerate(requests):
        try:
            item = LLMRequest.coerce(request)
        except ValidationError as e:
            raise ValidationError(f"Request {index} is invalid: {e}") from e
        if not item.has_messages():
            raise ValidationError(f"Request {index} is missing required messages array")
        coerced.append(item)
    return coerced


class BatchCoordinator:
    """Runs a list of requests in chunks, tolerating per-item failure.

    Each chunk gets its own AdmissionController sized to
    ``options.concurrency``. A failed item becomes ``None`` in the output;
    the output always lines up index-for-index with the input.

    Args:
        call: Performs one request (retry included, admission excluded)
        telemetry: Passed to each chunk's AdmissionController
        sleep: Awaitable delay, replaceable in tests
    """

    def __init__(
        self,
        call: Callable[[LLMRequest], Awaitable[T]],
        telemetry: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._call = call
        self.telemetry = telemetry
        self._sleep = sleep

    async def run(
        self, requests: Sequence[RequestLike], options: Optional[BatchOptions] = None
    ) -> List[Optional[T]]:
        """Execute the batch and return results in input order.

        Raises:
            ValidationError: Before any call, if a request has no messages
        """
        detailed = await self.run_detailed(requests, options)
        return [item.result for item in detailed]

    async def run_detailed(
        self, requests: Sequence[RequestLike], options: Optional[BatchOptions] = None
    ) -> List[BatchItemResult[T]]:
        """Like :meth:`run` but keeps success flags and errors."""
        options = options or BatchOptions()
        batch = coerce_batch(requests)
        if not batch:
            return []

        results: List[BatchItemResult[T]] = []
        chunk_count = (len(batch) + options.batch_size - 1) // options.batch_size
        logger.info(
            f"Running batch of {len(batch)} request(s) in {chunk_count} chunk(s), "
            f"concurrency {options.concurrency}"
        )

        for chunk_number, start in enumerate(range(0, len(batch), options.batch_size)):
            chunk = batch[start : start + options.batch_size]
            controller = AdmissionController(
                options.concurrency, telemetry=self.telemetry, name=f"batch-chunk-{chunk_number}"
            )
            chunk_results = await asyncio.gather(
                *(
                    self._run_item(start + offset, request, controller, options.item_timeout)
                    for offset, request in enumerate(chunk)
                )
            )
            results.extend(chunk_results)

            if start + options.batch_size < len(batch) and options.batch_delay > 0:
                await self._sleep(options.batch_delay)

        results.sort(key=lambda item: item.index)
        failed = sum(1 for item in results if not item.success)
        if failed:
            logger.warning(f"Batch finished with {failed}/{len(results)} failed request(s)")
        return results

    async def _run_item(
        self,
        index: int,
        request: LLMRequest,
        controller: AdmissionController,
        item_timeout: Optional[float],
    ) -> BatchItemResult[T]:
        try:
            async with controller.permit():
                if item_timeout:
                    value = await asyncio.wait_for(self._call(request), timeout=item_timeout)
                else:
                    value = await self._call(request)
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                logger.warning(f"Batch request {index} timed out after {item_timeout}s")
            else:
                logger.warning(f"Batch request {index} failed: {e}")
            return BatchItemResult(index=index, result=None, success=False, error=e)
        return BatchItemResult(index=index, result=value, success=True)
