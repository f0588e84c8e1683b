"""Groups a mixed batch by key and runs each group with its own options."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from ..errors import ValidationError
from ..models.llm import LLMRequest
from .batch import BatchCoordinator, BatchOptions, RequestLike

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyFn = Callable[[LLMRequest], str]


class IntelligentBatchGrouper:
    """Splits requests by ``key_fn`` and delegates each group to a coordinator.

    Groups run concurrently. Within a group, sub-batches of
    ``options.max_batch_size`` run one after another. If a whole sub-batch
    raises, every request in it is reported as ``None``. A request that
    cannot be coerced is reported as ``None`` without being sent.

    Args:
        coordinator: Executes each sub-batch
        default_model: Group key for requests that do not name a model
        default_options: Options for groups with no entry in ``group_options``
    """

    def __init__(
        self,
        coordinator: BatchCoordinator,
        default_model: str,
        default_options: Optional[BatchOptions] = None,
    ) -> None:
        self.coordinator = coordinator
        self.default_model = default_model
        self.default_options = default_options or BatchOptions()

    def default_key(self, request: LLMRequest) -> str:
        return request.model or self.default_model

    def group(self, requests: Sequence[LLMRequest], key_fn: Optional[KeyFn] = None) -> Dict[str, List[int]]:
        """Map each key to the original indices of its requests, in order."""
        return self._group_indexed(enumerate(requests), key_fn)

    def _group_indexed(
        self, indexed: Iterable[Tuple[int, LLMRequest]], key_fn: Optional[KeyFn] = None
    ) -> Dict[str, List[int]]:
        key_fn = key_fn or self.default_key
        groups: Dict[str, List[int]] = {}
        for index, request in indexed:
            groups.setdefault(key_fn(request), []).append(index)
        return groups

    def _coerce_each(self, requests: Sequence[RequestLike]) -> Dict[int, LLMRequest]:
        """Coerce requests one by one; invalid ones are left out and logged."""
        valid: Dict[int, LLMRequest] = {}
        for index, request in enumerate(requests):
            try:
                item = LLMRequest.coerce(request)
            except ValidationError as e:
                logger.warning(f"Request {index} is invalid and will be skipped: {e}")
                continue
            if not item.has_messages():
                logger.warning(f"Request {index} is missing required messages array and will be skipped")
                continue
            valid[index] = item
        return valid

    async def run(
        self,
        requests: Sequence[RequestLike],
        key_fn: Optional[KeyFn] = None,
        group_options: Optional[Mapping[str, BatchOptions]] = None,
    ) -> List[Optional[T]]:
        """Run every group and return results aligned to the input order."""
        results: List[Optional[T]] = [None] * len(requests)
        coerced = self._coerce_each(requests)
        if not coerced:
            return results

        groups = self._group_indexed(coerced.items(), key_fn)
        group_options = group_options or {}
        logger.info(f"Intelligent batch: {len(coerced)} request(s) in {len(groups)} group(s)")

        async def run_group(key: str, indices: List[int]) -> None:
            options = group_options.get(key, self.default_options)
            size = options.max_batch_size
            for start in range(0, len(indices), size):
                sub_indices = indices[start : start + size]
                try:
                    values = await self.coordinator.run([coerced[i] for i in sub_indices], options)
                except Exception as e:
                    logger.warning(
                        f"Sub-batch of {len(sub_indices)} request(s) in group {key!r} failed: {e}"
                    )
                    values = [None] * len(sub_indices)
                for index, value in zip(sub_indices, values):
                    results[index] = value

        await asyncio.gather(*(run_group(key, indices) for key, indices in groups.items()))
        return results
