"""Offline transport returning canned completions."""

from __future__ import annotations

import asyncio
import json
import random
import time
from typing import Optional, Tuple

from ..models.llm import LLMRequest, LLMResponse, Usage
from .base import BaseTransport

METADATA_STUB = {
    "clientName": "Mock Client",
    "clientConfidence": 0.9,
    "date": "2024-01-15",
    "dateConfidence": 0.8,
    "docType": "Mock Document",
    "docTypeConfidence": 0.95,
    "snippets": ["Mock snippet 1", "Mock snippet 2"],
}
CLASSIFICATION_STUB = "Mock classification result"
SUMMARY_STUB = "Mock summary of the document content"
GENERIC_STUB = "Mock AI response"


def mock_content_for(text: str) -> str:
    """Pick the canned reply for a user message."""
    text = (text or "").lower()
    if "metadata" in text or "extract" in text:
        return json.dumps(METADATA_STUB)
    if "classify" in text or "type" in text:
        return CLASSIFICATION_STUB
    if "summarize" in text:
        return SUMMARY_STUB
    return GENERIC_STUB


class MockTransport(BaseTransport):
    """Sleeps a short random delay, then answers from a fixed table.

    The reply depends only on the last user message, so tests can assert on
    its shape.
    """

    def __init__(
        self,
        default_model: str,
        delay_range: Tuple[float, float] = (0.1, 0.3),
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(default_model)
        self.delay_range = delay_range
        self._rng = rng or random.Random()
        self.calls = 0

    def get_provider_name(self) -> str:
        return "Mock"

    async def send(self, request: LLMRequest) -> LLMResponse:
        self.calls += 1
        low, high = self.delay_range
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high))

        now = time.time()
        return LLMResponse(
            content=mock_content_for(request.last_user_content()),
            role="assistant",
            finish_reason="stop",
            usage=Usage(prompt_tokens=50, completion_tokens=25, total_tokens=75),
            model=request.model or self.default_model,
            id=f"mock-{int(now * 1000)}",
            created=int(now),
        )
