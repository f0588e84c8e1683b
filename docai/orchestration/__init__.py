"""Admission control and batch execution for LLM requests."""

from .admission import AdmissionController, ConcurrencyPermit
from .batch import BatchCoordinator, BatchItemResult, BatchOptions, coerce_batch
from .grouper import IntelligentBatchGrouper

__all__ = [
    "AdmissionController",
    "BatchCoordinator",
    "BatchItemResult",
    "BatchOptions",
    "ConcurrencyPermit",
    "IntelligentBatchGrouper",
    "coerce_batch",
]
