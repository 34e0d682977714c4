"""Quota-aware processing of many work items.

Components:
- AdaptiveBatchProcessor: sequential, chunked, fail-soft processing
- BatchJob: items, operation and accumulated outcomes
- BatchResult: successes and (item, error) failures
"""

from .batch import AdaptiveBatchProcessor, BatchJob, BatchResult, ProgressCallback

__all__ = [
    "AdaptiveBatchProcessor",
    "BatchJob",
    "BatchResult",
    "ProgressCallback",
]
