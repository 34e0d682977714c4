"""Sequential batch processing that adapts to the remote quota.

Items are processed one at a time, in input order, in fixed-size chunks
with a short pause between chunks. A failing item is recorded and the
batch carries on. When an item fails because the quota is exhausted, the
processor reports the quota state and waits before the next item.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, Protocol, TypeVar

from quota_coordinator.config import BatchConfig, get_settings
from quota_coordinator.logging import LogContext, get_logger
from quota_coordinator.rate_limit.schemas import RateLimitState
from quota_coordinator.rate_limit.utils import (
    format_rate_limit_state,
    quota_state_from_error,
    wait_time_ms,
)

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SleepFunc = Callable[[float], Awaitable[Any]]
Clock = Callable[[], datetime]


class ProgressCallback(Protocol):
    """Called after every item with (completed, total).

    When an item hits the quota it is additionally called with the
    parsed state before the processor waits.
    """

    def __call__(
        self,
        completed: int,
        total: int,
        rate_limit: RateLimitState | None = None,
    ) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class BatchResult(Generic[T, R]):
    """Result of a batch operation."""

    results: list[R] = field(default_factory=list)
    errors: list[tuple[T, Exception]] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        """Total number of items processed."""
        return len(self.results) + len(self.errors)

    @property
    def success_count(self) -> int:
        """Number of successful items."""
        return len(self.results)

    @property
    def failure_count(self) -> int:
        """Number of failed items."""
        return len(self.errors)

    @property
    def all_succeeded(self) -> bool:
        """Whether all items succeeded."""
        return len(self.errors) == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "total": self.total_count,
            "succeeded": self.success_count,
            "failed": self.failure_count,
            "errors": [
                {"item": repr(item), "error": str(error), "type": type(error).__name__}
                for item, error in self.errors
            ],
        }


@dataclass
class BatchJob(Generic[T, R]):
    """Work items, their operation, and what has happened to them so far.

    ``results`` are in completion order, ``errors`` pair each failed item
    with its exception, and ``completed`` counts processed items either way.
    """

    items: Sequence[T]
    operation: Callable[[T], Awaitable[R]]
    results: list[R] = field(default_factory=list)
    errors: list[tuple[T, Exception]] = field(default_factory=list)
    completed: int = 0

    @property
    def total(self) -> int:
        """Number of work items."""
        return len(self.items)

    @property
    def is_done(self) -> bool:
        """Whether every item has been processed."""
        return self.completed >= self.total

    def to_result(self) -> BatchResult[T, R]:
        """Snapshot the accumulated outcomes."""
        return BatchResult(results=list(self.results), errors=list(self.errors))


class AdaptiveBatchProcessor(Generic[T, R]):
    """Processes many items sequentially while respecting the quota.

    Usage:
        async def add_subscriber(sub: dict) -> dict:
            return await with_rate_limit(lambda: api.add_subscriber(sub))()

        processor = AdaptiveBatchProcessor(subscribers, add_subscriber)
        result = await processor.process_all(
            lambda done, total, state=None: print(f"{done}/{total}"),
        )
        print(f"Added {result.success_count}, failed {result.failure_count}")

    Nothing runs concurrently: each item's operation finishes before the
    next one starts.
    """

    def __init__(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[R]],
        *,
        config: BatchConfig | None = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Clock = _utcnow,
        name: str = "batch",
    ) -> None:
        """Initialize the batch processor.

        Args:
            items: Work items, processed in this order
            operation: Async function applied to each item
            config: Batch configuration (uses settings if not provided)
            sleep: Async sleep used for pauses (seconds)
            clock: Source of "now" for wait calculations
            name: Job name bound to log records
        """
        self._job: BatchJob[T, R] = BatchJob(items=items, operation=operation)
        self._config = config or get_settings().batch
        self._sleep = sleep
        self._clock = clock
        self._name = name
        self._started = False

    @property
    def job(self) -> BatchJob[T, R]:
        """The batch job owned by this processor."""
        return self._job

    async def process_all(
        self,
        on_progress: ProgressCallback | None = None,
        batch_size: int | None = None,
    ) -> BatchResult[T, R]:
        """Process every item, recording failures without stopping.

        Args:
            on_progress: Optional progress callback
            batch_size: Items per chunk (uses config if not provided)

        Returns:
            BatchResult with results in completion order and (item, error) pairs

        Raises:
            RuntimeError: If this processor's job was already processed
            ValueError: If batch_size is less than 1
        """
        if self._started:
            raise RuntimeError("Batch job has already been processed")
        chunk_size = batch_size if batch_size is not None else self._config.batch_size
        if chunk_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._started = True

        job = self._job
        total = job.total
        start_time = time.monotonic()

        with LogContext(batch=self._name):
            logger.info(
                "Started {job} (total={total}, chunk_size={chunk_size})",
                job=self._name,
                total=total,
                chunk_size=chunk_size,
            )

            for chunk_start in range(0, total, chunk_size):
                for item in job.items[chunk_start : chunk_start + chunk_size]:
                    await self._process_item(item, on_progress)

                if chunk_start + chunk_size < total:
                    await self._sleep(self._config.chunk_delay_ms / 1000)

            result = job.to_result()
            logger.info(
                "Completed {job}: {succeeded} succeeded, {failed} failed in {elapsed:.1f}s",
                job=self._name,
                succeeded=result.success_count,
                failed=result.failure_count,
                elapsed=time.monotonic() - start_time,
            )
        return result

    async def _process_item(self, item: T, on_progress: ProgressCallback | None) -> None:
        """Run the operation on one item and record the outcome."""
        job = self._job
        try:
            result = await job.operation(item)
        except Exception as e:
            job.errors.append((item, e))
            state = quota_state_from_error(e, self._clock())
            if state is not None:
                await self._pause_for_quota(state, on_progress)
            else:
                logger.warning(
                    "Item failed: {error}",
                    event="batch.item_failed",
                    item=repr(item),
                    error=str(e),
                )
        else:
            job.results.append(result)

        job.completed += 1
        self._report(on_progress, job.completed, job.total)

    async def _pause_for_quota(
        self,
        state: RateLimitState,
        on_progress: ProgressCallback | None,
    ) -> None:
        """Report the quota state and wait before the next item."""
        job = self._job
        delay_ms = wait_time_ms(state, self._clock())
        logger.warning(
            "Rate limited during batch, pausing {delay_ms}ms",
            event="batch.rate_limited",
            delay_ms=delay_ms,
            completed=job.completed,
            total=job.total,
            **format_rate_limit_state(state),
        )
        self._report(on_progress, job.completed, job.total, state)
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    @staticmethod
    def _report(
        callback: ProgressCallback | None,
        completed: int,
        total: int,
        state: RateLimitState | None = None,
    ) -> None:
        """Invoke the progress callback, logging (not propagating) its failures."""
        if callback is None:
            return
        try:
            if state is None:
                callback(completed, total)
            else:
                callback(completed, total, state)
        except Exception as e:
            logger.warning("Progress callback error", error=str(e))
