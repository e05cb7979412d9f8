#!/usr/bin/env python3
"""
Concurrent Batch Executor

Runs one async operation per input item over a fixed pool of workers. Before
admitting each item a worker checks the cancellation event and the shared
remaining-call budget; once either says stop, no further items are started,
in-flight items finish, and the items left over are reported as not attempted.

A failing item never stops the batch: its exception is recorded against the
item's key and the workers carry on.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from alma_toolkit.common import ProgressReporter, pluralize
from alma_toolkit.constants import ALMA_PAGE_SIZE, DEFAULT_CONCURRENCY

from .budget import RateBudget
from .exceptions import BatchItemError

logger = logging.getLogger(__name__)

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")


class AbortReason(Enum):
    """Why admission of new work stopped before the input ran out."""

    BUDGET_EXHAUSTED = "budget_exhausted"
    CANCELLED = "cancelled"


class ExecutorState(Enum):
    IDLE = auto()
    ADMITTING = auto()
    DRAINING = auto()
    COMPLETED = auto()


@dataclass(frozen=True)
class BatchItem(Generic[TIn]):
    """One unit of work: the input value and the key its outcome is reported under."""

    key: str
    value: TIn


@dataclass(frozen=True)
class BatchResult(Generic[TOut]):
    """Successful outcome of one batch item."""

    key: str
    value: TOut


@dataclass
class BatchReport(Generic[TOut]):
    """Aggregated outcome of a batch run.

    Every submitted item lands in exactly one of successes, failures or
    not_attempted. Order within successes and failures follows completion,
    not submission.
    """

    submitted: int
    successes: list[BatchResult[TOut]] = field(default_factory=list)
    failures: list[BatchItemError] = field(default_factory=list)
    not_attempted: int = 0
    # Paged listings only: pages left unfetched, None when the total was never learned
    pages_remaining: int | None = 0
    abort_reason: AbortReason | None = None

    @property
    def values(self) -> list[TOut]:
        return [result.value for result in self.successes]

    @property
    def errors(self) -> list[BatchItemError]:
        return self.failures

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    @property
    def complete(self) -> bool:
        """True when every item was attempted and none failed."""
        return not self.aborted and not self.failures

    def flat_values(self) -> list[Any]:
        """Concatenate success values for operations that return a list per item."""
        return [value for result in self.successes for value in result.value]

    def summary(self, description: str = "item") -> str:
        parts = [f"{len(self.successes):,} succeeded", f"{len(self.failures):,} failed"]
        if self.not_attempted:
            parts.append(f"{self.not_attempted:,} not attempted")
        if self.pages_remaining:
            parts.append(f"{self.pages_remaining:,} {pluralize(self.pages_remaining, 'page')} not fetched")
        elif self.pages_remaining is None:
            parts.append("remaining pages unknown")
        text = f"{self.submitted:,} {pluralize(self.submitted, description)}: {', '.join(parts)}"
        if self.abort_reason is not None:
            text += f" (stopped early: {self.abort_reason.value.replace('_', ' ')})"
        return text


class BatchExecutor:
    """
    Runs a batch of items with bounded concurrency and budget-aware admission.

    An executor runs exactly one batch: IDLE -> ADMITTING -> (DRAINING) -> COMPLETED.
    """

    def __init__(
        self,
        budget: RateBudget,
        threshold: int,
        cancel_event: asyncio.Event | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.budget = budget
        self.threshold = threshold
        self.cancel_event = cancel_event
        self.concurrency = concurrency
        self.state = ExecutorState.IDLE
        self.abort_reason: AbortReason | None = None

    def admission_blocked(self) -> AbortReason | None:
        """Check whether new work may start. Cancellation wins over budget."""
        return admission_blocked(self.budget, self.threshold, self.cancel_event)

    def _halt(self, reason: AbortReason) -> None:
        if self.state is not ExecutorState.ADMITTING:
            return
        self.state = ExecutorState.DRAINING
        self.abort_reason = reason
        logger.warning(
            f"Halting admission of new work: {reason.value} "
            f"(remaining budget {self.budget.remaining}, threshold {self.threshold})"
        )

    async def run(
        self,
        items: Iterable[BatchItem[TIn]],
        operation: Callable[[TIn], Awaitable[TOut]],
        description: str = "item",
    ) -> BatchReport[TOut]:
        """
        Run operation once per item.

        Args:
            items: Work to do, each tagged with its reporting key
            operation: Async callable applied to each item's value
            description: Singular noun used in logs and progress output

        Returns:
            BatchReport with successes, failures and the not-attempted count
        """
        if self.state is not ExecutorState.IDLE:
            raise RuntimeError("a BatchExecutor runs a single batch")

        queue: asyncio.Queue[BatchItem[TIn]] = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        report: BatchReport[TOut] = BatchReport(submitted=queue.qsize())
        results_lock = asyncio.Lock()
        progress = ProgressReporter(f"{description} batch", total_items=report.submitted)

        async def worker() -> None:
            while True:
                if self.state is not ExecutorState.ADMITTING:
                    return
                reason = self.admission_blocked()
                if reason is not None:
                    self._halt(reason)
                    return
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                try:
                    value = await operation(item.value)
                except Exception as e:
                    logger.warning(f"[{item.key}] {description} failed: {type(e).__name__}: {e}")
                    async with results_lock:
                        report.failures.append(BatchItemError(item.key, e))
                    progress.increment(failed=True, record_id=item.key)
                else:
                    async with results_lock:
                        report.successes.append(BatchResult(item.key, value))
                    progress.increment(record_id=item.key)

        self.state = ExecutorState.ADMITTING
        worker_count = min(self.concurrency, report.submitted)
        logger.info(
            f"Starting {worker_count} {pluralize(worker_count, 'worker')} "
            f"for {report.submitted:,} {pluralize(report.submitted, description)}"
        )
        progress.start()
        workers = [asyncio.create_task(worker()) for _ in range(worker_count)]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                if not task.done():
                    task.cancel()

        report.not_attempted = queue.qsize()
        report.abort_reason = self.abort_reason
        self.state = ExecutorState.COMPLETED
        if report.submitted:
            progress.finish()
        logger.info(report.summary(description))
        return report


def admission_blocked(
    budget: RateBudget, threshold: int, cancel_event: asyncio.Event | None = None
) -> AbortReason | None:
    if cancel_event is not None and cancel_event.is_set():
        return AbortReason.CANCELLED
    if budget.exhausted(threshold):
        return AbortReason.BUDGET_EXHAUSTED
    return None


async def fetch_pages(
    fetch_page: Callable[[int, int], Awaitable[tuple[list[TOut], int | None]]],
    key: Callable[[TOut], str],
    budget: RateBudget,
    threshold: int,
    cancel_event: asyncio.Event | None = None,
    page_size: int = ALMA_PAGE_SIZE,
    description: str = "page",
) -> BatchReport[TOut]:
    """
    Fetch an offset/limit listing one page at a time.

    fetch_page(offset, limit) returns the page's records and the server's
    total record count (None if not reported). Paging stops at the first
    short page, once the total is reached, on a failed page, or when
    admission is blocked. Each record becomes one success keyed by key(record).

    Returns:
        BatchReport whose pages_remaining counts the pages left unfetched
        (None if the total was never learned)
    """
    successes: list[BatchResult[TOut]] = []
    failures: list[BatchItemError] = []
    abort_reason: AbortReason | None = None
    total: int | None = None
    offset = 0
    finished = False

    while True:
        abort_reason = admission_blocked(budget, threshold, cancel_event)
        if abort_reason is not None:
            logger.warning(f"Stopped fetching {description}s at offset {offset}: {abort_reason.value}")
            break

        logger.debug(f"Fetching {description} offset={offset} limit={page_size}")
        try:
            records, total_count = await fetch_page(offset, page_size)
        except Exception as e:
            logger.warning(f"Fetching {description} at offset {offset} failed: {type(e).__name__}: {e}")
            failures.append(BatchItemError(f"{description} offset {offset}", e))
            break

        if total_count is not None:
            total = total_count
        successes.extend(BatchResult(key(record), record) for record in records)
        offset += page_size

        if len(records) < page_size or (total is not None and offset >= total):
            finished = True
            break

    pages_remaining: int | None = 0
    if not finished:
        pages_remaining = math.ceil(max(0, total - offset) / page_size) if total is not None else None

    return BatchReport(
        submitted=len(successes) + len(failures),
        successes=successes,
        failures=failures,
        pages_remaining=pages_remaining,
        abort_reason=abort_reason,
    )
