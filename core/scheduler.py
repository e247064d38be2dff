"""Drive a collection of items through one stage with bounded concurrency.

Two modes:

* ``run_chunked`` - items are split into chunks of ``concurrency``; a chunk
  runs concurrently and the next chunk starts only after every item of the
  current one has settled.
* ``run_sequential`` - one item at a time in list order, with cooperative
  pause/cancel through a ``RunControl`` and an optional fixed delay between
  items.

Control is cooperative: an in-flight remote call is never interrupted.
Pause only holds back the next item, cancel stops the loop before it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Collection, Iterable, Optional, Sequence, TypeVar

from core.models import Batch, PageStatus
from core.stage_runner import STAGES_BY_NAME, StageOutcome
from core.store import BatchStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
Worker = Callable[[T], Awaitable[StageOutcome]]

DEFAULT_POLL_INTERVAL_SEC = 0.5


@dataclass
class RunControl:
    """Pause/cancel flags shared between the UI and a running loop."""

    paused: bool = False
    cancelled: bool = False

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def cancel(self) -> None:
        self.cancelled = True
        self.paused = False

    def reset(self) -> None:
        self.paused = False
        self.cancelled = False


@dataclass
class SchedulerReport:
    outcomes: list[StageOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok and not o.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    def summary(self) -> str:
        text = f"{self.succeeded} succeeded, {self.failed} failed"
        if self.cancelled:
            text += " (stopped early)"
        return text


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("concurrency must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def run_chunked(
    items: Sequence[T],
    concurrency: int,
    worker: Worker,
    control: Optional[RunControl] = None,
) -> SchedulerReport:
    """Run ``worker`` over ``items`` in ordered chunks of ``concurrency``."""
    report = SchedulerReport()
    chunks = chunked(items, concurrency)
    for number, chunk in enumerate(chunks, start=1):
        if control is not None and control.cancelled:
            logger.info("Cancelled before chunk %d/%d", number, len(chunks))
            report.cancelled = True
            break
        logger.info("Starting chunk %d/%d (%d items)", number, len(chunks), len(chunk))
        outcomes = await asyncio.gather(*(worker(item) for item in chunk))
        report.outcomes.extend(outcomes)
    return report


async def _wait_while_paused(control: RunControl, poll_interval_sec: float) -> None:
    if control.paused:
        logger.info("Paused; polling every %.1fs for resume", poll_interval_sec)
    while control.paused and not control.cancelled:
        await asyncio.sleep(poll_interval_sec)


async def run_sequential(
    items: Iterable[T],
    worker: Worker,
    control: Optional[RunControl] = None,
    delay_sec: float = 0.0,
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
) -> SchedulerReport:
    """Run ``worker`` over ``items`` one at a time, honouring pause and cancel."""
    control = control or RunControl()
    report = SchedulerReport()
    items = list(items)
    for position, item in enumerate(items):
        if control.cancelled:
            report.cancelled = True
            break
        await _wait_while_paused(control, poll_interval_sec)
        if control.cancelled:
            report.cancelled = True
            break

        report.outcomes.append(await worker(item))

        if control.cancelled:
            report.cancelled = position < len(items) - 1
            break
        if delay_sec > 0 and position < len(items) - 1:
            await asyncio.sleep(delay_sec)

    if report.cancelled:
        logger.info("Sequential run cancelled after %d of %d items", len(report.outcomes), len(items))
    return report


# ============================================================
# Retry
# ============================================================


def _should_reset(page, stages: Optional[Collection[str]]) -> bool:
    return page.status is PageStatus.FAILED and (stages is None or page.failed_stage in stages)


def reset_failed(batch: Batch, stages: Optional[Collection[str]] = None) -> Batch:
    """Return ``batch`` with failed pages back at their stage's initial status.

    With ``stages`` set, only pages whose ``failed_stage`` is listed are reset.
    Other pages are returned untouched (same objects).
    """
    books = []
    for book in batch.books:
        pages = [
            page.evolve(
                status=STAGES_BY_NAME[page.failed_stage].reset_to
                if page.failed_stage in STAGES_BY_NAME
                else PageStatus.DRAFT,
                error=None,
                failed_stage=None,
            )
            if _should_reset(page, stages)
            else page
            for page in book.pages
        ]
        books.append(book.model_copy(update={"pages": pages}))
    return batch.model_copy(update={"books": books})


def failed_by_stage(batch: Batch) -> dict[Optional[str], list[str]]:
    """Ids of failed pages grouped by the stage they failed in."""
    groups: dict[Optional[str], list[str]] = {}
    for _, page in batch.iter_pages():
        if page.status is PageStatus.FAILED:
            groups.setdefault(page.failed_stage, []).append(page.id)
    return groups


async def retry_failed(
    store: BatchStore,
    rerun: Callable[[], Awaitable[SchedulerReport]],
    stages: Optional[Collection[str]] = None,
) -> SchedulerReport:
    """Reset the failed subset, then re-run the stage over the whole collection.

    Items that already succeeded are skipped by the stage's eligibility check.
    Pass ``stages`` so that only failures ``rerun`` actually retries are reset.
    """
    count = sum(1 for _, page in store.batch.iter_pages() if _should_reset(page, stages))
    store.apply(lambda batch: reset_failed(batch, stages))
    logger.info("Retrying %d failed pages", count)
    return await rerun()
