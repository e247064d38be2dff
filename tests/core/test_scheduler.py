"""Tests for chunked and sequential scheduling, pause/cancel and retry."""

import asyncio

import pytest

from core.models import Batch, Book, Page, PageStatus
from core.scheduler import (
    RunControl,
    chunked,
    failed_by_stage,
    reset_failed,
    retry_failed,
    run_chunked,
    run_sequential,
)
from core.stage_runner import GENERATION_STAGE, StageOutcome, run_page_stage
from core.store import BatchStore


def test_chunked_splits_in_order():
    assert chunked(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]


def test_chunked_rejects_zero():
    with pytest.raises(ValueError):
        chunked([1, 2], 0)


def test_run_chunked_waits_for_each_chunk():
    """No item of chunk k+1 starts before every item of chunk k has settled."""
    events = []

    async def worker(item):
        events.append(("start", item))
        await asyncio.sleep(0.01 * (3 - item % 3))
        events.append(("end", item))
        return StageOutcome(item_id=str(item), stage="test", ok=True)

    report = asyncio.run(run_chunked(list(range(7)), 3, worker))

    assert report.succeeded == 7
    position = {event: i for i, event in enumerate(events)}
    chunks = [[0, 1, 2], [3, 4, 5], [6]]
    for earlier, later in zip(chunks, chunks[1:]):
        last_end = max(position[("end", item)] for item in earlier)
        first_start = min(position[("start", item)] for item in later)
        assert last_end < first_start


def test_run_chunked_stops_between_chunks_on_cancel():
    control = RunControl()
    started = []

    async def worker(item):
        started.append(item)
        control.cancel()
        return StageOutcome(item_id=str(item), stage="test", ok=True)

    report = asyncio.run(run_chunked([1, 2, 3, 4], 2, worker, control))
    assert started == [1, 2]
    assert report.cancelled


def test_run_sequential_cancel_stops_later_items():
    """Cancelling during item k means no item after k is started."""
    control = RunControl()
    started = []

    async def worker(item):
        started.append(item)
        if item == 2:
            control.cancel()
        return StageOutcome(item_id=str(item), stage="test", ok=True)

    report = asyncio.run(run_sequential([0, 1, 2, 3, 4], worker, control))
    assert started == [0, 1, 2]
    assert report.cancelled
    assert len(report.outcomes) == 3


def test_run_sequential_pause_holds_next_item():
    control = RunControl()
    started = []

    async def worker(item):
        started.append(item)
        if item == 0:
            control.pause()
        return StageOutcome(item_id=str(item), stage="test", ok=True)

    async def scenario():
        task = asyncio.create_task(run_sequential([0, 1, 2], worker, control, poll_interval_sec=0.01))
        await asyncio.sleep(0.05)
        held = list(started)
        control.resume()
        report = await task
        return held, report

    held, report = asyncio.run(scenario())
    assert held == [0]
    assert started == [0, 1, 2]
    assert report.succeeded == 3


def test_cancel_while_paused_ends_the_run():
    control = RunControl(paused=True)

    async def worker(item):
        return StageOutcome(item_id=str(item), stage="test", ok=True)

    async def scenario():
        task = asyncio.create_task(run_sequential([0, 1], worker, control, poll_interval_sec=0.01))
        await asyncio.sleep(0.03)
        control.cancel()
        return await task

    report = asyncio.run(scenario())
    assert report.outcomes == []
    assert report.cancelled


def test_reset_failed_touches_only_failed_pages():
    generated = Page(index=1, image_base64="img", status=PageStatus.GENERATED)
    failed_gen = Page(index=2, final_prompt="p", status=PageStatus.FAILED, error="x", failed_stage="generation")
    failed_enh = Page(index=3, image_base64="img", status=PageStatus.FAILED, error="y", failed_stage="enhancement")
    batch = Batch(books=[Book(pages=[generated, failed_gen, failed_enh])])

    pages = reset_failed(batch).books[0].pages

    assert pages[0] is generated
    assert pages[1].status is PageStatus.DRAFT
    assert pages[1].error is None
    assert pages[1].failed_stage is None
    assert pages[2].status is PageStatus.GENERATED
    assert pages[2].image_base64 == "img"


def test_reset_failed_limited_to_stages():
    failed_prompt = Page(index=1, idea_text="a fox", status=PageStatus.FAILED, error="x", failed_stage="prompt")
    failed_gen = Page(index=2, final_prompt="p", status=PageStatus.FAILED, error="y", failed_stage="generation")
    batch = Batch(books=[Book(pages=[failed_prompt, failed_gen])])

    pages = reset_failed(batch, stages={"generation"}).books[0].pages

    assert pages[0] is failed_prompt
    assert pages[1].status is PageStatus.DRAFT
    assert pages[1].failed_stage is None


def test_failed_by_stage_groups_page_ids():
    pages = [
        Page(index=1, status=PageStatus.FAILED, failed_stage="prompt"),
        Page(index=2, status=PageStatus.GENERATED),
        Page(index=3, status=PageStatus.FAILED, failed_stage="generation"),
        Page(index=4, status=PageStatus.FAILED, failed_stage="prompt"),
    ]
    groups = failed_by_stage(Batch(books=[Book(pages=pages)]))

    assert groups == {"prompt": [pages[0].id, pages[3].id], "generation": [pages[2].id]}


def test_retry_failed_reruns_only_failed_pages():
    pages = [Page(index=i, final_prompt=f"p{i}") for i in range(1, 4)]
    store = BatchStore(Batch(books=[Book(pages=pages)], total_pages=3))
    page_ids = [p.id for p in pages]
    calls = []
    flaky = {"fail": True}

    async def call(page):
        calls.append(page.index)
        if page.index == 2 and flaky["fail"]:
            raise RuntimeError("busy")
        return {"image_base64": "img"}

    def rerun():
        return run_sequential(page_ids, lambda pid: run_page_stage(store, pid, GENERATION_STAGE, call))

    asyncio.run(rerun())
    assert store.batch.failed_pages == 1

    flaky["fail"] = False
    calls.clear()
    report = asyncio.run(retry_failed(store, rerun))

    assert calls == [2]
    assert report.succeeded == 1
    assert report.skipped == 2
    assert store.batch.failed_pages == 0
    assert store.batch.generated_pages == 3
