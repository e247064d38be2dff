"""Run one remote operation for one page (or book) and record the outcome on the item.

A stage marks its item in-progress, awaits the remote call, then either merges
the returned payload and marks it done, or stores the error and marks it
failed. Failures are item state: nothing is re-raised, so a batch loop can
carry on past a failed item.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from core.models import Book, BookStatus, Page, PageStatus
from core.store import BatchStore

logger = logging.getLogger(__name__)

PageCall = Callable[[Page], Awaitable[dict]]
BookCall = Callable[[Book], Awaitable[Any]]


@dataclass(frozen=True)
class Stage:
    """Status markers and bookkeeping for a page-level stage."""

    name: str
    in_progress: PageStatus
    done: PageStatus
    reset_to: PageStatus  # where retry puts a page that failed in this stage
    eligible: Callable[[Page], bool]
    sample: Optional[str] = None  # running-mean bucket on the batch
    duration_field: Optional[str] = None
    timestamp_field: Optional[str] = None


@dataclass(frozen=True)
class BookStage:
    """A book-level stage. ``merge`` folds the payload into the latest book value."""

    name: str
    in_progress: BookStatus
    done: BookStatus
    merge: Callable[[Book, Any], Book]


@dataclass
class StageOutcome:
    item_id: str
    stage: str
    ok: bool = False
    skipped: bool = False
    duration_ms: float = 0.0
    error: Optional[str] = None


def _error_message(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


# ============================================================
# Stage definitions
# ============================================================


def _needs_prompt(page: Page) -> bool:
    return bool(page.idea_text.strip()) and not page.has_prompt and not page.is_in_flight


def _needs_image(page: Page) -> bool:
    return page.has_prompt and not page.has_image and not page.is_in_flight


def _needs_enhancement(page: Page) -> bool:
    return page.has_image and not (page.enhanced_image_base64 or page.final_letter_base64) and not page.is_in_flight


def _needs_final_letter(page: Page) -> bool:
    return page.has_image and not page.final_letter_base64 and not page.is_in_flight


PROMPT_STAGE = Stage(
    name="prompt",
    in_progress=PageStatus.PROMPTING,
    done=PageStatus.PROMPT_READY,
    reset_to=PageStatus.DRAFT,
    eligible=_needs_prompt,
    timestamp_field="prompt_generated_at",
)

GENERATION_STAGE = Stage(
    name="generation",
    in_progress=PageStatus.GENERATING,
    done=PageStatus.GENERATED,
    reset_to=PageStatus.DRAFT,
    eligible=_needs_image,
    sample="generation",
    duration_field="generation_duration_ms",
    timestamp_field="generated_at",
)

ENHANCEMENT_STAGE = Stage(
    name="enhancement",
    in_progress=PageStatus.ENHANCING,
    done=PageStatus.ENHANCED,
    reset_to=PageStatus.GENERATED,
    eligible=_needs_enhancement,
    sample="enhancement",
    duration_field="enhancement_duration_ms",
    timestamp_field="enhanced_at",
)

FINAL_LETTER_STAGE = Stage(
    name="final_letter",
    in_progress=PageStatus.ENHANCING,
    done=PageStatus.ENHANCED,
    reset_to=PageStatus.GENERATED,
    eligible=_needs_final_letter,
    sample="enhancement",
    duration_field="enhancement_duration_ms",
    timestamp_field="enhanced_at",
)

STAGES_BY_NAME = {
    stage.name: stage
    for stage in (PROMPT_STAGE, GENERATION_STAGE, ENHANCEMENT_STAGE, FINAL_LETTER_STAGE)
}

# Explicit regenerate: the page may lack a final prompt (a fallback prompt is used).
REGENERATION_STAGE = replace(
    GENERATION_STAGE,
    eligible=lambda page: not page.has_image and not page.is_in_flight,
)


def _merge_page_ideas(book: Book, idea_texts: list) -> Book:
    pages = []
    for position, page in enumerate(book.pages):
        text = idea_texts[position] if position < len(idea_texts) else None
        pages.append(page.evolve(idea_text=text) if text else page)
    return book.model_copy(update={"pages": pages})


PAGE_IDEAS_STAGE = BookStage(
    name="page_ideas",
    in_progress=BookStatus.PLANNING,
    done=BookStatus.IDEAS_READY,
    merge=_merge_page_ideas,
)


# ============================================================
# Runners
# ============================================================


async def run_page_stage(store: BatchStore, page_id: str, stage: Stage, call: PageCall) -> StageOutcome:
    """Drive one page through ``stage``. Pages the stage does not apply to are skipped."""
    page = store.get_page(page_id)
    if not stage.eligible(page):
        return StageOutcome(item_id=page_id, stage=stage.name, skipped=True)

    page = store.update_page(page_id, status=stage.in_progress, error=None, warning=None)
    logger.info("Stage %s started for page %d (%s)", stage.name, page.index, page_id)
    started = time.monotonic()
    try:
        payload = await call(page)
    except Exception as exc:
        message = _error_message(exc)
        logger.warning("Stage %s failed for page %d: %s", stage.name, page.index, message)
        store.update_page(page_id, status=PageStatus.FAILED, error=message, failed_stage=stage.name)
        return StageOutcome(item_id=page_id, stage=stage.name, error=message)

    duration_ms = (time.monotonic() - started) * 1000
    changes = dict(payload or {})
    changes.update(status=stage.done, error=None, failed_stage=None)
    if stage.duration_field:
        changes[stage.duration_field] = duration_ms
    if stage.timestamp_field:
        changes[stage.timestamp_field] = datetime.now()
    store.complete_page(page_id, changes, sample=stage.sample, duration_ms=duration_ms)
    logger.info("Stage %s finished for page %d in %.0f ms", stage.name, page.index, duration_ms)
    return StageOutcome(item_id=page_id, stage=stage.name, ok=True, duration_ms=duration_ms)


async def run_book_stage(store: BatchStore, book_id: str, stage: BookStage, call: BookCall) -> StageOutcome:
    """Drive one book through a book-level stage such as page-idea planning."""
    book = store.update_book(book_id, status=stage.in_progress, error=None)
    logger.info("Stage %s started for book %r", stage.name, book.display_title)
    started = time.monotonic()
    try:
        payload = await call(book)
    except Exception as exc:
        message = _error_message(exc)
        logger.warning("Stage %s failed for book %r: %s", stage.name, book.display_title, message)
        store.update_book(book_id, status=BookStatus.FAILED, error=message)
        return StageOutcome(item_id=book_id, stage=stage.name, error=message)

    duration_ms = (time.monotonic() - started) * 1000

    def reducer(batch):
        latest = batch.find_book(book_id)
        merged = stage.merge(latest, payload).model_copy(
            update={"status": stage.done, "error": None, "updated_at": datetime.now()}
        )
        return batch.replace_book(merged)

    store.apply(reducer)
    logger.info("Stage %s finished for book %r in %.0f ms", stage.name, book.display_title, duration_ms)
    return StageOutcome(item_id=book_id, stage=stage.name, ok=True, duration_ms=duration_ms)
