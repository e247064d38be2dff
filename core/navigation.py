"""Wizard step definitions and reachability predicates.

Reachability is re-evaluated from scratch on every call; there is no stored
transition state, so emptying the model can make a step unreachable again.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Callable, Optional, Sequence

from core.models import Batch, Book, BookIdea, BookMode


class BulkStep(IntEnum):
    IDEAS = 1
    PAGE_PLANS = 2
    PROMPTS = 3
    GENERATE = 4
    REVIEW = 5


class SingleStep(IntEnum):
    BOOK_TYPE = 0
    IDEA = 1
    PROMPTS = 2
    GENERATE = 3
    REVIEW = 4
    EXPORT = 5


BULK_STEPS = [
    {"step": BulkStep.IDEAS, "label": "Book Ideas", "description": "Draft or generate book ideas and approve them"},
    {"step": BulkStep.PAGE_PLANS, "label": "Page Plans", "description": "Generate one idea per page for every book"},
    {"step": BulkStep.PROMPTS, "label": "Prompts", "description": "Turn page ideas into final image prompts"},
    {"step": BulkStep.GENERATE, "label": "Generate", "description": "Generate every page image"},
    {"step": BulkStep.REVIEW, "label": "Review & Export", "description": "Enhance, approve and export"},
]

SINGLE_STEPS = [
    {"step": SingleStep.BOOK_TYPE, "label": "Book Type", "description": "Storybook or theme collection"},
    {"step": SingleStep.IDEA, "label": "Idea", "description": "Describe or generate the book idea"},
    {"step": SingleStep.PROMPTS, "label": "Prompts", "description": "One prompt per page"},
    {"step": SingleStep.GENERATE, "label": "Generate", "description": "Generate page images"},
    {"step": SingleStep.REVIEW, "label": "Review", "description": "Enhance and process for print"},
    {"step": SingleStep.EXPORT, "label": "Export", "description": "PDF and ZIP downloads"},
]


def get_step_label(step: int, steps: Sequence[dict] = BULK_STEPS) -> str:
    for s in steps:
        if s["step"] == step:
            return s["label"]
    return str(step)


# ============================================================
# Bulk wizard
# ============================================================


def _any_prompt(batch: Optional[Batch]) -> bool:
    return batch is not None and any(page.has_prompt for _, page in batch.iter_pages())


def _any_generated(batch: Optional[Batch]) -> bool:
    return batch is not None and any(page.has_image for _, page in batch.iter_pages())


_BULK_PREDICATES: dict[BulkStep, Callable[[Sequence[BookIdea], Optional[Batch]], bool]] = {
    BulkStep.IDEAS: lambda ideas, batch: True,
    BulkStep.PAGE_PLANS: lambda ideas, batch: any(i.is_approved for i in ideas),
    BulkStep.PROMPTS: lambda ideas, batch: batch is not None and len(batch.books) > 0,
    BulkStep.GENERATE: lambda ideas, batch: _any_prompt(batch),
    BulkStep.REVIEW: lambda ideas, batch: _any_generated(batch),
}


def can_navigate_to(step: int, ideas: Sequence[BookIdea], batch: Optional[Batch]) -> bool:
    """Whether bulk wizard ``step`` is reachable for the given ideas and batch."""
    try:
        predicate = _BULK_PREDICATES[BulkStep(step)]
    except ValueError:
        return False
    return predicate(ideas, batch)


def next_bulk_step(current: int, ideas: Sequence[BookIdea], batch: Optional[Batch]) -> int:
    """The following step if reachable, otherwise ``current``."""
    if current < BulkStep.REVIEW and can_navigate_to(current + 1, ideas, batch):
        return current + 1
    return current


def previous_bulk_step(current: int) -> int:
    return max(BulkStep.IDEAS, current - 1)


# ============================================================
# Single-book wizard
# ============================================================


def can_navigate_single(
    step: int,
    current_step: int,
    book_mode: Optional[BookMode],
    book: Optional[Book],
) -> bool:
    """Whether single-book ``step`` is reachable.

    Steps already visited stay reachable; later steps require content:
    prompts need a page set, generation needs a prompt, review and export
    need at least one generated page.
    """
    try:
        step = SingleStep(step)
    except ValueError:
        return False
    if step is SingleStep.BOOK_TYPE:
        return True
    if book_mode is None:
        return False
    if step <= current_step:
        return True
    pages = book.pages if book is not None else []
    if step is SingleStep.IDEA:
        return True
    if step is SingleStep.PROMPTS:
        return len(pages) > 0
    if step is SingleStep.GENERATE:
        return any(p.has_prompt for p in pages)
    return any(p.has_image for p in pages)
