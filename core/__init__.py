"""Core orchestration: item model, store, stage runner, scheduler, progress, navigation."""

from core.models import (
    Batch,
    BatchStatus,
    Book,
    BookIdea,
    Page,
    PageStatus,
    book_idea_to_book,
    calculate_batch_progress,
    create_batch_from_ideas,
    create_empty_batch,
    create_empty_book_idea,
    format_eta,
)
from core.scheduler import RunControl, SchedulerReport, retry_failed, run_chunked, run_sequential
from core.stage_runner import run_book_stage, run_page_stage
from core.store import BatchStore

__all__ = [
    "Batch",
    "BatchStatus",
    "BatchStore",
    "Book",
    "BookIdea",
    "Page",
    "PageStatus",
    "RunControl",
    "SchedulerReport",
    "book_idea_to_book",
    "calculate_batch_progress",
    "create_batch_from_ideas",
    "create_empty_batch",
    "create_empty_book_idea",
    "format_eta",
    "retry_failed",
    "run_book_stage",
    "run_chunked",
    "run_page_stage",
    "run_sequential",
]
