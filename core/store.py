"""Authoritative batch holder shared between the orchestration loop and the UI.

All writes go through ``apply``: the reducer receives the *latest* batch under
the lock, so concurrent stage completions never compute counters from a stale
snapshot. Aggregate counters are rebuilt from page state after every write.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Optional

from core.models import Batch, BatchStatus, Book, Page, create_empty_batch
from core.progress import recompute_counters, running_mean

Listener = Callable[[Batch], None]

_SAMPLE_FIELDS = {
    "generation": ("avg_generation_ms", "generation_samples"),
    "enhancement": ("avg_enhancement_ms", "enhancement_samples"),
}


def _fold_sample(batch: Batch, kind: str, duration_ms: float) -> Batch:
    avg_field, count_field = _SAMPLE_FIELDS[kind]
    old_avg = getattr(batch, avg_field)
    old_count = getattr(batch, count_field)
    return batch.model_copy(
        update={
            avg_field: running_mean(old_avg, old_count, duration_ms),
            count_field: old_count + 1,
        }
    )


class BatchStore:
    """Thread-safe owner of the current ``Batch`` value."""

    def __init__(self, batch: Optional[Batch] = None) -> None:
        self._lock = threading.RLock()
        self._batch = batch if batch is not None else create_empty_batch()
        self._listeners: list[Listener] = []

    @property
    def batch(self) -> Batch:
        with self._lock:
            return self._batch

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def replace(self, batch: Batch) -> Batch:
        return self.apply(lambda _: batch)

    def apply(self, reducer: Callable[[Batch], Batch]) -> Batch:
        with self._lock:
            self._batch = recompute_counters(reducer(self._batch))
            current = self._batch
        for listener in list(self._listeners):
            listener(current)
        return current

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_book(self, book_id: str) -> Book:
        book = self.batch.find_book(book_id)
        if book is None:
            raise KeyError(f"Unknown book: {book_id}")
        return book

    def locate_page(self, page_id: str) -> tuple[Book, Page]:
        found = self.batch.locate_page(page_id)
        if found is None:
            raise KeyError(f"Unknown page: {page_id}")
        return found

    def get_page(self, page_id: str) -> Page:
        return self.locate_page(page_id)[1]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def transform_page(
        self,
        page_id: str,
        fn: Callable[[Page], Page],
        then: Optional[Callable[[Batch], Batch]] = None,
    ) -> Page:
        """Replace one page with ``fn(page)`` evaluated against the latest state.

        ``then`` runs on the resulting batch inside the same write.
        """
        result: dict[str, Page] = {}

        def reducer(batch: Batch) -> Batch:
            found = batch.locate_page(page_id)
            if found is None:
                raise KeyError(f"Unknown page: {page_id}")
            book, page = found
            result["page"] = fn(page)
            batch = batch.replace_book(book.replace_page(result["page"]))
            return then(batch) if then else batch

        self.apply(reducer)
        return result["page"]

    def update_page(self, page_id: str, **changes) -> Page:
        return self.transform_page(page_id, lambda page: page.evolve(**changes))

    def complete_page(
        self, page_id: str, changes: dict, sample: Optional[str] = None, duration_ms: float = 0.0
    ) -> Page:
        """Store a finished stage's page changes and its timing sample in one write."""
        return self.transform_page(
            page_id,
            lambda page: page.evolve(**changes),
            then=(lambda batch: _fold_sample(batch, sample, duration_ms)) if sample else None,
        )

    def update_pages(self, predicate: Callable[[Page], bool], fn: Callable[[Page], Page]) -> int:
        """Apply ``fn`` to every page matching ``predicate``. Returns how many changed."""
        changed = 0

        def reducer(batch: Batch) -> Batch:
            nonlocal changed
            books = []
            for book in batch.books:
                pages = []
                for page in book.pages:
                    if predicate(page):
                        page = fn(page)
                        changed += 1
                    pages.append(page)
                books.append(book.model_copy(update={"pages": pages}))
            return batch.model_copy(update={"books": books, "updated_at": datetime.now()})

        self.apply(reducer)
        return changed

    def update_book(self, book_id: str, **changes) -> Book:
        result: dict[str, Book] = {}

        def reducer(batch: Batch) -> Batch:
            book = batch.find_book(book_id)
            if book is None:
                raise KeyError(f"Unknown book: {book_id}")
            result["book"] = book.model_copy(update={**changes, "updated_at": datetime.now()})
            return batch.replace_book(result["book"])

        self.apply(reducer)
        return result["book"]

    def record_sample(self, kind: str, duration_ms: float) -> None:
        """Fold one successful duration into the running mean for ``kind``."""
        self.apply(lambda batch: _fold_sample(batch, kind, duration_ms))

    def set_status(self, status: BatchStatus) -> None:
        now = datetime.now()

        def reducer(batch: Batch) -> Batch:
            changes: dict = {"status": status, "updated_at": now}
            if status is BatchStatus.GENERATING and batch.status is not BatchStatus.PAUSED:
                changes["started_at"] = now
                changes["completed_at"] = None
            elif status is BatchStatus.COMPLETED:
                changes["completed_at"] = now
            return batch.model_copy(update=changes)

        self.apply(reducer)
