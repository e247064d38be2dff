"""Bulk book creation: several books driven through ideas, page plans, prompts, images and export.

Synchronous methods edit the idea list or the batch directly and are safe to
call from the Streamlit script. ``async`` methods talk to the generation
service and are meant to run on a background job; they write through the
shared ``BatchStore`` so the UI can poll progress while they run.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from config import DEFAULT_PAGES_PER_BOOK, MAX_BOOKS_PER_BATCH, MAX_PAGES_PER_BOOK, get_orchestration_config
from core.models import (
    ActiveVersion,
    Audience,
    Batch,
    BatchStatus,
    BookIdea,
    BookMode,
    BookStatus,
    BookType,
    Page,
    PageStatus,
    create_batch_from_ideas,
    create_empty_book_idea,
)
from core.navigation import BulkStep, can_navigate_to, next_bulk_step, previous_bulk_step
from core.persistence import build_export_pages, safe_filename, save_export_file, save_export_handoff
from core.scheduler import RunControl, SchedulerReport, failed_by_stage, retry_failed, run_chunked, run_sequential
from core.stage_runner import (
    ENHANCEMENT_STAGE,
    GENERATION_STAGE,
    PAGE_IDEAS_STAGE,
    PROMPT_STAGE,
    REGENERATION_STAGE,
    StageOutcome,
    run_book_stage,
    run_page_stage,
)
from core.store import BatchStore
from features.stage_calls import (
    generate_image_call,
    improve_prompt_call,
    page_ideas_call,
    process_image_call,
)
from integrations.colorbook_api import ColorbookApiClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], ColorbookApiClient]


def _coerce(enum_cls: type[Enum], value: Any, default: Enum) -> Enum:
    try:
        return enum_cls(value)
    except ValueError:
        return default


class BulkWorkflow:
    """State and operations of the bulk wizard.

    ``client_factory`` is called once per remote operation so each background
    job opens (and closes) its own HTTP client inside its own event loop.
    """

    def __init__(
        self,
        client_factory: ClientFactory = ColorbookApiClient,
        config: Optional[dict] = None,
        exports_dir: Optional[Path] = None,
    ) -> None:
        self.client_factory = client_factory
        self.config = config or get_orchestration_config()
        self.exports_dir = exports_dir
        self.ideas: list[BookIdea] = [create_empty_book_idea()]
        self.store = BatchStore()
        self.control = RunControl()
        self.current_step: BulkStep = BulkStep.IDEAS
        self.last_report: Optional[SchedulerReport] = None

    @property
    def batch(self) -> Batch:
        return self.store.batch

    def reset(self) -> None:
        """Start over with a single blank idea and no batch."""
        self.ideas = [create_empty_book_idea()]
        self.store.replace(Batch())
        self.control.reset()
        self.current_step = BulkStep.IDEAS
        self.last_report = None

    # ============================================================
    # Navigation
    # ============================================================

    def can_navigate_to(self, step: int) -> bool:
        return can_navigate_to(step, self.ideas, self.batch)

    def go_to_step(self, step: int) -> bool:
        if not self.can_navigate_to(step):
            return False
        self.current_step = BulkStep(step)
        return True

    def next_step(self) -> BulkStep:
        self.current_step = BulkStep(next_bulk_step(self.current_step, self.ideas, self.batch))
        return self.current_step

    def previous_step(self) -> BulkStep:
        self.current_step = BulkStep(previous_bulk_step(self.current_step))
        return self.current_step

    # ============================================================
    # Step 1: book ideas
    # ============================================================

    def _find_idea_index(self, idea_id: str) -> int:
        for i, idea in enumerate(self.ideas):
            if idea.id == idea_id:
                return i
        raise KeyError(f"Unknown book idea: {idea_id}")

    def add_idea(self) -> BookIdea:
        if len(self.ideas) >= MAX_BOOKS_PER_BATCH:
            raise ValueError(f"A batch holds at most {MAX_BOOKS_PER_BATCH} books")
        idea = create_empty_book_idea()
        self.ideas = [*self.ideas, idea]
        return idea

    def update_idea(self, idea_id: str, **changes) -> BookIdea:
        """Edit one idea. ``page_count`` is clamped to the allowed range."""
        i = self._find_idea_index(idea_id)
        if "page_count" in changes:
            changes["page_count"] = max(1, min(MAX_PAGES_PER_BOOK, int(changes["page_count"])))
        updated = BookIdea.model_validate({**self.ideas[i].model_dump(), **changes})
        self.ideas = [*self.ideas[:i], updated, *self.ideas[i + 1:]]
        return updated

    def delete_idea(self, idea_id: str) -> bool:
        """Remove an idea. The last remaining idea is never removed."""
        if len(self.ideas) <= 1:
            return False
        i = self._find_idea_index(idea_id)
        self.ideas = [*self.ideas[:i], *self.ideas[i + 1:]]
        return True

    def toggle_idea_approval(self, idea_id: str) -> BookIdea:
        i = self._find_idea_index(idea_id)
        return self.update_idea(idea_id, is_approved=not self.ideas[i].is_approved)

    def approve_all_ideas(self) -> None:
        self.ideas = [idea.model_copy(update={"is_approved": True}) for idea in self.ideas]

    @property
    def approved_ideas(self) -> list[BookIdea]:
        return [idea for idea in self.ideas if idea.is_approved]

    async def generate_book_ideas(
        self,
        count: int,
        themes: Sequence[str],
        target_age: Audience = Audience.KIDS,
        book_type: Optional[BookType] = None,
    ) -> list[BookIdea]:
        """Ask the service for ideas. New ideas replace blank drafts; the list stays within the book limit."""
        target_age = Audience(target_age)
        async with self.client_factory() as client:
            suggestions = await client.generate_book_ideas(
                count=count,
                themes=[t.strip() for t in themes if t and t.strip()],
                target_age=target_age.value,
                book_type=BookType(book_type).value if book_type else None,
            )

        new_ideas = [
            BookIdea(
                title=s.title,
                book_type=_coerce(BookType, s.book_type, BookType(book_type) if book_type else BookType.COLORING_SCENES),
                concept=s.concept,
                target_age=_coerce(Audience, s.target_age, target_age),
                book_mode=_coerce(BookMode, s.book_mode, BookMode.THEME_BOOK),
                page_count=max(1, min(MAX_PAGES_PER_BOOK, s.page_count or DEFAULT_PAGES_PER_BOOK)),
            )
            for s in suggestions
        ]
        kept = [idea for idea in self.ideas if not idea.is_blank]
        merged = [*kept, *new_ideas][:MAX_BOOKS_PER_BATCH]
        self.ideas = merged or [create_empty_book_idea()]
        logger.info("Generated %d book ideas (%d in list)", len(new_ideas), len(self.ideas))
        return new_ideas

    def proceed_to_page_plans(self) -> Batch:
        """Build the batch from approved ideas and move to the page-plan step."""
        if not self.approved_ideas:
            raise ValueError("Please approve at least one book idea")
        batch = self.store.replace(create_batch_from_ideas(self.ideas))
        self.current_step = BulkStep.PAGE_PLANS
        logger.info("Created batch %s with %d books, %d pages", batch.id, len(batch.books), batch.total_pages)
        return batch

    # ============================================================
    # Step 2: page ideas
    # ============================================================

    async def generate_page_ideas_for_book(self, book_id: str) -> StageOutcome:
        async with self.client_factory() as client:
            return await run_book_stage(self.store, book_id, PAGE_IDEAS_STAGE, page_ideas_call(client))

    async def generate_all_page_ideas(self) -> SchedulerReport:
        books = list(self.batch.books)
        async with self.client_factory() as client:
            call = page_ideas_call(client)
            report = await run_chunked(
                books,
                self.config["concurrency"]["page_ideas"],
                lambda book: run_book_stage(self.store, book.id, PAGE_IDEAS_STAGE, call),
            )
        self.last_report = report
        logger.info("Page ideas for %d books: %s", len(books), report.summary())
        return report

    def update_page_idea(self, page_id: str, idea_text: str) -> Page:
        return self.store.update_page(page_id, idea_text=idea_text)

    # ============================================================
    # Step 3: prompts
    # ============================================================

    async def improve_prompt_for_page(self, page_id: str) -> StageOutcome:
        book, _ = self.store.locate_page(page_id)
        async with self.client_factory() as client:
            return await run_page_stage(self.store, page_id, PROMPT_STAGE, improve_prompt_call(client, book))

    async def _improve_book(self, client: ColorbookApiClient, book_id: str) -> SchedulerReport:
        book = self.store.get_book(book_id)
        call = improve_prompt_call(client, book)
        pending = [page.id for page in book.pages if not page.has_prompt]
        report = await run_sequential(
            pending, lambda page_id: run_page_stage(self.store, page_id, PROMPT_STAGE, call)
        )
        if all(page.has_prompt for page in self.store.get_book(book_id).pages):
            self.store.update_book(book_id, status=BookStatus.PROMPTS_READY)
        return report

    async def improve_prompts_for_book(self, book_id: str) -> SchedulerReport:
        async with self.client_factory() as client:
            report = await self._improve_book(client, book_id)
        self.last_report = report
        return report

    async def _improve_books(self, book_ids: list[str]) -> SchedulerReport:
        """Books in chunks; pages within a book one at a time."""
        async with self.client_factory() as client:
            per_book = await run_chunked(
                book_ids,
                self.config["concurrency"]["prompts"],
                lambda book_id: self._improve_book(client, book_id),
            )
        return SchedulerReport(outcomes=[o for report in per_book.outcomes for o in report.outcomes])

    async def improve_all_prompts(self) -> SchedulerReport:
        book_ids = [book.id for book in self.batch.books]
        combined = await self._improve_books(book_ids)
        self.last_report = combined
        logger.info("Prompts for %d books: %s", len(book_ids), combined.summary())
        return combined

    def update_page_prompt(self, page_id: str, final_prompt: str) -> Page:
        return self.store.update_page(page_id, final_prompt=final_prompt)

    def toggle_prompt_approval(self, page_id: str) -> Page:
        return self.store.transform_page(
            page_id, lambda page: page.evolve(is_prompt_approved=not page.is_prompt_approved)
        )

    def approve_all_prompts(self, book_id: Optional[str] = None) -> int:
        """Approve every prompt in one book, or in the whole batch when ``book_id`` is None."""
        page_ids = {
            page.id
            for book, page in self.batch.iter_pages()
            if book_id is None or book.id == book_id
        }
        return self.store.update_pages(
            lambda page: page.id in page_ids, lambda page: page.evolve(is_prompt_approved=True)
        )

    # ============================================================
    # Step 4: images
    # ============================================================

    def _image_size(self) -> str:
        return self.config["image"]["bulk_size"]

    async def _generate_pending(self, client: ColorbookApiClient) -> SchedulerReport:
        calls = {book.id: generate_image_call(client, book, self._image_size()) for book in self.batch.books}
        pending = [
            (book.id, page.id)
            for book, page in self.batch.iter_pages()
            if GENERATION_STAGE.eligible(page)
        ]
        logger.info("Generating %d pages", len(pending))
        return await run_sequential(
            pending,
            lambda item: run_page_stage(self.store, item[1], GENERATION_STAGE, calls[item[0]]),
            control=self.control,
            delay_sec=self.config["delays"]["bulk_generation_sec"],
            poll_interval_sec=self.config["pause_poll_interval_sec"],
        )

    async def start_generation(self) -> SchedulerReport:
        """Generate every page that has a prompt and no image, one at a time."""
        self.control.reset()
        self.store.set_status(BatchStatus.GENERATING)
        try:
            async with self.client_factory() as client:
                report = await self._generate_pending(client)
        finally:
            self.store.set_status(BatchStatus.COMPLETED)
        self._mark_generated_books()
        self.last_report = report
        logger.info("Generation finished: %s", report.summary())
        return report

    def _mark_generated_books(self) -> None:
        for book in self.batch.books:
            if book.pages and all(page.has_image for page in book.pages) and book.status is not BookStatus.EXPORTED:
                self.store.update_book(book.id, status=BookStatus.GENERATED)

    def pause_generation(self) -> None:
        self.control.pause()
        if self.batch.status is BatchStatus.GENERATING:
            self.store.set_status(BatchStatus.PAUSED)

    def resume_generation(self) -> None:
        self.control.resume()
        if self.batch.status is BatchStatus.PAUSED:
            self.store.set_status(BatchStatus.GENERATING)

    def stop_generation(self) -> None:
        """Stop before the next page. A page already being generated finishes."""
        self.control.cancel()

    async def retry_failed_pages(self) -> SchedulerReport:
        """Retry every failed page in the stage it failed in: prompts, then images, then enhancement.

        Pages that failed in a stage this flow does not rerun stay failed.
        """
        groups = failed_by_stage(self.batch)
        outcomes: list[StageOutcome] = []
        cancelled = False

        prompt_ids = groups.get(PROMPT_STAGE.name, [])
        if prompt_ids:
            book_ids = list(dict.fromkeys(self.store.locate_page(pid)[0].id for pid in prompt_ids))
            report = await retry_failed(
                self.store, lambda: self._improve_books(book_ids), stages={PROMPT_STAGE.name}
            )
            outcomes.extend(report.outcomes)

        if groups.get(GENERATION_STAGE.name):
            report = await retry_failed(self.store, self.start_generation, stages={GENERATION_STAGE.name})
            outcomes.extend(report.outcomes)
            cancelled = report.cancelled

        enhance_ids = groups.get(ENHANCEMENT_STAGE.name, [])
        if enhance_ids:
            report = await retry_failed(
                self.store, lambda: self._enhance_pages(enhance_ids), stages={ENHANCEMENT_STAGE.name}
            )
            outcomes.extend(report.outcomes)

        combined = SchedulerReport(outcomes=outcomes, cancelled=cancelled)
        self.last_report = combined
        logger.info("Retry finished: %s", combined.summary())
        return combined

    async def regenerate_page(self, page_id: str) -> StageOutcome:
        """Drop the page's images and generate it again."""
        self.store.transform_page(page_id, lambda page: page.clear_artifacts())
        book, _ = self.store.locate_page(page_id)
        async with self.client_factory() as client:
            call = generate_image_call(client, book, self._image_size())
            return await run_page_stage(self.store, page_id, REGENERATION_STAGE, call)

    # ============================================================
    # Step 5: review, enhance, export
    # ============================================================

    def _process_call(self, client: ColorbookApiClient):
        image_cfg = self.config["image"]
        return process_image_call(client, image_cfg["enhance_scale"], image_cfg["margin_percent"])

    async def enhance_page(self, page_id: str) -> StageOutcome:
        async with self.client_factory() as client:
            return await run_page_stage(self.store, page_id, ENHANCEMENT_STAGE, self._process_call(client))

    async def _enhance_pages(self, page_ids: list[str]) -> SchedulerReport:
        async with self.client_factory() as client:
            call = self._process_call(client)
            return await run_sequential(
                page_ids, lambda page_id: run_page_stage(self.store, page_id, ENHANCEMENT_STAGE, call)
            )

    async def enhance_book(self, book_id: str) -> SchedulerReport:
        page_ids = [p.id for p in self.store.get_book(book_id).pages if ENHANCEMENT_STAGE.eligible(p)]
        report = await self._enhance_pages(page_ids)
        self.last_report = report
        return report

    async def enhance_all(self) -> SchedulerReport:
        page_ids = [p.id for _, p in self.batch.iter_pages() if ENHANCEMENT_STAGE.eligible(p)]
        report = await self._enhance_pages(page_ids)
        self.last_report = report
        logger.info("Enhancement finished: %s", report.summary())
        return report

    def toggle_page_approval(self, page_id: str) -> Page:
        """Approve a page, or withdraw approval and return it to its artifact status."""

        def toggle(page: Page) -> Page:
            if page.approved_at is not None:
                enhanced = page.enhanced_image_base64 or page.final_letter_base64
                return page.evolve(
                    approved_at=None,
                    status=PageStatus.ENHANCED if enhanced else PageStatus.GENERATED,
                )
            return page.evolve(approved_at=datetime.now(), status=PageStatus.APPROVED)

        return self.store.transform_page(page_id, toggle)

    def select_version(self, page_id: str, version: ActiveVersion) -> Page:
        """Choose which artifact is shown. Falls back when that artifact is missing."""
        return self.store.update_page(page_id, active_version=version)

    async def export_book_pdf(
        self,
        book_id: str,
        author_name: str = "",
        copyright_text: str = "",
        include_title_page: bool = True,
        include_copyright_page: bool = True,
        include_page_numbers: bool = False,
    ) -> str:
        """Render one book to PDF and write it to the exports folder. Returns the file path."""
        book = self.store.get_book(book_id)
        pages = build_export_pages(book)
        if not pages:
            raise ValueError(f'"{book.display_title}" has no generated pages to export')
        async with self.client_factory() as client:
            pdf_bytes = await client.export_pdf(
                pages,
                book_title=book.display_title,
                author_name=author_name,
                copyright_text=copyright_text,
                include_title_page=include_title_page,
                include_copyright_page=include_copyright_page,
                include_page_numbers=include_page_numbers,
            )
        path = save_export_file(pdf_bytes, f"{safe_filename(book.title)}.pdf", self.exports_dir)
        self.store.update_book(book_id, status=BookStatus.EXPORTED, exported_at=datetime.now())
        return path

    async def export_batch_zip(self) -> str:
        """Every generated page of every book in one ZIP. Returns the file path."""
        pages = []
        for book in self.batch.books:
            for entry in build_export_pages(book):
                pages.append(
                    {
                        **entry,
                        "pageIndex": len(pages) + 1,
                        "title": f"{book.display_title} - {entry['title']}",
                    }
                )
        if not pages:
            raise ValueError("No generated pages to export")
        title = f"Coloring books {datetime.now():%Y-%m-%d}"
        async with self.client_factory() as client:
            result = await client.export_zip(pages, book_title=title)
        filename = result.filename or f"{safe_filename(title)}.zip"
        path = save_export_file(base64.b64decode(result.zip_base64), filename, self.exports_dir)
        logger.info("Exported %d pages to %s", result.processed_pages or len(pages), path)
        return path

    def save_handoff(self, book_id: str) -> str:
        """Write the export hand-off for one book."""
        book = self.store.get_book(book_id)
        if not any(page.has_image for page in book.pages):
            raise ValueError(f'"{book.display_title}" has no generated pages to export')
        return save_export_handoff(book, self.exports_dir)
