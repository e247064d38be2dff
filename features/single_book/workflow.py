"""Single-book creation: one book from a type choice and an idea through to export.

The book lives in a one-book batch inside a ``BatchStore`` so generation,
enhancement and processing reuse the same stage runner and scheduler as the
bulk flow.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Callable, Optional

from config import DEFAULT_PAGES_PER_BOOK, IMAGE_SIZES, MAX_PAGES_PER_BOOK, get_orchestration_config
from core.models import (
    Audience,
    Batch,
    BatchStatus,
    Book,
    BookMode,
    BookStatus,
    Page,
)
from core.navigation import SingleStep, can_navigate_single
from core.persistence import build_export_pages, safe_filename, save_export_file, save_export_handoff
from core.scheduler import RunControl, SchedulerReport, run_sequential
from core.stage_runner import (
    ENHANCEMENT_STAGE,
    FINAL_LETTER_STAGE,
    GENERATION_STAGE,
    REGENERATION_STAGE,
    Stage,
    StageOutcome,
    run_page_stage,
)
from core.store import BatchStore
from features.stage_calls import enhance_image_call, generate_image_call, process_image_call
from integrations.colorbook_api import ColorbookApiClient
from integrations.colorbook_api.models import SingleIdea

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], ColorbookApiClient]

IDEA_MEMORY = 5

STYLE_PROFILE = {
    "lineStyle": "Clean, smooth black outlines suitable for coloring",
    "compositionRules": "Subject fills most of the page height, foreground touches the bottom margin, full page composition",
    "environmentStyle": "Theme-appropriate backgrounds that match the idea",
    "colorScheme": "black and white line art",
    "mustAvoid": ["solid black fills", "shading", "grayscale", "gradients", "border", "frame", "empty bottom area"],
}

DEFAULT_CHARACTER_PROFILE = {
    "species": "main character as described in the idea",
    "proportions": "chibi with large head, cute proportions",
    "faceStyle": "friendly, expressive face suitable for children",
    "poseVibe": "varies by scene",
    "doNotChange": ["character design", "proportions", "face style", "species", "distinctive features"],
}


class SingleBookWorkflow:
    """State and operations of the single-book wizard."""

    def __init__(
        self,
        client_factory: ClientFactory = ColorbookApiClient,
        config: Optional[dict] = None,
        exports_dir: Optional[Path] = None,
    ) -> None:
        self.client_factory = client_factory
        self.config = config or get_orchestration_config()
        self.exports_dir = exports_dir
        self.store = BatchStore()
        self.control = RunControl()
        self.current_step: SingleStep = SingleStep.BOOK_TYPE
        self.last_report: Optional[SchedulerReport] = None

        self.book_mode: Optional[BookMode] = None
        self.user_idea = ""
        self.title = ""
        self.generated_idea: Optional[SingleIdea] = None
        self.previous_ideas: list[dict] = []
        self.page_count = DEFAULT_PAGES_PER_BOOK
        self.orientation = "portrait"
        self.target_age = Audience.ALL
        self.character_profile: Optional[dict] = None

    @property
    def batch(self) -> Batch:
        return self.store.batch

    @property
    def book(self) -> Optional[Book]:
        books = self.batch.books
        return books[0] if books else None

    @property
    def pages(self) -> list[Page]:
        book = self.book
        return list(book.pages) if book else []

    @property
    def image_size(self) -> str:
        return IMAGE_SIZES.get(self.orientation, IMAGE_SIZES["portrait"])

    # ============================================================
    # Navigation
    # ============================================================

    def can_navigate_to(self, step: int) -> bool:
        return can_navigate_single(step, self.current_step, self.book_mode, self.book)

    def go_to_step(self, step: int) -> bool:
        if not self.can_navigate_to(step):
            return False
        self.current_step = SingleStep(step)
        return True

    # ============================================================
    # Book type and idea
    # ============================================================

    def select_book_mode(self, mode: BookMode) -> None:
        self.book_mode = BookMode(mode)
        self.current_step = SingleStep.IDEA

    def set_page_count(self, count: int) -> int:
        self.page_count = max(1, min(MAX_PAGES_PER_BOOK, int(count)))
        return self.page_count

    def set_orientation(self, orientation: str) -> None:
        if orientation not in IMAGE_SIZES:
            raise ValueError(f"Unknown orientation: {orientation}")
        self.orientation = orientation

    def _clear_pages(self) -> None:
        self.store.replace(Batch())
        self.character_profile = None

    def clear_idea(self) -> None:
        self.user_idea = ""
        self.title = ""
        self.generated_idea = None
        self._clear_pages()

    async def generate_idea(self) -> SingleIdea:
        """Ask for a fresh idea, steering away from the last few themes and characters."""
        if self.book_mode is None:
            raise ValueError("Choose a book type first")
        exclude_themes = [p["theme"] for p in self.previous_ideas if p.get("theme")]
        exclude_characters = [
            p["mainCharacter"].split()[-1] for p in self.previous_ideas if p.get("mainCharacter")
        ]
        async with self.client_factory() as client:
            idea = await client.generate_idea(
                age=self.target_age.value,
                mode=self.book_mode.value,
                theme_hint=self.user_idea.strip(),
                previous_ideas=[p.get("title", "") for p in self.previous_ideas],
                exclude_themes=exclude_themes[-IDEA_MEMORY:],
                exclude_character_types=exclude_characters[-IDEA_MEMORY:],
            )
        self.generated_idea = idea
        self.previous_ideas = [
            *self.previous_ideas[-(IDEA_MEMORY - 1):],
            {"title": idea.title, "theme": idea.theme, "mainCharacter": idea.main_character},
        ]
        logger.info("Generated idea %r", idea.title)
        return idea

    def use_generated_idea(self) -> None:
        if self.generated_idea is None:
            raise ValueError("No generated idea to use")
        self.user_idea = self.generated_idea.idea
        self.title = self.generated_idea.title
        self._clear_pages()

    # ============================================================
    # Prompts
    # ============================================================

    async def generate_prompts(self) -> Book:
        """Build the page set: one prompt per page from the current idea."""
        if self.book_mode is None:
            raise ValueError("Choose a book type first")
        idea = self.user_idea.strip()
        if not idea:
            raise ValueError("Please enter an idea first")
        storybook = self.book_mode is BookMode.STORYBOOK
        async with self.client_factory() as client:
            result = await client.generate_page_prompts(
                mode=self.book_mode.value,
                count=self.page_count,
                title=self.title,
                outline=idea,
                target_age=self.target_age.value,
                size=self.image_size,
                base_prompt=idea,
                style_profile=STYLE_PROFILE,
                character_profile=DEFAULT_CHARACTER_PROFILE if storybook else None,
            )

        self.character_profile = result.character_identity_profile or (
            DEFAULT_CHARACTER_PROFILE if storybook else None
        )
        batch = Batch()
        book = Book(
            batch_id=batch.id,
            title=self.title,
            concept=idea,
            target_age=self.target_age,
            book_mode=self.book_mode,
            status=BookStatus.PROMPTS_READY,
            pages=[
                Page(index=position, idea_text=p.title or f"Page {position}", final_prompt=p.prompt)
                for position, p in enumerate(result.pages, start=1)
            ],
        )
        self.store.replace(batch.model_copy(update={"books": [book], "total_pages": len(book.pages)}))
        self.current_step = SingleStep.PROMPTS
        logger.info("Generated %d page prompts", len(book.pages))
        return book

    async def regenerate_prompt(self, page_id: str) -> Page:
        page = self.store.get_page(page_id)
        async with self.client_factory() as client:
            result = await client.regenerate_prompt(
                page_number=page.index,
                current_prompt=page.final_prompt,
                mode=self.book_mode.value if self.book_mode else BookMode.THEME_BOOK.value,
                base_prompt=self.user_idea,
                character_profile=self.character_profile if self.book_mode is BookMode.STORYBOOK else None,
            )
        return self.store.update_page(
            page_id, final_prompt=result.prompt, idea_text=result.title or page.idea_text
        )

    def update_prompt(self, page_id: str, final_prompt: str) -> Page:
        return self.store.update_page(page_id, final_prompt=final_prompt)

    # ============================================================
    # Images
    # ============================================================

    def _generation_call(self, client: ColorbookApiClient):
        return generate_image_call(
            client, self.book, self.image_size, character_profile=self.character_profile, validate=True
        )

    async def _run_pages(self, stage: Stage, call, delay_sec: float) -> SchedulerReport:
        page_ids = [page.id for page in self.pages if stage.eligible(page)]
        return await run_sequential(
            page_ids,
            lambda page_id: run_page_stage(self.store, page_id, stage, call),
            control=self.control,
            delay_sec=delay_sec,
            poll_interval_sec=self.config["pause_poll_interval_sec"],
        )

    async def generate_all_images(self) -> SchedulerReport:
        """Generate every page that has a prompt and no image. Failed pages are retried."""
        if not any(page.has_prompt for page in self.pages):
            raise ValueError("No prompts to generate")
        self.control.reset()
        self.current_step = SingleStep.GENERATE
        self.store.set_status(BatchStatus.GENERATING)
        try:
            async with self.client_factory() as client:
                report = await self._run_pages(
                    GENERATION_STAGE,
                    self._generation_call(client),
                    self.config["delays"]["single_generation_sec"],
                )
        finally:
            self.store.set_status(BatchStatus.COMPLETED)
        self.last_report = report
        logger.info("Generation finished: %s", report.summary())
        return report

    async def generate_page(self, page_id: str) -> StageOutcome:
        """Generate (or regenerate) one page, dropping its current images."""
        self.store.transform_page(page_id, lambda page: page.clear_artifacts())
        async with self.client_factory() as client:
            return await run_page_stage(self.store, page_id, REGENERATION_STAGE, self._generation_call(client))

    def pause(self) -> None:
        self.control.pause()
        if self.batch.status is BatchStatus.GENERATING:
            self.store.set_status(BatchStatus.PAUSED)

    def resume(self) -> None:
        self.control.resume()
        if self.batch.status is BatchStatus.PAUSED:
            self.store.set_status(BatchStatus.GENERATING)

    def stop(self) -> None:
        self.control.cancel()

    async def enhance_all(self) -> SchedulerReport:
        """Upscale every generated page that has no enhanced version yet."""
        self.control.reset()
        scale = self.config["image"]["enhance_scale"]
        async with self.client_factory() as client:
            report = await self._run_pages(
                ENHANCEMENT_STAGE, enhance_image_call(client, scale), self.config["delays"]["enhance_sec"]
            )
        self.last_report = report
        logger.info("Enhancement finished: %s", report.summary())
        return report

    async def process_all(self) -> SchedulerReport:
        """Lay every generated page out on a print-ready letter page."""
        self.control.reset()
        image_cfg = self.config["image"]
        async with self.client_factory() as client:
            report = await self._run_pages(
                FINAL_LETTER_STAGE,
                process_image_call(client, image_cfg["enhance_scale"], image_cfg["margin_percent"]),
                self.config["delays"]["process_sec"],
            )
        self.last_report = report
        logger.info("Print processing finished: %s", report.summary())
        return report

    # ============================================================
    # Export
    # ============================================================

    def _export_pages(self) -> list[dict]:
        book = self.book
        pages = build_export_pages(book) if book else []
        if not pages:
            raise ValueError("No images to export")
        return pages

    def _book_title(self) -> str:
        return self.title or (self.generated_idea.title if self.generated_idea else "") or "My Coloring Book"

    async def export_pdf(
        self,
        author_name: str = "",
        copyright_text: str = "",
        include_title_page: bool = True,
        include_copyright_page: bool = True,
        include_page_numbers: bool = False,
    ) -> str:
        pages = self._export_pages()
        title = self._book_title()
        async with self.client_factory() as client:
            pdf_bytes = await client.export_pdf(
                pages,
                book_title=title,
                author_name=author_name,
                copyright_text=copyright_text,
                include_title_page=include_title_page,
                include_copyright_page=include_copyright_page,
                include_page_numbers=include_page_numbers,
            )
        self.current_step = SingleStep.EXPORT
        return save_export_file(pdf_bytes, f"{safe_filename(title)}.pdf", self.exports_dir)

    async def export_zip(self) -> str:
        pages = self._export_pages()
        title = self._book_title()
        async with self.client_factory() as client:
            result = await client.export_zip(pages, book_title=title)
        filename = result.filename or f"{safe_filename(title)}.zip"
        self.current_step = SingleStep.EXPORT
        return save_export_file(base64.b64decode(result.zip_base64), filename, self.exports_dir)

    def save_handoff(self) -> str:
        self._export_pages()
        return save_export_handoff(self.book, self.exports_dir)
