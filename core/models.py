"""Item model for the coloring book wizard: pages, books, batches and book ideas.

All models are frozen pydantic models. Updates go through ``model_copy`` /
``Page.evolve`` and produce new objects; nothing is mutated in place.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import DEFAULT_PAGES_PER_BOOK


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================
# Status vocabularies
# ============================================================


class PageStatus(str, Enum):
    DRAFT = "draft"
    PROMPTING = "prompting"
    PROMPT_READY = "prompt_ready"
    QUEUED = "queued"
    GENERATING = "generating"
    GENERATED = "generated"
    ENHANCING = "enhancing"
    ENHANCED = "enhanced"
    APPROVED = "approved"
    FAILED = "failed"


IN_FLIGHT_STATUSES = frozenset({PageStatus.PROMPTING, PageStatus.GENERATING, PageStatus.ENHANCING})


class BookStatus(str, Enum):
    DRAFT = "draft"
    PLANNING = "planning"
    IDEAS_READY = "ideas_ready"
    PROMPTS_READY = "prompts_ready"
    GENERATING = "generating"
    GENERATED = "generated"
    FAILED = "failed"
    EXPORTED = "exported"


class BatchStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    PAUSED = "paused"
    COMPLETED = "completed"


class ActiveVersion(str, Enum):
    ORIGINAL = "original"
    ENHANCED = "enhanced"
    FINAL_LETTER = "finalLetter"


class BookType(str, Enum):
    COLORING_SCENES = "coloring_scenes"
    QUOTE_TEXT = "quote_text"


class BookMode(str, Enum):
    STORYBOOK = "storybook"  # same character throughout
    THEME_BOOK = "theme_book"  # varied scenes per page


class Audience(str, Enum):
    KIDS = "kids"
    TEENS = "teens"
    ADULTS = "adults"
    ALL = "all"


# ============================================================
# Settings
# ============================================================


class BookSettings(BaseModel):
    """Type-specific settings. Quote books use decoration/typography, storybooks a character description."""

    model_config = ConfigDict(frozen=True)

    page_size: str = "letter"
    fill_page: bool = True

    # coloring_scenes
    same_character: bool = False
    character_description: Optional[str] = None
    art_style: Optional[str] = None

    # quote_text
    decoration_level: Optional[str] = "minimal_icons"
    typography_style: Optional[str] = "bubble"
    icon_set: Optional[str] = None
    decoration_theme: Optional[str] = None
    quote_mode: Optional[str] = None
    tone: Optional[str] = None

    def to_api(self) -> dict:
        """Settings in the camelCase shape the remote endpoints expect."""
        mapping = {
            "pageSize": self.page_size,
            "fillPage": self.fill_page,
            "sameCharacter": self.same_character,
            "characterDescription": self.character_description,
            "artStyle": self.art_style,
            "decorationLevel": self.decoration_level,
            "typographyStyle": self.typography_style,
            "iconSet": self.icon_set,
            "decorationTheme": self.decoration_theme,
            "quoteMode": self.quote_mode,
            "tone": self.tone,
        }
        return {k: v for k, v in mapping.items() if v is not None}


# ============================================================
# Page / Book / Batch
# ============================================================


class Page(BaseModel):
    """The atomic unit of work: one coloring page."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    index: int = Field(ge=1, description="1-based position within the book, stable once assigned")

    idea_text: str = ""
    is_idea_approved: bool = False
    final_prompt: str = ""
    is_prompt_approved: bool = False
    prompt_generated_at: Optional[datetime] = None

    status: PageStatus = PageStatus.DRAFT
    image_base64: Optional[str] = None
    enhanced_image_base64: Optional[str] = None
    final_letter_base64: Optional[str] = None
    active_version: ActiveVersion = ActiveVersion.ORIGINAL

    error: Optional[str] = None
    warning: Optional[str] = None
    failed_stage: Optional[str] = None

    generated_at: Optional[datetime] = None
    enhanced_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    generation_duration_ms: Optional[float] = None
    enhancement_duration_ms: Optional[float] = None

    @property
    def has_prompt(self) -> bool:
        return bool(self.final_prompt and self.final_prompt.strip())

    @property
    def has_image(self) -> bool:
        return bool(self.image_base64)

    @property
    def is_in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    def _artifact(self, version: ActiveVersion) -> Optional[str]:
        if version is ActiveVersion.FINAL_LETTER:
            return self.final_letter_base64
        if version is ActiveVersion.ENHANCED:
            return self.enhanced_image_base64
        return self.image_base64

    def resolved_active_version(self) -> ActiveVersion:
        """The selected version if its artifact exists, else the next-best present one."""
        if self._artifact(self.active_version):
            return self.active_version
        for version in (ActiveVersion.FINAL_LETTER, ActiveVersion.ENHANCED, ActiveVersion.ORIGINAL):
            if self._artifact(version):
                return version
        return ActiveVersion.ORIGINAL

    def active_image(self) -> Optional[str]:
        return self._artifact(self.resolved_active_version())

    def export_image(self) -> Optional[str]:
        return self.final_letter_base64 or self.enhanced_image_base64 or self.image_base64

    def evolve(self, **changes) -> "Page":
        """Return an updated copy with ``active_version`` clamped to a present artifact."""
        if "status" in changes:
            changes["status"] = PageStatus(changes["status"])
        if "active_version" in changes:
            changes["active_version"] = ActiveVersion(changes["active_version"])
        updated = self.model_copy(update=changes)
        resolved = updated.resolved_active_version()
        if resolved is not updated.active_version:
            updated = updated.model_copy(update={"active_version": resolved})
        return updated

    def clear_artifacts(self) -> "Page":
        """Drop every derived artifact and reset the version selector in one step."""
        return self.model_copy(
            update={
                "status": PageStatus.DRAFT,
                "image_base64": None,
                "enhanced_image_base64": None,
                "final_letter_base64": None,
                "active_version": ActiveVersion.ORIGINAL,
                "error": None,
                "warning": None,
                "failed_stage": None,
                "generated_at": None,
                "enhanced_at": None,
                "approved_at": None,
                "generation_duration_ms": None,
                "enhancement_duration_ms": None,
            }
        )


class Book(BaseModel):
    """An ordered collection of pages plus descriptive metadata."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    batch_id: str = ""
    title: str = ""
    book_type: BookType = BookType.COLORING_SCENES
    concept: str = ""
    target_age: Audience = Audience.KIDS
    book_mode: BookMode = BookMode.THEME_BOOK
    settings: BookSettings = Field(default_factory=BookSettings)
    pages: list[Page] = Field(default_factory=list)

    status: BookStatus = BookStatus.DRAFT
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    exported_at: Optional[datetime] = None

    @property
    def display_title(self) -> str:
        return self.title or "Untitled book"

    def find_page(self, page_id: str) -> Optional[Page]:
        return next((p for p in self.pages if p.id == page_id), None)

    def replace_page(self, page: Page) -> "Book":
        pages = [page if p.id == page.id else p for p in self.pages]
        return self.model_copy(update={"pages": pages, "updated_at": datetime.now()})


class Batch(BaseModel):
    """A collection of books plus batch-wide aggregates."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    books: list[Book] = Field(default_factory=list)
    status: BatchStatus = BatchStatus.IDLE

    total_pages: int = 0
    generated_pages: int = 0
    enhanced_pages: int = 0
    approved_pages: int = 0
    failed_pages: int = 0

    avg_generation_ms: float = 0.0
    generation_samples: int = 0
    avg_enhancement_ms: float = 0.0
    enhancement_samples: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def iter_pages(self):
        """Yield ``(book, page)`` pairs in list order."""
        for book in self.books:
            for page in book.pages:
                yield book, page

    def find_book(self, book_id: str) -> Optional[Book]:
        return next((b for b in self.books if b.id == book_id), None)

    def locate_page(self, page_id: str) -> Optional[tuple[Book, Page]]:
        """Resolve which book owns a page by traversal."""
        for book, page in self.iter_pages():
            if page.id == page_id:
                return book, page
        return None

    def replace_book(self, book: Book) -> "Batch":
        books = [book if b.id == book.id else b for b in self.books]
        return self.model_copy(update={"books": books, "updated_at": datetime.now()})


class BookIdea(BaseModel):
    """Lightweight, editable draft of a book before page plans exist."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    title: str = ""
    book_type: BookType = BookType.COLORING_SCENES
    concept: str = ""
    target_age: Audience = Audience.KIDS
    book_mode: BookMode = BookMode.THEME_BOOK
    page_count: int = Field(default=DEFAULT_PAGES_PER_BOOK, ge=1)
    is_approved: bool = False
    settings: BookSettings = Field(default_factory=BookSettings)

    @property
    def is_blank(self) -> bool:
        return not (self.title or self.concept)


# ============================================================
# Constructors and derivations
# ============================================================


def create_empty_book_idea() -> BookIdea:
    return BookIdea()


def create_empty_page(index: int) -> Page:
    return Page(index=index)


def create_empty_batch() -> Batch:
    return Batch()


def book_idea_to_book(idea: BookIdea, batch_id: str) -> Book:
    """Expand an idea into a book with ``idea.page_count`` fresh pages indexed 1..N."""
    return Book(
        id=idea.id,
        batch_id=batch_id,
        title=idea.title,
        book_type=idea.book_type,
        concept=idea.concept,
        target_age=idea.target_age,
        book_mode=idea.book_mode,
        settings=idea.settings,
        pages=[create_empty_page(i) for i in range(1, idea.page_count + 1)],
    )


def create_batch_from_ideas(ideas: list[BookIdea]) -> Batch:
    """Build a batch from the approved subset of ``ideas``, preserving order."""
    batch = create_empty_batch()
    books = [book_idea_to_book(idea, batch.id) for idea in ideas if idea.is_approved]
    return batch.model_copy(
        update={"books": books, "total_pages": sum(len(b.pages) for b in books)}
    )


class BatchProgress(NamedTuple):
    completed: int
    total: int
    percent: float
    generation_percent: float
    enhancement_percent: float
    overall_percent: float
    eta_seconds: Optional[int]


def calculate_batch_progress(batch: Batch) -> BatchProgress:
    """Progress derived from current page content. Pure; never mutates ``batch``."""
    pages = [page for _, page in batch.iter_pages()]
    total = len(pages)
    if total == 0:
        return BatchProgress(0, 0, 0.0, 0.0, 0.0, 0.0, None)

    generated = sum(1 for p in pages if p.has_image)
    enhanced = sum(1 for p in pages if p.enhanced_image_base64 or p.final_letter_base64)

    generation_percent = generated / total * 100
    enhancement_percent = enhanced / total * 100
    overall_percent = generation_percent * 0.7 + enhancement_percent * 0.3

    eta_seconds = None
    if batch.status is BatchStatus.GENERATING and batch.generation_samples > 0:
        eta_seconds = round((total - generated) * batch.avg_generation_ms / 1000)

    return BatchProgress(
        completed=generated,
        total=total,
        percent=generation_percent,
        generation_percent=generation_percent,
        enhancement_percent=enhancement_percent,
        overall_percent=overall_percent,
        eta_seconds=eta_seconds,
    )


def format_eta(seconds: int) -> str:
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    mins, secs = divmod(seconds, 60)
    if mins < 60:
        return f"{mins}m {secs}s" if secs > 0 else f"{mins}m"
    hours, mins = divmod(mins, 60)
    return f"{hours}h {mins}m"
