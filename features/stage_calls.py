"""Builders that turn client calls into stage callables.

A page call takes the current ``Page`` and returns the field changes to merge
on success; a book call returns the stage payload (page idea texts). Both
flows share these so request shapes live in one place.
"""

from __future__ import annotations

from typing import Optional

from core.models import ActiveVersion, Book, BookMode, Page
from core.stage_runner import BookCall, PageCall
from integrations.colorbook_api import ColorbookApiClient

FALLBACK_PROMPT = "Create a coloring page for: {idea}"


def prompt_for_generation(page: Page) -> str:
    """The page's final prompt, or a generic prompt built from its idea."""
    if page.has_prompt:
        return page.final_prompt
    return FALLBACK_PROMPT.format(idea=page.idea_text)


def page_ideas_call(client: ColorbookApiClient) -> BookCall:
    async def call(book: Book) -> list[str]:
        return await client.generate_page_ideas(
            book_id=book.id,
            book_type=book.book_type.value,
            concept=book.concept,
            page_count=len(book.pages),
            settings=book.settings.to_api(),
            target_age=book.target_age.value,
        )

    return call


def improve_prompt_call(client: ColorbookApiClient, book: Book) -> PageCall:
    async def call(page: Page) -> dict:
        result = await client.improve_prompt(
            book_id=book.id,
            page_id=page.id,
            page_index=page.index,
            idea_text=page.idea_text,
            book_type=book.book_type.value,
            book_concept=book.concept,
            settings=book.settings.to_api(),
            target_age=book.target_age.value,
        )
        return {"final_prompt": result.final_prompt}

    return call


def generate_image_call(
    client: ColorbookApiClient,
    book: Book,
    size: str,
    character_profile: Optional[dict] = None,
    validate: bool = False,
) -> PageCall:
    """Image generation for pages of ``book``. ``validate`` turns on the service-side checks."""
    storybook = book.book_mode is BookMode.STORYBOOK

    async def call(page: Page) -> dict:
        result = await client.generate_image(
            page=page.index,
            prompt=prompt_for_generation(page),
            size=size,
            is_storybook_mode=storybook,
            character_profile=character_profile if storybook else None,
            validate_outline=validate,
            validate_character=validate and storybook,
            validate_composition=validate,
        )
        return {
            "image_base64": result.image_base64,
            "warning": result.warning,
            "active_version": ActiveVersion.ORIGINAL,
        }

    return call


def process_image_call(client: ColorbookApiClient, scale: int = 2, margin_percent: float = 3) -> PageCall:
    """Print processing. Starts from the enhanced image when one exists and only upscales otherwise."""

    async def call(page: Page) -> dict:
        source = page.enhanced_image_base64 or page.image_base64
        result = await client.process_image(
            image_base64=source,
            enhance=not page.enhanced_image_base64,
            enhance_scale=scale,
            margin_percent=margin_percent,
            page_id=page.id,
        )
        changes = {
            "final_letter_base64": result.final_letter_base64,
            "active_version": ActiveVersion.FINAL_LETTER,
        }
        if result.enhanced_base64 and not page.enhanced_image_base64:
            changes["enhanced_image_base64"] = result.enhanced_base64
        return changes

    return call


def enhance_image_call(client: ColorbookApiClient, scale: int = 2) -> PageCall:
    async def call(page: Page) -> dict:
        result = await client.enhance_image(page.image_base64, scale=scale)
        return {
            "enhanced_image_base64": result.enhanced_image_base64,
            "active_version": ActiveVersion.ENHANCED,
        }

    return call
