"""Async HTTP client for the remote generation service.

Every operation is a JSON POST. Bodies are parsed defensively: a non-JSON
body becomes a ``ResponseParseError`` carrying the truncated text instead of
a decode traceback. Transport errors (``httpx.HTTPError``) are not wrapped.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from integrations.colorbook_api.config import ApiSettings
from integrations.colorbook_api.errors import (
    GenerationRejectedError,
    RemoteOperationError,
    ResponseParseError,
)
from integrations.colorbook_api.models import (
    BookIdeaSuggestion,
    BookIdeasResponse,
    EnhancedImage,
    GeneratedImage,
    ImprovedPrompt,
    PageIdeasResponse,
    PagePromptSet,
    PdfExport,
    ProcessedImage,
    RegeneratedPrompt,
    SingleIdea,
    ZipExport,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ColorbookApiClient:
    """Typed wrapper around the generation endpoints.

    Use as an async context manager so the underlying ``httpx.AsyncClient``
    is closed on exit. ``transport`` is passed straight to httpx and lets
    tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or ApiSettings()
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_sec,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ColorbookApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _send(self, path: str, payload: dict) -> httpx.Response:
        """POST ``payload`` and raise on a non-2xx status."""
        response = await self._client.post(path, json=payload)
        if response.is_error:
            data = self._decode(response, path)
            message = data.get("error") if isinstance(data, dict) else None
            message = message or f"Request failed with status {response.status_code}"
            logger.warning("%s returned %d: %s", path, response.status_code, message)
            raise RemoteOperationError(message, endpoint=path, status_code=response.status_code)
        return response

    def _decode(self, response: httpx.Response, path: str) -> Any:
        text = response.text
        try:
            return json.loads(text)
        except ValueError:
            message = text[: self.settings.error_text_limit] or "Unknown error"
            logger.warning("%s returned a non-JSON body: %s", path, message)
            raise ResponseParseError(message, endpoint=path, status_code=response.status_code)

    async def _post(self, path: str, payload: dict, model: Type[M]) -> M:
        response = await self._send(path, payload)
        data = self._decode(response, path)
        if isinstance(data, dict) and data.get("error"):
            raise RemoteOperationError(str(data["error"]), endpoint=path, status_code=response.status_code)
        return self._validate(model, data, path)

    # ------------------------------------------------------------------
    # Bulk flow
    # ------------------------------------------------------------------

    async def generate_book_ideas(
        self,
        count: int,
        themes: list[str],
        target_age: str,
        book_type: Optional[str] = None,
    ) -> list[BookIdeaSuggestion]:
        payload: dict[str, Any] = {"count": count, "themes": themes, "targetAge": target_age}
        if book_type:
            payload["bookType"] = book_type
        result = await self._post(self.settings.generate_ideas_path, payload, BookIdeasResponse)
        return result.ideas

    async def generate_page_ideas(
        self,
        book_id: str,
        book_type: str,
        concept: str,
        page_count: int,
        settings: dict,
        target_age: str,
    ) -> list[str]:
        """One idea text per page, in page order."""
        payload = {
            "bookId": book_id,
            "bookType": book_type,
            "concept": concept,
            "pageCount": page_count,
            "settings": settings,
            "targetAge": target_age,
        }
        result = await self._post(self.settings.page_ideas_path, payload, PageIdeasResponse)
        return [p.idea_text for p in result.pages]

    async def improve_prompt(
        self,
        book_id: str,
        page_id: str,
        page_index: int,
        idea_text: str,
        book_type: str,
        book_concept: str,
        settings: dict,
        target_age: str,
    ) -> ImprovedPrompt:
        payload = {
            "bookId": book_id,
            "pageId": page_id,
            "pageIndex": page_index,
            "ideaText": idea_text,
            "bookType": book_type,
            "bookConcept": book_concept,
            "settings": settings,
            "targetAge": target_age,
        }
        return await self._post(self.settings.improve_prompt_path, payload, ImprovedPrompt)

    async def generate_image(
        self,
        page: int,
        prompt: str,
        size: str,
        is_storybook_mode: bool = False,
        character_profile: Optional[dict] = None,
        max_retries: int = 0,
        validate_outline: bool = False,
        validate_character: bool = False,
        validate_composition: bool = False,
    ) -> GeneratedImage:
        """Generate one page image. Raises ``GenerationRejectedError`` unless status is done."""
        payload: dict[str, Any] = {
            "page": page,
            "prompt": prompt,
            "size": size,
            "maxRetries": max_retries,
            "isStorybookMode": is_storybook_mode,
            "validateOutline": validate_outline,
            "validateCharacter": validate_character,
            "validateComposition": validate_composition,
        }
        if character_profile:
            payload["characterProfile"] = character_profile
        path = self.settings.generate_image_path
        result = await self._post(path, payload, GeneratedImage)
        if result.status != "done" or not result.image_base64:
            message = result.error or result.warning or f"Generation returned status {result.status!r}"
            raise GenerationRejectedError(message, endpoint=path)
        return result

    async def process_image(
        self,
        image_base64: str,
        enhance: bool = True,
        enhance_scale: int = 2,
        margin_percent: float = 3,
        page_id: Optional[str] = None,
    ) -> ProcessedImage:
        """Upscale and lay the image out on a letter page."""
        payload: dict[str, Any] = {
            "imageBase64": image_base64,
            "pageType": "coloring",
            "enhance": enhance,
            "scale": enhance_scale,
            "enhanceScale": enhance_scale,
            "marginPercent": margin_percent,
        }
        if page_id:
            payload["pageId"] = page_id
        path = self.settings.process_image_path
        result = await self._post(path, payload, ProcessedImage)
        if not (result.enhanced_base64 or result.final_letter_base64):
            raise RemoteOperationError("Processing returned no image", endpoint=path)
        return result

    async def enhance_image(self, image_base64: str, scale: int = 2) -> EnhancedImage:
        payload = {"imageBase64": image_base64, "scale": scale}
        return await self._post(self.settings.enhance_image_path, payload, EnhancedImage)

    async def export_pdf(
        self,
        pages: list[dict],
        book_title: str,
        author_name: str = "",
        copyright_text: str = "",
        include_title_page: bool = True,
        include_copyright_page: bool = True,
        include_page_numbers: bool = False,
    ) -> bytes:
        """Render ``pages`` to a PDF. Accepts a binary body or ``{pdfBase64}``."""
        payload = {
            "pages": [
                {"pageIndex": p["pageIndex"], "imageBase64": p["imageBase64"], "title": p.get("title", "")}
                for p in pages
            ],
            "bookTitle": book_title,
            "authorName": author_name,
            "copyrightText": copyright_text,
            "includeTitlePage": include_title_page,
            "includeCopyrightPage": include_copyright_page,
            "includePageNumbers": include_page_numbers,
        }
        path = self.settings.export_pdf_path
        response = await self._send(path, payload)
        if response.headers.get("content-type", "").startswith("application/pdf"):
            return response.content
        data = self._decode(response, path)
        if isinstance(data, dict) and data.get("error"):
            raise RemoteOperationError(str(data["error"]), endpoint=path, status_code=response.status_code)
        result = self._validate(PdfExport, data, path)
        return base64.b64decode(result.pdf_base64)

    async def export_zip(
        self,
        pages: list[dict],
        book_title: str,
        include_metadata: bool = True,
        process_to_letter: bool = True,
    ) -> ZipExport:
        payload = {
            "pages": pages,
            "bookTitle": book_title,
            "includeMetadata": include_metadata,
            "processToLetter": process_to_letter,
        }
        return await self._post(self.settings.export_zip_path, payload, ZipExport)

    def _validate(self, model: Type[M], data: Any, path: str) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ResponseParseError(f"Unexpected response shape from {path}", endpoint=path) from e

    # ------------------------------------------------------------------
    # Single-book flow
    # ------------------------------------------------------------------

    async def generate_idea(
        self,
        age: str,
        mode: str,
        theme_hint: str = "",
        idea_seed: Optional[str] = None,
        previous_ideas: Optional[list[str]] = None,
        exclude_themes: Optional[list[str]] = None,
        exclude_character_types: Optional[list[str]] = None,
    ) -> SingleIdea:
        payload: dict[str, Any] = {
            "themeHint": theme_hint,
            "age": age,
            "mode": mode,
            "previousIdeas": (previous_ideas or [])[-5:],
            "excludeThemes": exclude_themes or [],
            "excludeCharacterTypes": exclude_character_types or [],
        }
        if idea_seed:
            payload["ideaSeed"] = idea_seed
        return await self._post(self.settings.single_idea_path, payload, SingleIdea)

    async def generate_page_prompts(
        self,
        mode: str,
        count: int,
        title: str,
        outline: str,
        target_age: str,
        size: str,
        base_prompt: str = "",
        style_profile: Optional[dict] = None,
        character_profile: Optional[dict] = None,
    ) -> PagePromptSet:
        payload: dict[str, Any] = {
            "mode": mode,
            "count": count,
            "story": {"title": title, "outline": outline, "targetAge": target_age},
            "basePrompt": base_prompt,
            "size": size,
        }
        if style_profile:
            payload["styleProfile"] = style_profile
        if character_profile:
            payload["characterProfile"] = character_profile
        return await self._post(self.settings.page_prompts_path, payload, PagePromptSet)

    async def regenerate_prompt(
        self,
        page_number: int,
        current_prompt: str,
        mode: str,
        base_prompt: str = "",
        character_profile: Optional[dict] = None,
    ) -> RegeneratedPrompt:
        payload: dict[str, Any] = {
            "pageNumber": page_number,
            "currentPrompt": current_prompt,
            "basePrompt": base_prompt,
            "mode": mode,
        }
        if character_profile:
            payload["characterProfile"] = character_profile
        return await self._post(self.settings.regenerate_prompt_path, payload, RegeneratedPrompt)
