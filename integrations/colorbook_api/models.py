"""
Pydantic models for the generation service responses.

Field names are snake_case; the service's camelCase keys are accepted as aliases.
Unknown keys are ignored so the service can add fields without breaking parsing.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BookIdeaSuggestion(_ApiModel):
    """One generated book idea."""

    title: str = ""
    book_type: Optional[str] = Field(default=None, alias="bookType")
    concept: str = ""
    target_age: Optional[str] = Field(default=None, alias="targetAge")
    book_mode: Optional[str] = Field(default=None, alias="bookMode")
    page_count: Optional[int] = Field(default=None, alias="pageCount")


class BookIdeasResponse(_ApiModel):
    ideas: list[BookIdeaSuggestion] = Field(default_factory=list)


class PageIdea(_ApiModel):
    idea_text: str = Field(default="", alias="ideaText")


class PageIdeasResponse(_ApiModel):
    pages: list[PageIdea] = Field(default_factory=list, description="Aligned with page index order")


class ImprovedPrompt(_ApiModel):
    final_prompt: str = Field(alias="finalPrompt")
    generated_at: Optional[str] = Field(default=None, alias="generatedAt")


class GeneratedImage(_ApiModel):
    """Result of one image generation. ``warning`` marks a soft validation concern."""

    status: str = ""
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    warning: Optional[str] = None
    error: Optional[str] = None


class ProcessedImage(_ApiModel):
    """Print processing result: upscaled image plus the letter-size page."""

    enhanced_base64: Optional[str] = Field(default=None, alias="enhancedBase64")
    final_letter_base64: Optional[str] = Field(default=None, alias="finalLetterBase64")
    was_enhanced: bool = Field(default=False, alias="wasEnhanced")


class EnhancedImage(_ApiModel):
    enhanced_image_base64: str = Field(alias="enhancedImageBase64")


class PdfExport(_ApiModel):
    pdf_base64: str = Field(alias="pdfBase64")
    total_pages: int = Field(default=0, alias="totalPages")


class ZipExport(_ApiModel):
    zip_base64: str = Field(alias="zipBase64")
    filename: Optional[str] = None
    processed_pages: int = Field(default=0, alias="processedPages")


class SingleIdea(_ApiModel):
    """Generated idea for the single-book flow."""

    title: str = ""
    idea: str = ""
    theme: Optional[str] = None
    main_character: Optional[str] = Field(default=None, alias="mainCharacter")


class PagePrompt(_ApiModel):
    page: int
    title: str = ""
    prompt: str = ""
    scene_description: Optional[str] = Field(default=None, alias="sceneDescription")


class PagePromptSet(_ApiModel):
    pages: list[PagePrompt] = Field(default_factory=list)
    character_identity_profile: Optional[dict[str, Any]] = Field(
        default=None,
        alias="characterIdentityProfile",
        description="Character description kept consistent across storybook pages",
    )


class RegeneratedPrompt(_ApiModel):
    prompt: str
    title: Optional[str] = None
