"""Settings for the remote generation service client."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Base URL, timeouts and endpoint paths. Override via COLORBOOK_API_* env vars or .env."""

    model_config = SettingsConfigDict(
        env_prefix="COLORBOOK_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(
        default="http://localhost:3000",
        description="Root URL of the generation service",
    )
    timeout_sec: float = Field(
        default=300.0,
        description="Per-request timeout; image generation can take minutes",
    )
    error_text_limit: int = Field(
        default=200,
        description="Max characters of a non-JSON body kept as the error message",
    )

    generate_ideas_path: str = "/api/bulk/generate-ideas"
    page_ideas_path: str = "/api/bulk/generate-page-ideas"
    improve_prompt_path: str = "/api/bulk/improve-prompt"
    generate_image_path: str = "/api/batch/generate-one"
    process_image_path: str = "/api/image/process"
    enhance_image_path: str = "/api/image/enhance"
    export_pdf_path: str = "/api/export/pdf"
    export_zip_path: str = "/api/export/zip"
    single_idea_path: str = "/api/idea/generate"
    page_prompts_path: str = "/api/batch/prompts"
    regenerate_prompt_path: str = "/api/ai/regenerate-one-prompt"
