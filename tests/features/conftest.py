"""Shared fixtures for the workflow tests: an in-memory generation service."""

import base64

import pytest

from config import get_orchestration_config
from integrations.colorbook_api import GenerationRejectedError
from integrations.colorbook_api.models import (
    BookIdeaSuggestion,
    EnhancedImage,
    GeneratedImage,
    ImprovedPrompt,
    PagePrompt,
    PagePromptSet,
    ProcessedImage,
    RegeneratedPrompt,
    SingleIdea,
    ZipExport,
)


class FakeColorbookClient:
    """Stands in for ColorbookApiClient. Records every call by method name."""

    def __init__(self):
        self.calls = []
        self.fail_prompts = set()
        self.fail_ideas = set()
        self.fail_processing = False
        self.process_returns_enhanced = True
        self.zip_filename = None
        self.on_generate = None
        self.book_ideas = []
        self.character_profile = None
        self.ideas_served = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))

    def calls_to(self, name):
        return [kwargs for called, kwargs in self.calls if called == name]

    async def generate_book_ideas(self, **kwargs):
        self._record("generate_book_ideas", **kwargs)
        return list(self.book_ideas)

    async def generate_page_ideas(self, **kwargs):
        self._record("generate_page_ideas", **kwargs)
        return [f"{kwargs['concept']} idea {i}" for i in range(1, kwargs["page_count"] + 1)]

    async def improve_prompt(self, **kwargs):
        self._record("improve_prompt", **kwargs)
        if kwargs["idea_text"] in self.fail_ideas:
            raise GenerationRejectedError("Prompt rejected")
        return ImprovedPrompt(final_prompt=f"Detailed: {kwargs['idea_text']}")

    async def generate_image(self, **kwargs):
        self._record("generate_image", **kwargs)
        if self.on_generate is not None:
            self.on_generate(kwargs)
        if kwargs["prompt"] in self.fail_prompts:
            raise GenerationRejectedError("Outline validation failed")
        return GeneratedImage(status="done", image_base64=f"img-{kwargs['page']}")

    async def process_image(self, **kwargs):
        self._record("process_image", **kwargs)
        if self.fail_processing:
            raise GenerationRejectedError("Processing failed")
        source = kwargs["image_base64"]
        enhanced = f"enh-{source}" if self.process_returns_enhanced else None
        return ProcessedImage(enhanced_base64=enhanced, final_letter_base64=f"letter-{source}", was_enhanced=enhanced is not None)

    async def enhance_image(self, image_base64, scale=2):
        self._record("enhance_image", image_base64=image_base64, scale=scale)
        return EnhancedImage(enhanced_image_base64=f"enh-{image_base64}")

    async def export_pdf(self, pages, **kwargs):
        self._record("export_pdf", pages=pages, **kwargs)
        return b"%PDF-1.4 fake"

    async def export_zip(self, pages, **kwargs):
        self._record("export_zip", pages=pages, **kwargs)
        return ZipExport(
            zip_base64=base64.b64encode(b"PK fake").decode(), filename=self.zip_filename, processed_pages=len(pages)
        )

    async def generate_idea(self, **kwargs):
        self._record("generate_idea", **kwargs)
        self.ideas_served += 1
        n = self.ideas_served
        return SingleIdea(title=f"Idea {n}", idea=f"A story number {n}", theme=f"theme {n}", main_character=f"Brave Fox{n}")

    async def generate_page_prompts(self, **kwargs):
        self._record("generate_page_prompts", **kwargs)
        pages = [PagePrompt(page=i, title=f"Scene {i}", prompt=f"Prompt {i}") for i in range(1, kwargs["count"] + 1)]
        return PagePromptSet(pages=pages, character_identity_profile=self.character_profile)

    async def regenerate_prompt(self, **kwargs):
        self._record("regenerate_prompt", **kwargs)
        return RegeneratedPrompt(prompt=f"Fresh prompt {kwargs['page_number']}", title="New scene")


@pytest.fixture
def fake_client():
    return FakeColorbookClient()


@pytest.fixture
def fast_config():
    """Orchestration config with no delays and a short pause poll."""
    cfg = get_orchestration_config()
    for key in cfg["delays"]:
        cfg["delays"][key] = 0.0
    cfg["pause_poll_interval_sec"] = 0.01
    return cfg


@pytest.fixture
def suggestion():
    def make(title, **fields):
        return BookIdeaSuggestion(title=title, concept=f"{title} concept", **fields)

    return make
