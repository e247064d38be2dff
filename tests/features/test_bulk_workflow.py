"""Tests for the bulk book workflow, run against an in-memory service."""

import asyncio
from pathlib import Path

import pytest

from config import DEFAULT_PAGES_PER_BOOK, MAX_BOOKS_PER_BATCH, MAX_PAGES_PER_BOOK
from core.models import ActiveVersion, BatchStatus, BookIdea, BookStatus, BookType, PageStatus
from core.navigation import BulkStep
from features.bulk_creation import BulkWorkflow


@pytest.fixture
def workflow(fake_client, fast_config, tmp_path):
    return BulkWorkflow(client_factory=lambda: fake_client, config=fast_config, exports_dir=tmp_path)


def _approved_batch(workflow, *page_counts):
    """Replace the ideas with approved ones of the given sizes and build the batch."""
    workflow.ideas = [
        BookIdea(title=f"Book {i}", concept=f"concept{i}", page_count=n, is_approved=True)
        for i, n in enumerate(page_counts, start=1)
    ]
    return workflow.proceed_to_page_plans()


def _prepared(workflow, *page_counts):
    """Batch with page ideas and prompts in place."""
    _approved_batch(workflow, *page_counts)
    asyncio.run(workflow.generate_all_page_ideas())
    asyncio.run(workflow.improve_all_prompts())


# ============================================================
# Book ideas
# ============================================================


def test_starts_with_one_blank_idea(workflow):
    assert len(workflow.ideas) == 1
    assert workflow.ideas[0].is_blank
    assert workflow.current_step is BulkStep.IDEAS


def test_add_idea_respects_batch_limit(workflow):
    while len(workflow.ideas) < MAX_BOOKS_PER_BATCH:
        workflow.add_idea()
    with pytest.raises(ValueError):
        workflow.add_idea()


def test_last_idea_cannot_be_deleted(workflow):
    only = workflow.ideas[0]
    assert workflow.delete_idea(only.id) is False
    second = workflow.add_idea()
    assert workflow.delete_idea(second.id) is True
    assert [i.id for i in workflow.ideas] == [only.id]


def test_update_idea_clamps_page_count(workflow):
    idea_id = workflow.ideas[0].id
    assert workflow.update_idea(idea_id, page_count=500).page_count == MAX_PAGES_PER_BOOK
    assert workflow.update_idea(idea_id, page_count=0).page_count == 1
    assert workflow.update_idea(idea_id, title="Dinos").title == "Dinos"


def test_update_unknown_idea_raises(workflow):
    with pytest.raises(KeyError):
        workflow.update_idea("missing", title="x")


def test_toggle_and_approve_all(workflow):
    first = workflow.ideas[0]
    workflow.add_idea()
    assert workflow.toggle_idea_approval(first.id).is_approved
    assert len(workflow.approved_ideas) == 1
    workflow.approve_all_ideas()
    assert len(workflow.approved_ideas) == 2


def test_generated_ideas_replace_blank_drafts(workflow, fake_client, suggestion):
    """Non-blank ideas are kept, blank drafts dropped, new ideas appended."""
    kept = workflow.update_idea(workflow.ideas[0].id, title="My own idea")
    workflow.add_idea()
    fake_client.book_ideas = [
        suggestion("Dinosaurs", bookType="quote_text", pageCount=12),
        suggestion("Space", targetAge="toddlers"),
    ]

    new = asyncio.run(workflow.generate_book_ideas(2, ["animals", " "], target_age="teens"))

    assert [i.title for i in workflow.ideas] == ["My own idea", "Dinosaurs", "Space"]
    assert workflow.ideas[0].id == kept.id
    assert new[0].book_type is BookType.QUOTE_TEXT
    assert new[0].page_count == 12
    assert new[1].page_count == DEFAULT_PAGES_PER_BOOK
    assert new[1].target_age.value == "teens"
    assert fake_client.calls_to("generate_book_ideas")[0]["themes"] == ["animals"]


def test_generated_ideas_are_capped(workflow, fake_client, suggestion):
    workflow.ideas = [BookIdea(title=f"Idea {i}") for i in range(MAX_BOOKS_PER_BATCH - 1)]
    fake_client.book_ideas = [suggestion(f"New {i}") for i in range(3)]
    asyncio.run(workflow.generate_book_ideas(3, []))
    assert len(workflow.ideas) == MAX_BOOKS_PER_BATCH
    assert workflow.ideas[-1].title == "New 0"


def test_empty_generation_keeps_one_idea(workflow, fake_client):
    fake_client.book_ideas = []
    asyncio.run(workflow.generate_book_ideas(3, []))
    assert len(workflow.ideas) == 1


def test_proceed_requires_approval(workflow):
    with pytest.raises(ValueError, match="approve at least one"):
        workflow.proceed_to_page_plans()
    assert workflow.current_step is BulkStep.IDEAS


def test_proceed_builds_batch_from_approved_ideas(workflow):
    workflow.ideas = [
        BookIdea(title="A", page_count=5, is_approved=True),
        BookIdea(title="B", page_count=3),
        BookIdea(title="C", page_count=8, is_approved=True),
    ]
    batch = workflow.proceed_to_page_plans()
    assert len(batch.books) == 2
    assert batch.total_pages == 13
    assert workflow.current_step is BulkStep.PAGE_PLANS
    assert workflow.can_navigate_to(BulkStep.PROMPTS)
    assert not workflow.can_navigate_to(BulkStep.GENERATE)


# ============================================================
# Page ideas and prompts
# ============================================================


def test_generate_all_page_ideas(workflow, fake_client):
    _approved_batch(workflow, 3, 2)
    report = asyncio.run(workflow.generate_all_page_ideas())

    assert report.succeeded == 2
    first, second = workflow.batch.books
    assert [p.idea_text for p in first.pages] == ["concept1 idea 1", "concept1 idea 2", "concept1 idea 3"]
    assert first.status is BookStatus.IDEAS_READY
    assert second.pages[1].idea_text == "concept2 idea 2"
    assert fake_client.calls_to("generate_page_ideas")[0]["page_count"] == 3


def test_improve_all_prompts_marks_books_ready(workflow, fake_client):
    _prepared(workflow, 2, 2)
    assert all(page.final_prompt.startswith("Detailed: ") for _, page in workflow.batch.iter_pages())
    assert all(book.status is BookStatus.PROMPTS_READY for book in workflow.batch.books)
    assert workflow.last_report.succeeded == 4
    assert workflow.can_navigate_to(BulkStep.GENERATE)


def test_prompt_edit_and_approval(workflow):
    _prepared(workflow, 2)
    page = workflow.batch.books[0].pages[0]
    assert workflow.update_page_prompt(page.id, "My prompt").final_prompt == "My prompt"
    assert workflow.toggle_prompt_approval(page.id).is_prompt_approved
    assert workflow.approve_all_prompts() == 2
    assert all(p.is_prompt_approved for p in workflow.batch.books[0].pages)


# ============================================================
# Generation
# ============================================================


def test_start_generation_generates_every_page(workflow, fake_client):
    _prepared(workflow, 3, 2)
    report = asyncio.run(workflow.start_generation())

    batch = workflow.batch
    assert report.succeeded == 5
    assert batch.generated_pages == 5
    assert batch.generation_samples == 5
    assert batch.status is BatchStatus.COMPLETED
    assert batch.started_at is not None and batch.completed_at is not None
    assert all(book.status is BookStatus.GENERATED for book in batch.books)
    assert all(p.status is PageStatus.GENERATED for _, p in batch.iter_pages())
    assert fake_client.calls_to("generate_image")[0]["size"] == "1024x1536"


def test_failed_page_is_isolated_and_retried(workflow, fake_client):
    _prepared(workflow, 3)
    failing = workflow.batch.books[0].pages[1]
    fake_client.fail_prompts = {failing.final_prompt}

    asyncio.run(workflow.start_generation())
    pages = workflow.batch.books[0].pages
    assert [p.status for p in pages] == [PageStatus.GENERATED, PageStatus.FAILED, PageStatus.GENERATED]
    assert pages[1].error == "Outline validation failed"
    assert workflow.batch.failed_pages == 1
    assert workflow.batch.books[0].status is not BookStatus.GENERATED

    fake_client.fail_prompts = set()
    fake_client.calls.clear()
    report = asyncio.run(workflow.retry_failed_pages())

    assert report.succeeded == 1
    assert len(fake_client.calls_to("generate_image")) == 1
    assert workflow.batch.failed_pages == 0
    assert workflow.batch.generated_pages == 3
    assert workflow.batch.books[0].status is BookStatus.GENERATED


def test_retry_reruns_failed_prompts(workflow, fake_client):
    _approved_batch(workflow, 2)
    asyncio.run(workflow.generate_all_page_ideas())
    fake_client.fail_ideas = {"concept1 idea 2"}
    asyncio.run(workflow.improve_all_prompts())

    failed = workflow.batch.books[0].pages[1]
    assert failed.status is PageStatus.FAILED
    assert failed.failed_stage == "prompt"
    assert workflow.batch.books[0].status is not BookStatus.PROMPTS_READY

    fake_client.fail_ideas = set()
    fake_client.calls.clear()
    report = asyncio.run(workflow.retry_failed_pages())

    assert report.succeeded == 1
    assert [c["idea_text"] for c in fake_client.calls_to("improve_prompt")] == ["concept1 idea 2"]
    assert fake_client.calls_to("generate_image") == []
    page = workflow.store.get_page(failed.id)
    assert page.status is PageStatus.PROMPT_READY
    assert page.final_prompt == "Detailed: concept1 idea 2"
    assert workflow.batch.failed_pages == 0
    assert workflow.batch.books[0].status is BookStatus.PROMPTS_READY


def test_prompt_that_fails_again_stays_failed(workflow, fake_client):
    _approved_batch(workflow, 2)
    asyncio.run(workflow.generate_all_page_ideas())
    fake_client.fail_ideas = {"concept1 idea 2"}
    asyncio.run(workflow.improve_all_prompts())

    report = asyncio.run(workflow.retry_failed_pages())

    assert report.failed == 1
    page = workflow.batch.books[0].pages[1]
    assert page.status is PageStatus.FAILED
    assert page.error == "Prompt rejected"
    assert workflow.batch.failed_pages == 1


def test_retry_reruns_failed_enhancements(workflow, fake_client):
    _prepared(workflow, 2)
    asyncio.run(workflow.start_generation())
    fake_client.fail_processing = True
    asyncio.run(workflow.enhance_all())
    assert workflow.batch.failed_pages == 2

    fake_client.fail_processing = False
    fake_client.calls.clear()
    report = asyncio.run(workflow.retry_failed_pages())

    assert report.succeeded == 2
    assert len(fake_client.calls_to("process_image")) == 2
    assert fake_client.calls_to("generate_image") == []
    assert all(p.status is PageStatus.ENHANCED for _, p in workflow.batch.iter_pages())
    assert workflow.batch.failed_pages == 0


def test_stop_generation_leaves_remaining_pages(workflow, fake_client):
    _prepared(workflow, 4)

    def stop_after_second(kwargs):
        if kwargs["page"] == 2:
            workflow.stop_generation()

    fake_client.on_generate = stop_after_second
    report = asyncio.run(workflow.start_generation())

    assert report.cancelled
    assert [p.has_image for p in workflow.batch.books[0].pages] == [True, True, False, False]
    assert workflow.batch.status is BatchStatus.COMPLETED


def test_pause_and_resume_update_batch_status(workflow):
    _prepared(workflow, 1)
    workflow.store.set_status(BatchStatus.GENERATING)
    workflow.pause_generation()
    assert workflow.batch.status is BatchStatus.PAUSED
    assert workflow.control.paused
    workflow.resume_generation()
    assert workflow.batch.status is BatchStatus.GENERATING
    assert not workflow.control.paused


def test_regenerate_page_without_prompt_uses_fallback(workflow, fake_client):
    _approved_batch(workflow, 1)
    page = workflow.batch.books[0].pages[0]
    workflow.update_page_idea(page.id, "a happy whale")

    outcome = asyncio.run(workflow.regenerate_page(page.id))

    assert outcome.ok
    assert fake_client.calls_to("generate_image")[0]["prompt"] == "Create a coloring page for: a happy whale"
    assert workflow.store.get_page(page.id).has_image


def test_regenerate_page_drops_previous_artifacts(workflow):
    _prepared(workflow, 1)
    asyncio.run(workflow.start_generation())
    asyncio.run(workflow.enhance_all())
    page_id = workflow.batch.books[0].pages[0].id

    asyncio.run(workflow.regenerate_page(page_id))

    page = workflow.store.get_page(page_id)
    assert page.image_base64 == "img-1"
    assert page.enhanced_image_base64 is None
    assert page.final_letter_base64 is None
    assert page.active_version is ActiveVersion.ORIGINAL


# ============================================================
# Review and export
# ============================================================


def test_enhance_all_processes_generated_pages(workflow, fake_client):
    _prepared(workflow, 2)
    asyncio.run(workflow.start_generation())
    report = asyncio.run(workflow.enhance_all())

    assert report.succeeded == 2
    page = workflow.batch.books[0].pages[0]
    assert page.status is PageStatus.ENHANCED
    assert page.enhanced_image_base64 == "enh-img-1"
    assert page.final_letter_base64 == "letter-img-1"
    assert page.active_version is ActiveVersion.FINAL_LETTER
    assert workflow.batch.enhanced_pages == 2
    assert workflow.batch.enhancement_samples == 2
    assert fake_client.calls_to("process_image")[0]["enhance"] is True


def test_processed_page_without_enhanced_image_is_not_sent_again(workflow, fake_client):
    _prepared(workflow, 1)
    asyncio.run(workflow.start_generation())
    fake_client.process_returns_enhanced = False
    asyncio.run(workflow.enhance_all())

    page = workflow.batch.books[0].pages[0]
    assert page.enhanced_image_base64 is None
    assert page.final_letter_base64 == "letter-img-1"

    fake_client.calls.clear()
    report = asyncio.run(workflow.enhance_all())

    assert report.outcomes == []
    assert fake_client.calls_to("process_image") == []


def test_select_version_and_approval(workflow):
    _prepared(workflow, 1)
    asyncio.run(workflow.start_generation())
    page_id = workflow.batch.books[0].pages[0].id

    assert workflow.select_version(page_id, ActiveVersion.ENHANCED).active_version is ActiveVersion.ORIGINAL

    approved = workflow.toggle_page_approval(page_id)
    assert approved.status is PageStatus.APPROVED
    assert workflow.batch.approved_pages == 1

    withdrawn = workflow.toggle_page_approval(page_id)
    assert withdrawn.status is PageStatus.GENERATED
    assert withdrawn.approved_at is None
    assert workflow.batch.approved_pages == 0


def test_export_book_pdf_writes_file(workflow, fake_client, tmp_path):
    _prepared(workflow, 2)
    asyncio.run(workflow.start_generation())
    book_id = workflow.batch.books[0].id

    path = asyncio.run(workflow.export_book_pdf(book_id, author_name="Ann"))

    assert Path(path) == tmp_path / "Book_1.pdf"
    assert Path(path).read_bytes() == b"%PDF-1.4 fake"
    assert workflow.store.get_book(book_id).status is BookStatus.EXPORTED
    sent = fake_client.calls_to("export_pdf")[0]
    assert len(sent["pages"]) == 2
    assert sent["author_name"] == "Ann"


def test_export_without_images_fails(workflow):
    _prepared(workflow, 1)
    with pytest.raises(ValueError):
        asyncio.run(workflow.export_book_pdf(workflow.batch.books[0].id))
    with pytest.raises(ValueError):
        asyncio.run(workflow.export_batch_zip())
    with pytest.raises(ValueError):
        workflow.save_handoff(workflow.batch.books[0].id)


def test_export_batch_zip_numbers_pages_across_books(workflow, fake_client):
    _prepared(workflow, 2, 1)
    asyncio.run(workflow.start_generation())

    path = asyncio.run(workflow.export_batch_zip())

    assert Path(path).read_bytes() == b"PK fake"
    sent = fake_client.calls_to("export_zip")[0]["pages"]
    assert [p["pageIndex"] for p in sent] == [1, 2, 3]
    assert sent[2]["title"].startswith("Book 2 - ")


def test_export_batch_zip_keeps_server_filename_inside_exports(workflow, fake_client, tmp_path):
    exports = tmp_path / "exports"
    workflow.exports_dir = exports
    fake_client.zip_filename = "../escaped.zip"
    _prepared(workflow, 1)
    asyncio.run(workflow.start_generation())

    path = asyncio.run(workflow.export_batch_zip())

    assert Path(path) == exports / "escaped.zip"
    assert not (tmp_path / "escaped.zip").exists()


def test_save_handoff(workflow, tmp_path):
    _prepared(workflow, 1)
    asyncio.run(workflow.start_generation())
    path = workflow.save_handoff(workflow.batch.books[0].id)
    assert Path(path).parent == tmp_path


def test_reset_starts_over(workflow):
    _prepared(workflow, 1)
    workflow.reset()
    assert workflow.batch.books == []
    assert len(workflow.ideas) == 1
    assert workflow.current_step is BulkStep.IDEAS
