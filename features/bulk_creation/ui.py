"""Bulk Books tab: five-step wizard over a batch of books."""

from __future__ import annotations

from pathlib import Path

import streamlit as st

from config import MAX_BOOKS_PER_BATCH, MAX_PAGES_PER_BOOK
from core.models import ActiveVersion, Audience, BatchStatus, BookIdea, BookMode, BookType, Page
from core.navigation import BULK_STEPS, BulkStep
from features.bulk_creation.workflow import BulkWorkflow
from ui.components.handoff_list import render_handoff_list
from ui.components.jobs import dismiss_job, get_job, is_busy, launch_job
from ui.components.page_gallery import render_page_gallery
from ui.components.progress_panel import render_job_status, render_progress_panel, render_step_indicator

JOB = "bulk"

BOOK_TYPE_LABELS = {
    BookType.COLORING_SCENES: "Coloring scenes",
    BookType.QUOTE_TEXT: "Quote / text pages",
}
BOOK_MODE_LABELS = {
    BookMode.THEME_BOOK: "Theme collection",
    BookMode.STORYBOOK: "Storybook (same character)",
}


def _workflow() -> BulkWorkflow:
    if "bulk_workflow" not in st.session_state:
        st.session_state.bulk_workflow = BulkWorkflow()
    return st.session_state.bulk_workflow


def render_bulk_tab() -> None:
    """Render the bulk creation wizard."""
    wf = _workflow()
    busy = is_busy(JOB)

    st.header("Bulk Book Creation")
    st.caption(f"Create up to {MAX_BOOKS_PER_BATCH} coloring books at once")

    clicked = render_step_indicator(BULK_STEPS, wf.current_step, wf.can_navigate_to, "bulk")
    if clicked is not None and wf.go_to_step(clicked):
        st.rerun()

    job = get_job(JOB)
    render_job_status(job)
    if job is not None and not job.is_running:
        if isinstance(job.result, str) and Path(job.result).suffix in (".pdf", ".zip"):
            _render_download(job.result, "bulk_job_download")
        if st.button("Dismiss", key="bulk_dismiss"):
            dismiss_job(JOB)
            st.rerun()

    st.markdown("---")
    step = wf.current_step
    if step is BulkStep.IDEAS:
        _render_ideas_step(wf, busy)
    elif step is BulkStep.PAGE_PLANS:
        _render_page_plans_step(wf, busy)
    elif step is BulkStep.PROMPTS:
        _render_prompts_step(wf, busy)
    elif step is BulkStep.GENERATE:
        _render_generate_step(wf, busy)
    else:
        _render_review_step(wf, busy)

    st.markdown("---")
    col_back, _, col_next = st.columns([1, 3, 1])
    with col_back:
        if st.button("Back", key="bulk_back", disabled=step is BulkStep.IDEAS):
            wf.previous_step()
            st.rerun()
    with col_next:
        can_next = step < BulkStep.REVIEW and wf.can_navigate_to(step + 1)
        if step is not BulkStep.IDEAS and st.button("Next", key="bulk_next", disabled=not can_next):
            wf.next_step()
            st.rerun()


def _render_download(path: str, key: str) -> None:
    file_path = Path(path)
    if not file_path.exists():
        return
    mime = "application/pdf" if file_path.suffix == ".pdf" else "application/zip"
    st.download_button(
        f"Download {file_path.name}",
        data=file_path.read_bytes(),
        file_name=file_path.name,
        mime=mime,
        key=key,
    )


# ============================================================
# Step 1
# ============================================================


def _render_idea_generator(wf: BulkWorkflow, busy: bool) -> None:
    with st.expander("Generate ideas with AI", expanded=False):
        count = st.number_input("How many ideas", min_value=1, max_value=MAX_BOOKS_PER_BATCH, value=5, key="bulk_gen_count")
        themes = st.text_input("Themes (comma separated)", key="bulk_gen_themes", placeholder="e.g. ocean, dinosaurs, space")
        audience = st.selectbox("Audience", options=list(Audience), format_func=lambda a: a.value.title(), key="bulk_gen_audience")
        type_options = [None, *BookType]
        book_type = st.selectbox(
            "Book type",
            options=type_options,
            format_func=lambda t: "Both" if t is None else BOOK_TYPE_LABELS[t],
            key="bulk_gen_type",
        )
        if st.button("Generate ideas", key="bulk_gen_btn", disabled=busy, type="primary"):
            theme_list = [t.strip() for t in themes.split(",") if t.strip()]
            launch_job(
                JOB,
                "Generating book ideas",
                lambda: wf.generate_book_ideas(int(count), theme_list, audience, book_type),
            )


def _render_idea_card(wf: BulkWorkflow, idea: BookIdea, number: int, busy: bool) -> None:
    status = "✅" if idea.is_approved else "○"
    with st.expander(f"{status} Book {number}: {idea.title or 'Untitled'}", expanded=not idea.is_approved):
        key = f"bulk_idea_{idea.id}"
        title = st.text_input("Title", value=idea.title, key=f"{key}_title")
        concept = st.text_area("Concept", value=idea.concept, key=f"{key}_concept", height=80)
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            book_type = st.selectbox(
                "Type", options=list(BookType), index=list(BookType).index(idea.book_type),
                format_func=BOOK_TYPE_LABELS.get, key=f"{key}_type",
            )
        with col2:
            book_mode = st.selectbox(
                "Mode", options=list(BookMode), index=list(BookMode).index(idea.book_mode),
                format_func=BOOK_MODE_LABELS.get, key=f"{key}_mode",
            )
        with col3:
            audience = st.selectbox(
                "Audience", options=list(Audience), index=list(Audience).index(idea.target_age),
                format_func=lambda a: a.value.title(), key=f"{key}_age",
            )
        with col4:
            page_count = st.number_input(
                "Pages", min_value=1, max_value=MAX_PAGES_PER_BOOK, value=idea.page_count, key=f"{key}_pages",
            )
        changes = {
            "title": title,
            "concept": concept,
            "book_type": book_type,
            "book_mode": book_mode,
            "target_age": audience,
            "page_count": int(page_count),
        }
        if any(getattr(idea, k) != v for k, v in changes.items()):
            wf.update_idea(idea.id, **changes)

        col_a, col_d = st.columns(2)
        with col_a:
            if st.button("Unapprove" if idea.is_approved else "Approve", key=f"{key}_approve", disabled=busy):
                wf.toggle_idea_approval(idea.id)
                st.rerun()
        with col_d:
            if st.button("Delete", key=f"{key}_delete", disabled=busy or len(wf.ideas) <= 1):
                wf.delete_idea(idea.id)
                st.rerun()


def _render_ideas_step(wf: BulkWorkflow, busy: bool) -> None:
    st.subheader("1. Book ideas")
    _render_idea_generator(wf, busy)

    col_add, col_all, col_info = st.columns([1, 1, 2])
    with col_add:
        if st.button(
            f"Add book ({len(wf.ideas)}/{MAX_BOOKS_PER_BATCH})",
            key="bulk_add_idea",
            disabled=busy or len(wf.ideas) >= MAX_BOOKS_PER_BATCH,
        ):
            wf.add_idea()
            st.rerun()
    with col_all:
        if st.button("Approve all", key="bulk_approve_all_ideas", disabled=busy):
            wf.approve_all_ideas()
            st.rerun()
    with col_info:
        approved = wf.approved_ideas
        st.caption(f"{len(approved)} approved · {sum(i.page_count for i in approved)} total pages")
        if wf.batch.books and st.button("Start over", key="bulk_reset", disabled=busy):
            wf.reset()
            dismiss_job(JOB)
            st.rerun()

    for number, idea in enumerate(list(wf.ideas), start=1):
        _render_idea_card(wf, idea, number, busy)

    if st.button("Create batch and plan pages", type="primary", key="bulk_proceed", disabled=busy):
        try:
            wf.proceed_to_page_plans()
        except ValueError as e:
            st.error(str(e))
        else:
            st.rerun()


# ============================================================
# Step 2
# ============================================================


def _render_page_plans_step(wf: BulkWorkflow, busy: bool) -> None:
    st.subheader("2. Page plans")
    if st.button("Generate page ideas for all books", type="primary", key="bulk_all_page_ideas", disabled=busy):
        launch_job(JOB, "Generating page ideas", wf.generate_all_page_ideas)

    for book in wf.batch.books:
        planned = sum(1 for p in book.pages if p.idea_text.strip())
        with st.expander(f"{book.display_title} · {planned}/{len(book.pages)} planned · {book.status.value}"):
            if book.error:
                st.error(book.error)
            if st.button("Generate page ideas", key=f"bulk_page_ideas_{book.id}", disabled=busy):
                launch_job(JOB, f"Planning {book.display_title}", lambda b=book.id: wf.generate_page_ideas_for_book(b))
            for page in book.pages:
                text = st.text_input(f"Page {page.index}", value=page.idea_text, key=f"bulk_idea_text_{page.id}", disabled=busy)
                if text != page.idea_text:
                    wf.update_page_idea(page.id, text)


# ============================================================
# Step 3
# ============================================================


def _render_prompts_step(wf: BulkWorkflow, busy: bool) -> None:
    st.subheader("3. Prompts")
    pages = [p for _, p in wf.batch.iter_pages()]
    ready = sum(1 for p in pages if p.has_prompt)
    approved = sum(1 for p in pages if p.is_prompt_approved)
    st.caption(f"{ready}/{len(pages)} prompts ready · {approved} approved")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Improve all prompts", type="primary", key="bulk_all_prompts", disabled=busy):
            launch_job(JOB, "Improving prompts", wf.improve_all_prompts)
    with col2:
        if st.button("Approve all prompts", key="bulk_approve_all_prompts", disabled=busy):
            wf.approve_all_prompts()
            st.rerun()

    for book in wf.batch.books:
        with st.expander(book.display_title):
            col_a, col_b = st.columns(2)
            with col_a:
                if st.button("Improve prompts for this book", key=f"bulk_book_prompts_{book.id}", disabled=busy):
                    launch_job(JOB, f"Improving prompts for {book.display_title}", lambda b=book.id: wf.improve_prompts_for_book(b))
            with col_b:
                if st.button("Approve book prompts", key=f"bulk_book_approve_{book.id}", disabled=busy):
                    wf.approve_all_prompts(book.id)
                    st.rerun()
            for page in book.pages:
                _render_prompt_row(wf, page, busy)


def _render_prompt_row(wf: BulkWorkflow, page: Page, busy: bool) -> None:
    st.markdown(f"**Page {page.index}** · {page.idea_text or '(no idea yet)'}")
    if page.error:
        st.error(page.error)
    prompt = st.text_area("Prompt", value=page.final_prompt, key=f"bulk_prompt_{page.id}", height=80, disabled=busy, label_visibility="collapsed")
    if prompt != page.final_prompt:
        wf.update_page_prompt(page.id, prompt)
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Improve", key=f"bulk_improve_{page.id}", disabled=busy or not page.idea_text.strip()):
            launch_job(JOB, f"Improving page {page.index}", lambda p=page.id: wf.improve_prompt_for_page(p))
    with col2:
        if st.button("Unapprove" if page.is_prompt_approved else "Approve", key=f"bulk_prompt_ok_{page.id}", disabled=busy):
            wf.toggle_prompt_approval(page.id)
            st.rerun()


# ============================================================
# Step 4
# ============================================================


def _render_generation_controls(wf: BulkWorkflow, busy: bool) -> None:
    status = wf.batch.status
    cols = st.columns(4)
    with cols[0]:
        if st.button("Start generation", type="primary", key="bulk_start", disabled=busy):
            launch_job(JOB, "Generating images", wf.start_generation)
    with cols[1]:
        if status is BatchStatus.PAUSED:
            if st.button("Resume", key="bulk_resume", disabled=not busy):
                wf.resume_generation()
                st.rerun()
        elif st.button("Pause", key="bulk_pause", disabled=not busy or status is not BatchStatus.GENERATING):
            wf.pause_generation()
            st.rerun()
    with cols[2]:
        if st.button("Stop", key="bulk_stop", disabled=not busy or wf.control.cancelled):
            wf.stop_generation()
            st.rerun()
    with cols[3]:
        if st.button(f"Retry failed ({wf.batch.failed_pages})", key="bulk_retry", disabled=busy or not wf.batch.failed_pages):
            launch_job(JOB, "Retrying failed pages", wf.retry_failed_pages)


def _render_generate_step(wf: BulkWorkflow, busy: bool) -> None:
    st.subheader("4. Generate images")
    _render_generation_controls(wf, busy)
    render_progress_panel(wf.batch, "bulk_gen")

    actions = [
        ("Regenerate", lambda page: launch_job(JOB, f"Regenerating page {page.index}", lambda: wf.regenerate_page(page.id)), lambda page: not page.is_in_flight),
    ]
    for book in wf.batch.books:
        with st.expander(book.display_title, expanded=True):
            render_page_gallery(book, actions, key_prefix="bulk_gen", disabled=busy)


# ============================================================
# Step 5
# ============================================================


def _toggle_version(wf: BulkWorkflow, page: Page) -> None:
    shown = page.resolved_active_version()
    wf.select_version(page.id, ActiveVersion.ORIGINAL if shown is not ActiveVersion.ORIGINAL else ActiveVersion.FINAL_LETTER)
    st.rerun()


def _toggle_approval(wf: BulkWorkflow, page: Page) -> None:
    wf.toggle_page_approval(page.id)
    st.rerun()


def _render_review_step(wf: BulkWorkflow, busy: bool) -> None:
    st.subheader("5. Review & export")
    render_progress_panel(wf.batch, "bulk_review")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Enhance all pages", type="primary", key="bulk_enhance_all", disabled=busy):
            launch_job(JOB, "Enhancing pages", wf.enhance_all)
    with col2:
        if st.button("Download all as ZIP", key="bulk_zip", disabled=busy or not wf.batch.generated_pages):
            launch_job(JOB, "Exporting ZIP", wf.export_batch_zip)

    actions = [
        ("Enhance", lambda page: launch_job(JOB, f"Enhancing page {page.index}", lambda: wf.enhance_page(page.id)), lambda page: page.has_image and not page.enhanced_image_base64),
        ("Approve", lambda page: _toggle_approval(wf, page), lambda page: page.has_image),
        ("Switch version", lambda page: _toggle_version(wf, page), lambda page: bool(page.enhanced_image_base64 or page.final_letter_base64)),
        ("Regenerate", lambda page: launch_job(JOB, f"Regenerating page {page.index}", lambda: wf.regenerate_page(page.id)), lambda page: not page.is_in_flight),
    ]
    for book in wf.batch.books:
        with st.expander(f"{book.display_title} · {book.status.value}", expanded=True):
            col_e, col_p, col_h = st.columns(3)
            has_images = any(p.has_image for p in book.pages)
            with col_e:
                if st.button("Enhance book", key=f"bulk_enhance_{book.id}", disabled=busy or not has_images):
                    launch_job(JOB, f"Enhancing {book.display_title}", lambda b=book.id: wf.enhance_book(b))
            with col_p:
                if st.button("Export PDF", key=f"bulk_pdf_{book.id}", disabled=busy or not has_images):
                    launch_job(JOB, f"Exporting {book.display_title}", lambda b=book.id: wf.export_book_pdf(b))
            with col_h:
                if st.button("Save export hand-off", key=f"bulk_handoff_{book.id}", disabled=busy or not has_images):
                    try:
                        path = wf.save_handoff(book.id)
                    except ValueError as e:
                        st.error(str(e))
                    else:
                        st.success(f"Saved to {path}")
            render_page_gallery(book, actions, key_prefix="bulk_review", disabled=busy, only=lambda p: p.has_image or p.error is not None)

    render_handoff_list(wf.exports_dir, key_prefix="bulk_handoffs")
