"""Single Book tab: book type, idea, prompts, images, review and export for one book."""

from __future__ import annotations

from pathlib import Path

import streamlit as st

from config import IMAGE_SIZES, MAX_PAGES_PER_BOOK
from core.models import Audience, BatchStatus, BookMode
from core.navigation import SINGLE_STEPS, SingleStep
from features.single_book.workflow import SingleBookWorkflow
from ui.components.handoff_list import render_handoff_list
from ui.components.jobs import dismiss_job, get_job, is_busy, launch_job
from ui.components.page_gallery import render_page_gallery
from ui.components.progress_panel import render_job_status, render_progress_panel, render_step_indicator

JOB = "single"


def _workflow() -> SingleBookWorkflow:
    if "single_workflow" not in st.session_state:
        st.session_state.single_workflow = SingleBookWorkflow()
    return st.session_state.single_workflow


def render_single_book_tab() -> None:
    """Render the single-book wizard."""
    wf = _workflow()
    busy = is_busy(JOB)

    st.header("Create a Coloring Book")

    clicked = render_step_indicator(SINGLE_STEPS, wf.current_step, wf.can_navigate_to, "single")
    if clicked is not None and wf.go_to_step(clicked):
        st.rerun()

    job = get_job(JOB)
    render_job_status(job)
    if job is not None and not job.is_running:
        if st.button("Dismiss", key="single_dismiss"):
            dismiss_job(JOB)
            st.rerun()

    st.markdown("---")
    step = wf.current_step
    if step is SingleStep.BOOK_TYPE:
        _render_book_type_step(wf)
    elif step is SingleStep.IDEA:
        _render_idea_step(wf, busy)
    elif step is SingleStep.PROMPTS:
        _render_prompts_step(wf, busy)
    elif step is SingleStep.GENERATE:
        _render_generate_step(wf, busy)
    elif step is SingleStep.REVIEW:
        _render_review_step(wf, busy)
    else:
        _render_export_step(wf, busy)


def _render_book_type_step(wf: SingleBookWorkflow) -> None:
    st.subheader("What kind of book?")
    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Storybook**")
        st.caption("The same main character appears on every page.")
        if st.button("Create a storybook", key="single_storybook", use_container_width=True):
            wf.select_book_mode(BookMode.STORYBOOK)
            st.rerun()
    with col2:
        st.markdown("**Theme collection**")
        st.caption("Varied scenes around one theme.")
        if st.button("Create a theme book", key="single_theme_book", use_container_width=True):
            wf.select_book_mode(BookMode.THEME_BOOK)
            st.rerun()


def _render_idea_step(wf: SingleBookWorkflow, busy: bool) -> None:
    st.subheader("Your idea")
    idea = st.text_area(
        "Describe your book",
        value=wf.user_idea,
        key="single_user_idea",
        placeholder="e.g. a shy dragon who learns to bake",
        height=100,
    )
    if idea != wf.user_idea:
        wf.user_idea = idea

    col1, col2, col3 = st.columns(3)
    with col1:
        wf.set_page_count(
            st.number_input("Pages", min_value=1, max_value=MAX_PAGES_PER_BOOK, value=wf.page_count, key="single_pages")
        )
    with col2:
        orientations = list(IMAGE_SIZES)
        wf.set_orientation(
            st.selectbox("Orientation", options=orientations, index=orientations.index(wf.orientation), key="single_orientation")
        )
    with col3:
        audiences = list(Audience)
        wf.target_age = st.selectbox(
            "Audience", options=audiences, index=audiences.index(wf.target_age),
            format_func=lambda a: a.value.title(), key="single_audience",
        )

    col_gen, col_clear = st.columns(2)
    with col_gen:
        label = "Generate another idea" if wf.generated_idea else "Generate an idea"
        if st.button(label, key="single_gen_idea", disabled=busy):
            launch_job(JOB, "Generating idea", wf.generate_idea)
    with col_clear:
        if st.button("Clear", key="single_clear_idea", disabled=busy):
            wf.clear_idea()
            st.session_state.pop("single_user_idea", None)
            st.rerun()

    if wf.generated_idea is not None:
        with st.container(border=True):
            st.markdown(f"**{wf.generated_idea.title}**")
            st.write(wf.generated_idea.idea)
            if st.button("Use this idea", key="single_use_idea", disabled=busy):
                wf.use_generated_idea()
                st.session_state.pop("single_user_idea", None)
                st.rerun()

    if st.button("Create page prompts", type="primary", key="single_make_prompts", disabled=busy or not wf.user_idea.strip()):
        launch_job(JOB, "Creating page prompts", wf.generate_prompts)


def _render_prompts_step(wf: SingleBookWorkflow, busy: bool) -> None:
    st.subheader("Page prompts")
    for page in wf.pages:
        st.markdown(f"**Page {page.index}** · {page.idea_text}")
        text = st.text_area("Prompt", value=page.final_prompt, key=f"single_prompt_{page.id}", height=90, disabled=busy, label_visibility="collapsed")
        if text != page.final_prompt:
            wf.update_prompt(page.id, text)
        if st.button("Regenerate prompt", key=f"single_regen_prompt_{page.id}", disabled=busy):
            launch_job(JOB, f"Rewriting page {page.index}", lambda p=page.id: wf.regenerate_prompt(p))

    if st.button("Generate all images", type="primary", key="single_to_generate", disabled=busy):
        launch_job(JOB, "Generating images", wf.generate_all_images)


def _render_run_controls(wf: SingleBookWorkflow, busy: bool) -> None:
    cols = st.columns(3)
    with cols[0]:
        if wf.batch.status is BatchStatus.PAUSED:
            if st.button("Resume", key="single_resume", disabled=not busy):
                wf.resume()
                st.rerun()
        elif st.button("Pause", key="single_pause", disabled=not busy):
            wf.pause()
            st.rerun()
    with cols[1]:
        if st.button("Stop", key="single_stop", disabled=not busy or wf.control.cancelled):
            wf.stop()
            st.rerun()


def _regenerate_action(wf: SingleBookWorkflow):
    return (
        "Regenerate",
        lambda page: launch_job(JOB, f"Generating page {page.index}", lambda: wf.generate_page(page.id)),
        lambda page: page.has_prompt and not page.is_in_flight,
    )


def _render_generate_step(wf: SingleBookWorkflow, busy: bool) -> None:
    st.subheader("Generate images")
    if st.button("Generate missing images", type="primary", key="single_generate", disabled=busy):
        launch_job(JOB, "Generating images", wf.generate_all_images)
    _render_run_controls(wf, busy)
    render_progress_panel(wf.batch, "single_gen")
    if wf.book is not None:
        render_page_gallery(wf.book, [_regenerate_action(wf)], key_prefix="single_gen", disabled=busy)


def _render_review_step(wf: SingleBookWorkflow, busy: bool) -> None:
    st.subheader("Review")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Enhance all", key="single_enhance", disabled=busy):
            launch_job(JOB, "Enhancing pages", wf.enhance_all)
    with col2:
        if st.button("Process for print", key="single_process", disabled=busy):
            launch_job(JOB, "Processing pages for print", wf.process_all)
    _render_run_controls(wf, busy)
    render_progress_panel(wf.batch, "single_review")
    if wf.book is not None:
        render_page_gallery(
            wf.book, [_regenerate_action(wf)], key_prefix="single_review", disabled=busy,
            only=lambda p: p.has_image or p.error is not None,
        )


def _render_export_step(wf: SingleBookWorkflow, busy: bool) -> None:
    st.subheader("Export")
    done = [p for p in wf.pages if p.has_image]
    st.caption(f"{len(done)} of {len(wf.pages)} pages ready")

    with st.expander("PDF settings", expanded=False):
        author = st.text_input("Author", key="single_pdf_author")
        copyright_text = st.text_input("Copyright text", key="single_pdf_copyright")
        title_page = st.checkbox("Title page", value=True, key="single_pdf_title_page")
        copyright_page = st.checkbox("Copyright page", value=True, key="single_pdf_copyright_page")
        page_numbers = st.checkbox("Page numbers", value=False, key="single_pdf_numbers")

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("Export PDF", type="primary", key="single_pdf", disabled=busy or not done):
            launch_job(
                JOB,
                "Exporting PDF",
                lambda: wf.export_pdf(author, copyright_text, title_page, copyright_page, page_numbers),
            )
    with col2:
        if st.button("Download ZIP", key="single_zip", disabled=busy or not done):
            launch_job(JOB, "Exporting ZIP", wf.export_zip)
    with col3:
        if st.button("Save export hand-off", key="single_handoff", disabled=busy or not done):
            try:
                st.success(f"Saved to {wf.save_handoff()}")
            except ValueError as e:
                st.error(str(e))

    render_handoff_list(wf.exports_dir, key_prefix="single_handoffs")

    job = get_job(JOB)
    if job is not None and not job.is_running and isinstance(job.result, str):
        path = Path(job.result)
        if path.suffix in (".pdf", ".zip") and path.exists():
            st.download_button(
                f"Download {path.name}",
                data=path.read_bytes(),
                file_name=path.name,
                mime="application/pdf" if path.suffix == ".pdf" else "application/zip",
                key="single_download",
            )
