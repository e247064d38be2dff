"""Progress display for generation runs and the wizard step indicator."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

import streamlit as st

from core.models import Batch, PageStatus, calculate_batch_progress, format_eta
from core.progress import summarize
from core.scheduler import SchedulerReport
from utils.background import BackgroundJob

STATUS_LABELS = {
    PageStatus.DRAFT: "Draft",
    PageStatus.PROMPTING: "Writing prompt",
    PageStatus.PROMPT_READY: "Prompt ready",
    PageStatus.QUEUED: "Queued",
    PageStatus.GENERATING: "Generating",
    PageStatus.GENERATED: "Generated",
    PageStatus.ENHANCING: "Enhancing",
    PageStatus.ENHANCED: "Enhanced",
    PageStatus.APPROVED: "Approved",
    PageStatus.FAILED: "Failed",
}


def render_step_indicator(
    steps: Sequence[dict],
    current: int,
    can_navigate: Callable[[int], bool],
    key_prefix: str,
) -> Optional[int]:
    """
    Render one button per wizard step.

    Returns:
        The step the user clicked, or None. Unreachable steps are disabled.
    """
    cols = st.columns(len(steps))
    clicked = None
    for col, step_def in zip(cols, steps):
        step = int(step_def["step"])
        with col:
            label = step_def["label"]
            if step == current:
                label = f"▶ {label}"
            if st.button(
                label,
                key=f"{key_prefix}_step_{step}",
                disabled=not can_navigate(step),
                help=step_def.get("description", ""),
                use_container_width=True,
            ):
                clicked = step
    return clicked


def render_progress_panel(batch: Batch, key_prefix: str = "progress") -> None:
    """Counts, progress bar, average time and ETA for a batch."""
    snapshot = summarize(batch)
    progress = calculate_batch_progress(batch)
    if snapshot.total == 0:
        st.caption("No pages yet.")
        return

    cols = st.columns(4)
    with cols[0]:
        st.metric("Generated", f"{snapshot.generated}/{snapshot.total}")
    with cols[1]:
        st.metric("Enhanced", snapshot.enhanced)
    with cols[2]:
        st.metric("Approved", snapshot.approved)
    with cols[3]:
        st.metric("Failed", snapshot.failed)

    st.progress(min(1.0, progress.overall_percent / 100))
    details = [f"{progress.generation_percent:.0f}% generated", f"{progress.enhancement_percent:.0f}% enhanced"]
    if snapshot.avg_generation_ms > 0:
        details.append(f"avg {snapshot.avg_generation_ms / 1000:.1f}s per page")
    if progress.eta_seconds is not None:
        details.append(f"about {format_eta(progress.eta_seconds)} left")
    st.caption(" · ".join(details))

    busy = {s: n for s, n in snapshot.counts.items() if n and s is not PageStatus.DRAFT}
    if busy:
        st.caption(" | ".join(f"{STATUS_LABELS[s]}: {n}" for s, n in busy.items()))


def render_job_status(job: Optional[BackgroundJob], report: Optional[SchedulerReport] = None) -> None:
    """Running notice, error, or final summary for the last background job."""
    if job is None:
        return
    if job.is_running:
        st.info(f"{job.label}…")
        return
    if job.error:
        st.error(f"{job.label} failed: {job.error}")
        return
    result = job.result
    if isinstance(result, SchedulerReport):
        report = result
    if report is not None:
        if report.failed:
            st.warning(f"{job.label}: {report.summary()}")
        else:
            st.success(f"{job.label}: {report.summary()}")
    elif isinstance(result, str):
        st.success(f"{job.label}: {result}")
    else:
        st.success(f"{job.label} finished")
