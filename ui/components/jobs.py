"""Session-state bookkeeping for background jobs."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import streamlit as st

from utils.background import BackgroundJob

JOBS_KEY = "background_jobs"


def get_job(name: str) -> Optional[BackgroundJob]:
    return st.session_state.get(JOBS_KEY, {}).get(name)


def is_busy(name: str) -> bool:
    job = get_job(name)
    return job is not None and job.is_running


def any_job_running() -> bool:
    return any(job.is_running for job in st.session_state.get(JOBS_KEY, {}).values())


def launch_job(name: str, label: str, factory: Callable[[], Awaitable[Any]]) -> None:
    """Start a job under ``name`` and rerun so the page switches to progress mode."""
    if is_busy(name):
        st.warning("Another operation is still running.")
        return
    jobs = st.session_state.setdefault(JOBS_KEY, {})
    jobs[name] = BackgroundJob(label).start(factory)
    st.rerun()


def dismiss_job(name: str) -> None:
    st.session_state.get(JOBS_KEY, {}).pop(name, None)
