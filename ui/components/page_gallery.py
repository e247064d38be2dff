"""Grid of page thumbnails with status and per-page actions."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

import streamlit as st

from core.models import Book, Page, PageStatus
from ui.components.progress_panel import STATUS_LABELS
from utils.image_utils import create_thumbnail

PageAction = tuple[str, Callable[[Page], None], Callable[[Page], bool]]


def _status_line(page: Page) -> str:
    label = STATUS_LABELS.get(page.status, str(page.status))
    if page.approved_at is not None and page.status is not PageStatus.APPROVED:
        label += " · approved"
    return f"**Page {page.index}** · {label}"


def render_page_card(page: Page, actions: Sequence[PageAction], key_prefix: str, disabled: bool = False) -> None:
    """One page: thumbnail of the active version, status, messages, action buttons."""
    thumb = create_thumbnail(page.active_image())
    if thumb:
        st.image(thumb, use_container_width=True)
    else:
        st.caption("No image yet")
    st.markdown(_status_line(page))
    if page.idea_text:
        st.caption(page.idea_text[:120])
    if page.error:
        st.error(page.error)
    elif page.warning:
        st.warning(page.warning)

    for label, handler, enabled in actions:
        if st.button(
            label,
            key=f"{key_prefix}_{label}_{page.id}",
            disabled=disabled or not enabled(page),
            use_container_width=True,
        ):
            handler(page)


def render_page_gallery(
    book: Book,
    actions: Sequence[PageAction] = (),
    key_prefix: str = "gallery",
    columns: int = 4,
    disabled: bool = False,
    only: Optional[Callable[[Page], bool]] = None,
) -> None:
    """
    Render the pages of ``book`` in a grid.

    Args:
        book: Book whose pages are shown
        actions: (label, handler, enabled) per button; handler gets the page
        key_prefix: Prefix for widget keys
        columns: Cards per row
        disabled: Disable every action (e.g. while a job runs)
        only: Optional filter on which pages to show
    """
    pages = [p for p in book.pages if only is None or only(p)]
    if not pages:
        st.caption("No pages to show.")
        return
    for row_start in range(0, len(pages), columns):
        cols = st.columns(columns)
        for col, page in zip(cols, pages[row_start:row_start + columns]):
            with col:
                render_page_card(page, actions, f"{key_prefix}_{book.id}", disabled)
