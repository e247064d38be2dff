"""Saved export hand-offs, shown on the export views."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import streamlit as st

from core.persistence import list_export_handoffs, load_export_handoff
from utils.image_utils import create_thumbnail


def render_handoff_list(exports_dir: Optional[Path] = None, key_prefix: str = "handoff") -> None:
    """List saved hand-offs, newest first, with a cover thumbnail and a JSON download."""
    handoffs = list_export_handoffs(exports_dir)
    with st.expander(f"Saved export hand-offs ({len(handoffs)})", expanded=False):
        if not handoffs:
            st.caption("No saved hand-offs yet")
            return
        for entry in handoffs:
            col_thumb, col_info, col_dl = st.columns([1, 3, 1])
            blob = load_export_handoff(entry["path"])
            with col_thumb:
                thumb = create_thumbnail(blob["pages"][0].get("imageBase64"), (96, 96)) if blob and blob["pages"] else None
                if thumb:
                    st.image(thumb)
            with col_info:
                st.markdown(f"**{entry['title']}**")
                st.caption(f"{entry['page_count']} pages · {entry['name']}")
            with col_dl:
                st.download_button(
                    "JSON",
                    data=Path(entry["path"]).read_bytes(),
                    file_name=Path(entry["path"]).name,
                    mime="application/json",
                    key=f"{key_prefix}_{entry['name']}",
                )
