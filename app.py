"""
Coloring Book Studio - Streamlit front end

Two wizards share one orchestration core:
- Bulk Books: plan, prompt, generate and export several books at once
- Single Book: one book from idea to print-ready PDF

Long operations run on background threads; while one is running the page
re-renders once a second to show progress.

Run with: streamlit run app.py
"""

import time

import streamlit as st
from dotenv import load_dotenv

from features.bulk_creation.ui import render_bulk_tab
from features.single_book.ui import render_single_book_tab
from integrations.colorbook_api import ApiSettings
from ui.components.jobs import any_job_running
from utils.logging_config import setup_logging

load_dotenv()
setup_logging()

st.set_page_config(
    page_title="Coloring Book Studio",
    page_icon="🎨",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    h1, h2, h3 {
        font-weight: 600;
        letter-spacing: -0.02em;
    }
    .stButton > button {
        border-radius: 6px;
        font-weight: 500;
    }
    .stTabs [data-baseweb="tab"] {
        padding: 10px 20px;
        font-weight: 500;
    }
    .stAlert {
        border-radius: 8px;
    }
</style>
""", unsafe_allow_html=True)

POLL_INTERVAL_SEC = 1.0


def main():
    """Main Streamlit application."""
    st.title("Coloring Book Studio")
    st.caption("AI coloring book creation, one book or a whole batch")

    with st.sidebar:
        st.header("Settings")
        settings = ApiSettings()
        st.caption(f"Generation service: `{settings.base_url}`")
        st.markdown("---")
        st.markdown("""
        **Bulk Books** - up to 10 books: ideas, page plans, prompts, images, review

        **Single Book** - book type, idea, prompts, images, enhancement, export
        """)

    tab_bulk, tab_single = st.tabs(["Bulk Books", "Single Book"])

    with tab_bulk:
        render_bulk_tab()

    with tab_single:
        render_single_book_tab()

    if any_job_running():
        time.sleep(POLL_INTERVAL_SEC)
        st.rerun()


if __name__ == "__main__":
    main()
