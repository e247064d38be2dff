"""Export hand-off and export artifact files.

The hand-off is a JSON blob ``{"pages": [...]}`` written when a book moves to
the export step and read back by the export view. It has no schema version.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import EXPORTS_DIR
from core.models import Book

logger = logging.getLogger(__name__)

HANDOFF_PREFIX = "handoff_"


def safe_filename(name: str, max_length: int = 50, default: str = "coloring_book") -> str:
    """Sanitize a title for use as a file name."""
    safe = "".join(c for c in name if c.isalnum() or c in (" ", "-", "_")).strip()
    safe = safe.replace(" ", "_")[:max_length].strip("_")
    return safe or default


def build_export_pages(book: Book) -> list[dict]:
    """Pages of ``book`` that have an image, in the shape the export endpoints take."""
    return [
        {
            "pageIndex": page.index,
            "imageBase64": page.export_image(),
            "title": page.idea_text[:80] or f"Page {page.index}",
            "prompt": page.final_prompt,
        }
        for page in book.pages
        if page.has_image
    ]


def save_export_handoff(book: Book, exports_dir: Optional[Path] = None) -> str:
    """Write the hand-off blob for ``book``. Returns the file path."""
    folder = Path(exports_dir or EXPORTS_DIR)
    folder.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = folder / f"{HANDOFF_PREFIX}{safe_filename(book.title, 30)}_{timestamp}.json"
    blob = {
        "title": book.display_title,
        "pages": build_export_pages(book),
        "_metadata": {"saved_at": datetime.now().isoformat(), "book_id": book.id},
    }
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(blob, f, ensure_ascii=False)
    logger.info("Saved export hand-off with %d pages to %s", len(blob["pages"]), filepath)
    return str(filepath)


def load_export_handoff(filepath: str) -> Optional[dict]:
    """Read a hand-off blob. Returns None when missing or unreadable."""
    path = Path(filepath)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            blob = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read export hand-off %s: %s", path, e)
        return None
    if not isinstance(blob, dict) or not isinstance(blob.get("pages"), list):
        logger.warning("Export hand-off %s has no page list", path)
        return None
    blob.pop("_metadata", None)
    return blob


def list_export_handoffs(exports_dir: Optional[Path] = None) -> list[dict]:
    """Saved hand-offs, newest first: ``{name, path, title, page_count}``."""
    folder = Path(exports_dir or EXPORTS_DIR)
    if not folder.exists():
        return []
    entries = []
    for path in sorted(folder.glob(f"{HANDOFF_PREFIX}*.json"), key=lambda p: p.stat().st_mtime, reverse=True):
        blob = load_export_handoff(str(path))
        if blob is None:
            continue
        entries.append(
            {
                "name": path.stem,
                "path": str(path),
                "title": blob.get("title", "Untitled"),
                "page_count": len(blob["pages"]),
            }
        )
    return entries


def export_filename(filename: str, default: str = "coloring_book") -> str:
    """Reduce a suggested file name to a bare, safe name in the exports folder.

    Directory parts are dropped, so ``../x.zip`` and ``/tmp/x.zip`` both become ``x.zip``.
    """
    name = Path(filename.replace("\\", "/")).name
    suffix = "".join(c for c in Path(name).suffix if c.isalnum() or c == ".")
    return safe_filename(Path(name).stem, default=default) + suffix


def save_export_file(data: bytes, filename: str, exports_dir: Optional[Path] = None) -> str:
    """Write an exported PDF/ZIP to the exports folder. Returns the file path."""
    folder = Path(exports_dir or EXPORTS_DIR)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / export_filename(filename)
    path.write_bytes(data)
    logger.info("Wrote export %s (%d bytes)", path, len(data))
    return str(path)
