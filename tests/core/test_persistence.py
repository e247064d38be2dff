"""Tests for export hand-off files."""

import json
import tempfile
from pathlib import Path

import pytest

from core import persistence
from core.models import Book, Page


@pytest.fixture
def temp_exports_dir(monkeypatch):
    """Point the exports folder at a temporary directory."""
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp)
        monkeypatch.setattr(persistence, "EXPORTS_DIR", path)
        yield path


def _book() -> Book:
    return Book(
        title="Ocean Friends!",
        pages=[
            Page(index=1, idea_text="A whale", final_prompt="p1", image_base64="orig1", enhanced_image_base64="enh1"),
            Page(index=2, idea_text="A crab"),
            Page(index=3, idea_text="", image_base64="orig3", final_letter_base64="letter3"),
        ],
    )


def test_safe_filename():
    assert persistence.safe_filename("Ocean Friends!") == "Ocean_Friends"
    assert persistence.safe_filename("???") == "coloring_book"
    assert len(persistence.safe_filename("x" * 200)) == 50


def test_build_export_pages_skips_pages_without_images():
    pages = persistence.build_export_pages(_book())
    assert [p["pageIndex"] for p in pages] == [1, 3]
    assert pages[0]["imageBase64"] == "enh1"
    assert pages[1]["imageBase64"] == "letter3"
    assert pages[1]["title"] == "Page 3"


def test_handoff_round_trip(temp_exports_dir):
    """Saved hand-off loads back with the page list and is listed."""
    path = persistence.save_export_handoff(_book())
    assert Path(path).parent == temp_exports_dir

    blob = persistence.load_export_handoff(path)
    assert blob["title"] == "Ocean Friends!"
    assert len(blob["pages"]) == 2
    assert "_metadata" not in blob

    listed = persistence.list_export_handoffs()
    assert len(listed) == 1
    assert listed[0]["page_count"] == 2
    assert listed[0]["path"] == path


def test_load_handoff_missing_or_invalid(temp_exports_dir):
    assert persistence.load_export_handoff(str(temp_exports_dir / "nope.json")) is None

    broken = temp_exports_dir / "handoff_broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert persistence.load_export_handoff(str(broken)) is None

    no_pages = temp_exports_dir / "handoff_empty.json"
    no_pages.write_text(json.dumps({"title": "x"}), encoding="utf-8")
    assert persistence.load_export_handoff(str(no_pages)) is None
    assert persistence.list_export_handoffs() == []


def test_save_export_file(temp_exports_dir):
    path = persistence.save_export_file(b"%PDF-1.4", "book.pdf")
    assert Path(path).read_bytes() == b"%PDF-1.4"


def test_save_export_file_stays_in_exports_folder(temp_exports_dir):
    inner = temp_exports_dir / "books"
    for name in ("../escaped.zip", "/tmp/abs.zip", "..\\win.zip"):
        path = Path(persistence.save_export_file(b"PK", name, inner))
        assert path.parent == inner
    assert sorted(p.name for p in inner.iterdir()) == ["abs.zip", "escaped.zip", "win.zip"]
    assert not (temp_exports_dir / "escaped.zip").exists()


def test_export_filename():
    assert persistence.export_filename("../escaped.zip") == "escaped.zip"
    assert persistence.export_filename("My Book!.pdf") == "My_Book.pdf"
    assert persistence.export_filename("..") == "coloring_book"
