"""Single-book creation wizard."""

from features.single_book.workflow import SingleBookWorkflow

__all__ = ["SingleBookWorkflow"]
