"""Bulk (multi-book) creation wizard."""

from features.bulk_creation.workflow import BulkWorkflow

__all__ = ["BulkWorkflow"]
