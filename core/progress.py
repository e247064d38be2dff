"""Display-ready aggregates derived from the item model.

Everything here is a full recompute over the batch; collections are small
(tens of books x tens of pages) so nothing is cached or indexed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from core.models import Batch, BatchStatus, PageStatus


def count_by_status(batch: Batch) -> dict[PageStatus, int]:
    """Number of pages in each status bucket. Every status is present, zero-filled."""
    counts = Counter(page.status for _, page in batch.iter_pages())
    return {status: counts.get(status, 0) for status in PageStatus}


def running_mean(old_avg: float, old_count: int, new_value: float) -> float:
    """Incremental mean; the first sample becomes the average directly."""
    if old_count <= 0:
        return float(new_value)
    return (old_avg * old_count + new_value) / (old_count + 1)


def estimate_eta_seconds(remaining: int, avg_duration_ms: float, samples: int, running: bool) -> Optional[float]:
    """Seconds left, or None while idle or before any completion has produced an average."""
    if not running or samples <= 0:
        return None
    return remaining * avg_duration_ms / 1000


def recompute_counters(batch: Batch) -> Batch:
    """Return ``batch`` with its page counters rebuilt from page state.

    ``total_pages`` is left alone: it is fixed when the batch is created.
    """
    generated = enhanced = approved = failed = 0
    for _, page in batch.iter_pages():
        if page.has_image:
            generated += 1
        if page.enhanced_image_base64 or page.final_letter_base64:
            enhanced += 1
        if page.approved_at is not None:
            approved += 1
        if page.status is PageStatus.FAILED:
            failed += 1
    if (generated, enhanced, approved, failed) == (
        batch.generated_pages,
        batch.enhanced_pages,
        batch.approved_pages,
        batch.failed_pages,
    ):
        return batch
    return batch.model_copy(
        update={
            "generated_pages": generated,
            "enhanced_pages": enhanced,
            "approved_pages": approved,
            "failed_pages": failed,
        }
    )


@dataclass
class ProgressSnapshot:
    """What the progress panel renders."""

    counts: dict[PageStatus, int] = field(default_factory=dict)
    total: int = 0
    generated: int = 0
    enhanced: int = 0
    approved: int = 0
    failed: int = 0
    in_flight: int = 0
    avg_generation_ms: float = 0.0
    eta_seconds: Optional[float] = None
    running: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.generated)

    @property
    def percent(self) -> float:
        return (self.generated / self.total * 100) if self.total else 0.0


def summarize(batch: Batch) -> ProgressSnapshot:
    counts = count_by_status(batch)
    total = sum(counts.values())
    generated = sum(1 for _, p in batch.iter_pages() if p.has_image)
    running = batch.status is BatchStatus.GENERATING
    return ProgressSnapshot(
        counts=counts,
        total=total,
        generated=generated,
        enhanced=sum(1 for _, p in batch.iter_pages() if p.enhanced_image_base64 or p.final_letter_base64),
        approved=sum(1 for _, p in batch.iter_pages() if p.approved_at is not None),
        failed=counts[PageStatus.FAILED],
        in_flight=counts[PageStatus.PROMPTING] + counts[PageStatus.GENERATING] + counts[PageStatus.ENHANCING],
        avg_generation_ms=batch.avg_generation_ms,
        eta_seconds=estimate_eta_seconds(
            total - generated, batch.avg_generation_ms, batch.generation_samples, running
        ),
        running=running,
    )
