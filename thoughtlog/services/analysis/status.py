from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class AnalysisSummary:
    status: str
    total: int
    queued: int
    processing: int
    done: int
    error: int
    last_updated_at: int | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _field(counts: Any, name: str) -> Any:
    # Accept both repo rows (attributes) and plain mappings.
    if isinstance(counts, Mapping):
        return counts.get(name)
    return getattr(counts, name, None)


def _count(counts: Any, name: str) -> int:
    return int(_field(counts, name) or 0)


def summarize_jobs(counts: Any) -> AnalysisSummary | None:
    """Fold a thought's per-status job counts into one user-facing status.

    Precedence is error > processing > queued > done, so one failing step
    marks the whole thought as errored while siblings are still running.
    Returns None when the thought has no jobs.
    """
    total = _count(counts, "total")
    if total <= 0:
        return None
    queued = _count(counts, "queued")
    processing = _count(counts, "processing")
    done = _count(counts, "done")
    error = _count(counts, "error")

    if error > 0:
        status = "error"
    elif processing > 0:
        status = "processing"
    elif queued > 0:
        status = "queued"
    else:
        status = "done"

    return AnalysisSummary(
        status=status,
        total=total,
        queued=queued,
        processing=processing,
        done=done,
        error=error,
        last_updated_at=_field(counts, "last_updated_at"),
    )
