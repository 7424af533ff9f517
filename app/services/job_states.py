"""Job lifecycle states and legal transitions."""

import enum
from typing import FrozenSet, Optional


class JobStatus(str, enum.Enum):
    """Persisted job status values."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})

# dst -> statuses it may be entered from
_TRANSITIONS = {
    JobStatus.RUNNING: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset({JobStatus.RUNNING}),
    JobStatus.FAILED: frozenset({JobStatus.RUNNING}),
    JobStatus.CANCELLED: frozenset({JobStatus.QUEUED, JobStatus.RUNNING}),
}


def _coerce(status) -> Optional[JobStatus]:
    try:
        return JobStatus(status)
    except ValueError:
        return None


def is_terminal(status) -> bool:
    """Return True if no transition leaves this status."""
    return _coerce(status) in TERMINAL_STATUSES


def sources_for(dst) -> FrozenSet[JobStatus]:
    """Statuses a row must currently hold for a write to `dst` to apply.

    Every guarded UPDATE uses this set in its WHERE clause so a stale writer
    can never resurrect a terminal job.
    """
    target = _coerce(dst)
    if target is None:
        raise ValueError(f"Unknown job status: {dst}")
    return _TRANSITIONS.get(target, frozenset())


def can_transition(src, dst) -> bool:
    """Check whether `src -> dst` is a legal transition."""
    source = _coerce(src)
    if source is None:
        return False
    return source in sources_for(dst)
