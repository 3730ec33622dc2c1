"""Processing-job statuses and the table of legal transitions between them."""

from enum import Enum

from app.domain.exceptions import InvalidTransitionError


class JobStatus(str, Enum):
    """Lifecycle states of a processing job."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DEAD_LETTER = "dead_letter"


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.RETRYING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED, JobStatus.DEAD_LETTER}),
    JobStatus.FAILED: frozenset({JobStatus.RETRYING, JobStatus.DEAD_LETTER}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
    JobStatus.DEAD_LETTER: frozenset(),
}

# At most one job per (document, job type) may sit in one of these at a time.
ACTIVE_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.PENDING, JobStatus.RUNNING, JobStatus.RETRYING}
)

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Statuses the stale-job reaper considers abandoned once they are old enough.
REAPABLE_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.RUNNING, JobStatus.RETRYING})


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True when ``current -> target`` is an edge of the transition table."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(job_id: str, current: JobStatus, target: JobStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(job_id, current.value, target.value)
