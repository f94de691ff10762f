"""
Job status rules shared by the streaming and batch controllers.

Local vocabulary: pending, processing, paused, completed, failed,
cancelled, saved, expired. Provider states (Gemini batch) are mapped onto
it through PROVIDER_STATE_MAP only.
"""

from typing import Dict, List, Optional

from pipeline.schemas import Job, JobStatus, utc_now_iso


class InvalidTransitionError(Exception):
    def __init__(self, current: str, target: str, reason: str = None):
        self.current = current
        self.target = target
        message = f"Cannot move job from {current} to {target}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


P = JobStatus

TRANSITIONS: Dict[str, frozenset] = {
    P.PENDING.value: frozenset({P.PROCESSING.value, P.PAUSED.value, P.CANCELLED.value}),
    P.PROCESSING.value: frozenset({
        P.COMPLETED.value, P.FAILED.value, P.CANCELLED.value, P.PAUSED.value, P.EXPIRED.value
    }),
    P.PAUSED.value: frozenset({P.PROCESSING.value, P.CANCELLED.value}),
    P.COMPLETED.value: frozenset({P.SAVED.value, P.EXPIRED.value}),
    P.FAILED.value: frozenset({P.PENDING.value}),
    P.CANCELLED.value: frozenset({P.PENDING.value}),
    P.SAVED.value: frozenset(),
    P.EXPIRED.value: frozenset(),
}

TERMINAL = frozenset({
    P.COMPLETED.value, P.FAILED.value, P.CANCELLED.value, P.SAVED.value, P.EXPIRED.value
})

ACTIVE = frozenset({P.PENDING.value, P.PROCESSING.value})


PROVIDER_STATE_MAP: Dict[str, str] = {
    "PENDING": P.PROCESSING.value,
    "RUNNING": P.PROCESSING.value,
    "SUCCEEDED": P.COMPLETED.value,
    "FAILED": P.FAILED.value,
    "CANCELLED": P.CANCELLED.value,
    "EXPIRED": P.EXPIRED.value,
}


def normalize_provider_state(state: Optional[str]) -> Optional[str]:
    if not state:
        return None
    state = state.upper()
    for prefix in ("JOB_STATE_", "BATCH_STATE_"):
        if state.startswith(prefix):
            return state[len(prefix):]
    return state


def map_provider_state(state: Optional[str]) -> Optional[str]:
    """Local status for a provider state, or None if unknown (no change)."""
    return PROVIDER_STATE_MAP.get(normalize_provider_state(state))


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition_path(current: str, target: str) -> List[str]:
    """Statuses to pass through to reach target, excluding current.

    A pending job driven straight to completed/failed/expired goes through
    processing first.
    """
    if current == target:
        return []
    if can_transition(current, target):
        return [target]
    if current == P.PENDING.value and can_transition(P.PROCESSING.value, target):
        return [P.PROCESSING.value, target]
    raise InvalidTransitionError(current, target)


def apply_transition(job: Job, target: str) -> Job:
    """Move job to target in place, stamping timestamps along the way."""
    for status in transition_path(job.status, target):
        job.status = status
        now = utc_now_iso()
        job.updated_at = now
        if status == P.PROCESSING.value and not job.started_at:
            job.started_at = now
        if status in TERMINAL:
            job.completed_at = now
        if status == P.PENDING.value:
            job.completed_at = None
    return job


# Operator actions

def cancel(job: Job) -> Job:
    if job.status in (P.COMPLETED.value, P.CANCELLED.value, P.SAVED.value):
        raise InvalidTransitionError(job.status, P.CANCELLED.value, "job already finished")
    job.claim = None
    return apply_transition(job, P.CANCELLED.value)


def pause(job: Job) -> Job:
    if job.status not in ACTIVE:
        raise InvalidTransitionError(job.status, P.PAUSED.value, "only pending or processing jobs can be paused")
    job.claim = None
    return apply_transition(job, P.PAUSED.value)


def resume(job: Job) -> Job:
    if job.status != P.PAUSED.value:
        raise InvalidTransitionError(job.status, P.PROCESSING.value, "only paused jobs can be resumed")
    return apply_transition(job, P.PROCESSING.value)


def retry(job: Job) -> Job:
    """Failed or cancelled back to pending; failed page results are dropped
    so those pages are attempted again."""
    if job.status not in (P.FAILED.value, P.CANCELLED.value):
        raise InvalidTransitionError(job.status, P.PENDING.value, "only failed or cancelled jobs can be retried")
    job.results = [r for r in job.results if r.success]
    job.progress.failed = 0
    job.progress.completed = len(job.results)
    job.error = None
    job.claim = None
    return apply_transition(job, P.PENDING.value)


ACTIONS = {
    "cancel": cancel,
    "pause": pause,
    "resume": resume,
    "retry": retry,
}


def apply_action(job: Job, action: str) -> Job:
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}. Expected one of {sorted(ACTIONS)}")
    return ACTIONS[action](job)


def completion_status(job: Job) -> str:
    """Terminal status for a job whose targets all have results."""
    if job.page_ids and not job.successful_results():
        return P.FAILED.value
    return P.COMPLETED.value
