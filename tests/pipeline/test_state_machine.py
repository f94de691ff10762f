"""
Job status transitions, operator actions and provider state mapping.
"""

import pytest

from pipeline import state_machine
from pipeline.schemas import Job, PageResult
from pipeline.state_machine import InvalidTransitionError


def make_job(status="pending", page_ids=("a", "b")):
    job = Job(id="job_1", type="ocr", book_id="book", page_ids=list(page_ids))
    job.progress.total = len(page_ids)
    job.status = status
    return job


class TestProviderStateMapping:
    @pytest.mark.parametrize("state,expected", [
        ("JOB_STATE_PENDING", "processing"),
        ("JOB_STATE_RUNNING", "processing"),
        ("JOB_STATE_SUCCEEDED", "completed"),
        ("JOB_STATE_FAILED", "failed"),
        ("JOB_STATE_CANCELLED", "cancelled"),
        ("JOB_STATE_EXPIRED", "expired"),
        ("BATCH_STATE_PENDING", "processing"),
        ("BATCH_STATE_RUNNING", "processing"),
        ("BATCH_STATE_SUCCEEDED", "completed"),
        ("BATCH_STATE_FAILED", "failed"),
        ("BATCH_STATE_CANCELLED", "cancelled"),
        ("BATCH_STATE_EXPIRED", "expired"),
        ("SUCCEEDED", "completed"),
        ("job_state_running", "processing"),
    ])
    def test_known_states(self, state, expected):
        assert state_machine.map_provider_state(state) == expected

    @pytest.mark.parametrize("state", ["JOB_STATE_UNSPECIFIED", "PAUSED", "", None])
    def test_unknown_states_leave_status_unchanged(self, state):
        assert state_machine.map_provider_state(state) is None


class TestTransitions:
    def test_terminal_states_have_no_exit_except_restart(self):
        assert state_machine.TRANSITIONS["saved"] == frozenset()
        assert state_machine.TRANSITIONS["expired"] == frozenset()
        assert state_machine.can_transition("completed", "saved")
        assert not state_machine.can_transition("saved", "processing")

    def test_pending_to_completed_passes_processing(self):
        job = make_job()
        state_machine.apply_transition(job, "completed")

        assert job.status == "completed"
        assert job.started_at is not None
        assert job.completed_at is not None

    def test_invalid_transition(self):
        with pytest.raises(InvalidTransitionError):
            state_machine.apply_transition(make_job("saved"), "processing")

    def test_same_status_is_noop(self):
        job = make_job("processing")
        assert state_machine.transition_path("processing", "processing") == []
        state_machine.apply_transition(job, "processing")
        assert job.status == "processing"


class TestActions:
    def test_pause_and_resume(self):
        job = make_job("processing")
        state_machine.apply_action(job, "pause")
        assert job.status == "paused"

        state_machine.apply_action(job, "resume")
        assert job.status == "processing"

    def test_resume_requires_paused(self):
        with pytest.raises(InvalidTransitionError):
            state_machine.apply_action(make_job("pending"), "resume")

    @pytest.mark.parametrize("status", ["pending", "processing", "paused", "failed"])
    def test_cancel(self, status):
        job = make_job(status)
        state_machine.apply_action(job, "cancel")
        assert job.status == "cancelled"
        assert job.claim is None

    @pytest.mark.parametrize("status", ["completed", "cancelled", "saved"])
    def test_cancel_finished_job(self, status):
        with pytest.raises(InvalidTransitionError):
            state_machine.apply_action(make_job(status), "cancel")

    def test_retry_drops_failed_results(self):
        job = make_job("processing")
        job.record_result(PageResult(page_id="a", success=True))
        job.record_result(PageResult(page_id="b", success=False, error="timeout"))
        state_machine.apply_transition(job, "failed")
        job.error = "gave up"

        state_machine.apply_action(job, "retry")

        assert job.status == "pending"
        assert job.remaining_page_ids() == ["b"]
        assert job.progress.completed == 1
        assert job.progress.failed == 0
        assert job.error is None
        assert job.completed_at is None

    def test_retry_requires_failed_or_cancelled(self):
        with pytest.raises(InvalidTransitionError):
            state_machine.apply_action(make_job("processing"), "retry")

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            state_machine.apply_action(make_job(), "explode")


class TestCompletionStatus:
    def test_all_failed_is_failed(self):
        job = make_job("processing")
        job.record_result(PageResult(page_id="a", success=False))
        job.record_result(PageResult(page_id="b", success=False))
        assert state_machine.completion_status(job) == "failed"

    def test_partial_success_is_completed(self):
        job = make_job("processing")
        job.record_result(PageResult(page_id="a", success=True))
        job.record_result(PageResult(page_id="b", success=False))
        assert state_machine.completion_status(job) == "completed"
