"""
Job service: page selection, batch delegation and operator actions.
"""

import pytest

from pipeline.jobs import JobService
from pipeline.state_machine import InvalidTransitionError


@pytest.fixture
def service(library, gateway):
    return JobService(library, gateway)


class TestCreateJob:
    def test_selects_pages_needing_stage(self, library, service, add_pages):
        add_pages("book", 2, ocr=True)
        library.pages.update("book", "book-001", lambda p: setattr(p, "ocr", None))

        ocr = service.create_job("ocr", "book")
        translate = service.create_job("translate", "book")
        pipeline = service.create_job("pipeline", "book")

        assert library.jobs.get(ocr["jobId"]).page_ids == ["book-001"]
        assert library.jobs.get(translate["jobId"]).page_ids == ["book-002"]
        assert pipeline["pagesQueued"] == 2

    def test_overwrite_selects_everything(self, library, service, add_pages):
        add_pages("book", 3, translated=True)
        created = service.create_job("ocr", "book", overwrite=True)
        assert created["pagesQueued"] == 3

    def test_explicit_pages_deduplicated(self, library, service, add_pages):
        add_pages("book", 2)
        created = service.create_job("ocr", "book", page_ids=["book-002", "book-001", "book-002"])
        assert library.jobs.get(created["jobId"]).page_ids == ["book-002", "book-001"]

    def test_defaults_from_config(self, library, service, add_pages):
        add_pages("book", 1)
        job = library.jobs.get(service.create_job("ocr", "book")["jobId"])

        assert job.config.language == "Latin"
        assert job.config.target_language == "English"
        assert job.config.parallel_pages == 3
        assert job.progress.total == 1
        assert job.status == "pending"

    def test_nothing_to_do(self, service, add_pages):
        add_pages("book", 1, translated=True)
        with pytest.raises(ValueError):
            service.create_job("translate", "book")

    def test_unknown_type(self, service, add_pages):
        add_pages("book", 1)
        with pytest.raises(ValueError):
            service.create_job("summarize", "book")

    def test_batch_type_delegates(self, library, gateway, service, add_pages):
        add_pages("book", 2, real_images=True)

        created = service.create_job("batch_ocr", "book")

        assert created["pagesQueued"] == 2
        batch = library.batches.get(created["batchId"])
        assert batch.job_id == created["jobId"]
        assert batch.is_submitted
        assert service.get(created["jobId"]).is_batch


class TestActions:
    def test_pause_resume_cancel(self, service, add_pages):
        add_pages("book", 1)
        job_id = service.create_job("ocr", "book")["jobId"]

        assert service.act(job_id, "pause").status == "paused"
        assert service.act(job_id, "resume").status == "processing"
        assert service.act(job_id, "cancel").status == "cancelled"
        assert service.act(job_id, "retry").status == "pending"

    def test_invalid_action_transition(self, service, add_pages):
        add_pages("book", 1)
        job_id = service.create_job("ocr", "book")["jobId"]
        with pytest.raises(InvalidTransitionError):
            service.act(job_id, "resume")

    def test_actions_logged(self, library, service, add_pages):
        add_pages("book", 1)
        job_id = service.create_job("ocr", "book")["jobId"]
        service.act(job_id, "pause")

        log = (library.logs_dir / "jobs" / f"{job_id}.jsonl").read_text()
        assert "Action pause" in log

    def test_cancel_batch_job_cancels_provider_batch(self, library, gateway, service, add_pages):
        add_pages("book", 1, real_images=True)
        created = service.create_job("batch_ocr", "book")

        job = service.act(created["jobId"], "cancel")

        assert job.status == "cancelled"
        assert library.batches.get(created["batchId"]).status == "cancelled"
        assert gateway.cancelled == ["batches/fake-1"]

    def test_batch_jobs_only_cancel(self, service, add_pages):
        add_pages("book", 1, real_images=True)
        created = service.create_job("batch_ocr", "book")
        with pytest.raises(ValueError):
            service.act(created["jobId"], "pause")
        with pytest.raises(ValueError):
            service.process(created["jobId"])


class TestQueries:
    def test_list_filters(self, service, add_pages):
        add_pages("a", 1)
        add_pages("b", 1)
        first = service.create_job("ocr", "a")["jobId"]
        second = service.create_job("ocr", "b")["jobId"]
        service.act(second, "cancel")

        assert [j.id for j in service.list(book_id="a")] == [first]
        assert [j.id for j in service.list(status="cancelled")] == [second]
        assert len(service.list()) == 2

    def test_process_runs_one_chunk(self, library, service, add_pages):
        add_pages("book", 4)
        job_id = service.create_job("ocr", "book", parallel_pages=2)["jobId"]

        result = service.process(job_id)

        assert result.processed == 2
        assert result.remaining == 2
        assert library.jobs.get(job_id).claim is None

    def test_status_payload(self, service, add_pages):
        add_pages("book", 1)
        job_id = service.create_job("ocr", "book")["jobId"]
        status = service.status(job_id)
        assert status["progress"] == {"total": 1, "completed": 0, "failed": 0, "current_item": None}
