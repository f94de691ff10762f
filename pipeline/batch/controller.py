"""
Batch pipeline controller.

Lifecycle of a BatchSubmission:

    create -> submit -> refresh (poll) ... -> complete (saved)
                                           -> cancel
    provider FAILED / CANCELLED / EXPIRED -> matching terminal status

Local status is derived from the provider's state only through
state_machine.map_provider_state.
"""

from datetime import timedelta
from typing import Dict, List, Optional

from infra.config import BatchSettings, PipelineSettings
from infra.llm import (
    BatchNotReadyError,
    CostCalculator,
    InferenceError,
    InferenceGateway,
)
from infra.pipeline.storage import Library
from pipeline import state_machine
from pipeline.page_results import save_ocr, save_translation
from pipeline.schemas import (
    BatchItemResult,
    BatchSubmission,
    Job,
    JobConfig,
    JobStatus,
    JobType,
    PageResult,
    Usage,
    new_id,
    parse_timestamp,
    utc_now,
    utc_now_iso,
)
from .request_builder import BatchRequestBuilder


BATCH_TYPES = {
    "ocr": JobType.BATCH_OCR.value,
    "translate": JobType.BATCH_TRANSLATE.value,
}

S = JobStatus


class BatchController:
    def __init__(
        self,
        library: Library,
        gateway: InferenceGateway,
        settings: Optional[BatchSettings] = None,
        pipeline_settings: Optional[PipelineSettings] = None
    ):
        self.library = library
        self.gateway = gateway
        self.settings = settings or library.config.batch
        self.pipeline_settings = pipeline_settings or library.config.pipeline
        self.costs = CostCalculator(library.config.pricing)
        self.log = library.component_logger("batch")

    # Queries

    def get(self, batch_id: str) -> BatchSubmission:
        return self.library.batches.get(batch_id)

    def list_for_book(self, book_id: str) -> List[BatchSubmission]:
        batches = [b for b in self.library.batches.list() if b.book_id == book_id]
        return sorted(batches, key=lambda b: b.created_at, reverse=True)

    # Create / submit

    def _select_pages(self, book_id: str, batch_type: str, overwrite: bool) -> List[str]:
        pages = self.library.pages.list_book(book_id)
        if batch_type == "ocr":
            return [p.id for p in pages if p.ocr is None or overwrite]
        return [p.id for p in pages if p.ocr is not None and (p.translation is None or overwrite)]

    def create(
        self,
        book_id: str,
        batch_type: str,
        page_ids: Optional[List[str]] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        target_language: Optional[str] = None,
        limit: Optional[int] = None,
        overwrite: bool = False,
        book_title: Optional[str] = None,
        prompt_name: Optional[str] = None,
        submit: bool = True
    ) -> BatchSubmission:
        if batch_type not in BATCH_TYPES:
            raise ValueError(f"Unknown batch type: {batch_type}. Expected one of {sorted(BATCH_TYPES)}")

        defaults = self.library.config.defaults
        if page_ids is None:
            page_ids = self._select_pages(book_id, batch_type, overwrite)
        page_ids = list(dict.fromkeys(page_ids))[: limit or self.settings.max_pages]
        if not page_ids:
            raise ValueError(f"No pages in book {book_id} need batch {batch_type}")

        job = Job(
            id=new_id("job_"),
            type=BATCH_TYPES[batch_type],
            book_id=book_id,
            page_ids=page_ids,
            config=JobConfig(
                model=model or defaults.batch_model,
                language=language or defaults.language,
                target_language=target_language or defaults.target_language,
                parallel_pages=defaults.parallel_pages,
                overwrite=overwrite,
                prompt_name=prompt_name,
            ),
        )
        job.progress.total = len(page_ids)

        submission = BatchSubmission(
            id=new_id("batch_"),
            job_id=job.id,
            type=batch_type,
            book_id=book_id,
            book_title=book_title,
            model=job.config.model,
            language=job.config.language,
            target_language=job.config.target_language,
            page_ids=page_ids,
        )
        job.batch_id = submission.id

        self.library.jobs.put(job)
        self.library.batches.put(submission)
        self.log.info(
            f"Created batch {batch_type} for {len(page_ids)} pages",
            batch_id=submission.id,
            job_id=job.id,
            book_id=book_id,
            count=len(page_ids),
        )

        if submit:
            submission = self.submit(submission.id)
        return submission

    def _update_job(self, job_id: str, fn) -> Optional[Job]:
        if not self.library.jobs.exists(job_id):
            return None
        return self.library.jobs.update(job_id, fn)

    def _move_job(self, job: Job, target: str):
        """Best-effort job transition; an out-of-order provider state never
        raises here."""
        try:
            state_machine.apply_transition(job, target)
        except state_machine.InvalidTransitionError:
            pass

    def submit(self, batch_id: str) -> BatchSubmission:
        submission = self.get(batch_id)
        if submission.is_submitted or submission.status != S.PENDING.value:
            return submission

        job = self.library.jobs.find(submission.job_id)
        builder = BatchRequestBuilder(
            self.library, self.pipeline_settings,
            prompt_name=job.config.prompt_name if job else None
        )
        built = builder.build(submission)

        if built.excluded:
            def record_excluded(j: Job):
                for page_id, reason in built.excluded.items():
                    j.record_result(PageResult(page_id=page_id, success=False, error=reason))
                j.updated_at = utc_now_iso()
            self._update_job(submission.job_id, record_excluded)

        if not built.requests:
            def fail(b: BatchSubmission):
                b.excluded = built.excluded
                b.status = S.FAILED.value
                b.error = "no pages could be prepared for submission"
                b.updated_at = utc_now_iso()
                b.completed_at = b.updated_at
            submission = self.library.batches.update(batch_id, fail)

            def fail_job(j: Job):
                j.error = submission.error
                self._move_job(j, S.FAILED.value)
            self._update_job(submission.job_id, fail_job)
            self.log.error("Nothing to submit", batch_id=batch_id, error=submission.error)
            return submission

        display_name = f"{submission.book_title or submission.book_id}-{submission.type}-{submission.id}"
        try:
            handle = self.gateway.submit_batch(submission.model, built.requests, display_name)
        except InferenceError as e:
            def record_error(b: BatchSubmission):
                b.excluded = built.excluded
                b.error = f"{type(e).__name__}: {e}"
                b.updated_at = utc_now_iso()
            self.log.error("Batch submission failed", batch_id=batch_id, error=str(e))
            return self.library.batches.update(batch_id, record_error)

        def record_submission(b: BatchSubmission):
            now = utc_now_iso()
            b.external_ref = handle.external_ref
            b.external_state = handle.external_state
            b.excluded = built.excluded
            b.status = state_machine.map_provider_state(handle.external_state) or S.PROCESSING.value
            b.error = None
            b.submitted_at = now
            b.updated_at = now
        submission = self.library.batches.update(batch_id, record_submission)

        def start_job(j: Job):
            j.error = None
            self._move_job(j, S.PROCESSING.value)
        self._update_job(submission.job_id, start_job)

        self.log.info(
            f"Submitted {len(built.requests)} requests",
            batch_id=batch_id,
            external_ref=handle.external_ref,
            count=len(built.requests),
        )
        return submission

    # Poll

    def _results_expired(self, submission: BatchSubmission) -> bool:
        submitted = parse_timestamp(submission.submitted_at or submission.created_at)
        return submitted is not None and utc_now() - submitted > timedelta(hours=self.settings.retention_hours)

    def refresh(self, batch_id: str, force: bool = False) -> BatchSubmission:
        submission = self.get(batch_id)
        if not submission.is_submitted:
            return submission
        if submission.status in state_machine.TERMINAL and submission.status != S.COMPLETED.value and not force:
            return submission
        if submission.status == S.SAVED.value:
            return submission

        try:
            status = self.gateway.poll_batch(submission.external_ref)
        except InferenceError as e:
            self.log.warning("Batch poll failed", batch_id=batch_id, error=str(e))
            return submission

        new_status = state_machine.map_provider_state(status.external_state) or submission.status
        if new_status == S.COMPLETED.value and self._results_expired(submission):
            new_status = S.EXPIRED.value

        if new_status == submission.status and status.external_state == submission.external_state:
            return submission

        def apply(b: BatchSubmission):
            b.status = new_status
            b.external_state = status.external_state
            b.external_stats = status.stats
            b.updated_at = utc_now_iso()
            if new_status in state_machine.TERMINAL:
                b.completed_at = b.completed_at or b.updated_at
        submission = self.library.batches.update(batch_id, apply)

        def sync_job(j: Job):
            if new_status != j.status:
                self._move_job(j, new_status)
        self._update_job(submission.job_id, sync_job)

        self.log.info(
            f"Batch state {status.external_state}",
            batch_id=batch_id,
            external_ref=submission.external_ref,
            status=new_status,
        )
        return submission

    # Complete

    def complete(self, batch_id: str) -> Dict:
        submission = self.get(batch_id)

        if submission.status == S.SAVED.value:
            return {
                "batch_id": batch_id,
                "status": submission.status,
                "completed_pages": submission.completed_pages,
                "failed_pages": submission.failed_pages,
                "already_saved": True,
            }

        if submission.status == S.CANCELLED.value:
            raise state_machine.InvalidTransitionError(submission.status, S.SAVED.value, "batch was cancelled")
        if not submission.is_submitted:
            raise BatchNotReadyError(f"Batch {batch_id} was never submitted")
        if submission.status == S.EXPIRED.value:
            raise BatchNotReadyError(f"Batch {batch_id} results expired", external_state=submission.external_state)

        status = self.gateway.poll_batch(submission.external_ref)
        if state_machine.normalize_provider_state(status.external_state) != "SUCCEEDED":
            raise BatchNotReadyError(
                f"Batch {batch_id} is not complete: {status.external_state}",
                external_state=status.external_state,
            )

        items = self.gateway.fetch_batch_results(submission.external_ref)
        job = self.library.jobs.find(submission.job_id)
        job_id = job.id if job else None
        submitted = set(submission.submitted_page_ids)
        results: Dict[str, BatchItemResult] = {}

        for item in items:
            if item.key not in submitted:
                self.log.warning("Result for unknown key", batch_id=batch_id, page_id=item.key)
                continue
            if item.key in results:
                continue
            if not item.ok:
                results[item.key] = BatchItemResult(success=False, error=item.error or "empty response")
                continue

            page = self.library.pages.find(submission.book_id, item.key)
            if page is None:
                results[item.key] = BatchItemResult(success=False, error="page not found")
                continue

            usage = Usage(
                input_tokens=item.input_tokens,
                output_tokens=item.output_tokens,
                cost_usd=self.costs.calculate_cost(submission.model, item.input_tokens, item.output_tokens),
            )
            try:
                if submission.type == "ocr":
                    save_ocr(
                        self.library, page, item.text, submission.language, submission.model, usage,
                        source="batch", job_id=job_id, batch_job_id=submission.id,
                    )
                else:
                    save_translation(
                        self.library, page, item.text,
                        page.ocr.language if page.ocr else submission.language,
                        submission.target_language or "English",
                        submission.model, usage,
                        source="batch", job_id=job_id, batch_job_id=submission.id,
                    )
            except ValueError as e:
                results[item.key] = BatchItemResult(success=False, error=str(e))
                continue
            results[item.key] = BatchItemResult(success=True)

        for page_id in submission.submitted_page_ids:
            if page_id not in results:
                results[page_id] = BatchItemResult(success=False, error="missing from provider output")

        completed_pages = sum(1 for r in results.values() if r.success)
        failed_pages = len(results) - completed_pages

        def save(b: BatchSubmission):
            now = utc_now_iso()
            b.results = results
            b.completed_pages = completed_pages
            b.failed_pages = failed_pages
            b.external_state = status.external_state
            b.status = S.SAVED.value
            b.error = None
            b.updated_at = now
            b.completed_at = now
        submission = self.library.batches.update(batch_id, save)

        def finish_job(j: Job):
            for page_id, result in results.items():
                j.record_result(PageResult(page_id=page_id, success=result.success, error=result.error))
            j.progress.current_item = None
            if j.successful_results():
                self._move_job(j, S.COMPLETED.value)
                self._move_job(j, S.SAVED.value)
            else:
                self._move_job(j, S.FAILED.value)
        self._update_job(submission.job_id, finish_job)

        self.log.info(
            f"Saved batch results: {completed_pages} ok, {failed_pages} failed",
            batch_id=batch_id,
            count=completed_pages,
        )
        return {
            "batch_id": batch_id,
            "status": submission.status,
            "completed_pages": completed_pages,
            "failed_pages": failed_pages,
            "already_saved": False,
        }

    # Cancel / delete

    def cancel(self, batch_id: str) -> BatchSubmission:
        submission = self.get(batch_id)
        if submission.status == S.SAVED.value:
            raise state_machine.InvalidTransitionError(submission.status, S.CANCELLED.value, "results already saved")

        if submission.is_submitted:
            try:
                self.gateway.cancel_batch(submission.external_ref)
            except InferenceError as e:
                self.log.warning("Provider cancel failed", batch_id=batch_id, error=str(e))

        def apply(b: BatchSubmission):
            now = utc_now_iso()
            b.status = S.CANCELLED.value
            b.updated_at = now
            b.completed_at = b.completed_at or now
        submission = self.library.batches.update(batch_id, apply)

        def cancel_job(j: Job):
            self._move_job(j, S.CANCELLED.value)
            j.claim = None
        self._update_job(submission.job_id, cancel_job)

        self.log.info("Batch cancelled", batch_id=batch_id)
        return submission

    def delete(self, batch_id: str) -> bool:
        submission = self.library.batches.find(batch_id)
        if submission is None:
            return False
        if submission.is_submitted and submission.status == S.PROCESSING.value:
            try:
                self.gateway.cancel_batch(submission.external_ref)
            except InferenceError as e:
                self.log.warning("Provider cancel failed", batch_id=batch_id, error=str(e))
        self.log.info("Batch deleted", batch_id=batch_id)
        return self.library.batches.delete(batch_id)

    # Periodic processing

    def process_pending(self) -> Dict:
        """Submit unsubmitted batches, poll active ones, collect finished ones."""
        summary = {"submitted": 0, "refreshed": 0, "completed": 0, "errors": []}

        for submission in self.library.batches.list():
            try:
                if not submission.is_submitted:
                    if submission.status == S.PENDING.value:
                        result = self.submit(submission.id)
                        if result.is_submitted:
                            summary["submitted"] += 1
                    continue

                if submission.status == S.PROCESSING.value:
                    submission = self.refresh(submission.id)
                    summary["refreshed"] += 1

                if submission.status == S.COMPLETED.value:
                    self.complete(submission.id)
                    summary["completed"] += 1

            except InferenceError as e:
                self.log.error("Batch processing failed", batch_id=submission.id, error=str(e))
                summary["errors"].append({"batch_id": submission.id, "error": str(e)})

        return summary
