"""
Streaming pipeline controller.

Each call to process_chunk handles a bounded window of a job's remaining
pages: crop if needed, OCR if needed, translate if needed, persisting each
stage as soon as it finishes. Remaining work is always recomputed as
targets minus pages that already have a result, so re-running after a
crash never repeats a recorded page.
"""

import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from infra.config import PipelineSettings
from infra.llm import (
    ConfigurationError,
    InferenceError,
    InferenceGateway,
    RateLimiter,
    RetryPolicy,
)
from infra.pipeline.storage import Library, ImageFetchError
from pipeline import state_machine
from pipeline.page_results import save_ocr, save_translation
from pipeline.prompts import get_prompt
from pipeline.schemas import Job, JobStatus, JobType, Page, PageResult, Usage, utc_now_iso
from pipeline.split import materialize_crop, needs_crop
from .context import ContextTracker, PageContext


STAGES = {
    JobType.OCR.value: ("crop", "ocr"),
    JobType.TRANSLATE.value: ("translate",),
    JobType.PIPELINE.value: ("crop", "ocr", "translate"),
}


class PageFailure(Exception):
    """A page cannot be processed. Recorded on the job, never fatal to it."""


@dataclass
class ChunkResult:
    processed: int = 0
    remaining: int = 0
    done: bool = False
    paused: bool = False
    cancelled: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class PageOutcome:
    page_id: str
    page_number: float
    success: bool
    error: Optional[str] = None
    duration: float = 0.0
    ocr_text: str = ""
    translation_text: str = ""
    cost_usd: float = 0.0


class StreamingController:
    def __init__(
        self,
        library: Library,
        gateway: InferenceGateway,
        settings: Optional[PipelineSettings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep=time.sleep
    ):
        self.library = library
        self.gateway = gateway
        self.settings = settings or library.config.pipeline
        self.rate_limiter = rate_limiter or RateLimiter(self.settings.requests_per_minute)
        self.retry = RetryPolicy(
            max_retries=self.settings.max_retries,
            delay_base=self.settings.retry_delay_base,
            rate_limiter=self.rate_limiter,
            sleep=sleep,
        )

    # Job bookkeeping

    def _start(self, job_id: str) -> Job:
        def apply(job: Job):
            job.progress.total = len(job.page_ids)
            if job.status == JobStatus.PENDING.value:
                state_machine.apply_transition(job, JobStatus.PROCESSING.value)

        return self.library.jobs.update(job_id, apply)

    def _record(self, job_id: str, outcome: PageOutcome) -> bool:
        recorded = []

        def apply(job: Job):
            recorded.append(job.record_result(PageResult(
                page_id=outcome.page_id,
                success=outcome.success,
                error=outcome.error,
                duration=round(outcome.duration, 3),
            )))
            job.progress.current_item = f"page {outcome.page_number}"
            job.updated_at = utc_now_iso()

        self.library.jobs.update(job_id, apply)
        return recorded[0]

    def _finish_if_done(self, job_id: str) -> Job:
        def apply(job: Job):
            if job.status == JobStatus.PROCESSING.value and job.all_recorded():
                job.claim = None
                job.progress.current_item = None
                state_machine.apply_transition(job, state_machine.completion_status(job))

        return self.library.jobs.update(job_id, apply)

    def _seed_context(self, job: Job) -> List[PageContext]:
        """Pages already recorded on the job, as context for the ones still to run.

        Failed pages count only if their OCR was saved before the failure.
        """
        success = {r.page_id: r.success for r in job.results}
        if not success:
            return []
        seed = []
        for page in self.library.pages.get_many(job.book_id, list(success)):
            if success[page.id]:
                seed.append(PageContext(page.page_number, page.ocr_text, page.translation_text))
            elif page.ocr_text:
                seed.append(PageContext(page.page_number, page.ocr_text, complete=False))
        return seed

    # Per-page work

    def _call(self, fn, description: str):
        return self.retry.execute_with_retry(fn, description)

    def process_page(self, job: Job, page: Page, context: Optional[PageContext]) -> PageOutcome:
        started = time.monotonic()
        config = job.config
        stages = STAGES[job.type]
        cost = 0.0
        max_chars = self.settings.context_chars
        ocr_saved = ""

        try:
            if "crop" in stages and needs_crop(page, self.library):
                page = materialize_crop(page, self.library, self.settings)

            if "ocr" in stages and (page.ocr is None or config.overwrite):
                try:
                    image = self.library.images.read(page.ocr_image)
                except ImageFetchError as e:
                    raise PageFailure(str(e))

                result = self._call(
                    lambda: self.gateway.transcribe(
                        image,
                        config.language,
                        context.ocr_context(max_chars) if context else None,
                        get_prompt("ocr", config.prompt_name),
                        config.model,
                    ),
                    f"OCR page {page.id}",
                )
                page = save_ocr(
                    self.library, page, result.text, config.language, result.model,
                    Usage(**result.usage()), job_id=job.id,
                )
                cost += result.cost_usd
            ocr_saved = page.ocr_text

            if "translate" in stages and (page.translation is None or config.overwrite):
                if not page.ocr_text.strip():
                    raise PageFailure("no OCR text to translate")

                result = self._call(
                    lambda: self.gateway.translate(
                        page.ocr_text,
                        page.ocr.language or config.language,
                        config.target_language,
                        context.translation_context(max_chars) if context else None,
                        get_prompt("translation", config.prompt_name),
                        config.model,
                    ),
                    f"translate page {page.id}",
                )
                page = save_translation(
                    self.library, page, result.text, page.ocr.language or config.language,
                    config.target_language, result.model, Usage(**result.usage()), job_id=job.id,
                )
                cost += result.cost_usd

        except ConfigurationError:
            raise
        except (PageFailure, InferenceError, ImageFetchError) as e:
            return PageOutcome(
                page_id=page.id,
                page_number=page.page_number,
                success=False,
                error=f"{type(e).__name__}: {e}" if not isinstance(e, PageFailure) else str(e),
                duration=time.monotonic() - started,
                ocr_text=ocr_saved,
                cost_usd=cost,
            )

        return PageOutcome(
            page_id=page.id,
            page_number=page.page_number,
            success=True,
            duration=time.monotonic() - started,
            ocr_text=page.ocr_text,
            translation_text=page.translation_text,
            cost_usd=cost,
        )

    def _outcome_of(self, future, page: Page) -> PageOutcome:
        """The page's outcome; unexpected errors fail the page, not the chunk."""
        try:
            return future.result()
        except ConfigurationError:
            raise
        except Exception as e:
            return PageOutcome(
                page_id=page.id,
                page_number=page.page_number,
                success=False,
                error=f"{type(e).__name__}: {e}",
            )

    # Chunk

    def _status(self, job_id: str) -> str:
        return self.library.jobs.get(job_id).status

    def process_chunk(self, job_id: str, chunk_size: Optional[int] = None) -> ChunkResult:
        job = self.library.jobs.get(job_id)

        if job.is_batch:
            raise ValueError(f"Job {job_id} is a batch job; use the batch controller")
        if job.status == JobStatus.PAUSED.value:
            return ChunkResult(remaining=len(job.remaining_page_ids()), paused=True)
        if job.status == JobStatus.CANCELLED.value:
            return ChunkResult(remaining=len(job.remaining_page_ids()), cancelled=True)
        if job.status not in state_machine.ACTIVE:
            return ChunkResult(done=True)

        job = self._start(job_id)
        with self.library.job_logger(job_id) as log:
            return self._run_chunk(job, log, chunk_size)

    def _run_chunk(self, job: Job, log, chunk_size: Optional[int]) -> ChunkResult:
        job_id = job.id
        remaining_ids = job.remaining_page_ids()
        pages = self.library.pages.get_many(job.book_id, remaining_ids)

        found = {p.id for p in pages}
        for missing in (pid for pid in remaining_ids if pid not in found):
            self._record(job_id, PageOutcome(missing, 0, False, error="page not found"))
            log.warning("Page not found", page_id=missing)

        size = chunk_size or self.settings.chunk_size or job.config.parallel_pages
        chunk = pages[:size]
        tracker = ContextTracker(self._seed_context(job))
        processed = 0
        stop_status = None

        log.info(
            f"Processing chunk of {len(chunk)} pages ({len(pages)} remaining)",
            book_id=job.book_id,
            count=len(chunk),
        )

        try:
            with ThreadPoolExecutor(max_workers=job.config.parallel_pages) as executor:
                in_flight = {}
                queue: List[Page] = list(chunk)

                while queue or in_flight:
                    while queue and len(in_flight) < job.config.parallel_pages and stop_status is None:
                        status = self._status(job_id)
                        if status != JobStatus.PROCESSING.value:
                            stop_status = status
                            break
                        page = queue.pop(0)
                        future = executor.submit(
                            self.process_page, job, page, tracker.context_for(page.page_number)
                        )
                        in_flight[future] = page

                    if stop_status is not None:
                        queue.clear()
                    if not in_flight:
                        break

                    finished, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in finished:
                        done_page = in_flight.pop(future)
                        outcome = self._outcome_of(future, done_page)
                        if self._record(job_id, outcome):
                            processed += 1
                        if outcome.success or outcome.ocr_text:
                            tracker.observe(PageContext(
                                outcome.page_number, outcome.ocr_text, outcome.translation_text,
                                complete=outcome.success,
                            ))
                        if outcome.success:
                            log.info(
                                "Page complete",
                                page_id=outcome.page_id,
                                cost_usd=round(outcome.cost_usd, 6),
                                duration_seconds=round(outcome.duration, 2),
                            )
                        else:
                            log.warning("Page failed", page_id=outcome.page_id, error=outcome.error)

        except ConfigurationError as e:
            def apply(j: Job):
                j.error = str(e)
                j.updated_at = utc_now_iso()
            self.library.jobs.update(job_id, apply)
            log.error("Job cannot run", error=str(e))
            raise

        job = self._finish_if_done(job_id)
        remaining = len(job.remaining_page_ids())

        if job.status in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
            log.info(
                f"Job {job.status}",
                status=job.status,
                count=job.progress.completed,
            )

        return ChunkResult(
            processed=processed,
            remaining=remaining,
            done=job.status in state_machine.TERMINAL,
            paused=job.status == JobStatus.PAUSED.value,
            cancelled=job.status == JobStatus.CANCELLED.value,
        )
