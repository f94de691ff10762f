"""
Job service: creation, status queries and operator actions.

Streaming jobs (ocr, translate, pipeline) are run by the scheduler;
batch jobs are delegated to the batch controller, which owns the
provider-side submission.
"""

from typing import Dict, List, Optional

from infra.llm import InferenceGateway, ProviderGateway
from infra.pipeline.storage import Library
from pipeline import state_machine
from pipeline.schemas import Job, JobConfig, JobType, BATCH_JOB_TYPES, new_id


STREAMING_TYPES = (JobType.OCR.value, JobType.TRANSLATE.value, JobType.PIPELINE.value)


def _needs_work(page, job_type: str, overwrite: bool) -> bool:
    if overwrite:
        return True
    if job_type == JobType.OCR.value:
        return page.ocr is None
    if job_type == JobType.TRANSLATE.value:
        return page.ocr is not None and page.translation is None
    return page.ocr is None or page.translation is None


class JobService:
    def __init__(self, library: Library, gateway: Optional[InferenceGateway] = None):
        self.library = library
        self._gateway = gateway
        self._streaming = None
        self._scheduler = None
        self._batch = None

    @property
    def gateway(self) -> InferenceGateway:
        if self._gateway is None:
            self._gateway = ProviderGateway(self.library.config)
        return self._gateway

    @property
    def streaming(self):
        if self._streaming is None:
            from pipeline.streaming import StreamingController
            self._streaming = StreamingController(self.library, self.gateway)
        return self._streaming

    @property
    def scheduler(self):
        if self._scheduler is None:
            from pipeline.streaming import JobScheduler
            self._scheduler = JobScheduler(self.library, self.streaming)
        return self._scheduler

    @property
    def batch(self):
        if self._batch is None:
            from pipeline.batch import BatchController
            self._batch = BatchController(self.library, self.gateway)
        return self._batch

    def create_job(
        self,
        job_type: str,
        book_id: str,
        page_ids: Optional[List[str]] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        target_language: Optional[str] = None,
        parallel_pages: Optional[int] = None,
        overwrite: Optional[bool] = None,
        prompt_name: Optional[str] = None
    ) -> Dict:
        """Queue a job over page_ids, or over every page of the book that
        still needs the job's stages. Returns {jobId, pagesQueued}."""
        defaults = self.library.config.defaults
        overwrite = defaults.overwrite if overwrite is None else overwrite

        if job_type in BATCH_JOB_TYPES:
            submission = self.batch.create(
                book_id,
                "ocr" if job_type == JobType.BATCH_OCR.value else "translate",
                page_ids=page_ids,
                model=model,
                language=language,
                target_language=target_language,
                overwrite=overwrite,
                prompt_name=prompt_name,
            )
            return {"jobId": submission.job_id, "pagesQueued": len(submission.page_ids), "batchId": submission.id}

        if job_type not in STREAMING_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")

        if page_ids is None:
            pages = self.library.pages.list_book(book_id)
            page_ids = [p.id for p in pages if _needs_work(p, job_type, overwrite)]
        page_ids = list(dict.fromkeys(page_ids))
        if not page_ids:
            raise ValueError(f"No pages in book {book_id} need {job_type}")

        job = Job(
            id=new_id("job_"),
            type=job_type,
            book_id=book_id,
            page_ids=page_ids,
            config=JobConfig(
                model=model or self.library.config.default_model(),
                language=language or defaults.language,
                target_language=target_language or defaults.target_language,
                parallel_pages=parallel_pages or defaults.parallel_pages,
                overwrite=overwrite,
                prompt_name=prompt_name,
            ),
        )
        job.progress.total = len(page_ids)
        self.library.jobs.put(job)

        with self.library.job_logger(job.id) as log:
            log.info(f"Created {job_type} job", book_id=book_id, count=len(page_ids), model=job.config.model)

        return {"jobId": job.id, "pagesQueued": len(page_ids)}

    def get(self, job_id: str) -> Job:
        return self.library.jobs.get(job_id)

    def status(self, job_id: str) -> Dict:
        return self.get(job_id).to_status()

    def list(self, book_id: Optional[str] = None, status: Optional[str] = None) -> List[Job]:
        jobs = self.library.jobs.list()
        if book_id:
            jobs = [j for j in jobs if j.book_id == book_id]
        if status:
            jobs = [j for j in jobs if j.status == status]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def process(self, job_id: str, max_chunks: Optional[int] = 1):
        """Run a streaming job under a claim. None if another worker holds it."""
        job = self.get(job_id)
        if job.is_batch:
            raise ValueError(f"Job {job_id} is a batch job; use the batch actions")
        return self.scheduler.run_job(job_id, max_chunks=max_chunks)

    def act(self, job_id: str, action: str) -> Job:
        """cancel | pause | resume | retry. Cancelling a batch job also
        cancels its provider-side batch."""
        job = self.get(job_id)

        if job.is_batch and job.batch_id:
            if action == "cancel":
                self.batch.cancel(job.batch_id)
                return self.get(job_id)
            raise ValueError(f"Action {action} is not supported for batch jobs")

        job = self.library.jobs.update(job_id, lambda j: state_machine.apply_action(j, action))

        with self.library.job_logger(job_id) as log:
            log.info(f"Action {action}", status=job.status)
        return job
