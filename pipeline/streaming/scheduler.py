"""
Scheduler loop for streaming jobs.

A job is advanced by whoever holds its claim: a lease stored on the job
document. run_job keeps claiming and running chunks until the job is done,
paused or cancelled; run_pending picks up any pending or processing job
whose claim is free or expired, so work abandoned by a crashed worker is
resumed once its lease runs out.
"""

import os
import socket
import threading
from datetime import timedelta
from typing import List, Optional, Tuple

from infra.pipeline.storage import Library
from pipeline import state_machine
from pipeline.schemas import Job, JobClaim, utc_now, parse_timestamp
from .controller import StreamingController, ChunkResult


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{threading.get_ident()}"


class JobScheduler:
    def __init__(
        self,
        library: Library,
        controller: StreamingController,
        owner: Optional[str] = None,
        lease_seconds: Optional[int] = None
    ):
        self.library = library
        self.controller = controller
        self.owner = owner or default_owner()
        self.lease_seconds = lease_seconds or library.config.pipeline.claim_lease_seconds

    def _claim_is_free(self, job: Job) -> bool:
        if job.claim is None or job.claim.owner == self.owner:
            return True
        expires = parse_timestamp(job.claim.expires_at)
        return expires is None or expires <= utc_now()

    def claim(self, job_id: str) -> bool:
        """Take or renew the lease on a job. False if someone else holds it
        or the job is not runnable."""
        with self.library.jobs.lock:
            job = self.library.jobs.find(job_id)
            if job is None or job.is_batch or job.status not in state_machine.ACTIVE:
                return False
            if not self._claim_is_free(job):
                return False
            job.claim = JobClaim(
                owner=self.owner,
                expires_at=(utc_now() + timedelta(seconds=self.lease_seconds)).isoformat(),
            )
            self.library.jobs.put(job)
            return True

    def release(self, job_id: str):
        with self.library.jobs.lock:
            job = self.library.jobs.find(job_id)
            if job is not None and job.claim and job.claim.owner == self.owner:
                job.claim = None
                self.library.jobs.put(job)

    def run_job(self, job_id: str, max_chunks: Optional[int] = None) -> Optional[ChunkResult]:
        """Run chunks until the job stops. None if the job could not be claimed."""
        result = None
        chunks = 0
        try:
            while max_chunks is None or chunks < max_chunks:
                if not self.claim(job_id):
                    break
                result = self.controller.process_chunk(job_id)
                chunks += 1
                if result.done or result.paused or result.cancelled:
                    break
                if result.processed == 0 and result.remaining > 0:
                    # Nothing could be recorded; avoid spinning
                    break
        finally:
            self.release(job_id)
        return result

    def claimable_jobs(self) -> List[Job]:
        jobs = [
            job for job in self.library.jobs.list()
            if not job.is_batch
            and job.status in state_machine.ACTIVE
            and self._claim_is_free(job)
        ]
        return sorted(jobs, key=lambda j: j.created_at)

    def run_pending(self, limit: Optional[int] = None) -> List[Tuple[str, ChunkResult]]:
        ran = []
        for job in self.claimable_jobs():
            if limit is not None and len(ran) >= limit:
                break
            result = self.run_job(job.id)
            if result is not None:
                ran.append((job.id, result))
        return ran
