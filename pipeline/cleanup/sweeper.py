"""
Retention sweep over batch submissions.

orphan:  never submitted (no external reference)
expired: provider reports EXPIRED, or local status is expired, and the
         results were never saved

Swept records are copied verbatim into the archive collection with
deleted_at and deletion_reason, then removed from the live collection.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from infra.config import BatchSettings
from infra.pipeline.storage import Library
from pipeline import state_machine
from pipeline.schemas import BatchSubmission, JobStatus, parse_timestamp, utc_now, utc_now_iso


ORPHAN = "orphan"
EXPIRED = "expired"
CLASSES = (ORPHAN, EXPIRED)


def classify(submission: BatchSubmission) -> Optional[str]:
    if not submission.external_ref:
        return ORPHAN
    if submission.status == JobStatus.SAVED.value:
        return None
    if (
        state_machine.normalize_provider_state(submission.external_state) == "EXPIRED"
        or submission.status == JobStatus.EXPIRED.value
    ):
        return EXPIRED
    return None


class CleanupSweeper:
    def __init__(self, library: Library, settings: Optional[BatchSettings] = None):
        self.library = library
        self.settings = settings or library.config.batch

    def _in_grace(self, submission: BatchSubmission, now: datetime) -> bool:
        created = parse_timestamp(submission.created_at)
        if created is None:
            return False
        return now - created < timedelta(hours=self.settings.orphan_grace_hours)

    def candidates(self) -> List[tuple]:
        """(classification, submission) for every sweepable record."""
        found = []
        for submission in self.library.batches.list():
            kind = classify(submission)
            if kind is not None:
                found.append((kind, submission))
        return sorted(found, key=lambda item: item[1].created_at)

    def report(self) -> Dict:
        """Counts by classification plus the pages and jobs affected per book."""
        now = utc_now()
        summary = {
            "counts": {kind: 0 for kind in CLASSES},
            "in_grace": 0,
            "pages_affected": 0,
            "jobs_affected": 0,
            "by_book": {},
        }

        jobs = set()
        for kind, submission in self.candidates():
            summary["counts"][kind] += 1
            if kind == ORPHAN and self._in_grace(submission, now):
                summary["in_grace"] += 1

            book = summary["by_book"].setdefault(submission.book_id, {
                "book_title": submission.book_title,
                ORPHAN: 0,
                EXPIRED: 0,
                "pages": 0,
                "batch_ids": [],
            })
            book[kind] += 1
            book["pages"] += len(submission.page_ids)
            book["batch_ids"].append(submission.id)

            summary["pages_affected"] += len(submission.page_ids)
            jobs.add(submission.job_id)

        summary["jobs_affected"] = len(jobs)
        return summary

    def archive(self, submission: BatchSubmission, reason: str):
        with self.library.batches.lock:
            record = self.library.batches.get_raw(submission.id)
            record["deleted_at"] = utc_now_iso()
            record["deletion_reason"] = reason
            self.library.archive.save(submission.id, record)
            self.library.batches.delete(submission.id)

    def sweep(self, dry_run: bool = False) -> Dict:
        now = utc_now()
        result = {
            "dry_run": dry_run,
            "archived": {kind: 0 for kind in CLASSES},
            "skipped": [],
            "batch_ids": [],
        }

        with self.library.component_logger("cleanup") as log:
            for kind, submission in self.candidates():
                if kind == ORPHAN and self._in_grace(submission, now):
                    result["skipped"].append(submission.id)
                    continue

                result["archived"][kind] += 1
                result["batch_ids"].append(submission.id)
                if dry_run:
                    continue

                self.archive(submission, kind)
                log.info(
                    f"Archived {kind} batch",
                    batch_id=submission.id,
                    book_id=submission.book_id,
                    job_id=submission.job_id,
                    status=submission.status,
                    count=len(submission.page_ids),
                )

            total = sum(result["archived"].values())
            log.info(
                f"Sweep {'(dry run) ' if dry_run else ''}finished: {total} batches",
                count=total,
            )
        return result
