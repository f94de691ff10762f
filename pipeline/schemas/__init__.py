from .base import utc_now, utc_now_iso, parse_timestamp, new_id
from .page import Page, PageStage, CropWindow, Usage, OcrResult, TranslationResult
from .job import (
    Job,
    JobType,
    JobStatus,
    JobProgress,
    JobConfig,
    JobClaim,
    PageResult,
    BATCH_JOB_TYPES,
)
from .batch import BatchSubmission, BatchItemResult, PageSnapshot

__all__ = [
    "utc_now",
    "utc_now_iso",
    "parse_timestamp",
    "new_id",
    "Page",
    "PageStage",
    "CropWindow",
    "Usage",
    "OcrResult",
    "TranslationResult",
    "Job",
    "JobType",
    "JobStatus",
    "JobProgress",
    "JobConfig",
    "JobClaim",
    "PageResult",
    "BATCH_JOB_TYPES",
    "BatchSubmission",
    "BatchItemResult",
    "PageSnapshot",
]
