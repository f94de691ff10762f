from enum import Enum
from typing import Optional, List, Dict, Any, Set
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import utc_now_iso


class JobType(str, Enum):
    OCR = "ocr"
    TRANSLATE = "translate"
    PIPELINE = "pipeline"
    BATCH_OCR = "batch_ocr"
    BATCH_TRANSLATE = "batch_translate"


BATCH_JOB_TYPES = {JobType.BATCH_OCR.value, JobType.BATCH_TRANSLATE.value}


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SAVED = "saved"
    EXPIRED = "expired"


class JobProgress(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_item: Optional[str] = None


class PageResult(BaseModel):
    page_id: str
    success: bool
    error: Optional[str] = None
    duration: Optional[float] = None


class JobConfig(BaseModel):
    model: str = ""
    language: str = "Latin"
    target_language: str = "English"
    parallel_pages: int = 3
    overwrite: bool = False
    prompt_name: Optional[str] = None

    @field_validator('parallel_pages')
    @classmethod
    def validate_parallel_pages(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("parallel_pages must be between 1 and 10")
        return v


class JobClaim(BaseModel):
    owner: str
    expires_at: str


class Job(BaseModel):
    """One orchestration run over a fixed list of pages."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    type: JobType
    status: JobStatus = JobStatus.PENDING
    book_id: str
    page_ids: List[str] = Field(default_factory=list)
    progress: JobProgress = Field(default_factory=JobProgress)
    results: List[PageResult] = Field(default_factory=list)
    config: JobConfig = Field(default_factory=JobConfig)
    claim: Optional[JobClaim] = None
    batch_id: Optional[str] = None
    error: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @model_validator(mode="after")
    def check_progress(self):
        if self.progress.completed + self.progress.failed > self.progress.total:
            raise ValueError(
                f"job {self.id}: completed ({self.progress.completed}) + failed "
                f"({self.progress.failed}) exceeds total ({self.progress.total})"
            )
        return self

    @property
    def is_batch(self) -> bool:
        return self.type in BATCH_JOB_TYPES

    def result_ids(self) -> Set[str]:
        return {r.page_id for r in self.results}

    def remaining_page_ids(self) -> List[str]:
        done = self.result_ids()
        return [pid for pid in self.page_ids if pid not in done]

    def successful_results(self) -> List[PageResult]:
        return [r for r in self.results if r.success]

    def record_result(self, result: PageResult) -> bool:
        """Append a page result unless one is already recorded or the page
        is not a target. Returns True if the result was recorded."""
        if result.page_id not in self.page_ids or result.page_id in self.result_ids():
            return False
        self.results.append(result)
        if result.success:
            self.progress.completed += 1
        else:
            self.progress.failed += 1
        return True

    def all_recorded(self) -> bool:
        return not self.remaining_page_ids()

    def to_status(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "book_id": self.book_id,
            "progress": self.progress.model_dump(),
            "results": [r.model_dump(exclude_none=True) for r in self.results],
            "batch_id": self.batch_id,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }
