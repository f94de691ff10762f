from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from .base import utc_now_iso


class BatchItemResult(BaseModel):
    success: bool
    error: Optional[str] = None


class BatchSubmission(BaseModel):
    """Binding between a job and one provider-side batch."""
    id: str
    job_id: str
    type: str = Field(..., description="ocr | translate")
    book_id: str
    book_title: Optional[str] = None
    model: str
    language: str
    target_language: Optional[str] = None
    status: str = "pending"
    external_ref: Optional[str] = None
    external_state: Optional[str] = None
    external_stats: Dict[str, Any] = Field(default_factory=dict)
    page_ids: List[str] = Field(default_factory=list)
    excluded: Dict[str, str] = Field(default_factory=dict)
    results: Dict[str, BatchItemResult] = Field(default_factory=dict)
    completed_pages: int = 0
    failed_pages: int = 0
    error: Optional[str] = None
    submitted_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None

    @property
    def is_submitted(self) -> bool:
        return bool(self.external_ref)

    @property
    def submitted_page_ids(self) -> List[str]:
        return [pid for pid in self.page_ids if pid not in self.excluded]


class PageSnapshot(BaseModel):
    """Copy of a page's text taken before a job overwrites manual edits."""
    id: str
    page_id: str
    book_id: str
    snapshot_type: str = Field(..., description="pre_ocr | pre_translate")
    ocr_data: Optional[Dict[str, Any]] = None
    translation_data: Optional[Dict[str, Any]] = None
    triggered_by_job_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
