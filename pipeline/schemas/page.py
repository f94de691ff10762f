from enum import Enum
from typing import Optional, Union, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base import utc_now_iso


class PageStage(str, Enum):
    UNPROCESSED = "unprocessed"
    CROP_PENDING = "crop_pending"
    CROPPED = "cropped"
    OCR_DONE = "ocr_done"
    TRANSLATED = "translated"


class CropWindow(BaseModel):
    """Horizontal crop bounds on a normalized 0-1000 scale."""
    model_config = ConfigDict(populate_by_name=True)

    x_start: float = Field(..., alias="xStart", ge=0, le=1000)
    x_end: float = Field(..., alias="xEnd", ge=0, le=1000)

    @model_validator(mode="after")
    def check_order(self):
        if self.x_end <= self.x_start:
            raise ValueError(f"crop xEnd ({self.x_end}) must be greater than xStart ({self.x_start})")
        return self


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    processing_ms: Optional[int] = None


class OcrResult(BaseModel):
    data: str
    language: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    source: str = Field("streaming", description="streaming | batch | manual")
    updated_at: str = Field(default_factory=utc_now_iso)
    batch_job_id: Optional[str] = None


class TranslationResult(BaseModel):
    data: str
    language: str = Field(..., description="Target language")
    source_language: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    source: str = Field("streaming", description="streaming | batch | manual")
    updated_at: str = Field(default_factory=utc_now_iso)
    batch_job_id: Optional[str] = None


class Page(BaseModel):
    """A single manuscript page owned by a book."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    book_id: str
    page_number: Union[int, float]
    photo: str
    photo_original: Optional[str] = None
    crop: Optional[CropWindow] = None
    cropped_photo: Optional[str] = None
    split_from: Optional[str] = None
    ocr: Optional[OcrResult] = None
    translation: Optional[TranslationResult] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def translation_requires_ocr(self):
        if self.translation is not None and self.ocr is None:
            raise ValueError(f"page {self.id}: translation present without OCR")
        return self

    @property
    def stage(self) -> PageStage:
        if self.translation is not None:
            return PageStage.TRANSLATED
        if self.ocr is not None:
            return PageStage.OCR_DONE
        if self.crop is not None:
            return PageStage.CROPPED if self.cropped_photo else PageStage.CROP_PENDING
        return PageStage.UNPROCESSED

    @property
    def source_image(self) -> str:
        """Image the crop window applies to."""
        return self.photo_original or self.photo

    @property
    def ocr_image(self) -> str:
        """Image OCR should read. Only valid once any crop is materialized."""
        if self.crop is not None:
            return self.cropped_photo
        return self.photo

    @property
    def ocr_text(self) -> str:
        return self.ocr.data if self.ocr else ""

    @property
    def translation_text(self) -> str:
        return self.translation.data if self.translation else ""

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
