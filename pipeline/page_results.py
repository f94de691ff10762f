"""
Writes OCR and translation subdocuments onto pages.

Manually edited text is copied to a page snapshot before a job
overwrites it.
"""

from typing import Optional

from infra.pipeline.storage import Library
from pipeline.schemas import (
    Page,
    PageSnapshot,
    OcrResult,
    TranslationResult,
    Usage,
    new_id,
    utc_now_iso,
)


def snapshot_if_manual(library: Library, page: Page, snapshot_type: str, job_id: Optional[str]) -> Optional[PageSnapshot]:
    existing = page.ocr if snapshot_type == "pre_ocr" else page.translation
    if existing is None or existing.source != "manual":
        return None

    snapshot = PageSnapshot(
        id=new_id("snap_"),
        page_id=page.id,
        book_id=page.book_id,
        snapshot_type=snapshot_type,
        ocr_data=page.ocr.model_dump(mode="json") if page.ocr else None,
        translation_data=page.translation.model_dump(mode="json") if page.translation else None,
        triggered_by_job_id=job_id,
    )
    return library.snapshots.put(snapshot)


def save_ocr(
    library: Library,
    page: Page,
    text: str,
    language: str,
    model: str,
    usage: Usage,
    source: str = "streaming",
    job_id: Optional[str] = None,
    batch_job_id: Optional[str] = None
) -> Page:
    snapshot_if_manual(library, page, "pre_ocr", job_id)

    def apply(p: Page):
        now = utc_now_iso()
        p.ocr = OcrResult(
            data=text,
            language=language,
            model=model,
            usage=usage,
            source=source,
            updated_at=now,
            batch_job_id=batch_job_id,
        )
        p.updated_at = now

    return library.pages.update(page.book_id, page.id, apply)


def save_translation(
    library: Library,
    page: Page,
    text: str,
    source_language: str,
    target_language: str,
    model: str,
    usage: Usage,
    source: str = "streaming",
    job_id: Optional[str] = None,
    batch_job_id: Optional[str] = None
) -> Page:
    snapshot_if_manual(library, page, "pre_translate", job_id)

    def apply(p: Page):
        if p.ocr is None:
            raise ValueError(f"page {p.id} has no OCR text to translate")
        now = utc_now_iso()
        p.translation = TranslationResult(
            data=text,
            language=target_language,
            source_language=source_language,
            model=model,
            usage=usage,
            source=source,
            updated_at=now,
            batch_job_id=batch_job_id,
        )
        p.updated_at = now

    return library.pages.update(page.book_id, page.id, apply)
