"""
Shared fixtures.

All tests use real filesystem operations with temporary directories.
The inference provider is replaced by FakeGateway, a scripted in-memory
InferenceGateway; HTTP sessions are mocked only in transport tests.
"""

import io
from typing import Dict, List, Optional

import pytest
from PIL import Image

from infra.config import LibraryConfig, PipelineSettings
from infra.llm import (
    BatchHandle,
    BatchItemOutput,
    BatchNotReadyError,
    BatchStatus,
    InferenceGateway,
    InferenceResult,
)
from infra.pipeline.storage import Library
from pipeline.schemas import Page, OcrResult, TranslationResult


class FakeGateway(InferenceGateway):
    """Scripted gateway.

    OCR keys are the raw image bytes decoded as text, translation keys are
    the source text. failures maps a key to exceptions raised on successive
    calls; once the list is used up the call succeeds.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.batches: Dict[str, dict] = {}
        self.submit_error: Optional[Exception] = None
        self.poll_count = 0
        self.fetch_count = 0
        self.cancelled: List[str] = []

    def _maybe_fail(self, key: str):
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)

    def transcribe(self, image, language, previous_text, prompt, model) -> InferenceResult:
        key = image.decode("utf-8", "replace")
        self.calls.append(("ocr", key, previous_text))
        self._maybe_fail(key)
        return InferenceResult(
            text=f"text of {key}", model=model or "fake-model",
            input_tokens=100, output_tokens=50, cost_usd=0.001, processing_ms=5,
        )

    def translate(self, text, source_language, target_language, previous_translation, prompt, model) -> InferenceResult:
        self.calls.append(("translate", text, previous_translation))
        self._maybe_fail(text)
        return InferenceResult(
            text=f"translation of {text}", model=model or "fake-model",
            input_tokens=80, output_tokens=60, cost_usd=0.002, processing_ms=5,
        )

    def calls_of(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]

    # Batch side

    def submit_batch(self, model, requests, display_name="scriptorium") -> BatchHandle:
        if self.submit_error is not None:
            raise self.submit_error
        ref = f"batches/fake-{len(self.batches) + 1}"
        self.batches[ref] = {
            "state": "JOB_STATE_PENDING",
            "model": model,
            "display_name": display_name,
            "requests": list(requests),
            "outputs": None,
        }
        return BatchHandle(external_ref=ref, external_state="JOB_STATE_PENDING")

    def finish(self, ref: str, state: str = "JOB_STATE_SUCCEEDED", errors=(), missing=()):
        """Move a batch to a terminal state with outputs for every request
        except `missing`; keys in `errors` get a provider error."""
        batch = self.batches[ref]
        batch["state"] = state
        outputs = []
        for request in batch["requests"]:
            if request.key in missing:
                continue
            if request.key in errors:
                outputs.append(BatchItemOutput(key=request.key, error="RECITATION"))
            else:
                outputs.append(BatchItemOutput(
                    key=request.key, text=f"batch text of {request.key}",
                    input_tokens=1000, output_tokens=500,
                ))
        batch["outputs"] = outputs

    def poll_batch(self, external_ref) -> BatchStatus:
        self.poll_count += 1
        batch = self.batches[external_ref]
        return BatchStatus(external_state=batch["state"], stats={"requestCount": len(batch["requests"])})

    def fetch_batch_results(self, external_ref) -> List[BatchItemOutput]:
        self.fetch_count += 1
        batch = self.batches[external_ref]
        if not batch["state"].endswith("SUCCEEDED"):
            raise BatchNotReadyError("not ready", external_state=batch["state"])
        return list(batch["outputs"] or [])

    def cancel_batch(self, external_ref) -> None:
        self.cancelled.append(external_ref)
        self.batches[external_ref]["state"] = "JOB_STATE_CANCELLED"


def png_bytes(width: int = 60, height: int = 40, color=(240, 240, 240)) -> bytes:
    buffered = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffered, format="PNG")
    return buffered.getvalue()


@pytest.fixture
def config():
    """Library config tuned for tests: no request pacing."""
    return LibraryConfig(pipeline=PipelineSettings(requests_per_minute=None, retry_delay_base=1.0))


@pytest.fixture
def library(tmp_path, config):
    return Library(storage_root=tmp_path / "library", config=config)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def add_pages(library, tmp_path):
    """Create pages 1..count for a book.

    Unless real_images is set, the image file holds the label
    "{book}-p{n}", which FakeGateway uses as the OCR key.
    """
    photos = tmp_path / "photos"
    photos.mkdir(exist_ok=True)

    def make(book_id: str, count: int, ocr: bool = False, translated: bool = False,
             real_images: bool = False) -> List[Page]:
        pages = []
        for n in range(1, count + 1):
            label = f"{book_id}-p{n}"
            photo = photos / f"{label}.png"
            photo.write_bytes(png_bytes() if real_images else label.encode())
            page = Page(id=f"{book_id}-{n:03d}", book_id=book_id, page_number=n, photo=photo.as_uri())
            if ocr or translated:
                page.ocr = OcrResult(data=f"ocr {n}", language="Latin", model="seed")
            if translated:
                page.translation = TranslationResult(
                    data=f"translation {n}", language="English", source_language="Latin", model="seed"
                )
            pages.append(library.pages.put(page))
        return pages

    return make
