"""
Builds keyed batch requests from pages.

Pages that cannot be built (image unreachable, no OCR text to translate,
page gone) are returned separately with a reason and never submitted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from infra.config import PipelineSettings
from infra.llm import BatchRequest, compose_ocr_prompt, compose_translation_prompt
from infra.llm.openrouter.images import image_to_jpeg
from infra.pipeline.storage import Library, ImageFetchError
from pipeline.prompts import get_prompt, trailing_context
from pipeline.schemas import BatchSubmission, Page
from pipeline.split import materialize_crop, needs_crop


@dataclass
class BuiltBatch:
    requests: List[BatchRequest] = field(default_factory=list)
    excluded: Dict[str, str] = field(default_factory=dict)


class BatchRequestBuilder:
    def __init__(self, library: Library, settings: Optional[PipelineSettings] = None, prompt_name: Optional[str] = None):
        self.library = library
        self.settings = settings or library.config.pipeline
        self.prompt_name = prompt_name

    def build(self, submission: BatchSubmission) -> BuiltBatch:
        if submission.type == "ocr":
            return self._build(submission, self._ocr_request)
        if submission.type == "translate":
            return self._build(submission, self._translation_request)
        raise ValueError(f"Unknown batch type: {submission.type}")

    def _build(self, submission: BatchSubmission, make_request) -> BuiltBatch:
        built = BuiltBatch()
        book_pages = self.library.pages.list_book(submission.book_id)
        by_id = {p.id: p for p in book_pages}
        previous = {}
        for before, page in zip([None] + book_pages[:-1], book_pages):
            previous[page.id] = before

        for page_id in submission.page_ids:
            page = by_id.get(page_id)
            if page is None:
                built.excluded[page_id] = "page not found"
                continue
            try:
                built.requests.append(make_request(submission, page, previous.get(page_id)))
            except (ImageFetchError, ValueError) as e:
                built.excluded[page_id] = str(e)

        return built

    def _ocr_request(self, submission: BatchSubmission, page: Page, previous: Optional[Page]) -> BatchRequest:
        if not page.photo:
            raise ValueError("page has no image")
        if needs_crop(page, self.library):
            page = materialize_crop(page, self.library, self.settings)

        raw = self.library.images.read(page.ocr_image)
        try:
            image = image_to_jpeg(raw, self.settings.batch_image_max_width, self.settings.batch_image_quality)
        except OSError as e:
            raise ValueError(f"unreadable image: {e}")

        prompt = compose_ocr_prompt(get_prompt("ocr", self.prompt_name), submission.language)
        return BatchRequest(key=page.id, prompt=prompt, image=image)

    def _translation_request(self, submission: BatchSubmission, page: Page, previous: Optional[Page]) -> BatchRequest:
        if not page.ocr_text.strip():
            raise ValueError("no OCR text to translate")

        context = None
        if previous is not None:
            context = trailing_context(
                previous.translation_text or previous.ocr_text,
                self.settings.context_chars
            )

        prompt = compose_translation_prompt(
            get_prompt("translation", self.prompt_name),
            page.ocr_text,
            page.ocr.language or submission.language,
            submission.target_language or "English",
            context,
        )
        return BatchRequest(key=page.id, prompt=prompt)
