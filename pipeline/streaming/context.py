import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from pipeline.prompts import trailing_context


@dataclass(frozen=True)
class PageContext:
    """A finished page as seen by the pages after it.

    complete is False when only the OCR stage succeeded; such a page still
    feeds OCR continuity but not translation continuity.
    """
    page_number: Union[int, float]
    ocr_text: str = ""
    translation_text: str = ""
    complete: bool = True

    def ocr_context(self, max_chars: int) -> Optional[str]:
        return trailing_context(self.ocr_text, max_chars)

    def translation_context(self, max_chars: int) -> Optional[str]:
        # Falls back to the OCR text when the page was never translated
        return trailing_context(self.translation_text or self.ocr_text, max_chars)


class ContextTracker:
    """Finished pages of a job, looked up by page order.

    Only pages that have finished feed the tracker, so a page never sees
    context from a sibling that is still in flight, and a lookup only ever
    considers pages numbered below the one asking.
    """
    def __init__(self, seed: Iterable[PageContext] = ()):
        self._lock = threading.Lock()
        self._finished: List[PageContext] = sorted(seed, key=lambda c: c.page_number)

    def observe(self, context: PageContext):
        with self._lock:
            self._finished.append(context)
            self._finished.sort(key=lambda c: c.page_number)

    def context_for(self, page_number: Union[int, float]) -> Optional[PageContext]:
        with self._lock:
            before = [c for c in self._finished if c.page_number < page_number]

        ocr_source = next((c for c in reversed(before) if c.ocr_text), None)
        translation_source = next((c for c in reversed(before) if c.complete), None)
        if ocr_source is None and translation_source is None:
            return None

        translated = ""
        if translation_source is not None:
            translated = translation_source.translation_text or translation_source.ocr_text
        return PageContext(
            page_number=(ocr_source or translation_source).page_number,
            ocr_text=ocr_source.ocr_text if ocr_source else "",
            translation_text=translated,
        )
