"""
Split execution and revert.

Splitting keeps the original page as the left half and inserts a sibling
page for the right half, both carrying a crop window over the original
image with a small overlap so text crossing the gutter survives on both.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from infra.config import SplitSettings
from infra.pipeline.storage import Library, ImageFetchError
from pipeline.schemas import Page, CropWindow, new_id, utc_now_iso
from .detector import detect_gutter


def parse_position(value) -> float:
    """A split position on the 0-1000 scale; raises ValueError/TypeError otherwise."""
    if value is None or isinstance(value, bool):
        raise ValueError("missing")
    position = float(value)
    if not 0 <= position <= 1000:
        raise ValueError("outside 0-1000")
    return position


def split_windows(position: float, overlap: float) -> Tuple[CropWindow, CropWindow]:
    left = CropWindow(x_start=0, x_end=min(1000, position + overlap))
    right = CropWindow(x_start=max(0, position - overlap), x_end=1000)
    return left, right


def renumber(library: Library, book_id: str) -> int:
    """Assign page numbers 1..n in current page order. Returns n."""
    with library.pages.book(book_id).lock:
        pages = library.pages.list_book(book_id)
        for index, page in enumerate(pages, start=1):
            if page.page_number != index:
                page.page_number = index
                library.pages.put(page)
        return len(pages)


def apply_splits(
    library: Library,
    splits: List[Dict],
    book_id: Optional[str] = None,
    settings: Optional[SplitSettings] = None
) -> Dict:
    """Apply [{page_id, split_position}] splits.

    Pages that are already split (either half) or have no photo are skipped.
    All affected books are renumbered once at the end.
    """
    settings = settings or library.config.split

    by_id = {}
    for book in ([book_id] if book_id else library.pages.list_books()):
        for page in library.pages.list_book(book):
            by_id[page.id] = page

    split_count = 0
    skipped: List[Dict] = []
    books = set()
    already_split = {p.split_from for p in by_id.values() if p.split_from}
    total_pages = 0

    with library.component_logger("split") as log:
        try:
            for split in splits:
                page_id = split.get("page_id") or split.get("pageId")
                position = split.get("split_position", split.get("splitPosition"))
                page = by_id.get(page_id)

                if page is None:
                    skipped.append({"page_id": page_id, "reason": "not found"})
                    continue
                if not page.photo:
                    skipped.append({"page_id": page_id, "reason": "no photo"})
                    continue
                if page.split_from or page.id in already_split:
                    skipped.append({"page_id": page_id, "reason": "already split"})
                    continue
                try:
                    left, right = split_windows(parse_position(position), settings.overlap)
                except (TypeError, ValueError):
                    skipped.append({"page_id": page_id, "reason": f"invalid split position {position!r}"})
                    continue

                original = page.photo_original or page.photo
                now = utc_now_iso()

                page.crop = left
                page.photo_original = original
                page.cropped_photo = None
                page.updated_at = now
                library.pages.put(page)
                books.add(page.book_id)

                sibling = Page(
                    id=new_id(),
                    book_id=page.book_id,
                    page_number=page.page_number + 0.5,
                    photo=original,
                    photo_original=original,
                    crop=right,
                    split_from=page.id,
                    created_at=now,
                    updated_at=now,
                )
                library.pages.put(sibling)
                already_split.add(page.id)

                split_count += 1
                log.info(
                    f"Split page at {position}",
                    book_id=page.book_id,
                    page_id=page.id,
                    count=1,
                )
        finally:
            # Renumber even if a split failed midway
            for affected in books:
                total_pages += renumber(library, affected)

    return {"split_count": split_count, "total_pages": total_pages, "skipped": skipped}


def revert_splits(library: Library, page_ids: Iterable[str]) -> Dict:
    """Delete split siblings of the given pages and clear their crops."""
    page_ids = set(page_ids)
    deleted = 0
    reverted = 0
    books = set()

    for book_id in library.pages.list_books():
        for page in library.pages.list_book(book_id):
            if page.split_from and page.split_from in page_ids:
                library.pages.delete(book_id, page.id)
                deleted += 1
                books.add(book_id)
            elif page.id in page_ids and page.crop is not None:
                page.crop = None
                page.cropped_photo = None
                page.updated_at = utc_now_iso()
                library.pages.put(page)
                reverted += 1
                books.add(book_id)

    total_pages = 0
    with library.component_logger("split") as log:
        for book_id in books:
            total_pages += renumber(library, book_id)
            log.info("Reverted splits", book_id=book_id, count=deleted)

    return {"deleted": deleted, "reverted": reverted, "total_pages": total_pages}


def check_book_for_splits(library: Library, book_id: str, settings: Optional[SplitSettings] = None) -> Dict:
    """Run gutter detection on every page that is not already split or cropped."""
    settings = settings or library.config.split
    candidates = []
    errors = []
    checked = 0

    for page in library.pages.list_book(book_id):
        if page.split_from or page.crop is not None:
            continue
        checked += 1
        try:
            image = library.images.open(page.photo)
        except ImageFetchError as e:
            errors.append({"page_id": page.id, "error": str(e)})
            continue

        detection = detect_gutter(image, settings)
        if detection.is_two_page_spread:
            candidates.append({
                "page_id": page.id,
                "page_number": page.page_number,
                **detection.to_dict(include_profile=False),
            })

    return {
        "book_id": book_id,
        "checked": checked,
        "needs_splitting": bool(candidates),
        "candidates": candidates,
        "errors": errors,
    }
