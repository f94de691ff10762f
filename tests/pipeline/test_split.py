"""
Gutter detection, split execution and revert.
"""

import numpy as np
import pytest
from PIL import Image

from infra.config import SplitSettings
from pipeline.schemas import Page
from pipeline.split import (
    apply_splits,
    check_book_for_splits,
    detect_gutter,
    moving_average,
    revert_splits,
    split_windows,
)


def spread_image(width=2000, height=1000, band=(980, 1020), value=0):
    pixels = np.full((height, width), 255, dtype=np.uint8)
    if band:
        pixels[:, band[0]:band[1]] = value
    return Image.fromarray(pixels, mode="L").convert("RGB")


class TestGutterDetection:
    def test_dark_center_band(self):
        detection = detect_gutter(spread_image())

        assert detection.is_two_page_spread
        assert abs(detection.position - 500) <= 20
        assert detection.position_percent == pytest.approx(detection.position / 10.0)
        assert detection.confidence == "high"
        assert detection.method_agreement
        assert detection.aspect_ratio == 2.0

    def test_off_center_gutter(self):
        detection = detect_gutter(spread_image(band=(1180, 1200)))
        assert abs(detection.position - 595) <= 20

    def test_narrow_image_is_single_page(self):
        detection = detect_gutter(spread_image(width=800, band=(390, 410)))

        assert not detection.is_two_page_spread
        assert detection.position == 500
        assert detection.profile == {}

    def test_blank_image_is_not_a_spread(self):
        detection = detect_gutter(spread_image(band=None))
        assert not detection.is_two_page_spread
        assert detection.depth == 0.0

    def test_faint_gutter_lowers_confidence(self):
        detection = detect_gutter(spread_image(value=230))
        assert detection.is_two_page_spread
        assert detection.confidence in ("low", "medium")

    def test_profile_covers_analysis_width(self):
        detection = detect_gutter(spread_image(), SplitSettings(analysis_width=500))
        assert len(detection.profile["mean"]) == 500
        assert set(detection.to_dict(include_profile=False)) == set(detection.to_dict()) - {"profile"}

    def test_moving_average_keeps_length(self):
        values = np.array([0, 0, 10, 0, 0], dtype=float)
        smoothed = moving_average(values, 1)
        assert len(smoothed) == 5
        assert smoothed[2] == pytest.approx(10 / 3)


class TestSplitWindows:
    def test_overlap_on_both_sides(self):
        left, right = split_windows(500, 10)
        assert (left.x_start, left.x_end) == (0, 510)
        assert (right.x_start, right.x_end) == (490, 1000)

    def test_clamped_to_scale(self):
        left, right = split_windows(995, 10)
        assert left.x_end == 1000
        left, right = split_windows(5, 10)
        assert right.x_start == 0


class TestApplySplits:
    def test_split_inserts_sibling_and_renumbers(self, library, add_pages):
        add_pages("book", 3)

        result = apply_splits(library, [{"page_id": "book-002", "split_position": 480}], book_id="book")

        assert result == {"split_count": 1, "total_pages": 4, "skipped": []}
        pages = library.pages.list_book("book")
        assert [p.page_number for p in pages] == [1, 2, 3, 4]
        assert [p.id for p in pages][:2] == ["book-001", "book-002"]

        original, sibling = pages[1], pages[2]
        assert (original.crop.x_start, original.crop.x_end) == (0, 490)
        assert (sibling.crop.x_start, sibling.crop.x_end) == (470, 1000)
        assert sibling.split_from == "book-002"
        assert sibling.photo == original.photo_original == original.photo
        assert pages[3].id == "book-003"

    def test_camel_case_input(self, library, add_pages):
        add_pages("book", 1)
        result = apply_splits(library, [{"pageId": "book-001", "splitPosition": 500}])
        assert result["split_count"] == 1

    def test_skips(self, library, add_pages):
        add_pages("book", 2)
        apply_splits(library, [{"page_id": "book-001", "split_position": 500}], book_id="book")
        sibling = next(p for p in library.pages.list_book("book") if p.split_from)

        result = apply_splits(library, [
            {"page_id": "book-001", "split_position": 500},
            {"page_id": sibling.id, "split_position": 500},
            {"page_id": "ghost", "split_position": 500},
            {"page_id": "book-002", "split_position": 1500},
        ], book_id="book")

        assert result["split_count"] == 0
        assert [s["reason"] for s in result["skipped"]] == [
            "already split", "already split", "not found", "invalid split position 1500"
        ]

    def test_bad_positions_skipped_without_breaking_numbering(self, library, add_pages):
        add_pages("book", 3)

        result = apply_splits(library, [
            {"page_id": "book-001", "split_position": 500},
            {"page_id": "book-002", "split_position": 1000},
            {"page_id": "book-003", "splitPosition": "middle"},
        ], book_id="book", settings=SplitSettings(overlap=0))

        assert result["split_count"] == 1
        assert [s["page_id"] for s in result["skipped"]] == ["book-002", "book-003"]
        assert all(s["reason"].startswith("invalid split position") for s in result["skipped"])
        assert [p.page_number for p in library.pages.list_book("book")] == [1, 2, 3, 4]
        assert library.pages.get("book", "book-002").crop is None

    def test_failure_midway_still_renumbers(self, library, add_pages, monkeypatch):
        import pipeline.split.splitter as splitter
        add_pages("book", 3)
        ids = iter(["sibling-1"])

        def next_id():
            try:
                return next(ids)
            except StopIteration:
                raise RuntimeError("id service down")

        monkeypatch.setattr(splitter, "new_id", next_id)

        with pytest.raises(RuntimeError):
            apply_splits(library, [
                {"page_id": "book-001", "split_position": 500},
                {"page_id": "book-002", "split_position": 500},
            ], book_id="book")

        assert [p.page_number for p in library.pages.list_book("book")] == [1, 2, 3, 4]

    def test_split_clears_stale_crop(self, library, add_pages):
        add_pages("book", 1)
        library.pages.update("book", "book-001", lambda p: setattr(p, "cropped_photo", "file:///old.jpg"))

        apply_splits(library, [{"page_id": "book-001", "split_position": 500}])

        assert library.pages.get("book", "book-001").cropped_photo is None


class TestRevertSplits:
    def test_revert_restores_book(self, library, add_pages):
        add_pages("book", 3)
        apply_splits(library, [
            {"page_id": "book-001", "split_position": 500},
            {"page_id": "book-003", "split_position": 520},
        ], book_id="book")
        assert len(library.pages.list_book("book")) == 5

        result = revert_splits(library, ["book-001", "book-003"])

        assert result == {"deleted": 2, "reverted": 2, "total_pages": 3}
        pages = library.pages.list_book("book")
        assert [p.id for p in pages] == ["book-001", "book-002", "book-003"]
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert all(p.crop is None for p in pages)


class TestCheckBook:
    def test_reports_spread_candidates(self, library, tmp_path):
        spread = tmp_path / "spread.png"
        spread_image().save(spread)
        single = tmp_path / "single.png"
        spread_image(width=700, band=None).save(single)

        library.pages.put(Page(id="s1", book_id="book", page_number=1, photo=spread.as_uri()))
        library.pages.put(Page(id="s2", book_id="book", page_number=2, photo=single.as_uri()))
        library.pages.put(Page(id="s3", book_id="book", page_number=3, photo=(tmp_path / "nope.png").as_uri()))

        report = check_book_for_splits(library, "book")

        assert report["checked"] == 3
        assert report["needs_splitting"]
        assert [c["page_id"] for c in report["candidates"]] == ["s1"]
        assert "profile" not in report["candidates"][0]
        assert [e["page_id"] for e in report["errors"]] == ["s3"]
