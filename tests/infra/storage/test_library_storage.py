"""
Library storage tests: page partitions, collections and image references.
"""

from unittest.mock import Mock

import pytest
import requests
from PIL import Image

from infra.pipeline.storage import ImageFetchError, ImageStore, Library
from pipeline.schemas import Page


class TestPageStore:
    def test_pages_partitioned_by_book(self, library):
        library.pages.put(Page(id="a1", book_id="alpha", page_number=1, photo="/x.png"))
        library.pages.put(Page(id="b1", book_id="beta", page_number=1, photo="/y.png"))

        assert (library.storage_root / "db" / "pages" / "alpha" / "a1.json").exists()
        assert library.pages.list_books() == ["alpha", "beta"]
        assert [p.id for p in library.pages.list_book("alpha")] == ["a1"]

    def test_list_book_in_page_order(self, library):
        for page_id, number in (("c", 3), ("a", 1), ("half", 1.5), ("b", 2)):
            library.pages.put(Page(id=page_id, book_id="book", page_number=number, photo="/p.png"))

        assert [p.id for p in library.pages.list_book("book")] == ["a", "half", "b", "c"]

    def test_get_many_skips_missing(self, library):
        library.pages.put(Page(id="p2", book_id="book", page_number=2, photo="/p.png"))
        library.pages.put(Page(id="p1", book_id="book", page_number=1, photo="/p.png"))

        pages = library.pages.get_many("book", ["p2", "ghost", "p1"])
        assert [p.id for p in pages] == ["p1", "p2"]

    def test_invalid_book_id(self, library):
        with pytest.raises(ValueError):
            library.pages.book("../other")


class TestLibraryLayout:
    def test_collections_under_db(self, library):
        db = library.storage_root / "db"
        assert library.jobs.collection.directory == db / "jobs"
        assert library.batches.collection.directory == db / "batch_jobs"
        assert library.archive.directory == db / "batch_jobs_archive"
        assert library.snapshots.collection.directory == db / "page_snapshots"
        assert library.images.root == library.storage_root / "blobs"

    def test_config_loaded_lazily_from_root(self, tmp_path):
        (tmp_path / "config.yaml").write_text("defaults:\n  language: Greek\n")
        library = Library(storage_root=tmp_path)
        assert library.config.defaults.language == "Greek"


class TestImageStore:
    def test_put_returns_file_uri(self, tmp_path):
        store = ImageStore(tmp_path / "blobs")
        ref = store.put("crops/book/p1.jpg", b"data")

        assert ref.startswith("file://")
        assert store.exists(ref)
        assert store.read(ref) == b"data"

    def test_plain_paths(self, tmp_path):
        path = tmp_path / "scan.png"
        Image.new("RGB", (10, 5)).save(path)
        store = ImageStore(tmp_path / "blobs")

        assert store.exists(str(path))
        assert store.open(str(path)).size == (10, 5)

    def test_missing_file(self, tmp_path):
        store = ImageStore(tmp_path / "blobs")
        ref = (tmp_path / "missing.png").as_uri()

        assert not store.exists(ref)
        assert not store.exists(None)
        with pytest.raises(ImageFetchError):
            store.read(ref)

    def test_unreadable_image(self, tmp_path):
        path = tmp_path / "junk.png"
        path.write_bytes(b"not an image")
        with pytest.raises(ImageFetchError, match="not a readable image"):
            ImageStore(tmp_path).open(str(path))

    def test_blob_key_cannot_escape_root(self, tmp_path):
        with pytest.raises(ValueError):
            ImageStore(tmp_path / "blobs").put("../outside.jpg", b"x")

    def test_http_retries_server_errors(self, tmp_path, monkeypatch):
        monkeypatch.setattr("infra.pipeline.storage.image_store.time.sleep", lambda s: None)
        session = Mock()
        session.get.side_effect = [
            Mock(status_code=503, ok=False),
            requests.exceptions.ConnectionError("reset"),
            Mock(status_code=200, ok=True, content=b"jpeg"),
        ]
        store = ImageStore(tmp_path, session=session, max_retries=3)

        assert store.read("https://example.org/page.jpg") == b"jpeg"
        assert session.get.call_count == 3

    def test_http_client_error_not_retried(self, tmp_path):
        session = Mock()
        session.get.return_value = Mock(status_code=404, ok=False)
        store = ImageStore(tmp_path, session=session)

        with pytest.raises(ImageFetchError) as exc:
            store.read("https://example.org/missing.jpg")
        assert exc.value.transient is False
        assert session.get.call_count == 1

    def test_remote_refs_assumed_present(self, tmp_path):
        assert ImageStore(tmp_path).exists("https://example.org/page.jpg")
