import threading
from pathlib import Path
from typing import Optional, Dict, List

from infra.config import get_storage_root, LibraryConfig, LibraryConfigManager
from infra.pipeline.logger import PipelineLogger, job_logger, component_logger
from infra.pipeline.storage.document_store import (
    DocumentCollection,
    DocumentNotFoundError,
    ModelStore,
)
from infra.pipeline.storage.image_store import ImageStore
from pipeline.schemas import Page, Job, BatchSubmission, PageSnapshot


class PageStore:
    """Pages partitioned by book: db/pages/{book_id}/{page_id}.json"""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._books: Dict[str, ModelStore[Page]] = {}
        self._lock = threading.Lock()

    def book(self, book_id: str) -> ModelStore[Page]:
        with self._lock:
            if book_id not in self._books:
                collection = DocumentCollection(self.root / book_id, name=f"pages/{book_id}")
                # Validate the book id the same way document ids are
                collection.path_for(book_id)
                self._books[book_id] = ModelStore(collection, Page)
            return self._books[book_id]

    def get(self, book_id: str, page_id: str) -> Page:
        return self.book(book_id).get(page_id)

    def find(self, book_id: str, page_id: str) -> Optional[Page]:
        return self.book(book_id).find(page_id)

    def put(self, page: Page) -> Page:
        return self.book(page.book_id).put(page)

    def update(self, book_id: str, page_id: str, fn) -> Page:
        return self.book(book_id).update(page_id, fn)

    def delete(self, book_id: str, page_id: str) -> bool:
        return self.book(book_id).delete(page_id)

    def list_book(self, book_id: str) -> List[Page]:
        """All pages of a book in ascending page number order."""
        pages = self.book(book_id).list()
        return sorted(pages, key=lambda p: (p.page_number, p.created_at, p.id))

    def get_many(self, book_id: str, page_ids: List[str]) -> List[Page]:
        """Existing pages among page_ids, in ascending page number order."""
        store = self.book(book_id)
        pages = [p for p in (store.find(pid) for pid in page_ids) if p is not None]
        return sorted(pages, key=lambda p: (p.page_number, p.created_at, p.id))

    def list_books(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(d.name for d in self.root.iterdir() if d.is_dir())


class Library:
    """All persisted state under one storage root.

    {root}/config.yaml
    {root}/db/{pages,jobs,batch_jobs,batch_jobs_archive,page_snapshots}/
    {root}/blobs/
    {root}/logs/
    """
    def __init__(self, storage_root: Optional[Path] = None, config: Optional[LibraryConfig] = None):
        self.storage_root = Path(storage_root or get_storage_root()).expanduser()
        self._config = config

        db = self.storage_root / "db"
        self.pages = PageStore(db / "pages")
        self.jobs: ModelStore[Job] = ModelStore(DocumentCollection(db / "jobs"), Job)
        self.batches: ModelStore[BatchSubmission] = ModelStore(
            DocumentCollection(db / "batch_jobs"), BatchSubmission
        )
        self.archive = DocumentCollection(db / "batch_jobs_archive")
        self.snapshots: ModelStore[PageSnapshot] = ModelStore(
            DocumentCollection(db / "page_snapshots"), PageSnapshot
        )
        self.images = ImageStore(self.storage_root / "blobs")

    @property
    def config(self) -> LibraryConfig:
        if self._config is None:
            self._config = LibraryConfigManager(self.storage_root).load()
        return self._config

    @property
    def logs_dir(self) -> Path:
        return self.storage_root / "logs"

    def job_logger(self, job_id: str) -> PipelineLogger:
        return job_logger(self.storage_root, job_id)

    def component_logger(self, component: str) -> PipelineLogger:
        return component_logger(self.storage_root, component)


__all__ = ["Library", "PageStore", "DocumentNotFoundError"]
