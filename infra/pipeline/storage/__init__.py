from infra.pipeline.storage.document_store import (
    DocumentCollection,
    DocumentNotFoundError,
    ModelStore,
)
from infra.pipeline.storage.image_store import ImageStore, ImageFetchError
from infra.pipeline.storage.library import Library, PageStore

__all__ = [
    "DocumentCollection",
    "DocumentNotFoundError",
    "ModelStore",
    "ImageStore",
    "ImageFetchError",
    "Library",
    "PageStore",
]
