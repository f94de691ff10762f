from infra.pipeline.logger import PipelineLogger, job_logger, component_logger
from infra.pipeline.storage import (
    DocumentCollection,
    DocumentNotFoundError,
    ModelStore,
    ImageStore,
    ImageFetchError,
    Library,
    PageStore,
)

__all__ = [
    "PipelineLogger",
    "job_logger",
    "component_logger",
    "DocumentCollection",
    "DocumentNotFoundError",
    "ModelStore",
    "ImageStore",
    "ImageFetchError",
    "Library",
    "PageStore",
]
