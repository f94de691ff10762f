from .request_builder import BatchRequestBuilder, BuiltBatch
from .controller import BatchController, BATCH_TYPES

__all__ = [
    "BatchRequestBuilder",
    "BuiltBatch",
    "BatchController",
    "BATCH_TYPES",
]
