from .context import ContextTracker, PageContext
from .controller import StreamingController, ChunkResult, PageOutcome, PageFailure, STAGES
from .scheduler import JobScheduler

__all__ = [
    "ContextTracker",
    "PageContext",
    "StreamingController",
    "ChunkResult",
    "PageOutcome",
    "PageFailure",
    "STAGES",
    "JobScheduler",
]
