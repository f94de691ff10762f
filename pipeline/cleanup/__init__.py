from .sweeper import CleanupSweeper, classify, ORPHAN, EXPIRED

__all__ = ["CleanupSweeper", "classify", "ORPHAN", "EXPIRED"]
