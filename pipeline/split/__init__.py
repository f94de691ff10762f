from .detector import GutterDetection, detect_gutter, moving_average, column_statistics
from .splitter import split_windows, apply_splits, revert_splits, renumber, check_book_for_splits
from .crop import materialize_crop, needs_crop, render_crop, crop_box

__all__ = [
    "GutterDetection",
    "detect_gutter",
    "moving_average",
    "column_statistics",
    "split_windows",
    "apply_splits",
    "revert_splits",
    "renumber",
    "check_book_for_splits",
    "materialize_crop",
    "needs_crop",
    "render_crop",
    "crop_box",
]
