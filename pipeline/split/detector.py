"""
Gutter detection for two-page spreads.

The image is normalized to a fixed analysis width and converted to
grayscale. Per-column brightness statistics are taken over the full
height; the gutter is the darkest column of the smoothed mean profile
inside the center band. A second pass looks for the sharp falling and
rising edges of a binding shadow in the raw profile and lowers confidence
when the two methods disagree.

Positions are on a 0-1000 scale across the image width.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from infra.config import SplitSettings


CONFIDENCE_LEVELS = ("low", "medium", "high")

# Gutter depth (fraction of full brightness) thresholds
HIGH_DEPTH = 0.15
MEDIUM_DEPTH = 0.05
MIN_SPREAD_DEPTH = 0.02

# Smoothed values within this many gray levels of the minimum form its plateau
PLATEAU_TOLERANCE = 0.5

# Edges weaker than this (gray levels per column) are ignored
MIN_EDGE_STRENGTH = 2.0


@dataclass
class GutterDetection:
    is_two_page_spread: bool
    position: int
    position_percent: float
    confidence: str
    method_agreement: bool
    depth: float
    aspect_ratio: float
    edge_position: Optional[int] = None
    profile: Dict[str, List[float]] = field(default_factory=dict)

    def to_dict(self, include_profile: bool = True) -> Dict:
        data = asdict(self)
        if not include_profile:
            data.pop("profile")
        return data


def moving_average(values: np.ndarray, radius: int) -> np.ndarray:
    """Symmetric moving average, edge-padded so output length matches input."""
    if radius <= 0:
        return values.astype(float)
    window = 2 * radius + 1
    padded = np.pad(values.astype(float), radius, mode="edge")
    kernel = np.ones(window) / window
    return np.convolve(padded, kernel, mode="valid")


def column_statistics(image: Image.Image, analysis_width: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Per-column mean, minimum and 10th percentile brightness."""
    width, height = image.size
    target_height = max(1, round(height * analysis_width / width))
    gray = image.convert("L").resize((analysis_width, target_height), Image.BILINEAR)
    pixels = np.asarray(gray, dtype=float)

    return (
        pixels.mean(axis=0),
        pixels.min(axis=0),
        np.percentile(pixels, 10, axis=0),
    )


def _plateau_center(band: np.ndarray) -> int:
    """Centre of the contiguous run of minimal values containing argmin."""
    idx = int(np.argmin(band))
    floor = band[idx] + PLATEAU_TOLERANCE

    start = idx
    while start > 0 and band[start - 1] <= floor:
        start -= 1
    end = idx
    while end < len(band) - 1 and band[end + 1] <= floor:
        end += 1

    return (start + end) // 2


def _edge_candidate(mean: np.ndarray, lo: int, hi: int) -> Optional[float]:
    """Midpoint between the strongest falling edge and the strongest rising
    edge after it, in column units. None when the band has no clear edges."""
    diff = np.diff(mean)
    band = diff[lo:hi]
    if band.size < 2:
        return None

    fall = int(np.argmin(band))
    if band[fall] > -MIN_EDGE_STRENGTH:
        return None

    after = band[fall + 1:]
    if after.size == 0:
        return None
    rise = fall + 1 + int(np.argmax(after))
    if band[rise] < MIN_EDGE_STRENGTH:
        return None

    # diff[i] sits between columns i and i+1
    return lo + (fall + rise + 1) / 2


def _confidence_from_depth(depth: float) -> str:
    if depth >= HIGH_DEPTH:
        return "high"
    if depth >= MEDIUM_DEPTH:
        return "medium"
    return "low"


def _lower(confidence: str) -> str:
    index = CONFIDENCE_LEVELS.index(confidence)
    return CONFIDENCE_LEVELS[max(0, index - 1)]


def detect_gutter(image: Image.Image, settings: Optional[SplitSettings] = None) -> GutterDetection:
    settings = settings or SplitSettings()
    width, height = image.size
    aspect_ratio = width / height if height else 0.0

    if aspect_ratio < settings.min_aspect_ratio:
        return GutterDetection(
            is_two_page_spread=False,
            position=500,
            position_percent=50.0,
            confidence="high",
            method_agreement=True,
            depth=0.0,
            aspect_ratio=round(aspect_ratio, 4),
        )

    analysis_width = settings.analysis_width
    mean, minimum, p10 = column_statistics(image, analysis_width)
    smoothed = moving_average(mean, settings.smoothing_radius)

    lo = int(analysis_width * settings.band_start)
    hi = int(analysis_width * settings.band_end)
    band = smoothed[lo:hi + 1]

    candidate = lo + _plateau_center(band)
    gutter_value = float(smoothed[candidate])
    depth = max(0.0, (float(np.median(band)) - gutter_value) / 255.0)

    scale = 1000.0 / analysis_width
    position = int(round(candidate * scale))
    confidence = _confidence_from_depth(depth)

    edge = _edge_candidate(mean, lo, hi)
    edge_position = int(round(edge * scale)) if edge is not None else None
    method_agreement = edge_position is not None and abs(edge_position - position) <= settings.edge_tolerance
    if edge_position is not None and not method_agreement:
        confidence = _lower(confidence)

    return GutterDetection(
        is_two_page_spread=depth >= MIN_SPREAD_DEPTH,
        position=position,
        position_percent=round(position / 10.0, 1),
        confidence=confidence,
        method_agreement=method_agreement,
        depth=round(depth, 4),
        aspect_ratio=round(aspect_ratio, 4),
        edge_position=edge_position,
        profile={
            "mean": [round(float(v), 2) for v in mean],
            "min": [round(float(v), 2) for v in minimum],
            "p10": [round(float(v), 2) for v in p10],
            "smoothed": [round(float(v), 2) for v in smoothed],
        },
    )
