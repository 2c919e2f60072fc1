"""
Core contracts and simple data types shared across stages.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple
import numpy as np

if TYPE_CHECKING:
    from receiptscan.ocr.result import OcrResult

# Coordinate spaces a Quad can live in.
SPACE_UNIT = "unit"        # normalized to [0, 1]
SPACE_MILLE = "mille"      # normalized to [0, 1000] (OCR collaborator)
SPACE_PIXEL = "pixel"

_SPACE_SCALE = {SPACE_UNIT: 1.0, SPACE_MILLE: 1000.0}


@dataclass
class Quad:
    """
    Four receipt corners ordered clockwise:
    [top-left, top-right, bottom-right, bottom-left].

    pts: np.ndarray with shape (4, 2), dtype float32
    space: one of "unit", "mille", "pixel"
    """
    pts: np.ndarray
    space: str = SPACE_UNIT

    def __post_init__(self) -> None:
        self.pts = np.asarray(self.pts, dtype=np.float32).reshape(4, 2)

    def as_tuple(self) -> Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float], Tuple[float, float]]:
        return tuple(map(tuple, self.pts.astype(float)))  # type: ignore[return-value]

    def centroid(self) -> np.ndarray:
        return self.pts.mean(axis=0)

    def to_pixels(self, width: int, height: int) -> "Quad":
        """Return a pixel-space copy for a width×height raster."""
        if self.space == SPACE_PIXEL:
            return Quad(self.pts.copy(), SPACE_PIXEL)
        scale = _SPACE_SCALE[self.space]
        q = self.pts / scale * np.array([width, height], dtype=np.float32)
        return Quad(q, SPACE_PIXEL)

    def to_unit(self, width: Optional[int] = None, height: Optional[int] = None) -> "Quad":
        """Return a copy normalized to [0, 1]. Pixel quads need the raster size."""
        if self.space == SPACE_PIXEL:
            if not width or not height:
                raise ValueError("pixel quad needs width/height to normalize")
            return Quad(self.pts / np.array([width, height], dtype=np.float32), SPACE_UNIT)
        return Quad(self.pts / _SPACE_SCALE[self.space], SPACE_UNIT)


class CaptureState(str, Enum):
    SEARCHING = "searching"
    ARMED = "armed"
    FIRED = "fired"


# Detection-state event names consumed by UI overlays.
EVENT_QUAD_DETECTED = "quad_detected"
EVENT_STABILITY_ACHIEVED = "stability_achieved"
EVENT_AUTO_CAPTURE_FIRED = "auto_capture_fired"


@dataclass
class StabilityState:
    consecutive_stable_frames: int = 0
    stable_since: Optional[float] = None
    consecutive_failures: int = 0

    def reset(self) -> None:
        self.consecutive_stable_frames = 0
        self.stable_since = None
        self.consecutive_failures = 0


@dataclass
class CaptureSnapshot:
    """Frame copy and unit-space quad taken at the moment auto-capture fired."""
    image: np.ndarray
    quad: Quad
    timestamp_ms: float


@dataclass
class DetectionEvent:
    """What one call to DetectorSession.on_frame() produced."""
    quad: Optional[Quad] = None
    stable: bool = False
    state: CaptureState = CaptureState.SEARCHING
    events: Tuple[str, ...] = ()
    snapshot: Optional[CaptureSnapshot] = None


@dataclass
class RectifiedImage:
    """
    Output of the perspective rectifier.

    rectified is False when the rectifier failed open and `image` is the
    untouched source.
    """
    image: np.ndarray
    width: int
    height: int
    quad_px: Optional[Quad] = None
    rectified: bool = True


@dataclass
class CaptureResult:
    image: np.ndarray
    jpeg: bytes
    quad: Optional[Quad]
    rotation: int = 0
    rectified: bool = False
    quad_source: str = "live"
    ocr: Optional["OcrResult"] = None
    meta: dict = field(default_factory=dict)
