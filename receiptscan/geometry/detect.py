# receiptscan/geometry/detect.py
"""
Single-frame receipt detection: binarize → best contour → quad.

This is the per-frame body of the detection loop. Faults inside any stage are
caught here, at the frame boundary, and reported as "no detection" so one bad
frame never stalls a session.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional
import logging
import cv2
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import Quad
from receiptscan.geometry.binarize import binarize_frame
from receiptscan.geometry.contours import extract_best_contour
from receiptscan.geometry.quad import fit_quad

log = logging.getLogger(__name__)


@dataclass
class FrameDetection:
    quad: Optional[Quad]   # unit space, None = no detection
    width: int             # size of the raster detection actually ran on
    height: int
    area_pct: float = 0.0


def frame_ready(frame) -> bool:
    """False for frames a source reports before it is ready (None, 0×0)."""
    return (isinstance(frame, np.ndarray) and frame.ndim in (2, 3)
            and frame.shape[0] > 0 and frame.shape[1] > 0)


def downscale_for_detection(frame: np.ndarray, max_side: Optional[int]) -> np.ndarray:
    H, W = frame.shape[:2]
    if not max_side or max(H, W) <= max_side:
        return frame
    s = float(max_side) / float(max(H, W))
    size = (max(1, int(round(W * s))), max(1, int(round(H * s))))
    return cv2.resize(frame, size, interpolation=cv2.INTER_AREA)


def detect(frame: Optional[np.ndarray], cfg: Optional[Dict] = None) -> FrameDetection:
    """
    Run one detection pass. The quad is normalized to [0, 1], so it applies
    to the full-resolution frame even though detection ran on a downscaled copy.
    """
    if not frame_ready(frame):
        return FrameDetection(None, 0, 0)
    cfg = merge_cfg(cfg)
    try:
        small = downscale_for_detection(frame, cfg.get("detect_max_side"))
        H, W = small.shape[:2]
        mask = binarize_frame(small, cfg)
        best = extract_best_contour(mask, cfg)
        if best is None:
            return FrameDetection(None, W, H)
        quad = fit_quad(best.contour, W, H, cfg)
        if not np.isfinite(quad.pts).all():
            log.warning("[detect] non-finite quad dropped")
            return FrameDetection(None, W, H)
        if cfg.get("debug"):
            log.debug("[detect] quad=%s area%%=%.2f", np.round(quad.pts, 3).tolist(), best.area_pct)
        return FrameDetection(quad, W, H, best.area_pct)
    except Exception:
        log.warning("[detect] processing fault; frame treated as no detection", exc_info=True)
        h, w = frame.shape[:2]
        return FrameDetection(None, w, h)


def detect_quad(frame: Optional[np.ndarray], cfg: Optional[Dict] = None) -> Optional[Quad]:
    """Unit-space quad for one frame, or None."""
    return detect(frame, cfg).quad

