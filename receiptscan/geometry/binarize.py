# receiptscan/geometry/binarize.py
from __future__ import annotations
from typing import Dict, Optional
import logging
import cv2
import numpy as np

from receiptscan.core.config import merge_cfg

log = logging.getLogger(__name__)


def _odd(k: int) -> int:
    k = max(1, int(k))
    return k if k % 2 == 1 else k + 1


def to_gray(frame: np.ndarray, color_order: str = "bgr") -> np.ndarray:
    """Grayscale from a gray, BGR/RGB or BGRA/RGBA raster."""
    if frame.ndim == 2:
        return frame
    channels = frame.shape[2]
    if channels == 1:
        return frame[:, :, 0]
    rgb = color_order.lower() == "rgb"
    if channels == 3:
        return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY if rgb else cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(frame, cv2.COLOR_RGBA2GRAY if rgb else cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"unsupported channel count: {channels}")


def binarize_frame(frame: Optional[np.ndarray], cfg: Optional[Dict] = None) -> Optional[np.ndarray]:
    """
    Turn one raw frame into a binary mask of bright, document-like regions.

    Pipeline: gray → median → heavy Gaussian → fixed threshold → open → dilate×N.
    The threshold is fixed on purpose; adaptive thresholding lights up every
    edge of a cluttered background.

    Returns a uint8 mask (same H×W as the frame, 255 = candidate surface), or
    None when the frame is unusable (missing, empty, bad shape). Never raises.
    """
    if frame is None or not isinstance(frame, np.ndarray):
        return None
    if frame.ndim not in (2, 3) or frame.shape[0] == 0 or frame.shape[1] == 0:
        return None

    cfg = merge_cfg(cfg)
    b = cfg["binarize"]
    try:
        gray = to_gray(frame, b["color_order"])
        if gray.dtype != np.uint8:
            gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

        gray = cv2.medianBlur(gray, _odd(b["median_ksize"]))
        k = _odd(b["blur_ksize"])
        gray = cv2.GaussianBlur(gray, (k, k), 0)
        _, mask = cv2.threshold(gray, float(b["threshold"]), 255, cv2.THRESH_BINARY)

        ko = int(b["open_ksize"])
        mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, np.ones((ko, ko), np.uint8))
        kd = int(b["dilate_ksize"])
        mask = cv2.dilate(mask, np.ones((kd, kd), np.uint8), iterations=int(b["dilate_iterations"]))
    except (cv2.error, ValueError) as e:
        log.warning("[binarize] frame %s skipped: %s", frame.shape, e)
        return None

    if cfg.get("debug"):
        log.debug("[binarize] %dx%d fg=%.3f", mask.shape[1], mask.shape[0],
                  float(np.count_nonzero(mask)) / mask.size)
    return mask
