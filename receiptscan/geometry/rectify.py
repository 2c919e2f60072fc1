# receiptscan/geometry/rectify.py
from __future__ import annotations
from typing import Dict, Optional, Tuple
import logging
import cv2
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import Quad, RectifiedImage, SPACE_PIXEL
from receiptscan.geometry.quad import order_corners_clockwise, quad_edge_lengths

log = logging.getLogger(__name__)

_MIN_EDGE_PX = 1.0
_MIN_TRIANGLE_AREA_PX = 1.0


def measure_quad(pts_px: np.ndarray) -> Tuple[float, float]:
    """Return (avg_width, avg_height) of an ordered pixel quad."""
    top, right, bottom, left = quad_edge_lengths(pts_px)
    return 0.5 * (top + bottom), 0.5 * (left + right)


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def compute_target_size(
    avg_width: float,
    avg_height: float,
    *,
    min_side: int = 800,
    max_side: int = 2000,
) -> Tuple[int, int]:
    """
    Pick output (W, H) for a document measured at avg_width × avg_height px.

    The longer (dominant) axis keeps its measured length clamped to
    [min_side, max_side]; the other axis follows the aspect (H/W). If the
    derived axis falls below min_side it is raised to min_side and the
    dominant axis re-derived (capped at max_side); above max_side it is
    capped. Both sides always end up in [min_side, max_side]; the aspect is
    exact whenever max_side/min_side allows it.
    """
    if avg_width <= 0 or avg_height <= 0:
        raise ValueError(f"degenerate document size {avg_width:.2f}x{avg_height:.2f}")
    aspect = float(avg_height) / float(avg_width)
    portrait = aspect >= 1.0
    long_len = avg_height if portrait else avg_width
    ratio = aspect if portrait else 1.0 / aspect   # long / short, >= 1

    primary = _clamp(long_len, min_side, max_side)
    secondary = primary / ratio
    if secondary < min_side:
        secondary = float(min_side)
        primary = _clamp(secondary * ratio, min_side, max_side)
    elif secondary > max_side:
        secondary = float(max_side)

    p = int(round(primary))
    s = int(round(_clamp(secondary, min_side, max_side)))
    return (s, p) if portrait else (p, s)


def _check_corners(q: np.ndarray) -> None:
    """Raise ValueError for corner sets that cannot define a homography."""
    if not np.isfinite(q).all():
        raise ValueError("non-finite corners")
    for edge in quad_edge_lengths(q):
        if edge < _MIN_EDGE_PX:
            raise ValueError(f"coincident corners (edge {edge:.3f}px)")
    # any three collinear corners make the projective system singular
    for i in range(4):
        a, b, c = q[i], q[(i + 1) % 4], q[(i + 2) % 4]
        area2 = abs(float((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])))
        if 0.5 * area2 < _MIN_TRIANGLE_AREA_PX:
            raise ValueError(f"collinear corners around index {(i + 1) % 4}")


def _homography(src: np.ndarray, dst_w: int, dst_h: int) -> np.ndarray:
    dst = np.array([[0, 0],
                    [dst_w, 0],
                    [dst_w, dst_h],
                    [0, dst_h]], dtype=np.float32)
    Hmat = cv2.getPerspectiveTransform(src.astype(np.float32), dst)
    if not np.isfinite(Hmat).all() or abs(float(np.linalg.det(Hmat))) < 1e-12:
        raise np.linalg.LinAlgError("singular homography")
    return Hmat


def _warp(image: np.ndarray, Hmat: np.ndarray, size: Tuple[int, int], border_value) -> np.ndarray:
    border = border_value
    if image.ndim == 3 and np.isscalar(border_value):
        border = (border_value,) * image.shape[2]
    try:
        return cv2.warpPerspective(image, Hmat, size, flags=cv2.INTER_CUBIC,
                                   borderMode=cv2.BORDER_CONSTANT, borderValue=border)
    except cv2.error as e:
        log.info("[rectify] bicubic warp failed (%s); retrying bilinear", e)
        return cv2.warpPerspective(image, Hmat, size, flags=cv2.INTER_LINEAR,
                                   borderMode=cv2.BORDER_CONSTANT, borderValue=border)


def rectify(
    image: np.ndarray,
    corners,
    *,
    scale: float = 1.0,
    cfg: Optional[Dict] = None,
) -> RectifiedImage:
    """
    Perspective-flatten the receipt bounded by `corners`.

    Args:
        image: full-resolution source raster (BGR or gray). Not modified.
        corners: 4×2 points normalized to [0, scale] (scale 1 for detector
                 quads, 1000 for OCR corners), or a Quad (its own space wins).
                 Any order; re-sorted here.
        scale: normalization scale of raw `corners`.

    Returns:
        RectifiedImage. On any fault the source image is returned as-is with
        rectified=False (fail open).
    """
    cfg = merge_cfg(cfg)
    r = cfg["rectify"]
    try:
        H, W = image.shape[:2]
        if isinstance(corners, Quad):
            q_px = corners.to_pixels(W, H).pts
        else:
            pts = np.asarray(corners, np.float32).reshape(4, 2)
            q_px = pts / float(scale) * np.array([W, H], np.float32)
        q_px = order_corners_clockwise(q_px)
        _check_corners(q_px)

        avg_w, avg_h = measure_quad(q_px)
        dst_w, dst_h = compute_target_size(avg_w, avg_h,
                                           min_side=int(r["min_side"]), max_side=int(r["max_side"]))
        Hmat = _homography(q_px, dst_w, dst_h)
        out = _warp(image, Hmat, (dst_w, dst_h), r["border_value"])
        if cfg.get("debug"):
            log.debug("[rectify] measured %.0fx%.0f -> %dx%d", avg_w, avg_h, dst_w, dst_h)
        return RectifiedImage(out, dst_w, dst_h, Quad(q_px, SPACE_PIXEL), True)
    except Exception as e:
        log.warning("[rectify] failed open, returning original image: %s", e)
        log.debug("[rectify] traceback", exc_info=True)
        h, w = image.shape[:2] if isinstance(image, np.ndarray) and image.ndim >= 2 else (0, 0)
        return RectifiedImage(image, w, h, None, False)
