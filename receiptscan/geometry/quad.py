# receiptscan/geometry/quad.py
from __future__ import annotations
from typing import Dict, Optional
import logging
import math
import cv2
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import Quad, SPACE_UNIT

log = logging.getLogger(__name__)


def order_corners_clockwise(pts: np.ndarray) -> np.ndarray:
    """
    Return TL, TR, BR, BL given 4 unordered points (any space).

    Sorts by angle around the centroid (image axes, y down, so increasing
    angle runs clockwise on screen), then rotates the cycle so the point with
    the smallest x + y comes first.
    """
    p = np.asarray(pts, np.float32).reshape(4, 2)
    c = p.mean(axis=0)
    ang = np.arctan2(p[:, 1] - c[1], p[:, 0] - c[0])
    p = p[np.argsort(ang, kind="stable")]
    start = int(np.argmin(p.sum(axis=1)))
    return np.roll(p, -start, axis=0).astype(np.float32)


def rect_corners(rect) -> np.ndarray:
    """Corners of a cv2.minAreaRect ((cx, cy), (w, h), angle_deg), unordered, pixel space."""
    (cx, cy), (w, h), angle = rect
    t = math.radians(float(angle))
    rot = np.array([[math.cos(t), -math.sin(t)],
                    [math.sin(t),  math.cos(t)]], np.float32)
    hw, hh = 0.5 * float(w), 0.5 * float(h)
    local = np.array([[-hw, -hh], [hw, -hh], [hw, hh], [-hw, hh]], np.float32)
    return (local @ rot.T + np.array([cx, cy], np.float32)).astype(np.float32)


def fit_quad_px(contour: np.ndarray, cfg: Optional[Dict] = None) -> np.ndarray:
    """
    Reduce a contour to 4 ordered pixel-space corners.

    Works on the convex hull so shadow/lighting dents are ignored. When the
    2%-of-perimeter polygon approximation is not a quadrilateral, fall back to
    the hull's min-area rectangle; corners are less precise but a quad is
    always produced.
    """
    cfg = merge_cfg(cfg)
    hull = cv2.convexHull(np.asarray(contour).reshape(-1, 1, 2))
    peri = cv2.arcLength(hull, True)
    approx = cv2.approxPolyDP(hull, float(cfg["quad"]["approx_epsilon"]) * peri, True)
    if len(approx) == 4:
        pts = approx.reshape(4, 2).astype(np.float32)
        how = "approx"
    else:
        pts = rect_corners(cv2.minAreaRect(hull))
        how = f"minAreaRect ({len(approx)} vertices)"
    if cfg.get("debug"):
        log.debug("[quad] fitted via %s", how)
    return order_corners_clockwise(pts)


def fit_quad(contour: np.ndarray, frame_w: int, frame_h: int, cfg: Optional[Dict] = None) -> Quad:
    """Like fit_quad_px, but normalized to [0, 1] by the frame size."""
    pts = fit_quad_px(contour, cfg)
    unit = pts / np.array([frame_w, frame_h], np.float32)
    return Quad(unit, SPACE_UNIT)


def quad_edge_lengths(pts: np.ndarray):
    """(top, right, bottom, left) edge lengths of an ordered quad."""
    tl, tr, br, bl = np.asarray(pts, np.float32).reshape(4, 2)
    def d(a, b) -> float: return math.hypot(float(a[0] - b[0]), float(a[1] - b[1]))
    return d(tl, tr), d(tr, br), d(br, bl), d(bl, tl)
