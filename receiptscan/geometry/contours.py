# receiptscan/geometry/contours.py
"""
Pick the receipt blob out of a binary mask using cheap geometric features
(area share, rotated-rect aspect, position). No learned model: this has to
keep up with 30-60 Hz.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import cv2
import numpy as np

from receiptscan.core.config import merge_cfg

log = logging.getLogger(__name__)


@dataclass
class ContourCandidate:
    contour: np.ndarray
    area_pct: float
    rect: tuple          # cv2.minAreaRect: ((cx, cy), (w, h), angle), pixel space
    aspect: float        # rect w / h


def describe_contour(cnt: np.ndarray, frame_area: float) -> ContourCandidate:
    area = abs(cv2.contourArea(cnt))
    rect = cv2.minAreaRect(cnt)
    (_, _), (rw, rh), _ = rect
    aspect = float(rw) / float(rh) if rh > 1e-6 else 0.0
    area_pct = 100.0 * area / frame_area if frame_area > 0 else 0.0
    return ContourCandidate(contour=cnt, area_pct=area_pct, rect=rect, aspect=aspect)


def _reject_reason(c: ContourCandidate, W: int, H: int, cfg: Dict) -> Optional[str]:
    cc = cfg["contours"]
    if not (cc["min_area_pct"] <= c.area_pct <= cc["max_area_pct"]):
        return f"area%={c.area_pct:.2f}"
    lo, hi = cc["square_aspect_range"]
    if lo <= c.aspect <= hi:
        return f"square aspect={c.aspect:.2f}"
    (cx, cy), _, _ = c.rect
    if cy < cc["top_strip_ratio"] * H:
        return f"top strip cy={cy:.0f}"
    mx = cc["edge_margin_ratio"] * W
    my = cc["edge_margin_ratio"] * H
    if cx < mx or cx > W - mx or cy < my or cy > H - my:
        return f"touches border c=({cx:.0f},{cy:.0f})"
    return None


def find_candidates(mask: np.ndarray, cfg: Optional[Dict] = None) -> List[ContourCandidate]:
    """All external contours that pass the filters, in discovery order."""
    cfg = merge_cfg(cfg)
    H, W = mask.shape[:2]
    frame_area = float(H * W)
    cnts, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    kept: List[ContourCandidate] = []
    for cnt in cnts:
        if len(cnt) < 3:
            continue
        cand = describe_contour(cnt, frame_area)
        reason = _reject_reason(cand, W, H, cfg)
        if reason is not None:
            if cfg.get("debug"):
                log.debug("[contours] skip: %s", reason)
            continue
        kept.append(cand)
    return kept


def extract_best_contour(mask: Optional[np.ndarray], cfg: Optional[Dict] = None) -> Optional[ContourCandidate]:
    """
    Return the surviving external contour with the largest area share, or None.
    Ties go to the first contour found.
    """
    if mask is None or mask.size == 0:
        return None
    cfg = merge_cfg(cfg)
    best: Optional[ContourCandidate] = None
    for cand in find_candidates(mask, cfg):
        if best is None or cand.area_pct > best.area_pct:
            best = cand
    if best is not None and cfg.get("debug"):
        log.debug("[contours] best area%%=%.2f aspect=%.2f", best.area_pct, best.aspect)
    return best
