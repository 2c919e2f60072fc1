"""
Pytest for single-frame receipt detection (binarize → contour → quad).
These tests generate synthetic images on the fly, so no test assets are required.
"""
from __future__ import annotations

import numpy as np
import cv2
import pytest

from receiptscan.core.contracts import Quad, SPACE_UNIT
from receiptscan.geometry.binarize import binarize_frame
from receiptscan.geometry.contours import extract_best_contour, find_candidates
from receiptscan.geometry.detect import detect, detect_quad
from receiptscan.geometry.quad import fit_quad, order_corners_clockwise, rect_corners

# ---------- Utilities to build synthetic scenes ---------- #

def _receipt_corners(cx: float, cy: float, w: float, h: float, angle: float) -> np.ndarray:
    """Pixel corners TL, TR, BR, BL of a w×h receipt rotated by `angle` degrees."""
    return order_corners_clockwise(rect_corners(((cx, cy), (w, h), angle)))

def _make_scene(frame_w: int = 640, frame_h: int = 480, corners: np.ndarray = None,
                bg: int = 30, fg: int = 230) -> np.ndarray:
    """Dark 'table' with one bright receipt polygon (BGR)."""
    frame = np.full((frame_h, frame_w, 3), bg, np.uint8)
    if corners is not None:
        cv2.fillConvexPoly(frame, np.round(corners).astype(np.int32), (fg, fg, fg))
    return frame

def _add_clutter(frame: np.ndarray, seed: int = 3) -> np.ndarray:
    """Fine high-frequency texture the heavy blur should wipe out."""
    rng = np.random.default_rng(seed)
    noise = rng.integers(0, 60, frame.shape[:2], dtype=np.uint8)
    out = frame.astype(np.int16)
    out += noise[:, :, None]
    return np.clip(out, 0, 255).astype(np.uint8)

def _rect_mask(frame_w: int, frame_h: int, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
    mask = np.zeros((frame_h, frame_w), np.uint8)
    cv2.rectangle(mask, (x0, y0), (x1, y1), 255, -1)
    return mask

# ---------- Corner ordering ---------- #

def test_order_corners_clockwise_basic():
    pts = np.array([[100, 50], [400, 60], [420, 500], [90, 480]], dtype=np.float32)
    np.random.default_rng(0).shuffle(pts)
    ordered = order_corners_clockwise(pts)
    s = ordered.sum(axis=1)
    assert np.argmin(s) == 0  # TL
    assert np.argmax(s) == 2  # BR
    assert ordered[1][0] > ordered[3][0]  # TR right of BL

def test_order_corners_is_idempotent_on_random_convex_quads():
    rng = np.random.default_rng(7)
    for _ in range(200):
        cx, cy = rng.uniform(200, 800, size=2)
        w, h = rng.uniform(50, 300, size=2)
        angle = rng.uniform(-60, 60)
        pts = rect_corners(((cx, cy), (w, h), angle))
        pts = pts + rng.uniform(-0.15, 0.15, size=(4, 2)).astype(np.float32) * np.array([w, h], np.float32)
        rng.shuffle(pts)
        once = order_corners_clockwise(pts)
        twice = order_corners_clockwise(once)
        assert np.array_equal(once, twice)
        sums = pts.sum(axis=1)
        assert once[0].sum() == pytest.approx(float(sums.min()))

def test_order_corners_is_clockwise_on_screen():
    ordered = order_corners_clockwise(np.array([[0, 10], [10, 0], [0, 0], [10, 10]], np.float32))
    assert ordered.tolist() == [[0, 0], [10, 0], [10, 10], [0, 10]]

def test_rect_corners_match_opencv_box_points():
    rect = ((320.0, 240.0), (180.0, 420.0), 17.5)
    mine = rect_corners(rect)
    ref = cv2.boxPoints(rect).astype(np.float32)
    key = lambda p: p[np.lexsort((p[:, 1], p[:, 0]))]
    assert np.allclose(key(mine), key(ref), atol=1e-3)

# ---------- Binarizer ---------- #

def test_binarize_marks_receipt_and_clears_background():
    corners = _receipt_corners(320, 250, 160, 380, 0)
    frame = _add_clutter(_make_scene(corners=corners))
    mask = binarize_frame(frame)
    assert mask is not None
    assert mask.shape == frame.shape[:2]
    assert mask.dtype == np.uint8
    assert set(np.unique(mask)).issubset({0, 255})
    assert mask[250, 320] == 255      # receipt body
    assert mask[20, 20] == 0          # background
    assert mask[250, 600] == 0

@pytest.mark.parametrize("frame", [
    None,
    np.zeros((0, 0, 3), np.uint8),
    np.zeros((0, 640), np.uint8),
    np.zeros((4, 4, 4, 4), np.uint8),
    "not an image",
])
def test_binarize_unusable_frames_return_none(frame):
    assert binarize_frame(frame) is None

def test_binarize_accepts_rgba_and_gray():
    corners = _receipt_corners(320, 250, 160, 380, 0)
    bgr = _make_scene(corners=corners)
    rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    m_rgba = binarize_frame(rgba, {"binarize": {"color_order": "rgb"}})
    m_gray = binarize_frame(gray)
    assert m_rgba is not None and m_gray is not None
    assert m_rgba[250, 320] == 255 and m_gray[250, 320] == 255

def test_binarize_threshold_is_fixed_not_adaptive():
    # uniform mid-gray just under the cutoff: adaptive would split it, fixed keeps it background
    frame = np.full((240, 320, 3), 110, np.uint8)
    mask = binarize_frame(frame)
    assert mask is not None and not mask.any()

# ---------- Contour extractor ---------- #

def test_extractor_selects_centered_receipt_on_synthetic_mask():
    # 1000×800 frame; 548×219 → ~15% area, aspect 2.5, centered
    W, H = 1000, 800
    x0, y0, x1, y1 = 226, 290, 773, 509
    mask = _rect_mask(W, H, x0, y0, x1, y1)
    # distractors: near-square blob, and a strip hugging the top
    cv2.rectangle(mask, (40, 600), (140, 700), 255, -1)
    cv2.rectangle(mask, (300, 10), (700, 50), 255, -1)

    best = extract_best_contour(mask)
    assert best is not None
    assert 14.0 < best.area_pct < 16.0
    assert best.aspect == pytest.approx(2.5, rel=0.05) or best.aspect == pytest.approx(0.4, rel=0.05)

    quad = fit_quad(best.contour, W, H)
    assert quad.space == SPACE_UNIT
    truth = np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], np.float32) / np.array([W, H], np.float32)
    assert np.abs(quad.pts - truth).max() <= 0.02

def test_extractor_rejects_square_blobs():
    mask = _rect_mask(640, 480, 220, 140, 420, 340)
    assert extract_best_contour(mask) is None

def test_extractor_rejects_area_extremes():
    tiny = _rect_mask(640, 480, 300, 200, 310, 204)          # < 0.1%
    assert extract_best_contour(tiny) is None
    full = np.full((480, 640), 255, np.uint8)                # > 80%
    assert extract_best_contour(full) is None

def test_extractor_rejects_top_strip_and_border_contours():
    top = _rect_mask(640, 480, 200, 5, 440, 40)              # center y < 10% of H
    assert extract_best_contour(top) is None
    left = _rect_mask(640, 480, 0, 100, 10, 400)             # center x < 2% of W
    assert extract_best_contour(left) is None

def test_extractor_picks_largest_survivor():
    mask = _rect_mask(640, 480, 60, 100, 160, 400)           # 100×300
    cv2.rectangle(mask, (300, 100), (500, 400), 255, -1)     # 200×300, bigger
    kept = find_candidates(mask)
    assert len(kept) == 2
    best = extract_best_contour(mask)
    (cx, _), _, _ = best.rect
    assert cx > 300

def test_extractor_breaks_area_ties_by_discovery_order():
    mask = _rect_mask(640, 480, 100, 150, 199, 349)          # 100×200
    cv2.rectangle(mask, (400, 150), (499, 349), 255, -1)     # same size, other side
    kept = find_candidates(mask)
    assert len(kept) == 2
    assert kept[0].area_pct == kept[1].area_pct
    assert kept[0].rect[0] != kept[1].rect[0]
    best = extract_best_contour(mask)
    assert best.rect[0] == kept[0].rect[0]
    assert np.array_equal(best.contour, kept[0].contour)

def test_extractor_handles_empty_mask():
    assert extract_best_contour(np.zeros((480, 640), np.uint8)) is None
    assert extract_best_contour(None) is None

# ---------- Quad fitter ---------- #

def test_fit_quad_falls_back_to_min_area_rect_for_non_quads():
    # elongated hexagon: 6 vertices survive the 2% approximation
    hexagon = np.array([[320, 70], [400, 160], [400, 340], [320, 430], [240, 340], [240, 160]], np.int32)
    mask = np.zeros((480, 640), np.uint8)
    cv2.fillConvexPoly(mask, hexagon, 255)
    best = extract_best_contour(mask)
    assert best is not None
    quad = fit_quad(best.contour, 640, 480)
    assert quad.pts.shape == (4, 2)
    expected = np.array([[240, 70], [400, 70], [400, 430], [240, 430]], np.float32) / np.array([640, 480], np.float32)
    assert np.abs(quad.pts - expected).max() <= 0.01

# ---------- Full frame ---------- #

def test_detect_finds_tilted_receipt_on_cluttered_background():
    truth = _receipt_corners(320, 250, 160, 380, 10)
    frame = _add_clutter(_make_scene(corners=truth))
    found = detect(frame)
    assert isinstance(found.quad, Quad)
    assert (found.width, found.height) == (640, 480)
    expected = truth / np.array([640, 480], np.float32)
    assert np.abs(found.quad.pts - expected).max() <= 0.03

def test_detect_downscales_large_frames_and_keeps_normalized_quad():
    truth = _receipt_corners(960, 560, 420, 900, -8)
    frame = _make_scene(1920, 1080, corners=truth)
    found = detect(frame, {"detect_max_side": 960})
    assert (found.width, found.height) == (960, 540)
    expected = truth / np.array([1920, 1080], np.float32)
    assert found.quad is not None
    assert np.abs(found.quad.pts - expected).max() <= 0.03

def test_detect_background_only_is_no_detection():
    assert detect_quad(_add_clutter(_make_scene())) is None
    assert detect_quad(np.zeros((0, 0, 3), np.uint8)) is None

def test_detect_survives_processing_faults(monkeypatch):
    import receiptscan.geometry.detect as det

    def boom(*a, **k):
        raise RuntimeError("synthetic failure")

    monkeypatch.setattr(det, "extract_best_contour", boom)
    truth = _receipt_corners(320, 250, 160, 380, 0)
    found = det.detect(_make_scene(corners=truth))
    assert found.quad is None
    assert (found.width, found.height) == (640, 480)
