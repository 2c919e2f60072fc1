# receiptscan/core/config.py
"""
Detector configuration: a nested dict of defaults, merged per section with
user overrides (inline dicts or a YAML file).
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional, Union
import copy
import yaml

# Defaults tuned for handheld phone/webcam frames of paper receipts
DEFAULT_CFG: Dict = {
    "binarize": {
        "color_order": "bgr",          # "bgr" (OpenCV) or "rgb" (browser/Pillow)
        "median_ksize": 5,             # speckle: blinds, brick patterns
        "blur_ksize": 21,              # erase fine background texture
        "threshold": 120,              # fixed cutoff; adaptive is counterproductive here
        "open_ksize": 5,               # sever filaments to background clutter
        "dilate_ksize": 5,
        "dilate_iterations": 2,        # fuse fragmented bright regions
    },
    "contours": {
        "min_area_pct": 0.1,           # % of frame area
        "max_area_pct": 80.0,          # near-full-frame detections are background
        "square_aspect_range": (0.9, 1.1),  # rejected: faces/heads are roughly square
        "top_strip_ratio": 0.10,       # rect center must be below the top 10%
        "edge_margin_ratio": 0.02,     # rect center must be 2% inside every edge
    },
    "quad": {
        "approx_epsilon": 0.02,        # fraction of hull perimeter
    },
    "stabilizer": {
        "quad_history": 5,
        "centroid_history": 10,
        "jump_ratio": 0.10,            # per-axis corner jump, fraction of frame
        "centroid_tolerance_px": 5.0,  # oldest→newest centroid drift
        "min_stable_frames": 10,       # ~1/3 s at 30 fps
        "max_failures": 10,            # dropped frames tolerated before reset
    },
    "capture": {
        "dwell_ms": 300,
    },
    "rectify": {
        "min_side": 800,
        "max_side": 2000,
        "border_value": 255,
        "jpeg_quality": 90,
    },
    "ocr": {
        "min_rotation_confidence": 0.5,
        "timeout_s": 30.0,
    },
    # frames with a longer side than this are downscaled before detection
    "detect_max_side": 960,
    "debug": False,
}


def _overlay(base: Dict, cfg: Optional[Dict]) -> Dict:
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = {**base[k], **v}
        else:
            base[k] = v
    return base


class MergedCfg(dict):
    """A config already layered over DEFAULT_CFG; merge_cfg hands it back as-is."""


def merge_cfg(cfg: Optional[Dict]) -> Dict:
    if isinstance(cfg, MergedCfg):
        return cfg
    return _overlay(MergedCfg(copy.deepcopy(DEFAULT_CFG)), cfg)


def load_cfg(path: Union[str, Path], overrides: Optional[Dict] = None) -> Dict:
    """
    Read a YAML config file and merge it over the defaults.
    Inline `overrides` win over the file.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(data).__name__}")
    return _overlay(merge_cfg(data), overrides)
