# receiptscan/tracking/stabilizer.py
"""
Temporal smoothing of per-frame quads.

Quads come in normalized to [0, 1]; centroids are kept in detection-frame
pixels because the stability tolerance is an absolute pixel distance while
the jump threshold is a fraction of the frame. Both are configuration and
should be calibrated per camera.
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Tuple
import logging
import math
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import Quad, StabilityState, SPACE_UNIT

log = logging.getLogger(__name__)


@dataclass
class StabilizerOutput:
    quad: Optional[Quad]          # unit space; None once detection is lost
    stable: bool
    became_stable: bool = False   # first stable frame since the last reset
    jump_rejected: bool = False   # raw quad replaced by the smoothed one


class TemporalStabilizer:
    def __init__(self, cfg: Optional[Dict] = None):
        cfg = merge_cfg(cfg)
        s = cfg["stabilizer"]
        self.debug = bool(cfg.get("debug"))
        self.jump_ratio = float(s["jump_ratio"])
        self.centroid_tolerance_px = float(s["centroid_tolerance_px"])
        self.min_stable_frames = int(s["min_stable_frames"])
        self.max_failures = int(s["max_failures"])
        self.quad_history: Deque[np.ndarray] = deque(maxlen=int(s["quad_history"]))
        self.centroid_history: Deque[np.ndarray] = deque(maxlen=int(s["centroid_history"]))
        self.state = StabilityState()
        self.emitted: Optional[Quad] = None

    # ------------------------------------------------------------------ #

    def reset(self) -> None:
        self.quad_history.clear()
        self.centroid_history.clear()
        self.state.reset()
        self.emitted = None

    def smoothed(self) -> Optional[np.ndarray]:
        """Position-wise mean of the buffered quads (unit space)."""
        if not self.quad_history:
            return None
        return np.mean(np.stack(list(self.quad_history)), axis=0).astype(np.float32)

    def is_jump(self, pts: np.ndarray) -> bool:
        """Any corner moved more than jump_ratio of the frame on either axis."""
        if self.emitted is None:
            return False
        delta = np.abs(pts - self.emitted.pts)
        return bool((delta > self.jump_ratio).any())

    def centroid_stable(self) -> bool:
        cap = self.centroid_history.maxlen
        if cap is None or len(self.centroid_history) < cap:
            return False
        oldest, newest = self.centroid_history[0], self.centroid_history[-1]
        return math.hypot(float(newest[0] - oldest[0]),
                          float(newest[1] - oldest[1])) <= self.centroid_tolerance_px

    # ------------------------------------------------------------------ #

    def update(self, quad: Optional[Quad], frame_size: Tuple[int, int],
               now_ms: Optional[float] = None) -> StabilizerOutput:
        """
        Feed one frame's detection.

        quad: unit-space quad, or None for "no detection this frame".
        frame_size: (W, H) in pixels of the frame the quad was detected on.
        """
        if quad is None:
            return self._on_miss()

        pts = quad.to_unit().pts if quad.space != SPACE_UNIT else quad.pts
        W, H = frame_size
        centroid_px = pts.mean(axis=0) * np.array([W, H], np.float32)

        self.quad_history.append(pts.copy())
        self.centroid_history.append(centroid_px)
        smoothed = self.smoothed()

        jump = self.is_jump(pts)
        accepted = smoothed if jump and smoothed is not None else pts
        if jump and self.debug:
            log.debug("[stabilizer] sudden jump; using smoothed quad")
        self.emitted = Quad(accepted, SPACE_UNIT)

        st = self.state
        st.consecutive_stable_frames += 1
        st.consecutive_failures = 0

        stable = self.centroid_stable() and st.consecutive_stable_frames >= self.min_stable_frames
        became = False
        if not stable:
            st.stable_since = None
        elif st.stable_since is None:
            st.stable_since = now_ms
            became = True
            log.info("[stabilizer] stable after %d frames", st.consecutive_stable_frames)
        return StabilizerOutput(self.emitted, stable, became, jump)

    def _on_miss(self) -> StabilizerOutput:
        st = self.state
        st.consecutive_failures += 1
        st.stable_since = None
        if st.consecutive_failures >= self.max_failures:
            if self.emitted is not None:
                log.info("[stabilizer] detection lost for %d frames; reset", st.consecutive_failures)
            self.reset()
            return StabilizerOutput(None, False)
        return StabilizerOutput(self.emitted, False)
