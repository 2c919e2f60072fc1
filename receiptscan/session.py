# receiptscan/session.py
"""
DetectorSession: one camera/capture session's detection loop.

The host owns scheduling (render callback, timer, thread) and calls
on_frame() once per frame. All detection state lives on the session, so two
sessions (two camera views) never share anything.
"""
from __future__ import annotations
from typing import Callable, Dict, List, Optional
import logging
import time
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import (
    CaptureSnapshot,
    CaptureState,
    DetectionEvent,
    EVENT_AUTO_CAPTURE_FIRED,
    EVENT_QUAD_DETECTED,
    EVENT_STABILITY_ACHIEVED,
    Quad,
)
from receiptscan.geometry.detect import detect, frame_ready
from receiptscan.tracking.autocapture import AutoCaptureController
from receiptscan.tracking.stabilizer import TemporalStabilizer

log = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class DetectorSession:
    def __init__(self, cfg: Optional[Dict] = None, clock: Callable[[], float] = _monotonic_ms):
        self.cfg = merge_cfg(cfg)
        self.clock = clock
        self.stabilizer = TemporalStabilizer(self.cfg)
        self.controller = AutoCaptureController(self.cfg)
        self.active = False
        self.disposed = False
        self.frames_seen = 0

    # --- lifecycle ------------------------------------------------------ #

    def start(self) -> None:
        """Begin the loop. Calling it while already active does nothing."""
        if self.disposed:
            raise RuntimeError("session disposed")
        if self.active:
            return
        self.reset()
        self.active = True
        log.info("[session] started")

    def stop(self) -> None:
        """Cancel the loop and drop all in-flight detection state."""
        was_active = self.active
        self.active = False
        self.reset()
        if was_active:
            log.info("[session] stopped")

    def reset(self) -> None:
        self.stabilizer.reset()
        self.controller.reset()
        self.frames_seen = 0

    def dispose(self) -> None:
        self.stop()
        self.disposed = True

    @property
    def state(self) -> CaptureState:
        return self.controller.state

    # --- per frame ------------------------------------------------------ #

    def on_frame(self, frame: Optional[np.ndarray], now_ms: Optional[float] = None) -> DetectionEvent:
        """
        Process one frame synchronously and report what happened.

        Inactive sessions ignore frames. Frames that are not ready (None, 0×0)
        are skipped without touching detection state. When auto-capture fires
        the loop is stopped first, the frame is copied into the snapshot and
        the session is reset to SEARCHING.
        """
        if not self.active:
            return DetectionEvent(state=self.controller.state)
        if not frame_ready(frame):
            return DetectionEvent(quad=self.stabilizer.emitted, state=self.controller.state)

        now = self.clock() if now_ms is None else float(now_ms)
        self.frames_seen += 1

        found = detect(frame, self.cfg)
        out = self.stabilizer.update(found.quad, (found.width, found.height), now)
        fired = self.controller.update(out.stable, now)

        events: List[str] = []
        if found.quad is not None:
            events.append(EVENT_QUAD_DETECTED)
        if out.became_stable:
            events.append(EVENT_STABILITY_ACHIEVED)

        if not fired:
            return DetectionEvent(quad=out.quad, stable=out.stable,
                                  state=self.controller.state, events=tuple(events))

        # stop analysing before anything else touches the frame
        self.active = False
        snapshot = CaptureSnapshot(image=frame.copy(), quad=Quad(out.quad.pts.copy(), out.quad.space),
                                   timestamp_ms=now)
        events.append(EVENT_AUTO_CAPTURE_FIRED)
        log.info("[session] auto-capture fired at frame %d", self.frames_seen)
        self.reset()
        return DetectionEvent(quad=snapshot.quad, stable=True, state=CaptureState.FIRED,
                              events=tuple(events), snapshot=snapshot)
