# receiptscan/tracking/autocapture.py
from __future__ import annotations
from typing import Dict, Optional
import logging

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import CaptureState

log = logging.getLogger(__name__)


class AutoCaptureController:
    """
    SEARCHING → ARMED → FIRED.

    Stability must hold continuously for `dwell_ms` while ARMED before the
    capture fires, so one lucky stable window is not enough. FIRED is
    reported once; the controller then stays FIRED until reset().
    Timestamps are milliseconds from any monotonic clock.
    """

    def __init__(self, cfg: Optional[Dict] = None):
        cfg = merge_cfg(cfg)
        self.dwell_ms = float(cfg["capture"]["dwell_ms"])
        self.state = CaptureState.SEARCHING
        self.armed_at: Optional[float] = None

    def reset(self) -> None:
        self.state = CaptureState.SEARCHING
        self.armed_at = None

    def update(self, stable: bool, now_ms: float) -> bool:
        """Advance on one frame. Returns True only on the frame that fires."""
        if self.state is CaptureState.FIRED:
            return False

        if self.state is CaptureState.SEARCHING:
            if stable:
                self.state = CaptureState.ARMED
                self.armed_at = now_ms
                log.info("[capture] armed")
            return False

        # ARMED
        if not stable:
            log.info("[capture] stability lost; searching")
            self.reset()
            return False
        if now_ms - self.armed_at >= self.dwell_ms:
            self.state = CaptureState.FIRED
            log.info("[capture] fired after %.0f ms", now_ms - self.armed_at)
            return True
        return False
