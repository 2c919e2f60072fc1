#!/usr/bin/env python3
"""
Live auto-capture from a webcam (or a video file): runs a DetectorSession on
every frame, draws the current quad, and writes each captured receipt to
--out_dir. Press 'r' to start a new session after a capture, 'q' to quit.
"""
from __future__ import annotations
import argparse, os
import logging
from datetime import datetime
import cv2
import numpy as np

from receiptscan.core.config import load_cfg, merge_cfg
from receiptscan.core.contracts import CaptureState, EVENT_AUTO_CAPTURE_FIRED, EVENT_STABILITY_ACHIEVED
from receiptscan.core.log import setup_logging
from receiptscan.core.pipeline import finalize_snapshot
from receiptscan.io.camera import CameraSource
from receiptscan.ocr.client import HttpOcrClient
from receiptscan.session import DetectorSession

log = logging.getLogger("run_camera")

_COLORS = {
    CaptureState.SEARCHING: (0, 165, 255),
    CaptureState.ARMED: (0, 255, 0),
    CaptureState.FIRED: (255, 0, 0),
}


def _source(s: str):
    return int(s) if s.isdigit() else s


def main():
    ap = argparse.ArgumentParser(description="Auto-capture receipts from a camera feed.")
    ap.add_argument("--source", default="0", help="Camera index or video path/URL.")
    ap.add_argument("--config", help="YAML config overriding detector defaults.")
    ap.add_argument("--ocr_url", help="OCR endpoint; when set, captures are sent there for corners/rotation.")
    ap.add_argument("--out_dir", default="Output", help="Where captured receipts are written.")
    ap.add_argument("--no_window", action="store_true", help="Headless: no preview window.")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    setup_logging(debug=args.debug, log_dir=args.out_dir, prefix="camera")
    cfg = load_cfg(args.config, {"debug": args.debug}) if args.config else merge_cfg({"debug": args.debug})
    os.makedirs(args.out_dir, exist_ok=True)

    ocr_client = None
    if args.ocr_url:
        ocr_client = HttpOcrClient(args.ocr_url, timeout=cfg["ocr"]["timeout_s"],
                                   min_rotation_confidence=cfg["ocr"]["min_rotation_confidence"])

    session = DetectorSession(cfg)
    session.start()
    try:
        with CameraSource(_source(args.source)) as cam:
            while True:
                frame = cam.next_frame()
                if frame is None:
                    break
                ev = session.on_frame(frame)
                if EVENT_STABILITY_ACHIEVED in ev.events:
                    log.info("stable")
                if EVENT_AUTO_CAPTURE_FIRED in ev.events:
                    res = finalize_snapshot(ev.snapshot, ocr_client=ocr_client, cfg=cfg)
                    path = os.path.join(args.out_dir, f"receipt_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.jpg")
                    with open(path, "wb") as f:
                        f.write(res.jpeg)
                    log.info("captured → %s (quad=%s, rotation=%d)", path, res.quad_source, res.rotation)
                    if args.no_window:
                        session.start()

                if args.no_window:
                    continue
                vis = frame.copy()
                if ev.quad is not None:
                    H, W = frame.shape[:2]
                    q = np.round(ev.quad.to_pixels(W, H).pts).astype(np.int32)
                    cv2.polylines(vis, [q], True, _COLORS[ev.state], 3, cv2.LINE_AA)
                label = ev.state.value if session.active else "captured - press r"
                cv2.putText(vis, label, (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (255, 255, 255), 2, cv2.LINE_AA)
                cv2.imshow("receiptscan", vis)
                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    break
                if key == ord("r"):
                    session.start()
    finally:
        session.dispose()
        if not args.no_window:
            cv2.destroyAllWindows()


if __name__ == "__main__":
    main()
