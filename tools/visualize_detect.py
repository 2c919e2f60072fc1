#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, os
import logging
import cv2
import numpy as np

from receiptscan.core.config import load_cfg, merge_cfg
from receiptscan.core.log import setup_logging
from receiptscan.core.pipeline import finalize_capture
from receiptscan.geometry.binarize import binarize_frame
from receiptscan.geometry.detect import detect
from receiptscan.io.ingest import decode_image
from receiptscan.ocr.result import parse_ocr_response

log = logging.getLogger("visualize_detect")


def draw_quad(img, quad_px, color, thickness=2):
    q = np.round(quad_px).astype(np.int32).reshape(4, 2)
    cv2.polylines(img, [q], True, color, thickness, lineType=cv2.LINE_AA)
    cv2.circle(img, tuple(int(v) for v in q[0]), 8, color, -1, lineType=cv2.LINE_AA)  # TL marker


def main():
    ap = argparse.ArgumentParser(description="Run receipt detection on a photo, visualize, and rectify.")
    ap.add_argument("image", help="Path to input photo (EXIF orientation is honored).")
    ap.add_argument("--config", help="YAML config overriding detector defaults.")
    ap.add_argument("--ocr_json", help="OCR response JSON (corners 0-1000, rotation_needed) to apply.")
    ap.add_argument("--out_dir", default="tests/output", help="Directory for outputs.")
    ap.add_argument("--debug", action="store_true", help="Verbose detector logging and mask dump.")
    ap.add_argument("--threshold", type=int, default=None, help="Override the binarization cutoff.")
    args = ap.parse_args()

    setup_logging(debug=args.debug, log_dir=args.out_dir, prefix="detect")

    with open(args.image, "rb") as f:
        img = decode_image(f.read())

    overrides = {"debug": args.debug}
    if args.threshold is not None:
        overrides["binarize"] = {"threshold": args.threshold}
    cfg = load_cfg(args.config, overrides) if args.config else merge_cfg(overrides)

    os.makedirs(args.out_dir, exist_ok=True)
    base = os.path.splitext(os.path.basename(args.image))[0]

    if args.debug:
        mask = binarize_frame(img, cfg)
        if mask is not None:
            cv2.imwrite(os.path.join(args.out_dir, f"{base}_mask.png"), mask)

    found = detect(img, cfg)
    H, W = img.shape[:2]
    vis = img.copy()
    if found.quad is not None:
        draw_quad(vis, found.quad.to_pixels(W, H).pts, (0, 255, 0), 3)
        log.info("Detection: area%%=%.2f quad=%s", found.area_pct, np.round(found.quad.pts, 4).tolist())
    else:
        log.info("No receipt detected.")
        cv2.putText(vis, "NO DETECTION", (20, 40),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2, cv2.LINE_AA)

    ocr = None
    if args.ocr_json:
        with open(args.ocr_json, "r", encoding="utf-8") as f:
            ocr = parse_ocr_response(json.load(f), cfg["ocr"]["min_rotation_confidence"])
        if ocr.corners is not None:
            draw_quad(vis, ocr.corners.to_pixels(W, H).pts, (255, 128, 0), 2)

    out_viz = os.path.join(args.out_dir, f"{base}_viz.png")
    cv2.imwrite(out_viz, vis)
    log.info("Saved visualization → %s", out_viz)

    res = finalize_capture(img, found.quad, ocr=ocr, cfg=cfg)
    out_rect = os.path.join(args.out_dir, f"{base}_rect.jpg")
    with open(out_rect, "wb") as f:
        f.write(res.jpeg)
    log.info("Saved rectified (%s, rectified=%s, rotation=%d) → %s",
             res.quad_source, res.rectified, res.rotation, out_rect)


if __name__ == "__main__":
    main()
