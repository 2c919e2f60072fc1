# receiptscan/core/pipeline.py
"""
What happens after a capture: pick the quad (OCR corners beat the live
detection unless they cannot be rectified), rectify, rotate upright, encode.
Every correction step fails open, so the caller always gets a usable image.
"""
from __future__ import annotations
from typing import Dict, Optional, Union
import logging
import numpy as np

from receiptscan.core.config import merge_cfg
from receiptscan.core.contracts import CaptureResult, CaptureSnapshot, Quad, RectifiedImage
from receiptscan.geometry.detect import detect
from receiptscan.geometry.orient import correct_orientation, normalize_hint
from receiptscan.geometry.rectify import rectify
from receiptscan.io.ingest import decode_image, encode_jpeg
from receiptscan.ocr.client import OcrClient, OcrError
from receiptscan.ocr.result import OcrResult

log = logging.getLogger(__name__)


def _ask_ocr(image: np.ndarray, client: OcrClient, quality: int) -> Optional[OcrResult]:
    try:
        return client.analyze(encode_jpeg(image, quality))
    except (OcrError, ValueError) as e:
        log.warning("[ocr] no OCR result, continuing without corrections: %s", e)
        return None


def finalize_capture(
    image: np.ndarray,
    live_quad: Optional[Quad],
    *,
    ocr: Optional[OcrResult] = None,
    ocr_client: Optional[OcrClient] = None,
    cfg: Optional[Dict] = None,
) -> CaptureResult:
    """
    Turn a captured full-resolution frame into the final receipt image.

    Args:
        image: the snapshot (BGR). Not modified.
        live_quad: quad from the detector (unit space) or None.
        ocr: an already-parsed OCR answer for this image, if the host has one.
        ocr_client: asked for an answer when `ocr` is None.

    Returns:
        CaptureResult with the oriented image, its JPEG bytes and the quad
        actually used (unit space), or quad=None if nothing was rectified.
    """
    cfg = merge_cfg(cfg)
    quality = int(cfg["rectify"]["jpeg_quality"])
    H, W = image.shape[:2]

    if ocr is None and ocr_client is not None:
        ocr = _ask_ocr(image, ocr_client, quality)

    quad, source = live_quad, "live"
    if ocr is not None and ocr.corners is not None:
        quad, source = ocr.corners, "ocr"
    if quad is None:
        source = "none"

    if quad is not None:
        rect = rectify(image, quad, cfg=cfg)
    else:
        rect = RectifiedImage(image, W, H, None, False)
    if source == "ocr" and not rect.rectified and live_quad is not None:
        log.info("[capture] OCR corners unusable; retrying with the live quad")
        rect, source = rectify(image, live_quad, cfg=cfg), "live"

    hint = normalize_hint(ocr.rotation_needed) if ocr is not None else 0
    out = correct_orientation(rect.image, hint)
    used = rect.quad_px.to_unit(W, H) if rect.rectified else None

    log.info("[capture] finalized %dx%d quad=%s rectified=%s rotation=%d",
             out.shape[1], out.shape[0], source, rect.rectified, hint)
    return CaptureResult(
        image=out,
        jpeg=encode_jpeg(out, quality),
        quad=used,
        rotation=hint,
        rectified=rect.rectified,
        quad_source=source,
        ocr=ocr,
        meta={"source_size": (W, H), "output_size": (out.shape[1], out.shape[0])},
    )


def finalize_snapshot(snapshot: CaptureSnapshot, **kwargs) -> CaptureResult:
    return finalize_capture(snapshot.image, snapshot.quad, **kwargs)


def process_upload(
    upload: Union[bytes, np.ndarray],
    *,
    ocr_client: Optional[OcrClient] = None,
    cfg: Optional[Dict] = None,
) -> CaptureResult:
    """Single-shot path for an uploaded photo: detect once, then finalize."""
    cfg = merge_cfg(cfg)
    image = decode_image(upload) if isinstance(upload, (bytes, bytearray)) else upload
    found = detect(image, cfg)
    if found.quad is None:
        log.info("[upload] no receipt outline found; keeping full photo")
    return finalize_capture(image, found.quad, ocr_client=ocr_client, cfg=cfg)
