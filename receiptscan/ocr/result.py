# receiptscan/ocr/result.py
"""
Typed view of the OCR collaborator's response.

The collaborator answers with loosely-typed JSON. Everything is validated
here, at the boundary; fields that are missing or malformed fall back to
"no correction" (no corners, rotation 0) instead of failing.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
import json
import logging
import math
import re
import numpy as np

from receiptscan.core.contracts import Quad, SPACE_MILLE

log = logging.getLogger(__name__)

_AMOUNT_STRIP = re.compile(r"[￥¥฿$€£₩₹,\s]")
_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.S)


@dataclass
class OcrResult:
    corners: Optional[Quad] = None      # [0, 1000] space, canonical order not guaranteed
    rotation_needed: int = 0            # OrientationHint
    vendor: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    invoice_number: Optional[str] = None


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def parse_corners(raw: Any) -> Optional[Quad]:
    """Exactly four {x, y} objects with numbers in [0, 1000], else None."""
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        return None
    pts = []
    for c in raw:
        if not isinstance(c, dict):
            return None
        x, y = c.get("x"), c.get("y")
        if not (_is_number(x) and _is_number(y)):
            return None
        if not (0 <= x <= 1000 and 0 <= y <= 1000):
            return None
        pts.append((float(x), float(y)))
    return Quad(np.array(pts, np.float32), SPACE_MILLE)


def parse_rotation(raw: Any, confidence: Any = None, min_confidence: float = 0.5) -> int:
    if isinstance(raw, bool) or raw is None:
        return 0
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if not isinstance(raw, int) or not 0 <= raw <= 3:
        log.warning("[ocr] invalid rotation_needed %r; using 0", raw)
        return 0
    if _is_number(confidence) and confidence < min_confidence:
        log.info("[ocr] rotation %d ignored, confidence %.2f < %.2f", raw, confidence, min_confidence)
        return 0
    return raw


def parse_amount(raw: Any) -> Optional[float]:
    if _is_number(raw):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(_AMOUNT_STRIP.sub("", raw))
        except ValueError:
            return None
    return None


def _text(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    s = re.sub(r"\s+", " ", raw).strip()
    return s or None


def _load_payload(payload: Union[str, bytes, Dict, None]) -> Dict:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if not isinstance(payload, str):
        log.warning("[ocr] unexpected response type %s", type(payload).__name__)
        return {}
    text = payload.strip()
    m = _FENCE.search(text)
    if m:
        text = m.group(1).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        log.warning("[ocr] response is not JSON: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def parse_ocr_response(payload: Union[str, bytes, Dict, None], min_rotation_confidence: float = 0.5) -> OcrResult:
    data = _load_payload(payload)
    corners = parse_corners(data.get("corners"))
    if data.get("corners") is not None and corners is None:
        log.warning("[ocr] invalid corners format; ignoring")
    currency = _text(data.get("currency"))
    return OcrResult(
        corners=corners,
        rotation_needed=parse_rotation(data.get("rotation_needed"), data.get("rotation_confidence"),
                                       min_rotation_confidence),
        vendor=_text(data.get("vendor")),
        amount=parse_amount(data.get("amount")),
        currency=currency.upper() if currency else None,
        date=_text(data.get("date")),
        time=_text(data.get("time")),
        invoice_number=_text(data.get("invoice_number")),
    )
