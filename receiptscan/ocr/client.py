# receiptscan/ocr/client.py
from __future__ import annotations
from typing import Optional, Protocol
import logging
import requests
from requests.exceptions import RequestException

from receiptscan.ocr.result import OcrResult, parse_ocr_response

log = logging.getLogger(__name__)


class OcrError(RuntimeError):
    """The OCR collaborator could not be reached or answered garbage."""


class OcrClient(Protocol):
    def analyze(self, jpeg: bytes) -> OcrResult: ...


class HttpOcrClient:
    """
    Posts a JPEG as multipart field `image` to an OCR endpoint and parses the
    JSON answer into an OcrResult.
    """

    def __init__(self, url: str, timeout: float = 30.0, min_rotation_confidence: float = 0.5,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.min_rotation_confidence = min_rotation_confidence
        self.session = session or requests.Session()

    def analyze(self, jpeg: bytes) -> OcrResult:
        files = {"image": ("receipt.jpg", jpeg, "image/jpeg")}
        try:
            r = self.session.post(self.url, files=files, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except (RequestException, ValueError) as e:
            raise OcrError(f"OCR request to {self.url} failed: {e}") from e
        log.info("[ocr] %s answered %d", self.url, r.status_code)
        return parse_ocr_response(payload, self.min_rotation_confidence)
