# receiptscan/io/camera.py
from __future__ import annotations
from typing import Optional, Union
import logging
import os
import time
import cv2
import numpy as np

log = logging.getLogger(__name__)


class CameraSource:
    """
    Read-only frame source over cv2.VideoCapture (webcam index or file/URL).

    read() returns None while the device has no frame ready; callers treat
    that as "try again next frame", not as an error.
    """

    def __init__(self, source: Union[int, str] = 0, width: Optional[int] = None,
                 height: Optional[int] = None):
        self.source = source
        self.width = width
        self.height = height
        self.cap: Optional[cv2.VideoCapture] = None

    def open(self) -> "CameraSource":
        if self.cap is not None:
            return self
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Cannot open camera {self.source}")
        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap = cap
        log.info("[camera] opened %s", self.source)
        return self

    def read(self) -> Optional[np.ndarray]:
        if self.cap is None:
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    @property
    def is_file(self) -> bool:
        return isinstance(self.source, str) and os.path.isfile(self.source)

    def next_frame(self, max_empty_reads: int = 50, poll_s: float = 0.01) -> Optional[np.ndarray]:
        """
        Wait for the next frame. Returns None once the source is finished:
        end of a local video file, or `max_empty_reads` empty reads in a row
        from a device or stream.
        """
        empty = 0
        while True:
            frame = self.read()
            if frame is not None:
                return frame
            if self.cap is None or self.is_file:
                return None
            empty += 1
            if empty >= max_empty_reads:
                log.warning("[camera] no frame from %s after %d reads", self.source, empty)
                return None
            time.sleep(poll_s)

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            log.info("[camera] released %s", self.source)

    def __enter__(self) -> "CameraSource":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.release()
