"""
Simple I/O helpers for reading and writing images (BGR, as OpenCV expects).
"""

from __future__ import annotations
import io
import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError


def load_image(path: str) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Raises FileNotFoundError if not found.
    """
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode an uploaded photo (any format Pillow reads) to BGR.

    Phone cameras store rotation in EXIF rather than in the pixels, so the
    EXIF orientation is applied before handing the raster on.
    Raises ValueError for bytes that are not an image.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            im = ImageOps.exif_transpose(im)
            rgb = np.asarray(im.convert("RGB"))
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {e}") from e
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """JPEG bytes for downstream storage/upload."""
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError(f"JPEG encoding failed for image of shape {image.shape}")
    return buf.tobytes()
