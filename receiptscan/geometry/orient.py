# receiptscan/geometry/orient.py
from __future__ import annotations
import logging
import cv2
import numpy as np

log = logging.getLogger(__name__)

# hint = quarter turns the receipt is rotated clockwise; undo it
_ROTATE_FOR_HINT = {
    1: cv2.ROTATE_90_COUNTERCLOCKWISE,
    2: cv2.ROTATE_180,
    3: cv2.ROTATE_90_CLOCKWISE,
}


def normalize_hint(hint) -> int:
    """Coerce an orientation hint to 0..3; anything unusable becomes 0."""
    if isinstance(hint, bool):
        return 0
    if isinstance(hint, (int, np.integer)) and 0 <= int(hint) <= 3:
        return int(hint)
    if isinstance(hint, float) and hint.is_integer() and 0 <= hint <= 3:
        return int(hint)
    return 0


def correct_orientation(image: np.ndarray, hint) -> np.ndarray:
    """
    Rotate a rectified receipt so its text reads horizontally.

    0 → unchanged, 1 → 90° CCW, 2 → 180°, 3 → 90° CW. Odd hints swap W/H.
    Invalid hints and rotation errors return the input unchanged.
    """
    h = normalize_hint(hint)
    if hint is not None and h != hint:
        log.info("[orient] hint %r not in 0..3; no rotation", hint)
    if h == 0:
        return image
    try:
        return cv2.rotate(image, _ROTATE_FOR_HINT[h])
    except (cv2.error, TypeError, ValueError) as e:
        log.warning("[orient] rotation by hint %d failed, keeping image: %s", h, e)
        return image
