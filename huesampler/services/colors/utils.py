"""
Color conversion helpers shared by the extractor and the sampler.
"""
from typing import Sequence

import cv2
import numpy as np


def rgb_to_hex(rgb: Sequence[int]) -> str:
    """Convert an RGB triple (any int-like values) to an uppercase #RRGGBB string."""
    r, g, b = [min(255, max(0, int(x))) for x in list(rgb)[:3]]
    return f"#{r:02X}{g:02X}{b:02X}"


def swatch_label(rgb: Sequence[int],
                 dark_v: float = 0.3,
                 light_v: float = 0.75,
                 vibrant_s: float = 0.35) -> str:
    """
    Name a swatch the way palette libraries bucket them.

    Returns one of ``vibrant``, ``muted``, ``dark_vibrant``, ``dark_muted``,
    ``light_vibrant`` or ``light_muted``.
    """
    pixel = np.uint8([[list(rgb)[:3]]])
    hsv = cv2.cvtColor(pixel, cv2.COLOR_RGB2HSV)[0, 0].astype(np.float32)
    s = hsv[1] / 255.0
    v = hsv[2] / 255.0

    tone = "vibrant" if s >= vibrant_s else "muted"
    if v < dark_v:
        return f"dark_{tone}"
    if v > light_v:
        return f"light_{tone}"
    return tone
