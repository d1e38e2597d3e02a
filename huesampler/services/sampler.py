"""
Pixel sampling against cached session buffers.

Coordinates are clamped into the image instead of being rejected; the
radius is clamped to a hard maximum so every query stays cheap.
"""
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional, Tuple

import numpy as np

from huesampler.config import Config, config
from huesampler.services.colors.utils import rgb_to_hex
from huesampler.services.errors import SamplingValidationError, SessionNotFoundError
from huesampler.services.imaging import CHANNELS, ImageNormalizer
from huesampler.services.session_store import ImageSession, SessionStore
from huesampler.utils.ids import short_token
from huesampler.utils.logging import get_logger


@dataclass(frozen=True)
class SampleResult:
    hex: str
    x: int
    y: int
    width: int
    height: int
    radius: int
    samples: int
    fallback_used: bool = False


def _require_real(name: str, value: Any) -> float:
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, Real):
        raise SamplingValidationError(f"{name} must be a number, got {type(value).__name__}")
    try:
        value = float(value)
    except OverflowError:
        # Integers past the float range
        value = math.inf if value > 0 else -math.inf
    if math.isnan(value):
        raise SamplingValidationError(f"{name} must be a number, got NaN")
    return value


def _require_number(name: str, value: Any) -> float:
    value = _require_real(name, value)
    if math.isinf(value):
        raise SamplingValidationError(f"{name} must be finite")
    return value


def resolve_unit(unit: Optional[str]) -> str:
    """Map a unit name or alias to 'normalized' or 'absolute'."""
    if unit is None:
        return "normalized"
    if not isinstance(unit, str) or not Config.validate_unit(unit.lower()):
        raise SamplingValidationError(
            f"unit must be one of {', '.join(Config.SAMPLE_UNITS)}, got {unit!r}"
        )
    unit = unit.lower()
    return Config.SAMPLE_UNIT_ALIASES.get(unit, unit)


def resolve_coordinates(x: float, y: float, unit: str, width: int, height: int) -> Tuple[int, int]:
    """Scale normalized input, then clamp to [0, width-1] x [0, height-1]."""
    if unit == "normalized":
        x, y = x * width, y * height
    px = int(math.floor(min(max(x, 0.0), width - 1)))
    py = int(math.floor(min(max(y, 0.0), height - 1)))
    return px, py


def resolve_radius(radius: Any, max_radius: int) -> int:
    """Clamp a requested radius into [0, max_radius]; infinite values clamp too."""
    if radius is None:
        return 0
    value = _require_real("radius", radius)
    if not Config.validate_radius(value):
        return 0
    if value >= max_radius:
        return max_radius
    return int(math.floor(value))


def read_pixel(pixels: bytes, width: int, x: int, y: int) -> Tuple[int, int, int]:
    """Direct single-pixel read from an interleaved RGBA buffer."""
    offset = (y * width + x) * CHANNELS
    return pixels[offset], pixels[offset + 1], pixels[offset + 2]


def average_window(rgba: np.ndarray, x: int, y: int, radius: int) -> Tuple[Tuple[int, int, int], int]:
    """
    Unweighted mean over [x-r, x+r] x [y-r, y+r] intersected with the image.

    Returns:
        Tuple of (rounded RGB, number of pixels averaged)
    """
    height, width = rgba.shape[:2]
    x0, x1 = max(0, x - radius), min(width - 1, x + radius)
    y0, y1 = max(0, y - radius), min(height - 1, y + radius)
    window = rgba[y0:y1 + 1, x0:x1 + 1, :3].reshape(-1, 3)
    count = window.shape[0]
    sums = window.sum(axis=0, dtype=np.uint64)
    mean = np.rint(sums / count).astype(int)
    return (int(mean[0]), int(mean[1]), int(mean[2])), count


class PixelSampler:
    """Reads colors from session buffers held by a SessionStore."""

    def __init__(self, store: SessionStore, normalizer: Optional[ImageNormalizer] = None,
                 max_radius: Optional[int] = None):
        self.store = store
        self.normalizer = normalizer or ImageNormalizer()
        self.max_radius = max_radius if max_radius is not None else config.SAMPLE_MAX_RADIUS

    def sample(self, token: str, x: Any, y: Any, unit: Optional[str] = "normalized",
               radius: Any = None) -> SampleResult:
        """
        Sample the color at (x, y) in the session identified by token.

        Raises:
            SamplingValidationError: non-numeric coordinates, unknown unit or bad radius
            SessionNotFoundError: token unknown or expired
        """
        fx = _require_number("x", x)
        fy = _require_number("y", y)
        unit = resolve_unit(unit)
        r = resolve_radius(radius, self.max_radius)

        session = self.store.get(token)
        if session is None:
            raise SessionNotFoundError()

        px, py = resolve_coordinates(fx, fy, unit, session.width, session.height)

        if session.buffer_matches_geometry():
            rgb, count = self._sample_buffer(session, px, py, r)
            fallback_used = False
        else:
            rgb, count = self._sample_encoded(session, px, py, r)
            fallback_used = True

        return SampleResult(
            hex=rgb_to_hex(rgb),
            x=px,
            y=py,
            width=session.width,
            height=session.height,
            radius=r,
            samples=count,
            fallback_used=fallback_used,
        )

    def _sample_buffer(self, session: ImageSession, x: int, y: int, radius: int):
        if radius <= 1:
            return read_pixel(session.pixels, session.width, x, y), 1
        return average_window(session.as_array(), x, y, radius)

    def _sample_encoded(self, session: ImageSession, x: int, y: int, radius: int):
        """Re-decode the stored upload and average a small region around (x, y)."""
        get_logger().warning("Session buffer does not match geometry, sampling encoded image", extra={
            "token": short_token(session.token),
            "dims": f"{session.width}x{session.height}",
        })
        if not session.encoded:
            raise SessionNotFoundError("Image session has no usable pixel data")

        r = radius if radius > 1 else 0
        region = self.normalizer.decode_region(session.encoded, x - r, y - r, 2 * r + 1, 2 * r + 1)
        pixels = region[..., :3].reshape(-1, 3)
        mean = np.rint(pixels.astype(np.float64).mean(axis=0)).astype(int)
        return (int(mean[0]), int(mean[1]), int(mean[2])), int(pixels.shape[0])
