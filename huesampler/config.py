"""
HueSampler Configuration
Manages environment variables and defaults for the palette and sampling services.
"""
import os
from typing import List


def _split_env(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


class Config:
    """Configuration class for HueSampler services."""

    # Upload limits
    MAX_FILE_MB: int = int(os.environ.get("HUESAMPLER_MAX_FILE_MB", "12"))
    MAX_IMAGE_PIXELS: int = int(os.environ.get("HUESAMPLER_MAX_IMAGE_PIXELS", "40000000"))

    # Palette extraction
    PALETTE_MAX_EDGE: int = int(os.environ.get("HUESAMPLER_PALETTE_MAX_EDGE", "600"))
    PALETTE_SIZE: int = int(os.environ.get("HUESAMPLER_PALETTE_SIZE", "8"))
    PALETTE_LIBRARY_ENABLED: bool = bool(int(os.environ.get("HUESAMPLER_PALETTE_LIBRARY_ENABLED", "1")))

    # Sessions (seconds)
    SESSION_TTL_SECONDS: float = float(os.environ.get("HUESAMPLER_SESSION_TTL_SECONDS", "900"))  # 15 minutes
    SESSION_SWEEP_INTERVAL_SECONDS: float = float(os.environ.get("HUESAMPLER_SESSION_SWEEP_INTERVAL_SECONDS", "600"))

    # Sampling
    SAMPLE_MAX_RADIUS: int = int(os.environ.get("HUESAMPLER_SAMPLE_MAX_RADIUS", "24"))

    # Logging
    LOG_LEVEL: str = os.environ.get("HUESAMPLER_LOG_LEVEL", "INFO")
    LOG_JSON: bool = bool(int(os.environ.get("HUESAMPLER_LOG_JSON", "0")))

    # Supported image formats
    SUPPORTED_MIME_TYPES: List[str] = _split_env(
        "HUESAMPLER_SUPPORTED_MIME_TYPES",
        "image/jpeg,image/jpg,image/png,image/webp,image/gif",
    )

    # Image-like formats we recognise but refuse to decode
    CAMERA_NATIVE_MIME_TYPES: List[str] = [
        "image/heic", "image/heif", "image/heic-sequence", "image/heif-sequence",
        "image/avif", "image/x-adobe-dng", "image/x-canon-cr2", "image/x-canon-cr3",
        "image/x-nikon-nef", "image/x-sony-arw", "image/x-panasonic-raw", "image/x-dcraw",
    ]

    SAMPLE_UNITS = ["normalized", "absolute"]
    SAMPLE_UNIT_ALIASES = {"px": "absolute", "pixels": "absolute", "norm": "normalized"}

    @property
    def max_file_bytes(self) -> int:
        return self.MAX_FILE_MB * 1024 * 1024

    @classmethod
    def validate_max_edge(cls, max_edge: int) -> bool:
        """Validate the reduced-buffer edge bound."""
        return 16 <= max_edge <= 4096

    @classmethod
    def validate_radius(cls, radius: float) -> bool:
        """Validate a requested sampling radius (clamped later, never rejected)."""
        return radius >= 0

    @classmethod
    def validate_unit(cls, unit: str) -> bool:
        """Validate a coordinate unit name, aliases included."""
        return unit in cls.SAMPLE_UNITS or unit in cls.SAMPLE_UNIT_ALIASES


# Global config instance
config = Config()
