"""
HueSampler Imaging Utilities
Handles payload validation, decoding and normalization of uploaded images
into a canonical RGBA buffer plus a reduced copy for palette extraction.
"""
import io
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np
from loguru import logger
from PIL import Image, ImageCms, ImageOps, UnidentifiedImageError

from huesampler.config import config
from huesampler.services.errors import (
    ImageDecodeError,
    ImageTooLargeError,
    NoImageError,
    UnsupportedFormatError,
)

# Pillow decoders allowed to run on untrusted input
DECODABLE_FORMATS = ("JPEG", "PNG", "WEBP", "GIF")

# ISO-BMFF brands used by HEIF/HEIC/AVIF containers
HEIF_BRANDS = {b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"mif1", b"msf1", b"avif", b"avis"}

CHANNELS = 4


@dataclass(frozen=True)
class SourceMetadata:
    """Upload facts kept for diagnostics only."""
    filename: Optional[str]
    size: int
    mime_type: str


@dataclass(frozen=True)
class NormalizedImage:
    """
    Canonical decode of an upload.

    ``pixels`` is interleaved RGBA, ``width * height * 4`` bytes, in visual
    orientation and sRGB. ``reduced_pixels`` has the same layout and is only
    used for palette extraction.
    """
    width: int
    height: int
    pixels: bytes
    reduced_width: int
    reduced_height: int
    reduced_pixels: bytes
    format: str
    source: SourceMetadata
    encoded: bytes = field(repr=False)

    def as_array(self) -> np.ndarray:
        return rgba_view(self.pixels, self.width, self.height)

    def reduced_array(self) -> np.ndarray:
        return rgba_view(self.reduced_pixels, self.reduced_width, self.reduced_height)


def rgba_view(pixels: bytes, width: int, height: int) -> np.ndarray:
    """Read-only (H, W, 4) view over an RGBA byte buffer."""
    return np.frombuffer(pixels, dtype=np.uint8).reshape(height, width, CHANNELS)


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case a declared mime type and drop parameters."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def sniff_format(data: bytes) -> Optional[str]:
    """
    Identify the container from magic bytes.

    Returns:
        "jpeg", "png", "gif", "webp", "heif", "tiff" or None when unknown
    """
    if data.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data[4:8] == b"ftyp" and data[8:12] in HEIF_BRANDS:
        return "heif"
    # DNG, CR2, NEF and ARW are all TIFF containers
    if data[:4] in (b"II*\x00", b"MM\x00*"):
        return "tiff"
    return None


def validate_payload(
    data: Optional[bytes],
    mime_type: Optional[str],
    max_bytes: int,
    supported_mime_types: Iterable[str],
    camera_native_mime_types: Iterable[str] = (),
) -> str:
    """
    Validate an upload before any decoding takes place.

    Args:
        data: Raw uploaded bytes
        mime_type: Declared mime type
        max_bytes: Maximum accepted payload size

    Returns:
        The normalized mime type

    Raises:
        NoImageError: nothing was uploaded
        ImageTooLargeError: payload exceeds max_bytes
        UnsupportedFormatError: mime or container outside the allow-list
        ImageDecodeError: payload too short to be an image
    """
    if not data:
        raise NoImageError("No image file provided")

    if len(data) > max_bytes:
        raise ImageTooLargeError(
            f"File size exceeds limit of {max_bytes / (1024 * 1024):g}MB"
        )

    mime = normalize_mime_type(mime_type)
    if mime in camera_native_mime_types:
        raise UnsupportedFormatError(
            f"Format not supported: {mime}. Convert the image to JPEG or PNG first."
        )
    if mime not in supported_mime_types:
        raise UnsupportedFormatError(
            f"Unsupported file type. Allowed types: {', '.join(supported_mime_types)}"
        )

    if len(data) < 8:
        raise ImageDecodeError("File too small or corrupt")

    sniffed = sniff_format(data)
    if sniffed in ("heif", "tiff"):
        raise UnsupportedFormatError(
            f"Format not supported: {sniffed.upper()} content declared as {mime}"
        )

    return mime


def reduce_bit_depth(image: Image.Image) -> Image.Image:
    """
    Scale 16-bit and 32-bit single-channel images down to 8-bit ``L``.

    Pillow's plain mode conversion clips these values at 255 instead of
    scaling them, which would turn mid grays white. Values are read as a
    16-bit range.
    """
    if not (image.mode.startswith("I;16") or image.mode in ("I", "F")):
        return image

    values = np.asarray(image).astype(np.float64)
    scaled = (np.clip(values, 0, 65535) // 256).astype(np.uint8)
    reduced = Image.fromarray(scaled)
    reduced.info.update(image.info)
    if isinstance(reduced.info.get("transparency"), int):
        reduced.info["transparency"] = min(255, reduced.info["transparency"] // 256)
    return reduced


def convert_to_srgb(image: Image.Image) -> Image.Image:
    """
    Map an image carrying an embedded ICC profile to sRGB.

    Alpha is carried across untouched. When the conversion fails the image is
    returned as-is and plain mode conversion applies later.
    """
    icc_profile = image.info.get("icc_profile")
    if not icc_profile:
        return image

    try:
        alpha = None
        if image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info):
            alpha = image.convert("RGBA").getchannel("A")

        base = image if image.mode in ("RGB", "CMYK") else image.convert("RGB")
        converted = ImageCms.profileToProfile(
            base,
            ImageCms.ImageCmsProfile(io.BytesIO(icc_profile)),
            ImageCms.createProfile("sRGB"),
            outputMode="RGB",
        )
        if alpha is not None:
            converted.putalpha(alpha)
        return converted
    except Exception as e:
        logger.warning(f"ICC conversion to sRGB failed, using plain conversion: {e}")
        return image


def decode_image(data: bytes, max_pixels: int) -> Tuple[Image.Image, str]:
    """
    Decode bytes into an oriented sRGB RGBA image.

    Only the first frame of animated formats is used.

    Returns:
        Tuple of (RGBA PIL image, source format name)

    Raises:
        ImageTooLargeError: pixel count exceeds max_pixels
        ImageDecodeError: bytes are corrupt or not a decodable raster
    """
    try:
        image = Image.open(io.BytesIO(data), formats=DECODABLE_FORMATS)
    except Image.DecompressionBombError as e:
        raise ImageTooLargeError(f"Image dimensions too large: {e}")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        # Pillow reports truncated or malformed headers as any of these
        raise ImageDecodeError(f"Failed to decode image: {e}")

    source_format = image.format or "UNKNOWN"
    width, height = image.size
    if width * height > max_pixels:
        raise ImageTooLargeError(
            f"Image too large: {width}x{height} exceeds {max_pixels} pixels"
        )

    try:
        image.load()
        image = ImageOps.exif_transpose(image)
        image = reduce_bit_depth(image)
        image = convert_to_srgb(image)
        if image.mode != "RGBA":
            image = image.convert("RGBA")
    except Image.DecompressionBombError as e:
        raise ImageTooLargeError(f"Image dimensions too large: {e}")
    except Exception as e:
        raise ImageDecodeError(f"Failed to decode image: {e}")

    return image, source_format


def resize_long_edge(rgba: np.ndarray, max_edge: int) -> np.ndarray:
    """
    Resize image so the longest edge is at most max_edge pixels.

    Args:
        rgba: Input image (H, W, 4)
        max_edge: Maximum edge size

    Returns:
        Resized image, or the input when already small enough
    """
    height, width = rgba.shape[:2]
    current_max = max(height, width)

    if current_max <= max_edge:
        return rgba

    scale = max_edge / current_max
    new_width = max(1, int(width * scale))
    new_height = max(1, int(height * scale))

    # Use INTER_AREA for downscaling (better quality)
    return cv2.resize(rgba, (new_width, new_height), interpolation=cv2.INTER_AREA)


class ImageNormalizer:
    """Turns validated upload bytes into a NormalizedImage."""

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        max_pixels: Optional[int] = None,
        palette_max_edge: Optional[int] = None,
        supported_mime_types: Optional[Iterable[str]] = None,
        camera_native_mime_types: Optional[Iterable[str]] = None,
    ):
        self.max_bytes = max_bytes if max_bytes is not None else config.max_file_bytes
        self.max_pixels = max_pixels if max_pixels is not None else config.MAX_IMAGE_PIXELS
        self.palette_max_edge = palette_max_edge or config.PALETTE_MAX_EDGE
        self.supported_mime_types = list(supported_mime_types or config.SUPPORTED_MIME_TYPES)
        self.camera_native_mime_types = list(
            camera_native_mime_types if camera_native_mime_types is not None
            else config.CAMERA_NATIVE_MIME_TYPES
        )

    def normalize(
        self,
        data: Optional[bytes],
        mime_type: Optional[str],
        filename: Optional[str] = None,
        max_edge: Optional[int] = None,
    ) -> NormalizedImage:
        """
        Validate, decode and normalize an upload.

        Args:
            data: Raw image bytes
            mime_type: Declared mime type
            filename: Original filename (diagnostics only)
            max_edge: Bound for the reduced extraction buffer

        Returns:
            NormalizedImage with the full-resolution and reduced buffers
        """
        mime = validate_payload(
            data, mime_type, self.max_bytes,
            self.supported_mime_types, self.camera_native_mime_types,
        )

        image, source_format = decode_image(data, self.max_pixels)
        rgba = np.ascontiguousarray(np.asarray(image, dtype=np.uint8))
        height, width = rgba.shape[:2]

        reduced = np.ascontiguousarray(resize_long_edge(rgba, max_edge or self.palette_max_edge))
        reduced_height, reduced_width = reduced.shape[:2]

        return NormalizedImage(
            width=width,
            height=height,
            pixels=rgba.tobytes(),
            reduced_width=reduced_width,
            reduced_height=reduced_height,
            reduced_pixels=reduced.tobytes(),
            format=source_format,
            source=SourceMetadata(filename=filename, size=len(data), mime_type=mime),
            encoded=bytes(data),
        )

    def decode_region(self, encoded: bytes, left: int, top: int, width: int, height: int) -> np.ndarray:
        """
        Decode the stored upload again and crop a region from it.

        The crop box is intersected with the decoded image bounds.

        Returns:
            (h, w, 4) uint8 array, possibly smaller than requested
        """
        image, _ = decode_image(encoded, self.max_pixels)
        img_w, img_h = image.size
        x0 = min(max(0, left), img_w - 1)
        y0 = min(max(0, top), img_h - 1)
        x1 = min(img_w, max(x0 + 1, left + width))
        y1 = min(img_h, max(y0 + 1, top + height))
        return np.asarray(image.crop((x0, y0, x1, y1)), dtype=np.uint8)
