"""
HueSampler error taxonomy.

Input and session errors propagate to the request layer as distinct classes;
each carries the HTTP status the request layer answers with. Palette
extraction failures never appear here, the extractor absorbs them.
"""


class HueSamplerError(Exception):
    """Base class for all classifiable service errors."""

    status_code = 500
    error_code = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ImageInputError(HueSamplerError):
    """The uploaded payload cannot become a session. Never retried."""

    status_code = 400
    error_code = "invalid_image"


class NoImageError(ImageInputError):
    error_code = "no_image"


class ImageTooLargeError(ImageInputError):
    status_code = 413
    error_code = "image_too_large"


class UnsupportedFormatError(ImageInputError):
    """Format not supported: outside the allow-list, or camera-native."""

    status_code = 415
    error_code = "format_not_supported"


class ImageDecodeError(ImageInputError):
    error_code = "decode_failed"


class SessionNotFoundError(HueSamplerError):
    """Token unknown, closed, or past its TTL."""

    status_code = 404
    error_code = "session_not_found"

    def __init__(self, message: str = "Image session not found or expired"):
        super().__init__(message)


class SamplingValidationError(HueSamplerError):
    status_code = 422
    error_code = "invalid_sample_request"
