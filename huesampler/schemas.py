"""
HueSampler API Schemas
Pydantic models for palette extraction and sampling request/response validation.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


HEX_PATTERN = r"^#[0-9A-F]{6}$"


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = Field(True, description="Service health status")
    version: str = Field(..., description="Service version")
    service: str = Field("huesampler", description="Service name")


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str = Field(..., description="Error message")


class SwatchResponse(BaseModel):
    """A clustered swatch with its pixel share and tone label."""
    hex: str = Field(..., pattern=HEX_PATTERN)
    population: int = Field(..., ge=0, description="Pixels in the reduced buffer assigned to this swatch")
    label: str = Field(..., description="vibrant, muted, dark_* or light_* tone")


class PaletteResponse(BaseModel):
    """One-shot palette extraction response."""
    dominant: str = Field(..., pattern=HEX_PATTERN, description="Most significant color, #RRGGBB")
    palette: List[str] = Field(..., min_length=1, description="Distinct colors, most significant first")
    swatches: List[SwatchResponse] = Field(
        default_factory=list, description="Per-swatch detail when the clustering tier produced the palette"
    )
    width: int = Field(..., gt=0, description="Normalized image width in pixels")
    height: int = Field(..., gt=0, description="Normalized image height in pixels")


class SessionCreateResponse(BaseModel):
    """Response for a newly created sampling session."""
    token: str = Field(..., description="Opaque session token used for sampling")
    width: int = Field(..., gt=0, description="Normalized image width in pixels")
    height: int = Field(..., gt=0, description="Normalized image height in pixels")
    dominant: str = Field(..., pattern=HEX_PATTERN, description="Most significant color, #RRGGBB")
    palette: List[str] = Field(..., min_length=1, description="Distinct colors, most significant first")
    swatches: List[SwatchResponse] = Field(
        default_factory=list, description="Per-swatch detail when the clustering tier produced the palette"
    )
    expires_in: float = Field(..., description="Seconds until the session expires")


class SampleRequest(BaseModel):
    """
    Point query against a session.

    Coordinates stay untyped here so the sampler can reject non-numeric input
    with its own validation error.
    """
    x: Any = Field(..., description="X coordinate, fraction of width or pixels")
    y: Any = Field(..., description="Y coordinate, fraction of height or pixels")
    unit: Optional[str] = Field("normalized", description="'normalized' (0..1) or 'absolute' (pixels); 'px' is accepted")
    radius: Optional[Any] = Field(None, description="Averaging radius in pixels, clamped to the service maximum")


class SampleResponse(BaseModel):
    """Sampled color and the coordinates actually read."""
    hex: str = Field(..., pattern=HEX_PATTERN, description="Sampled color, #RRGGBB")
    x: int = Field(..., ge=0, description="Resolved pixel column")
    y: int = Field(..., ge=0, description="Resolved pixel row")
    width: int = Field(..., gt=0, description="Session image width")
    height: int = Field(..., gt=0, description="Session image height")
    radius: int = Field(..., ge=0, description="Effective averaging radius")


class SessionInfoResponse(BaseModel):
    """Read-only session metadata."""
    token: str
    width: int
    height: int
    format: str
    original_name: Optional[str] = None
    original_size: int
    mime_type: str
    age_seconds: float
    expires_in_seconds: float


class SessionCloseResponse(BaseModel):
    closed: bool = Field(..., description="False when the session was already gone")


class StatsResponse(BaseModel):
    """Session statistics for operational visibility."""
    activeSessions: int = Field(..., ge=0)
    oldestSessionCreatedAt: Optional[float] = Field(
        None, description="Creation time of the oldest live session on the service clock"
    )
    metrics: Dict[str, Any] = Field(default_factory=dict)
