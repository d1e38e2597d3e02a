"""
HueSampler Image Routes
Thin request layer over ImagePaletteService: palette extraction, sampling
sessions and statistics.
"""
import asyncio
from contextlib import contextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from huesampler.schemas import (
    ErrorResponse,
    PaletteResponse,
    SampleRequest,
    SampleResponse,
    SessionCloseResponse,
    SessionCreateResponse,
    SessionInfoResponse,
    StatsResponse,
)
from huesampler.services.errors import HueSamplerError
from huesampler.services.palette_service import ImagePaletteService
from huesampler.utils.logging import get_logger

router = APIRouter(prefix="/images", tags=["Images"])

# Every service error surfaces as {"detail": message}
UPLOAD_ERRORS = {code: {"model": ErrorResponse} for code in (400, 413, 415, 500)}
SESSION_ERRORS = {code: {"model": ErrorResponse} for code in (404, 500)}


def get_palette_service(request: Request) -> ImagePaletteService:
    """Dependency returning the service bound to the running app."""
    return request.app.state.palette_service


@contextmanager
def service_errors(action: str):
    """Map service errors to HTTP errors; anything unexpected becomes a 500."""
    try:
        yield
    except HTTPException:
        raise
    except HueSamplerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        get_logger().error(f"Unexpected error: {action}: {e}", extra={"error_type": type(e).__name__})
        raise HTTPException(status_code=500, detail=f"Failed to {action}")


async def _read_upload(image: Optional[UploadFile], max_bytes: int) -> Optional[bytes]:
    if image is None:
        return None
    # Reject early when the client declared a size (file.size might be None)
    if getattr(image, "size", None) and image.size > max_bytes:
        return await image.read(max_bytes + 1)
    return await image.read()


@router.get("", summary="Image API info")
async def images_info(service: ImagePaletteService = Depends(get_palette_service)) -> Dict[str, Any]:
    return {
        "message": "Image processing API",
        "endpoints": [
            "POST /images/extract - Extract colors from image",
            "POST /images/session - Create image sampling session",
            "POST /images/session/{token}/sample - Sample color at coordinates",
            "GET /images/session/{token} - Get session information",
            "DELETE /images/session/{token} - Close sampling session",
            "GET /images/stats - Get service statistics",
        ],
        "limits": {
            "maxFileSize": f"{service.normalizer.max_bytes / (1024 * 1024):g}MB",
            "allowedTypes": service.normalizer.supported_mime_types,
            "maxSampleRadius": service.sampler.max_radius,
            "sessionTtlSeconds": service.store.ttl_seconds,
        },
    }


@router.post("/extract", response_model=PaletteResponse, responses=UPLOAD_ERRORS,
             summary="One-shot palette extraction")
async def extract_colors(
    image: Optional[UploadFile] = File(None, description="Image file"),
    max_edge: Optional[int] = Form(None, description="Bound for the reduced extraction buffer"),
    service: ImagePaletteService = Depends(get_palette_service),
) -> Dict[str, Any]:
    data = await _read_upload(image, service.normalizer.max_bytes)
    with service_errors("extract colors from image"):
        return await asyncio.to_thread(
            service.extract_palette,
            data,
            image.content_type if image else None,
            image.filename if image else None,
            {"max_edge": max_edge} if max_edge is not None else None,
        )


@router.post("/session", status_code=201, response_model=SessionCreateResponse,
             responses=UPLOAD_ERRORS, summary="Create image sampling session")
async def create_session(
    image: Optional[UploadFile] = File(None, description="Image file"),
    max_edge: Optional[int] = Form(None, description="Bound for the reduced extraction buffer"),
    service: ImagePaletteService = Depends(get_palette_service),
) -> Dict[str, Any]:
    data = await _read_upload(image, service.normalizer.max_bytes)
    with service_errors("create extraction session"):
        return await asyncio.to_thread(
            service.create_session,
            data,
            image.content_type if image else None,
            image.filename if image else None,
            {"max_edge": max_edge} if max_edge is not None else None,
        )


@router.post("/session/{token}/sample", response_model=SampleResponse,
             responses={**SESSION_ERRORS, 422: {"model": ErrorResponse}}, summary="Sample color at coordinates")
async def sample_color(
    token: str,
    body: SampleRequest,
    service: ImagePaletteService = Depends(get_palette_service),
) -> Dict[str, Any]:
    with service_errors("sample color"):
        return await asyncio.to_thread(
            service.sample_color, token, body.x, body.y, body.unit, body.radius
        )


@router.get("/session/{token}", response_model=SessionInfoResponse,
            responses=SESSION_ERRORS, summary="Get session information")
async def get_session(
    token: str,
    service: ImagePaletteService = Depends(get_palette_service),
) -> Dict[str, Any]:
    with service_errors("retrieve session information"):
        return service.get_session(token)


@router.delete("/session/{token}", response_model=SessionCloseResponse,
               responses={500: {"model": ErrorResponse}}, summary="Close sampling session")
async def close_session(
    token: str,
    service: ImagePaletteService = Depends(get_palette_service),
) -> Dict[str, bool]:
    with service_errors("close session"):
        return service.close_session(token)


@router.get("/stats", response_model=StatsResponse, summary="Get image service statistics")
async def get_stats(service: ImagePaletteService = Depends(get_palette_service)) -> Dict[str, Any]:
    with service_errors("retrieve statistics"):
        stats = service.get_stats()
        stats["metrics"] = service.metrics.get_summary()
        return stats
