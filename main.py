from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before the config class reads them
load_dotenv()

from huesampler import __version__
from huesampler.api.images import router as images_router
from huesampler.config import config
from huesampler.schemas import HealthResponse
from huesampler.services.palette_service import ImagePaletteService
from huesampler.utils.logging import get_logger


def create_app(service: Optional[ImagePaletteService] = None) -> FastAPI:
    """Build the FastAPI application around one palette service instance."""
    palette_service = service or ImagePaletteService.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        palette_service.start()
        try:
            yield
        finally:
            palette_service.stop()

    app = FastAPI(
        title="HueSampler",
        description="Image palette extraction and color sampling sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.palette_service = palette_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(images_router)

    @app.get("/healthz", response_model=HealthResponse)
    def health_check():
        """Service health check."""
        return HealthResponse(ok=True, version=__version__, service="huesampler")

    get_logger().info("HueSampler app created", extra={
        "ttl_seconds": palette_service.store.ttl_seconds,
        "palette_tiers": palette_service.extractor.tier_names,
    })
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
