"""
HueSampler Palette Service
Wires the normalizer, extractor, store, sampler and lifecycle manager into
the operations the request layer calls.
"""
import time
from typing import Any, Callable, Dict, Iterable, Optional

from huesampler.config import Config, config
from huesampler.services.colors.extraction import (
    PaletteExtractor,
    PaletteResult,
    PaletteStrategy,
    default_strategies,
)
from huesampler.services.errors import HueSamplerError, ImageInputError, SessionNotFoundError
from huesampler.services.imaging import ImageNormalizer, NormalizedImage
from huesampler.services.lifecycle import SessionLifecycleManager
from huesampler.services.sampler import PixelSampler
from huesampler.services.session_store import SessionStore
from huesampler.utils.ids import generate_request_id, short_token
from huesampler.utils.logging import get_logger
from huesampler.utils.metrics import MetricsCollector, get_metrics


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class ImagePaletteService:
    """
    The image palette and sampling-session subsystem.

    Every collaborator is built from constructor arguments, so independent
    instances with different TTLs or limits can live side by side.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        max_radius: Optional[int] = None,
        max_bytes: Optional[int] = None,
        max_pixels: Optional[int] = None,
        palette_max_edge: Optional[int] = None,
        palette_size: Optional[int] = None,
        strategies: Optional[Iterable[PaletteStrategy]] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger()
        self.metrics = metrics or get_metrics()
        self.normalizer = ImageNormalizer(
            max_bytes=max_bytes,
            max_pixels=max_pixels,
            palette_max_edge=palette_max_edge,
        )
        self.extractor = PaletteExtractor(strategies=strategies, palette_size=palette_size)
        self.store = SessionStore(ttl_seconds=ttl_seconds, clock=clock)
        self.sampler = PixelSampler(self.store, normalizer=self.normalizer, max_radius=max_radius)
        self.lifecycle = SessionLifecycleManager(self.store, sweep_interval=sweep_interval, metrics=self.metrics)

    @classmethod
    def from_config(cls, cfg: Config = config, **overrides) -> "ImagePaletteService":
        """Build a service from a Config, with keyword overrides."""
        params = {
            "ttl_seconds": cfg.SESSION_TTL_SECONDS,
            "sweep_interval": cfg.SESSION_SWEEP_INTERVAL_SECONDS,
            "max_radius": cfg.SAMPLE_MAX_RADIUS,
            "max_bytes": cfg.max_file_bytes,
            "max_pixels": cfg.MAX_IMAGE_PIXELS,
            "palette_max_edge": cfg.PALETTE_MAX_EDGE,
            "palette_size": cfg.PALETTE_SIZE,
            "strategies": default_strategies(cfg.PALETTE_LIBRARY_ENABLED),
        }
        params.update(overrides)
        return cls(**params)

    # Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        self.lifecycle.start()

    def stop(self) -> None:
        self.lifecycle.stop()

    # Operations --------------------------------------------------------

    def create_session(self, data: Optional[bytes], mime_type: Optional[str],
                       filename: Optional[str] = None,
                       options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Normalize an upload, extract its palette and store it for sampling.

        Returns:
            {token, width, height, dominant, palette, swatches, expires_in}
        """
        request_id = generate_request_id()
        start_time = time.time()

        image, palette = self._normalize_and_extract(data, mime_type, filename, options, request_id)
        token = self.lifecycle.create(image)

        self.logger.info("Image session created", extra={
            "request_id": request_id,
            "token": short_token(token),
            "dims": f"{image.width}x{image.height}",
            "tier": palette.tier,
            "ms_total": _elapsed_ms(start_time),
        })

        return {
            "token": token,
            "width": image.width,
            "height": image.height,
            **palette.to_dict(),
            "expires_in": self.store.ttl_seconds,
        }

    def extract_palette(self, data: Optional[bytes], mime_type: Optional[str],
                        filename: Optional[str] = None,
                        options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """One-shot extraction; nothing is stored."""
        request_id = generate_request_id()
        image, palette = self._normalize_and_extract(data, mime_type, filename, options, request_id)
        return {**palette.to_dict(), "width": image.width, "height": image.height}

    def sample_color(self, token: str, x: Any, y: Any, unit: Optional[str] = "normalized",
                     radius: Any = None) -> Dict[str, Any]:
        """
        Read the (optionally averaged) color at a point of a stored image.

        Returns:
            {hex, x, y, width, height, radius}
        """
        try:
            with self.metrics.timed("sample"):
                result = self.sampler.sample(token, x, y, unit=unit, radius=radius)
        except HueSamplerError as e:
            self.metrics.increment_failure_count(e.error_code)
            raise

        self.metrics.increment_sample_count(fallback_used=result.fallback_used)
        return {
            "hex": result.hex,
            "x": result.x,
            "y": result.y,
            "width": result.width,
            "height": result.height,
            "radius": result.radius,
        }

    def close_session(self, token: str) -> Dict[str, bool]:
        return {"closed": self.lifecycle.close(token)}

    def get_session(self, token: str) -> Dict[str, Any]:
        """Read-only session metadata. Raises SessionNotFoundError when absent."""
        session = self.store.get(token)
        if session is None:
            raise SessionNotFoundError()

        age = max(0.0, self.store.now() - session.created_at)
        return {
            "token": session.token,
            "width": session.width,
            "height": session.height,
            "format": session.format,
            "original_name": session.source.filename,
            "original_size": session.source.size,
            "mime_type": session.source.mime_type,
            "age_seconds": round(age, 3),
            "expires_in_seconds": round(max(0.0, self.store.ttl_seconds - age), 3),
        }

    def get_stats(self) -> Dict[str, Any]:
        return self.lifecycle.stats().to_dict()

    # Internals ---------------------------------------------------------

    def _normalize_and_extract(self, data, mime_type, filename, options, request_id):
        max_edge = (options or {}).get("max_edge")
        if max_edge is not None:
            if isinstance(max_edge, bool) or not isinstance(max_edge, int) or not Config.validate_max_edge(max_edge):
                raise ImageInputError(f"Invalid max_edge value: {max_edge!r}")

        try:
            with self.metrics.timed("decode"):
                image: NormalizedImage = self.normalizer.normalize(
                    data, mime_type, filename=filename, max_edge=max_edge
                )
        except HueSamplerError as e:
            self.metrics.increment_failure_count(e.error_code)
            self.logger.info(f"Rejected upload: {e.message}", extra={
                "request_id": request_id,
                "error_code": e.error_code,
                "mime_type": mime_type,
            })
            raise

        with self.metrics.timed("extract"):
            palette: PaletteResult = self.extractor.extract(image.reduced_array())
        self.metrics.increment_palette_tier(palette.tier)

        tiers = self.extractor.tier_names
        if not tiers or palette.tier != tiers[0]:
            self.logger.warning("Palette extraction degraded", extra={
                "request_id": request_id,
                "tier": palette.tier,
            })

        return image, palette
