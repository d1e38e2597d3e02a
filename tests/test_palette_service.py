"""
Tests for ImagePaletteService, the facade the request layer calls.
"""
import pytest

from huesampler.config import Config
from huesampler.services.colors.extraction import (
    GRAY_RAMP,
    StaticPaletteStrategy,
    StatisticalPaletteStrategy,
)
from huesampler.services.errors import (
    ImageDecodeError,
    ImageInputError,
    ImageTooLargeError,
    NoImageError,
    SamplingValidationError,
    SessionNotFoundError,
    UnsupportedFormatError,
)
from huesampler.services.palette_service import ImagePaletteService
from generate_test_images import (
    gradient_image_bytes,
    half_transparent_image_bytes,
    heif_like_bytes,
    solid_image_bytes,
    stripes_image_bytes,
)


class TestCreateSession:

    def test_solid_red(self, service):
        result = service.create_session(solid_image_bytes((255, 0, 0), (10, 10)), "image/png", "red.png")

        assert result["width"] == 10
        assert result["height"] == 10
        assert result["dominant"] == "#FF0000"
        assert result["palette"][0] == "#FF0000"
        assert result["expires_in"] == 60
        assert result["token"]

    def test_swatches_carry_population_and_label(self, service):
        colors = [(0, 0, 255), (0, 0, 255), (0, 0, 255), (255, 255, 0)]
        result = service.create_session(stripes_image_bytes(colors), "image/png")

        assert [s["hex"] for s in result["swatches"]] == result["palette"]
        assert result["swatches"][0]["label"] == "light_vibrant"
        populations = [s["population"] for s in result["swatches"]]
        assert populations == sorted(populations, reverse=True)

    def test_dominant_is_in_palette(self, service):
        colors = [(0, 0, 255), (0, 0, 255), (0, 0, 255), (255, 255, 0)]
        result = service.create_session(stripes_image_bytes(colors), "image/png")

        assert result["dominant"] == "#0000FF"
        assert result["dominant"] in result["palette"]
        assert len(result["palette"]) == len(set(result["palette"]))
        assert len(result["palette"]) <= 8

    def test_tokens_are_distinct(self, service):
        data = solid_image_bytes()
        tokens = {service.create_session(data, "image/png")["token"] for _ in range(5)}
        assert len(tokens) == 5

    def test_transparent_pixels_do_not_dominate(self, service):
        result = service.create_session(half_transparent_image_bytes((0, 255, 0)), "image/png")
        assert result["dominant"] == "#00FF00"

    def test_input_errors(self, service):
        with pytest.raises(NoImageError):
            service.create_session(None, "image/png")
        with pytest.raises(UnsupportedFormatError):
            service.create_session(heif_like_bytes(), "image/heic")
        with pytest.raises(ImageDecodeError):
            service.create_session(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32, "image/png")

    def test_size_limit(self, clock, metrics):
        small = ImagePaletteService(max_bytes=64, clock=clock, metrics=metrics)
        with pytest.raises(ImageTooLargeError):
            small.create_session(gradient_image_bytes(50, 50), "image/png")
        assert metrics.get_counters()["failed_total_image_too_large"] == 1

    @pytest.mark.parametrize("max_edge", [0, 8, 5000, "64", True, 12.5])
    def test_invalid_max_edge(self, service, max_edge):
        with pytest.raises(ImageInputError):
            service.create_session(solid_image_bytes(), "image/png", options={"max_edge": max_edge})

    def test_valid_max_edge(self, service):
        result = service.create_session(gradient_image_bytes(100, 100), "image/png", options={"max_edge": 16})
        assert (result["width"], result["height"]) == (100, 100)

    def test_no_session_created_on_failure(self, service):
        with pytest.raises(UnsupportedFormatError):
            service.create_session(solid_image_bytes(), "image/x-adobe-dng")
        assert service.get_stats()["activeSessions"] == 0


class TestExtractPalette:

    def test_one_shot_extract_stores_nothing(self, service):
        result = service.extract_palette(solid_image_bytes((0, 0, 255)), "image/png")

        assert result == {
            "dominant": "#0000FF",
            "palette": ["#0000FF"],
            "swatches": [{"hex": "#0000FF", "population": 100, "label": "light_vibrant"}],
            "width": 10,
            "height": 10,
        }
        assert service.get_stats()["activeSessions"] == 0

    def test_degraded_tiers(self, clock, metrics):
        statistical_only = ImagePaletteService(
            strategies=[StatisticalPaletteStrategy(), StaticPaletteStrategy()],
            clock=clock,
            metrics=metrics,
        )
        result = statistical_only.extract_palette(solid_image_bytes((255, 0, 0)), "image/png")

        assert result["dominant"] == "#FF0000"
        assert metrics.get_counters()["palette_tier_total_statistical"] == 1
        # Only the clustering tier reports per-swatch detail
        assert result["swatches"] == []

    def test_static_palette_when_everything_else_is_gone(self, clock, metrics):
        static_only = ImagePaletteService(strategies=[], clock=clock, metrics=metrics)
        result = static_only.extract_palette(solid_image_bytes((255, 0, 0)), "image/png")

        assert result["dominant"] == "#808080"
        assert result["palette"] == list(GRAY_RAMP)
        assert result["swatches"] == []


class TestSampling:

    def test_sample_solid(self, service):
        token = service.create_session(solid_image_bytes((255, 0, 0)), "image/png")["token"]

        result = service.sample_color(token, 0.5, 0.5)
        assert result == {"hex": "#FF0000", "x": 5, "y": 5, "width": 10, "height": 10, "radius": 0}

    def test_sample_gradient_absolute(self, service):
        token = service.create_session(gradient_image_bytes(100, 100), "image/png")["token"]

        assert service.sample_color(token, 10, 20, unit="absolute")["hex"] == "#0A1400"
        assert service.sample_color(token, 0, 0, unit="absolute", radius=2)["hex"] == "#010100"

    def test_sampling_counts_metrics(self, service, metrics):
        token = service.create_session(solid_image_bytes(), "image/png")["token"]
        service.sample_color(token, 0.1, 0.1)
        service.sample_color(token, 0.9, 0.9)

        with pytest.raises(SamplingValidationError):
            service.sample_color(token, "left", 0.1)

        counters = metrics.get_counters()
        assert counters["samples_total"] == 2
        assert counters["failed_total_invalid_sample_request"] == 1
        assert "sample_duration_ms" in metrics.get_timing_stats()

    def test_sample_unknown_token(self, service):
        with pytest.raises(SessionNotFoundError):
            service.sample_color("no-such-token", 0.5, 0.5)


class TestLifecycle:

    def test_close_then_sample(self, service):
        token = service.create_session(solid_image_bytes(), "image/png")["token"]

        assert service.close_session(token) == {"closed": True}
        assert service.close_session(token) == {"closed": False}
        with pytest.raises(SessionNotFoundError):
            service.sample_color(token, 0.5, 0.5)

    def test_expiry(self, service, clock):
        token = service.create_session(solid_image_bytes(), "image/png")["token"]

        clock.advance(60)
        assert service.sample_color(token, 0.5, 0.5)["hex"] == "#FF0000"

        clock.advance(0.5)
        with pytest.raises(SessionNotFoundError):
            service.sample_color(token, 0.5, 0.5)

    def test_expired_sessions_are_counted(self, service, clock, metrics):
        service.create_session(solid_image_bytes(), "image/png")
        clock.advance(61)

        assert service.get_stats()["activeSessions"] == 0
        assert metrics.get_counters()["sessions_expired_total"] == 1

    def test_get_session(self, service, clock):
        data = solid_image_bytes()
        token = service.create_session(data, "image/png", "red.png")["token"]
        clock.advance(15)

        info = service.get_session(token)
        assert info["token"] == token
        assert (info["width"], info["height"]) == (10, 10)
        assert info["format"] == "PNG"
        assert info["original_name"] == "red.png"
        assert info["original_size"] == len(data)
        assert info["mime_type"] == "image/png"
        assert info["age_seconds"] == 15
        assert info["expires_in_seconds"] == 45

    def test_get_session_missing(self, service):
        with pytest.raises(SessionNotFoundError):
            service.get_session("missing")

    def test_stats(self, service, clock):
        assert service.get_stats() == {"activeSessions": 0, "oldestSessionCreatedAt": None}

        first_created = clock.now
        service.create_session(solid_image_bytes(), "image/png")
        clock.advance(5)
        token = service.create_session(solid_image_bytes(), "image/png")["token"]

        assert service.get_stats() == {"activeSessions": 2, "oldestSessionCreatedAt": first_created}

        service.close_session(token)
        assert service.get_stats()["activeSessions"] == 1

    def test_independent_instances(self, clock, metrics):
        short = ImagePaletteService(ttl_seconds=10, clock=clock, metrics=metrics)
        long = ImagePaletteService(ttl_seconds=100, clock=clock, metrics=metrics)
        data = solid_image_bytes()

        short_token = short.create_session(data, "image/png")["token"]
        long_token = long.create_session(data, "image/png")["token"]
        clock.advance(50)

        with pytest.raises(SessionNotFoundError):
            short.sample_color(short_token, 0.5, 0.5)
        assert long.sample_color(long_token, 0.5, 0.5)["hex"] == "#FF0000"
        # Tokens are scoped to their own service
        with pytest.raises(SessionNotFoundError):
            short.sample_color(long_token, 0.5, 0.5)

    def test_from_config(self):
        cfg = Config()
        built = ImagePaletteService.from_config(cfg, ttl_seconds=30, strategies=[])

        assert built.store.ttl_seconds == 30
        assert built.sampler.max_radius == cfg.SAMPLE_MAX_RADIUS
        assert built.normalizer.max_bytes == cfg.max_file_bytes
        assert built.extractor.tier_names == []
