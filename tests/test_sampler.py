"""
Unit tests for pixel sampling: coordinate resolution, radius clamping,
window averaging and the encoded-image fallback.
"""
import dataclasses

import numpy as np
import pytest

from huesampler.services.errors import SamplingValidationError, SessionNotFoundError
from huesampler.services.sampler import (
    PixelSampler,
    average_window,
    read_pixel,
    resolve_coordinates,
    resolve_radius,
    resolve_unit,
)
from huesampler.services.session_store import SessionStore
from generate_test_images import gradient_array, normalized_image


class CountingStore(SessionStore):
    """SessionStore that records lookups."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookups = 0

    def get(self, token):
        self.lookups += 1
        return super().get(token)


@pytest.fixture
def store(clock):
    return CountingStore(ttl_seconds=60, clock=clock)


@pytest.fixture
def sampler(store):
    return PixelSampler(store, max_radius=24)


@pytest.fixture
def gradient_token(store):
    return store.put(normalized_image(gradient_array(100, 100)))


def solid_token(store, color, size=(10, 10)):
    rgba = np.zeros((size[1], size[0], 4), dtype=np.uint8)
    rgba[..., :3] = color
    rgba[..., 3] = 255
    return store.put(normalized_image(rgba))


class TestResolution:

    def test_resolve_unit(self):
        assert resolve_unit(None) == "normalized"
        assert resolve_unit("normalized") == "normalized"
        assert resolve_unit("absolute") == "absolute"
        assert resolve_unit("px") == "absolute"
        assert resolve_unit("PX") == "absolute"
        with pytest.raises(SamplingValidationError):
            resolve_unit("inches")
        with pytest.raises(SamplingValidationError):
            resolve_unit(3)

    def test_normalized_coordinates_are_scaled_and_clamped(self):
        assert resolve_coordinates(1.5, -0.2, "normalized", 100, 100) == (99, 0)
        assert resolve_coordinates(0.5, 0.5, "normalized", 100, 50) == (50, 25)
        assert resolve_coordinates(1.0, 1.0, "normalized", 100, 50) == (99, 49)

    def test_absolute_coordinates_are_floored(self):
        assert resolve_coordinates(10.9, 20.2, "absolute", 100, 100) == (10, 20)
        assert resolve_coordinates(-3, 500, "absolute", 100, 100) == (0, 99)

    def test_resolve_radius(self):
        assert resolve_radius(None, 24) == 0
        assert resolve_radius(-5, 24) == 0
        assert resolve_radius(2.7, 24) == 2
        assert resolve_radius(1000, 24) == 24

    def test_unbounded_radius_clamps(self):
        assert resolve_radius(float("inf"), 24) == 24
        assert resolve_radius(10 ** 400, 24) == 24
        assert resolve_radius(float("-inf"), 24) == 0
        with pytest.raises(SamplingValidationError):
            resolve_radius(float("nan"), 24)

    def test_read_pixel(self):
        rgba = gradient_array(10, 10)
        assert read_pixel(rgba.tobytes(), 10, 3, 7) == (3, 7, 0)

    def test_average_window_is_clipped_at_corner(self):
        rgb, count = average_window(gradient_array(100, 100), 0, 0, 2)
        assert rgb == (1, 1, 0)
        assert count == 9


class TestPixelSampler:

    @pytest.mark.parametrize("x,y", [(0, 0), (0.5, 0.5), (0.999, 0.001), (7, 3)])
    def test_solid_image_same_everywhere(self, sampler, store, x, y):
        token = solid_token(store, (18, 52, 86))
        result = sampler.sample(token, x, y, unit="normalized" if x < 1 else "absolute")
        assert result.hex == "#123456"

    def test_out_of_range_normalized_clamps(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 1.5, -0.2)

        assert (result.x, result.y) == (99, 0)
        assert result.hex == "#630000"

    def test_direct_read(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 10, 20, unit="absolute")

        assert result.hex == "#0A1400"
        assert result.radius == 0
        assert result.samples == 1
        assert (result.width, result.height) == (100, 100)

    @pytest.mark.parametrize("radius", [0, 1, 0.5])
    def test_small_radius_is_a_direct_read(self, sampler, gradient_token, radius):
        result = sampler.sample(gradient_token, 10, 20, unit="absolute", radius=radius)
        assert result.hex == "#0A1400"
        assert result.samples == 1

    def test_window_average(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 0, 0, unit="absolute", radius=2)

        assert result.hex == "#010100"
        assert result.samples == 9

    def test_interior_window_average(self, sampler, gradient_token):
        # Symmetric window around (50, 40) averages back to the centre
        result = sampler.sample(gradient_token, 50, 40, unit="absolute", radius=3)
        assert result.hex == "#322800"
        assert result.samples == 49

    def test_radius_is_capped(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 50, 50, unit="absolute", radius=500)
        assert result.radius == 24

    def test_infinite_radius_is_capped(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 50, 50, unit="absolute", radius=float("inf"))
        assert result.radius == 24
        assert result.samples == 49 * 49

    def test_negative_radius_is_zero(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 50, 50, unit="absolute", radius=-4)
        assert result.radius == 0

    def test_px_alias(self, sampler, gradient_token):
        assert sampler.sample(gradient_token, 10, 20, unit="px").hex == "#0A1400"

    def test_default_unit_is_normalized(self, sampler, gradient_token):
        result = sampler.sample(gradient_token, 0.1, 0.2, unit=None)
        assert (result.x, result.y) == (10, 20)

    @pytest.mark.parametrize("x,y,unit,radius", [
        ("10", 5, "absolute", None),
        (None, 5, "absolute", None),
        (True, 5, "absolute", None),
        (float("nan"), 5, "absolute", None),
        (5, float("inf"), "absolute", None),
        (5, 5, "furlongs", None),
        (5, 5, "absolute", "big"),
        (5, 5, "absolute", float("nan")),
    ])
    def test_validation_precedes_lookup(self, sampler, store, x, y, unit, radius):
        with pytest.raises(SamplingValidationError):
            sampler.sample("missing-token", x, y, unit=unit, radius=radius)
        assert store.lookups == 0

    def test_unknown_token(self, sampler, store):
        with pytest.raises(SessionNotFoundError):
            sampler.sample("missing-token", 0.5, 0.5)
        assert store.lookups == 1

    def test_expired_token(self, sampler, gradient_token, clock):
        clock.advance(61)
        with pytest.raises(SessionNotFoundError):
            sampler.sample(gradient_token, 0.5, 0.5)

    def test_mismatched_buffer_falls_back_to_encoded_image(self, sampler, store):
        image = dataclasses.replace(normalized_image(gradient_array(100, 100)), pixels=b"")
        token = store.put(image)

        result = sampler.sample(token, 10, 20, unit="absolute")
        assert result.fallback_used
        assert result.hex == "#0A1400"

        averaged = sampler.sample(token, 0, 0, unit="absolute", radius=2)
        assert averaged.hex == "#010100"

    def test_fallback_without_encoded_image(self, sampler, store):
        image = dataclasses.replace(normalized_image(gradient_array(10, 10)), pixels=b"", encoded=b"")
        token = store.put(image)

        with pytest.raises(SessionNotFoundError):
            sampler.sample(token, 1, 1, unit="absolute")
