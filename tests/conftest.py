"""
Test configuration and fixtures for HueSampler tests.
"""
import pytest
from fastapi.testclient import TestClient

from huesampler.services.palette_service import ImagePaletteService
from huesampler.utils.metrics import MetricsCollector


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def service(clock, metrics):
    """Palette service on a fake clock with a 60 second TTL."""
    return ImagePaletteService(
        ttl_seconds=60,
        sweep_interval=3600,
        max_radius=24,
        clock=clock,
        metrics=metrics,
    )


@pytest.fixture
def test_client(service):
    """Create test client for an app bound to the fixture service."""
    from main import create_app

    with TestClient(create_app(service)) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset metrics before each test."""
    from huesampler.utils.metrics import reset_metrics
    reset_metrics()
