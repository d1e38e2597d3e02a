"""
Palette extraction service.

Turns a reduced RGBA buffer into a dominant color and an ordered,
deduplicated palette. Extraction is tiered: each strategy in the ordered list
is tried until one yields a palette, and the static tier at the end never
fails, so callers always get a usable result.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger

from huesampler.config import config
from huesampler.services.colors.utils import rgb_to_hex, swatch_label
from huesampler.services.imaging import resize_long_edge

try:
    from sklearn.cluster import MiniBatchKMeans
except ImportError:
    # Optional palette library; without it the clustering tier is not registered
    MiniBatchKMeans = None


NEUTRAL_GRAY = "#808080"
GRAY_RAMP = ("#808080", "#A0A0A0", "#606060", "#C0C0C0", "#404040")

# Statistical tier grid: GRID_COLUMNS x GRID_ROWS cell centres over the thumbnail
GRID_COLUMNS = 4
GRID_ROWS = 2
THUMBNAIL_EDGE = 64

OPAQUE_ALPHA = 128


@dataclass(frozen=True)
class Swatch:
    """One candidate color with its pixel population."""
    hex: str
    population: int
    label: str


@dataclass(frozen=True)
class PaletteResult:
    """Dominant color plus swatches, most significant first."""
    dominant: str
    swatches: Tuple[str, ...]
    tier: str
    details: Tuple[Swatch, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        """Public payload: dominant, palette and any per-swatch detail."""
        return {
            "dominant": self.dominant,
            "palette": list(self.swatches),
            "swatches": [
                {"hex": s.hex, "population": s.population, "label": s.label}
                for s in self.details
            ],
        }


def opaque_pixels(rgba: np.ndarray) -> np.ndarray:
    """
    Flatten to (N, 3) RGB, keeping only opaque pixels when there are any.
    """
    rgb = rgba[..., :3].reshape(-1, 3)
    if rgba.shape[-1] < 4:
        return rgb
    mask = rgba[..., 3].reshape(-1) >= OPAQUE_ALPHA
    if mask.any():
        return rgb[mask]
    return rgb


def dedupe(colors: Iterable[str]) -> List[str]:
    """Drop repeated colors, keeping first-seen order."""
    seen = set()
    ordered = []
    for color in colors:
        if color not in seen:
            seen.add(color)
            ordered.append(color)
    return ordered


class PaletteStrategy(ABC):
    """One extraction tier. Returns None when it cannot produce a palette."""

    name = "strategy"

    @abstractmethod
    def extract(self, rgba: np.ndarray, palette_size: int) -> Optional[PaletteResult]:
        pass


class ClusterPaletteStrategy(PaletteStrategy):
    """
    Library tier: bucket pixels with MiniBatchKMeans and rank clusters by
    population.
    """

    name = "cluster"

    def __init__(self, max_samples: int = 20000, rng_seed: int = 42):
        if MiniBatchKMeans is None:
            raise RuntimeError("scikit-learn not available. Install with: pip install scikit-learn")
        self.max_samples = max_samples
        self.rng_seed = rng_seed

    def extract(self, rgba: np.ndarray, palette_size: int) -> Optional[PaletteResult]:
        pixels = opaque_pixels(rgba)
        if pixels.size == 0:
            return None

        # Downsample if needed (deterministic)
        if len(pixels) > self.max_samples:
            rng = np.random.default_rng(self.rng_seed)
            indices = rng.choice(len(pixels), size=self.max_samples, replace=False)
            pixels = pixels[indices]

        n_unique = len(np.unique(pixels, axis=0))
        k = max(1, min(palette_size, n_unique))

        if k == 1:
            centers = pixels[:1].astype(np.uint8)
            counts = np.array([len(pixels)])
        else:
            kmeans = MiniBatchKMeans(
                n_clusters=k,
                random_state=self.rng_seed,
                batch_size=min(2048, len(pixels)),
                n_init=3,
                max_iter=100
            )
            labels = kmeans.fit_predict(pixels.astype(np.float32))
            centers = np.clip(np.rint(kmeans.cluster_centers_), 0, 255).astype(np.uint8)
            counts = np.bincount(labels, minlength=k)

        # Sort clusters by population (descending)
        order = np.argsort(-counts, kind="stable")

        details = []
        seen = set()
        for index in order:
            if counts[index] == 0:
                continue
            color = rgb_to_hex(centers[index])
            if color in seen:
                continue
            seen.add(color)
            details.append(Swatch(hex=color, population=int(counts[index]), label=swatch_label(centers[index])))

        details = details[:palette_size]
        if not details:
            return None

        logger.debug(f"Cluster tier produced {len(details)} swatches from {len(pixels)} pixels")
        return PaletteResult(
            dominant=details[0].hex,
            swatches=tuple(s.hex for s in details),
            tier=self.name,
            details=tuple(details),
        )


class StatisticalPaletteStrategy(PaletteStrategy):
    """
    Fallback tier: mean color as dominant, then distinct colors read from a
    fixed grid over a small thumbnail, in scan order.
    """

    name = "statistical"

    def __init__(self, thumbnail_edge: int = THUMBNAIL_EDGE,
                 columns: int = GRID_COLUMNS, rows: int = GRID_ROWS):
        self.thumbnail_edge = thumbnail_edge
        self.columns = columns
        self.rows = rows

    def extract(self, rgba: np.ndarray, palette_size: int) -> Optional[PaletteResult]:
        pixels = opaque_pixels(rgba)
        if pixels.size == 0:
            return None

        mean = np.rint(pixels.astype(np.float64).mean(axis=0))
        dominant = rgb_to_hex(mean)

        thumb = resize_long_edge(np.ascontiguousarray(rgba), self.thumbnail_edge)
        height, width = thumb.shape[:2]
        step_x = max(1, width // self.columns)
        step_y = max(1, height // self.rows)
        has_alpha = thumb.shape[-1] == 4 and bool((thumb[..., 3] >= OPAQUE_ALPHA).any())

        grid_colors = []
        for y in range(step_y // 2, height, step_y):
            for x in range(step_x // 2, width, step_x):
                if has_alpha and thumb[y, x, 3] < OPAQUE_ALPHA:
                    continue
                grid_colors.append(rgb_to_hex(thumb[y, x, :3]))

        swatches = dedupe([dominant] + grid_colors)[:palette_size]
        return PaletteResult(dominant=dominant, swatches=tuple(swatches), tier=self.name)


class StaticPaletteStrategy(PaletteStrategy):
    """Last tier: neutral gray and a gray ramp. Never raises."""

    name = "static"

    def extract(self, rgba: Optional[np.ndarray] = None, palette_size: int = len(GRAY_RAMP)) -> PaletteResult:
        size = max(1, palette_size)
        return PaletteResult(dominant=NEUTRAL_GRAY, swatches=GRAY_RAMP[:size], tier=self.name)


def default_strategies(library_enabled: bool = True) -> List[PaletteStrategy]:
    """Ordered tiers: clustering (when available), statistical, static."""
    strategies: List[PaletteStrategy] = []
    if library_enabled and MiniBatchKMeans is not None:
        strategies.append(ClusterPaletteStrategy())
    strategies.append(StatisticalPaletteStrategy())
    strategies.append(StaticPaletteStrategy())
    return strategies


class PaletteExtractor:
    """Runs the ordered strategy list and returns the first palette produced."""

    def __init__(self, strategies: Optional[Iterable[PaletteStrategy]] = None,
                 palette_size: Optional[int] = None):
        self.palette_size = palette_size or config.PALETTE_SIZE
        if strategies is None:
            strategies = default_strategies(config.PALETTE_LIBRARY_ENABLED)
        self.strategies = list(strategies)
        self._static = StaticPaletteStrategy()

    @property
    def tier_names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    def extract(self, rgba: np.ndarray) -> PaletteResult:
        """
        Extract a palette from an (H, W, 4) buffer.

        Tier failures are logged and absorbed; the result always has a
        non-empty swatch list that contains the dominant color.
        """
        for strategy in self.strategies:
            try:
                result = strategy.extract(rgba, self.palette_size)
            except Exception as e:
                logger.warning(f"Palette tier '{strategy.name}' failed, falling back: {e}")
                continue

            if result is None or not result.swatches:
                logger.debug(f"Palette tier '{strategy.name}' unavailable for this image")
                continue

            if result.dominant not in result.swatches:
                result = PaletteResult(
                    dominant=result.dominant,
                    swatches=tuple(dedupe((result.dominant,) + result.swatches))[:self.palette_size],
                    tier=result.tier,
                    details=result.details,
                )
            return result

        return self._static.extract(None, self.palette_size)
