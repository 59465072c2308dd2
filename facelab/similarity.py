"""
Image Similarity Scorer

Scores how alike two grayscale pixel vectors are on a 0-100 scale by
combining three comparisons of their histogram-equalized forms:
- Pixel-level cosine similarity of z-score normalized intensities
- Cosine similarity of gradient (magnitude, angle) features
- Center-weighted intersection of spatial block histograms

Every function here is pure and allocates only local arrays, so calls can
run concurrently without coordination.

The scorer is a standalone utility. Recognition decisions in the API are
made by the generative model, not by this score.
"""
import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from facelab.config import (
    VECTOR_IMAGE_SIZE,
    SIMILARITY_GRID_SIZE,
    SIMILARITY_HISTOGRAM_BINS,
    SIMILARITY_WEIGHTS,
    SIMILARITY_CENTER_WEIGHT,
    SIMILARITY_EDGE_WEIGHT,
    SIMILARITY_RESCALE_OFFSET,
    SIMILARITY_RESCALE_RANGE
)

PixelVector = Union[np.ndarray, Sequence[float]]

INTENSITY_LEVELS = 256


class InvalidInputError(ValueError):
    """Raised when vectors cannot be compared (empty, mismatched or wrong size)."""


@dataclass(frozen=True)
class SimilarityConfig:
    """Constants of the composite similarity score."""
    image_size: int = VECTOR_IMAGE_SIZE
    grid_size: int = SIMILARITY_GRID_SIZE
    histogram_bins: int = SIMILARITY_HISTOGRAM_BINS
    pixel_weight: float = SIMILARITY_WEIGHTS[0]
    gradient_weight: float = SIMILARITY_WEIGHTS[1]
    block_weight: float = SIMILARITY_WEIGHTS[2]
    center_weight: float = SIMILARITY_CENTER_WEIGHT
    edge_weight: float = SIMILARITY_EDGE_WEIGHT
    rescale_offset: float = SIMILARITY_RESCALE_OFFSET
    rescale_range: float = SIMILARITY_RESCALE_RANGE


DEFAULT_CONFIG = SimilarityConfig()


def _round_half_up(values):
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def _as_image(pixels: PixelVector, width: int, height: int) -> np.ndarray:
    """Reshape a flat row-major vector into a height x width float image."""
    flat = np.asarray(pixels, dtype=np.float64).reshape(-1)
    if flat.size != width * height:
        raise InvalidInputError(
            f"Expected {width}x{height} = {width * height} pixels, got {flat.size}"
        )
    return flat.reshape(height, width)


def histogram_equalize(pixels: PixelVector) -> np.ndarray:
    """
    Spread intensities over [0, 255] via the cumulative distribution.

    Each sample v (rounded and clamped to [0, 255]) maps to
    round((cdf[v] - cdf_min) * 255 / (N - cdf_min)), where cdf_min is the
    first non-zero cdf entry. A zero denominator is treated as 1, so a
    constant image maps to all zeros.

    Returns:
        float64 array of the same length with integral values in [0, 255]
    """
    values = np.clip(_round_half_up(pixels).reshape(-1), 0, INTENSITY_LEVELS - 1).astype(np.int64)
    hist = np.bincount(values, minlength=INTENSITY_LEVELS)
    cdf = np.cumsum(hist)

    nonzero = cdf[cdf > 0]
    cdf_min = int(nonzero[0]) if nonzero.size else 0
    denominator = (values.size - cdf_min) or 1

    equalized = _round_half_up((cdf[values] - cdf_min) * 255.0 / denominator)
    return np.clip(equalized, 0, INTENSITY_LEVELS - 1)


def zscore(values: PixelVector) -> np.ndarray:
    """Subtract the mean and divide by the population std (0 becomes 1)."""
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    mean = arr.mean()
    std = arr.std() or 1.0
    return (arr - mean) / std


def cosine_similarity(a: PixelVector, b: PixelVector) -> float:
    """
    Cosine of the angle between two vectors, in [-1, 1].

    Two all-zero vectors count as identical (1.0); a single all-zero
    vector has nothing in common with anything (0.0).
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.size != b.size:
        raise InvalidInputError(f"Vector lengths differ: {a.size} vs {b.size}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 and norm_b == 0:
        return 1.0
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


def extract_gradient_features(pixels: PixelVector, width: int, height: int) -> np.ndarray:
    """
    Gradient magnitude and direction for every interior pixel.

    Uses central differences with the immediate horizontal and vertical
    neighbours; the 1-pixel border is skipped.

    Returns:
        Interleaved [mag, angle, mag, angle, ...] of length
        2 * (width - 2) * (height - 2), row-major
    """
    image = _as_image(pixels, width, height)

    gx = image[1:-1, 2:] - image[1:-1, :-2]
    gy = image[2:, 1:-1] - image[:-2, 1:-1]
    magnitude = np.hypot(gx, gy)
    angle = np.arctan2(gy, gx)

    return np.stack((magnitude, angle), axis=-1).reshape(-1)


def extract_block_histograms(
    pixels: PixelVector,
    width: int,
    height: int,
    grid_size: int,
    bins: int = SIMILARITY_HISTOGRAM_BINS
) -> np.ndarray:
    """
    Normalized intensity histogram of each cell of a grid x grid partition.

    Cell sizes are floored, so a remainder strip at the right and bottom
    edges is ignored.

    Returns:
        Array of shape (grid_size * grid_size, bins), cells in row-major
        order, each row summing to 1 (all zeros for an empty cell)
    """
    image = _as_image(pixels, width, height)
    block_w = width // grid_size
    block_h = height // grid_size
    bin_width = INTENSITY_LEVELS // bins

    histograms = np.zeros((grid_size * grid_size, bins), dtype=np.float64)
    for by in range(grid_size):
        for bx in range(grid_size):
            cell = image[by * block_h:(by + 1) * block_h, bx * block_w:(bx + 1) * block_w]
            indices = np.clip(cell // bin_width, 0, bins - 1).astype(np.int64).reshape(-1)
            counts = np.bincount(indices, minlength=bins)
            total = counts.sum() or 1
            histograms[by * grid_size + bx] = counts / total

    return histograms


def block_histogram_similarity(
    hists_a: np.ndarray,
    hists_b: np.ndarray,
    grid_size: int,
    center_weight: float = SIMILARITY_CENTER_WEIGHT,
    edge_weight: float = SIMILARITY_EDGE_WEIGHT
) -> float:
    """
    Weighted mean of per-cell histogram intersections.

    A cell is a center cell when both its row and column index fall in
    [floor(grid * 0.25), floor(grid * 0.75)); center cells weigh
    center_weight, all others edge_weight.
    """
    a = np.asarray(hists_a, dtype=np.float64)
    b = np.asarray(hists_b, dtype=np.float64)
    if a.shape != b.shape:
        raise InvalidInputError(f"Histogram sets differ in shape: {a.shape} vs {b.shape}")

    low = math.floor(grid_size * 0.25)
    high = math.floor(grid_size * 0.75)
    cells = np.arange(a.shape[0])
    rows = cells // grid_size
    cols = cells % grid_size
    is_center = (rows >= low) & (rows < high) & (cols >= low) & (cols < high)
    weights = np.where(is_center, center_weight, edge_weight)

    intersections = np.minimum(a, b).sum(axis=1)
    total_weight = weights.sum() or 1.0
    return float((intersections * weights).sum() / total_weight)


def compute_similarity(
    query: PixelVector,
    stored: PixelVector,
    config: SimilarityConfig = DEFAULT_CONFIG
) -> float:
    """
    Composite similarity of two pixel vectors.

    Pipeline:
    1. Histogram-equalize both vectors
    2. Cosine of their z-scores (pixel similarity)
    3. Cosine of their gradient features (structure similarity)
    4. Center-weighted block histogram intersection (spatial similarity)
    5. Weighted sum of the three
    6. Rescale (combined - offset) / range, clamp to [0, 1], map to 0-100

    Args:
        query: Pixel vector of the query image
        stored: Pixel vector of a stored image
        config: Score constants

    Returns:
        Score in [0, 100] rounded to 2 decimals

    Raises:
        InvalidInputError: If the vectors are empty, differ in length, or
            do not match config.image_size squared
    """
    query = np.asarray(query, dtype=np.float64).reshape(-1)
    stored = np.asarray(stored, dtype=np.float64).reshape(-1)

    if query.size == 0 or stored.size == 0:
        raise InvalidInputError("Pixel vectors must not be empty")
    if query.size != stored.size:
        raise InvalidInputError(f"Pixel vector lengths differ: {query.size} vs {stored.size}")

    size = config.image_size
    if query.size != size * size:
        raise InvalidInputError(f"Expected {size * size} pixels, got {query.size}")

    eq_query = histogram_equalize(query)
    eq_stored = histogram_equalize(stored)

    pixel_cosine = cosine_similarity(zscore(eq_query), zscore(eq_stored))

    grad_cosine = cosine_similarity(
        extract_gradient_features(eq_query, size, size),
        extract_gradient_features(eq_stored, size, size)
    )

    block_sim = block_histogram_similarity(
        extract_block_histograms(eq_query, size, size, config.grid_size, config.histogram_bins),
        extract_block_histograms(eq_stored, size, size, config.grid_size, config.histogram_bins),
        config.grid_size,
        config.center_weight,
        config.edge_weight
    )

    combined = (
        config.pixel_weight * pixel_cosine
        + config.gradient_weight * grad_cosine
        + config.block_weight * block_sim
    )

    scaled = min(1.0, max(0.0, (combined - config.rescale_offset) / (config.rescale_range or 1.0)))
    return float(_round_half_up(scaled * 100 * 100) / 100)
