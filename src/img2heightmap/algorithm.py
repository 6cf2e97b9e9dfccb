"""
Core algorithms for grayscale image to height map conversion.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from numbers import Integral, Real
from typing import TYPE_CHECKING, Optional

import numpy as np
from scipy.ndimage import correlate

# Backward compatibility for numpy < 1.21
if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray
else:
    NDArray = np.ndarray

from img2heightmap.constants import (
    BILATERAL_DIAMETER,
    BILATERAL_SIGMA_COLOR,
    BILATERAL_SIGMA_SPACE,
    GAUSSIAN_KERNEL,
    GAUSSIAN_KERNEL_SUM,
    INTENSITY_MAX,
    INTENSITY_MIN,
    UNSHARP_AMOUNT,
)
from img2heightmap.exceptions import ConfigurationError, DegenerateInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeightMapParameters:
    """Filter parameters applied before resampling."""

    diameter: int = BILATERAL_DIAMETER
    sigma_color: float = BILATERAL_SIGMA_COLOR
    sigma_space: float = BILATERAL_SIGMA_SPACE
    amount: float = UNSHARP_AMOUNT

    def validate(self) -> None:
        """Raise ConfigurationError if any parameter is out of range."""
        _check_diameter(self.diameter)
        _check_positive("sigma_color", self.sigma_color)
        _check_positive("sigma_space", self.sigma_space)
        _check_finite("amount", self.amount)


def _check_diameter(diameter: int) -> None:
    if isinstance(diameter, bool) or not isinstance(diameter, Integral):
        raise ConfigurationError(f"diameter must be an integer, got {diameter!r}")
    if diameter < 1 or diameter % 2 == 0:
        raise ConfigurationError(f"diameter must be odd and >= 1, got {diameter}")


def _check_finite(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")


def _check_positive(name: str, value: float) -> None:
    _check_finite(name, value)
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")


def _check_output_size(output_width: int, output_height: int) -> None:
    for name, value in (("output_width", output_width), ("output_height", output_height)):
        if isinstance(value, bool) or not isinstance(value, Integral) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def _as_intensity_grid(image: ArrayLike) -> NDArray[np.uint8]:
    """
    Return the input as a 2D uint8 grid.

    Integer grids whose values already lie in the 8-bit range are converted;
    uint8 grids are returned as is and never written to.
    """
    grid = np.asarray(image)
    if grid.ndim != 2:
        raise DegenerateInputError(f"Expected a 2D grayscale grid, got shape {grid.shape}")
    if grid.shape[0] == 0 or grid.shape[1] == 0:
        raise DegenerateInputError(f"Input grid has no samples, shape {grid.shape}")
    if grid.dtype == np.uint8:
        return grid
    if grid.dtype.kind not in "iu":
        raise ConfigurationError(f"Expected 8-bit integer intensities, got dtype {grid.dtype}")
    if grid.min() < INTENSITY_MIN or grid.max() > INTENSITY_MAX:
        raise ConfigurationError(
            f"Intensities must lie in [{INTENSITY_MIN}, {INTENSITY_MAX}], "
            f"got [{grid.min()}, {grid.max()}]"
        )
    return grid.astype(np.uint8)


def bilateral_filter(
    image: ArrayLike,
    diameter: int = BILATERAL_DIAMETER,
    sigma_color: float = BILATERAL_SIGMA_COLOR,
    sigma_space: float = BILATERAL_SIGMA_SPACE,
) -> NDArray[np.uint8]:
    """
    Smooth an 8-bit grayscale image while preserving edges.

    Every output pixel is the weighted mean of its square neighbourhood of half-width
    ``diameter // 2``. A neighbour's weight falls off with both its squared distance to the
    centre pixel and its squared intensity difference to it:

        w = exp(-(d_space^2 / (2 * sigma_space^2) + d_color^2 / (2 * sigma_color^2)))

    Neighbours outside the image are skipped, so border pixels average over fewer samples.
    The centre pixel always contributes a weight of 1, so the normalisation never divides
    by zero. The mean is rounded half to even.

    The sum runs as one whole-array pass per kernel offset (rows outer, columns inner),
    which accumulates every pixel in the same order as a per-pixel loop would.

    Args:
        image (ArrayLike): 2D grid of 8-bit intensities.
        diameter (int, optional): Odd neighbourhood span in pixels. Defaults to BILATERAL_DIAMETER.
        sigma_color (float, optional): Intensity sigma. Defaults to BILATERAL_SIGMA_COLOR.
        sigma_space (float, optional): Spatial sigma in pixels. Defaults to BILATERAL_SIGMA_SPACE.

    Returns:
        NDArray[np.uint8]: The filtered image, same shape as the input.
    """
    _check_diameter(diameter)
    _check_positive("sigma_color", sigma_color)
    _check_positive("sigma_space", sigma_space)
    grid = _as_intensity_grid(image)

    height, width = grid.shape
    half = diameter // 2
    two_sigma_color_sq = 2.0 * sigma_color * sigma_color
    two_sigma_space_sq = 2.0 * sigma_space * sigma_space

    center = grid.astype(np.float64)
    padded = np.pad(center, half, mode="constant")
    inside = np.pad(np.ones(grid.shape, dtype=bool), half, mode="constant")

    weight_sum = np.zeros(grid.shape, dtype=np.float64)
    pixel_sum = np.zeros(grid.shape, dtype=np.float64)
    for dr in range(-half, half + 1):
        rows = slice(half + dr, half + dr + height)
        for dc in range(-half, half + 1):
            cols = slice(half + dc, half + dc + width)
            neighbor = padded[rows, cols]
            spatial_dist_sq = float(dr * dr + dc * dc)
            intensity_diff = neighbor - center
            weight = np.exp(
                -(spatial_dist_sq / two_sigma_space_sq + (intensity_diff * intensity_diff) / two_sigma_color_sq)
            )
            # Skip out-of-bounds neighbours
            weight = np.where(inside[rows, cols], weight, 0.0)
            weight_sum += weight
            pixel_sum += neighbor * weight

    return np.rint(pixel_sum / weight_sum).astype(np.uint8)


def gaussian_blur(image: ArrayLike) -> NDArray[np.uint8]:
    """
    Blur an 8-bit grayscale image with the fixed 3x3 kernel [1 2 1; 2 4 2; 1 2 1] / 16.

    Borders replicate the edge pixel. The normalised sum is truncated, not rounded.
    """
    grid = _as_intensity_grid(image)
    summed = correlate(grid.astype(np.int32), GAUSSIAN_KERNEL, mode="nearest")
    return (summed // GAUSSIAN_KERNEL_SUM).astype(np.uint8)


def unsharp_mask(image: ArrayLike, amount: float = UNSHARP_AMOUNT) -> NDArray[np.uint8]:
    """
    Sharpen an 8-bit grayscale image: ``image + amount * (image - gaussian_blur(image))``.

    The boost is truncated toward zero in integer arithmetic and the result is clamped to
    [0, 255]. An amount of 0 returns an unchanged copy.

    Args:
        image (ArrayLike): 2D grid of 8-bit intensities.
        amount (float, optional): Sharpening strength. Defaults to UNSHARP_AMOUNT.

    Returns:
        NDArray[np.uint8]: The sharpened image, same shape as the input.
    """
    _check_finite("amount", amount)
    grid = _as_intensity_grid(image)
    blurred = gaussian_blur(grid)

    original = grid.astype(np.int32)
    residual = original - blurred.astype(np.int32)
    # Anything past +-255 saturates after the clamp anyway
    boost = np.clip(np.trunc(amount * residual), -INTENSITY_MAX, INTENSITY_MAX).astype(np.int32)
    return np.clip(original + boost, INTENSITY_MIN, INTENSITY_MAX).astype(np.uint8)


def bilinear_interpolate(image: ArrayLike, x: ArrayLike, y: ArrayLike) -> np.floating | NDArray[np.float32]:
    """
    Sample an 8-bit grayscale image at fractional coordinates.

    ``x`` runs along columns and ``y`` along rows. Both may be scalars or arrays that
    broadcast against each other, e.g. a row of x positions and a column of y positions.
    Integer coordinates return the source pixel exactly.

    Args:
        image (ArrayLike): 2D grid of 8-bit intensities.
        x (ArrayLike): Column coordinate(s) in [0, width - 1].
        y (ArrayLike): Row coordinate(s) in [0, height - 1].

    Returns:
        The interpolated value(s) as float32; a scalar for scalar coordinates.
    """
    grid = _as_intensity_grid(image)
    height, width = grid.shape
    x = np.asarray(x, dtype=np.float32)
    y = np.asarray(y, dtype=np.float32)
    for name, coords, limit in (("x", x, width - 1), ("y", y, height - 1)):
        if not np.all(np.isfinite(coords)) or np.any(coords < 0) or np.any(coords > limit):
            raise ConfigurationError(f"{name} coordinates must lie in [0, {limit}]")

    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)

    dx = x - x0.astype(np.float32)
    dy = y - y0.astype(np.float32)
    one = np.float32(1.0)

    values = grid.astype(np.float32)
    top = values[y0, x0] * (one - dx) + values[y0, x1] * dx
    bottom = values[y1, x0] * (one - dx) + values[y1, x1] * dx
    result = top * (one - dy) + bottom * dy
    return result[()]


def _axis_ratio(input_size: int, output_size: int) -> np.float32:
    # A single output sample sits on the first row/column
    if output_size == 1:
        return np.float32(0.0)
    return np.float32(input_size - 1) / np.float32(output_size - 1)


def resample_and_scale(
    image: ArrayLike,
    scale_factor: float,
    output_width: int,
    output_height: int,
) -> NDArray[np.float32]:
    """
    Resample an 8-bit grayscale image to ``output_height x output_width`` and scale it to heights.

    Output pixel (j, i) samples the input at ``x = i * (in_w - 1) / (out_w - 1)`` and
    ``y = j * (in_h - 1) / (out_h - 1)``, so the corner pixels of input and output line up.
    The interpolated intensity is multiplied by ``scale_factor``.

    Args:
        image (ArrayLike): 2D grid of 8-bit intensities.
        scale_factor (float): Intensity to height multiplier.
        output_width (int): Number of output columns.
        output_height (int): Number of output rows.

    Returns:
        NDArray[np.float32]: Height grid of shape (output_height, output_width).
    """
    _check_finite("scale_factor", scale_factor)
    _check_output_size(output_width, output_height)
    grid = _as_intensity_grid(image)
    input_height, input_width = grid.shape

    xs = np.arange(output_width, dtype=np.float32) * _axis_ratio(input_width, output_width)
    ys = np.arange(output_height, dtype=np.float32) * _axis_ratio(input_height, output_height)
    # Rounding can push the last sample a hair past the edge
    xs = np.clip(xs, 0, input_width - 1).astype(np.float32)
    ys = np.clip(ys, 0, input_height - 1).astype(np.float32)

    intensities = bilinear_interpolate(grid, xs[np.newaxis, :], ys[:, np.newaxis])
    return (intensities * np.float32(scale_factor)).astype(np.float32)


def generate_height_map(
    image: ArrayLike,
    scale_factor: float,
    output_width: int,
    output_height: int,
    params: Optional[HeightMapParameters] = None,
) -> NDArray[np.float32]:
    """
    Generate a height map from a grayscale image.

    Pipeline: bilateral filter -> unsharp mask -> bilinear resample and scale.
    All arguments are validated before any pixel is processed.

    Args:
        image (ArrayLike): 2D grid of 8-bit intensities.
        scale_factor (float): Intensity to height multiplier.
        output_width (int): Number of output columns.
        output_height (int): Number of output rows.
        params (Optional[HeightMapParameters], optional): Filter parameters.
            Defaults to HeightMapParameters().

    Returns:
        NDArray[np.float32]: Height grid of shape (output_height, output_width).
    """
    params = params if params is not None else HeightMapParameters()
    params.validate()
    _check_finite("scale_factor", scale_factor)
    _check_output_size(output_width, output_height)
    grid = _as_intensity_grid(image)

    logger.info(
        "Generating %dx%d height map from %dx%d image",
        output_width,
        output_height,
        grid.shape[1],
        grid.shape[0],
    )

    # Step 1: Edge-preserving denoise
    denoised = bilateral_filter(grid, params.diameter, params.sigma_color, params.sigma_space)
    logger.debug(
        "Bilateral filter (diameter=%d, sigma_color=%s, sigma_space=%s) done",
        params.diameter,
        params.sigma_color,
        params.sigma_space,
    )

    # Step 2: Enhance height differences
    sharpened = unsharp_mask(denoised, params.amount)
    logger.debug("Unsharp mask (amount=%s) done", params.amount)

    # Step 3: Resize and convert intensity to height
    heights = resample_and_scale(sharpened, scale_factor, output_width, output_height)
    logger.info("Height range: [%0.3f, %0.3f]", float(heights.min()), float(heights.max()))
    return heights
