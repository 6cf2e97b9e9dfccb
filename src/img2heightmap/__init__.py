"""Generate height maps from grayscale images"""

from importlib.metadata import PackageNotFoundError, version

from .algorithm import (
    HeightMapParameters,
    bilateral_filter,
    bilinear_interpolate,
    gaussian_blur,
    generate_height_map,
    resample_and_scale,
    unsharp_mask,
)
from .core import generate_height_map_from_file, load_image, save_height_map
from .exceptions import ConfigurationError, DegenerateInputError, HeightMapError

__all__ = [
    "HeightMapParameters",
    "bilateral_filter",
    "gaussian_blur",
    "unsharp_mask",
    "bilinear_interpolate",
    "resample_and_scale",
    "generate_height_map",
    "generate_height_map_from_file",
    "load_image",
    "save_height_map",
    "HeightMapError",
    "ConfigurationError",
    "DegenerateInputError",
]

try:
    __version__ = version("img2heightmap")
except PackageNotFoundError:
    # Package is not installed
    __version__ = "unknown"
