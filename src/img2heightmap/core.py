"""
img2heightmap - Generate a height map from a grayscale image
"""

from __future__ import annotations

import argparse
import logging
import os
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.errors import NotGeoreferencedWarning, RasterioIOError
from rasterio.transform import Affine

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray

from img2heightmap.algorithm import HeightMapParameters, generate_height_map
from img2heightmap.constants import (
    BILATERAL_DIAMETER,
    BILATERAL_SIGMA_COLOR,
    BILATERAL_SIGMA_SPACE,
    DEFAULT_SCALE_FACTOR,
    OUTPUT_SUFFIX,
    UNSHARP_AMOUNT,
)
from img2heightmap.exceptions import ConfigurationError, HeightMapError

logger = logging.getLogger(__name__)

# Creation options of the source that do not carry over to a float32 GeoTIFF
_DROPPED_PROFILE_KEYS = ("blockxsize", "blockysize", "tiled", "compress", "interleave", "photometric")


@dataclass
class ImageContext:
    """Decoded grayscale image and the raster profile it was read with."""

    image: NDArray[np.uint8]
    profile: Dict[str, Any]

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


def load_image(image_path: str) -> ImageContext:
    """
    Read a single-band 8-bit image (PNG, TIFF, ... anything GDAL decodes).

    Raises:
        ConfigurationError: If the raster has more than one band or is not 8-bit unsigned.
    """
    with warnings.catch_warnings():
        # Plain PNG/JPEG files carry no geotransform
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with rasterio.open(image_path) as src:
            if src.count != 1:
                raise ConfigurationError(
                    f"Expected a single-band grayscale image, {image_path} has {src.count} bands"
                )
            if src.dtypes[0] != "uint8":
                raise ConfigurationError(f"Expected 8-bit unsigned samples, {image_path} is {src.dtypes[0]}")
            image = src.read(1)
            profile = dict(src.profile)
    logger.debug("Loaded %s: %dx%d", image_path, image.shape[1], image.shape[0])
    return ImageContext(image=image, profile=profile)


def _height_map_profile(ctx: ImageContext, output_width: int, output_height: int) -> Dict[str, Any]:
    profile = dict(ctx.profile)
    for key in _DROPPED_PROFILE_KEYS:
        profile.pop(key, None)
    transform = profile.get("transform") or Affine.identity()
    profile.update(
        driver="GTiff",
        dtype="float32",
        count=1,
        nodata=None,
        width=output_width,
        height=output_height,
        transform=transform @ Affine.scale(ctx.width / output_width, ctx.height / output_height),
    )
    return profile


def generate_height_map_from_file(
    image_path: str,
    scale_factor: float = DEFAULT_SCALE_FACTOR,
    output_width: Optional[int] = None,
    output_height: Optional[int] = None,
    params: Optional[HeightMapParameters] = None,
) -> Tuple[NDArray[np.float32], Dict[str, Any]]:
    """
    Generate a height map from a grayscale image file.

    Args:
        image_path (str): Path to a single-band 8-bit raster.
        scale_factor (float, optional): Intensity to height multiplier. Defaults to DEFAULT_SCALE_FACTOR.
        output_width (Optional[int], optional): Output columns. Defaults to the image width.
        output_height (Optional[int], optional): Output rows. Defaults to the image height.
        params (Optional[HeightMapParameters], optional): Filter parameters.

    Returns:
        Tuple[NDArray[np.float32], Dict[str, Any]]: The height grid and a GeoTIFF profile
            sized to it, ready for ``save_height_map``.
    """
    ctx = load_image(image_path)
    output_width = ctx.width if output_width is None else output_width
    output_height = ctx.height if output_height is None else output_height
    heights = generate_height_map(ctx.image, scale_factor, output_width, output_height, params)
    return heights, _height_map_profile(ctx, output_width, output_height)


def save_height_map(heights: NDArray[np.float32], profile: Dict[str, Any], out_path: str) -> None:
    """
    Write a height grid as a single-band float32 GeoTIFF.
    """
    expected = (profile["height"], profile["width"])
    if heights.shape != expected:
        raise ConfigurationError(f"Height grid shape {heights.shape} does not match profile {expected}")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with rasterio.open(out_path, "w", **profile) as dst:
            dst.write(heights.astype(np.float32), 1)
    logger.info("Height map written to %s", out_path)


def format_height_map(heights: NDArray[np.float32]) -> str:
    """Render a height grid as tab separated rows with two decimals."""
    return "\n".join("\t".join(f"{value:.2f}" for value in row) for row in heights)


# -----------------------------------------------------------------------------------------------------
def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a height map from a grayscale image")
    parser.add_argument("--image", help="Path to the grayscale image", required=True)
    parser.add_argument("--out_dir", help="Directory to save the output height map", default="generated_heightmap")
    parser.add_argument("--scale", type=float, default=DEFAULT_SCALE_FACTOR, help="Intensity to height multiplier")
    parser.add_argument("--width", type=int, default=None, help="Output width (defaults to image width)")
    parser.add_argument("--height", type=int, default=None, help="Output height (defaults to image height)")

    g_filter = parser.add_argument_group("Filters")
    g_filter.add_argument("--diameter", type=int, default=BILATERAL_DIAMETER)
    g_filter.add_argument("--sigma_color", type=float, default=BILATERAL_SIGMA_COLOR)
    g_filter.add_argument("--sigma_space", type=float, default=BILATERAL_SIGMA_SPACE)
    g_filter.add_argument("--amount", type=float, default=UNSHARP_AMOUNT, help="Unsharp mask strength")

    parser.add_argument("--print", action="store_true", help="Print the height map to stdout")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(format="%(levelname)s: %(message)s")
    logging.getLogger("img2heightmap").setLevel(level)


def run_cli(argv: Optional[Sequence[str]] = None) -> str:
    """
    Parse the command line, generate the height map and return the written path.
    """
    parser = build_argparser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    params = HeightMapParameters(
        diameter=args.diameter,
        sigma_color=args.sigma_color,
        sigma_space=args.sigma_space,
        amount=args.amount,
    )
    try:
        heights, profile = generate_height_map_from_file(args.image, args.scale, args.width, args.height, params)
    except (HeightMapError, RasterioIOError) as e:
        parser.error(str(e))

    os.makedirs(args.out_dir, exist_ok=True)
    image_name = os.path.splitext(os.path.basename(args.image))[0]
    out_path = os.path.join(args.out_dir, image_name + OUTPUT_SUFFIX)
    save_height_map(heights, profile, out_path)

    if args.print:
        print(format_height_map(heights))
    return out_path


def main_cli(argv: Optional[Sequence[str]] = None) -> None:
    """
    Command line interface for generating a height map from a grayscale image.
    """
    out_path = run_cli(argv)
    print(f"######### Height map generated at: {out_path}")


if __name__ == "__main__":
    main_cli()
