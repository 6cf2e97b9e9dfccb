import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin


@pytest.fixture
def gradient_image():
    """The 5x5 reference gradient used for the golden height map."""
    return np.array(
        [
            [10, 20, 30, 40, 50],
            [15, 25, 35, 45, 55],
            [20, 30, 40, 50, 60],
            [25, 35, 45, 55, 65],
            [30, 40, 50, 60, 70],
        ],
        dtype=np.uint8,
    )


@pytest.fixture
def noisy_image():
    """64x48 ramp with a bright plateau and uniform noise."""
    rng = np.random.default_rng(42)
    height, width = 48, 64
    ramp = np.tile(np.linspace(0, 160, width), (height, 1))
    ramp[16:32, 20:40] += 80
    noise = rng.integers(-10, 11, size=(height, width))
    return np.clip(ramp + noise, 0, 255).astype(np.uint8)


def write_raster(path, data, **kwargs):
    """Write a (bands, rows, cols) or (rows, cols) array to a GeoTIFF."""
    if data.ndim == 2:
        data = data[np.newaxis, ...]
    count, height, width = data.shape
    profile = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": data.dtype,
        "crs": "EPSG:32631",
        "transform": from_origin(500000, 4000000, 1.0, 1.0),
    }
    profile.update(kwargs)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data)
    return str(path)


@pytest.fixture
def synthetic_image_path(tmp_path, noisy_image):
    """Single-band 8-bit GeoTIFF holding ``noisy_image``."""
    return write_raster(tmp_path / "synthetic_image.tif", noisy_image)


@pytest.fixture
def gradient_image_path(tmp_path, gradient_image):
    return write_raster(tmp_path / "gradient.tif", gradient_image)


@pytest.fixture
def raster_writer():
    return write_raster
