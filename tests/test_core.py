import logging
import os
import subprocess
import sys
from collections.abc import Mapping

import numpy as np
import pytest
import rasterio

from img2heightmap import core
from img2heightmap.algorithm import HeightMapParameters, generate_height_map
from img2heightmap.exceptions import ConfigurationError


def test_load_image(synthetic_image_path, noisy_image):
    ctx = core.load_image(synthetic_image_path)
    assert ctx.image.dtype == np.uint8
    assert ctx.width == 64
    assert ctx.height == 48
    np.testing.assert_array_equal(ctx.image, noisy_image)
    assert ctx.profile["count"] == 1


def test_load_image_png(tmp_path, gradient_image):
    """Plain PNGs carry no georeferencing and must still load."""
    path = str(tmp_path / "gradient.png")
    with rasterio.open(
        path, "w", driver="PNG", height=5, width=5, count=1, dtype="uint8"
    ) as dst:
        dst.write(gradient_image, 1)
    ctx = core.load_image(path)
    np.testing.assert_array_equal(ctx.image, gradient_image)


def test_load_image_rejects_multiband(tmp_path, raster_writer):
    rgb = np.zeros((3, 8, 8), dtype=np.uint8)
    path = raster_writer(tmp_path / "rgb.tif", rgb)
    with pytest.raises(ConfigurationError, match="single-band"):
        core.load_image(path)


def test_load_image_rejects_non_8bit(tmp_path, raster_writer):
    dem = np.full((8, 8), 100.0, dtype=np.float32)
    path = raster_writer(tmp_path / "dem.tif", dem)
    with pytest.raises(ConfigurationError, match="8-bit"):
        core.load_image(path)


def test_generate_height_map_from_file_defaults_to_input_size(synthetic_image_path, noisy_image):
    heights, profile = core.generate_height_map_from_file(synthetic_image_path, scale_factor=2.0)
    assert isinstance(profile, Mapping)
    assert heights.shape == noisy_image.shape
    assert heights.dtype == np.float32
    assert profile["width"] == 64
    assert profile["height"] == 48
    assert profile["dtype"] == "float32"
    assert profile["driver"] == "GTiff"
    np.testing.assert_array_equal(heights, generate_height_map(noisy_image, 2.0, 64, 48))


def test_generate_height_map_from_file_rescales_transform(synthetic_image_path):
    heights, profile = core.generate_height_map_from_file(
        synthetic_image_path, scale_factor=1.0, output_width=32, output_height=96
    )
    assert heights.shape == (96, 32)
    transform = profile["transform"]
    # 1 m input pixels
    assert transform.a == pytest.approx(2.0)
    assert transform.e == pytest.approx(-0.5)
    assert transform.c == pytest.approx(500000)
    assert transform.f == pytest.approx(4000000)


def test_generate_height_map_from_file_passes_parameters(synthetic_image_path, noisy_image):
    params = HeightMapParameters(diameter=3, amount=0.5)
    heights, _ = core.generate_height_map_from_file(synthetic_image_path, 1.0, 20, 10, params)
    np.testing.assert_array_equal(heights, generate_height_map(noisy_image, 1.0, 20, 10, params))


def test_save_height_map_round_trip(synthetic_image_path, tmp_path):
    out_path = str(tmp_path / "heights.tif")
    heights, profile = core.generate_height_map_from_file(synthetic_image_path, 0.75, 40, 30)
    core.save_height_map(heights, profile, out_path)
    assert os.path.isfile(out_path)
    with rasterio.open(out_path) as src:
        assert src.count == 1
        assert src.dtypes[0] == "float32"
        assert src.crs.to_epsg() == 32631
        np.testing.assert_array_equal(src.read(1), heights)


def test_save_height_map_shape_mismatch(synthetic_image_path, tmp_path):
    heights, profile = core.generate_height_map_from_file(synthetic_image_path, 1.0, 40, 30)
    with pytest.raises(ConfigurationError):
        core.save_height_map(heights[:10], profile, str(tmp_path / "bad.tif"))


def test_format_height_map():
    heights = np.array([[1.0, 2.5], [3.125, 400.0]], dtype=np.float32)
    assert core.format_height_map(heights) == "1.00\t2.50\n3.12\t400.00"


def test_main_cli(gradient_image_path, tmp_path, capsys):
    out_dir = str(tmp_path / "out")
    out_path = os.path.join(out_dir, "gradient_heightmap.tif")
    assert core.main_cli(["--image", gradient_image_path, "--out_dir", out_dir, "--scale", "13.25", "--print"]) is None
    assert os.path.isfile(out_path)

    captured = capsys.readouterr().out
    lines = captured.splitlines()
    assert lines[0] == "291.50\t371.00\t424.00\t530.00\t622.75"
    assert lines[4] == "450.50\t543.25\t662.50\t702.25\t795.00"
    assert f"Height map generated at: {out_path}" in captured

    with rasterio.open(out_path) as src:
        assert src.read(1)[2, 2] == pytest.approx(530.0)


def test_main_cli_output_size(gradient_image_path, tmp_path):
    out_path = core.run_cli(
        ["--image", gradient_image_path, "--out_dir", str(tmp_path), "--width", "9", "--height", "3"]
    )
    with rasterio.open(out_path) as src:
        assert (src.height, src.width) == (3, 9)


@pytest.mark.parametrize(
    "extra_args",
    [
        ["--diameter", "4"],
        ["--sigma_color", "0"],
        ["--width", "0"],
    ],
)
def test_main_cli_invalid_arguments(gradient_image_path, tmp_path, extra_args):
    with pytest.raises(SystemExit) as excinfo:
        core.main_cli(["--image", gradient_image_path, "--out_dir", str(tmp_path)] + extra_args)
    assert excinfo.value.code == 2


def test_main_cli_missing_image(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        core.main_cli(["--image", str(tmp_path / "missing.png"), "--out_dir", str(tmp_path)])
    assert excinfo.value.code == 2


@pytest.fixture
def restore_package_log_level():
    package_logger = logging.getLogger("img2heightmap")
    level = package_logger.level
    yield package_logger
    package_logger.setLevel(level)


def test_run_cli_verbose_logging(gradient_image_path, tmp_path, caplog, restore_package_log_level):
    core.run_cli(["--image", gradient_image_path, "--out_dir", str(tmp_path), "--verbose"])
    assert restore_package_log_level.level == logging.DEBUG
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("Unsharp mask (amount=1.5) done") for message in messages)


def test_run_cli_quiet_by_default(gradient_image_path, tmp_path, restore_package_log_level):
    core.run_cli(["--image", gradient_image_path, "--out_dir", str(tmp_path)])
    assert restore_package_log_level.level == logging.WARNING


def _run_python(code, *args):
    return subprocess.run([sys.executable, "-c", code, *args], capture_output=True, text=True)


def test_main_cli_exit_status_success(gradient_image_path, tmp_path):
    """The console script wrapper calls sys.exit(main_cli())."""
    out_dir = str(tmp_path / "out")
    result = _run_python(
        "import sys; from img2heightmap.core import main_cli; sys.exit(main_cli(sys.argv[1:]))",
        "--image",
        gradient_image_path,
        "--out_dir",
        out_dir,
    )
    assert result.returncode == 0, result.stderr
    assert "Height map generated at" in result.stdout
    assert "Height map generated at" not in result.stderr
    assert os.path.isfile(os.path.join(out_dir, "gradient_heightmap.tif"))


def test_main_cli_exit_status_error(gradient_image_path, tmp_path):
    result = _run_python(
        "import sys; from img2heightmap.core import main_cli; sys.exit(main_cli(sys.argv[1:]))",
        "--image",
        gradient_image_path,
        "--out_dir",
        str(tmp_path),
        "--diameter",
        "4",
    )
    assert result.returncode == 2
    assert "diameter" in result.stderr


def test_python_module_entry_point(gradient_image_path, tmp_path):
    out_dir = str(tmp_path / "out")
    result = subprocess.run(
        [sys.executable, "-m", "img2heightmap", "--image", gradient_image_path, "--out_dir", out_dir, "--print"],
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, result.stderr
    assert result.stdout.splitlines()[0] == "291.50\t371.00\t424.00\t530.00\t622.75"
    assert os.path.isfile(os.path.join(out_dir, "gradient_heightmap.tif"))
