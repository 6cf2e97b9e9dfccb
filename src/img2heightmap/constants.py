"""
Constants for the image to height map pipeline.
"""

import numpy as np

# Bilateral filter defaults
BILATERAL_DIAMETER = 5  # Pixels, must be odd
BILATERAL_SIGMA_COLOR = 25.0  # Intensity units (0-255)
BILATERAL_SIGMA_SPACE = 5.0  # Pixels

# Unsharp mask strength. Typical values are between 1.0 and 2.0
UNSHARP_AMOUNT = 1.5

# 3x3 Gaussian kernel used as the unsharp mask reference blur
GAUSSIAN_KERNEL = np.array(
    [
        [1, 2, 1],
        [2, 4, 2],
        [1, 2, 1],
    ],
    dtype=np.int32,
)
GAUSSIAN_KERNEL_SUM = 16

# 8-bit intensity range
INTENSITY_MIN = 0
INTENSITY_MAX = 255

# Default intensity to height multiplier for the CLI
DEFAULT_SCALE_FACTOR = 1.0

# Suffix appended to the input file stem for the written height map
OUTPUT_SUFFIX = "_heightmap.tif"
