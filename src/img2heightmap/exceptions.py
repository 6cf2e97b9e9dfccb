"""
Errors raised by the height map pipeline.
"""


class HeightMapError(Exception):
    """Base class for all height map errors."""


class ConfigurationError(HeightMapError, ValueError):
    """A filter parameter, output size or input encoding is invalid."""


class DegenerateInputError(HeightMapError, ValueError):
    """The input is not a usable 2D grid (wrong rank or no samples)."""
