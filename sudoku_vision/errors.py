"""
Error taxonomy for the recognition pipeline.

``GridNotFound`` is expected and transient (try another frame).
``InferenceFailure`` points at the model or its runtime.
``InvalidDimensions`` is an integration bug and should never reach users.
"""

from __future__ import annotations


class SudokuVisionError(Exception):
    """Base class for all pipeline errors."""


class GridNotFound(SudokuVisionError):
    """No quadrilateral was found, or the best one is too small to be a grid."""


class DegenerateQuadrangle(SudokuVisionError, ValueError):
    """A quadrangle was requested from a point set that is not 4 points."""


class InvalidDimensions(SudokuVisionError, ValueError):
    """Raster size does not match ``cell_size * cells_per_dim``."""


class InferenceFailure(SudokuVisionError, RuntimeError):
    """The inference engine failed or returned an unexpected shape."""
