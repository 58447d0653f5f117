"""
Overlay Rendering – Digits Back Onto the Photo
==============================================

Digits are drawn on a white square canvas the size of the rectified
board, warped back onto the detected quadrangle with the inverse
homography, and multiplied into the original image.  White (255) is the
identity for the multiply, so only glyph pixels darken the photo.

The warp pads everything outside the quadrangle with 0.  A white
coverage mask warped with the same matrix tells which pixels the canvas
actually reached; the uncovered remainder is lifted back to white so the
padding (and its anti-aliased rim) leaves the photo untouched.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from sudoku_vision.models.grid_detector import CELL_SIZE, perspective_matrix
from sudoku_vision.models.quadrangle import Quadrangle

log = logging.getLogger(__name__)


def render_overlay(
    image: np.ndarray,
    quadrangle: Quadrangle,
    digit_grid: np.ndarray,
    cell_size: int = CELL_SIZE,
    givens: Optional[np.ndarray] = None,
    color: Tuple[int, ...] = (0, 0, 0),
    font_scale: Optional[float] = None,
    thickness: int = 2,
) -> np.ndarray:
    """Project *digit_grid* onto *image* inside *quadrangle*.

    Parameters
    ----------
    image : np.ndarray
        Original ``uint8`` image (grayscale, BGR or BGRA).
    quadrangle : Quadrangle
        Grid corners in *image* coordinates.
    digit_grid : np.ndarray
        ``n×n`` integer grid; values ``<= 0`` are not drawn.
    cell_size : int
        Cell side of the intermediate square canvas.
    givens : np.ndarray, optional
        ``n×n`` grid of digits already printed on the board.  Cells with a
        non-zero given are skipped, so passing the recognised board with a
        solution draws only the filled-in digits.
    color : tuple
        Glyph colour (BGR).  Multiplicative blending means dark colours
        read best.
    font_scale : float, optional
        Defaults to ``cell_size / 28``.
    thickness : int
        Glyph stroke thickness.

    Returns
    -------
    np.ndarray
        Annotated copy of *image*.
    """
    grid = np.asarray(digit_grid)
    n = grid.shape[0]
    size = cell_size * n
    h, w = image.shape[:2]
    channels = 1 if image.ndim == 2 else image.shape[2]
    scale = font_scale if font_scale is not None else cell_size / 28.0

    canvas_shape = (size, size) if image.ndim == 2 else (size, size, channels)
    canvas = np.full(canvas_shape, 255, dtype=np.uint8)
    glyph_color = tuple(color[:channels]) + (255,) * max(0, channels - len(color))

    drawn = 0
    for row in range(n):
        for col in range(n):
            digit = int(grid[row, col])
            if digit <= 0:
                continue
            if givens is not None and int(givens[row, col]) != 0:
                continue
            # Fixed offset, not metric-centred
            x = col * cell_size + cell_size // 4
            y = row * cell_size + (cell_size * 3) // 4
            cv2.putText(
                canvas, str(digit), (x, y),
                cv2.FONT_HERSHEY_SIMPLEX, scale, glyph_color, thickness,
                cv2.LINE_AA,
            )
            drawn += 1

    if drawn == 0:
        log.debug("Nothing to overlay")
        return image.copy()

    inverse = perspective_matrix(Quadrangle.square(size), quadrangle)
    glyphs = cv2.warpPerspective(
        canvas, inverse, (w, h),
        borderMode=cv2.BORDER_CONSTANT, borderValue=0,
    )
    coverage = cv2.warpPerspective(
        np.full(canvas_shape, 255, dtype=np.uint8), inverse, (w, h),
        borderMode=cv2.BORDER_CONSTANT, borderValue=0,
    )

    layer = glyphs.astype(np.float32) + (255.0 - coverage.astype(np.float32))
    layer = np.clip(layer, 0.0, 255.0) / 255.0

    annotated = image.astype(np.float32) * layer
    return np.clip(annotated + 0.5, 0, 255).astype(np.uint8)
