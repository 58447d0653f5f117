"""
Grid Detection – Contour Search, Rectification & Cell Sampling
==============================================================

Strategy:
  • **Threshold** – Gaussian adaptive threshold (block 11, offset 10)
    turns the photo into a binary map where grid lines are black.
  • **Contours** – every outer and hole contour is simplified with
    ``approxPolyDP`` (tolerance 10 px).  Among the 4-vertex polygons the
    one with the largest area wins.
  • **Acceptance** – the winner is only treated as a grid when it covers
    more than 35 % of the frame.  Anything smaller means "no grid in
    view" and the caller should try the next frame.
  • **Rectification** – the accepted quadrangle is warped onto an
    axis-aligned ``S×S`` square (TL→(0,0), TR→(S,0), BL→(0,S), BR→(S,S)).
  • **Sampling** – the square is cut into ``n×n`` cells of ``c×c`` pixels,
    visited row by row, and flattened into one ``(n², c²)`` float buffer
    scaled to ``[0, 1]``.

Design notes:
  • ``locate_grid`` is the single public entry point for detection; it
    only warps once the candidate has passed the area test.
  • ``findContours`` traces the outline of the background region along
    the image border.  That outline is always a perfect 4-gon covering
    the whole frame, so contours touching all four image edges are
    dropped before the area comparison.  A grid outline that starts even
    one pixel inside the frame is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from sudoku_vision.errors import DegenerateQuadrangle, GridNotFound, InvalidDimensions
from sudoku_vision.models.quadrangle import Quadrangle

log = logging.getLogger(__name__)


CELL_SIZE: int = 28                          # Classifier input side (MNIST-sized)
CELLS_PER_DIM: int = 9                       # Sudoku board is 9×9
WARP_SIZE: int = CELL_SIZE * CELLS_PER_DIM   # 252

THRESHOLD_BLOCK_SIZE: int = 11
THRESHOLD_OFFSET: int = 10
APPROX_EPSILON: float = 10.0
GRID_AREA_RATIO: float = 0.35


# ── Data classes ───────────────────────────────────────────────────────

@dataclass
class Candidate:
    """A quadrilateral contour and its enclosed area."""
    quadrangle: Quadrangle
    area: float


@dataclass
class GridDetection:
    """Result of grid location."""
    quadrangle: Quadrangle       # Corners in the source image
    rectified: np.ndarray        # Perspective-normalised S×S raster
    area: float                  # Contour area of the accepted candidate


# ── Contour classification ─────────────────────────────────────────────

def select_largest_quadrangle(
    polygons: Iterable[np.ndarray],
    area_fn: Callable[[np.ndarray], float] = cv2.contourArea,
) -> Optional[Candidate]:
    """Return the 4-vertex polygon with the greatest area, or ``None``.

    Polygons are visited in the given order and the running best is only
    replaced by a strictly larger area, so the first of several equal
    areas wins.
    """
    best: Optional[Candidate] = None

    for polygon in polygons:
        if len(polygon) != 4:
            continue

        area = float(area_fn(polygon))
        if area <= (best.area if best is not None else 0.0):
            continue

        try:
            quad = Quadrangle.from_points(np.asarray(polygon))
        except DegenerateQuadrangle:
            continue
        best = Candidate(quadrangle=quad, area=area)

    return best


def is_plausible_grid(area: float, width: int, height: int) -> bool:
    """Area-ratio acceptance test: ``area / (width × height) > 0.35``."""
    frame_area = width * height
    if frame_area <= 0:
        return False
    return area / frame_area > GRID_AREA_RATIO


# ── Public API ─────────────────────────────────────────────────────────

def locate_grid(
    image: np.ndarray,
    dest_size: int = WARP_SIZE,
    border_value: float = 0,
) -> GridDetection:
    """Find the Sudoku grid in *image* and rectify it.

    Parameters
    ----------
    image : np.ndarray
        BGR, BGRA or single-channel ``uint8`` image.
    dest_size : int
        Side length of the rectified square.
    border_value : float
        Fill value for pixels that fall outside the source image.

    Returns
    -------
    GridDetection

    Raises
    ------
    GridNotFound
        No quadrilateral contour, or the largest covers ≤ 35 % of the frame.
    """
    h, w = image.shape[:2]

    gray = to_gray(image)
    binary = cv2.adaptiveThreshold(
        gray, 255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY,
        THRESHOLD_BLOCK_SIZE, THRESHOLD_OFFSET,
    )
    del gray

    contours, hierarchy = cv2.findContours(
        binary, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE,
    )
    del binary, hierarchy

    polygons = [
        cv2.approxPolyDP(cnt, APPROX_EPSILON, True)
        for cnt in contours
        if not _spans_frame(cnt, w, h)
    ]
    del contours

    candidate = select_largest_quadrangle(polygons)
    del polygons

    if candidate is None:
        log.info("No quadrilateral contour found")
        raise GridNotFound("No quadrilateral contour found")

    ratio = candidate.area / float(w * h)
    if not is_plausible_grid(candidate.area, w, h):
        log.info("Largest quadrilateral covers %.1f%% of the frame – rejected", ratio * 100)
        raise GridNotFound(
            f"Largest quadrilateral covers {ratio:.1%} of the frame "
            f"(needs > {GRID_AREA_RATIO:.0%})"
        )

    log.debug("Grid accepted  area=%.0f  ratio=%.3f", candidate.area, ratio)
    rectified = rectify(image, candidate.quadrangle, dest_size, border_value=border_value)
    return GridDetection(
        quadrangle=candidate.quadrangle,
        rectified=rectified,
        area=candidate.area,
    )


# ── Rectification ──────────────────────────────────────────────────────

def perspective_matrix(src: Quadrangle, dst: Quadrangle) -> np.ndarray:
    """3×3 homography mapping each corner of *src* onto the same role in *dst*."""
    return cv2.getPerspectiveTransform(src.as_array(), dst.as_array())


def rectify(
    image: np.ndarray,
    quadrangle: Quadrangle,
    size: int,
    border_value: float = 0,
    interpolation: int = cv2.INTER_LINEAR,
) -> np.ndarray:
    """Warp *quadrangle* of *image* onto an axis-aligned ``size×size`` square."""
    matrix = perspective_matrix(quadrangle, Quadrangle.square(size))
    return cv2.warpPerspective(
        image, matrix, (size, size),
        flags=interpolation,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border_value,
    )


def project_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Apply a homography to an ``(N, 2)`` array of points."""
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(pts, matrix).reshape(-1, 2)


# ── Cell sampling ──────────────────────────────────────────────────────

def sample_cells(
    rectified: np.ndarray,
    cell_size: int = CELL_SIZE,
    cells_per_dim: int = CELLS_PER_DIM,
) -> np.ndarray:
    """Cut a rectified board into ``cells_per_dim²`` cells.

    The output order is row-major over cells (top row first, left to
    right) and row-major inside each cell, i.e. cell ``i`` is board
    position ``(i // n, i % n)``.

    Parameters
    ----------
    rectified : np.ndarray
        Square raster of side ``cell_size * cells_per_dim``.  Colour
        rasters are converted to grayscale first.
    cell_size : int
        Side of one cell in pixels.
    cells_per_dim : int
        Cells along each board edge.

    Returns
    -------
    np.ndarray
        ``float32`` array of shape ``(cells_per_dim², cell_size²)`` with
        values in ``[0, 1]``.

    Raises
    ------
    InvalidDimensions
        If the raster is not exactly ``cell_size * cells_per_dim`` square.
    """
    if cell_size <= 0 or cells_per_dim <= 0:
        raise InvalidDimensions(
            f"cell_size and cells_per_dim must be positive "
            f"(got {cell_size}, {cells_per_dim})"
        )

    gray = to_gray(rectified)
    h, w = gray.shape[:2]
    side = cell_size * cells_per_dim
    if h != side or w != side:
        raise InvalidDimensions(
            f"Rectified raster is {w}×{h}, expected {side}×{side} "
            f"({cells_per_dim} cells of {cell_size} px)"
        )

    cells: list[np.ndarray] = []
    for row in range(cells_per_dim):
        for col in range(cells_per_dim):
            y1 = row * cell_size
            x1 = col * cell_size
            cell = gray[y1:y1 + cell_size, x1:x1 + cell_size]
            cells.append(cell.reshape(-1))

    tensor = np.stack(cells).astype(np.float32) / 255.0
    return np.ascontiguousarray(tensor)


# ── Helpers ────────────────────────────────────────────────────────────

def to_gray(image: np.ndarray) -> np.ndarray:
    """Single-channel view of a BGR / BGRA / grayscale image."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def _spans_frame(contour: np.ndarray, w: int, h: int) -> bool:
    """True for the outline ``findContours`` traces along the image border."""
    x, y, bw, bh = cv2.boundingRect(contour)
    return x == 0 and y == 0 and x + bw == w and y + bh == h
