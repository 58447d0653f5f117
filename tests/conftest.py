from __future__ import annotations

from typing import Iterable, Tuple

import cv2
import numpy as np
import pytest


def draw_square(frame: int = 300, side: int = 280, border: int = 4) -> np.ndarray:
    """White frame with a centred black-bordered white square."""
    img = np.full((frame, frame, 3), 255, dtype=np.uint8)
    off = (frame - side) // 2
    far = off + side - 1
    cv2.rectangle(img, (off, off), (far, far), (0, 0, 0), -1)
    cv2.rectangle(img, (off + border, off + border), (far - border, far - border),
                  (255, 255, 255), -1)
    return img


def draw_board(
    marked: Iterable[Tuple[int, int]] = (),
    frame: int = 300,
    side: int = 280,
    border: int = 4,
    block: int = 20,
) -> np.ndarray:
    """Bordered square with a solid ink block in each marked (row, col) cell."""
    img = draw_square(frame, side, border)
    off = (frame - side) // 2
    pitch = side / 9
    half = block // 2
    for row, col in marked:
        cx = int(off + (col + 0.5) * pitch)
        cy = int(off + (row + 0.5) * pitch)
        cv2.rectangle(img, (cx - half, cy - half), (cx + half, cy + half), (0, 0, 0), -1)
    return img


class CenterInkEngine:
    """Predicts class 1 when the middle of a cell is mostly ink, else class 0."""

    def __init__(self) -> None:
        self.calls = 0

    def run(self, batch: np.ndarray) -> np.ndarray:
        self.calls += 1
        m = batch.shape[-1] // 2
        center = batch[:, 0, m - 6:m + 6, m - 6:m + 6]
        ink = (center < 0.5).mean(axis=(1, 2))
        scores = np.zeros((batch.shape[0], 10), dtype=np.float32)
        scores[:, 0] = 1.0
        scores[ink > 0.5, 1] = 5.0
        return scores


class CellValueEngine:
    """Decodes the fill value of each cell and one-hots it modulo 10."""

    def run(self, batch: np.ndarray) -> np.ndarray:
        values = np.rint(batch.reshape(batch.shape[0], -1).mean(axis=1) * 255).astype(int)
        scores = np.zeros((batch.shape[0], 10), dtype=np.float32)
        scores[np.arange(batch.shape[0]), values % 10] = 1.0
        return scores


def indexed_board(cell_size: int = 28, cells_per_dim: int = 9) -> np.ndarray:
    """Rectified raster whose cell ``i`` (row-major) is filled with value ``i``."""
    side = cell_size * cells_per_dim
    raster = np.zeros((side, side), dtype=np.uint8)
    for row in range(cells_per_dim):
        for col in range(cells_per_dim):
            y, x = row * cell_size, col * cell_size
            raster[y:y + cell_size, x:x + cell_size] = row * cells_per_dim + col
    return raster


@pytest.fixture
def center_ink_engine() -> CenterInkEngine:
    return CenterInkEngine()


@pytest.fixture
def cell_value_engine() -> CellValueEngine:
    return CellValueEngine()
