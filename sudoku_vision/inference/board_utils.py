"""
Board Utilities – Formatting, Validation & Solving
==================================================

Responsibilities:
  1. Convert a recognised 9×9 digit grid into the 81-character "line"
     form (``.`` for empty cells) used for logging and solver input.
  2. Validate the givens against the Sudoku rules.
  3. Solve the board with a bounded backtracking search.

Legality checks implemented:
  • No repeated digit in a row.
  • No repeated digit in a column.
  • No repeated digit in a 3×3 box.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

log = logging.getLogger(__name__)

BOARD_SIZE: int = 9
BOX_SIZE: int = 3


# ── Formatting ─────────────────────────────────────────────────────────

def grid_to_line(grid: np.ndarray) -> str:
    """Flatten a digit grid row by row; cells below 1 become ``.``."""
    return "".join(str(int(d)) if d >= 1 else "." for d in np.asarray(grid).ravel())


def line_to_grid(line: str) -> np.ndarray:
    """Parse an 81-character line (``.`` or ``0`` for empty) into a 9×9 grid."""
    line = line.strip()
    if len(line) != BOARD_SIZE * BOARD_SIZE:
        raise ValueError(f"Expected {BOARD_SIZE * BOARD_SIZE} characters, got {len(line)}")
    values: List[int] = []
    for ch in line:
        if ch in ".0":
            values.append(0)
        elif ch.isdigit():
            values.append(int(ch))
        else:
            raise ValueError(f"Unexpected character {ch!r} in board line")
    return np.array(values, dtype=np.int64).reshape(BOARD_SIZE, BOARD_SIZE)


def format_board(grid: np.ndarray) -> str:
    """Multi-line board with box separators, for terminal output."""
    grid = np.asarray(grid)
    lines: List[str] = []
    for r in range(grid.shape[0]):
        if r and r % BOX_SIZE == 0:
            lines.append("------+-------+------")
        cells = [str(int(v)) if v > 0 else "." for v in grid[r]]
        groups = [" ".join(cells[c:c + BOX_SIZE]) for c in range(0, len(cells), BOX_SIZE)]
        lines.append(" | ".join(groups))
    return "\n".join(lines)


# ── Validation ─────────────────────────────────────────────────────────

def validate_givens(grid: np.ndarray) -> Tuple[bool, List[str]]:
    """Check that no given digit repeats in a row, column or box.

    Returns ``(is_valid, list_of_violation_strings)``.
    """
    board = _as_board(grid)
    violations: List[str] = []

    for i in range(BOARD_SIZE):
        row_vals = [int(v) for v in board[i, :] if v != 0]
        if len(row_vals) != len(set(row_vals)):
            violations.append(f"Row {i + 1} repeats a digit")

        col_vals = [int(v) for v in board[:, i] if v != 0]
        if len(col_vals) != len(set(col_vals)):
            violations.append(f"Column {i + 1} repeats a digit")

    for br in range(BOX_SIZE):
        for bc in range(BOX_SIZE):
            block = board[br * BOX_SIZE:(br + 1) * BOX_SIZE,
                          bc * BOX_SIZE:(bc + 1) * BOX_SIZE].ravel()
            block_vals = [int(v) for v in block if v != 0]
            if len(block_vals) != len(set(block_vals)):
                violations.append(f"Box ({br + 1},{bc + 1}) repeats a digit")

    return len(violations) == 0, violations


# ── Solving ────────────────────────────────────────────────────────────

def solve_grid(grid: np.ndarray, max_steps: int = 200_000) -> Optional[np.ndarray]:
    """Return a solved copy of *grid*, or ``None``.

    ``None`` means the givens conflict, the board has no solution, or the
    search gave up after *max_steps* placements.
    """
    board = _as_board(grid)
    is_valid, violations = validate_givens(board)
    if not is_valid:
        log.info("Board not solvable: %s", "; ".join(violations))
        return None

    working = board.copy()
    steps = [0]
    if _backtrack(working, steps, max_steps):
        log.debug("Solved in %d steps", steps[0])
        return working

    if steps[0] > max_steps:
        log.info("Solver stopped after %d steps", steps[0])
    else:
        log.info("Board has no solution")
    return None


def _backtrack(board: np.ndarray, steps: List[int], max_steps: int) -> bool:
    if steps[0] > max_steps:
        return False

    empty = np.argwhere(board == 0)
    if empty.size == 0:
        return True

    r, c = (int(v) for v in empty[0])
    for val in range(1, BOARD_SIZE + 1):
        if _can_place(board, r, c, val):
            board[r, c] = val
            steps[0] += 1
            if _backtrack(board, steps, max_steps):
                return True
            board[r, c] = 0

    return False


def _can_place(board: np.ndarray, row: int, col: int, val: int) -> bool:
    if val in board[row, :] or val in board[:, col]:
        return False
    r0 = (row // BOX_SIZE) * BOX_SIZE
    c0 = (col // BOX_SIZE) * BOX_SIZE
    return val not in board[r0:r0 + BOX_SIZE, c0:c0 + BOX_SIZE]


def _as_board(grid: np.ndarray) -> np.ndarray:
    board = np.asarray(grid, dtype=np.int64)
    if board.shape != (BOARD_SIZE, BOARD_SIZE):
        raise ValueError(f"Expected a {BOARD_SIZE}x{BOARD_SIZE} board, got {board.shape}")
    if board.min() < 0 or board.max() > BOARD_SIZE:
        raise ValueError("Board values must be in 0..9")
    return board
