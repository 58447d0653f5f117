from __future__ import annotations

import numpy as np
import pytest

from sudoku_vision.inference.board_utils import (
    format_board,
    grid_to_line,
    line_to_grid,
    solve_grid,
    validate_givens,
)

PUZZLE = "53..7....6..195....98....6.8...6...34..8.3..17...2...6.6....28....419..5....8..79"
SOLUTION = "534678912672195348198342567859761423426853791713924856961537284287419635345286179"


def test_line_round_trip():
    grid = line_to_grid(PUZZLE)
    assert grid.shape == (9, 9)
    assert grid[0, 0] == 5 and grid[0, 2] == 0
    assert grid_to_line(grid) == PUZZLE


def test_zero_counts_as_empty():
    assert grid_to_line(line_to_grid(PUZZLE.replace(".", "0"))) == PUZZLE


@pytest.mark.parametrize("line", ["123", PUZZLE[:-1] + "x"])
def test_bad_lines_are_rejected(line):
    with pytest.raises(ValueError):
        line_to_grid(line)


def test_solves_known_puzzle():
    solution = solve_grid(line_to_grid(PUZZLE))
    assert solution is not None
    assert grid_to_line(solution) == SOLUTION


def test_solver_does_not_mutate_input():
    grid = line_to_grid(PUZZLE)
    before = grid.copy()
    solve_grid(grid)
    np.testing.assert_array_equal(grid, before)


def test_duplicate_givens_are_reported():
    grid = line_to_grid(PUZZLE)
    grid[0, 8] = 5            # second 5 in row 1
    is_valid, violations = validate_givens(grid)
    assert not is_valid
    assert "Row 1 repeats a digit" in violations
    assert solve_grid(grid) is None


def test_column_and_box_duplicates():
    grid = np.zeros((9, 9), dtype=np.int64)
    grid[0, 0] = 7
    grid[4, 0] = 7
    grid[1, 1] = 3
    grid[2, 2] = 3
    _, violations = validate_givens(grid)
    assert "Column 1 repeats a digit" in violations
    assert "Box (1,1) repeats a digit" in violations


def test_step_limit_gives_up():
    assert solve_grid(np.zeros((9, 9), dtype=np.int64), max_steps=5) is None


def test_non_standard_board_is_rejected():
    with pytest.raises(ValueError):
        solve_grid(np.zeros((4, 4), dtype=np.int64))


def test_format_board_has_box_separators():
    text = format_board(line_to_grid(SOLUTION))
    lines = text.splitlines()
    assert len(lines) == 11
    assert lines[0] == "5 3 4 | 6 7 8 | 9 1 2"
    assert lines[3] == "------+-------+------"
