from __future__ import annotations

import asyncio

import numpy as np
import pytest
import torch

from conftest import CellValueEngine, indexed_board
from sudoku_vision.errors import InferenceFailure, InvalidDimensions
from sudoku_vision.inference.recognizer import (
    TorchEngine,
    recognize,
    recognize_async,
    recognize_with_confidence,
)
from sudoku_vision.models.classifier import NUM_CLASSES, DigitClassifier
from sudoku_vision.models.grid_detector import sample_cells


class FixedEngine:
    def __init__(self, output):
        self.output = output
        self.seen_shape = None

    def run(self, batch):
        self.seen_shape = batch.shape
        return self.output


class BrokenEngine:
    def run(self, batch):
        raise RuntimeError("device lost")


def test_prediction_i_lands_on_cell_i_div_9_mod_9(cell_value_engine):
    cells = sample_cells(indexed_board(), cell_size=28, cells_per_dim=9)
    digits = recognize(cells, cell_value_engine)

    assert digits.shape == (9, 9)
    for i in range(81):
        assert digits[i // 9, i % 9] == i % 10


def test_engine_receives_channel_first_batch():
    engine = FixedEngine(np.zeros((81, 10), dtype=np.float32))
    recognize(np.zeros((81, 784), dtype=np.float32), engine)
    assert engine.seen_shape == (81, 1, 28, 28)


def test_argmax_ties_pick_lowest_index():
    scores = np.zeros((4, 10), dtype=np.float32)
    scores[1, [3, 7]] = 2.0
    scores[2, 9] = 1.0
    scores[3, [5, 6]] = -1.0
    scores[3, :5] = -2.0
    scores[3, 7:] = -2.0
    digits = recognize(np.zeros((4, 16), dtype=np.float32), FixedEngine(scores))
    assert digits.tolist() == [[0, 3], [9, 5]]


def test_cells_per_dim_is_inferred_and_checked():
    engine = FixedEngine(np.zeros((16, 10), dtype=np.float32))
    assert recognize(np.zeros((16, 784)), engine).shape == (4, 4)

    with pytest.raises(InvalidDimensions):
        recognize(np.zeros((16, 784)), engine, cells_per_dim=3)

    with pytest.raises(InvalidDimensions):
        recognize(np.zeros((12, 784)), engine)

    with pytest.raises(InvalidDimensions):
        recognize(np.zeros((16, 780)), engine)


def test_confidence_is_softmax_maximum():
    scores = np.zeros((4, 2), dtype=np.float32)
    scores[0] = [0.0, np.log(3.0)]
    _, confidence = recognize_with_confidence(np.zeros((4, 4)), FixedEngine(scores))
    assert confidence.shape == (2, 2)
    assert confidence[0, 0] == pytest.approx(0.75)
    assert confidence[1, 1] == pytest.approx(0.5)


def test_engine_error_becomes_inference_failure():
    with pytest.raises(InferenceFailure) as info:
        recognize(np.zeros((81, 784)), BrokenEngine())
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.parametrize("bad_output", [
    np.zeros((80, 10)),
    np.zeros(81),
    np.zeros((81, 0)),
])
def test_shape_mismatch_becomes_inference_failure(bad_output):
    with pytest.raises(InferenceFailure):
        recognize(np.zeros((81, 784)), FixedEngine(bad_output))


def test_async_matches_sync():
    cells = sample_cells(indexed_board())
    engine = CellValueEngine()
    digits, confidence = asyncio.run(recognize_async(cells, engine))
    sync_digits, sync_confidence = recognize_with_confidence(cells, engine)
    np.testing.assert_array_equal(digits, sync_digits)
    np.testing.assert_allclose(confidence, sync_confidence)


def test_async_engine_error_becomes_inference_failure():
    with pytest.raises(InferenceFailure):
        asyncio.run(recognize_async(np.zeros((81, 784)), BrokenEngine()))


def test_torch_engine_runs_digit_classifier():
    torch.manual_seed(0)
    engine = TorchEngine(DigitClassifier())
    cells = sample_cells(indexed_board())

    scores = engine.run(cells.reshape(81, 1, 28, 28))
    assert scores.shape == (81, NUM_CLASSES)

    digits = recognize(cells, engine)
    assert digits.shape == (9, 9)
    assert digits.min() >= 0 and digits.max() < NUM_CLASSES
