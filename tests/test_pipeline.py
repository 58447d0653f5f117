from __future__ import annotations

import numpy as np
import pytest
import torch

from conftest import draw_board
from sudoku_vision.errors import GridNotFound, InferenceFailure
from sudoku_vision.inference.pipeline import SudokuRecognitionPipeline, export_to_onnx
from sudoku_vision.inference.recognizer import TorchEngine
from sudoku_vision.models.classifier import DigitClassifier

MARKED = [(0, 1), (2, 7), (8, 0), (4, 4)]


def expected_digits() -> np.ndarray:
    grid = np.zeros((9, 9), dtype=np.int64)
    for row, col in MARKED:
        grid[row, col] = 1
    return grid


def test_digits_come_back_in_board_order(center_ink_engine):
    pipeline = SudokuRecognitionPipeline(engine=center_ink_engine)
    result = pipeline.recognize(draw_board(MARKED), solve=False, annotate=False)

    np.testing.assert_array_equal(result.digits, expected_digits())
    assert result.board_image.shape == (252, 252, 3)
    assert result.is_valid
    assert result.solution is None and result.annotated is None
    assert result.line.count("1") == len(MARKED)
    assert center_ink_engine.calls == 1


def test_solution_is_drawn_back_onto_the_photo(center_ink_engine):
    image = draw_board(MARKED)
    pipeline = SudokuRecognitionPipeline(engine=center_ink_engine)
    result = pipeline.recognize(image)

    assert result.solution is not None
    for row, col in MARKED:
        assert result.solution[row, col] == 1
    assert result.annotated is not None
    assert result.annotated.shape == image.shape
    assert (result.annotated < image).any()
    np.testing.assert_array_equal(result.annotated[:5, :], image[:5, :])


def test_read_digits_are_drawn_when_not_solving(center_ink_engine):
    image = draw_board(MARKED)
    pipeline = SudokuRecognitionPipeline(engine=center_ink_engine)
    result = pipeline.recognize(image, solve=False, annotate=True)

    assert result.solution is None
    assert result.annotated is not None
    assert result.annotated.shape == image.shape
    inside = (slice(10, 290), slice(10, 290))
    assert (result.annotated[inside] < image[inside]).any()
    # Cell (1, 1) was read as empty, so nothing is drawn there
    np.testing.assert_array_equal(result.annotated[45:68, 45:68], image[45:68, 45:68])
    np.testing.assert_array_equal(result.annotated[:5, :], image[:5, :])


def test_no_grid_stops_before_inference(center_ink_engine):
    pipeline = SudokuRecognitionPipeline(engine=center_ink_engine)
    with pytest.raises(GridNotFound):
        pipeline.recognize(np.full((300, 300, 3), 255, dtype=np.uint8))
    assert center_ink_engine.calls == 0


def test_conflicting_givens_skip_solving():
    class AllOnes:
        def run(self, batch):
            scores = np.zeros((batch.shape[0], 10), dtype=np.float32)
            scores[:, 1] = 1.0
            return scores

    pipeline = SudokuRecognitionPipeline(engine=AllOnes())
    result = pipeline.recognize(draw_board())
    assert not result.is_valid
    assert result.violations
    assert result.solution is None
    assert result.annotated is not None


def test_engine_failure_propagates():
    class Broken:
        def run(self, batch):
            raise RuntimeError("boom")

    pipeline = SudokuRecognitionPipeline(engine=Broken())
    with pytest.raises(InferenceFailure):
        pipeline.recognize(draw_board())


def test_a_model_source_is_required():
    with pytest.raises(ValueError):
        SudokuRecognitionPipeline()


def test_checkpoint_loading(tmp_path):
    torch.manual_seed(0)
    weights = tmp_path / "classifier.pt"
    torch.save(DigitClassifier().state_dict(), weights)

    pipeline = SudokuRecognitionPipeline(classifier_weights=weights)
    assert isinstance(pipeline.engine, TorchEngine)

    result = pipeline.recognize(draw_board(MARKED), solve=False)
    assert result.digits.shape == (9, 9)
    assert result.confidence.shape == (9, 9)


def test_visualize_returns_annotated_board(center_ink_engine, tmp_path):
    pipeline = SudokuRecognitionPipeline(engine=center_ink_engine)
    result = pipeline.recognize(draw_board(MARKED), solve=False)
    out = tmp_path / "debug.png"

    vis = pipeline.visualize(result, show=False, save_path=str(out))

    assert vis.shape == (252 * 4, 252 * 4, 3)
    assert out.exists()


def test_onnx_export_matches_torch(tmp_path):
    pytest.importorskip("onnx")
    pytest.importorskip("onnxruntime")
    from sudoku_vision.inference.recognizer import OnnxEngine

    torch.manual_seed(0)
    model = DigitClassifier()
    path = tmp_path / "digits.onnx"
    export_to_onnx(model, output_path=str(path))

    batch = np.random.default_rng(0).random((81, 1, 28, 28), dtype=np.float32)
    onnx_scores = OnnxEngine(path).run(batch)
    torch_scores = TorchEngine(model).run(batch)
    np.testing.assert_allclose(onnx_scores, torch_scores, rtol=1e-3, atol=1e-4)
