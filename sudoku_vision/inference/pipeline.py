"""
Inference Pipeline – End-to-End Photo → Digits
==============================================

This is the single-call entry point for production inference.

Pipeline stages (strictly in this order, each fully materialised before
the next starts):
  1. Grid location       – largest 4-gon, accepted above 35 % of the frame
  2. Rectification       – warp to 252×252 (done inside the locator)
  3. Cell sampling       – 9×9 grid → 81 cells (28×28) in [0, 1]
  4. Batch recognition   – one forward pass, arg-max per cell
  5. Solving             – optional backtracking solve of the givens
  6. Overlay             – optional projection of the solved or read digits

``GridNotFound`` from stage 1 propagates to the caller and nothing
downstream runs.  Without a solution the overlay draws the recognised digits
instead.

Optional extras:
  • Debug visualisation of the rectified board
  • ONNX export helper
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
import torch

from sudoku_vision.inference.board_utils import grid_to_line, solve_grid, validate_givens
from sudoku_vision.inference.overlay import render_overlay
from sudoku_vision.inference.recognizer import (
    InferenceEngine,
    OnnxEngine,
    TorchEngine,
    recognize_with_confidence,
)
from sudoku_vision.models.classifier import DigitClassifier
from sudoku_vision.models.grid_detector import (
    CELL_SIZE,
    CELLS_PER_DIM,
    locate_grid,
    sample_cells,
)
from sudoku_vision.models.quadrangle import Quadrangle

log = logging.getLogger(__name__)


# ── Result dataclass ──────────────────────────────────────────────────

@dataclass
class RecognitionResult:
    """Full output of the recognition pipeline."""
    quadrangle: Quadrangle                         # Grid corners in the photo
    board_image: np.ndarray                        # Rectified board
    digits: np.ndarray                             # n×n, 0 = empty
    confidence: np.ndarray                         # n×n softmax maxima
    is_valid: bool                                 # Givens obey Sudoku rules
    violations: List[str]                          # Rule violations (if any)
    solution: Optional[np.ndarray] = None          # Solved n×n board
    annotated: Optional[np.ndarray] = None         # Photo with digit overlay

    @property
    def line(self) -> str:
        """Recognised board as an 81-character line (``.`` = empty)."""
        return grid_to_line(self.digits)

    @property
    def mean_confidence(self) -> float:
        return float(self.confidence.mean())


# ── Pipeline class ─────────────────────────────────────────────────────

class SudokuRecognitionPipeline:
    """End-to-end Sudoku photo → digit grid pipeline.

    Parameters
    ----------
    classifier_weights : str | Path, optional
        Trained ``DigitClassifier`` ``.pt`` checkpoint.
    onnx_model : str | Path, optional
        Exported ONNX model; used instead of the checkpoint when given.
    engine : InferenceEngine, optional
        Pre-built engine; takes precedence over both paths above.
    cell_size : int
        Cell side in pixels (classifier input size).
    cells_per_dim : int
        Cells along each board edge.
    device : str
        ``"cpu"`` or ``"cuda"`` for the torch engine.
    """

    def __init__(
        self,
        classifier_weights: Optional[str | Path] = None,
        onnx_model: Optional[str | Path] = None,
        engine: Optional[InferenceEngine] = None,
        cell_size: int = CELL_SIZE,
        cells_per_dim: int = CELLS_PER_DIM,
        device: str = "cpu",
    ) -> None:
        self.cell_size = cell_size
        self.cells_per_dim = cells_per_dim
        self.warp_size = cell_size * cells_per_dim

        if engine is not None:
            self.engine = engine
            source = type(engine).__name__
        elif onnx_model is not None:
            self.engine = OnnxEngine(onnx_model)
            source = str(onnx_model)
        elif classifier_weights is not None:
            self.engine = TorchEngine.from_checkpoint(classifier_weights, device=device)
            source = str(classifier_weights)
        else:
            raise ValueError("One of classifier_weights, onnx_model or engine is required")

        log.info(
            "Pipeline ready  model=%s  cells=%dx%d  cell_size=%d",
            source, cells_per_dim, cells_per_dim, cell_size,
        )

    # ── Public API ─────────────────────────────────────────────────────

    def recognize(
        self,
        image: np.ndarray,
        solve: bool = True,
        annotate: bool = True,
    ) -> RecognitionResult:
        """Run the full pipeline on a BGR image.

        Raises
        ------
        GridNotFound
            No grid is visible; retry with another frame.
        InferenceFailure
            The model failed.
        """
        # 1–2. Locate + rectify
        detection = locate_grid(image, dest_size=self.warp_size)

        # 3. Sample cells
        cells = sample_cells(detection.rectified, self.cell_size, self.cells_per_dim)

        # 4. Batch recognition
        digits, confidence = recognize_with_confidence(
            cells, self.engine, self.cells_per_dim,
        )
        del cells

        log.info("Recognised board: %s", grid_to_line(digits))

        if self.cells_per_dim == 9:
            is_valid, violations = validate_givens(digits)
        else:
            is_valid, violations = True, []

        result = RecognitionResult(
            quadrangle=detection.quadrangle,
            board_image=detection.rectified,
            digits=digits,
            confidence=confidence,
            is_valid=is_valid,
            violations=violations,
        )

        # 5. Solve
        if solve and is_valid and self.cells_per_dim == 9:
            result.solution = solve_grid(digits)

        # 6. Overlay: solved cells when a solution exists, else the digits read
        if annotate and result.solution is not None:
            result.annotated = render_overlay(
                image, detection.quadrangle, result.solution,
                cell_size=self.cell_size, givens=digits,
            )
        elif annotate:
            result.annotated = render_overlay(
                image, detection.quadrangle, digits, cell_size=self.cell_size,
            )

        return result

    # ── Debug visualisation ────────────────────────────────────────────

    def visualize(
        self,
        result: RecognitionResult,
        show: bool = True,
        save_path: Optional[str] = None,
    ) -> np.ndarray:
        """Draw recognised digits and confidence on the rectified board.

        Returns
        -------
        np.ndarray
            Annotated BGR image.
        """
        vis = result.board_image.copy()
        if vis.ndim == 2:
            vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)
        scale = 4
        vis = cv2.resize(vis, None, fx=scale, fy=scale, interpolation=cv2.INTER_NEAREST)
        cell = self.cell_size * scale

        for row in range(self.cells_per_dim):
            for col in range(self.cells_per_dim):
                x = col * cell
                y = row * cell
                digit = int(result.digits[row, col])
                conf = float(result.confidence[row, col])

                # Colour: green if confident, yellow if marginal, red if low
                if conf >= 0.8:
                    color = (0, 200, 0)
                elif conf >= 0.5:
                    color = (0, 200, 255)
                else:
                    color = (0, 0, 255)

                label = str(digit) if digit > 0 else "."
                cv2.putText(
                    vis, label,
                    (x + 4, y + cell // 2 + 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2,
                )
                cv2.putText(
                    vis, f"{conf:.0%}",
                    (x + 4, y + cell - 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.35, color, 1,
                )
                cv2.rectangle(vis, (x, y), (x + cell, y + cell), (80, 80, 80), 1)

        if save_path:
            cv2.imwrite(save_path, vis)
            log.info("Saved debug image to %s", save_path)

        if show:
            cv2.imshow("Sudoku Recognition", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()

        return vis


# ── ONNX Export ────────────────────────────────────────────────────────

def export_to_onnx(
    model: DigitClassifier,
    output_path: str = "digit_classifier.onnx",
    cell_size: int = CELL_SIZE,
) -> None:
    """Export the classifier to ONNX with a dynamic batch axis.

    The exported graph takes ``cells`` of shape ``(B, 1, cell_size,
    cell_size)`` and returns ``logits`` of shape ``(B, num_classes)``, so
    it can be loaded straight into ``OnnxEngine``.
    """
    model.eval()
    dummy = torch.rand(1, 1, cell_size, cell_size)

    torch.onnx.export(
        model,
        dummy,
        output_path,
        opset_version=13,
        input_names=["cells"],
        output_names=["logits"],
        dynamic_axes={
            "cells": {0: "batch_size"},
            "logits": {0: "batch_size"},
        },
        dynamo=False,
    )
    log.info("Exported ONNX model to %s", output_path)
