"""
Digit Recognition – Batched Inference + Arg-max
===============================================

The 81 sampled cells go through the model as a single
``(81, 1, 28, 28)`` batch.  Each output row is reduced to the index of its
largest value (first occurrence wins ties) and the flat predictions are
reshaped back to ``9×9`` so that prediction ``i`` lands on cell
``(i // 9, i % 9)`` – the inverse of the sampler's visiting order.

Two engines are provided:
  • ``TorchEngine`` – a ``DigitClassifier`` checkpoint.
  • ``OnnxEngine``  – an exported model run by ``onnxruntime``.

The engine call is the only blocking step of the pipeline.
``recognize_async`` awaits it in a worker thread; ``recognize`` is the
synchronous facade.
"""

from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np
import torch

from sudoku_vision.errors import InferenceFailure, InvalidDimensions
from sudoku_vision.models.classifier import DigitClassifier

log = logging.getLogger(__name__)


# ── Engines ────────────────────────────────────────────────────────────

class InferenceEngine(Protocol):
    """Anything that maps a ``(B, 1, H, W)`` batch to ``(B, num_classes)`` scores."""

    def run(self, batch: np.ndarray) -> np.ndarray:
        ...


class TorchEngine:
    """Runs a ``DigitClassifier`` in eval mode."""

    def __init__(self, model: DigitClassifier, device: str | torch.device = "cpu") -> None:
        self.device = torch.device(device)
        self.model = model.to(self.device)
        self.model.eval()

    @classmethod
    def from_checkpoint(cls, path: str | Path, device: str = "cpu") -> "TorchEngine":
        model = DigitClassifier.load_from_checkpoint(str(path), device=torch.device(device))
        return cls(model, device=device)

    @torch.no_grad()
    def run(self, batch: np.ndarray) -> np.ndarray:
        tensor = torch.from_numpy(np.ascontiguousarray(batch, dtype=np.float32))
        logits = self.model(tensor.to(self.device))
        return logits.cpu().numpy()


class OnnxEngine:
    """Runs an exported ONNX model with ``onnxruntime``."""

    def __init__(
        self,
        model_path: str | Path,
        providers: Optional[Sequence[str]] = None,
    ) -> None:
        import onnxruntime as ort  # lazy import – only needed for ONNX models

        self.session = ort.InferenceSession(
            str(model_path),
            providers=list(providers or ["CPUExecutionProvider"]),
        )
        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name

    def run(self, batch: np.ndarray) -> np.ndarray:
        feed = {self.input_name: np.ascontiguousarray(batch, dtype=np.float32)}
        return self.session.run([self.output_name], feed)[0]


# ── Public API ─────────────────────────────────────────────────────────

def recognize(
    cell_tensor: np.ndarray,
    engine: InferenceEngine,
    cells_per_dim: Optional[int] = None,
) -> np.ndarray:
    """Classify every cell and return the ``n×n`` digit grid.

    Parameters
    ----------
    cell_tensor : np.ndarray
        ``(n², c²)`` output of ``sample_cells``.
    engine : InferenceEngine
        Model runner.
    cells_per_dim : int, optional
        Board side ``n``; inferred from the batch size when omitted.

    Raises
    ------
    InferenceFailure
        The engine raised, or returned an output of the wrong shape.
    InvalidDimensions
        The cell tensor is not ``n²`` square cells.
    """
    digits, _ = recognize_with_confidence(cell_tensor, engine, cells_per_dim)
    return digits


def recognize_with_confidence(
    cell_tensor: np.ndarray,
    engine: InferenceEngine,
    cells_per_dim: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Like ``recognize`` but also return the per-cell softmax maximum."""
    batch, n = _to_batch(cell_tensor, cells_per_dim)
    try:
        output = engine.run(batch)
    except Exception as exc:
        raise InferenceFailure(f"Inference engine failed: {exc}") from exc
    return _reduce(output, batch.shape[0], n)


async def recognize_async(
    cell_tensor: np.ndarray,
    engine: InferenceEngine,
    cells_per_dim: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Awaitable variant; the engine runs in a worker thread."""
    batch, n = _to_batch(cell_tensor, cells_per_dim)
    try:
        output = await asyncio.to_thread(engine.run, batch)
    except Exception as exc:
        raise InferenceFailure(f"Inference engine failed: {exc}") from exc
    return _reduce(output, batch.shape[0], n)


# ── Helpers ────────────────────────────────────────────────────────────

def _to_batch(
    cell_tensor: np.ndarray,
    cells_per_dim: Optional[int],
) -> Tuple[np.ndarray, int]:
    """Reshape ``(n², c²)`` cells into a channel-first ``(n², 1, c, c)`` batch."""
    tensor = np.asarray(cell_tensor, dtype=np.float32)
    if tensor.ndim < 2:
        raise InvalidDimensions(f"Cell tensor must be 2-D, got shape {tensor.shape}")
    tensor = tensor.reshape(tensor.shape[0], -1)

    n_cells, n_pixels = tensor.shape
    n = cells_per_dim if cells_per_dim is not None else math.isqrt(n_cells)
    if n <= 0 or n * n != n_cells:
        raise InvalidDimensions(f"{n_cells} cells do not form a square board")

    cell_size = math.isqrt(n_pixels)
    if cell_size * cell_size != n_pixels:
        raise InvalidDimensions(f"{n_pixels} values per cell is not a square cell")

    return tensor.reshape(n_cells, 1, cell_size, cell_size), n


def _reduce(output: np.ndarray, n_cells: int, n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Arg-max each row and fold the flat batch back into an ``n×n`` grid."""
    scores = np.asarray(output, dtype=np.float64)
    if scores.ndim != 2 or scores.shape[0] != n_cells or scores.shape[1] == 0:
        raise InferenceFailure(
            f"Engine returned shape {scores.shape}, expected ({n_cells}, num_classes)"
        )

    predictions = np.argmax(scores, axis=1)

    shifted = scores - scores.max(axis=1, keepdims=True)
    probs = np.exp(shifted)
    probs /= probs.sum(axis=1, keepdims=True)
    confidence = probs.max(axis=1)

    log.debug("Recognised %d cells, mean confidence %.3f", n_cells, float(confidence.mean()))
    return predictions.reshape(n, n).astype(np.int64), confidence.reshape(n, n)
