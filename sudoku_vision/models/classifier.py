"""
Digit Classifier – Small CNN for 28×28 Sudoku Cells
===================================================

Architectural decisions:
  • Cells are tiny grayscale crops, so a two-block CNN (~100 k params)
    is enough and keeps the 81-cell batch fast on CPU.
  • Input is ``(B, 1, 28, 28)`` with pixels in ``[0, 1]`` – exactly what
    ``sample_cells`` produces, no mean/std normalisation.
  • Class ``0`` means "empty cell"; classes ``1``–``9`` are digits.
  • ``forward`` returns raw logits; softmax is applied separately so that
    ``CrossEntropyLoss`` can consume the logits directly during training.
"""

from __future__ import annotations

from typing import Optional

import torch
import torch.nn as nn


# ── Canonical class list (index ↔ label mapping) ──────────────────────

CLASS_NAMES: list[str] = ["empty"] + [str(d) for d in range(1, 10)]

NUM_CLASSES: int = len(CLASS_NAMES)

EMPTY_CLASS: int = 0


# ── Model ──────────────────────────────────────────────────────────────

class DigitClassifier(nn.Module):
    """Two conv blocks + MLP head for single-cell digit recognition.

    Parameters
    ----------
    num_classes : int
        Number of output classes (default 10).
    dropout : float
        Dropout probability used in the classifier head.
    """

    def __init__(
        self,
        num_classes: int = NUM_CLASSES,
        dropout: float = 0.3,
    ) -> None:
        super().__init__()

        self.features = nn.Sequential(
            nn.Conv2d(1, 32, kernel_size=3, padding=1),
            nn.BatchNorm2d(32),
            nn.ReLU(inplace=True),
            nn.Conv2d(32, 32, kernel_size=3, padding=1),
            nn.ReLU(inplace=True),
            nn.MaxPool2d(2),                     # 28 → 14
            nn.Conv2d(32, 64, kernel_size=3, padding=1),
            nn.BatchNorm2d(64),
            nn.ReLU(inplace=True),
            nn.MaxPool2d(2),                     # 14 → 7
        )
        self.classifier = nn.Sequential(
            nn.Flatten(),
            nn.Dropout(p=dropout),
            nn.Linear(64 * 7 * 7, 128),
            nn.ReLU(inplace=True),
            nn.Dropout(p=dropout),
            nn.Linear(128, num_classes),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Return **logits** of shape ``(B, num_classes)``."""
        return self.classifier(self.features(x))

    def predict_proba(self, x: torch.Tensor) -> torch.Tensor:
        """Return softmax probabilities of shape ``(B, num_classes)``."""
        with torch.no_grad():
            logits = self.forward(x)
            return torch.softmax(logits, dim=1)

    @classmethod
    def load_from_checkpoint(
        cls,
        path: str,
        device: Optional[torch.device] = None,
        **kwargs,
    ) -> "DigitClassifier":
        """Convenience loader that handles map_location automatically."""
        if device is None:
            device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        model = cls(**kwargs)
        state = torch.load(path, map_location=device, weights_only=True)
        model.load_state_dict(state)
        model.to(device)
        model.eval()
        return model
