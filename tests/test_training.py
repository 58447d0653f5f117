from __future__ import annotations

import random

import cv2
import numpy as np
import pytest
import torch

from sudoku_vision.models.classifier import EMPTY_CLASS, NUM_CLASSES, DigitClassifier
from sudoku_vision.training.dataset import (
    CellDatasetFromImages,
    SyntheticCellDataset,
    get_val_transform,
)
from sudoku_vision.training.train import train


def test_synthetic_cells_match_sampler_format():
    random.seed(0)
    ds = SyntheticCellDataset(samples_per_epoch=20, transform=get_val_transform())
    assert len(ds) == 20
    for i in range(len(ds)):
        tensor, label = ds[i]
        assert tensor.shape == (1, 28, 28)
        assert 0.0 <= float(tensor.min()) and float(tensor.max()) <= 1.0
        assert 0 <= label < NUM_CLASSES


def test_empty_fraction_one_gives_only_empty_cells():
    ds = SyntheticCellDataset(samples_per_epoch=10, empty_fraction=1.0)
    assert {ds[i][1] for i in range(len(ds))} == {EMPTY_CLASS}


def test_cells_from_image_tree(tmp_path):
    for label in (0, 7):
        folder = tmp_path / str(label)
        folder.mkdir()
        cv2.imwrite(str(folder / "cell.png"), np.full((28, 28), 255, dtype=np.uint8))

    ds = CellDatasetFromImages(tmp_path)
    assert [label for _, label in ds.samples] == [0, 7]
    tensor, _ = ds[1]
    assert tensor.shape == (1, 28, 28)


def test_empty_image_tree_is_rejected(tmp_path):
    with pytest.raises(FileNotFoundError):
        CellDatasetFromImages(tmp_path)


def test_short_training_run_writes_loadable_checkpoints(tmp_path):
    torch.manual_seed(0)
    best = train(
        epochs=1,
        batch_size=16,
        samples_per_epoch=32,
        val_samples=16,
        output_dir=str(tmp_path),
        device="cpu",
    )
    assert best.exists()
    assert (tmp_path / "last_checkpoint.pt").exists()

    model = DigitClassifier.load_from_checkpoint(str(best), device=torch.device("cpu"))
    assert model(torch.zeros(2, 1, 28, 28)).shape == (2, NUM_CLASSES)
