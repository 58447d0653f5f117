"""
Sudoku Cell Dataset – Synthetic Printed Digits (+ optional MNIST)
=================================================================

Design philosophy:
  We do **not** have labelled photo crops; printed Sudoku digits are
  regular enough to synthesise.  This module builds a training set by:

    1. **Rendering** – draw a digit 1–9 (or nothing, for class 0) with a
       random font size and offset on a light background.
    2. **Grid remnants** – the sampler cuts cells straight out of the
       rectified board, so real cells carry bits of grid line along their
       edges.  We draw random partial borders to match.
    3. **On-the-fly augmentation** – small affine jitter, blur and
       contrast changes simulate perspective residue and camera noise.

  Optionally handwritten digits from MNIST are mixed in (inverted to
  dark-on-light), which helps with boards filled in by hand.

Classes:
  0  empty
  1–9  the digit itself
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
import torch
from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps
from torch.utils.data import Dataset
from torchvision import datasets, transforms

from sudoku_vision.models.classifier import EMPTY_CLASS, NUM_CLASSES
from sudoku_vision.models.grid_detector import CELL_SIZE


# ── Transforms ─────────────────────────────────────────────────────────

def get_train_transform(img_size: int = CELL_SIZE) -> transforms.Compose:
    """Augmentation pipeline for training.

    Includes:
      • RandomAffine   – residual rotation / shift / scale after rectification
      • ColorJitter    – lighting robustness
      • GaussianBlur   – defocus simulation
    Pixels end up in ``[0, 1]`` without mean/std normalisation, matching
    ``sample_cells``.
    """
    return transforms.Compose([
        transforms.Resize((img_size, img_size)),
        transforms.RandomAffine(degrees=4, translate=(0.08, 0.08), scale=(0.9, 1.1), fill=255),
        transforms.ColorJitter(brightness=0.3, contrast=0.3),
        transforms.RandomApply([transforms.GaussianBlur(kernel_size=3, sigma=(0.1, 1.0))], p=0.3),
        transforms.ToTensor(),
    ])


def get_val_transform(img_size: int = CELL_SIZE) -> transforms.Compose:
    """Deterministic transform for validation / inference."""
    return transforms.Compose([
        transforms.Resize((img_size, img_size)),
        transforms.ToTensor(),
    ])


# ── Synthetic printed cells ───────────────────────────────────────────

class SyntheticCellDataset(Dataset):
    """Generates labelled cell images on-the-fly.

    Parameters
    ----------
    samples_per_epoch : int
        Virtual epoch length.
    img_size : int
        Output cell size (default 28).
    empty_fraction : float
        Share of samples rendered as empty cells (class 0).
    font_paths : sequence of str, optional
        TrueType fonts to sample from.  Pillow's built-in font is used
        when none are given.
    transform : optional
        Torchvision transform applied to each PIL cell image.
    """

    def __init__(
        self,
        samples_per_epoch: int = 10_000,
        img_size: int = CELL_SIZE,
        empty_fraction: float = 0.4,
        font_paths: Optional[Sequence[str]] = None,
        transform: Optional[transforms.Compose] = None,
    ) -> None:
        self.samples_per_epoch = samples_per_epoch
        self.img_size = img_size
        self.empty_fraction = empty_fraction
        self.font_paths = [str(p) for p in font_paths or []]
        self.transform = transform or get_train_transform(img_size)
        self._render_size = img_size * 4

    def __len__(self) -> int:
        return self.samples_per_epoch

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, int]:
        """Return ``(image_tensor, class_index)``."""
        if random.random() < self.empty_fraction:
            label = EMPTY_CLASS
        else:
            label = random.randint(1, NUM_CLASSES - 1)

        cell = self._render_cell(label)
        return self.transform(cell), label

    def _render_cell(self, label: int) -> Image.Image:
        """Draw one cell at 4× resolution, then downsample."""
        size = self._render_size
        bg = random.randint(170, 255)
        ink = random.randint(0, 80)
        img = Image.new("L", (size, size), bg)
        draw = ImageDraw.Draw(img)

        if label != EMPTY_CLASS:
            font = self._random_font(int(size * random.uniform(0.55, 0.8)))
            text = str(label)
            left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
            tw, th = right - left, bottom - top
            jitter = size // 10
            x = (size - tw) // 2 - left + random.randint(-jitter, jitter)
            y = (size - th) // 2 - top + random.randint(-jitter, jitter)
            draw.text((x, y), text, fill=ink, font=font)

        # Partial grid lines along the cell edges
        for edge in ("top", "bottom", "left", "right"):
            if random.random() < 0.35:
                width = random.randint(1, size // 12)
                line_ink = random.randint(0, 90)
                if edge == "top":
                    draw.rectangle([0, 0, size, width], fill=line_ink)
                elif edge == "bottom":
                    draw.rectangle([0, size - width, size, size], fill=line_ink)
                elif edge == "left":
                    draw.rectangle([0, 0, width, size], fill=line_ink)
                else:
                    draw.rectangle([size - width, 0, size, size], fill=line_ink)

        if random.random() < 0.3:
            img = img.filter(ImageFilter.GaussianBlur(radius=random.uniform(0.5, 2.0)))

        if random.random() < 0.3:
            noise = np.random.normal(0, random.uniform(3, 12), (size, size))
            arr = np.clip(np.asarray(img, dtype=np.float32) + noise, 0, 255)
            img = Image.fromarray(arr.astype(np.uint8))

        return img.resize((self.img_size, self.img_size), Image.BILINEAR)

    def _random_font(self, px: int) -> ImageFont.ImageFont:
        if self.font_paths:
            return ImageFont.truetype(random.choice(self.font_paths), px)
        return ImageFont.load_default(size=px)


# ── MNIST handwritten digits ──────────────────────────────────────────

class MnistCellDataset(Dataset):
    """MNIST digits 1–9 inverted to dark ink on a light background.

    MNIST zeros are dropped: a Sudoku never contains 0, and class 0 is
    reserved for empty cells.
    """

    def __init__(
        self,
        root: str | Path,
        train: bool = True,
        download: bool = True,
        transform: Optional[transforms.Compose] = None,
    ) -> None:
        self.mnist = datasets.MNIST(str(root), train=train, download=download)
        self.transform = transform or get_train_transform(CELL_SIZE)
        targets = self.mnist.targets.tolist()
        self.indices: List[int] = [i for i, t in enumerate(targets) if t != 0]

    def __len__(self) -> int:
        return len(self.indices)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, int]:
        img, label = self.mnist[self.indices[idx]]
        img = ImageOps.invert(img.convert("L"))
        return self.transform(img), int(label)


class CellDatasetFromImages(Dataset):
    """Dataset that loads labelled cell crops from a directory tree.

    Expected layout::

        root/
          0/          # empty cells
            cell_001.png
          1/
          ...
          9/

    Useful for fine-tuning on crops exported from real photos.
    """

    def __init__(
        self,
        root: str | Path,
        img_size: int = CELL_SIZE,
        transform: Optional[transforms.Compose] = None,
    ) -> None:
        self.root = Path(root)
        self.transform = transform or get_val_transform(img_size)
        self.samples: List[Tuple[Path, int]] = []

        for class_idx in range(NUM_CLASSES):
            class_dir = self.root / str(class_idx)
            if not class_dir.exists():
                continue
            for img_path in sorted(class_dir.iterdir()):
                if img_path.suffix.lower() in (".png", ".jpg", ".jpeg", ".bmp"):
                    self.samples.append((img_path, class_idx))

        if not self.samples:
            raise FileNotFoundError(f"No samples found under {self.root}")

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, int]:
        path, label = self.samples[idx]
        img = Image.open(path).convert("L")
        return self.transform(img), label
