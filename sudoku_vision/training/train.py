"""
Training Script – Sudoku Digit Classifier
=========================================

Trains the ``DigitClassifier`` on synthetically-rendered printed cells,
optionally mixed with inverted MNIST digits.

Usage
-----
::

    python -m sudoku_vision.training.train \\
        --epochs 15 \\
        --batch-size 256 \\
        --output-dir checkpoints

Run ``python -m sudoku_vision.training.train --help`` for all options.
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

import torch
import torch.nn as nn
from torch.utils.data import ConcatDataset, DataLoader

from sudoku_vision.models.classifier import NUM_CLASSES, DigitClassifier
from sudoku_vision.training.dataset import (
    MnistCellDataset,
    SyntheticCellDataset,
    get_train_transform,
    get_val_transform,
)

log = logging.getLogger(__name__)


# ── Training loop ──────────────────────────────────────────────────────

def train_one_epoch(
    model: DigitClassifier,
    loader: DataLoader,
    criterion: nn.Module,
    optimizer: torch.optim.Optimizer,
    device: torch.device,
) -> float:
    """Train for one epoch; return average loss."""
    model.train()
    total_loss = 0.0
    n_batches = 0

    for images, labels in loader:
        images = images.to(device)
        labels = labels.to(device)

        optimizer.zero_grad()
        logits = model(images)
        loss = criterion(logits, labels)
        loss.backward()
        optimizer.step()

        total_loss += loss.item()
        n_batches += 1

    return total_loss / max(n_batches, 1)


@torch.no_grad()
def evaluate(
    model: DigitClassifier,
    loader: DataLoader,
    criterion: nn.Module,
    device: torch.device,
) -> dict:
    """Evaluate on a validation set; return loss and accuracy."""
    model.eval()
    total_loss = 0.0
    correct = 0
    total = 0

    for images, labels in loader:
        images = images.to(device)
        labels = labels.to(device)

        logits = model(images)
        loss = criterion(logits, labels)

        total_loss += loss.item() * labels.size(0)
        preds = logits.argmax(dim=1)
        correct += (preds == labels).sum().item()
        total += labels.size(0)

    return {
        "loss": total_loss / max(total, 1),
        "accuracy": correct / max(total, 1),
    }


# ── Main training procedure ───────────────────────────────────────────

def train(
    epochs: int = 15,
    batch_size: int = 256,
    lr: float = 1e-3,
    samples_per_epoch: int = 50_000,
    val_samples: int = 5_000,
    output_dir: str = "checkpoints",
    mnist_root: Optional[str] = None,
    font_paths: Optional[List[str]] = None,
    num_workers: int = 0,
    device: str = "auto",
    resume: Optional[str] = None,
) -> Path:
    """Train the digit classifier and return the best checkpoint path.

    Parameters
    ----------
    epochs : int
        Number of training epochs.
    batch_size : int
        Mini-batch size.
    lr : float
        Initial Adam learning rate (cosine-annealed to 0).
    samples_per_epoch : int
        Synthetic cells generated per epoch.
    val_samples : int
        Synthetic cells in the (deterministically transformed) validation set.
    output_dir : str
        Directory to save checkpoints.
    mnist_root : str, optional
        When given, MNIST digits 1–9 are downloaded there and mixed into
        the training set.
    font_paths : list of str, optional
        TrueType fonts for the synthetic renderer.
    num_workers : int
        DataLoader workers (0 = main process).
    device : str
        'auto' (default), 'cpu' or 'cuda'.
    resume : str, optional
        ``last_checkpoint.pt`` written by a previous run.
    """
    if device == "auto":
        device_obj = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    else:
        device_obj = torch.device(device)
    log.info("Device: %s", device_obj)

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    # ---- Build datasets ------------------------------------------------
    train_ds = SyntheticCellDataset(
        samples_per_epoch=samples_per_epoch,
        font_paths=font_paths,
        transform=get_train_transform(),
    )
    if mnist_root:
        mnist_ds = MnistCellDataset(mnist_root, train=True, transform=get_train_transform())
        log.info("Mixing in %d MNIST digits from %s", len(mnist_ds), mnist_root)
        train_ds = ConcatDataset([train_ds, mnist_ds])

    val_ds = SyntheticCellDataset(
        samples_per_epoch=val_samples,
        font_paths=font_paths,
        transform=get_val_transform(),
    )

    train_loader = DataLoader(
        train_ds, batch_size=batch_size, shuffle=True, num_workers=num_workers,
    )
    val_loader = DataLoader(
        val_ds, batch_size=batch_size, shuffle=False, num_workers=num_workers,
    )

    # ---- Model ---------------------------------------------------------
    model = DigitClassifier(num_classes=NUM_CLASSES).to(device_obj)
    criterion = nn.CrossEntropyLoss()
    optimizer = torch.optim.Adam(model.parameters(), lr=lr)
    scheduler = torch.optim.lr_scheduler.CosineAnnealingLR(optimizer, T_max=epochs)

    best_acc = 0.0
    best_path = out / "best_classifier.pt"
    resume_path = out / "last_checkpoint.pt"
    start_epoch = 1

    # ---- Resume from checkpoint ----------------------------------------
    if resume and Path(resume).exists():
        log.info("Resuming from checkpoint: %s", resume)
        ckpt = torch.load(resume, map_location=device_obj, weights_only=False)
        if isinstance(ckpt, dict) and "model_state_dict" in ckpt:
            model.load_state_dict(ckpt["model_state_dict"])
            optimizer.load_state_dict(ckpt["optimizer_state_dict"])
            scheduler.load_state_dict(ckpt["scheduler_state_dict"])
            best_acc = ckpt.get("best_acc", 0.0)
            start_epoch = ckpt.get("epoch", 0) + 1
            log.info("  Restored: epoch=%d  best_acc=%.4f", start_epoch, best_acc)
        else:
            model.load_state_dict(ckpt)
            log.info("  Restored model weights only (no optimizer/scheduler state).")
    elif resume:
        log.warning("Resume path not found (%s), starting fresh.", resume)

    # ---- Epochs --------------------------------------------------------
    for epoch in range(start_epoch, epochs + 1):
        t0 = time.time()
        train_loss = train_one_epoch(model, train_loader, criterion, optimizer, device_obj)
        val_metrics = evaluate(model, val_loader, criterion, device_obj)
        scheduler.step()

        log.info(
            "Epoch %2d/%d  train_loss=%.4f  val_loss=%.4f  val_acc=%.4f  (%.1fs)",
            epoch, epochs,
            train_loss, val_metrics["loss"], val_metrics["accuracy"],
            time.time() - t0,
        )

        if val_metrics["accuracy"] > best_acc:
            best_acc = val_metrics["accuracy"]
            torch.save(model.state_dict(), best_path)
            log.info("  ↳ Saved best model (acc=%.4f)", best_acc)

        torch.save({
            "epoch": epoch,
            "model_state_dict": model.state_dict(),
            "optimizer_state_dict": optimizer.state_dict(),
            "scheduler_state_dict": scheduler.state_dict(),
            "best_acc": best_acc,
        }, resume_path)

    if not best_path.exists():
        torch.save(model.state_dict(), best_path)

    log.info("Training complete.  Best val accuracy: %.4f", best_acc)
    log.info("Checkpoint saved to: %s", best_path.resolve())
    return best_path


# ── CLI ────────────────────────────────────────────────────────────────

def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
    parser = argparse.ArgumentParser(
        description="Train the Sudoku digit classifier on synthetic cells.",
    )
    parser.add_argument("--epochs", type=int, default=15)
    parser.add_argument("--batch-size", type=int, default=256)
    parser.add_argument("--lr", type=float, default=1e-3)
    parser.add_argument("--samples-per-epoch", type=int, default=50_000)
    parser.add_argument("--val-samples", type=int, default=5_000)
    parser.add_argument("--output-dir", type=str, default="checkpoints")
    parser.add_argument(
        "--mnist-root", type=str, default=None,
        help="Download MNIST here and mix handwritten digits into training.",
    )
    parser.add_argument(
        "--font", dest="font_paths", action="append", default=None,
        help="TrueType font for synthetic digits (repeatable).",
    )
    parser.add_argument("--num-workers", type=int, default=0)
    parser.add_argument(
        "--device", type=str, default="auto", choices=["auto", "cpu", "cuda"],
        help="Device: auto (default), cpu, or cuda.",
    )
    parser.add_argument(
        "--resume", type=str, default=None,
        help="Path to last_checkpoint.pt to resume training from.",
    )
    args = parser.parse_args()
    train(**vars(args))


if __name__ == "__main__":
    main()
