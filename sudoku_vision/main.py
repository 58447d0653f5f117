"""
Sudoku Vision – Main Entry Point
================================

Commands:

  1. **Train**      – Train the digit classifier on synthetic cells
                      (optionally mixed with MNIST).
  2. **Recognize**  – Find the grid in a photo, read the digits, solve
                      the board and write the annotated photo.
  3. **Solve**      – Solve an 81-character board line.
  4. **Export**     – Export the trained model to ONNX format.

Usage examples
--------------

**Training**::

    sudoku-vision train --epochs 15 --mnist-root data/mnist

**Inference**::

    sudoku-vision recognize \\
        --image puzzle.jpg \\
        --weights checkpoints/best_classifier.pt \\
        --output solved.jpg

**ONNX Export**::

    sudoku-vision export \\
        --weights checkpoints/best_classifier.pt \\
        --output digit_classifier.onnx
"""

from __future__ import annotations

import argparse
import logging
import sys

import cv2

from sudoku_vision.errors import GridNotFound, InferenceFailure

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("sudoku_vision")

EXIT_NO_GRID = 2
EXIT_INFERENCE = 3


# ═══════════════════════════════════════════════════════════════════════
# Training
# ═══════════════════════════════════════════════════════════════════════

def cmd_train(args: argparse.Namespace) -> None:
    """Train the digit classifier."""
    from sudoku_vision.training.train import train

    checkpoint = train(
        epochs=args.epochs,
        batch_size=args.batch_size,
        lr=args.lr,
        samples_per_epoch=args.samples_per_epoch,
        val_samples=args.val_samples,
        output_dir=args.output_dir,
        mnist_root=args.mnist_root,
        font_paths=args.font_paths,
        num_workers=args.num_workers,
        device=args.device,
        resume=args.resume,
    )
    log.info("Training complete. Best model saved to: %s", checkpoint)


# ═══════════════════════════════════════════════════════════════════════
# Inference
# ═══════════════════════════════════════════════════════════════════════

def cmd_recognize(args: argparse.Namespace) -> None:
    """Run the recognition pipeline on an image."""
    from sudoku_vision.inference.board_utils import format_board
    from sudoku_vision.inference.pipeline import SudokuRecognitionPipeline

    image = cv2.imread(args.image)
    if image is None:
        log.error("Could not read image: %s", args.image)
        sys.exit(1)

    pipeline = SudokuRecognitionPipeline(
        classifier_weights=args.weights,
        onnx_model=args.onnx,
        device=args.device,
    )

    try:
        result = pipeline.recognize(image, solve=not args.no_solve)
    except GridNotFound as exc:
        log.warning("No grid visible: %s", exc)
        sys.exit(EXIT_NO_GRID)
    except InferenceFailure as exc:
        log.error("Recognition failed: %s", exc)
        sys.exit(EXIT_INFERENCE)

    print("\n" + "=" * 60)
    print("  SUDOKU RECOGNITION RESULT")
    print("=" * 60)
    print(f"  Board      : {result.line}")
    print(f"  Confidence : {result.mean_confidence:.2%}")
    print(f"  Valid      : {result.is_valid}")
    if result.violations:
        print(f"  Violations : {result.violations}")
    print()
    print(format_board(result.digits))
    if result.solution is not None:
        print("\n  Solution:\n")
        print(format_board(result.solution))
    elif not args.no_solve:
        print("\n  No solution found.")
    print("=" * 60 + "\n")

    if args.output and result.annotated is not None:
        cv2.imwrite(args.output, result.annotated)
        log.info("Saved annotated image to %s", args.output)

    if args.visualize or args.save_debug:
        pipeline.visualize(result, show=args.visualize, save_path=args.save_debug)


def cmd_solve(args: argparse.Namespace) -> None:
    """Solve a board given as an 81-character line."""
    from sudoku_vision.inference.board_utils import (
        format_board,
        grid_to_line,
        line_to_grid,
        solve_grid,
    )

    grid = line_to_grid(args.board)
    solution = solve_grid(grid, max_steps=args.max_steps)
    if solution is None:
        print("No solution found.")
        sys.exit(1)
    print(format_board(solution))
    print(grid_to_line(solution))


# ═══════════════════════════════════════════════════════════════════════
# ONNX Export
# ═══════════════════════════════════════════════════════════════════════

def cmd_export(args: argparse.Namespace) -> None:
    """Export trained model to ONNX."""
    from sudoku_vision.inference.pipeline import export_to_onnx
    from sudoku_vision.models.classifier import DigitClassifier

    model = DigitClassifier.load_from_checkpoint(args.weights)
    export_to_onnx(model, output_path=args.output)
    log.info("ONNX model saved to %s", args.output)


# ═══════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sudoku_vision",
        description="Sudoku grid detection, digit recognition and solving.",
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── train ──
    p_train = sub.add_parser("train", help="Train the digit classifier")
    p_train.add_argument("--epochs", type=int, default=15)
    p_train.add_argument("--batch-size", type=int, default=256)
    p_train.add_argument("--lr", type=float, default=1e-3)
    p_train.add_argument("--samples-per-epoch", type=int, default=50_000)
    p_train.add_argument("--val-samples", type=int, default=5_000)
    p_train.add_argument("--output-dir", default="checkpoints")
    p_train.add_argument("--mnist-root", default=None,
                         help="Download MNIST here and mix handwritten digits in")
    p_train.add_argument("--font", dest="font_paths", action="append", default=None,
                         help="TrueType font for synthetic digits (repeatable)")
    p_train.add_argument("--num-workers", type=int, default=0)
    p_train.add_argument("--device", default="auto", choices=["auto", "cpu", "cuda"],
                         help="Device: auto (default), cpu, or cuda")
    p_train.add_argument("--resume", default=None,
                         help="Path to last_checkpoint.pt to resume training")

    # ── recognize ──
    p_rec = sub.add_parser("recognize", help="Recognize a Sudoku photo")
    p_rec.add_argument("--image", required=True, help="Path to the photo")
    model_src = p_rec.add_mutually_exclusive_group(required=True)
    model_src.add_argument("--weights", help="Path to classifier .pt checkpoint")
    model_src.add_argument("--onnx", help="Path to exported .onnx model")
    p_rec.add_argument("--device", default="cpu", choices=["cpu", "cuda"])
    p_rec.add_argument("--no-solve", action="store_true",
                       help="Only read the digits, do not solve")
    p_rec.add_argument("--output", default=None,
                       help="Write the photo with the solution overlay here")
    p_rec.add_argument("--visualize", action="store_true",
                       help="Show debug visualisation")
    p_rec.add_argument("--save-debug", default=None,
                       help="Save debug image to path")

    # ── solve ──
    p_solve = sub.add_parser("solve", help="Solve an 81-character board line")
    p_solve.add_argument("board", help="Digits row by row, '.' or '0' for empty")
    p_solve.add_argument("--max-steps", type=int, default=200_000)

    # ── export ──
    p_exp = sub.add_parser("export", help="Export model to ONNX")
    p_exp.add_argument("--weights", required=True)
    p_exp.add_argument("--output", default="digit_classifier.onnx")

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    dispatch = {
        "train": cmd_train,
        "recognize": cmd_recognize,
        "solve": cmd_solve,
        "export": cmd_export,
    }

    dispatch[args.command](args)


if __name__ == "__main__":
    main()
