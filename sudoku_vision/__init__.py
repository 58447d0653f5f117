"""
Sudoku Vision
=============

Locates a Sudoku grid in a photograph, rectifies it to a square, reads
every cell with a digit classifier and projects digits back onto the
original photo.

Architecture:
    1. Grid Location      – adaptive threshold + largest 4-vertex contour,
                            accepted only above 35 % of the frame area
    2. Rectification      – perspective warp to a 252×252 square
    3. Cell Sampling      – 9×9 grid → 81 cells of 28×28, scaled to [0, 1]
    4. Recognition        – batched CNN forward pass + arg-max
    5. Overlay            – inverse warp of rendered digits onto the photo
"""

__version__ = "1.0.0"
