"""
Quadrangle – Oriented Four-Corner Region
========================================

A ``Quadrangle`` always carries its corners in fixed roles
(top-left, top-right, bottom-left, bottom-right).  The only way to build
one from raw polygon output is ``Quadrangle.from_points``, which sorts
the points by ``y`` to split top from bottom and then by ``x`` within
each pair.

Known limitation: a quadrilateral rotated close to 45° has no clear top
pair, so the roles come out rotated by one corner.  Photographed grids
are rarely that far off-axis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence, Union

import numpy as np

from sudoku_vision.errors import DegenerateQuadrangle


class Point(NamedTuple):
    """2D pixel coordinate."""
    x: float
    y: float


PointLike = Union[Point, Sequence[float]]


@dataclass(frozen=True)
class Quadrangle:
    """Four corners with canonical roles.  Build with ``from_points``."""
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    # ── Construction ───────────────────────────────────────────────────

    @classmethod
    def from_points(cls, points: Union[Iterable[PointLike], np.ndarray]) -> "Quadrangle":
        """Canonicalize four points given in any order.

        Accepts a sequence of ``(x, y)`` pairs or the ``(4, 1, 2)`` /
        ``(4, 2)`` arrays produced by ``cv2.approxPolyDP``.

        Raises
        ------
        DegenerateQuadrangle
            If the input does not hold exactly four points.
        """
        if not isinstance(points, np.ndarray):
            points = list(points)
        try:
            arr = np.asarray(points, dtype=float)
        except (TypeError, ValueError) as exc:
            raise DegenerateQuadrangle(f"Cannot read points as (x, y) pairs: {exc}") from exc
        if arr.size % 2 != 0 or (arr.ndim > 1 and arr.shape[-1] != 2):
            raise DegenerateQuadrangle(
                f"Point array of shape {arr.shape} is not a list of (x, y) pairs"
            )
        pts = [Point(float(x), float(y)) for x, y in arr.reshape(-1, 2)]

        if len(pts) != 4:
            raise DegenerateQuadrangle(f"Expected 4 points, got {len(pts)}")

        by_y = sorted(pts, key=lambda p: p.y)
        top = sorted(by_y[:2], key=lambda p: p.x)
        bottom = sorted(by_y[2:], key=lambda p: p.x)
        return cls(
            top_left=top[0],
            top_right=top[1],
            bottom_left=bottom[0],
            bottom_right=bottom[1],
        )

    @classmethod
    def square(cls, size: float) -> "Quadrangle":
        """Axis-aligned ``(0, 0)``–``(size, size)`` target square."""
        return cls(
            top_left=Point(0.0, 0.0),
            top_right=Point(float(size), 0.0),
            bottom_left=Point(0.0, float(size)),
            bottom_right=Point(float(size), float(size)),
        )

    # ── Geometry ───────────────────────────────────────────────────────

    @property
    def corners(self) -> tuple[Point, Point, Point, Point]:
        """Corners in role order (TL, TR, BL, BR)."""
        return (self.top_left, self.top_right, self.bottom_left, self.bottom_right)

    def as_array(self) -> np.ndarray:
        """Return a ``(4, 2) float32`` array in role order (TL, TR, BL, BR)."""
        return np.array(self.corners, dtype=np.float32)

    @property
    def area(self) -> float:
        """Shoelace area of the outline TL → TR → BR → BL."""
        ring = (self.top_left, self.top_right, self.bottom_right, self.bottom_left)
        total = 0.0
        for (x1, y1), (x2, y2) in zip(ring, ring[1:] + ring[:1]):
            total += x1 * y2 - x2 * y1
        return abs(total) / 2.0
