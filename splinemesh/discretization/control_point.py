"""
Control point sets for curves.

A control point set is an ordered sequence of 3D points, optionally paired
with positive weights. A curve built on the set is rational iff any weight
differs from 1.

Points are always stored as float64 of shape (n, 3); 2D input is padded
with z = 0. Weights are stored as float64 of shape (n,) or None.

Key invariant (must always hold):
    weights is None  or  len(weights) == len(points) and all(weights > 0)
"""

import numpy as np
from typing import Optional, Sequence, List
from dataclasses import dataclass

from ..errors import StructuralError


def as_points(points, min_points: int = 1) -> np.ndarray:
    """
    Convert a sequence of 2D/3D coordinates into an (n, 3) float array.

    Parameters:
        points: Array-like of shape (n, 2) or (n, 3)
        min_points: Minimum number of points accepted

    Returns:
        Array of shape (n, 3)
    """
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] not in (2, 3):
        raise StructuralError(
            f"Control points must have shape (n, 2) or (n, 3), got {arr.shape}"
        )
    if arr.shape[0] < min_points:
        raise StructuralError(
            f"Need at least {min_points} control points, got {arr.shape[0]}"
        )
    if not np.all(np.isfinite(arr)):
        raise StructuralError("Control point coordinates must be finite")
    if arr.shape[1] == 2:
        arr = np.column_stack([arr, np.zeros(arr.shape[0])])
    return arr.copy()


def as_weights(weights, count: int) -> Optional[np.ndarray]:
    """Validate an optional weight sequence against a point count."""
    if weights is None:
        return None
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if len(w) == 0:
        return None
    if len(w) != count:
        raise StructuralError(
            f"Weight count {len(w)} does not match point count {count}"
        )
    if not np.all(np.isfinite(w)) or np.any(w <= 0):
        raise StructuralError("Weights must be finite and > 0")
    return w.copy()


@dataclass
class ControlPointSet:
    """
    Ordered control points with optional weights.

    Attributes:
        points: Array of shape (n, 3)
        weights: Array of shape (n,) or None for a non-rational set
    """
    points: np.ndarray
    weights: Optional[np.ndarray] = None

    def __post_init__(self):
        self.points = as_points(self.points)
        self.weights = as_weights(self.weights, len(self.points))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_rational(self) -> bool:
        """True iff any weight differs from 1."""
        return self.weights is not None and not np.all(self.weights == 1.0)

    def weight_array(self) -> np.ndarray:
        """Weights as an array, ones when none were given."""
        if self.weights is None:
            return np.ones(len(self.points))
        return self.weights.copy()

    def homogeneous(self) -> np.ndarray:
        """
        Homogeneous coordinates (w*x, w*y, w*z, w).

        Returns:
            Array of shape (n, 4)
        """
        w = self.weight_array()
        return np.column_stack([self.points * w[:, None], w])

    def set_point(self, index: int, point: Sequence[float],
                  weight: Optional[float] = None) -> None:
        """
        Replace one control point (and optionally its weight).

        Parameters:
            index: Control point index (negative indices allowed)
            point: New coordinates, 2D or 3D
            weight: New weight; None keeps the current one
        """
        n = len(self.points)
        if not -n <= index < n:
            raise StructuralError(f"Control point index {index} out of range for {n} points")
        self.points[index] = as_points([point])[0]
        if weight is not None:
            w = self.weight_array()
            w[index] = float(weight)
            self.weights = as_weights(w, n)

    def insert_point(self, index: int, point: Sequence[float],
                     weight: Optional[float] = None) -> None:
        """Insert a control point before index (append when index == len)."""
        n = len(self.points)
        if not 0 <= index <= n:
            raise StructuralError(f"Insert index {index} out of range for {n} points")
        new_point = as_points([point])[0]
        self.points = np.insert(self.points, index, new_point, axis=0)
        if self.weights is not None or (weight is not None and weight != 1.0):
            w = np.insert(self.weight_array()[:n], index, 1.0 if weight is None else weight)
            self.weights = as_weights(w, n + 1)

    def remove_point(self, index: int) -> None:
        """Remove one control point."""
        n = len(self.points)
        if not -n <= index < n:
            raise StructuralError(f"Control point index {index} out of range for {n} points")
        self.points = np.delete(self.points, index, axis=0)
        if self.weights is not None:
            self.weights = np.delete(self.weights, index)

    def copy(self) -> 'ControlPointSet':
        return ControlPointSet(self.points.copy(),
                               None if self.weights is None else self.weights.copy())

    def points_list(self) -> List[List[float]]:
        return self.points.tolist()

    def weights_list(self) -> Optional[List[float]]:
        return None if self.weights is None else self.weights.tolist()

    def __repr__(self) -> str:
        return (f"ControlPointSet(n={len(self.points)}, "
                f"rational={self.is_rational})")
