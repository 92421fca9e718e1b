"""
Shared building blocks for curve and surface entities.

Curves (BezierCurve, Spline) and surfaces (ParametricSurface, NURBSSurface)
form closed sets of variants identified by a GeometryKind tag. They do not
share a base class; code that handles several variants dispatches on
`entity.kind`.

This module provides:
- GeometryKind: the variant tags (also used as JSON "type" values)
- EvaluationResult / SurfaceEvaluation: evaluation records
- EvaluationCache: bounded per-instance memoization table (LRU)
- BoundingBox: axis-aligned bounds
- Frames: reference-axis frame and parallel-transport frames for curves
- Rational derivatives: quotient-rule recurrences for curves and surfaces
- Curvatures: fundamental forms from surface derivatives
"""

import math
from collections import OrderedDict
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Tuple, Optional, Hashable, Any, NamedTuple

import numpy as np
from loguru import logger

from ..errors import DegenerateCurveError, DomainError


class GeometryKind(Enum):
    """Variant tags of the curve and surface entities."""
    BEZIER = "bezier"
    SPLINE = "spline"
    PARAMETRIC = "parametric"
    NURBS = "nurbs"

    @property
    def is_curve(self) -> bool:
        return self in (GeometryKind.BEZIER, GeometryKind.SPLINE)

    @property
    def is_surface(self) -> bool:
        return not self.is_curve


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class EvaluationResult:
    """
    Point on a curve plus its derivatives.

    Attributes:
        point: Position C(t), shape (3,)
        derivatives: derivatives[k-1] is the k-th derivative, shape (3,) each
    """
    point: np.ndarray
    derivatives: Tuple[np.ndarray, ...] = ()

    def derivative(self, order: int) -> np.ndarray:
        """Return the derivative of the given order (1-based)."""
        if not 1 <= order <= len(self.derivatives):
            raise DomainError(
                f"Derivative order {order} not available; evaluated up to {len(self.derivatives)}"
            )
        return self.derivatives[order - 1]

    @property
    def tangent(self) -> np.ndarray:
        """Unit tangent (zero vector where the first derivative vanishes)."""
        return normalize(self.derivative(1))

    def frozen(self) -> 'EvaluationResult':
        """Copy with read-only arrays, suitable for caching."""
        return EvaluationResult(_freeze(self.point),
                                tuple(_freeze(d) for d in self.derivatives))


@dataclass(frozen=True)
class SurfaceEvaluation:
    """
    Point on a surface plus partial derivatives.

    Attributes:
        point: Position S(u, v), shape (3,)
        derivatives: derivatives[(k, l)] is d^(k+l) S / du^k dv^l
    """
    point: np.ndarray
    derivatives: Dict[Tuple[int, int], np.ndarray] = field(default_factory=dict)

    @property
    def du(self) -> np.ndarray:
        return self.derivatives[(1, 0)]

    @property
    def dv(self) -> np.ndarray:
        return self.derivatives[(0, 1)]

    def frozen(self) -> 'SurfaceEvaluation':
        return SurfaceEvaluation(_freeze(self.point),
                                 {key: _freeze(d) for key, d in self.derivatives.items()})


class EvaluationCache:
    """
    Per-instance memoization table.

    Keys are hashable tuples such as (t, derivative_order). Stored results
    are frozen so that callers cannot corrupt cached arrays. At most
    `capacity` entries are kept; the least recently used one is evicted
    first.
    """

    def __init__(self, owner: str = "", capacity: int = 4096):
        if capacity < 1:
            raise DomainError(f"Cache capacity must be >= 1, got {capacity}")
        self._table: 'OrderedDict[Hashable, Any]' = OrderedDict()
        self._owner = owner
        self.capacity = int(capacity)

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._table

    def get(self, key: Hashable) -> Optional[Any]:
        value = self._table.get(key)
        if value is not None:
            self._table.move_to_end(key)
        return value

    def put(self, key: Hashable, value: Any) -> Any:
        value = value.frozen()
        self._table[key] = value
        self._table.move_to_end(key)
        while len(self._table) > self.capacity:
            self._table.popitem(last=False)
        return value

    def keys(self):
        return list(self._table.keys())

    def clear(self) -> None:
        if self._table:
            logger.debug(f"Invalidating {len(self._table)} cached evaluations of {self._owner}")
        self._table.clear()


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box."""
    minimum: np.ndarray
    maximum: np.ndarray

    @classmethod
    def from_points(cls, points: np.ndarray) -> 'BoundingBox':
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return cls(_freeze(pts.min(axis=0)), _freeze(pts.max(axis=0)))

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.minimum + self.maximum)

    @property
    def size(self) -> np.ndarray:
        return self.maximum - self.minimum

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.size))

    def contains(self, point, tol: float = 1e-9) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.minimum - tol) and np.all(p <= self.maximum + tol))

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(_freeze(np.minimum(self.minimum, other.minimum)),
                           _freeze(np.maximum(self.maximum, other.maximum)))


def check_parameter(t: float, name: str = "t",
                    domain: Tuple[float, float] = (0.0, 1.0)) -> float:
    """Validate a scalar parameter against a closed interval."""
    t = float(t)
    lo, hi = domain
    if not (lo <= t <= hi):
        raise DomainError(f"Parameter {name}={t} outside [{lo}, {hi}]")
    return t


def normalize(v: np.ndarray, eps: float = 1e-14) -> np.ndarray:
    """Unit vector along v; the zero vector when |v| < eps."""
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v)
    if n < eps:
        return np.zeros_like(v)
    return v / n


# ---------------------------------------------------------------------------
# Curve frames
# ---------------------------------------------------------------------------

Y_AXIS = np.array([0.0, 1.0, 0.0])
X_AXIS = np.array([1.0, 0.0, 0.0])


def reference_frame(tangent: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Local (tangent, normal, binormal) frame from a reference axis.

    The reference axis is Y, switched to X when the tangent is nearly
    parallel to Y (|T . Y| > 0.9). A vanishing tangent is replaced by X.

    Returns:
        (T, N, B) unit vectors
    """
    T = normalize(tangent)
    if not np.any(T):
        T = X_AXIS.copy()
    ref = X_AXIS if abs(np.dot(T, Y_AXIS)) > 0.9 else Y_AXIS
    B = normalize(np.cross(T, ref))
    N = np.cross(B, T)
    return T, N, B


def parallel_transport_frames(tangents: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Rotation-minimizing frames along a sampled curve.

    The first frame comes from reference_frame; each following normal is
    the previous normal rotated by the rotation taking the previous
    tangent onto the current one.

    Parameters:
        tangents: Array of shape (n, 3), not necessarily unit length

    Returns:
        (T, N, B) arrays of shape (n, 3)
    """
    n = len(tangents)
    T = np.zeros((n, 3))
    N = np.zeros((n, 3))
    B = np.zeros((n, 3))

    T[0], N[0], B[0] = reference_frame(tangents[0])
    for i in range(1, n):
        t = normalize(tangents[i])
        T[i] = t if np.any(t) else T[i - 1]
        axis = np.cross(T[i - 1], T[i])
        s = np.linalg.norm(axis)
        c = float(np.clip(np.dot(T[i - 1], T[i]), -1.0, 1.0))
        if s < 1e-12:
            N[i] = N[i - 1]
        else:
            axis = axis / s
            angle = math.atan2(s, c)
            N[i] = rotate_about_axis(N[i - 1], axis, angle)
        # Re-orthogonalize against drift
        N[i] = normalize(N[i] - np.dot(N[i], T[i]) * T[i])
        B[i] = np.cross(T[i], N[i])

    return T, N, B


def rotate_about_axis(v: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """Rodrigues rotation of v about a unit axis."""
    c = math.cos(angle)
    s = math.sin(angle)
    return v * c + np.cross(axis, v) * s + axis * np.dot(axis, v) * (1.0 - c)


# ---------------------------------------------------------------------------
# Rational derivatives
# ---------------------------------------------------------------------------

def rational_curve_derivatives(A_ders: np.ndarray, w_ders: np.ndarray,
                               epsilon: float) -> np.ndarray:
    """
    Derivatives of C = A / w from those of numerator and denominator.

    Uses the quotient rule recurrence (Piegl & Tiller, Eq. 4.8):

        C^(k) = (A^(k) - sum_{j=1}^{k} C(k,j) * w^(j) * C^(k-j)) / w

    Parameters:
        A_ders: Array (n_ders+1, d) of numerator derivatives
        w_ders: Array (n_ders+1,) of denominator derivatives
        epsilon: Smallest accepted |w|

    Returns:
        Array (n_ders+1, d) where row k is C^(k)
    """
    w0 = float(w_ders[0])
    if abs(w0) < epsilon:
        raise DegenerateCurveError(f"Rational denominator {w0:g} below {epsilon:g}")

    n_ders = len(w_ders) - 1
    C_ders = np.zeros_like(A_ders, dtype=np.float64)

    for k in range(n_ders + 1):
        v = A_ders[k].astype(np.float64)
        for j in range(1, k + 1):
            v = v - math.comb(k, j) * w_ders[j] * C_ders[k - j]
        C_ders[k] = v / w0

    return C_ders


def rational_surface_derivatives(A_ders: np.ndarray, w_ders: np.ndarray,
                                 order: int, epsilon: float) -> Dict[Tuple[int, int], np.ndarray]:
    """
    Mixed partials of S = A / w (Piegl & Tiller, Algorithm A4.4).

    Parameters:
        A_ders: Array (order+1, order+1, d); A_ders[k, l] = d^(k+l)A / du^k dv^l
        w_ders: Array (order+1, order+1) of denominator partials
        order: Maximum total order k + l
        epsilon: Smallest accepted |w|

    Returns:
        Dict (k, l) -> partial, for all k + l <= order (including (0, 0))
    """
    w0 = float(w_ders[0, 0])
    if abs(w0) < epsilon:
        raise DegenerateCurveError(f"Rational denominator {w0:g} below {epsilon:g}")

    SKL = np.zeros_like(A_ders, dtype=np.float64)
    for k in range(order + 1):
        for l in range(order - k + 1):
            v = A_ders[k, l].astype(np.float64)
            for j in range(1, l + 1):
                v = v - math.comb(l, j) * w_ders[0, j] * SKL[k, l - j]
            for i in range(1, k + 1):
                v = v - math.comb(k, i) * w_ders[i, 0] * SKL[k - i, l]
                v2 = np.zeros_like(v)
                for j in range(1, l + 1):
                    v2 = v2 + math.comb(l, j) * w_ders[i, j] * SKL[k - i, l - j]
                v = v - math.comb(k, i) * v2
            SKL[k, l] = v / w0

    return {(k, l): SKL[k, l]
            for k in range(order + 1) for l in range(order - k + 1)}


# ---------------------------------------------------------------------------
# Differential geometry
# ---------------------------------------------------------------------------

Z_AXIS = np.array([0.0, 0.0, 1.0])

# Fractions of the way toward the domain center tried for degenerate normals
NUDGE_FRACTIONS = (1e-6, 1e-4, 1e-2, 1e-1)


def nudged_normal(raw_normal, u: float, v: float,
                  u_range: Tuple[float, float], v_range: Tuple[float, float]) -> np.ndarray:
    """
    Unit normal that survives degenerate points such as poles.

    raw_normal(u, v) returns the (possibly zero) unit normal. Where it
    vanishes, the parameter is moved increasingly far toward the center of
    the domain; if every attempt fails the Z axis is returned.
    """
    n = raw_normal(u, v)
    if np.any(n):
        return n
    uc = 0.5 * (u_range[0] + u_range[1])
    vc = 0.5 * (v_range[0] + v_range[1])
    for f in NUDGE_FRACTIONS:
        n = raw_normal(u + f * (uc - u), v + f * (vc - v))
        if np.any(n):
            return n
    return Z_AXIS.copy()


class Curvatures(NamedTuple):
    """Curvature measures at a surface point."""
    gaussian: float
    mean: float
    k1: float
    k2: float
    normal: np.ndarray


def surface_curvatures(Su: np.ndarray, Sv: np.ndarray, Suu: np.ndarray,
                       Suv: np.ndarray, Svv: np.ndarray,
                       normal: Optional[np.ndarray] = None,
                       eps: float = 1e-14) -> Curvatures:
    """
    Gaussian, mean and principal curvatures from the fundamental forms.

        E = Su.Su, F = Su.Sv, G = Sv.Sv           (first form)
        L = Suu.n, M = Suv.n, N = Svv.n           (second form)
        K = (LN - M^2) / (EG - F^2)
        H = (EN - 2FM + GL) / (2 (EG - F^2))
        k1,2 = H +- sqrt(H^2 - K)

    A singular first form (degenerate parametrization) yields zero
    curvatures.

    Parameters:
        Su, Sv: First partial derivatives
        Suu, Suv, Svv: Second partial derivatives
        normal: Optional unit normal to use instead of Su x Sv

    Returns:
        Curvatures(gaussian, mean, k1, k2, normal)
    """
    n = normalize(np.cross(Su, Sv)) if normal is None else np.asarray(normal)
    E = float(np.dot(Su, Su))
    F = float(np.dot(Su, Sv))
    G = float(np.dot(Sv, Sv))
    L = float(np.dot(Suu, n))
    M = float(np.dot(Suv, n))
    N = float(np.dot(Svv, n))

    det = E * G - F * F
    if abs(det) < eps or not np.any(n):
        return Curvatures(0.0, 0.0, 0.0, 0.0, n)

    K = (L * N - M * M) / det
    H = (E * N - 2.0 * F * M + G * L) / (2.0 * det)
    disc = math.sqrt(max(H * H - K, 0.0))
    return Curvatures(K, H, H + disc, H - disc, n)
