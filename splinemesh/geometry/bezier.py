"""
Bezier curves, polynomial and rational.

A Bezier curve of degree n blends n+1 control points with Bernstein weights:

    C(t) = sum_i B_{i,n}(t) * P_i

A rational curve carries one positive weight per control point:

    C(t) = sum_i B_{i,n}(t) * w_i * P_i / sum_i B_{i,n}(t) * w_i

which represents conics (circles, ellipses) exactly.

A degree smaller than len(points) - 1 defines a composite curve: the
control polygon is cut into (len(points) - 1) / degree segments that share
their end points, and the global parameter t in [0, 1] is spread uniformly
over the segments. Subdivision produces such composite curves.

Derivatives are exact. For a polynomial segment the k-th derivative is the
degree-(n-k) curve over the k-th forward differences of the control
polygon, scaled by n(n-1)...(n-k+1). Rational derivatives come from the
homogeneous hodographs and the quotient-rule recurrence.
"""

import math
from typing import Optional, Sequence, Tuple, Dict, Any

import numpy as np
from numpy.polynomial import Polynomial

from ..errors import StructuralError, DomainError, check_count
from ..discretization.control_point import ControlPointSet, as_points
from ..io.config import GeometryConfig, get_config
from ..postprocess.mesh import Mesh, build_line_strip, build_grid_mesh, sweep_profile
from ..postprocess.sampling import sample_curve, curve_frames, parameter_samples
from .base import (GeometryKind, EvaluationResult, EvaluationCache, BoundingBox,
                   check_parameter, rational_curve_derivatives)
from .basis import bernstein_basis
from .closest_point import ClosestPoint, find_closest_point

DEFAULT_PROFILE_SEGMENTS = 20


def _hodograph_values(ctrl: np.ndarray, u: float, n_ders: int) -> np.ndarray:
    """
    Derivatives of a single Bezier segment via forward differences.

    Parameters:
        ctrl: Array (d+1, k) of (possibly homogeneous) control points
        u: Local parameter in [0, 1]
        n_ders: Highest derivative order

    Returns:
        Array (n_ders+1, k); rows above the degree are zero
    """
    d = len(ctrl) - 1
    out = np.zeros((n_ders + 1, ctrl.shape[1]))
    out[0] = bernstein_basis(d, u) @ ctrl
    Q = ctrl
    for k in range(1, min(n_ders, d) + 1):
        Q = (d - k + 1) * np.diff(Q, axis=0)
        out[k] = bernstein_basis(d - k, u) @ Q
    return out


def _split_half(ctrl: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """De Casteljau split of one segment at u = 0.5."""
    left = [ctrl[0]]
    right = [ctrl[-1]]
    pts = ctrl
    while len(pts) > 1:
        pts = 0.5 * (pts[:-1] + pts[1:])
        left.append(pts[0])
        right.append(pts[-1])
    return np.array(left), np.array(right[::-1])


class BezierCurve:
    """
    Single-segment or composite Bezier curve on t in [0, 1].

    Attributes:
        kind: GeometryKind.BEZIER
        degree: Polynomial degree of every segment
        config: Limits and tolerances used by this instance
    """

    kind = GeometryKind.BEZIER

    def __init__(self, points: Sequence[Sequence[float]],
                 degree: Optional[int] = None,
                 weights: Optional[Sequence[float]] = None,
                 config: Optional[GeometryConfig] = None):
        """
        Initialize a Bezier curve.

        Parameters:
            points: Control points, shape (n, 2) or (n, 3), n >= 2
            degree: Segment degree; defaults to n - 1 (single segment)
            weights: Optional positive weights, one per control point
            config: Optional per-instance GeometryConfig
        """
        pts = as_points(points, min_points=2)
        n = len(pts) - 1
        degree = n if degree is None else int(degree)
        if degree < 1 or degree > n:
            raise StructuralError(f"Degree {degree} invalid for {n + 1} control points")
        if n % degree != 0:
            raise StructuralError(
                f"{n + 1} control points do not form whole segments of degree {degree}"
            )

        self._cps = ControlPointSet(pts, weights)
        self._degree = degree
        self.config = config if config is not None else get_config()
        self._cache = EvaluationCache(owner="BezierCurve",
                                      capacity=self.config.max_cache_entries)
        self._bbox: Optional[BoundingBox] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def degree(self) -> int:
        return self._degree

    @property
    def n_segments(self) -> int:
        return (len(self._cps) - 1) // self._degree

    @property
    def control_points(self) -> np.ndarray:
        return self._cps.points.copy()

    @property
    def weights(self) -> Optional[np.ndarray]:
        return None if self._cps.weights is None else self._cps.weights.copy()

    @property
    def is_rational(self) -> bool:
        return self._cps.is_rational

    @property
    def bounding_box(self) -> BoundingBox:
        """
        Axis-aligned bounds of the curve.

        Polynomial curves get tight bounds from the end points and the roots
        of the first derivative; rational curves use their control hull.
        """
        if self._bbox is None:
            self._bbox = self._compute_bounding_box()
        return self._bbox

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _segment_controls(self, index: int) -> np.ndarray:
        d = self._degree
        start = index * d
        if self.is_rational:
            return self._cps.homogeneous()[start:start + d + 1]
        return self._cps.points[start:start + d + 1]

    def _locate(self, t: float) -> Tuple[int, float]:
        """Segment index and local parameter for a global t."""
        m = self.n_segments
        s = t * m
        index = min(int(math.floor(s)), m - 1)
        return index, s - index

    def evaluate(self, t: float, derivatives: int = 0) -> EvaluationResult:
        """
        Evaluate the curve and its derivatives at t.

        Parameters:
            t: Parameter value in [0, 1]
            derivatives: Highest derivative order to compute

        Returns:
            EvaluationResult with read-only arrays
        """
        t = check_parameter(t)
        derivatives = int(derivatives)
        if derivatives < 0:
            raise DomainError(f"Derivative order must be >= 0, got {derivatives}")

        key = (t, derivatives)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        index, u = self._locate(t)
        values = _hodograph_values(self._segment_controls(index), u, derivatives)

        # Chain rule for the uniform segment mapping
        scale = float(self.n_segments) ** np.arange(derivatives + 1)
        values = values * scale[:, None]

        if self.is_rational:
            values = rational_curve_derivatives(values[:, :3], values[:, 3],
                                                self.config.rational_epsilon)

        result = EvaluationResult(values[0], tuple(values[1:]))
        return self._cache.put(key, result)

    def find_closest_point(self, target, max_iterations: int = 10) -> ClosestPoint:
        """Closest point on the curve to target (bounded Newton search)."""
        return find_closest_point(self.evaluate, target, max_iterations, self.config)

    # ------------------------------------------------------------------
    # Tessellation
    # ------------------------------------------------------------------

    def tessellate(self, segments: int = 20) -> Mesh:
        """
        Line-strip mesh with segments + 1 samples.

        Normals come from the reference-axis frame; UV = (t, 0).
        """
        params, points, ders = sample_curve(self, segments)
        _, normals, _ = curve_frames(ders)
        return build_line_strip(points, normals, params)

    def revolve(self, angle: float = 2.0 * math.pi, radial_segments: int = 20,
                profile_segments: Optional[int] = None) -> Mesh:
        """
        Surface of revolution of the curve about the Y axis.

        A profile point (x, y, z) rotated by phi becomes
        (x cos(phi) - z sin(phi), y, x sin(phi) + z cos(phi)). The normal is
        the angular tangent crossed with the rotated curve tangent; UV is
        (t, phi / angle).

        Parameters:
            angle: Sweep angle in radians (non-zero)
            radial_segments: Number of angular steps
            profile_segments: Number of curve samples (default 20)
        """
        if not np.isfinite(angle) or angle == 0.0:
            raise DomainError(f"Revolution angle must be finite and non-zero, got {angle}")
        radial_segments = check_count("radial_segments", radial_segments,
                                      self.config.max_segments)
        if profile_segments is None:
            profile_segments = DEFAULT_PROFILE_SEGMENTS
        params, points, ders = sample_curve(self, profile_segments)

        phis = parameter_samples(radial_segments, (0.0, angle))
        c = np.cos(phis)[:, None]
        s = np.sin(phis)[:, None]

        # Grid axis 0: angle, axis 1: profile
        x, y, z = points[:, 0][None, :], points[:, 1][None, :], points[:, 2][None, :]
        positions = np.stack([x * c - z * s, np.broadcast_to(y, (len(phis), len(params))),
                              x * s + z * c], axis=-1)
        dx, dy, dz = ders[:, 0][None, :], ders[:, 1][None, :], ders[:, 2][None, :]
        tangents = np.stack([dx * c - dz * s, np.broadcast_to(dy, (len(phis), len(params))),
                             dx * s + dz * c], axis=-1)
        angular = np.stack([-positions[..., 2], np.zeros_like(positions[..., 0]),
                            positions[..., 0]], axis=-1)
        normals = np.cross(angular, tangents)
        fallback = np.stack([np.broadcast_to(-s, (len(phis), len(params))),
                             np.zeros((len(phis), len(params))),
                             np.broadcast_to(c, (len(phis), len(params)))], axis=-1)
        lengths = np.linalg.norm(normals, axis=-1)
        normals = np.where((lengths < 1e-12)[..., None], fallback, normals)

        pp, tt = np.meshgrid(phis / angle, params, indexing='ij')
        uvs = np.stack([tt, pp], axis=-1)
        return build_grid_mesh(positions, normals, uvs)

    def extrude(self, path, sections: int = 20, twist: float = 0.0,
                profile_segments: Optional[int] = None) -> Mesh:
        """
        Sweep this curve as a cross-section along another curve.

        Parameters:
            path: BezierCurve or Spline along which the section travels
            sections: Number of path samples minus one
            twist: Total rotation about the path tangent in radians
            profile_segments: Number of profile samples minus one (default 20)
        """
        if profile_segments is None:
            profile_segments = DEFAULT_PROFILE_SEGMENTS
        profile_params, profile, _ = sample_curve(self, profile_segments)
        path_params, path_points, path_ders = sample_curve(path, sections, self.config.max_segments)
        return sweep_profile(profile, profile_params, path_points, path_ders,
                             path_params, twist)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def subdivide(self, iterations: int = 1) -> 'BezierCurve':
        """
        Split every segment at its midpoint, iterations times.

        The result has the same degree, twice the segments per iteration and
        traces an identical path with the same parametrization.
        """
        iterations = check_count("iterations", iterations, self.config.max_adaptive_depth)
        check_count("segments", self.n_segments * 2 ** iterations, self.config.max_segments)

        d = self._degree
        ctrl = self._cps.homogeneous() if self.is_rational else self._cps.points.copy()
        for _ in range(iterations):
            pieces = [ctrl[:1]]
            for i in range(len(ctrl) // d):
                left, right = _split_half(ctrl[i * d:i * d + d + 1])
                pieces.append(left[1:])
                pieces.append(right[1:])
            ctrl = np.concatenate(pieces, axis=0)

        if self.is_rational:
            return BezierCurve(ctrl[:, :3] / ctrl[:, 3:], d, ctrl[:, 3], self.config)
        return BezierCurve(ctrl, d, None, self.config)

    def set_control_point(self, index: int, point: Sequence[float],
                          weight: Optional[float] = None) -> None:
        """Replace a control point (and optionally its weight)."""
        self._cps.set_point(index, point, weight)
        self._invalidate()

    def _invalidate(self) -> None:
        self._cache.clear()
        self._bbox = None

    def _compute_bounding_box(self) -> BoundingBox:
        if self.is_rational:
            return BoundingBox.from_points(self._cps.points)

        d = self._degree
        candidates = [self._cps.points[0], self._cps.points[-1]]
        for index in range(self.n_segments):
            ctrl = self._segment_controls(index)
            candidates.extend(ctrl[[0, -1]])
            Q = d * np.diff(ctrl, axis=0)
            for axis in range(3):
                poly = Polynomial([0.0])
                for i in range(d):
                    poly = poly + Q[i, axis] * math.comb(d - 1, i) \
                        * Polynomial([0.0, 1.0]) ** i * Polynomial([1.0, -1.0]) ** (d - 1 - i)
                if not np.any(np.abs(poly.coef) > 0):
                    continue
                for root in poly.roots():
                    if abs(root.imag) < 1e-12 and 0.0 < root.real < 1.0:
                        candidates.append(bernstein_basis(d, root.real) @ ctrl)
        return BoundingBox.from_points(np.array(candidates))

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def clone(self) -> 'BezierCurve':
        return BezierCurve(self._cps.points, self._degree, self._cps.weights, self.config)

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]],
                    weights: Optional[Sequence[float]] = None,
                    config: Optional[GeometryConfig] = None) -> 'BezierCurve':
        """
        Build a curve choosing the degree from the point count.

        Up to 5 points form a single segment; up to 10 points form cubic
        segments; larger sets use quartic segments. Trailing points that do
        not complete a segment are dropped.
        """
        pts = as_points(points, min_points=2)
        n = len(pts)
        if n <= 5:
            degree = n - 1
        elif n <= 10:
            degree = 3
        else:
            degree = 4
        used = ((n - 1) // degree) * degree + 1
        w = None if weights is None else np.asarray(weights, dtype=np.float64)[:used]
        if weights is not None and len(weights) != n:
            raise StructuralError(f"Weight count {len(weights)} does not match point count {n}")
        return cls(pts[:used], degree, w, config)

    def to_spline(self):
        """
        Hermite spline through samples of this curve.

        Break points are placed at degree * n_segments uniform parameters
        with tangents from the exact derivative, which reproduces polynomial
        curves up to cubic exactly.
        """
        from .spline import Spline

        k = self._degree * self.n_segments
        params = parameter_samples(k)
        points = []
        tangents = []
        for t in params:
            res = self.evaluate(float(t), 1)
            points.append(res.point)
            tangents.append(res.derivatives[0] / k)
        return Spline(points, kind="hermite", tangents=tangents, config=self.config)

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "points": self._cps.points_list(),
            "degree": self._degree,
            "weights": self._cps.weights_list(),
            "isRational": self.is_rational,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any],
                  config: Optional[GeometryConfig] = None) -> 'BezierCurve':
        if data.get("type", GeometryKind.BEZIER.value) != GeometryKind.BEZIER.value:
            raise StructuralError(f"Expected a bezier record, got type {data.get('type')!r}")
        try:
            return cls(data["points"], data.get("degree"), data.get("weights"), config)
        except KeyError as exc:
            raise StructuralError(f"Bezier record is missing {exc}") from exc

    def __repr__(self) -> str:
        return (f"BezierCurve(n_points={len(self._cps)}, degree={self._degree}, "
                f"segments={self.n_segments}, rational={self.is_rational})")
