"""
Piecewise polynomial splines through (or near) a sequence of points.

Six basis families are supported:

- "catmull-rom": cardinal spline interpolating every point, with tangents
  m_i = tension * (P_{i+1} - P_{i-1}); tension 0.5 is the classic
  Catmull-Rom spline
- "hermite": cubic Hermite spline interpolating every point with caller
  tangents, or the cardinal tangents when none are given
- "cubic-bspline": uniform cubic B-spline approximating the points
- "linear": the polyline through the points
- "quadratic": quadratic B-spline whose segments run between the midpoints
  of consecutive points, with each interior point as the middle control
  point. Open curves start and end at the first and last point and have
  n-2 segments
- "cubic": interpolating C2 cubic spline with natural end conditions
  (periodic when closed)

Unless noted otherwise an open spline with n points has n-1 segments; a
closed one has n and wraps around. Open ends use reflected phantom points
P_{-1} = 2 P_0 - P_1 and P_n = 2 P_{n-1} - P_{n-2}, which gives one-sided
end tangents 2 * tension * (P_1 - P_0) and makes open B-splines interpolate
their end points. The global parameter t in [0, 1] is spread uniformly over the
segments; tangents are expressed per unit of the local segment parameter.
"""

import math
from typing import Optional, Sequence, Dict, Any, Tuple

import numpy as np
from scipy.interpolate import CubicSpline

from ..errors import StructuralError, DomainError
from ..discretization.control_point import ControlPointSet, as_points
from ..io.config import GeometryConfig, get_config
from ..postprocess.mesh import Mesh, build_line_strip, sweep_profile
from ..postprocess.sampling import sample_curve, curve_frames, parameter_samples
from .base import GeometryKind, EvaluationResult, EvaluationCache, BoundingBox, check_parameter
from .basis import hermite_basis, catmull_rom_basis, uniform_bspline_basis, bernstein_basis_ders
from .closest_point import ClosestPoint, find_closest_point

CATMULL_ROM = "catmull-rom"
HERMITE = "hermite"
CUBIC_BSPLINE = "cubic-bspline"
LINEAR = "linear"
QUADRATIC = "quadratic"
NATURAL_CUBIC = "cubic"
KINDS = (CATMULL_ROM, HERMITE, CUBIC_BSPLINE, LINEAR, QUADRATIC, NATURAL_CUBIC)

# Samples per segment used for the bounding box
BBOX_SAMPLES_PER_SEGMENT = 16


class Spline:
    """
    Interpolating or approximating spline curve on t in [0, 1].

    Attributes:
        kind: GeometryKind.SPLINE
        spline_kind: One of KINDS
        tension: Cardinal tension s in m_i = s * (P_{i+1} - P_{i-1})
        closed: Whether the curve wraps from the last point to the first
        config: Limits and tolerances used by this instance
    """

    kind = GeometryKind.SPLINE

    def __init__(self, points: Sequence[Sequence[float]],
                 kind: str = CATMULL_ROM,
                 tension: float = 0.5,
                 closed: bool = False,
                 tangents: Optional[Sequence[Sequence[float]]] = None,
                 config: Optional[GeometryConfig] = None):
        """
        Initialize a spline.

        Parameters:
            points: Points, shape (n, 2) or (n, 3); n >= 2 (n >= 3 if closed
                or quadratic)
            kind: Basis family
            tension: Cardinal tension
            closed: Wrap around into a loop
            tangents: Optional per-point tangents for "hermite"
            config: Optional per-instance GeometryConfig
        """
        if kind not in KINDS:
            raise StructuralError(f"Unknown spline kind {kind!r}; expected one of {KINDS}")
        if not np.isfinite(tension):
            raise StructuralError(f"Tension must be finite, got {tension}")
        self.spline_kind = kind
        self.tension = float(tension)
        self.closed = bool(closed)
        self._cps = ControlPointSet(as_points(points, min_points=self._min_points()))
        self._tangents = self._check_tangents(tangents)
        self.config = config if config is not None else get_config()
        self._cache = EvaluationCache(owner="Spline",
                                      capacity=self.config.max_cache_entries)
        self._bbox: Optional[BoundingBox] = None
        self._natural: Optional[CubicSpline] = None

    def _min_points(self) -> int:
        return 3 if self.closed or self.spline_kind == QUADRATIC else 2

    def _check_tangents(self, tangents) -> Optional[np.ndarray]:
        if tangents is None:
            return None
        if self.spline_kind != HERMITE:
            raise StructuralError(f"Tangents are only used by hermite splines, not {self.spline_kind}")
        tangents = as_points(tangents)
        if len(tangents) != len(self._cps):
            raise StructuralError(
                f"Tangent count {len(tangents)} does not match point count {len(self._cps)}"
            )
        return tangents

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def n_points(self) -> int:
        return len(self._cps)

    @property
    def n_segments(self) -> int:
        if self.closed:
            return self.n_points
        return self.n_points - (2 if self.spline_kind == QUADRATIC else 1)

    @property
    def control_points(self) -> np.ndarray:
        return self._cps.points.copy()

    @property
    def tangents(self) -> Optional[np.ndarray]:
        """Caller-supplied tangents, or None when derived."""
        return None if self._tangents is None else self._tangents.copy()

    @property
    def is_rational(self) -> bool:
        return False

    @property
    def bounding_box(self) -> BoundingBox:
        """Bounds of dense samples (cardinal splines may overshoot their points)."""
        if self._bbox is None:
            samples = min(BBOX_SAMPLES_PER_SEGMENT * self.n_segments, self.config.max_segments)
            pts = [self.evaluate(float(t)).point for t in parameter_samples(samples)]
            self._bbox = BoundingBox.from_points(np.array(pts))
        return self._bbox

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _point(self, i: int) -> np.ndarray:
        """Point i, wrapping when closed and reflecting past the ends when open."""
        P = self._cps.points
        n = len(P)
        if self.closed:
            return P[i % n]
        if i < 0:
            return 2.0 * P[0] - P[1]
        if i >= n:
            return 2.0 * P[n - 1] - P[n - 2]
        return P[i]

    def _tangent(self, i: int) -> np.ndarray:
        if self._tangents is not None:
            return self._tangents[i % self.n_points]
        return self.tension * (self._point(i + 1) - self._point(i - 1))

    def _natural_spline(self) -> CubicSpline:
        """C2 interpolant over x = 0..n_segments, one unit per segment."""
        if self._natural is None:
            P = self._cps.points
            if self.closed:
                P = np.vstack([P, P[:1]])
            self._natural = CubicSpline(np.arange(len(P), dtype=np.float64), P, axis=0,
                                        bc_type='periodic' if self.closed else 'natural')
        return self._natural

    def _quadratic_controls(self, k: int) -> np.ndarray:
        """Bezier points of quadratic segment k."""
        if self.closed:
            mid = self._point(k)
            return np.array([0.5 * (self._point(k - 1) + mid), mid,
                             0.5 * (mid + self._point(k + 1))])
        P = self._cps.points
        last = self.n_segments - 1
        start = P[0] if k == 0 else 0.5 * (P[k] + P[k + 1])
        end = P[-1] if k == last else 0.5 * (P[k + 1] + P[k + 2])
        return np.array([start, P[k + 1], end])

    def _segment_values(self, index: int, u: float, n_ders: int) -> np.ndarray:
        """Position and derivatives of one segment w.r.t. its local parameter."""
        i = index
        kind = self.spline_kind
        if kind == NATURAL_CUBIC:
            cs = self._natural_spline()
            out = np.zeros((n_ders + 1, 3))
            for k in range(min(n_ders, 3) + 1):
                out[k] = cs(i + u, k)
            return out
        if kind == LINEAR:
            G = np.array([self._point(i), self._point(i + 1)])
            W = bernstein_basis_ders(1, u, n_ders)
        elif kind == QUADRATIC:
            G = self._quadratic_controls(i)
            W = bernstein_basis_ders(2, u, n_ders)
        elif kind == HERMITE:
            G = np.array([self._point(i), self._tangent(i),
                          self._point(i + 1), self._tangent(i + 1)])
            W = hermite_basis(u, n_ders)
        else:
            G = np.array([self._point(i - 1), self._point(i),
                          self._point(i + 1), self._point(i + 2)])
            if self.spline_kind == CATMULL_ROM:
                W = catmull_rom_basis(u, self.tension, n_ders)
            else:
                W = uniform_bspline_basis(u, n_ders)
        return W @ G

    def _locate(self, t: float) -> Tuple[int, float]:
        m = self.n_segments
        s = t * m
        index = min(int(math.floor(s)), m - 1)
        return index, s - index

    def evaluate(self, t: float, derivatives: int = 0) -> EvaluationResult:
        """
        Evaluate the spline and its derivatives at t.

        Derivatives of order above 3 are zero.

        Parameters:
            t: Parameter value in [0, 1]
            derivatives: Highest derivative order to compute
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
        values = self._segment_values(index, u, derivatives)
        scale = float(self.n_segments) ** np.arange(derivatives + 1)
        values = values * scale[:, None]

        result = EvaluationResult(values[0], tuple(values[1:]))
        return self._cache.put(key, result)

    def find_closest_point(self, target, max_iterations: int = 10) -> ClosestPoint:
        """Closest point on the spline to target (bounded Newton search)."""
        return find_closest_point(self.evaluate, target, max_iterations, self.config)

    # ------------------------------------------------------------------
    # Tessellation
    # ------------------------------------------------------------------

    def tessellate(self, segments: int = 20) -> Mesh:
        """Line-strip mesh with segments + 1 samples; UV = (t, 0)."""
        params, points, ders = sample_curve(self, segments)
        _, normals, _ = curve_frames(ders)
        return build_line_strip(points, normals, params)

    def sweep(self, profile_curve, sections: int = 20, twist: float = 0.0,
              profile_segments: Optional[int] = None) -> Mesh:
        """
        Sweep a cross-section curve along this spline.

        Parameters:
            profile_curve: BezierCurve or Spline giving the section in its
                local (x, y) plane
            sections: Number of path samples minus one
            twist: Total rotation about the path tangent in radians
            profile_segments: Number of profile samples minus one (default 20)
        """
        if profile_segments is None:
            profile_segments = 20
        profile_params, profile, _ = sample_curve(profile_curve, profile_segments,
                                                  self.config.max_segments)
        path_params, path_points, path_ders = sample_curve(self, sections)
        return sweep_profile(profile, profile_params, path_points, path_ders,
                             path_params, twist)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_control_point(self, index: int, point: Sequence[float],
                          tangent: Optional[Sequence[float]] = None) -> None:
        """Replace a point (and, for hermite splines with tangents, its tangent)."""
        self._cps.set_point(index, point)
        if tangent is not None:
            if self._tangents is None:
                raise StructuralError("This spline derives its tangents; none can be set")
            self._tangents[index] = as_points([tangent])[0]
        self._invalidate()

    def add_point(self, point: Sequence[float], index: Optional[int] = None,
                  tangent: Optional[Sequence[float]] = None) -> None:
        """
        Insert a point before index (append when index is None).

        Splines with caller tangents need a tangent for the new point; when
        none is given the cardinal tangent at the new point is used.
        """
        n = self.n_points
        index = n if index is None else int(index)
        if not 0 <= index <= n:
            raise StructuralError(f"Insert index {index} out of range for {n} points")
        self._cps.insert_point(index, point)
        if self._tangents is not None:
            if tangent is None:
                new_tangent = self.tension * (self._point(index + 1) - self._point(index - 1))
            else:
                new_tangent = as_points([tangent])[0]
            self._tangents = np.insert(self._tangents, index, new_tangent, axis=0)
        self._invalidate()

    def remove_point(self, index: int) -> None:
        """Remove a point; at least 2 (3 when closed or quadratic) must remain."""
        if self.n_points - 1 < self._min_points():
            raise StructuralError(f"Cannot remove a point from a spline with {self.n_points} points")
        self._cps.remove_point(index)
        if self._tangents is not None:
            self._tangents = np.delete(self._tangents, index, axis=0)
        self._invalidate()

    def _invalidate(self) -> None:
        self._cache.clear()
        self._bbox = None
        self._natural = None

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_bezier(self):
        """
        Exact conversion to a composite cubic BezierCurve.

        Every segment is at most cubic, so its Bezier points follow from the
        end points and end derivatives: B1 = C(0) + C'(0)/3, B2 = C(1) - C'(1)/3.
        """
        from .bezier import BezierCurve

        points = []
        for i in range(self.n_segments):
            start = self._segment_values(i, 0.0, 1)
            end = self._segment_values(i, 1.0, 1)
            if i == 0:
                points.append(start[0])
            points.append(start[0] + start[1] / 3.0)
            points.append(end[0] - end[1] / 3.0)
            points.append(end[0])
        return BezierCurve(points, degree=3, config=self.config)

    @classmethod
    def from_bezier(cls, curve) -> 'Spline':
        """Hermite spline reproducing a Bezier curve (see BezierCurve.to_spline)."""
        return curve.to_spline()

    def clone(self) -> 'Spline':
        return Spline(self._cps.points, self.spline_kind, self.tension, self.closed,
                      self._tangents, self.config)

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "points": self._cps.points_list(),
            "kind": self.spline_kind,
            "tension": self.tension,
            "closed": self.closed,
            "tangents": None if self._tangents is None else self._tangents.tolist(),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any],
                  config: Optional[GeometryConfig] = None) -> 'Spline':
        if data.get("type", GeometryKind.SPLINE.value) != GeometryKind.SPLINE.value:
            raise StructuralError(f"Expected a spline record, got type {data.get('type')!r}")
        if "points" not in data:
            raise StructuralError("Spline record is missing 'points'")
        return cls(data["points"], data.get("kind", CATMULL_ROM), data.get("tension", 0.5),
                   data.get("closed", False), data.get("tangents"), config)

    def __repr__(self) -> str:
        return (f"Spline(kind={self.spline_kind!r}, n_points={self.n_points}, "
                f"closed={self.closed}, tension={self.tension})")
