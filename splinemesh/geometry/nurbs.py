"""
NURBS (Non-Uniform Rational B-Spline) surfaces.

NURBS extend B-splines by introducing weights for each control point,
enabling exact representation of quadrics (spheres, cylinders, tori).

A NURBS surface point is computed as:

    S(u, v) = sum_ij N_i(u) M_j(v) w_ij P_ij / sum_ij N_i(u) M_j(v) w_ij

where:
- N_i, M_j are B-spline basis functions of degrees p and q
- w_ij are weights (positive real numbers)
- P_ij are control points on an (n_u, n_v) grid

Evaluation works in homogeneous coordinates (w*x, w*y, w*z, w): the
tensor-product sums of the basis derivatives give the partials of the
numerator A and denominator w, and the rational partials follow from the
bivariate quotient recurrence (Piegl & Tiller, Algorithm A4.4).

Knot insertion (Boehm) is applied to the homogeneous control net, so the
surface is unchanged while the grid grows.
"""

from typing import Dict, Any, List, Optional, Tuple, Union

import numpy as np
from loguru import logger

from ..errors import StructuralError, DomainError, check_count
from ..discretization.knot_vector import KnotVector, make_open_knot_vector, insert_knot
from ..io.config import GeometryConfig, get_config
from ..postprocess.mesh import Mesh, build_grid_mesh, build_adaptive_mesh
from ..postprocess.sampling import parameter_grid, sample_surface, normalized_uvs
from .base import (GeometryKind, SurfaceEvaluation, EvaluationCache, BoundingBox,
                   Curvatures, check_parameter, normalize, nudged_normal,
                   rational_surface_derivatives, surface_curvatures)
from .basis import eval_basis_ders_1d
from .intersection import RayHit, intersect_with_ray

AXES = {"u": 0, "v": 1, 0: 0, 1: 1}

# Default of trim(): leave that axis as it is
KEEP = object()


def _as_grid(control_grid) -> np.ndarray:
    try:
        grid = np.asarray(control_grid, dtype=np.float64)
    except ValueError as exc:
        raise StructuralError("Control grid must be rectangular") from exc
    if grid.ndim != 3 or grid.shape[2] not in (2, 3):
        raise StructuralError(
            f"Control grid must have shape (n_u, n_v, 2) or (n_u, n_v, 3), got {grid.shape}"
        )
    if not np.all(np.isfinite(grid)):
        raise StructuralError("Control point coordinates must be finite")
    if grid.shape[2] == 2:
        grid = np.concatenate([grid, np.zeros(grid.shape[:2] + (1,))], axis=2)
    return grid.copy()


def _knot_vector(knots, n: int, degree: int, axis: str) -> KnotVector:
    if degree < 1 or degree > n - 1:
        raise StructuralError(f"Degree {degree} in {axis} invalid for {n} control points")
    if knots is None:
        return make_open_knot_vector(n, degree)
    kv = KnotVector(np.asarray(knots, dtype=np.float64), degree)
    if len(kv.knots) != n + degree + 1:
        raise StructuralError(
            f"Knot vector in {axis} has {len(kv.knots)} knots, expected {n + degree + 1}"
        )
    return kv


class NURBSSurface:
    """
    Tensor-product NURBS surface.

    Attributes:
        kind: GeometryKind.NURBS
        config: Limits and tolerances used by this instance

    Control points are stored as an (n_u, n_v, 3) grid: P[i, j] is blended
    by N_i(u) M_j(v).
    """

    kind = GeometryKind.NURBS

    def __init__(self, control_grid,
                 degree_u: int = 3,
                 degree_v: int = 3,
                 knots_u=None,
                 knots_v=None,
                 weights=None,
                 config: Optional[GeometryConfig] = None):
        """
        Initialize a NURBS surface.

        Parameters:
            control_grid: Array-like of shape (n_u, n_v, 2|3)
            degree_u, degree_v: Degrees p and q
            knots_u, knots_v: Knot vectors; open uniform when omitted
            weights: Array-like (n_u, n_v) of positive weights; ones when omitted
            config: Optional per-instance GeometryConfig
        """
        self._grid = _as_grid(control_grid)
        n_u, n_v = self._grid.shape[:2]
        self._kv_u = _knot_vector(knots_u, n_u, int(degree_u), "u")
        self._kv_v = _knot_vector(knots_v, n_v, int(degree_v), "v")

        if weights is None:
            self._weights = np.ones((n_u, n_v))
        else:
            w = np.asarray(weights, dtype=np.float64)
            if w.shape != (n_u, n_v):
                raise StructuralError(f"Weights shape {w.shape} must be ({n_u}, {n_v})")
            if not np.all(np.isfinite(w)) or np.any(w <= 0):
                raise StructuralError("All weights must be finite and positive")
            self._weights = w.copy()

        self._trim_u: Optional[Tuple[float, float]] = None
        self._trim_v: Optional[Tuple[float, float]] = None
        self.config = config if config is not None else get_config()
        self._cache = EvaluationCache(owner="NURBSSurface",
                                      capacity=self.config.max_cache_entries)
        self._bbox: Optional[BoundingBox] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def control_grid(self) -> np.ndarray:
        return self._grid.copy()

    @property
    def weights(self) -> np.ndarray:
        return self._weights.copy()

    @property
    def n_control_points(self) -> Tuple[int, int]:
        """Number of control points in each direction (n_u, n_v)."""
        return self._grid.shape[0], self._grid.shape[1]

    @property
    def degrees(self) -> Tuple[int, int]:
        return (self._kv_u.degree, self._kv_v.degree)

    @property
    def knot_vectors(self) -> Tuple[KnotVector, KnotVector]:
        return (self._kv_u, self._kv_v)

    @property
    def is_rational(self) -> bool:
        return not np.all(self._weights == 1.0)

    @property
    def knot_domain(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Full parametric domain ((u_min, u_max), (v_min, v_max))."""
        return (self._kv_u.domain, self._kv_v.domain)

    @property
    def domain(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Usable (possibly trimmed) parametric domain."""
        return (self._trim_u or self._kv_u.domain, self._trim_v or self._kv_v.domain)

    @property
    def trim_ranges(self) -> Tuple[Optional[Tuple[float, float]], Optional[Tuple[float, float]]]:
        return (self._trim_u, self._trim_v)

    @property
    def bounding_box(self) -> BoundingBox:
        """Bounds of the control net, which contains the surface."""
        if self._bbox is None:
            self._bbox = BoundingBox.from_points(self._grid.reshape(-1, 3))
        return self._bbox

    def homogeneous_grid(self) -> np.ndarray:
        """Control net as (n_u, n_v, 4) homogeneous points (w*P, w)."""
        return np.concatenate([self._grid * self._weights[..., None],
                               self._weights[..., None]], axis=2)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _check_uv(self, u: float, v: float) -> Tuple[float, float]:
        du, dv = self.domain
        return check_parameter(u, "u", du), check_parameter(v, "v", dv)

    def evaluate(self, u: float, v: float, derivatives: int = 0) -> SurfaceEvaluation:
        """
        Evaluate the surface and its partials up to a total order.

        Parameters:
            u, v: Parameters inside the (trimmed) domain
            derivatives: Highest total order k + l of the partials

        Returns:
            SurfaceEvaluation with derivatives[(k, l)] for 1 <= k + l <= derivatives
        """
        u, v = self._check_uv(u, v)
        derivatives = int(derivatives)
        if derivatives < 0:
            raise DomainError(f"Derivative order must be >= 0, got {derivatives}")

        key = (u, v, derivatives)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        p, q = self.degrees
        span_u = self._kv_u.find_span(u)
        span_v = self._kv_v.find_span(v)
        Nu = eval_basis_ders_1d(self._kv_u, u, derivatives, span_u)
        Nv = eval_basis_ders_1d(self._kv_v, v, derivatives, span_v)

        Pw = self.homogeneous_grid()[span_u - p:span_u + 1, span_v - q:span_v + 1]
        # A[k, l] = sum_ij N_i^(k)(u) M_j^(l)(v) Pw_ij
        A = np.einsum('ki,lj,ijc->klc', Nu, Nv, Pw)

        partials = rational_surface_derivatives(A[..., :3], A[..., 3], derivatives,
                                                self.config.rational_epsilon)
        point = partials.pop((0, 0))
        return self._cache.put(key, SurfaceEvaluation(point, partials))

    def _raw_normal(self, u: float, v: float) -> np.ndarray:
        ev = self.evaluate(u, v, 1)
        # Collapsed rows (poles) leave only round-off in du x dv
        scale = max(self.bounding_box.diagonal, 1.0)
        return normalize(np.cross(ev.du, ev.dv), eps=1e-12 * scale * scale)

    def compute_normal(self, u: float, v: float) -> np.ndarray:
        """Unit normal dS/du x dS/dv; degenerate points (poles) are nudged inward."""
        u, v = self._check_uv(u, v)
        du, dv = self.domain
        return nudged_normal(self._raw_normal, u, v, du, dv)

    def compute_tangent_space(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Unit tangents along u and v, and the unit normal."""
        ev = self.evaluate(u, v, 1)
        return normalize(ev.du), normalize(ev.dv), self.compute_normal(u, v)

    def compute_curvatures(self, u: float, v: float) -> Curvatures:
        """Gaussian, mean and principal curvatures from the analytic partials."""
        ev = self.evaluate(u, v, 2)
        d = ev.derivatives
        return surface_curvatures(d[(1, 0)], d[(0, 1)], d[(2, 0)], d[(1, 1)], d[(0, 2)],
                                  normal=self.compute_normal(u, v))

    # ------------------------------------------------------------------
    # Tessellation
    # ------------------------------------------------------------------

    def _sample(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray]:
        return self.evaluate(u, v).point, self.compute_normal(u, v)

    def tessellate(self, u_segments: int = 20, v_segments: int = 20) -> Mesh:
        """
        Regular grid over the trimmed domain, two triangles per cell.

        Samples are clamped into the valid span range; UVs run over [0, 1].
        """
        u_segments = check_count("u_segments", u_segments, self.config.max_segments)
        v_segments = check_count("v_segments", v_segments, self.config.max_segments)
        du, dv = self.domain
        us, vs = parameter_grid(du, dv, u_segments, v_segments, clamp_u=du, clamp_v=dv)
        points, normals = sample_surface(self._sample, us, vs)
        return build_grid_mesh(points, normals, normalized_uvs(us, vs))

    def _curvature_magnitude(self, u: float, v: float) -> float:
        c = self.compute_curvatures(u, v)
        return max(abs(c.k1), abs(c.k2))

    def tessellate_adaptive(self, threshold: float = 0.1, max_depth: int = 4,
                            u_segments: int = 4, v_segments: int = 4) -> Mesh:
        """Curvature-driven quadtree tessellation (see build_adaptive_mesh)."""
        if not threshold > 0:
            raise DomainError(f"threshold must be > 0, got {threshold}")
        max_depth = check_count("max_depth", max_depth, self.config.max_adaptive_depth, minimum=0)
        u_segments = check_count("u_segments", u_segments, self.config.max_segments)
        v_segments = check_count("v_segments", v_segments, self.config.max_segments)
        du, dv = self.domain
        return build_adaptive_mesh(self._sample, self._curvature_magnitude, du, dv,
                                   u_segments, v_segments, threshold, max_depth,
                                   self.config.max_adaptive_cells)

    def intersect_with_ray(self, origin, direction, max_distance: float = np.inf,
                           samples: int = 32, max_iterations: int = 20) -> List[RayHit]:
        """Ray intersections within the (trimmed) domain, nearest first."""
        du, dv = self.domain
        return intersect_with_ray(self, origin, direction, max_distance, du, dv,
                                  samples, max_iterations, self.config)

    # ------------------------------------------------------------------
    # Structural mutators
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._cache.clear()
        self._bbox = None

    def set_control_point(self, i: int, j: int, point, weight: Optional[float] = None) -> None:
        """Replace control point P[i, j] (and optionally its weight)."""
        n_u, n_v = self.n_control_points
        if not (-n_u <= i < n_u and -n_v <= j < n_v):
            raise StructuralError(f"Control point ({i}, {j}) out of range for grid {n_u}x{n_v}")
        p = np.asarray(point, dtype=np.float64).reshape(-1)
        if p.shape[0] == 2:
            p = np.append(p, 0.0)
        if p.shape[0] != 3 or not np.all(np.isfinite(p)):
            raise StructuralError(f"Control point must be a finite 2D or 3D point, got {point!r}")
        if weight is not None and not (np.isfinite(weight) and weight > 0):
            raise StructuralError(f"Weight must be finite and positive, got {weight}")
        self._grid[i, j] = p
        if weight is not None:
            self._weights[i, j] = float(weight)
        self._invalidate()

    def insert_knot(self, axis: Union[str, int], value: float, times: int = 1) -> None:
        """
        Insert a knot value into the u or v knot vector.

        The control grid grows by `times` rows (u) or columns (v); the
        surface itself is unchanged.

        Parameters:
            axis: "u" or "v" (or 0, 1)
            value: Knot value strictly inside the knot domain
            times: Number of insertions; the resulting multiplicity may not
                exceed the degree
        """
        if axis not in AXES:
            raise DomainError(f"axis must be 'u' or 'v', got {axis!r}")
        a = AXES[axis]
        kv = self._kv_u if a == 0 else self._kv_v
        new_kv, A = insert_knot(kv, float(value), int(times))

        Pw = self.homogeneous_grid()
        if a == 0:
            Pw = np.einsum('ai,ijc->ajc', A, Pw)
            self._kv_u = new_kv
        else:
            Pw = np.einsum('bj,ijc->ibc', A, Pw)
            self._kv_v = new_kv

        self._weights = Pw[..., 3].copy()
        self._grid = Pw[..., :3] / self._weights[..., None]
        logger.debug(f"Inserted knot {value} x{times} along {'uv'[a]}; "
                     f"grid is now {self._grid.shape[0]}x{self._grid.shape[1]}")
        self._invalidate()

    def trim(self, u_range=KEEP, v_range=KEEP) -> None:
        """
        Restrict the usable domain without altering control data.

        An axis that is not passed keeps its current range; None removes
        the restriction on that axis.
        """
        trim_u = self._trim_u if u_range is KEEP else self._check_trim(u_range, self._kv_u, "u")
        trim_v = self._trim_v if v_range is KEEP else self._check_trim(v_range, self._kv_v, "v")
        self._trim_u, self._trim_v = trim_u, trim_v
        self._invalidate()

    @staticmethod
    def _check_trim(rng, kv: KnotVector, axis: str) -> Optional[Tuple[float, float]]:
        if rng is None:
            return None
        lo, hi = float(rng[0]), float(rng[1])
        k0, k1 = kv.domain
        if not (k0 <= lo < hi <= k1):
            raise DomainError(f"Trim range ({lo}, {hi}) in {axis} must satisfy "
                              f"{k0} <= min < max <= {k1}")
        return (lo, hi)

    # ------------------------------------------------------------------
    # Derived surfaces
    # ------------------------------------------------------------------

    def transform(self, matrix) -> 'NURBSSurface':
        """
        New surface with an affine map applied to the control points.

        Parameters:
            matrix: 4x4 affine matrix (last row 0, 0, 0, 1) or 3x3 linear map
        """
        M = np.asarray(matrix, dtype=np.float64)
        if M.shape == (3, 3):
            M = np.block([[M, np.zeros((3, 1))], [np.zeros((1, 3)), np.ones((1, 1))]])
        if M.shape != (4, 4) or not np.allclose(M[3], [0.0, 0.0, 0.0, 1.0]):
            raise StructuralError("transform expects a 3x3 linear or 4x4 affine matrix")
        grid = self._grid @ M[:3, :3].T + M[:3, 3]
        surface = NURBSSurface(grid, *self.degrees, self._kv_u.knots, self._kv_v.knots,
                               self._weights, self.config)
        surface._trim_u, surface._trim_v = self._trim_u, self._trim_v
        return surface

    def clone(self) -> 'NURBSSurface':
        return self.transform(np.eye(4))

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    @classmethod
    def create_plane(cls, width: float = 1.0, height: float = 1.0,
                     u_segments: int = 2, v_segments: int = 2) -> 'NURBSSurface':
        from .primitives import make_nurbs_plane
        return make_nurbs_plane(width, height, u_segments, v_segments)

    @classmethod
    def create_sphere(cls, radius: float = 1.0) -> 'NURBSSurface':
        from .primitives import make_nurbs_sphere
        return make_nurbs_sphere(radius)

    @classmethod
    def create_torus(cls, major_radius: float = 2.0, minor_radius: float = 1.0) -> 'NURBSSurface':
        from .primitives import make_nurbs_torus
        return make_nurbs_torus(major_radius, minor_radius)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        p, q = self.degrees
        return {
            "type": self.kind.value,
            "controlGrid": self._grid.tolist(),
            "degreeU": p,
            "degreeV": q,
            "knotsU": self._kv_u.to_list(),
            "knotsV": self._kv_v.to_list(),
            "weights": self._weights.tolist(),
            "trimU": None if self._trim_u is None else list(self._trim_u),
            "trimV": None if self._trim_v is None else list(self._trim_v),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any],
                  config: Optional[GeometryConfig] = None) -> 'NURBSSurface':
        if data.get("type", GeometryKind.NURBS.value) != GeometryKind.NURBS.value:
            raise StructuralError(f"Expected a nurbs record, got type {data.get('type')!r}")
        try:
            surface = cls(data["controlGrid"], data.get("degreeU", 3), data.get("degreeV", 3),
                          data.get("knotsU"), data.get("knotsV"), data.get("weights"), config)
        except KeyError as exc:
            raise StructuralError(f"NURBS record is missing {exc}") from exc
        if data.get("trimU") is not None or data.get("trimV") is not None:
            surface.trim(data.get("trimU"), data.get("trimV"))
        return surface

    def __repr__(self) -> str:
        n_u, n_v = self.n_control_points
        p, q = self.degrees
        return (f"NURBSSurface(grid={n_u}x{n_v}, degrees=({p}, {q}), "
                f"rational={self.is_rational})")
