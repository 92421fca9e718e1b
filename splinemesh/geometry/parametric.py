"""
Surfaces given by an arbitrary function f(u, v) -> point.

The function is a black box, so all differential quantities are estimated
by central finite differences. The step along each axis is
fd_step * (axis length). Near the domain boundary the stencil is shifted
inside the domain instead of sampling outside it.

Evaluations are memoized only when the caller declares the function pure;
an impure function (for example one reading animated state) is called
afresh every time.
"""

import math
from typing import Callable, Dict, List, Optional, Tuple, NamedTuple

import numpy as np

from ..errors import StructuralError, DomainError, check_count
from ..io.config import GeometryConfig, get_config
from ..postprocess.mesh import Mesh, build_grid_mesh, build_adaptive_mesh
from ..postprocess.sampling import parameter_grid, parameter_samples, sample_surface, normalized_uvs
from ..quadrature.gauss import gauss_legendre_2d
from .base import (GeometryKind, SurfaceEvaluation, EvaluationCache, BoundingBox,
                   Curvatures, check_parameter, normalize, nudged_normal, surface_curvatures)
from .intersection import RayHit, intersect_with_ray

# Highest derivative order available from finite differences
MAX_FD_ORDER = 4

# Samples per axis used for the bounding box
BBOX_SAMPLES = 16


class IsolineSamples(NamedTuple):
    """Samples along one parameter direction of a surface."""
    parameters: np.ndarray
    points: np.ndarray
    normals: np.ndarray
    tangents: np.ndarray


def _check_range(name: str, rng) -> Tuple[float, float]:
    try:
        lo, hi = float(rng[0]), float(rng[1])
    except (TypeError, IndexError, ValueError) as exc:
        raise StructuralError(f"{name} must be a (min, max) pair, got {rng!r}") from exc
    if not (np.isfinite(lo) and np.isfinite(hi)) or not lo < hi:
        raise StructuralError(f"{name} must satisfy min < max, got ({lo}, {hi})")
    return lo, hi


def _difference_stencil(order: int) -> Tuple[np.ndarray, np.ndarray]:
    """Offsets (in steps) and coefficients of the central k-th difference."""
    offsets = np.array([order / 2.0 - i for i in range(order + 1)])
    coeffs = np.array([(-1) ** i * math.comb(order, i) for i in range(order + 1)], dtype=float)
    return offsets, coeffs


class ParametricSurface:
    """
    Surface S(u, v) = f(u, v) over [u0, u1] x [v0, v1].

    Attributes:
        kind: GeometryKind.PARAMETRIC
        function: The callable f(u, v) returning a 2D or 3D point
        u_range, v_range: Parameter domain
        pure: Whether results may be memoized
        config: Limits and tolerances used by this instance
    """

    kind = GeometryKind.PARAMETRIC

    def __init__(self, function: Callable[[float, float], np.ndarray],
                 u_range: Tuple[float, float] = (0.0, 1.0),
                 v_range: Tuple[float, float] = (0.0, 1.0),
                 pure: bool = False,
                 config: Optional[GeometryConfig] = None):
        if not callable(function):
            raise StructuralError("Surface function must be callable")
        self.function = function
        self.u_range = _check_range("u_range", u_range)
        self.v_range = _check_range("v_range", v_range)
        self.pure = bool(pure)
        self.config = config if config is not None else get_config()
        self._cache = EvaluationCache(owner="ParametricSurface",
                                      capacity=self.config.max_cache_entries)
        self._bbox: Optional[BoundingBox] = None

    @property
    def domain(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        return (self.u_range, self.v_range)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _call(self, u: float, v: float) -> np.ndarray:
        p = np.asarray(self.function(u, v), dtype=np.float64).reshape(-1)
        if p.shape[0] == 2:
            p = np.append(p, 0.0)
        if p.shape[0] != 3:
            raise StructuralError(f"Surface function must return 2 or 3 values, got {p.shape[0]}")
        return p

    def _check_uv(self, u: float, v: float) -> Tuple[float, float]:
        return (check_parameter(u, "u", self.u_range),
                check_parameter(v, "v", self.v_range))

    def evaluate(self, u: float, v: float, derivatives: int = 0) -> SurfaceEvaluation:
        """
        Evaluate the surface (and optionally its partials) at (u, v).

        Parameters:
            u, v: Parameters inside the domain
            derivatives: Highest total derivative order (finite differences)
        """
        u, v = self._check_uv(u, v)
        derivatives = int(derivatives)
        if derivatives < 0:
            raise DomainError(f"Derivative order must be >= 0, got {derivatives}")
        key = (u, v, derivatives)
        if self.pure:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        ders = {}
        if derivatives > 0:
            ders = self.compute_partial_derivatives(u, v, derivatives)
        result = SurfaceEvaluation(self._call(u, v), ders)
        if self.pure:
            return self._cache.put(key, result)
        return result

    def compute_partial_derivatives(self, u: float, v: float,
                                    max_order: int = 2) -> Dict[Tuple[int, int], np.ndarray]:
        """
        Central finite-difference partials d^(k+l) S / du^k dv^l.

        Parameters:
            u, v: Parameters inside the domain
            max_order: Highest total order k + l (1..4)

        Returns:
            Dict (k, l) -> partial for 1 <= k + l <= max_order
        """
        u, v = self._check_uv(u, v)
        max_order = int(max_order)
        if not 1 <= max_order <= MAX_FD_ORDER:
            raise DomainError(f"max_order must be in [1, {MAX_FD_ORDER}], got {max_order}")

        hu = self.config.fd_step * (self.u_range[1] - self.u_range[0])
        hv = self.config.fd_step * (self.v_range[1] - self.v_range[0])
        values: Dict[Tuple[float, float], np.ndarray] = {}

        def f(a, b):
            if (a, b) not in values:
                values[(a, b)] = self._call(a, b)
            return values[(a, b)]

        result = {}
        for k in range(max_order + 1):
            for l in range(max_order + 1 - k):
                if k + l == 0:
                    continue
                # Shift the stencil center inside the domain
                cu = min(max(u, self.u_range[0] + 0.5 * k * hu), self.u_range[1] - 0.5 * k * hu)
                cv = min(max(v, self.v_range[0] + 0.5 * l * hv), self.v_range[1] - 0.5 * l * hv)
                off_u, co_u = _difference_stencil(k)
                off_v, co_v = _difference_stencil(l)
                acc = np.zeros(3)
                for a, ca in zip(off_u, co_u):
                    for b, cb in zip(off_v, co_v):
                        acc += ca * cb * f(cu + a * hu, cv + b * hv)
                result[(k, l)] = acc / (hu ** k * hv ** l)
        return result

    def _raw_normal(self, u: float, v: float) -> np.ndarray:
        d = self.compute_partial_derivatives(u, v, 1)
        return normalize(np.cross(d[(1, 0)], d[(0, 1)]))

    def compute_normal(self, u: float, v: float) -> np.ndarray:
        """Unit normal (dS/du x dS/dv), recovered near degenerate points."""
        u, v = self._check_uv(u, v)
        return nudged_normal(self._raw_normal, u, v, self.u_range, self.v_range)

    def compute_tangent_space(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Unit tangents along u and v, and the unit normal."""
        d = self.compute_partial_derivatives(u, v, 1)
        return normalize(d[(1, 0)]), normalize(d[(0, 1)]), self.compute_normal(u, v)

    def compute_curvatures(self, u: float, v: float) -> Curvatures:
        """Gaussian, mean and principal curvatures at (u, v)."""
        d = self.compute_partial_derivatives(u, v, 2)
        return surface_curvatures(d[(1, 0)], d[(0, 1)], d[(2, 0)], d[(1, 1)], d[(0, 2)],
                                  normal=self.compute_normal(u, v))

    # ------------------------------------------------------------------
    # Tessellation
    # ------------------------------------------------------------------

    def _sample(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray]:
        return self._call(u, v), self.compute_normal(u, v)

    def tessellate(self, u_segments: int = 20, v_segments: int = 20) -> Mesh:
        """Regular grid of (u_segments+1) x (v_segments+1) vertices, two triangles per cell."""
        u_segments = check_count("u_segments", u_segments, self.config.max_segments)
        v_segments = check_count("v_segments", v_segments, self.config.max_segments)
        us, vs = parameter_grid(self.u_range, self.v_range, u_segments, v_segments)
        points, normals = sample_surface(self._sample, us, vs)
        return build_grid_mesh(points, normals, normalized_uvs(us, vs))

    def _curvature_magnitude(self, u: float, v: float) -> float:
        c = self.compute_curvatures(u, v)
        return max(abs(c.k1), abs(c.k2))

    def tessellate_adaptive(self, threshold: float = 0.1, max_depth: int = 4,
                            u_segments: int = 4, v_segments: int = 4) -> Mesh:
        """
        Curvature-driven quadtree tessellation.

        A cell is split while its largest principal curvature at the center
        times its 3D diagonal exceeds threshold, at most max_depth times.
        """
        if not threshold > 0:
            raise DomainError(f"threshold must be > 0, got {threshold}")
        max_depth = check_count("max_depth", max_depth, self.config.max_adaptive_depth, minimum=0)
        u_segments = check_count("u_segments", u_segments, self.config.max_segments)
        v_segments = check_count("v_segments", v_segments, self.config.max_segments)
        return build_adaptive_mesh(self._sample, self._curvature_magnitude,
                                   self.u_range, self.v_range, u_segments, v_segments,
                                   threshold, max_depth,
                                   self.config.max_adaptive_cells)

    # ------------------------------------------------------------------
    # Integrals and sampling
    # ------------------------------------------------------------------

    def _integrate(self, integrand, u_segments: int, v_segments: int, n_points: int) -> float:
        u_segments = check_count("u_segments", u_segments, self.config.max_segments)
        v_segments = check_count("v_segments", v_segments, self.config.max_segments)
        qp, qw = gauss_legendre_2d(n_points, n_points)
        us, vs = parameter_grid(self.u_range, self.v_range, u_segments, v_segments)
        total = 0.0
        for i in range(u_segments):
            du = us[i + 1] - us[i]
            for j in range(v_segments):
                dv = vs[j + 1] - vs[j]
                for (a, b), w in zip(qp, qw):
                    u = us[i] + a * du
                    v = vs[j] + b * dv
                    total += w * du * dv * integrand(u, v)
        return total

    def compute_area(self, u_segments: int = 8, v_segments: int = 8, n_points: int = 4) -> float:
        """Surface area, integral of |dS/du x dS/dv| by Gauss-Legendre quadrature."""
        def integrand(u, v):
            d = self.compute_partial_derivatives(u, v, 1)
            return float(np.linalg.norm(np.cross(d[(1, 0)], d[(0, 1)])))
        return self._integrate(integrand, u_segments, v_segments, n_points)

    def compute_volume(self, u_segments: int = 8, v_segments: int = 8, n_points: int = 4) -> float:
        """
        Enclosed volume of a closed surface by the divergence theorem:

            V = |1/3 * integral of S . (dS/du x dS/dv) du dv|
        """
        def integrand(u, v):
            d = self.compute_partial_derivatives(u, v, 1)
            return float(np.dot(self._call(u, v), np.cross(d[(1, 0)], d[(0, 1)])))
        return abs(self._integrate(integrand, u_segments, v_segments, n_points)) / 3.0

    def intersect_with_ray(self, origin, direction, max_distance: float = np.inf,
                           samples: int = 32, max_iterations: int = 20) -> List[RayHit]:
        """
        Intersections of the ray origin + s * direction (s > 0), nearest first.

        Parameters:
            origin, direction: Ray; direction need not be normalized
            max_distance: Largest distance along the ray to report
            samples: Grid cells per axis used to find candidate hits
            max_iterations: Newton refinement limit per hit
        """
        return intersect_with_ray(self, origin, direction, max_distance,
                                  self.u_range, self.v_range, samples, max_iterations,
                                  self.config)

    def sample_isoline(self, direction: str = "u", samples: int = 100,
                       value: Optional[float] = None) -> IsolineSamples:
        """
        Sample along one parameter direction.

        Parameters:
            direction: "u" varies u at fixed v, "v" varies v at fixed u
            samples: Number of intervals (samples + 1 points)
            value: Fixed value of the other parameter (default: its midpoint)
        """
        if direction not in ("u", "v"):
            raise DomainError(f"direction must be 'u' or 'v', got {direction!r}")
        samples = check_count("samples", samples, self.config.max_segments)
        moving, fixed_range = ((self.u_range, self.v_range) if direction == "u"
                               else (self.v_range, self.u_range))
        fixed = 0.5 * (fixed_range[0] + fixed_range[1]) if value is None else float(value)

        params = np.zeros((samples + 1, 2))
        points = np.zeros((samples + 1, 3))
        normals = np.zeros((samples + 1, 3))
        tangents = np.zeros((samples + 1, 3))
        for i, s in enumerate(parameter_samples(samples, moving)):
            u, v = (s, fixed) if direction == "u" else (fixed, s)
            tu, tv, n = self.compute_tangent_space(u, v)
            params[i] = (u, v)
            points[i] = self._call(u, v)
            normals[i] = n
            tangents[i] = tu if direction == "u" else tv
        return IsolineSamples(params, points, normals, tangents)

    @property
    def bounding_box(self) -> BoundingBox:
        """Bounds of a regular sample grid (cached only for pure functions)."""
        if self._bbox is not None:
            return self._bbox
        us, vs = parameter_grid(self.u_range, self.v_range, BBOX_SAMPLES, BBOX_SAMPLES)
        pts = np.array([self._call(u, v) for u in us for v in vs])
        bbox = BoundingBox.from_points(pts)
        if self.pure:
            self._bbox = bbox
        return bbox

    def clear_cache(self) -> None:
        """Drop memoized evaluations, e.g. after changing state f depends on."""
        self._cache.clear()
        self._bbox = None

    def clone(self) -> 'ParametricSurface':
        return ParametricSurface(self.function, self.u_range, self.v_range, self.pure, self.config)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def create_sphere(cls, radius: float = 1.0, **kwargs) -> 'ParametricSurface':
        from .primitives import make_parametric_sphere
        return make_parametric_sphere(radius, **kwargs)

    @classmethod
    def create_torus(cls, major_radius: float = 2.0, minor_radius: float = 1.0,
                     **kwargs) -> 'ParametricSurface':
        from .primitives import make_parametric_torus
        return make_parametric_torus(major_radius, minor_radius, **kwargs)

    @classmethod
    def create_plane(cls, width: float = 1.0, height: float = 1.0, **kwargs) -> 'ParametricSurface':
        from .primitives import make_parametric_plane
        return make_parametric_plane(width, height, **kwargs)

    @classmethod
    def create_cylinder(cls, radius: float = 1.0, height: float = 2.0,
                        **kwargs) -> 'ParametricSurface':
        from .primitives import make_parametric_cylinder
        return make_parametric_cylinder(radius, height, **kwargs)

    @classmethod
    def create_klein_bottle(cls, **kwargs) -> 'ParametricSurface':
        from .primitives import make_parametric_klein_bottle
        return make_parametric_klein_bottle(**kwargs)

    def __repr__(self) -> str:
        return (f"ParametricSurface(u_range={self.u_range}, v_range={self.v_range}, "
                f"pure={self.pure})")
