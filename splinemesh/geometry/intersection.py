"""
Ray intersection with parametric surfaces.

The surface is sampled on a regular (u, v) grid and every cell is split
into two triangles. A Moller-Trumbore test against each triangle yields
candidate hits. The (u, v) of a candidate is interpolated from the
triangle corners and refined by Newton iteration on

    S(u, v) - (origin + s * direction) = 0

with the 3x3 Jacobian [S_u, S_v, -direction]. A candidate whose refinement
does not converge (for example at a pole, where S_v vanishes) keeps its
triangle estimate. Hits that land on the same point (rays crossing a shared
triangle edge or the seam of a closed surface) are merged.
"""

from typing import Callable, List, NamedTuple, Optional, Tuple

import numpy as np
from loguru import logger

from ..errors import DomainError, check_count
from ..io.config import GeometryConfig
from ..postprocess.sampling import parameter_grid
from .base import SurfaceEvaluation

# Barycentric slack so that rays through triangle edges are not lost
EDGE_TOLERANCE = 1e-9

# Newton residual accepted as converged, relative to the surface size
RESIDUAL_TOLERANCE = 1e-10

# Hits closer than this (relative to the surface size) are the same hit
MERGE_TOLERANCE = 1e-7


class RayHit(NamedTuple):
    """One intersection of a ray with a surface."""
    parameter: Tuple[float, float]
    point: np.ndarray
    distance: float
    normal: np.ndarray


def _as_vector(name: str, value) -> np.ndarray:
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape[0] == 2:
        vec = np.append(vec, 0.0)
    if vec.shape[0] != 3 or not np.all(np.isfinite(vec)):
        raise DomainError(f"{name} must be a finite 2D or 3D vector, got {value!r}")
    return vec


def ray_triangle(origin: np.ndarray, direction: np.ndarray,
                 a: np.ndarray, b: np.ndarray, c: np.ndarray) -> Optional[Tuple[float, float, float]]:
    """
    Moller-Trumbore ray/triangle test.

    Returns:
        (s, beta, gamma) with origin + s * direction equal to
        (1 - beta - gamma) a + beta b + gamma c, or None when the ray
        misses or runs parallel to the triangle
    """
    e1 = b - a
    e2 = c - a
    h = np.cross(direction, e2)
    det = float(np.dot(e1, h))
    # Degenerate (zero-area) triangles give det == 0 as well
    if abs(det) <= 1e-12 * float(np.linalg.norm(e1) * np.linalg.norm(e2)):
        return None
    inv = 1.0 / det
    offset = origin - a
    beta = inv * float(np.dot(offset, h))
    if beta < -EDGE_TOLERANCE or beta > 1.0 + EDGE_TOLERANCE:
        return None
    q = np.cross(offset, e1)
    gamma = inv * float(np.dot(direction, q))
    if gamma < -EDGE_TOLERANCE or beta + gamma > 1.0 + EDGE_TOLERANCE:
        return None
    return inv * float(np.dot(e2, q)), beta, gamma


def _refine(evaluate: Callable[..., SurfaceEvaluation], u: float, v: float, s: float,
            origin: np.ndarray, direction: np.ndarray,
            u_range: Tuple[float, float], v_range: Tuple[float, float],
            max_iterations: int, tol: float) -> Optional[Tuple[float, float, float]]:
    """Newton iteration for (u, v, s); None when it does not converge."""
    for _ in range(max_iterations):
        ev = evaluate(u, v, 1)
        residual = ev.point - (origin + s * direction)
        if float(np.linalg.norm(residual)) < tol:
            return u, v, s
        J = np.column_stack([ev.du, ev.dv, -direction])
        try:
            step = np.linalg.solve(J, -residual)
        except np.linalg.LinAlgError:
            return None
        u = min(max(u + float(step[0]), u_range[0]), u_range[1])
        v = min(max(v + float(step[1]), v_range[0]), v_range[1])
        s += float(step[2])
    residual = evaluate(u, v, 0).point - (origin + s * direction)
    return (u, v, s) if float(np.linalg.norm(residual)) < tol else None


def intersect_with_ray(surface, origin, direction, max_distance: float,
                       u_range: Tuple[float, float], v_range: Tuple[float, float],
                       samples: int, max_iterations: int,
                       config: GeometryConfig) -> List[RayHit]:
    """
    All intersections of a ray with a surface, nearest first.

    Parameters:
        surface: Entity with evaluate(u, v, derivatives) and compute_normal(u, v)
        origin: Ray origin
        direction: Ray direction (normalized here, so distances are lengths)
        max_distance: Hits farther than this along the ray are dropped
        u_range, v_range: Parameter domain to search
        samples: Grid cells per axis of the candidate search
        max_iterations: Newton iteration limit per candidate
        config: Limits and tolerances

    Returns:
        List of RayHit sorted by distance; hits at the origin are excluded
    """
    samples = check_count("samples", samples, config.max_segments)
    max_iterations = check_count("max_iterations", max_iterations, config.max_iterations)
    origin = _as_vector("origin", origin)
    direction = _as_vector("direction", direction)
    length = float(np.linalg.norm(direction))
    if length == 0.0:
        raise DomainError("Ray direction must be non-zero")
    direction = direction / length
    if not max_distance > 0:
        raise DomainError(f"max_distance must be > 0, got {max_distance}")

    us, vs = parameter_grid(u_range, v_range, samples, samples)
    grid = np.array([[surface.evaluate(float(u), float(v)).point for v in vs] for u in us])
    flat = grid.reshape(-1, 3)
    scale = max(float(np.linalg.norm(flat.max(axis=0) - flat.min(axis=0))), 1.0)
    tol = RESIDUAL_TOLERANCE * scale

    hits: List[RayHit] = []
    fallbacks = 0
    for i in range(samples):
        for j in range(samples):
            corners = ((i, j), (i + 1, j), (i + 1, j + 1), (i, j + 1))
            for tri in ((0, 1, 3), (1, 2, 3)):
                a, b, c = (corners[k] for k in tri)
                found = ray_triangle(origin, direction, grid[a], grid[b], grid[c])
                if found is None:
                    continue
                s, beta, gamma = found
                alpha = 1.0 - beta - gamma
                u = alpha * us[a[0]] + beta * us[b[0]] + gamma * us[c[0]]
                v = alpha * vs[a[1]] + beta * vs[b[1]] + gamma * vs[c[1]]
                refined = _refine(surface.evaluate, float(u), float(v), s, origin, direction,
                                  u_range, v_range, max_iterations, tol)
                if refined is None:
                    fallbacks += 1
                else:
                    u, v, s = refined
                if not tol < s <= max_distance:
                    continue
                point = origin + s * direction
                if any(np.linalg.norm(point - h.point) < MERGE_TOLERANCE * scale for h in hits):
                    continue
                hits.append(RayHit((float(u), float(v)), point, float(s),
                                   surface.compute_normal(float(u), float(v))))

    if fallbacks:
        logger.debug(f"Ray intersection kept {fallbacks} unrefined triangle estimates")
    return sorted(hits, key=lambda h: h.distance)
