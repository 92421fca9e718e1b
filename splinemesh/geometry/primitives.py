"""
Primitive geometry factory functions.

This module provides factory functions for the canonical shapes used as
fixtures and building blocks:
- NURBS plane, sphere and torus (exact rational representations)
- Rational Bezier circular arcs and full circles
- Closed-form parametric sphere, torus, plane, cylinder and Klein bottle

NURBS surfaces of revolution are built from two rational quadratic
circles: the revolution circle (u) and a profile (v). A control point
P_ij = (rho_j * cx_i, y_j, rho_j * cz_i) carries the weight w_i * w_j,
where (cx_i, cz_i) are the unit circle control points and (rho_j, y_j)
the profile control points. The axis of revolution is Y.
"""

import math
from typing import Tuple

import numpy as np

from ..errors import DomainError
from ..discretization.knot_vector import make_open_knot_vector
from .bezier import BezierCurve
from .nurbs import NURBSSurface
from .parametric import ParametricSurface

# Quadratic rational circle: 9 control points, double knots at the quarters
CIRCLE_KNOTS = np.array([0, 0, 0, 0.25, 0.25, 0.5, 0.5, 0.75, 0.75, 1, 1, 1], dtype=np.float64)
HALF_CIRCLE_KNOTS = np.array([0, 0, 0, 0.5, 0.5, 1, 1, 1], dtype=np.float64)


def _circle_control_points(n_quarters: int = 4, start_angle: float = 0.0
                           ) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unit circle control points (cos, sin) for n quarter arcs.

    Returns:
        (points, weights) with 2 * n_quarters + 1 entries
    """
    w = 1.0 / np.sqrt(2.0)
    angles = start_angle + np.arange(2 * n_quarters + 1) * np.pi / 4
    points = np.column_stack([np.cos(angles), np.sin(angles)])
    weights = np.ones(len(angles))

    # The 45-degree control points lie outside the circle at radius*sqrt(2)
    points[1::2] *= np.sqrt(2.0)
    weights[1::2] = w
    return points, weights


def _revolve_profile(profile: np.ndarray, profile_weights: np.ndarray,
                     profile_knots: np.ndarray) -> NURBSSurface:
    circle, circle_w = _circle_control_points()
    rho, y = profile[:, 0], profile[:, 1]

    grid = np.empty((len(circle), len(profile), 3))
    grid[..., 0] = np.outer(circle[:, 0], rho)
    grid[..., 1] = y[None, :]
    grid[..., 2] = np.outer(circle[:, 1], rho)
    weights = np.outer(circle_w, profile_weights)

    return NURBSSurface(grid, degree_u=2, degree_v=2,
                        knots_u=CIRCLE_KNOTS, knots_v=profile_knots, weights=weights)


# ---------------------------------------------------------------------------
# NURBS fixtures
# ---------------------------------------------------------------------------

def make_nurbs_plane(width: float = 1.0, height: float = 1.0,
                     u_segments: int = 2, v_segments: int = 2) -> NURBSSurface:
    """
    Flat degree-1 NURBS patch centered on the origin in the XY plane.

    Parameters:
        width: Extent along X (u direction)
        height: Extent along Y (v direction)
        u_segments, v_segments: Number of bilinear cells per direction

    Returns:
        NURBSSurface with normal +Z
    """
    if u_segments < 1 or v_segments < 1:
        raise DomainError("Plane needs at least one segment per direction")
    xs = np.linspace(-0.5 * width, 0.5 * width, u_segments + 1)
    ys = np.linspace(-0.5 * height, 0.5 * height, v_segments + 1)
    xx, yy = np.meshgrid(xs, ys, indexing='ij')
    grid = np.stack([xx, yy, np.zeros_like(xx)], axis=2)

    kv_u = make_open_knot_vector(u_segments + 1, 1)
    kv_v = make_open_knot_vector(v_segments + 1, 1)
    return NURBSSurface(grid, degree_u=1, degree_v=1, knots_u=kv_u.knots, knots_v=kv_v.knots)


def make_nurbs_sphere(radius: float = 1.0) -> NURBSSurface:
    """
    Exact NURBS sphere centered on the origin.

    u runs around the Y axis (9-point circle), v runs along a meridian from
    the north pole to the south pole (5-point half circle), so that
    dS/du x dS/dv points outward. Both poles are degenerate rows.
    """
    if radius <= 0:
        raise DomainError(f"Sphere radius must be positive, got {radius}")
    w = 1.0 / np.sqrt(2.0)
    meridian = radius * np.array([
        [0.0, 1.0],
        [1.0, 1.0],
        [1.0, 0.0],
        [1.0, -1.0],
        [0.0, -1.0],
    ])
    meridian_w = np.array([1.0, w, 1.0, w, 1.0])
    return _revolve_profile(meridian, meridian_w, HALF_CIRCLE_KNOTS)


def make_nurbs_torus(major_radius: float = 2.0, minor_radius: float = 1.0) -> NURBSSurface:
    """
    Exact NURBS torus around the Y axis.

    S(u, v) follows ((R + r cos v) cos u, r sin v, (R + r cos v) sin u)
    with both angles mapped onto the 9-point rational circle.
    """
    if not 0 < minor_radius < major_radius:
        raise DomainError("Torus needs 0 < minor_radius < major_radius")
    tube, tube_w = _circle_control_points()
    profile = np.column_stack([major_radius + minor_radius * tube[:, 0],
                               minor_radius * tube[:, 1]])
    return _revolve_profile(profile, tube_w, CIRCLE_KNOTS)


# ---------------------------------------------------------------------------
# Rational Bezier arcs
# ---------------------------------------------------------------------------

def make_arc(radius: float = 1.0,
             center: Tuple[float, ...] = (0.0, 0.0, 0.0),
             start_angle: float = 0.0,
             end_angle: float = np.pi / 2) -> BezierCurve:
    """
    Circular arc in the XY plane as a composite rational quadratic Bezier.

    The sweep is split into equal pieces of at most 90 degrees; each piece
    has its middle control point at the intersection of the end tangents
    with weight cos(sweep / 2).

    Parameters:
        radius: Arc radius
        center: Center (x, y) or (x, y, z)
        start_angle: Starting angle in radians
        end_angle: Ending angle in radians

    Returns:
        BezierCurve of degree 2 with 2 * n_pieces + 1 control points
    """
    sweep = end_angle - start_angle
    if radius <= 0:
        raise DomainError(f"Arc radius must be positive, got {radius}")
    if sweep == 0 or abs(sweep) > 2 * np.pi + 1e-12:
        raise DomainError(f"Arc sweep must be nonzero and at most 2*pi, got {sweep}")

    c = np.zeros(3)
    c[:len(center)] = center
    n_pieces = max(1, math.ceil(abs(sweep) / (np.pi / 2) - 1e-9))
    piece = sweep / n_pieces
    w = np.cos(piece / 2)
    d = radius / w

    points = []
    weights = []
    for k in range(n_pieces):
        a0 = start_angle + k * piece
        mid = a0 + 0.5 * piece
        if k == 0:
            points.append(c + radius * np.array([np.cos(a0), np.sin(a0), 0.0]))
            weights.append(1.0)
        points.append(c + d * np.array([np.cos(mid), np.sin(mid), 0.0]))
        weights.append(w)
        a1 = a0 + piece
        points.append(c + radius * np.array([np.cos(a1), np.sin(a1), 0.0]))
        weights.append(1.0)

    return BezierCurve(np.array(points), degree=2, weights=weights)


def make_circle(radius: float = 1.0,
                center: Tuple[float, ...] = (0.0, 0.0, 0.0)) -> BezierCurve:
    """Full circle, counterclockwise from the +X axis (four quarter arcs)."""
    return make_arc(radius, center, 0.0, 2 * np.pi)


# ---------------------------------------------------------------------------
# Parametric fixtures
# ---------------------------------------------------------------------------

def make_parametric_sphere(radius: float = 1.0, **kwargs) -> ParametricSurface:
    """Sphere with u the polar angle from +Y and v the azimuth."""
    def f(u, v):
        return (radius * np.sin(u) * np.cos(v),
                radius * np.cos(u),
                radius * np.sin(u) * np.sin(v))
    return ParametricSurface(f, (0.0, np.pi), (0.0, 2 * np.pi), pure=True, **kwargs)


def make_parametric_torus(major_radius: float = 2.0, minor_radius: float = 1.0,
                          **kwargs) -> ParametricSurface:
    def f(u, v):
        ring = major_radius + minor_radius * np.cos(v)
        return (ring * np.cos(u), minor_radius * np.sin(v), ring * np.sin(u))
    return ParametricSurface(f, (0.0, 2 * np.pi), (0.0, 2 * np.pi), pure=True, **kwargs)


def make_parametric_plane(width: float = 1.0, height: float = 1.0, **kwargs) -> ParametricSurface:
    def f(u, v):
        return (u, v, 0.0)
    return ParametricSurface(f, (-0.5 * width, 0.5 * width), (-0.5 * height, 0.5 * height),
                             pure=True, **kwargs)


def make_parametric_cylinder(radius: float = 1.0, height: float = 2.0,
                             **kwargs) -> ParametricSurface:
    """Open cylinder around the Y axis, u the angle and v the height."""
    def f(u, v):
        return (radius * np.cos(u), v, radius * np.sin(u))
    return ParametricSurface(f, (0.0, 2 * np.pi), (-0.5 * height, 0.5 * height),
                             pure=True, **kwargs)


def make_parametric_klein_bottle(**kwargs) -> ParametricSurface:
    """Figure-eight immersion of the Klein bottle."""
    def f(u, v):
        c, s = np.cos(0.5 * u), np.sin(0.5 * u)
        r = c * np.cos(v) - s * np.sin(2 * v)
        return (np.cos(u) * r, np.sin(u) * r, c * np.sin(v) + s * np.cos(2 * v))
    return ParametricSurface(f, (0.0, 2 * np.pi), (0.0, 2 * np.pi), pure=True, **kwargs)
