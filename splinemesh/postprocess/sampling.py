"""
Parameter sampling for tessellation and post-processing.

This module provides utilities for evaluating curves and surfaces on
regular parameter grids.

Key functions:
- parameter_samples: Evenly spaced parameters over an interval
- parameter_grid: Tensor grid of (u, v) parameters
- sample_curve: Points and first derivatives of a curve
- curve_frames: Reference-axis frames along sampled tangents
- sample_surface: Points and normals of a surface on a grid

Surfaces with knot vectors clamp their samples into the valid span range,
so that rounding in linspace never produces a parameter just outside it.
"""

import numpy as np
from typing import Tuple, Optional, Callable

from ..errors import check_count
from ..geometry.base import reference_frame


def parameter_samples(segments: int,
                      domain: Tuple[float, float] = (0.0, 1.0),
                      clamp_to: Optional[Tuple[float, float]] = None) -> np.ndarray:
    """
    Evenly spaced parameter values.

    Parameters:
        segments: Number of intervals (segments + 1 samples)
        domain: (start, end) of the sampled interval
        clamp_to: Optional valid interval the samples are clipped into

    Returns:
        Array of shape (segments + 1,)
    """
    a, b = domain
    t = np.linspace(a, b, segments + 1)
    # Hit the end points exactly
    t[0], t[-1] = a, b
    if clamp_to is not None:
        t = np.clip(t, clamp_to[0], clamp_to[1])
    return t


def parameter_grid(u_range: Tuple[float, float], v_range: Tuple[float, float],
                   u_segments: int, v_segments: int,
                   clamp_u: Optional[Tuple[float, float]] = None,
                   clamp_v: Optional[Tuple[float, float]] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Regular (u, v) grid.

    Returns:
        (us, vs) 1D arrays of length u_segments+1 and v_segments+1
    """
    return (parameter_samples(u_segments, u_range, clamp_u),
            parameter_samples(v_segments, v_range, clamp_v))


def sample_curve(curve, segments: int,
                 max_segments: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Sample positions and first derivatives of a curve on [0, 1].

    Parameters:
        curve: BezierCurve or Spline
        segments: Number of intervals
        max_segments: Upper limit (defaults to the curve's config)

    Returns:
        (params, points, derivatives) with shapes (n,), (n, 3), (n, 3)
    """
    limit = curve.config.max_segments if max_segments is None else max_segments
    segments = check_count("segments", segments, limit)
    params = parameter_samples(segments)
    points = np.zeros((segments + 1, 3))
    ders = np.zeros((segments + 1, 3))
    for i, t in enumerate(params):
        res = curve.evaluate(float(t), 1)
        points[i] = res.point
        ders[i] = res.derivatives[0]
    return params, points, ders


def curve_frames(derivatives: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Reference-axis frames (T, N, B) for each sampled first derivative."""
    n = len(derivatives)
    T = np.zeros((n, 3))
    N = np.zeros((n, 3))
    B = np.zeros((n, 3))
    for i in range(n):
        T[i], N[i], B[i] = reference_frame(derivatives[i])
    return T, N, B


def sample_surface(sample: Callable[[float, float], Tuple[np.ndarray, np.ndarray]],
                   us: np.ndarray, vs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate points and normals on a tensor grid.

    Parameters:
        sample: Callable (u, v) -> (point, normal)
        us, vs: Parameter values per axis

    Returns:
        (points, normals) each of shape (len(us), len(vs), 3)
    """
    points = np.zeros((len(us), len(vs), 3))
    normals = np.zeros((len(us), len(vs), 3))
    for i, u in enumerate(us):
        for j, v in enumerate(vs):
            points[i, j], normals[i, j] = sample(float(u), float(v))
    return points, normals


def normalized_uvs(us: np.ndarray, vs: np.ndarray) -> np.ndarray:
    """UV coordinates in [0, 1] for a (len(us), len(vs)) grid."""
    su = (us - us[0]) / (us[-1] - us[0]) if us[-1] != us[0] else np.zeros_like(us)
    sv = (vs - vs[0]) / (vs[-1] - vs[0]) if vs[-1] != vs[0] else np.zeros_like(vs)
    uu, vv = np.meshgrid(su, sv, indexing='ij')
    return np.stack([uu, vv], axis=-1)
