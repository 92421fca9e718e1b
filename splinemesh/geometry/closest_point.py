"""
Closest-point search on parametric curves.

The search seeds a parameter from a coarse uniform sampling, then runs a
bounded Newton-Raphson iteration on the squared distance:

    t <- t - (C(t) - target) . C'(t) / |C'(t)|^2

clamped to [0, 1] after every step. The iteration never fails: it stops
after max_iterations, when the step no longer moves t, or early when
|C'(t)|^2 falls below the configured derivative epsilon. The best iterate
seen is returned; callers compare its distance against their own tolerance.
"""

from typing import Callable, NamedTuple

import numpy as np
from loguru import logger

from ..errors import check_count
from ..io.config import GeometryConfig
from .base import EvaluationResult


class ClosestPoint(NamedTuple):
    """Result of a closest-point query."""
    parameter: float
    point: np.ndarray
    distance: float


def find_closest_point(evaluate: Callable[[float, int], EvaluationResult],
                       target, max_iterations: int,
                       config: GeometryConfig) -> ClosestPoint:
    """
    Bounded Newton search for the parameter nearest to target.

    Parameters:
        evaluate: Callable (t, derivatives) -> EvaluationResult on [0, 1]
        target: 3D (or 2D, padded with z = 0) target point
        max_iterations: Newton iteration limit
        config: Limits and tolerances

    Returns:
        ClosestPoint for the best parameter found
    """
    max_iterations = check_count("max_iterations", max_iterations, config.max_iterations)
    target = np.asarray(target, dtype=np.float64).reshape(-1)
    if target.shape[0] == 2:
        target = np.append(target, 0.0)

    # Coarse seed
    best_t = 0.0
    best_point = None
    best_d2 = np.inf
    for t in np.linspace(0.0, 1.0, config.closest_point_samples + 1):
        p = evaluate(float(t), 0).point
        d2 = float(np.dot(p - target, p - target))
        if d2 < best_d2:
            best_t, best_point, best_d2 = float(t), p, d2

    t = best_t
    for iteration in range(max_iterations):
        res = evaluate(t, 1)
        diff = res.point - target
        d2 = float(np.dot(diff, diff))
        if d2 < best_d2:
            best_t, best_point, best_d2 = t, res.point, d2

        d1 = res.derivatives[0]
        denom = float(np.dot(d1, d1))
        if denom < config.derivative_epsilon:
            logger.debug(f"Newton stopped at iteration {iteration}: |C'|^2={denom:g} at t={t:g}")
            break

        t_new = min(max(t - float(np.dot(diff, d1)) / denom, 0.0), 1.0)
        if t_new == t:
            break
        t = t_new
    else:
        res = evaluate(t, 0)
        d2 = float(np.dot(res.point - target, res.point - target))
        if d2 < best_d2:
            best_t, best_point, best_d2 = t, res.point, d2

    return ClosestPoint(best_t, np.array(best_point), float(np.sqrt(best_d2)))
