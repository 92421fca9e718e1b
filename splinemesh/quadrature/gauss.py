"""
Gauss-Legendre rules on the unit interval and the unit square.

An n-point rule is exact for polynomials of degree 2n - 1. Surface
integrals in ``geometry.parametric`` split the parameter rectangle into
cells and map the unit-square rule onto each one.
"""

import numpy as np
from typing import Tuple
from functools import lru_cache

from ..errors import DomainError


@lru_cache(maxsize=16)
def _unit_rule(n: int) -> Tuple[np.ndarray, np.ndarray]:
    nodes, weights = np.polynomial.legendre.leggauss(n)
    # [-1, 1] -> [0, 1]
    nodes = 0.5 * (nodes + 1.0)
    weights = 0.5 * weights
    nodes.setflags(write=False)
    weights.setflags(write=False)
    return nodes, weights


def gauss_legendre_1d(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    n-point rule on [0, 1].

    Returns:
        (points, weights), both of length n; the weights sum to 1
    """
    if n < 1:
        raise DomainError(f"A quadrature rule needs at least one point, got {n}")
    nodes, weights = _unit_rule(int(n))
    return nodes.copy(), weights.copy()


def gauss_legendre_2d(n_u: int, n_v: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tensor-product rule on [0, 1] x [0, 1].

    Returns:
        (points, weights): points of shape (n_u * n_v, 2) ordered with v
        varying fastest, weights of shape (n_u * n_v,)
    """
    a, wa = gauss_legendre_1d(n_u)
    b, wb = gauss_legendre_1d(n_v)
    points = np.stack(np.meshgrid(a, b, indexing='ij'), axis=-1).reshape(-1, 2)
    return points, np.outer(wa, wb).ravel()
