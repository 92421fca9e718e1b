"""
Basis function evaluation.

Curves and surfaces blend their control points with basis functions:

- Bernstein polynomials (Bezier curves):

    B_{i,n}(t) = C(n,i) * t^i * (1-t)^(n-i)

- Cubic Hermite functions h00, h10, h01, h11 and the cardinal
  (Catmull-Rom) weights derived from them
- Uniform cubic B-spline weights
- Cox-de Boor recursion over a knot vector (B-splines/NURBS):

    N_{i,0}(u) = 1 if u_i <= u < u_{i+1}, else 0

    N_{i,p}(u) = (u - u_i)/(u_{i+p} - u_i) * N_{i,p-1}(u)
               + (u_{i+p+1} - u)/(u_{i+p+1} - u_{i+1}) * N_{i+1,p-1}(u)

  with the convention that a term with a zero denominator contributes zero.

Properties:
- Partition of unity: the weights sum to 1 at every valid parameter
- Non-negativity (Bernstein, B-spline): N_{i,p}(u) >= 0
- Local support: N_{i,p} is non-zero only on [u_i, u_{i+p+1})

All functions return arrays whose row k holds the k-th derivative, so that
result[0] are the plain weights.
"""

import numpy as np
from typing import Optional
from scipy.special import comb

from ..discretization.knot_vector import KnotVector


def _safe_div(num: float, den: float) -> float:
    """Division where a zero denominator contributes zero."""
    if den == 0.0:
        return 0.0
    return num / den


# ---------------------------------------------------------------------------
# Bernstein
# ---------------------------------------------------------------------------

def bernstein_basis(n: int, t: float) -> np.ndarray:
    """All Bernstein polynomials B_{0,n}(t), ..., B_{n,n}(t)."""
    i = np.arange(n + 1)
    return comb(n, i) * t ** i * (1.0 - t) ** (n - i)


def bernstein_basis_ders(n: int, t: float, n_ders: int = 1) -> np.ndarray:
    """
    Evaluate Bernstein basis polynomials and derivatives at t.

    The k-th derivative follows from repeated differencing:

        d^k/dt^k B_{i,n}(t) = n!/(n-k)! * sum_j (-1)^(k-j) C(k,j) B_{i-j,n-k}(t)

    with B_{i,m} = 0 outside 0 <= i <= m. Orders above n vanish.

    Parameters:
        n: Polynomial degree
        t: Parameter value in [0, 1]
        n_ders: Number of derivatives to compute

    Returns:
        Array of shape (n_ders+1, n+1) where result[k, i] is
        d^k/dt^k B_{i,n}(t)
    """
    result = np.zeros((n_ders + 1, n + 1))
    result[0, :] = bernstein_basis(n, t)

    falling = 1.0
    for k in range(1, min(n_ders, n) + 1):
        falling *= (n - k + 1)
        lower = bernstein_basis(n - k, t)
        coeffs = [(-1) ** (k - j) * comb(k, j, exact=True) for j in range(k + 1)]
        for i in range(n + 1):
            d = 0.0
            for j in range(k + 1):
                if 0 <= i - j <= n - k:
                    d += coeffs[j] * lower[i - j]
            result[k, i] = falling * d

    return result


# ---------------------------------------------------------------------------
# Cubic Hermite / cardinal / uniform B-spline
# ---------------------------------------------------------------------------

# Rows: h00, h10, h01, h11 as coefficients of (1, t, t^2, t^3)
HERMITE_MATRIX = np.array([
    [1.0, 0.0, -3.0, 2.0],
    [0.0, 1.0, -2.0, 1.0],
    [0.0, 0.0, 3.0, -2.0],
    [0.0, 0.0, -1.0, 1.0],
])

# Rows: weights of P_{i-1}, P_i, P_{i+1}, P_{i+2}
UNIFORM_BSPLINE_MATRIX = np.array([
    [1.0, -3.0, 3.0, -1.0],
    [4.0, 0.0, -6.0, 3.0],
    [1.0, 3.0, 3.0, -3.0],
    [0.0, 0.0, 0.0, 1.0],
]) / 6.0


def _monomial_ders(t: float, n_ders: int) -> np.ndarray:
    """Derivatives of (1, t, t^2, t^3); row k is the k-th derivative."""
    M = np.zeros((n_ders + 1, 4))
    for k in range(n_ders + 1):
        for e in range(k, 4):
            # e! / (e-k)! * t^(e-k)
            factor = 1.0
            for r in range(k):
                factor *= (e - r)
            M[k, e] = factor * t ** (e - k)
    return M


def hermite_basis(t: float, n_ders: int = 0) -> np.ndarray:
    """
    Cubic Hermite basis h00, h10, h01, h11 and derivatives at t.

    A Hermite segment is h00*P0 + h10*M0 + h01*P1 + h11*M1 for end points
    P0, P1 and end tangents M0, M1.

    Returns:
        Array of shape (n_ders+1, 4)
    """
    return _monomial_ders(t, n_ders) @ HERMITE_MATRIX.T


def cardinal_matrix(tension: float) -> np.ndarray:
    """
    Coefficient matrix of the cardinal spline weights.

    With tangents m_i = tension * (P_{i+1} - P_{i-1}) the Hermite form
    becomes a blend of the four points P_{i-1}, P_i, P_{i+1}, P_{i+2}:

        w0 = -s h10,  w1 = h00 - s h11,  w2 = h01 + s h10,  w3 = s h11
    """
    s = float(tension)
    to_weights = np.array([
        [0.0, -s, 0.0, 0.0],
        [1.0, 0.0, 0.0, -s],
        [0.0, s, 1.0, 0.0],
        [0.0, 0.0, 0.0, s],
    ])
    return to_weights @ HERMITE_MATRIX


def catmull_rom_basis(t: float, tension: float = 0.5, n_ders: int = 0) -> np.ndarray:
    """
    Cardinal (Catmull-Rom for tension 0.5) weights and derivatives at t.

    Returns:
        Array of shape (n_ders+1, 4) with weights for P_{i-1}..P_{i+2}
    """
    return _monomial_ders(t, n_ders) @ cardinal_matrix(tension).T


def uniform_bspline_basis(t: float, n_ders: int = 0) -> np.ndarray:
    """
    Uniform cubic B-spline weights and derivatives at t.

    Returns:
        Array of shape (n_ders+1, 4) with weights for P_{i-1}..P_{i+2}
    """
    return _monomial_ders(t, n_ders) @ UNIFORM_BSPLINE_MATRIX.T


# ---------------------------------------------------------------------------
# Cox-de Boor
# ---------------------------------------------------------------------------

def _span_table(knots: np.ndarray, p: int, span: int, xi: float) -> list:
    """
    Non-zero basis functions of every degree up to p.

    Entry d has length d+1 and holds N_{span-d,d}(xi), ..., N_{span,d}(xi).
    """
    table = [np.ones(1)]
    for d in range(1, p + 1):
        prev = table[-1]
        cur = np.zeros(d + 1)
        for j in range(d + 1):
            i = span - d + j
            if j > 0:
                cur[j] += _safe_div(xi - knots[i], knots[i + d] - knots[i]) * prev[j - 1]
            if j < d:
                cur[j] += _safe_div(knots[i + d + 1] - xi,
                                    knots[i + d + 1] - knots[i + 1]) * prev[j]
        table.append(cur)
    return table


def _differentiate(knots: np.ndarray, span: int, values: np.ndarray, q: int) -> np.ndarray:
    """
    Lift derivatives of the degree q-1 functions to degree q:

        N^(m)_{i,q} = q * (N^(m-1)_{i,q-1} / (u_{i+q} - u_i)
                           - N^(m-1)_{i+1,q-1} / (u_{i+q+1} - u_{i+1}))
    """
    out = np.zeros(q + 1)
    for j in range(q + 1):
        i = span - q + j
        if j > 0:
            out[j] += q * _safe_div(values[j - 1], knots[i + q] - knots[i])
        if j < q:
            out[j] -= q * _safe_div(values[j], knots[i + q + 1] - knots[i + 1])
    return out


def eval_basis_1d(kv: KnotVector, xi: float,
                  span: Optional[int] = None) -> np.ndarray:
    """
    The p+1 basis functions that can be non-zero at xi.

    Returns:
        Array of shape (p+1,) holding N_{span-p,p}(xi), ..., N_{span,p}(xi)
    """
    if span is None:
        span = kv.find_span(xi)
    return _span_table(kv.knots, kv.degree, span, xi)[-1]


def eval_basis_ders_1d(kv: KnotVector, xi: float, n_ders: int,
                       span: Optional[int] = None) -> np.ndarray:
    """
    Non-zero basis functions at xi and their derivatives.

    The k-th derivative of the degree-p functions is obtained from the
    degree p-k values by applying the differencing formula k times.

    Parameters:
        kv: Knot vector
        xi: Parameter value
        n_ders: Highest derivative order (0 gives the values only)
        span: Span index of xi, looked up when omitted

    Returns:
        Array of shape (n_ders+1, p+1); entry [k, j] is the k-th derivative
        of N_{span-p+j,p}. Orders above the degree are zero.
    """
    p = kv.degree
    knots = kv.knots
    if span is None:
        span = kv.find_span(xi)

    table = _span_table(knots, p, span, xi)
    ders = np.zeros((n_ders + 1, p + 1))
    ders[0] = table[p]
    for k in range(1, min(n_ders, p) + 1):
        values = table[p - k]
        for q in range(p - k + 1, p + 1):
            values = _differentiate(knots, span, values, q)
        ders[k] = values
    return ders


def eval_basis_all(kv: KnotVector, xi: float) -> np.ndarray:
    """
    Evaluate every basis function N_{i,p}(xi), i = 0..n-1.

    Builds the triangular table of degrees 0..p level by level, so the
    recursion depth is bounded by the degree. Mainly used to check the
    partition of unity and for plotting.

    Returns:
        Array of shape (n_basis,)
    """
    p = kv.degree
    knots = kv.knots
    m = len(knots) - 1

    # Degree 0: indicator of the (non-empty) span containing xi
    N = np.zeros(m)
    N[kv.find_span(xi)] = 1.0

    for k in range(1, p + 1):
        N_next = np.zeros(m - k)
        for i in range(m - k):
            left = _safe_div(xi - knots[i], knots[i + k] - knots[i]) * N[i]
            right = _safe_div(knots[i + k + 1] - xi,
                              knots[i + k + 1] - knots[i + 1]) * N[i + 1]
            N_next[i] = left + right
        N = N_next

    return N[:kv.n_basis]
