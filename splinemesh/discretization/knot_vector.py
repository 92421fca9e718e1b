"""
Knot vectors for B-spline and NURBS bases.

A knot vector U = [u_0, ..., u_m] of degree p defines n = m - p basis
functions over the parameter domain [u_p, u_n]. Clamped ("open") vectors
repeat their end knots p+1 times, so the surface passes through its corner
control points.

Knot insertion (Boehm) adds a value to U and returns the matrix A with
P_new = A @ P_old. Applied to homogeneous control points it refines a
rational curve or surface without changing its shape.
"""

import numpy as np
from typing import List, Tuple
from dataclasses import dataclass

from ..errors import StructuralError, DomainError

# Two knots closer than this are treated as the same value
KNOT_TOLERANCE = 1e-14


@dataclass
class KnotVector:
    """
    Non-decreasing knot sequence with its degree.

    Attributes:
        knots: Knot values
        degree: Polynomial degree p
    """
    knots: np.ndarray
    degree: int

    def __post_init__(self):
        self.knots = np.asarray(self.knots, dtype=np.float64).copy()
        self.degree = int(self.degree)
        self._check()
        lo, hi = self.domain
        breaks = np.unique(self.knots)
        self._breakpoints = breaks[(breaks >= lo) & (breaks <= hi)]

    def _check(self):
        k = self.knots
        if k.ndim != 1:
            raise StructuralError(f"Knots must be a flat sequence, got shape {k.shape}")
        if self.degree < 0:
            raise StructuralError(f"Degree must be >= 0, got {self.degree}")
        if len(k) < 2 * self.degree + 2:
            raise StructuralError(
                f"Degree {self.degree} needs at least {2 * self.degree + 2} knots, got {len(k)}"
            )
        if not np.all(np.isfinite(k)):
            raise StructuralError("Knots must be finite")
        if np.any(np.diff(k) < 0):
            raise StructuralError("Knots must be non-decreasing")
        if not k[self.n_basis] > k[self.degree]:
            raise StructuralError("Knot vector spans an empty domain")

    @property
    def n_basis(self) -> int:
        """Number of basis functions (and control points along this axis)."""
        return len(self.knots) - self.degree - 1

    @property
    def domain(self) -> Tuple[float, float]:
        """Parameter domain [u_p, u_n]."""
        return (float(self.knots[self.degree]), float(self.knots[self.n_basis]))

    @property
    def unique_knots(self) -> np.ndarray:
        """Distinct knot values inside the domain, end points included."""
        return self._breakpoints.copy()

    def find_span(self, u: float) -> int:
        """
        Index i of the non-empty span [u_i, u_{i+1}) containing u.

        The last span is closed so that u = u_n maps into it. Parameters
        outside the domain map to the first or last span.
        """
        n, p, k = self.n_basis, self.degree, self.knots

        if u >= k[n]:
            i = n - 1
            while k[i] == k[i + 1]:
                i -= 1
            return i
        if u <= k[p]:
            i = p
            while k[i] == k[i + 1]:
                i += 1
            return i

        low, high = p, n
        mid = (low + high) // 2
        while u < k[mid] or u >= k[mid + 1]:
            if u < k[mid]:
                high = mid
            else:
                low = mid
            mid = (low + high) // 2
        return mid

    def multiplicity(self, u: float) -> int:
        return compute_multiplicity(self, u)

    def to_list(self) -> List[float]:
        return [float(x) for x in self.knots]


def make_open_knot_vector(n_basis: int, degree: int,
                          domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """
    Clamped knot vector with uniformly spaced interior knots.

    Parameters:
        n_basis: Number of control points along the axis
        degree: Polynomial degree p
        domain: Parameter interval (start, end)
    """
    interior = n_basis - degree - 1
    if interior < 0:
        raise StructuralError(f"{n_basis} control points are too few for degree {degree}")
    a, b = domain
    knots = np.concatenate([
        np.full(degree + 1, float(a)),
        np.linspace(a, b, interior + 2)[1:-1],
        np.full(degree + 1, float(b)),
    ])
    return KnotVector(knots, degree)


def compute_multiplicity(kv: KnotVector, u: float, tol: float = KNOT_TOLERANCE) -> int:
    """How many times u occurs in the knot vector."""
    return int(np.count_nonzero(np.abs(kv.knots - u) < tol))


def compute_knot_insertion_matrix(kv: KnotVector, u: float) -> Tuple[KnotVector, np.ndarray]:
    """
    Insert u once.

    With k the span of u, the new control points are

        Q_i = P_i                                   i <= k - p
        Q_i = a_i P_i + (1 - a_i) P_{i-1}           k - p < i <= k
        Q_i = P_{i-1}                               i > k

    where a_i = (u - u_i) / (u_{i+p} - u_i).

    Returns:
        (refined knot vector, A) with A of shape (n + 1, n)
    """
    lo, hi = kv.domain
    if not lo < u < hi:
        raise DomainError(f"Knot {u} must lie strictly inside the domain ({lo}, {hi})")

    p, k_old = kv.degree, kv.knots
    n = kv.n_basis
    k = kv.find_span(u)

    A = np.zeros((n + 1, n))
    for i in range(n + 1):
        if i <= k - p:
            A[i, i] = 1.0
        elif i > k:
            A[i, i - 1] = 1.0
        else:
            denom = k_old[i + p] - k_old[i]
            alpha = (u - k_old[i]) / denom if abs(denom) > KNOT_TOLERANCE else 0.0
            A[i, i] = alpha
            A[i, i - 1] = 1.0 - alpha

    refined = np.insert(k_old, k + 1, u)
    return KnotVector(refined, p), A


def insert_knot(kv: KnotVector, u: float, times: int = 1) -> Tuple[KnotVector, np.ndarray]:
    """
    Insert u `times` times.

    Parameters:
        kv: Knot vector to refine
        u: Value strictly inside the domain
        times: Number of insertions; the resulting multiplicity may not
            exceed the degree

    Returns:
        (refined knot vector, A) with P_new = A @ P_old
    """
    if times < 1:
        raise DomainError(f"times must be >= 1, got {times}")
    lo, hi = kv.domain
    if not lo < u < hi:
        raise DomainError(f"Knot {u} must lie strictly inside the domain ({lo}, {hi})")
    if compute_multiplicity(kv, u) + times > kv.degree:
        raise StructuralError(
            f"Inserting {u} {times} time(s) would exceed multiplicity {kv.degree}"
        )

    A_total = np.eye(kv.n_basis)
    for _ in range(times):
        kv, A = compute_knot_insertion_matrix(kv, u)
        A_total = A @ A_total
    return kv, A_total
