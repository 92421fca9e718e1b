"""
Error types raised by curve and surface entities.

All errors derive from ValueError so that callers which only guard against
bad input values keep working:

- DomainError: parameter outside [0, 1] or outside a surface domain, and
  counts (segments, iterations) below their minimum
- StructuralError: malformed control data (weights, knots, degrees)
- DegenerateCurveError: rational denominator vanished during evaluation
- ResourceLimitError: requested work exceeds the configured maximum
"""


class SplineMeshError(ValueError):
    """Base class for all splinemesh errors."""


class DomainError(SplineMeshError):
    """Parameter value outside the valid domain."""


class StructuralError(SplineMeshError):
    """Invalid control points, weights, degrees or knot vectors."""


class DegenerateCurveError(SplineMeshError):
    """Rational denominator below epsilon; no safe fallback exists."""


class ResourceLimitError(SplineMeshError):
    """Segment, iteration or depth count exceeds the configured maximum."""


def check_count(name: str, value: int, maximum: int, minimum: int = 1) -> int:
    """
    Validate a work count against its lower bound and configured maximum.

    Parameters:
        name: Name used in the error message
        value: Requested count
        maximum: Configured upper limit
        minimum: Smallest accepted value

    Returns:
        The count as int
    """
    value = int(value)
    if value < minimum:
        raise DomainError(f"{name} must be >= {minimum}, got {value}")
    if value > maximum:
        raise ResourceLimitError(
            f"{name}={value} exceeds configured maximum {maximum}"
        )
    return value
