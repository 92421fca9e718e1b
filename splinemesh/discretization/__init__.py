"""
Discretization module.

Provides:
- KnotVector: Knot vector representation
- Knot insertion (Boehm) as a refinement matrix
- ControlPointSet: Control points with optional weights
"""

from .knot_vector import KnotVector, make_open_knot_vector, insert_knot
from .control_point import ControlPointSet
