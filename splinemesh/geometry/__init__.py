"""
Geometry module for curves and surfaces.
"""

from .base import GeometryKind, EvaluationResult, SurfaceEvaluation, BoundingBox, Curvatures
from .bezier import BezierCurve
from .spline import Spline
from .parametric import ParametricSurface
from .nurbs import NURBSSurface
from .intersection import RayHit
from .primitives import (
    make_nurbs_plane,
    make_nurbs_sphere,
    make_nurbs_torus,
    make_arc,
    make_circle,
    make_parametric_sphere,
    make_parametric_torus,
    make_parametric_plane,
    make_parametric_cylinder,
    make_parametric_klein_bottle,
)
