"""
splinemesh - Parametric Curve and Surface Tessellation Library

Evaluation and tessellation of Bezier curves (polynomial and rational),
cardinal/Hermite/B-spline curves, closed-form parametric surfaces and
NURBS surfaces, turned into flat vertex/normal/UV/index buffers.

Key modules:
- geometry: Bezier, Spline, ParametricSurface, NURBSSurface, basis functions
- discretization: Knot vectors, knot insertion, control point sets
- postprocess: Mesh builder, parameter sampling, VTK export
- quadrature: Gauss-Legendre integration (surface area, enclosed volume)
- io: Configuration limits and JSON serialization
- visualization: matplotlib previews

Quick start (curves):
    from splinemesh import BezierCurve

    curve = BezierCurve([[0, 0], [1, 2], [3, -1], [4, 0]])
    result = curve.evaluate(0.5, derivatives=1)
    mesh = curve.revolve(radial_segments=32)

Quick start (NURBS):
    from splinemesh import NURBSSurface

    sphere = NURBSSurface.create_sphere(radius=2.0)
    sphere.insert_knot("u", 0.1)
    mesh = sphere.tessellate(u_segments=32, v_segments=16)

Logging is disabled by default; enable it with
    from loguru import logger
    logger.enable("splinemesh")
"""

from loguru import logger

__version__ = "0.1.0"

# Core imports for convenience
from .errors import (SplineMeshError, DomainError, StructuralError,
                     DegenerateCurveError, ResourceLimitError)
from .io.config import GeometryConfig, load_config, get_config, set_config
from .geometry.base import GeometryKind, BoundingBox
from .geometry.bezier import BezierCurve
from .geometry.spline import Spline
from .geometry.parametric import ParametricSurface
from .geometry.nurbs import NURBSSurface
from .postprocess.mesh import Mesh
from .io.serialization import dumps, loads, save, load

logger.disable("splinemesh")
