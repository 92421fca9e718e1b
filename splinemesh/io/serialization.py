"""
JSON serialization of curves and surfaces.

Every serializable entity provides to_json() returning a JSON-shaped dict
tagged with its GeometryKind value under "type", and a from_json()
classmethod. This module dispatches on that tag:

    data = to_dict(curve)            # {"type": "bezier", ...}
    same = from_dict(data)           # BezierCurve with identical evaluate()

    save("surface.json", surface)
    surface = load("surface.json")

Parametric surfaces wrap an arbitrary callable and cannot be serialized.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from ..errors import StructuralError
from ..geometry.base import GeometryKind
from .config import GeometryConfig


def _registry() -> Dict[str, type]:
    from ..geometry.bezier import BezierCurve
    from ..geometry.spline import Spline
    from ..geometry.nurbs import NURBSSurface
    return {
        GeometryKind.BEZIER.value: BezierCurve,
        GeometryKind.SPLINE.value: Spline,
        GeometryKind.NURBS.value: NURBSSurface,
    }


def to_dict(entity) -> Dict[str, Any]:
    """JSON-shaped record of a Bezier curve, spline or NURBS surface."""
    kind = getattr(entity, "kind", None)
    if kind not in (GeometryKind.BEZIER, GeometryKind.SPLINE, GeometryKind.NURBS):
        raise StructuralError(f"Cannot serialize {type(entity).__name__}")
    return entity.to_json()


def from_dict(data: Dict[str, Any], config: Optional[GeometryConfig] = None):
    """Reconstruct an entity from a record produced by to_dict."""
    if not isinstance(data, dict):
        raise StructuralError(f"Expected a JSON object, got {type(data).__name__}")
    tag = data.get("type")
    cls = _registry().get(tag)
    if cls is None:
        raise StructuralError(f"Unknown geometry type {tag!r}")
    return cls.from_json(data, config)


def dumps(entity, **kwargs) -> str:
    """Serialize an entity to a JSON string (kwargs go to json.dumps)."""
    return json.dumps(to_dict(entity), **kwargs)


def loads(text: str, config: Optional[GeometryConfig] = None):
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuralError(f"Invalid JSON: {exc}") from exc
    return from_dict(data, config)


def save(filename: Union[str, Path], entity) -> Path:
    path = Path(filename)
    path.write_text(dumps(entity, indent=2))
    logger.info(f"Saved {entity.kind.value} geometry: {path}")
    return path


def load(filename: Union[str, Path], config: Optional[GeometryConfig] = None):
    path = Path(filename)
    entity = loads(path.read_text(), config)
    logger.info(f"Loaded {entity.kind.value} geometry: {path}")
    return entity
