"""
Configuration of numerical tolerances and resource limits.

Limits bound the worst-case cost of tessellation and iterative queries:
a request above a limit fails fast with ResourceLimitError instead of
allocating unbounded memory.

Example YAML file:
    max_segments: 2048
    max_iterations: 200
    max_adaptive_depth: 6
    max_adaptive_cells: 65536
    rational_epsilon: 1.0e-12
    fd_step: 1.0e-4
    max_cache_entries: 1024

The process-wide default is loaded lazily from the file named by the
SPLINEMESH_CONFIG environment variable, if set. JSON files are accepted
since JSON is a subset of YAML.
"""

import os
from dataclasses import dataclass, fields, asdict, replace
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from loguru import logger

from ..errors import StructuralError

# Environment variable naming a config file for the process default
SPLINEMESH_CONFIG = "SPLINEMESH_CONFIG"


@dataclass(frozen=True)
class GeometryConfig:
    """
    Tolerances and limits shared by all curve and surface entities.

    Attributes:
        max_segments: Upper limit for segment counts per tessellation axis
        max_iterations: Upper limit for Newton iterations
        max_adaptive_depth: Upper limit for adaptive subdivision depth
        max_adaptive_cells: Upper limit for the cells of one adaptive
            tessellation (base cells and refined cells alike)
        rational_epsilon: Smallest accepted rational denominator magnitude
        derivative_epsilon: Squared derivative magnitude below which Newton
            iteration stops early
        fd_step: Relative finite-difference step for parametric surfaces
        closest_point_samples: Coarse samples used to seed Newton iteration
        max_cache_entries: Evaluations memoized per entity before the least
            recently used ones are evicted
    """
    max_segments: int = 4096
    max_iterations: int = 1000
    max_adaptive_depth: int = 8
    max_adaptive_cells: int = 262144
    rational_epsilon: float = 1e-12
    derivative_epsilon: float = 1e-14
    fd_step: float = 1e-4
    closest_point_samples: int = 16
    max_cache_entries: int = 4096

    def __post_init__(self):
        for name in ("max_segments", "max_iterations", "max_adaptive_depth", "max_adaptive_cells",
                     "closest_point_samples", "max_cache_entries"):
            if getattr(self, name) < 1:
                raise StructuralError(f"{name} must be a positive integer")
        for name in ("rational_epsilon", "derivative_epsilon", "fd_step"):
            if not getattr(self, name) > 0:
                raise StructuralError(f"{name} must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeometryConfig':
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise StructuralError(f"Unknown config keys: {sorted(unknown)}")
        values = {}
        for key, value in data.items():
            values[key] = int(value) if known[key] in (int, 'int') else float(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def updated(self, **overrides) -> 'GeometryConfig':
        """Return a copy with selected fields replaced."""
        return replace(self, **overrides)


def load_config(filename: Union[str, Path]) -> GeometryConfig:
    """
    Load a GeometryConfig from a YAML (or JSON) file.

    Parameters:
        filename: Path to the config file

    Returns:
        GeometryConfig with file values over the defaults
    """
    path = Path(filename)
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise StructuralError(f"Config file {path} must contain a mapping")
    config = GeometryConfig.from_dict(data)
    logger.debug(f"Loaded geometry config from {path}: {config}")
    return config


_default_config: Optional[GeometryConfig] = None


def get_config() -> GeometryConfig:
    """Return the process-wide default config."""
    global _default_config
    if _default_config is None:
        path = os.environ.get(SPLINEMESH_CONFIG)
        _default_config = load_config(path) if path else GeometryConfig()
    return _default_config


def set_config(config: Optional[GeometryConfig]) -> None:
    """Replace the process-wide default; None resets to lazy loading."""
    global _default_config
    _default_config = config
