"""
Pytest configuration and shared fixtures for splinemesh tests.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add the parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from splinemesh.io.config import GeometryConfig, set_config


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the built-in limits."""
    set_config(GeometryConfig())
    yield
    set_config(None)


@pytest.fixture
def cubic_points():
    """Control polygon of the reference cubic Bezier curve."""
    return np.array([
        [0.0, 0.0, 0.0],
        [1.0, 2.0, 0.0],
        [3.0, -1.0, 0.0],
        [4.0, 0.0, 0.0],
    ])


@pytest.fixture
def bilinear_grid():
    """2x2 control grid of a twisted bilinear patch."""
    return np.array([
        [[0.0, 0.0, 0.0], [0.0, 1.0, 1.0]],
        [[1.0, 0.0, 2.0], [1.0, 1.0, -1.0]],
    ])
