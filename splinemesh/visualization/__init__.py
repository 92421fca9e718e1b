"""
Visualization module.

Provides matplotlib previews of tessellated meshes, curves and B-spline
basis functions. matplotlib is imported lazily by the plot functions.

Usage:
    from splinemesh.visualization import plot_mesh

    fig = plot_mesh(surface.tessellate(), save_path="surface.png", show=False)
"""

from .plot import (
    evaluate_basis_grid,
    plot_mesh,
    plot_curve,
    plot_basis,
)

__all__ = [
    'evaluate_basis_grid',
    'plot_mesh',
    'plot_curve',
    'plot_basis',
]
