"""
Quick matplotlib previews of meshes, curves and basis functions.

The evaluation helpers have no matplotlib dependency and can be used
independently for numerical checks; matplotlib is imported only by the
plot_* functions.

Example:
    from splinemesh.visualization.plot import plot_mesh, plot_basis

    fig = plot_mesh(sphere.tessellate(24, 12), show=False)
    fig.savefig("sphere.png")

    plot_basis(surface.knot_vectors[0], save_path="basis_u.png", show=False)
"""

from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from ..geometry.basis import eval_basis_all
from ..postprocess.mesh import TRIANGLES

if TYPE_CHECKING:
    from ..discretization.knot_vector import KnotVector
    from ..postprocess.mesh import Mesh

__all__ = [
    'evaluate_basis_grid',
    'plot_mesh',
    'plot_curve',
    'plot_basis',
]


def evaluate_basis_grid(kv: 'KnotVector', n_points: int = 200) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate every B-spline basis function over the knot domain.

    Parameters:
        kv: Knot vector
        n_points: Number of sample points

    Returns:
        (xi, values) where values has shape (n_points, n_basis)
    """
    xi = np.linspace(kv.domain[0], kv.domain[1], n_points)
    values = np.array([eval_basis_all(kv, x) for x in xi])
    return xi, values


def _finish(fig, save_path: Optional[str], show: bool):
    import matplotlib.pyplot as plt

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')

    if show:
        plt.show()

    return fig


def plot_mesh(mesh: 'Mesh', show_normals: bool = False, normal_scale: float = 0.1,
              save_path: Optional[str] = None, show: bool = True):
    """
    Plot a tessellated mesh in 3D.

    Triangle meshes are drawn with plot_trisurf; line meshes as segments.

    Parameters:
        mesh: Mesh to draw
        show_normals: Draw vertex normals as short arrows
        normal_scale: Arrow length
        save_path: If provided, save figure to this path
        show: Whether to call plt.show()

    Returns:
        matplotlib Figure object
    """
    import matplotlib.pyplot as plt

    points = mesh.points
    faces = mesh.faces

    fig = plt.figure(figsize=(7, 6))
    ax = fig.add_subplot(1, 1, 1, projection='3d')

    if mesh.primitive == TRIANGLES and len(faces):
        ax.plot_trisurf(points[:, 0], points[:, 1], points[:, 2],
                        triangles=faces.astype(np.int64), cmap='viridis',
                        alpha=0.8, linewidth=0.2, edgecolor='k')
    else:
        for a, b in faces:
            seg = points[[a, b]]
            ax.plot(seg[:, 0], seg[:, 1], seg[:, 2], color='C0')

    if show_normals:
        n = mesh.normal_vectors * normal_scale
        ax.quiver(points[:, 0], points[:, 1], points[:, 2],
                  n[:, 0], n[:, 1], n[:, 2], color='C3', linewidth=0.5)

    ax.set_xlabel('x')
    ax.set_ylabel('y')
    ax.set_zlabel('z')
    ax.set_title(f"{mesh.vertex_count} vertices, {mesh.primitive_count} {mesh.primitive}")

    return _finish(fig, save_path, show)


def plot_curve(curve, segments: int = 100, show_control_polygon: bool = True,
               save_path: Optional[str] = None, show: bool = True):
    """
    Plot a Bezier curve or spline in the XY plane.

    Parameters:
        curve: BezierCurve or Spline
        segments: Number of tessellation segments
        show_control_polygon: Draw the control points and their polygon
        save_path: If provided, save figure to this path
        show: Whether to call plt.show()

    Returns:
        matplotlib Figure object
    """
    import matplotlib.pyplot as plt

    points = curve.tessellate(segments).points

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.plot(points[:, 0], points[:, 1], color='C0', label=curve.kind.value)

    if show_control_polygon:
        ctrl = curve.control_points
        ax.plot(ctrl[:, 0], ctrl[:, 1], 'o--', color='C1', alpha=0.7, label='control points')

    ax.set_xlabel('x')
    ax.set_ylabel('y')
    ax.set_aspect('equal', adjustable='datalim')
    ax.legend()

    return _finish(fig, save_path, show)


def plot_basis(kv: 'KnotVector', n_points: int = 200, plot_sum: bool = True,
               save_path: Optional[str] = None, show: bool = True):
    """
    Plot all B-spline basis functions of a knot vector.

    Parameters:
        kv: Knot vector
        n_points: Number of sample points
        plot_sum: Overlay the sum of all functions (partition of unity)
        save_path: If provided, save figure to this path
        show: Whether to call plt.show()

    Returns:
        matplotlib Figure object
    """
    import matplotlib.pyplot as plt

    xi, values = evaluate_basis_grid(kv, n_points)

    fig, ax = plt.subplots(figsize=(8, 4))
    for i in range(values.shape[1]):
        ax.plot(xi, values[:, i], label=f"N{i},{kv.degree}")

    if plot_sum:
        total = values.sum(axis=1)
        ax.plot(xi, total, 'k--', linewidth=1.0,
                label=f"sum (min={total.min():.4f}, max={total.max():.4f})")

    for knot in kv.unique_knots:
        ax.axvline(knot, color='gray', linewidth=0.5, alpha=0.5)

    ax.set_xlabel('xi')
    ax.set_ylim(-0.05, 1.1)
    ax.set_title(f"Degree {kv.degree} basis, {kv.n_basis} functions")
    if values.shape[1] <= 12:
        ax.legend(fontsize=7, loc='upper right')

    return _finish(fig, save_path, show)
