"""
VTK export for visualization.

This module writes tessellated meshes and NURBS control nets to VTK
Legacy (.vtk, ASCII) files for ParaView, VisIt, or other VTK-compatible
viewers.

Meshes become POLYDATA with POLYGONS (triangles) or LINES (line strips),
plus NORMALS and TEXTURE_COORDINATES point data. Control nets become
STRUCTURED_GRID with the weights as a scalar field.
"""

from pathlib import Path
from typing import Union

import numpy as np
from loguru import logger

from .mesh import Mesh, TRIANGLES


def _vtk_path(filename: Union[str, Path]) -> Path:
    path = Path(filename)
    if path.suffix != '.vtk':
        path = path.with_suffix('.vtk')
    return path


def export_mesh_vtk(filename: Union[str, Path], mesh: Mesh,
                    title: str = "splinemesh tessellation") -> Path:
    """
    Export a tessellated mesh to VTK PolyData format.

    Parameters:
        filename: Output filename (will add .vtk extension if missing)
        mesh: Mesh to export; validated before writing
        title: Header line stored in the file

    Returns:
        Path of the written file
    """
    mesh.validate()
    path = _vtk_path(filename)

    points = mesh.points
    n_points = mesh.vertex_count
    faces = mesh.faces
    n_cells = len(faces)
    per_cell = faces.shape[1]
    section = "POLYGONS" if mesh.primitive == TRIANGLES else "LINES"

    with open(path, 'w') as f:
        # Header
        f.write("# vtk DataFile Version 3.0\n")
        f.write(f"{title}\n")
        f.write("ASCII\n")
        f.write("DATASET POLYDATA\n")

        f.write(f"POINTS {n_points} double\n")
        for pt in points:
            f.write(f"{pt[0]} {pt[1]} {pt[2]}\n")

        # Each cell: vertex count followed by the vertex indices
        f.write(f"\n{section} {n_cells} {n_cells * (per_cell + 1)}\n")
        for cell in faces:
            f.write(f"{per_cell} " + " ".join(str(int(i)) for i in cell) + "\n")

        f.write(f"\nPOINT_DATA {n_points}\n")
        f.write("NORMALS normals double\n")
        for n in mesh.normal_vectors:
            f.write(f"{n[0]} {n[1]} {n[2]}\n")

        f.write("TEXTURE_COORDINATES uv 2 double\n")
        for uv in mesh.uv_pairs:
            f.write(f"{uv[0]} {uv[1]}\n")

    logger.info(f"Exported VTK mesh ({n_points} points, {n_cells} cells): {path}")
    return path


def export_control_net_vtk(filename: Union[str, Path], surface) -> Path:
    """
    Export the control net of a NURBS surface to VTK.

    Useful for debugging and understanding the parametrization.

    Parameters:
        filename: Output filename
        surface: NURBSSurface

    Returns:
        Path of the written file
    """
    path = _vtk_path(filename)

    grid = surface.control_grid
    weights = surface.weights
    n_u, n_v = grid.shape[:2]
    n_points = n_u * n_v

    with open(path, 'w') as f:
        f.write("# vtk DataFile Version 3.0\n")
        f.write("Control Net\n")
        f.write("ASCII\n")
        f.write("DATASET STRUCTURED_GRID\n")
        # VTK orders points with the first dimension varying fastest
        f.write(f"DIMENSIONS {n_u} {n_v} 1\n")

        f.write(f"POINTS {n_points} double\n")
        for j in range(n_v):
            for i in range(n_u):
                pt = grid[i, j]
                f.write(f"{pt[0]} {pt[1]} {pt[2]}\n")

        # Add weights as point data
        f.write(f"\nPOINT_DATA {n_points}\n")
        f.write("SCALARS weight double 1\n")
        f.write("LOOKUP_TABLE default\n")
        for w in np.asarray(weights).T.ravel():
            f.write(f"{w}\n")

    logger.info(f"Exported control net: {path}")
    return path
