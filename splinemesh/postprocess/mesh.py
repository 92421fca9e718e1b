"""
Renderable mesh buffers and builders.

A Mesh holds flat, contiguous buffers ready for upload to a renderer:

- positions: 3 values per vertex
- normals:   3 values per vertex, unit length
- uvs:       2 values per vertex, nominally in [0, 1]
- indices:   3 per triangle ("triangles") or 2 per segment ("lines")

Index width is uint16 when every vertex fits into 16 bits, else uint32.

Builders:
- MeshBuilder: incremental construction with optional vertex de-duplication
- build_line_strip: polyline for curve tessellation
- build_grid_mesh: (nu+1) x (nv+1) vertex grid, two triangles per cell
- sweep_profile: profile curve swept along a framed path with twist
- build_adaptive_mesh: quadtree refinement driven by a curvature estimate
"""

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Tuple

import numpy as np
from loguru import logger

from ..errors import StructuralError, ResourceLimitError, check_count
from ..geometry.base import parallel_transport_frames, rotate_about_axis

TRIANGLES = "triangles"
LINES = "lines"

# Largest vertex count addressable with 16-bit indices
UINT16_LIMIT = 65536


def index_dtype(vertex_count: int):
    """Index type for a mesh with the given number of vertices."""
    return np.uint16 if vertex_count <= UINT16_LIMIT else np.uint32


@dataclass
class Mesh:
    """
    Tessellation result.

    Attributes:
        positions: Flat float64 array, 3 per vertex
        normals: Flat float64 array, 3 per vertex
        uvs: Flat float64 array, 2 per vertex
        indices: Flat uint16/uint32 array
        primitive: "triangles" or "lines"
    """
    positions: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray
    primitive: str = TRIANGLES

    @classmethod
    def from_arrays(cls, positions, normals, uvs, indices,
                    primitive: str = TRIANGLES) -> 'Mesh':
        """Build a mesh from (n, 3)/(n, 2)/(m, k) shaped arrays."""
        positions = np.ascontiguousarray(positions, dtype=np.float64).reshape(-1)
        normals = np.ascontiguousarray(normals, dtype=np.float64).reshape(-1)
        uvs = np.ascontiguousarray(uvs, dtype=np.float64).reshape(-1)
        n_vertices = len(positions) // 3
        indices = np.ascontiguousarray(indices).reshape(-1).astype(index_dtype(n_vertices))
        return cls(positions, normals, uvs, indices, primitive)

    @property
    def vertex_count(self) -> int:
        return len(self.positions) // 3

    @property
    def indices_per_primitive(self) -> int:
        return 3 if self.primitive == TRIANGLES else 2

    @property
    def primitive_count(self) -> int:
        return len(self.indices) // self.indices_per_primitive

    @property
    def points(self) -> np.ndarray:
        """Positions as (n, 3) view."""
        return self.positions.reshape(-1, 3)

    @property
    def normal_vectors(self) -> np.ndarray:
        """Normals as (n, 3) view."""
        return self.normals.reshape(-1, 3)

    @property
    def uv_pairs(self) -> np.ndarray:
        """UVs as (n, 2) view."""
        return self.uvs.reshape(-1, 2)

    @property
    def faces(self) -> np.ndarray:
        """Indices as (n_primitives, 3) or (n_primitives, 2)."""
        return self.indices.reshape(-1, self.indices_per_primitive)

    def validate(self, tol: float = 1e-6) -> None:
        """
        Check the buffer invariants.

        Raises StructuralError when buffer lengths disagree, an index is out
        of range, the index type does not match the vertex count, or a
        normal is not unit length.
        """
        n = self.vertex_count
        if self.primitive not in (TRIANGLES, LINES):
            raise StructuralError(f"Unknown primitive {self.primitive!r}")
        if len(self.positions) != 3 * n or len(self.normals) != 3 * n:
            raise StructuralError("positions and normals must hold 3 values per vertex")
        if len(self.uvs) != 2 * n:
            raise StructuralError("uvs must hold 2 values per vertex")
        if len(self.indices) % self.indices_per_primitive != 0:
            raise StructuralError(f"Index count {len(self.indices)} is not a multiple of "
                                  f"{self.indices_per_primitive}")
        if len(self.indices) and int(self.indices.max()) >= n:
            raise StructuralError(f"Index {int(self.indices.max())} >= vertex count {n}")
        if self.indices.dtype != index_dtype(n):
            raise StructuralError(f"Index dtype {self.indices.dtype} does not match "
                                  f"vertex count {n}")
        lengths = np.linalg.norm(self.normal_vectors, axis=1)
        if n and not np.allclose(lengths, 1.0, atol=tol):
            raise StructuralError("Normals must be unit length")


class MeshBuilder:
    """
    Incremental mesh construction.

    Vertices may carry a hashable key; adding a vertex with a key that was
    seen before returns the existing index instead of a new vertex.
    """

    def __init__(self, primitive: str = TRIANGLES):
        self.primitive = primitive
        self._positions: List[np.ndarray] = []
        self._normals: List[np.ndarray] = []
        self._uvs: List[Tuple[float, float]] = []
        self._indices: List[int] = []
        self._keys: Dict[Hashable, int] = {}

    @property
    def vertex_count(self) -> int:
        return len(self._positions)

    def add_vertex(self, position, normal, uv, key: Optional[Hashable] = None) -> int:
        if key is not None and key in self._keys:
            return self._keys[key]
        index = len(self._positions)
        self._positions.append(np.asarray(position, dtype=np.float64))
        self._normals.append(np.asarray(normal, dtype=np.float64))
        self._uvs.append((float(uv[0]), float(uv[1])))
        if key is not None:
            self._keys[key] = index
        return index

    def add_triangle(self, a: int, b: int, c: int) -> None:
        self._indices.extend((a, b, c))

    def add_quad(self, a: int, b: int, c: int, d: int) -> None:
        """Quad a-b-c-d (counter-clockwise) as triangles (a,b,d), (b,c,d)."""
        self._indices.extend((a, b, d, b, c, d))

    def add_line(self, a: int, b: int) -> None:
        self._indices.extend((a, b))

    def build(self) -> Mesh:
        n = len(self._positions)
        positions = np.array(self._positions).reshape(n, 3) if n else np.zeros((0, 3))
        normals = np.array(self._normals).reshape(n, 3) if n else np.zeros((0, 3))
        uvs = np.array(self._uvs).reshape(n, 2) if n else np.zeros((0, 2))
        return Mesh.from_arrays(positions, normals, uvs,
                                np.array(self._indices, dtype=np.int64), self.primitive)


def _unit_rows(vectors: np.ndarray, fallback: np.ndarray) -> np.ndarray:
    """Normalize rows; rows with vanishing length take the fallback row."""
    vectors = np.array(vectors, dtype=np.float64)
    fallback = np.broadcast_to(np.asarray(fallback, dtype=np.float64), vectors.shape)
    bad = np.linalg.norm(vectors, axis=-1) < 1e-12
    vectors[bad] = fallback[bad]

    lengths = np.linalg.norm(vectors, axis=-1)
    still_bad = lengths < 1e-12
    vectors[still_bad] = (0.0, 0.0, 1.0)
    lengths[still_bad] = 1.0
    return vectors / lengths[..., None]


def build_line_strip(positions: np.ndarray, normals: np.ndarray,
                     params: np.ndarray) -> Mesh:
    """
    Line-strip mesh through sampled curve points.

    Parameters:
        positions: Array (n, 3) of curve samples
        normals: Array (n, 3) of frame normals
        params: Array (n,) of curve parameters, used as UV (t, 0)

    Returns:
        Mesh with primitive "lines" and n-1 segments
    """
    positions = np.asarray(positions, dtype=np.float64)
    n = len(positions)
    uvs = np.column_stack([np.asarray(params, dtype=np.float64), np.zeros(n)])
    normals = _unit_rows(normals, np.array([0.0, 0.0, 1.0]))
    indices = np.column_stack([np.arange(n - 1), np.arange(1, n)])
    return Mesh.from_arrays(positions, normals, uvs, indices, LINES)


def grid_indices(nu: int, nv: int) -> np.ndarray:
    """
    Triangle indices for a vertex grid with nu+1 rows and nv+1 columns.

    Vertex (i, j) has index i*(nv+1) + j. Each cell with corners
    a=(i,j), b=(i+1,j), c=(i+1,j+1), d=(i,j+1) yields (a,b,d) and (b,c,d),
    so that triangle orientation follows dS/du x dS/dv.
    """
    i, j = np.meshgrid(np.arange(nu), np.arange(nv), indexing='ij')
    a = (i * (nv + 1) + j).ravel()
    b = ((i + 1) * (nv + 1) + j).ravel()
    c = ((i + 1) * (nv + 1) + j + 1).ravel()
    d = (i * (nv + 1) + j + 1).ravel()
    return np.column_stack([a, b, d, b, c, d]).reshape(-1, 3)


def build_grid_mesh(positions: np.ndarray, normals: np.ndarray,
                    uvs: np.ndarray) -> Mesh:
    """
    Triangle mesh from a regular grid of samples.

    Parameters:
        positions: Array (nu+1, nv+1, 3)
        normals: Array (nu+1, nv+1, 3)
        uvs: Array (nu+1, nv+1, 2)
    """
    positions = np.asarray(positions, dtype=np.float64)
    nu, nv = positions.shape[0] - 1, positions.shape[1] - 1
    normals = _unit_rows(normals, np.array([0.0, 0.0, 1.0]))
    return Mesh.from_arrays(positions.reshape(-1, 3), normals.reshape(-1, 3),
                            np.asarray(uvs).reshape(-1, 2), grid_indices(nu, nv))


def grid_normals(positions: np.ndarray, fallback: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Vertex normals of a sampled grid from finite differences.

    Parameters:
        positions: Array (nu+1, nv+1, 3), at least 2 samples per axis
        fallback: Optional (nu+1, nv+1, 3) used where the estimate vanishes

    Returns:
        Unit normals of shape (nu+1, nv+1, 3)
    """
    du = np.gradient(positions, axis=0)
    dv = np.gradient(positions, axis=1)
    n = np.cross(du, dv)
    if fallback is None:
        fallback = np.array([0.0, 0.0, 1.0])
    return _unit_rows(n, fallback)


def sweep_profile(profile: np.ndarray, profile_params: np.ndarray,
                  path: np.ndarray, path_tangents: np.ndarray,
                  path_params: np.ndarray, twist: float = 0.0) -> Mesh:
    """
    Sweep a cross-section along a path.

    The profile's local (x, y) coordinates are placed in the normal/binormal
    plane of rotation-minimizing frames along the path. The section at
    path parameter s is rotated about the tangent by twist * s.

    Parameters:
        profile: Array (m, 3) of profile samples (z is ignored)
        profile_params: Array (m,) of profile parameters in [0, 1]
        path: Array (n, 3) of path samples
        path_tangents: Array (n, 3) of path first derivatives
        path_params: Array (n,) of path parameters in [0, 1]
        twist: Total rotation in radians from start to end of the path

    Returns:
        Triangle mesh with n x m vertices; UV = (path param, profile param)
    """
    profile = np.asarray(profile, dtype=np.float64)
    path = np.asarray(path, dtype=np.float64)
    T, N, B = parallel_transport_frames(np.asarray(path_tangents, dtype=np.float64))

    n, m = len(path), len(profile)
    positions = np.zeros((n, m, 3))
    radial = np.zeros((n, m, 3))
    for i in range(n):
        angle = twist * float(path_params[i])
        Ni = rotate_about_axis(N[i], T[i], angle)
        Bi = rotate_about_axis(B[i], T[i], angle)
        offsets = np.outer(profile[:, 0], Ni) + np.outer(profile[:, 1], Bi)
        positions[i] = path[i] + offsets
        radial[i] = offsets

    normals = grid_normals(positions, radial)
    uu, vv = np.meshgrid(np.asarray(path_params, dtype=np.float64),
                         np.asarray(profile_params, dtype=np.float64), indexing='ij')
    uvs = np.stack([uu, vv], axis=-1)
    return Mesh.from_arrays(positions.reshape(-1, 3), normals.reshape(-1, 3),
                            uvs.reshape(-1, 2), grid_indices(n - 1, m - 1))


def build_adaptive_mesh(sample: Callable[[float, float], Tuple[np.ndarray, np.ndarray]],
                        curvature: Callable[[float, float], float],
                        u_range: Tuple[float, float], v_range: Tuple[float, float],
                        u_segments: int, v_segments: int,
                        threshold: float, max_depth: int,
                        max_cells: Optional[int] = None) -> Mesh:
    """
    Quadtree tessellation refined where the surface bends.

    The domain is split into u_segments x v_segments base cells. A cell is
    split into four while |curvature(center)| * (3D diagonal of the cell)
    exceeds threshold and its depth is below max_depth. Leaves emit two
    triangles; vertices shared between cells are de-duplicated by their
    (u, v) parameter. Neighbouring leaves of different depth may leave
    T-junctions.

    Parameters:
        sample: Callable (u, v) -> (point, unit normal)
        curvature: Callable (u, v) -> curvature magnitude
        u_range, v_range: Parameter domain
        u_segments, v_segments: Base grid resolution
        threshold: Refinement threshold (dimensionless)
        max_depth: Maximum number of splits of a base cell
        max_cells: Upper limit for the number of cells alive at once (leaves
            plus cells still waiting to be tested); None means no limit

    Returns:
        Triangle mesh; UVs normalized to [0, 1]
    """
    if max_cells is not None:
        check_count("base cells", u_segments * v_segments, max_cells)
    u0, u1 = u_range
    v0, v1 = v_range
    builder = MeshBuilder(TRIANGLES)
    cache: Dict[Tuple[float, float], Tuple[np.ndarray, np.ndarray]] = {}
    stats = {"leaves": 0, "splits": 0, "deepest": 0}

    def point_at(u, v):
        key = (u, v)
        if key not in cache:
            cache[key] = sample(u, v)
        return cache[key]

    def vertex(u, v):
        point, normal = point_at(u, v)
        uv = ((u - u0) / (u1 - u0), (v - v0) / (v1 - v0))
        return builder.add_vertex(point, normal, uv, key=(u, v))

    stack = []
    us = np.linspace(u0, u1, u_segments + 1)
    vs = np.linspace(v0, v1, v_segments + 1)
    for i in range(u_segments):
        for j in range(v_segments):
            stack.append((float(us[i]), float(us[i + 1]), float(vs[j]), float(vs[j + 1]), 0))

    while stack:
        ua, ub, va, vb, depth = stack.pop()
        if depth < max_depth:
            uc, vc = 0.5 * (ua + ub), 0.5 * (va + vb)
            diagonal = float(np.linalg.norm(point_at(ub, vb)[0] - point_at(ua, va)[0]))
            if abs(curvature(uc, vc)) * diagonal > threshold:
                stats["splits"] += 1
                stack.extend([(ua, uc, va, vc, depth + 1), (uc, ub, va, vc, depth + 1),
                              (uc, ub, vc, vb, depth + 1), (ua, uc, vc, vb, depth + 1)])
                if max_cells is not None and stats["leaves"] + len(stack) > max_cells:
                    raise ResourceLimitError(
                        f"Adaptive tessellation needs more than {max_cells} cells"
                    )
                continue
        stats["leaves"] += 1
        stats["deepest"] = max(stats["deepest"], depth)
        builder.add_quad(vertex(ua, va), vertex(ub, va), vertex(ub, vb), vertex(ua, vb))

    logger.debug(f"Adaptive tessellation: {stats['leaves']} leaves, {stats['splits']} splits, "
                 f"depth {stats['deepest']}, {builder.vertex_count} vertices")
    return builder.build()
