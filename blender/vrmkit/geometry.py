"""
VRMKit Geometry Module

Indexed triangle geometry backed by numpy arrays, plus the parametric
primitives the body parts are built from (UV sphere, capped cylinder, box).

The primitives follow the common three.js vertex/triangle layout so that UV
coordinates (used by face region classification) land where texture artists
expect them.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class DrawGroup:
    """A contiguous range of the index buffer drawn with one material.

    start and count are measured in indices (three per triangle).
    """

    start: int
    count: int
    material_index: int


@dataclass
class Geometry:
    positions: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray
    skin_indices: Optional[np.ndarray] = None
    skin_weights: Optional[np.ndarray] = None
    groups: List[DrawGroup] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        self.uvs = np.asarray(self.uvs, dtype=np.float64).reshape(-1, 2)
        self.indices = np.asarray(self.indices, dtype=np.uint32).reshape(-1)
        n = len(self.positions)
        if len(self.normals) != n or len(self.uvs) != n:
            raise ValueError("positions, normals and uvs must have the same vertex count")
        if len(self.indices) % 3 != 0:
            raise ValueError(f"index count {len(self.indices)} is not a multiple of 3")
        if len(self.indices) and int(self.indices.max()) >= n:
            raise ValueError("index buffer references a vertex out of range")

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def has_skin(self) -> bool:
        return self.skin_indices is not None and self.skin_weights is not None

    def triangles(self) -> np.ndarray:
        return self.indices.reshape(-1, 3)

    def copy(self) -> "Geometry":
        return Geometry(
            positions=self.positions.copy(),
            normals=self.normals.copy(),
            uvs=self.uvs.copy(),
            indices=self.indices.copy(),
            skin_indices=None if self.skin_indices is None else self.skin_indices.copy(),
            skin_weights=None if self.skin_weights is None else self.skin_weights.copy(),
            groups=list(self.groups),
        )

    # Transforms mutate in place and return self so they can be chained.

    def translate(self, x: float, y: float, z: float) -> "Geometry":
        self.positions += np.array([x, y, z], dtype=np.float64)
        return self

    def scale(self, x: float, y: float, z: float) -> "Geometry":
        factors = np.array([x, y, z], dtype=np.float64)
        self.positions *= factors
        # Normals transform with the inverse transpose
        self.normals = _normalize_rows(self.normals / factors)
        return self

    def rotate_y(self, angle: float) -> "Geometry":
        c, s = math.cos(angle), math.sin(angle)
        m = np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
        return self._apply_rotation(m)

    def rotate_z(self, angle: float) -> "Geometry":
        c, s = math.cos(angle), math.sin(angle)
        m = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
        return self._apply_rotation(m)

    def _apply_rotation(self, m: np.ndarray) -> "Geometry":
        self.positions = self.positions @ m.T
        self.normals = self.normals @ m.T
        return self


def merge(geometries: Sequence[Geometry]) -> Geometry:
    """Concatenate geometries into one indexed geometry.

    Draw groups are dropped. Skin attributes are kept only if every input
    has them.
    """
    if not geometries:
        raise ValueError("merge() needs at least one geometry")

    indices = []
    offset = 0
    for geom in geometries:
        indices.append(geom.indices.astype(np.int64) + offset)
        offset += geom.vertex_count

    skinned = all(g.has_skin for g in geometries)
    return Geometry(
        positions=np.concatenate([g.positions for g in geometries]),
        normals=np.concatenate([g.normals for g in geometries]),
        uvs=np.concatenate([g.uvs for g in geometries]),
        indices=np.concatenate(indices),
        skin_indices=np.concatenate([g.skin_indices for g in geometries]) if skinned else None,
        skin_weights=np.concatenate([g.skin_weights for g in geometries]) if skinned else None,
    )


def sphere(radius: float = 1.0, width_segments: int = 32, height_segments: int = 16,
           phi_start: float = 0.0, phi_length: float = 2 * math.pi,
           theta_start: float = 0.0, theta_length: float = math.pi) -> Geometry:
    """UV sphere; poles on the Y axis, v=0 at the top."""
    width_segments = max(3, int(width_segments))
    height_segments = max(2, int(height_segments))
    theta_end = min(theta_start + theta_length, math.pi)

    positions = []
    normals = []
    uvs = []
    grid = []
    index = 0
    for iy in range(height_segments + 1):
        row = []
        v = iy / height_segments
        # Offset pole UVs by half a segment so pole triangles are not degenerate
        u_offset = 0.0
        if iy == 0 and theta_start == 0:
            u_offset = 0.5 / width_segments
        elif iy == height_segments and theta_end == math.pi:
            u_offset = -0.5 / width_segments

        for ix in range(width_segments + 1):
            u = ix / width_segments
            phi = phi_start + u * phi_length
            theta = theta_start + v * theta_length
            x = -radius * math.cos(phi) * math.sin(theta)
            y = radius * math.cos(theta)
            z = radius * math.sin(phi) * math.sin(theta)
            positions.append((x, y, z))
            normals.append((x, y, z))
            uvs.append((u + u_offset, 1 - v))
            row.append(index)
            index += 1
        grid.append(row)

    indices = []
    for iy in range(height_segments):
        for ix in range(width_segments):
            a = grid[iy][ix + 1]
            b = grid[iy][ix]
            c = grid[iy + 1][ix]
            d = grid[iy + 1][ix + 1]
            if iy != 0 or theta_start > 0:
                indices.extend((a, b, d))
            if iy != height_segments - 1 or theta_end < math.pi:
                indices.extend((b, c, d))

    return Geometry(
        positions=positions,
        normals=_normalize_rows(np.asarray(normals, dtype=np.float64)),
        uvs=uvs,
        indices=indices,
    )


def cylinder(radius_top: float = 1.0, radius_bottom: float = 1.0, height: float = 1.0,
             radial_segments: int = 32, height_segments: int = 1,
             open_ended: bool = False) -> Geometry:
    """Cylinder centered on the origin along Y, with optional end caps."""
    radial_segments = int(radial_segments)
    height_segments = int(height_segments)
    half_height = height / 2

    positions = []
    normals = []
    uvs = []
    indices = []

    # Torso
    slope = (radius_bottom - radius_top) / height if height else 0.0
    grid = []
    for y in range(height_segments + 1):
        row = []
        v = y / height_segments
        radius = v * (radius_bottom - radius_top) + radius_top
        for x in range(radial_segments + 1):
            u = x / radial_segments
            theta = u * 2 * math.pi
            sin_t, cos_t = math.sin(theta), math.cos(theta)
            positions.append((radius * sin_t, -v * height + half_height, radius * cos_t))
            normals.append((sin_t, slope, cos_t))
            uvs.append((u, 1 - v))
            row.append(len(positions) - 1)
        grid.append(row)

    for x in range(radial_segments):
        for y in range(height_segments):
            a = grid[y][x]
            b = grid[y + 1][x]
            c = grid[y + 1][x + 1]
            d = grid[y][x + 1]
            indices.extend((a, b, d))
            indices.extend((b, c, d))

    if not open_ended:
        for top in (True, False):
            if (radius_top if top else radius_bottom) > 0:
                _add_cap(top, radius_top if top else radius_bottom, half_height,
                         radial_segments, positions, normals, uvs, indices)

    return Geometry(
        positions=positions,
        normals=_normalize_rows(np.asarray(normals, dtype=np.float64)),
        uvs=uvs,
        indices=indices,
    )


def _add_cap(top: bool, radius: float, half_height: float, radial_segments: int,
             positions: list, normals: list, uvs: list, indices: list) -> None:
    sign = 1 if top else -1
    center_start = len(positions)
    for _ in range(radial_segments):
        positions.append((0.0, half_height * sign, 0.0))
        normals.append((0.0, sign, 0.0))
        uvs.append((0.5, 0.5))
    center_end = len(positions)

    for x in range(radial_segments + 1):
        theta = x / radial_segments * 2 * math.pi
        sin_t, cos_t = math.sin(theta), math.cos(theta)
        positions.append((radius * sin_t, half_height * sign, radius * cos_t))
        normals.append((0.0, sign, 0.0))
        uvs.append((cos_t * 0.5 + 0.5, sin_t * 0.5 * sign + 0.5))

    for x in range(radial_segments):
        c = center_start + x
        i = center_end + x
        if top:
            indices.extend((i, i + 1, c))
        else:
            indices.extend((i + 1, i, c))


def box(width: float = 1.0, height: float = 1.0, depth: float = 1.0,
        width_segments: int = 1, height_segments: int = 1, depth_segments: int = 1) -> Geometry:
    """Axis-aligned box centered on the origin, six subdivided faces."""
    width_segments = int(width_segments)
    height_segments = int(height_segments)
    depth_segments = int(depth_segments)

    positions: list = []
    normals: list = []
    uvs: list = []
    indices: list = []

    # (u axis, v axis, w axis, udir, vdir, plane width, plane height, plane depth, grid x, grid y)
    planes = (
        (2, 1, 0, -1, -1, depth, height, width, depth_segments, height_segments),    # +x
        (2, 1, 0, 1, -1, depth, height, -width, depth_segments, height_segments),    # -x
        (0, 2, 1, 1, 1, width, depth, height, width_segments, depth_segments),       # +y
        (0, 2, 1, 1, -1, width, depth, -height, width_segments, depth_segments),     # -y
        (0, 1, 2, 1, -1, width, height, depth, width_segments, height_segments),     # +z
        (0, 1, 2, -1, -1, width, height, -depth, width_segments, height_segments),   # -z
    )
    for u, v, w, udir, vdir, pw, ph, pd, grid_x, grid_y in planes:
        start = len(positions)
        seg_w = pw / grid_x
        seg_h = ph / grid_y
        for iy in range(grid_y + 1):
            y = iy * seg_h - ph / 2
            for ix in range(grid_x + 1):
                x = ix * seg_w - pw / 2
                vec = [0.0, 0.0, 0.0]
                vec[u] = x * udir
                vec[v] = y * vdir
                vec[w] = pd / 2
                nrm = [0.0, 0.0, 0.0]
                nrm[w] = 1.0 if pd > 0 else -1.0
                positions.append(tuple(vec))
                normals.append(tuple(nrm))
                uvs.append((ix / grid_x, 1 - iy / grid_y))

        row = grid_x + 1
        for iy in range(grid_y):
            for ix in range(grid_x):
                a = start + ix + row * iy
                b = start + ix + row * (iy + 1)
                c = start + (ix + 1) + row * (iy + 1)
                d = start + (ix + 1) + row * iy
                indices.extend((a, b, d))
                indices.extend((b, c, d))

    return Geometry(positions=positions, normals=normals, uvs=uvs, indices=indices)


def sphere_cylinder(radius_top: float, radius_bottom: float, height: float,
                    sphere_top: bool, sphere_bottom: bool, segments: int = 16) -> Geometry:
    """Cylinder with optional hemispherical ends, standing on y=0.

    The total height includes the caps. Caps are full spheres merged into the
    body, which keeps the silhouette round without stitching edge loops.
    """
    top_height = radius_top if sphere_top else 0.0
    bottom_height = radius_bottom if sphere_bottom else 0.0
    cylinder_height = height - top_height - bottom_height

    parts = []
    if sphere_top:
        parts.append(sphere(radius_top, segments, segments).translate(0, cylinder_height / 2, 0))
    parts.append(cylinder(radius_top, radius_bottom, cylinder_height, segments, segments))
    if sphere_bottom:
        parts.append(sphere(radius_bottom, segments, segments).translate(0, -cylinder_height / 2, 0))

    geometry = merge(parts)
    geometry.translate(0, cylinder_height / 2 + bottom_height, 0)
    return geometry


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return vectors / lengths
