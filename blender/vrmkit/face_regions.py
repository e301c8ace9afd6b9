"""
VRMKit Face Regions Module

Splits the head mesh into sub-material triangle groups (face, mouth, left eye,
right eye) so that each region can show a different slice of the expression
texture atlas.

Vertices are labelled first, from position and UV. A triangle then joins a
region when at least two of its three vertices carry that region's label.
Regions are tested in a fixed priority order (mouth, left eye, right eye), and
triangles matching none of them fall into the default face group. The
re-ordered index buffer keeps each group's triangles contiguous, because each
glTF primitive draws one material over one index range.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import DrawGroup, Geometry

FACE = "face"
MOUTH = "mouth"
LEFT_EYE = "leftEye"
RIGHT_EYE = "rightEye"

# Earlier regions win when a triangle has a majority for more than one region.
REGION_PRIORITY = (MOUTH, LEFT_EYE, RIGHT_EYE)

# Material slot order on the head part: the default group first.
HEAD_GROUP_ORDER = (FACE, MOUTH, LEFT_EYE, RIGHT_EYE)

MAJORITY = 2

VertexClassifier = Callable[[Tuple[float, float, float], Tuple[float, float]], Optional[str]]


def classify_head_vertex(position: Sequence[float], uv: Sequence[float]) -> Optional[str]:
    """Region label for one head vertex, or None.

    Expects the head sphere after its final transform (front facing +Z) and
    UVs already remapped to the first atlas slice.
    """
    x, y, z = position
    u, v = uv
    if -0.3 < y < -0.1 and z > 0.1 and abs(x) < 0.15:
        return MOUTH
    if 0.4 < u < 0.5 and 0.05 < v < 0.1:
        return LEFT_EYE
    if 0.5 < u < 0.6 and 0.05 < v < 0.1:
        return RIGHT_EYE
    return None


def classify_vertices(geometry: Geometry,
                      classifier: VertexClassifier = classify_head_vertex) -> List[Optional[str]]:
    """Label every vertex of geometry with classifier."""
    return [
        classifier(tuple(p), tuple(uv))
        for p, uv in zip(geometry.positions.tolist(), geometry.uvs.tolist())
    ]


@dataclass
class Segmentation:
    """Result of segment_triangles().

    groups maps each group name to the ids of its triangles (in the original
    triangle numbering), in output order. indices is the re-ordered index
    buffer and draw_groups the matching contiguous ranges.
    """

    groups: Dict[str, List[int]]
    indices: np.ndarray
    draw_groups: List[DrawGroup]

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def group_of(self, triangle: int) -> str:
        for name, triangles in self.groups.items():
            if triangle in triangles:
                return name
        raise KeyError(triangle)


def assign_triangle(labels: Sequence[Optional[str]], priority: Sequence[str] = REGION_PRIORITY,
                    default: str = FACE) -> str:
    """Pick the group for one triangle from its three vertex labels."""
    for region in priority:
        if sum(1 for label in labels if label == region) >= MAJORITY:
            return region
    return default


def segment_triangles(indices: Optional[np.ndarray], labels: Sequence[Optional[str]],
                      priority: Sequence[str] = REGION_PRIORITY,
                      default: str = FACE) -> Segmentation:
    """Partition triangles into region groups by majority vote.

    Args:
        indices: Flat triangle index buffer, or None for non-indexed geometry
                 (consecutive vertex triples).
        labels: One region label (or None) per vertex.
        priority: Regions in tie-break order.
        default: Name of the group for triangles with no majority.

    Returns:
        Segmentation with the default group first, then one group per
        priority region. Every triangle appears in exactly one group.
    """
    if indices is None:
        triangles = np.arange(len(labels) - len(labels) % 3, dtype=np.uint32).reshape(-1, 3)
    else:
        triangles = np.asarray(indices, dtype=np.uint32).reshape(-1, 3)

    order = (default,) + tuple(priority)
    if len(set(order)) != len(order):
        raise ValueError(f"region names must be unique: {order}")
    groups: Dict[str, List[int]] = {name: [] for name in order}

    for tri_id, tri in enumerate(triangles.tolist()):
        group = assign_triangle([labels[i] for i in tri], priority, default)
        groups[group].append(tri_id)

    ordered = []
    draw_groups = []
    start = 0
    for material_index, name in enumerate(order):
        tri_ids = groups[name]
        if tri_ids:
            ordered.append(triangles[tri_ids].reshape(-1))
        count = len(tri_ids) * 3
        draw_groups.append(DrawGroup(start=start, count=count, material_index=material_index))
        start += count

    new_indices = np.concatenate(ordered) if ordered else np.zeros(0, dtype=np.uint32)
    return Segmentation(groups=groups, indices=new_indices.astype(np.uint32), draw_groups=draw_groups)


def apply_segmentation(geometry: Geometry, segmentation: Segmentation) -> Geometry:
    """Replace the geometry's index buffer and draw groups with the segmentation's."""
    if segmentation.triangle_count != geometry.triangle_count:
        raise ValueError(
            f"segmentation has {segmentation.triangle_count} triangles, "
            f"geometry has {geometry.triangle_count}"
        )
    geometry.indices = segmentation.indices
    geometry.groups = list(segmentation.draw_groups)
    return geometry


def segment_head(geometry: Geometry, classifier: VertexClassifier = classify_head_vertex) -> Segmentation:
    """Classify, segment and regroup a head geometry in place."""
    labels = classify_vertices(geometry, classifier)
    segmentation = segment_triangles(geometry.indices, labels)
    apply_segmentation(geometry, segmentation)
    return segmentation
