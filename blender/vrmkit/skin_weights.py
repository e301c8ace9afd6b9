"""
VRMKit Skin Weights Module

Per-vertex bone influences for procedurally generated body parts.

Every vertex gets four (bone index, weight) slots. Blended vertices use exactly
two active slots whose weights sum to 1; the remaining slots are zero. Blending
between two bones uses smoothstep over an axis-aligned interval, which has a
zero first derivative at both ends, so the deformation stays C1-continuous
across the joint.

Key functions:
- smoothstep(): clamped cubic Hermite ramp
- blend_weights() / skin_binding(): scalar two-bone blend for one value
- assign_rigid(): bind a whole geometry to one bone
- assign_blend(): two-bone blend along one axis
- assign_banded(): chain of two-bone blends along one axis (torso)
- validate_skin(): check the skin binding invariants
"""

import warnings
from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .errors import DegenerateBlendRegionError
from .geometry import Geometry

MAX_INFLUENCES = 4
WEIGHT_TOLERANCE = 1e-6

AXES = {"x": 0, "y": 1, "z": 2}


class SkinBinding(NamedTuple):
    indices: Tuple[int, int, int, int]
    weights: Tuple[float, float, float, float]


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def smoothstep(edge0: float, edge1: float, x: float) -> float:
    """Smoothstep of x over [edge0, edge1], clamped to [0, 1].

    A degenerate interval (edge0 == edge1) emits DegenerateBlendRegionError as
    a warning and returns 0.
    """
    if edge1 == edge0:
        warnings.warn(DegenerateBlendRegionError(edge0, edge1), stacklevel=2)
        t = 0.0
    else:
        t = _clamp01((x - edge0) / (edge1 - edge0))
    return _clamp01(t * t * (3 - 2 * t))


def blend_weights(value: float, edge0: float, edge1: float) -> Tuple[float, float]:
    """Return (weight_a, weight_b) for a value inside or outside the blend interval."""
    w = smoothstep(edge0, edge1, value)
    return 1.0 - w, w


def skin_binding(value: float, bone_a: int, bone_b: int, edge0: float, edge1: float) -> SkinBinding:
    """Skin binding for a single vertex whose axis coordinate is value."""
    weight_a, weight_b = blend_weights(value, edge0, edge1)
    return SkinBinding((bone_a, bone_b, 0, 0), (weight_a, weight_b, 0.0, 0.0))


def smoothstep_array(edge0: float, edge1: float, values: np.ndarray) -> np.ndarray:
    """Vectorized smoothstep(); warns once for a degenerate interval."""
    values = np.asarray(values, dtype=np.float64)
    if edge1 == edge0:
        warnings.warn(DegenerateBlendRegionError(edge0, edge1), stacklevel=3)
        return np.zeros_like(values)
    t = np.clip((values - edge0) / (edge1 - edge0), 0.0, 1.0)
    return np.clip(t * t * (3 - 2 * t), 0.0, 1.0)


def _axis_values(geometry: Geometry, axis, axis_scale: float) -> np.ndarray:
    axis_index = AXES[axis] if isinstance(axis, str) else int(axis)
    return geometry.positions[:, axis_index] * axis_scale


def _set_skin(geometry: Geometry, indices: np.ndarray, weights: np.ndarray) -> Geometry:
    geometry.skin_indices = indices.astype(np.uint16)
    geometry.skin_weights = weights.astype(np.float32)
    return geometry


def assign_rigid(geometry: Geometry, bone: int) -> Geometry:
    """Bind every vertex of geometry fully to one bone."""
    n = geometry.vertex_count
    indices = np.zeros((n, MAX_INFLUENCES), dtype=np.uint16)
    weights = np.zeros((n, MAX_INFLUENCES), dtype=np.float32)
    indices[:, 0] = bone
    weights[:, 0] = 1.0
    return _set_skin(geometry, indices, weights)


def assign_blend(geometry: Geometry, axis, bone_a: int, bone_b: int,
                 edge0: float, edge1: float, axis_scale: float = 1.0) -> Geometry:
    """Blend every vertex between bone_a and bone_b along one axis.

    Args:
        geometry: Geometry to bind, modified in place.
        axis: 'x', 'y', 'z' or an axis index.
        bone_a: Bone that owns vertices at or below edge0.
        bone_b: Bone that owns vertices at or above edge1.
        edge0: Start of the blend interval.
        edge1: End of the blend interval.
        axis_scale: Multiplier applied to the coordinate first (-1 mirrors a
                    right-side part onto the left-side interval).

    Returns:
        The same geometry, with skin_indices and skin_weights set.
    """
    values = _axis_values(geometry, axis, axis_scale)
    w = smoothstep_array(edge0, edge1, values)

    n = geometry.vertex_count
    indices = np.zeros((n, MAX_INFLUENCES), dtype=np.uint16)
    weights = np.zeros((n, MAX_INFLUENCES), dtype=np.float64)
    indices[:, 0] = bone_a
    indices[:, 1] = bone_b
    weights[:, 0] = 1.0 - w
    weights[:, 1] = w
    return _set_skin(geometry, indices, weights)


def assign_banded(geometry: Geometry, axis, bones: Sequence[int], edges: Sequence[float],
                  axis_scale: float = 1.0) -> Geometry:
    """Blend along a chain of bones split into consecutive bands.

    Band i spans [edges[i], edges[i + 1]] and blends bones[i] into bones[i + 1].
    Values below edges[1] fall in the first band and values at or above
    edges[-2] fall in the last band, so the ends clamp to the outer bones.
    """
    if len(bones) < 2:
        raise ValueError("assign_banded() needs at least two bones")
    if len(edges) != len(bones):
        raise ValueError(f"expected {len(bones)} edges for {len(bones)} bones, got {len(edges)}")
    if any(b < a for a, b in zip(edges, edges[1:])):
        raise ValueError(f"band edges must be non-decreasing: {list(edges)}")

    values = _axis_values(geometry, axis, axis_scale)
    band = np.searchsorted(np.asarray(edges[1:-1], dtype=np.float64), values, side="right")

    n = geometry.vertex_count
    indices = np.zeros((n, MAX_INFLUENCES), dtype=np.uint16)
    weights = np.zeros((n, MAX_INFLUENCES), dtype=np.float64)
    for b in range(len(bones) - 1):
        mask = band == b
        if not mask.any():
            continue
        w = smoothstep_array(edges[b], edges[b + 1], values[mask])
        indices[mask, 0] = bones[b]
        indices[mask, 1] = bones[b + 1]
        weights[mask, 0] = 1.0 - w
        weights[mask, 1] = w
    return _set_skin(geometry, indices, weights)


def validate_skin(skin_indices: np.ndarray, skin_weights: np.ndarray,
                  bone_count: Optional[int] = None,
                  tolerance: float = WEIGHT_TOLERANCE) -> Optional[str]:
    """Check skin binding invariants.

    Returns None if the binding is valid, otherwise a description of the
    first problem found.
    """
    skin_indices = np.asarray(skin_indices)
    skin_weights = np.asarray(skin_weights, dtype=np.float64)
    if skin_indices.shape != skin_weights.shape or skin_indices.ndim != 2 \
            or skin_indices.shape[1] != MAX_INFLUENCES:
        return f"skin arrays must both have shape (N, {MAX_INFLUENCES})"
    if len(skin_weights) == 0:
        return None
    if (skin_weights < 0).any():
        return "negative skin weight"
    sums = skin_weights.sum(axis=1)
    worst = float(np.abs(sums - 1.0).max())
    if worst > tolerance:
        return f"skin weights do not sum to 1 (max deviation {worst:.3g})"
    if bone_count is not None and int(skin_indices.max()) >= bone_count:
        return f"bone index {int(skin_indices.max())} out of range for {bone_count} bones"
    return None
