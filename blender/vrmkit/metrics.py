"""
VRMKit Metrics Module

Summary statistics for a composed scene, written to the run report.

Skin weight metrics use the same thresholds as the export checks: a vertex
influence counts when its weight exceeds 0.001, and a vertex is normalized when
its weight sum is within 0.001 of 1.0.
"""

from typing import Any, Dict

import numpy as np

from .composer import SceneNode

INFLUENCE_THRESHOLD = 0.001


def compute_skin_metrics(skin_weights: np.ndarray) -> Dict[str, Any]:
    """Influence and normalization statistics for one (N, 4) weight array."""
    weights = np.asarray(skin_weights, dtype=np.float64)
    if len(weights) == 0:
        return {
            "max_bone_influences": 0,
            "unweighted_vertex_count": 0,
            "weight_normalization_percentage": 0.0,
            "max_weight_deviation": 0.0,
        }

    influences = (weights > INFLUENCE_THRESHOLD).sum(axis=1)
    sums = weights.sum(axis=1)
    unweighted = sums < INFLUENCE_THRESHOLD
    deviation = np.abs(sums - 1.0)
    weighted_deviation = deviation[~unweighted]
    normalized = int((weighted_deviation < INFLUENCE_THRESHOLD).sum())

    return {
        "max_bone_influences": int(influences.max()),
        "unweighted_vertex_count": int(unweighted.sum()),
        "weight_normalization_percentage": round(normalized / len(weights) * 100.0, 2),
        "max_weight_deviation": round(float(weighted_deviation.max()) if len(weighted_deviation) else 0.0, 6),
    }


def compute_scene_metrics(root: SceneNode) -> Dict[str, Any]:
    """Counts and skin statistics for every node below root."""
    node_count = 0
    bone_count = 0
    meshes = []
    for node in root.walk():
        node_count += 1
        if node.bone is not None:
            bone_count += 1
        if node.mesh is not None:
            meshes.append(node.mesh)

    materials = {id(m) for mesh in meshes for m in mesh.materials}
    vertex_count = sum(mesh.geometry.vertex_count for mesh in meshes)
    triangle_count = sum(mesh.geometry.triangle_count for mesh in meshes)

    if meshes:
        skin = compute_skin_metrics(np.concatenate([mesh.geometry.skin_weights for mesh in meshes]))
    else:
        skin = compute_skin_metrics(np.zeros((0, 4)))

    metrics: Dict[str, Any] = {
        "node_count": node_count,
        "bone_count": bone_count,
        "mesh_count": len(meshes),
        "material_count": len(materials),
        "vertex_count": vertex_count,
        "triangle_count": triangle_count,
    }
    metrics.update(skin)
    return metrics
