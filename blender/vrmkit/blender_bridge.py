"""
VRMKit Blender Bridge Module

This module materializes a composed avatar scene inside Blender for preview
and manual tweaking: one armature holding an edit bone per skeleton bone, and
one mesh object per skinned mesh with a vertex group per bone and an Armature
modifier.

The head/tail and weight table helpers are plain numpy code and work without
Blender; only build_blender_scene() and save_blend() need bpy.

Key functions:
- bone_segments(): head/tail pair for every bone
- vertex_group_weights(): per-bone (vertex, weight) lists from skin attributes
- build_blender_scene(): create armature and skinned mesh objects
- save_blend(): save the current file
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

# Blender modules - only available when running inside Blender
try:
    import bpy
    from mathutils import Vector
    BLENDER_AVAILABLE = True
except ImportError:
    BLENDER_AVAILABLE = False

from .composer import SceneNode, SkinnedMesh
from .geometry import Geometry
from .skeleton import Skeleton

# Blender discards zero-length bones
LEAF_BONE_LENGTH = 0.05


def bone_segments(skeleton: Skeleton,
                  origin: Sequence[float] = (0.0, 0.0, 0.0)) -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
    """Compute a head/tail segment for every bone.

    A bone's head is its rest position. Its tail is the mean head of its
    children; leaf bones (and bones whose children sit on the head) extend
    LEAF_BONE_LENGTH along their own offset, or up +Y when the offset is zero.

    Args:
        skeleton: Frozen skeleton.
        origin: World position of the node the root bone hangs from.

    Returns:
        Dictionary mapping bone name to (head, tail) arrays.
    """
    heads = skeleton.world_positions(origin)
    segments: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}
    for bone in skeleton:
        head = heads[bone.index]
        tail = None
        if bone.children:
            candidate = heads[list(bone.children)].mean(axis=0)
            if np.linalg.norm(candidate - head) > 1e-6:
                tail = candidate
        if tail is None:
            direction = np.asarray(bone.offset, dtype=np.float64)
            length = np.linalg.norm(direction)
            direction = direction / length if length > 1e-9 else np.array([0.0, 1.0, 0.0])
            tail = head + direction * LEAF_BONE_LENGTH
        segments[bone.name] = (head.copy(), tail)
    return segments


def vertex_group_weights(geometry: Geometry, skeleton: Skeleton) -> Dict[str, List[Tuple[int, float]]]:
    """Convert skin attributes to per-bone vertex group entries.

    Zero-weight influences are skipped. Bones without any influence get no
    entry.
    """
    if not geometry.has_skin:
        return {}
    groups: Dict[str, List[Tuple[int, float]]] = {}
    names = skeleton.names
    for vertex, (bones, weights) in enumerate(zip(geometry.skin_indices, geometry.skin_weights)):
        for bone, weight in zip(bones, weights):
            if weight <= 0.0:
                continue
            groups.setdefault(names[int(bone)], []).append((vertex, float(weight)))
    return groups


def _find_skeleton(root: SceneNode) -> Optional[Skeleton]:
    for node in root.walk():
        if node.mesh is not None:
            return node.mesh.skeleton
    return None


def create_armature(skeleton: Skeleton, origin: Sequence[float], name: str = "Armature") -> 'bpy.types.Object':
    """Create an armature object with one edit bone per skeleton bone."""
    armature_data = bpy.data.armatures.new(name)
    armature_obj = bpy.data.objects.new(name, armature_data)
    bpy.context.collection.objects.link(armature_obj)
    bpy.context.view_layer.objects.active = armature_obj

    bpy.ops.object.mode_set(mode='EDIT')

    edit_bones = armature_data.edit_bones
    created_bones = {}
    for bone_name, (head, tail) in bone_segments(skeleton, origin).items():
        edit_bone = edit_bones.new(bone_name)
        edit_bone.head = Vector(head.tolist())
        edit_bone.tail = Vector(tail.tolist())
        created_bones[bone_name] = edit_bone

    for bone in skeleton:
        if bone.parent is not None:
            created_bones[bone.name].parent = created_bones[skeleton[bone.parent].name]

    bpy.ops.object.mode_set(mode='OBJECT')
    return armature_obj


def create_skinned_object(mesh: SkinnedMesh, location: Sequence[float],
                          armature: 'bpy.types.Object') -> 'bpy.types.Object':
    """Create a mesh object with vertex groups and an Armature modifier."""
    geometry = mesh.geometry
    mesh_data = bpy.data.meshes.new(mesh.name)
    mesh_data.from_pydata(
        geometry.positions.tolist(),
        [],
        geometry.triangles().tolist(),
    )
    mesh_data.update()

    mesh_obj = bpy.data.objects.new(mesh.name, mesh_data)
    bpy.context.collection.objects.link(mesh_obj)
    mesh_obj.location = Vector([float(v) for v in location])

    for bone_name, entries in vertex_group_weights(geometry, mesh.skeleton).items():
        vg = mesh_obj.vertex_groups.new(name=bone_name)
        for vertex, weight in entries:
            vg.add([vertex], weight, 'REPLACE')

    modifier = mesh_obj.modifiers.new(name="Armature", type='ARMATURE')
    modifier.object = armature
    mesh_obj.parent = armature
    return mesh_obj


def build_blender_scene(root: SceneNode, clear: bool = True) -> 'bpy.types.Object':
    """Build the composed scene in Blender.

    Args:
        root: Root node returned by compose().
        clear: Reset to an empty scene first.

    Returns:
        The armature object.

    Raises:
        RuntimeError: If Blender is not available.
        ValueError: If the scene has no skinned mesh.
    """
    if not BLENDER_AVAILABLE:
        raise RuntimeError("Blender (bpy) is not available")
    skeleton = _find_skeleton(root)
    if skeleton is None:
        raise ValueError("Scene has no skinned mesh to build")

    if clear:
        bpy.ops.wm.read_factory_settings(use_empty=True)

    world = root.world_positions()
    # The root bone hangs directly under the root part node
    armature = create_armature(skeleton, world[id(root)])

    for node in root.walk():
        if node.mesh is not None:
            create_skinned_object(node.mesh, world[id(node)], armature)

    return armature


def save_blend(path: Path) -> None:
    """Save the current Blender file."""
    if not BLENDER_AVAILABLE:
        raise RuntimeError("Blender (bpy) is not available")
    bpy.ops.wm.save_as_mainfile(filepath=str(path))
