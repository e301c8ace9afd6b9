"""
VRMKit Scene Composer Module

Turns a frozen PartTree and Skeleton into a scene graph ready for export.

Each part becomes one SceneNode carrying the part's offset; parts with geometry
also carry a SkinnedMesh bound to the shared skeleton. The skeleton's bones are
added as their own nodes, hung once under the root part node beside the mesh
hierarchy, so the exporter serializes them as joints.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .errors import DuplicatePartError, MissingSkinDataError, VRMKitError
from .geometry import Geometry
from .materials import Material
from .parts import Part, PartTree
from .skeleton import Skeleton


def translation_matrix(offset: Sequence[float]) -> np.ndarray:
    m = np.identity(4, dtype=np.float64)
    m[:3, 3] = offset
    return m


@dataclass(eq=False)
class SkinnedMesh:
    """Mesh leaf bound to the shared skeleton.

    bind_matrix is the mesh's world matrix at bind time; bone_inverses[j] is the
    inverse of bone j's world matrix at bind time.
    """

    name: str
    geometry: Geometry
    materials: Tuple[Material, ...]
    skeleton: Skeleton
    bind_matrix: np.ndarray = field(default_factory=lambda: np.identity(4))
    bone_inverses: Optional[np.ndarray] = None

    def inverse_bind_matrices(self) -> np.ndarray:
        """Per-joint inverse bind matrices in the mesh's bind space, shape (J, 4, 4)."""
        if self.bone_inverses is None:
            raise VRMKitError(f"Mesh '{self.name}' has not been bound to its skeleton")
        return np.einsum("jab,bc->jac", self.bone_inverses, self.bind_matrix)


@dataclass(eq=False)
class SceneNode:
    name: str
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    children: List["SceneNode"] = field(default_factory=list)
    mesh: Optional[SkinnedMesh] = None
    bone: Optional[int] = None

    def add(self, child: "SceneNode") -> "SceneNode":
        self.children.append(child)
        return child

    def walk(self) -> Iterator["SceneNode"]:
        """Yield this node and its descendants depth-first (pre-order)."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def world_positions(self, origin: Sequence[float] = (0.0, 0.0, 0.0)) -> Dict[int, np.ndarray]:
        """World translation of every node below (and including) this one, keyed by id()."""
        result: Dict[int, np.ndarray] = {}
        stack = [(self, np.asarray(origin, dtype=np.float64))]
        while stack:
            node, parent_world = stack.pop()
            world = parent_world + np.asarray(node.translation, dtype=np.float64)
            result[id(node)] = world
            stack.extend((child, world) for child in node.children)
        return result

    def find(self, name: str) -> Optional["SceneNode"]:
        for node in self.walk():
            if node.name == name:
                return node
        return None


def _build_part_node(part: Part, parts: PartTree, skeleton: Skeleton,
                     meshes: List[SkinnedMesh]) -> SceneNode:
    node = SceneNode(name=part.name, translation=part.offset)
    if part.geometry is not None:
        if not part.geometry.has_skin:
            raise MissingSkinDataError(part.name)
        mesh = SkinnedMesh(
            name=part.name,
            geometry=part.geometry,
            materials=part.materials,
            skeleton=skeleton,
        )
        node.mesh = mesh
        meshes.append(mesh)
    for child_index in part.children:
        node.add(_build_part_node(parts[child_index], parts, skeleton, meshes))
    return node


def build_bone_nodes(skeleton: Skeleton) -> Tuple[SceneNode, List[SceneNode]]:
    """Create one node per bone, wired like the skeleton.

    Returns:
        The root bone node and the list of bone nodes indexed by bone index.
    """
    nodes = [SceneNode(name=bone.name, translation=bone.offset, bone=bone.index) for bone in skeleton]
    for bone in skeleton:
        for child in bone.children:
            nodes[bone.index].add(nodes[child])
    return nodes[skeleton.root.index], nodes


def bind(root: SceneNode, meshes: Sequence[SkinnedMesh], bone_nodes: Sequence[SceneNode]) -> None:
    """Record bind matrices for every mesh from the current rest pose."""
    world = root.world_positions()
    bone_inverses = np.stack([translation_matrix(-world[id(node)]) for node in bone_nodes]) \
        if bone_nodes else np.zeros((0, 4, 4))

    mesh_world: Dict[int, np.ndarray] = {}
    for node in root.walk():
        if node.mesh is not None:
            mesh_world[id(node.mesh)] = world[id(node)]
    for mesh in meshes:
        mesh.bind_matrix = translation_matrix(mesh_world[id(mesh)])
        mesh.bone_inverses = bone_inverses.copy()


def compose(parts: PartTree, skeleton: Skeleton,
            root_offset: Optional[Sequence[float]] = None) -> SceneNode:
    """Build the scene graph for a part tree and its skeleton.

    Args:
        parts: Frozen part tree; its root becomes the scene root.
        skeleton: Frozen skeleton shared by every skinned mesh.
        root_offset: Extra translation added to the root node (e.g. to lift
                     the avatar so its feet rest on the ground).

    Returns:
        The root SceneNode. Bone nodes hang under it after the part children.

    Raises:
        DuplicatePartError: If a part name collides with a bone name.
        MissingSkinDataError: If a part has geometry without skin weights.
    """
    collisions = sorted(set(parts.names) & set(skeleton.names))
    if collisions:
        raise DuplicatePartError(collisions[0], reason="name is also used by a bone")

    meshes: List[SkinnedMesh] = []
    root = _build_part_node(parts.root, parts, skeleton, meshes)
    if root_offset is not None:
        root.translation = tuple(float(a) + float(b) for a, b in zip(root.translation, root_offset))

    root_bone, bone_nodes = build_bone_nodes(skeleton)
    root.add(root_bone)

    bind(root, meshes, bone_nodes)
    return root
