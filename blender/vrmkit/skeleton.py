"""
VRMKit Skeleton Module

This module holds the bone hierarchy used to skin every body part.

Bones live in a flat arena: a bone's position in creation order is its bone
index, which is what skin weights refer to. Each record stores its parent index
and the indices of its children, so the hierarchy never holds object cycles.

Key types:
- SkeletonBuilder: build-once bone arena, threaded through part construction
- Skeleton: the frozen result consumed by the composer and exporter
- Bone: an immutable bone record
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DuplicateBoneError, TreeRootError, UnknownBoneError

Vec3 = Tuple[float, float, float]
BoneRef = Union[int, str]


@dataclass(frozen=True)
class Bone:
    """A named bone with an offset relative to its parent."""

    index: int
    name: str
    offset: Vec3
    parent: Optional[int]
    children: Tuple[int, ...]


class SkeletonBuilder:
    """Accumulates bones in creation order.

    There is no removal: an index handed out by add_bone() stays valid for the
    lifetime of the builder and of the Skeleton frozen from it.
    """

    def __init__(self) -> None:
        self._names: List[str] = []
        self._offsets: List[Vec3] = []
        self._parents: List[Optional[int]] = []
        self._children: List[List[int]] = []
        self._by_name: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def add_bone(self, name: str, offset: Sequence[float] = (0.0, 0.0, 0.0),
                 parent: Optional[BoneRef] = None) -> int:
        """Add a bone and return its index.

        Args:
            name: Globally unique bone name.
            offset: Local offset (x, y, z) relative to the parent bone.
            parent: Parent bone index or name; None creates a root.

        Returns:
            The new bone's index (equal to the number of bones added before it).

        Raises:
            DuplicateBoneError: If a bone with this name already exists.
            UnknownBoneError: If the parent does not exist.
        """
        if name in self._by_name:
            raise DuplicateBoneError(name)
        parent_index = None if parent is None else self.resolve(parent)

        index = len(self._names)
        self._names.append(name)
        self._offsets.append(_as_vec3(offset))
        self._parents.append(parent_index)
        self._children.append([])
        self._by_name[name] = index
        if parent_index is not None:
            self._children[parent_index].append(index)
        return index

    def resolve(self, ref: BoneRef) -> int:
        """Return the bone index for an index or a bone name."""
        if isinstance(ref, str):
            index = self._by_name.get(ref)
            if index is None:
                raise UnknownBoneError(ref)
            return index
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if 0 <= ref < len(self._names):
                return int(ref)
        raise UnknownBoneError(ref)

    def index_of(self, name: str) -> int:
        return self.resolve(name)

    def freeze(self) -> "Skeleton":
        """Return an immutable Skeleton.

        Raises:
            TreeRootError: If the bones do not form exactly one rooted tree.
        """
        bones = tuple(
            Bone(
                index=i,
                name=self._names[i],
                offset=self._offsets[i],
                parent=self._parents[i],
                children=tuple(self._children[i]),
            )
            for i in range(len(self._names))
        )
        return Skeleton(bones)


class Skeleton:
    """Frozen bone hierarchy with exactly one root."""

    def __init__(self, bones: Sequence[Bone]):
        self._bones: Tuple[Bone, ...] = tuple(bones)
        self._by_name = {bone.name: bone.index for bone in self._bones}
        roots = [bone.index for bone in self._bones if bone.parent is None]
        if len(roots) != 1:
            names = [self._bones[i].name for i in roots]
            raise TreeRootError(f"Skeleton must have exactly one root bone, found {len(roots)}: {names}")
        self._root = roots[0]

    def __len__(self) -> int:
        return len(self._bones)

    def __iter__(self) -> Iterator[Bone]:
        return iter(self._bones)

    def __getitem__(self, index: int) -> Bone:
        return self._bones[index]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def bones(self) -> Tuple[Bone, ...]:
        return self._bones

    @property
    def names(self) -> List[str]:
        return [bone.name for bone in self._bones]

    @property
    def root(self) -> Bone:
        return self._bones[self._root]

    def index_of(self, name: str) -> int:
        index = self._by_name.get(name)
        if index is None:
            raise UnknownBoneError(name)
        return index

    def bone(self, ref: BoneRef) -> Bone:
        if isinstance(ref, str):
            return self._bones[self.index_of(ref)]
        if not 0 <= ref < len(self._bones):
            raise UnknownBoneError(ref)
        return self._bones[ref]

    def walk(self, start: Optional[int] = None) -> Iterator[Bone]:
        """Yield bones depth-first (pre-order) from start, or from the root."""
        stack = [self._root if start is None else start]
        while stack:
            bone = self._bones[stack.pop()]
            yield bone
            stack.extend(reversed(bone.children))

    def world_positions(self, origin: Sequence[float] = (0.0, 0.0, 0.0)) -> np.ndarray:
        """Compute the rest position of every bone.

        Args:
            origin: World position of the node the root bone hangs from.

        Returns:
            Array of shape (bone_count, 3), indexed by bone index.
        """
        positions = np.zeros((len(self._bones), 3), dtype=np.float64)
        base = np.asarray(origin, dtype=np.float64)
        for bone in self.walk():
            parent = base if bone.parent is None else positions[bone.parent]
            positions[bone.index] = parent + np.asarray(bone.offset, dtype=np.float64)
        return positions


def _as_vec3(value: Sequence[float]) -> Vec3:
    x, y, z = (float(v) for v in value)
    return (x, y, z)
