"""
VRMKit Parts Module

The part tree holds renderable pieces of the avatar: geometry, materials and an
offset relative to the parent part. Like the skeleton it is an arena of records
addressed by index, built once and then frozen.

A part's name becomes the name of its node in the exported scene, so part names
must be unique. Every bone index referenced by a part's skin attributes must
already exist in the skeleton when the part is added, and each vertex's skin
weights must be non-negative and sum to 1.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DanglingBoneReferenceError, DuplicatePartError, TreeRootError, VRMKitError
from .geometry import Geometry
from .materials import Material
from .skeleton import Vec3
from .skin_weights import MAX_INFLUENCES, validate_skin

PartRef = Union[int, str]


@dataclass(frozen=True, eq=False)
class Part:
    index: int
    name: str
    geometry: Optional[Geometry]
    materials: Tuple[Material, ...]
    offset: Vec3
    parent: Optional[int]
    children: Tuple[int, ...]


class PartTreeBuilder:
    """Accumulates parts, checking names and bone references as they arrive.

    Args:
        skeleton: The SkeletonBuilder (or frozen Skeleton) whose bone indices
                  the parts' skin weights refer to.
    """

    def __init__(self, skeleton) -> None:
        self._skeleton = skeleton
        self._records: List[dict] = []
        self._by_name: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def add_part(self, name: str, geometry: Optional[Geometry], materials: Sequence[Material],
                 offset: Sequence[float] = (0.0, 0.0, 0.0),
                 parent: Optional[PartRef] = None) -> int:
        """Add a part and return its index.

        Raises:
            DuplicatePartError: If the name is already used.
            DanglingBoneReferenceError: If the geometry's skin refers to a bone
                                        that is not in the skeleton.
            VRMKitError: If the materials do not cover the geometry's groups, or
                         the skin arrays are malformed or not normalized.
        """
        if name in self._by_name:
            raise DuplicatePartError(name)
        parent_index = None if parent is None else self.resolve(parent)
        materials = tuple(materials)

        if geometry is not None:
            if not materials:
                raise VRMKitError(f"Part '{name}' has geometry but no materials")
            for group in geometry.groups:
                if group.material_index >= len(materials):
                    raise VRMKitError(
                        f"Part '{name}' draw group uses material {group.material_index}, "
                        f"but only {len(materials)} materials were given"
                    )
            self._check_skin(name, geometry)

        x, y, z = (float(v) for v in offset)
        index = len(self._records)
        self._records.append({
            "name": name,
            "geometry": geometry,
            "materials": materials,
            "offset": (x, y, z),
            "parent": parent_index,
            "children": [],
        })
        self._by_name[name] = index
        if parent_index is not None:
            self._records[parent_index]["children"].append(index)
        return index

    def resolve(self, ref: PartRef) -> int:
        if isinstance(ref, str):
            if ref not in self._by_name:
                raise VRMKitError(f"Part '{ref}' not found")
            return self._by_name[ref]
        if not 0 <= ref < len(self._records):
            raise VRMKitError(f"Part index {ref} out of range")
        return int(ref)

    def _check_skin(self, name: str, geometry: Geometry) -> None:
        if not geometry.has_skin:
            return
        skin_indices = np.asarray(geometry.skin_indices)
        skin_weights = np.asarray(geometry.skin_weights, dtype=np.float64)
        expected = (geometry.vertex_count, MAX_INFLUENCES)
        if skin_indices.shape != expected or skin_weights.shape != expected:
            raise VRMKitError(
                f"Part '{name}': skin arrays have shapes {skin_indices.shape} and "
                f"{skin_weights.shape}, expected {expected}"
            )
        if len(skin_indices) == 0:
            return
        bone_count = len(self._skeleton)
        lowest = int(skin_indices.min())
        if lowest < 0:
            raise DanglingBoneReferenceError(name, lowest, bone_count)
        highest = int(skin_indices.max())
        if highest >= bone_count:
            raise DanglingBoneReferenceError(name, highest, bone_count)
        problem = validate_skin(skin_indices, skin_weights, bone_count)
        if problem:
            raise VRMKitError(f"Part '{name}': {problem}")

    def freeze(self) -> "PartTree":
        parts = tuple(
            Part(
                index=i,
                name=r["name"],
                geometry=r["geometry"],
                materials=r["materials"],
                offset=r["offset"],
                parent=r["parent"],
                children=tuple(r["children"]),
            )
            for i, r in enumerate(self._records)
        )
        return PartTree(parts)


class PartTree:
    """Frozen part hierarchy with exactly one root part."""

    def __init__(self, parts: Sequence[Part]):
        self._parts = tuple(parts)
        self._by_name = {part.name: part.index for part in self._parts}
        roots = [part.index for part in self._parts if part.parent is None]
        if len(roots) != 1:
            raise TreeRootError(f"Part tree must have exactly one root part, found {len(roots)}")
        self._root = roots[0]

    def __len__(self) -> int:
        return len(self._parts)

    def __iter__(self) -> Iterator[Part]:
        return iter(self._parts)

    def __getitem__(self, ref: PartRef) -> Part:
        if isinstance(ref, str):
            return self._parts[self._by_name[ref]]
        return self._parts[ref]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def root(self) -> Part:
        return self._parts[self._root]

    @property
    def names(self) -> List[str]:
        return [part.name for part in self._parts]

    def materials(self) -> List[Material]:
        """All materials in part order, without duplicates."""
        seen = set()
        result = []
        for part in self._parts:
            for material in part.materials:
                if id(material) not in seen:
                    seen.add(id(material))
                    result.append(material)
        return result
