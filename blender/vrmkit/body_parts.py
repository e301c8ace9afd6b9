"""
VRMKit Body Parts Module

This module builds the avatar's body parts: parametric geometry, skin weights,
materials and the bones each part drives.

Every create_*() function takes the shared SkeletonBuilder and PartTreeBuilder,
adds its bones (from the humanoid preset) and its part, and returns the part
index. build_avatar() assembles the whole character.

Key functions:
- create_body(): torso with hips/spine/chest/upperChest/neck bands
- create_head(): head sphere split into face/mouth/eye material groups
- create_arm() / create_hand(): shoulder, upper/lower arm blend, hand
- create_leg() / create_foot(): upper/lower leg blend, foot
- build_avatar(): full character, skeleton and part tree frozen
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from . import geometry as geo
from .atlas import TEXTURE_KINDS, remap_uvs_to_first_slot
from .face_regions import HEAD_GROUP_ORDER, Segmentation, segment_head
from .materials import Material, Texture
from .parts import PartRef, PartTree, PartTreeBuilder
from .skeleton import Skeleton, SkeletonBuilder
from .skeleton_presets import add_preset_bone
from .skin_weights import assign_banded, assign_blend, assign_rigid
from .vrm_extension import (
    HEAD_FACE_MATERIAL,
    HEAD_LEFT_EYE_MATERIAL,
    HEAD_MOUTH_MATERIAL,
    HEAD_RIGHT_EYE_MATERIAL,
)

SIDES = {"left": 1, "right": -1}

SKIN_COLOR = 0xFFDCA6
SUIT_COLOR = 0x333333
PANTS_COLOR = 0x6496FF
SHOE_COLOR = 0xB4B4B4

# Lifts the model so the feet rest on y=0
AVATAR_ROOT_OFFSET = (0.0, 1.0, 0.0)


def _direction(side: str) -> int:
    if side not in SIDES:
        raise ValueError(f"side must be 'left' or 'right', got {side!r}")
    return SIDES[side]


def part_name(name: str) -> str:
    """Node name for a part. Parts carry a suffix so they never collide with bone names."""
    return f"{name}Mesh"


def create_body(skeleton: SkeletonBuilder, parts: PartTreeBuilder,
                parent: Optional[PartRef] = None) -> int:
    hips = add_preset_bone(skeleton, "hips")
    spine = add_preset_bone(skeleton, "spine")
    chest = add_preset_bone(skeleton, "chest")
    upper_chest = add_preset_bone(skeleton, "upperChest")
    neck = add_preset_bone(skeleton, "neck")

    body_height = 0.8
    geometry = geo.sphere_cylinder(
        radius_top=0.15,
        radius_bottom=0.25,
        height=body_height,
        sphere_top=True,
        sphere_bottom=True,
    )
    body_offset_y = -0.5
    geometry.translate(0, body_offset_y, 0)

    # Four bands from hips up to neck at 0%, 10%, 40%, 80%, 100% of the height
    edges = [body_offset_y + body_height * f for f in (0.0, 0.1, 0.4, 0.8, 1.0)]
    assign_banded(geometry, "y", [hips, spine, chest, upper_chest, neck], edges)

    return parts.add_part(
        part_name("body"),
        geometry,
        [Material("bodyMaterial", SUIT_COLOR)],
        offset=(0, -0.05, 0),
        parent=parent,
    )


@dataclass
class HeadResult:
    part: int
    segmentation: Segmentation
    materials: Dict[str, Material]


def create_head(skeleton: SkeletonBuilder, parts: PartTreeBuilder, parent: Optional[PartRef] = None,
                atlas: Optional[Texture] = None, slot_count: int = len(TEXTURE_KINDS)) -> HeadResult:
    """Head sphere with one material per face region.

    Every region material samples the same atlas; expressions switch slices by
    offsetting a material's texture transform.
    """
    head = add_preset_bone(skeleton, "head")

    geometry = geo.sphere(0.35, 64, 64)
    geometry.scale(1, 1, 0.83)
    geometry.rotate_y((math.pi / 2) * 3)
    geometry.uvs = remap_uvs_to_first_slot(geometry.uvs, slot_count)

    segmentation = segment_head(geometry)
    assign_rigid(geometry, head)

    names = dict(zip(HEAD_GROUP_ORDER, (
        HEAD_FACE_MATERIAL,
        HEAD_MOUTH_MATERIAL,
        HEAD_LEFT_EYE_MATERIAL,
        HEAD_RIGHT_EYE_MATERIAL,
    )))
    color = 0xFFFFFF if atlas is not None else SKIN_COLOR
    materials = {region: Material(names[region], color, texture=atlas) for region in HEAD_GROUP_ORDER}

    index = parts.add_part(
        part_name("head"),
        geometry,
        [materials[region] for region in HEAD_GROUP_ORDER],
        offset=(0, 0.65, 0),
        parent=parent,
    )
    return HeadResult(part=index, segmentation=segmentation, materials=materials)


def create_arm(side: str, skeleton: SkeletonBuilder, parts: PartTreeBuilder,
               parent: Optional[PartRef] = None) -> int:
    direction = _direction(side)
    add_preset_bone(skeleton, f"{side}Shoulder")
    upper = add_preset_bone(skeleton, f"{side}UpperArm")
    lower = add_preset_bone(skeleton, f"{side}LowerArm")

    geometry = geo.sphere_cylinder(
        radius_top=0.15 / 2,
        radius_bottom=0.15 / 2,
        height=0.5,
        sphere_top=True,
        sphere_bottom=False,
    )
    geometry.rotate_z(direction * (math.pi / 2))

    # Mirrored X runs from -0.5 at the shoulder to 0 at the wrist
    center_x = -0.2
    threshold = 0.2
    assign_blend(geometry, "x", upper, lower, center_x - threshold, center_x + threshold,
                 axis_scale=direction)

    return parts.add_part(
        part_name(f"{side}Arm"),
        geometry,
        [Material(f"{side}ArmMaterial", SUIT_COLOR)],
        offset=(0.6 * direction, 0.2, 0),
        parent=parent,
    )


def create_hand(side: str, skeleton: SkeletonBuilder, parts: PartTreeBuilder,
                parent: Optional[PartRef] = None) -> int:
    direction = _direction(side)
    hand = add_preset_bone(skeleton, f"{side}Hand")

    geometry = geo.sphere(0.1, 16, 16)
    assign_rigid(geometry, hand)

    return parts.add_part(
        part_name(f"{side}Hand"),
        geometry,
        [Material(f"{side}HandMaterial", SKIN_COLOR)],
        offset=(0.1 * direction, 0, 0),
        parent=parent,
    )


def create_leg(side: str, skeleton: SkeletonBuilder, parts: PartTreeBuilder,
               parent: Optional[PartRef] = None) -> int:
    direction = _direction(side)
    upper = add_preset_bone(skeleton, f"{side}UpperLeg")
    lower = add_preset_bone(skeleton, f"{side}LowerLeg")

    geometry = geo.sphere_cylinder(
        radius_top=0.15 / 2,
        radius_bottom=0.15 / 2,
        height=0.5,
        sphere_top=True,
        sphere_bottom=False,
    )
    # The knee blend sits at 0.25 +- 0.15 above the ankle
    center_y = 0.25
    threshold = 0.15
    assign_blend(geometry, "y", lower, upper, center_y - threshold, center_y + threshold)

    return parts.add_part(
        part_name(f"{side}Leg"),
        geometry,
        [Material(f"{side}LegMaterial", PANTS_COLOR)],
        offset=(0.15 * direction, -0.9, 0),
        parent=parent,
    )


def create_foot(side: str, skeleton: SkeletonBuilder, parts: PartTreeBuilder,
                parent: Optional[PartRef] = None) -> int:
    _direction(side)
    foot = add_preset_bone(skeleton, f"{side}Foot")

    geometry = geo.box(0.2, 0.1, 0.3, 1, 8)
    assign_rigid(geometry, foot)

    return parts.add_part(
        part_name(f"{side}Foot"),
        geometry,
        [Material(f"{side}FootMaterial", SHOE_COLOR)],
        offset=(0, 0, 0.05),
        parent=parent,
    )


@dataclass
class Avatar:
    skeleton: Skeleton
    parts: PartTree
    head: HeadResult
    root_offset: Sequence[float] = AVATAR_ROOT_OFFSET


def build_avatar(atlas: Optional[Texture] = None) -> Avatar:
    """Build the complete humanoid: 20 bones, 10 parts.

    Bones are created torso first so that every parent exists before its
    children; bone indices therefore follow the preset order.
    """
    skeleton = SkeletonBuilder()
    parts = PartTreeBuilder(skeleton)

    body = create_body(skeleton, parts)
    head = create_head(skeleton, parts, parent=body, atlas=atlas)

    for side in SIDES:
        arm = create_arm(side, skeleton, parts, parent=body)
        create_hand(side, skeleton, parts, parent=arm)

    for side in SIDES:
        leg = create_leg(side, skeleton, parts, parent=body)
        create_foot(side, skeleton, parts, parent=leg)

    return Avatar(skeleton=skeleton.freeze(), parts=parts.freeze(), head=head)
