"""
VRMKit Skeleton Presets Module

This module defines the humanoid bone layout used by the generated avatar.
Each entry gives the bone's local offset from its parent and the parent name.

Bone names match the VRM 1.0 humanoid bone names, so the export pass can map
them to node indices without a translation table.
"""

# Humanoid v1 (20 bones, no fingers/toes/eyes). Offsets are local to the parent.
# The hips hang 0.3 below the body part origin.
HUMANOID_V1_BONES = {
    "hips": {"offset": (0, -0.3, 0), "parent": None},
    "spine": {"offset": (0, 0.1, 0), "parent": "hips"},
    "chest": {"offset": (0, 0.2, 0), "parent": "spine"},
    "upperChest": {"offset": (0, 0.2, 0), "parent": "chest"},
    "neck": {"offset": (0, 0.1, 0), "parent": "upperChest"},
    "head": {"offset": (0, 0.05, 0), "parent": "neck"},
    # Arms hang off the upper chest, left side is +X
    "leftShoulder": {"offset": (0.05, 0, 0), "parent": "upperChest"},
    "leftUpperArm": {"offset": (0.1, 0, 0), "parent": "leftShoulder"},
    "leftLowerArm": {"offset": (0.2, 0, 0), "parent": "leftUpperArm"},
    "leftHand": {"offset": (0.3, 0, 0), "parent": "leftLowerArm"},
    "rightShoulder": {"offset": (-0.05, 0, 0), "parent": "upperChest"},
    "rightUpperArm": {"offset": (-0.1, 0, 0), "parent": "rightShoulder"},
    "rightLowerArm": {"offset": (-0.2, 0, 0), "parent": "rightUpperArm"},
    "rightHand": {"offset": (-0.3, 0, 0), "parent": "rightLowerArm"},
    # Legs hang off the hips
    "leftUpperLeg": {"offset": (0.15, -0.05, 0), "parent": "hips"},
    "leftLowerLeg": {"offset": (0, -0.3, 0), "parent": "leftUpperLeg"},
    "leftFoot": {"offset": (0, -0.3, 0), "parent": "leftLowerLeg"},
    "rightUpperLeg": {"offset": (-0.15, -0.05, 0), "parent": "hips"},
    "rightLowerLeg": {"offset": (0, -0.3, 0), "parent": "rightUpperLeg"},
    "rightFoot": {"offset": (0, -0.3, 0), "parent": "rightLowerLeg"},
}

# Canonical humanoid bone names written to the rig descriptor, in output order.
HUMAN_BONE_NAMES = (
    "hips",
    "spine",
    "chest",
    "upperChest",
    "neck",
    "head",
    "leftUpperLeg",
    "leftLowerLeg",
    "leftFoot",
    "rightUpperLeg",
    "rightLowerLeg",
    "rightFoot",
    "leftShoulder",
    "leftUpperArm",
    "leftLowerArm",
    "leftHand",
    "rightShoulder",
    "rightUpperArm",
    "rightLowerArm",
    "rightHand",
)

SKELETON_PRESETS = {
    "humanoid_v1": HUMANOID_V1_BONES,
    "humanoid": HUMANOID_V1_BONES,
}


def add_preset_bone(skeleton, name: str, preset_name: str = "humanoid_v1") -> int:
    """Add one preset bone to a SkeletonBuilder, attaching it to its preset parent.

    The parent must already have been added.
    """
    preset = SKELETON_PRESETS.get(preset_name)
    if not preset:
        raise ValueError(f"Unknown skeleton preset: {preset_name}")
    spec = preset.get(name)
    if spec is None:
        raise ValueError(f"Bone '{name}' is not part of skeleton preset '{preset_name}'")
    return skeleton.add_bone(name, spec["offset"], parent=spec["parent"])
