"""
VRMKit Errors Module

Exception types raised while building, composing and exporting an avatar.

Construction and binding-integrity problems derive from VRMKitError (itself a
ValueError) and abort the current build or export. Degenerate blend regions are
recoverable and are reported through the warnings module instead.
"""

from typing import Optional


class VRMKitError(ValueError):
    """Base class for fatal avatar construction and export errors."""


class DuplicateBoneError(VRMKitError):
    def __init__(self, name: str):
        super().__init__(f"Bone '{name}' already exists in the skeleton")
        self.name = name


class UnknownBoneError(VRMKitError):
    def __init__(self, ref):
        super().__init__(f"Bone {ref!r} not found in skeleton")
        self.ref = ref


class DuplicatePartError(VRMKitError):
    def __init__(self, name: str, reason: Optional[str] = None):
        message = f"Part '{name}' already exists"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.name = name


class DanglingBoneReferenceError(VRMKitError):
    """Part geometry references a bone index missing from the skeleton."""

    def __init__(self, part_name: str, bone_index: int, bone_count: int):
        super().__init__(
            f"Part '{part_name}' references bone index {bone_index}, "
            f"but the skeleton only has {bone_count} bones"
        )
        self.part_name = part_name
        self.bone_index = bone_index
        self.bone_count = bone_count


class TreeRootError(VRMKitError):
    """A frozen skeleton or part tree does not have exactly one root."""


class MissingSkinDataError(VRMKitError):
    def __init__(self, part_name: str):
        super().__init__(f"Part '{part_name}' has geometry without skin indices/weights")
        self.part_name = part_name


class MissingMaterialBindingError(VRMKitError):
    """An expression preset references a material that was not exported."""

    def __init__(self, preset: str, material: str):
        super().__init__(
            f"Expression '{preset}' references material '{material}', "
            "which is not present in the exported document"
        )
        self.preset = preset
        self.material = material


class ExportError(VRMKitError):
    """Unexpected failure while assembling the export document."""


class DegenerateBlendRegionError(RuntimeWarning):
    """Blend interval with edge0 == edge1; weights fall back to the first bone.

    This is a warning category, not a fatal error: it only affects how smooth
    the deformation looks at the joint.
    """

    def __init__(self, edge0: float, edge1: float):
        super().__init__(f"Degenerate blend region [{edge0}, {edge1}]; binding fully to the first bone")
        self.edge0 = edge0
        self.edge1 = edge1
