"""
VRMKit VRM Extension Module

Adds the VRMC_vrm (VRM 1.0) extension to an exported glTF document.

The generic exporter only knows node and material names. After it has assigned
final indices, VRMExtensionWriter maps:

- canonical humanoid bone names to bone node indices (humanoid.humanBones)
- expression presets to texture-transform bindings (expressions.preset), each
  pointing at a head material and at the atlas slice for that expression

Missing bones only degrade the rig (a warning per bone). A missing expression
material raises MissingMaterialBindingError, so the document is never written
with a broken expression reference.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pygltflib

from .atlas import TEXTURE_KINDS, slot_offset
from .errors import MissingMaterialBindingError, VRMKitError
from .export import ExportPlugin
from .skeleton_presets import HUMAN_BONE_NAMES

VRM_EXTENSION_NAME = "VRMC_vrm"
VRM_SPEC_VERSION = "1.0"

OVERRIDE_TYPES = ("none", "block", "blend")

# Head material names; the head part's materials are created with these names.
HEAD_FACE_MATERIAL = "headFaceMaterial"
HEAD_MOUTH_MATERIAL = "headMouthMaterial"
HEAD_LEFT_EYE_MATERIAL = "headLeftEyeMaterial"
HEAD_RIGHT_EYE_MATERIAL = "headRightEyeMaterial"


# =============================================================================
# Expression presets
# =============================================================================

@dataclass(frozen=True)
class TextureBind:
    """Show the atlas slice for texture kind on one material."""

    material: str
    kind: str


@dataclass(frozen=True)
class ExpressionPreset:
    name: str
    binds: Tuple[TextureBind, ...]
    is_binary: bool = True
    override_blink: str = "none"
    override_look_at: str = "none"
    override_mouth: str = "none"

    def __post_init__(self) -> None:
        for key in ("override_blink", "override_look_at", "override_mouth"):
            value = getattr(self, key)
            if value not in OVERRIDE_TYPES:
                raise ValueError(f"Expression '{self.name}': {key} must be one of {OVERRIDE_TYPES}, got {value!r}")


def _mouth(kind: str) -> ExpressionPreset:
    return ExpressionPreset(kind, (TextureBind(HEAD_MOUTH_MATERIAL, kind),))


EXPRESSION_PRESETS = (
    _mouth("aa"),
    _mouth("ih"),
    _mouth("ou"),
    _mouth("ee"),
    _mouth("oh"),
    ExpressionPreset("blink", (
        TextureBind(HEAD_LEFT_EYE_MATERIAL, "blinkLeft"),
        TextureBind(HEAD_RIGHT_EYE_MATERIAL, "blinkRight"),
    )),
    ExpressionPreset("blinkLeft", (TextureBind(HEAD_LEFT_EYE_MATERIAL, "blinkLeft"),)),
    ExpressionPreset("blinkRight", (TextureBind(HEAD_RIGHT_EYE_MATERIAL, "blinkRight"),)),
)


# =============================================================================
# Meta
# =============================================================================

@dataclass
class VRMMeta:
    name: str = "vrmkit avatar"
    version: str = "1.0"
    authors: List[str] = field(default_factory=lambda: ["vrmkit"])
    license_url: str = "https://vrm.dev/licenses/1.0/"

    def to_json(self) -> Dict[str, Any]:
        if not self.authors:
            raise VRMKitError("VRM meta requires at least one author")
        return {
            "name": self.name,
            "version": self.version,
            "authors": list(self.authors),
            "licenseUrl": self.license_url,
        }


# =============================================================================
# Building blocks
# =============================================================================

def build_name_index(names: Sequence[Optional[str]], kind: str,
                     warnings: Optional[List[str]] = None) -> Dict[str, int]:
    """Map names to indices in one pass.

    The first occurrence of a name wins. Duplicate and unnamed entries are
    reported as warnings and otherwise ignored.
    """
    index: Dict[str, int] = {}
    for i, name in enumerate(names):
        if not name:
            _warn(warnings, f"{kind} {i} has no name; it cannot be referenced by the VRM extension")
            continue
        if name in index:
            _warn(warnings, f"duplicate {kind} name '{name}' at index {i}; keeping index {index[name]}")
            continue
        index[name] = i
    return index


def build_human_bones(node_index: Dict[str, int], bone_names: Sequence[str] = HUMAN_BONE_NAMES,
                      warnings: Optional[List[str]] = None) -> Dict[str, Dict[str, int]]:
    """humanoid.humanBones for every canonical bone found among the nodes."""
    human_bones: Dict[str, Dict[str, int]] = {}
    for bone_name in bone_names:
        node = node_index.get(bone_name)
        if node is None:
            _warn(warnings, f'Bone "{bone_name}" not found in the scene.')
            continue
        human_bones[bone_name] = {"node": node}
    return human_bones


def texture_transform_bind(material_index: int, kind: str,
                           kinds: Sequence[str] = TEXTURE_KINDS) -> Dict[str, Any]:
    u, v = slot_offset(kind, kinds)
    return {"material": material_index, "offset": [u, v], "scale": [1.0, 1.0]}


def build_expression(preset: ExpressionPreset, material_index: Dict[str, int],
                     kinds: Sequence[str] = TEXTURE_KINDS) -> Dict[str, Any]:
    binds = []
    for bind in preset.binds:
        index = material_index.get(bind.material)
        if index is None:
            raise MissingMaterialBindingError(preset.name, bind.material)
        binds.append(texture_transform_bind(index, bind.kind, kinds))
    return {
        "isBinary": preset.is_binary,
        "overrideBlink": preset.override_blink,
        "overrideLookAt": preset.override_look_at,
        "overrideMouth": preset.override_mouth,
        "textureTransformBinds": binds,
    }


def build_expressions(material_index: Dict[str, int],
                      presets: Sequence[ExpressionPreset] = EXPRESSION_PRESETS,
                      kinds: Sequence[str] = TEXTURE_KINDS) -> Dict[str, Any]:
    return {
        "preset": {preset.name: build_expression(preset, material_index, kinds) for preset in presets},
        "custom": {},
    }


def _warn(warnings: Optional[List[str]], message: str) -> None:
    print(f"Warning: {message}")
    if warnings is not None:
        warnings.append(message)


# =============================================================================
# Export plugin
# =============================================================================

class VRMExtensionWriter(ExportPlugin):
    """Export plugin that writes the VRMC_vrm extension.

    Args:
        meta: Avatar metadata.
        bone_names: Canonical humanoid bones to look up, in output order.
        presets: Expression presets to emit.
        kinds: Atlas slice order used to compute texture offsets.
    """

    def __init__(self, meta: Optional[VRMMeta] = None,
                 bone_names: Sequence[str] = HUMAN_BONE_NAMES,
                 presets: Sequence[ExpressionPreset] = EXPRESSION_PRESETS,
                 kinds: Sequence[str] = TEXTURE_KINDS):
        names = [preset.name for preset in presets]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate expression preset names: {names}")
        for preset in presets:
            for bind in preset.binds:
                if bind.kind not in kinds:
                    raise ValueError(f"Expression '{preset.name}' uses unknown texture kind '{bind.kind}'")

        self.meta = meta or VRMMeta()
        self.bone_names = tuple(bone_names)
        self.presets = tuple(presets)
        self.kinds = tuple(kinds)
        self.warnings: List[str] = []
        self.mesh_nodes: Dict[int, Optional[str]] = {}
        self.extension: Optional[Dict[str, Any]] = None

    def on_node(self, name: Optional[str], index: int, has_mesh: bool) -> None:
        if has_mesh:
            self.mesh_nodes[index] = name

    def on_material(self, name: Optional[str], index: int) -> None:
        """Materials are looked up by name from the finished document."""

    def build_extension(self, node_names: Sequence[Optional[str]],
                        material_names: Sequence[Optional[str]]) -> Dict[str, Any]:
        """Build the VRMC_vrm object from the exported node and material names."""
        self.warnings = []
        node_index = build_name_index(node_names, "node", self.warnings)
        human_bones = build_human_bones(node_index, self.bone_names, self.warnings)

        material_index = build_name_index(material_names, "material", self.warnings)
        expressions = build_expressions(material_index, self.presets, self.kinds)

        extension: Dict[str, Any] = {
            "specVersion": VRM_SPEC_VERSION,
            "meta": self.meta.to_json(),
            "humanoid": {"humanBones": human_bones},
            "expressions": expressions,
        }
        mesh_nodes = sorted(i for i in self.mesh_nodes if i < len(node_names))
        if mesh_nodes:
            extension["firstPerson"] = {
                "meshAnnotations": [{"node": i, "type": "auto"} for i in mesh_nodes],
            }
        return extension

    def on_finalize(self, gltf: pygltflib.GLTF2) -> None:
        node_names = [node.name for node in (gltf.nodes or [])]
        material_names = [material.name for material in (gltf.materials or [])]
        extension = self.build_extension(node_names, material_names)
        merge_extension(gltf, VRM_EXTENSION_NAME, extension)
        self.extension = extension


def merge_extension(gltf: pygltflib.GLTF2, name: str, value: Dict[str, Any]) -> None:
    """Set a root-level extension and list it in extensionsUsed exactly once."""
    if not isinstance(gltf.extensions, dict):
        gltf.extensions = {}
    gltf.extensions[name] = value
    if not isinstance(gltf.extensionsUsed, list):
        gltf.extensionsUsed = []
    if name not in gltf.extensionsUsed:
        gltf.extensionsUsed.append(name)
