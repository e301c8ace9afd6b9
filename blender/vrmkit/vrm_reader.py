"""
VRMKit VRM Reader Module

Loads an exported .vrm/.glb and reconstructs the rig and expression bindings
from its VRMC_vrm extension, checking that every reference resolves.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import pygltflib

from .errors import VRMKitError
from .vrm_extension import VRM_EXTENSION_NAME


@dataclass(frozen=True)
class TextureTransformBind:
    material: int
    offset: Tuple[float, float]
    scale: Tuple[float, float] = (1.0, 1.0)


@dataclass
class Expression:
    name: str
    is_binary: bool
    override_blink: str
    override_look_at: str
    override_mouth: str
    texture_transform_binds: List[TextureTransformBind] = field(default_factory=list)


@dataclass
class VRMDocument:
    gltf: pygltflib.GLTF2
    spec_version: str
    meta: Dict[str, Any]
    human_bones: Dict[str, int]
    expressions: Dict[str, Expression]

    def bone_node(self, bone_name: str) -> pygltflib.Node:
        return self.gltf.nodes[self.human_bones[bone_name]]

    def material_name(self, index: int) -> str:
        return self.gltf.materials[index].name


def read_vrm(path: Union[str, Path]) -> VRMDocument:
    """Load a binary glTF file and parse its VRM extension."""
    gltf = pygltflib.GLTF2.load_binary(str(path))
    if gltf is None:
        raise VRMKitError(f"Failed to load {path}")
    return parse_vrm(gltf)


def _object(value: Any, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise VRMKitError(f"{where} must be an object, got {type(value).__name__}")
    return value


def _pair(value: Any, where: str) -> Tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise VRMKitError(f"{where} must be a list of 2 numbers, got {value!r}")
    try:
        return float(value[0]), float(value[1])
    except (TypeError, ValueError):
        raise VRMKitError(f"{where} must be a list of 2 numbers, got {value!r}") from None


def parse_vrm(gltf: pygltflib.GLTF2) -> VRMDocument:
    """Parse and validate the VRMC_vrm extension of a loaded document.

    Raises:
        VRMKitError: If the extension is missing, not declared in
                     extensionsUsed, malformed, or references a node or
                     material that does not exist.
    """
    extensions = gltf.extensions or {}
    vrm = extensions.get(VRM_EXTENSION_NAME)
    if not isinstance(vrm, dict):
        raise VRMKitError(f"Document has no {VRM_EXTENSION_NAME} extension")
    if VRM_EXTENSION_NAME not in (gltf.extensionsUsed or []):
        raise VRMKitError(f"{VRM_EXTENSION_NAME} is present but not listed in extensionsUsed")

    node_count = len(gltf.nodes or [])
    material_count = len(gltf.materials or [])

    humanoid = _object(vrm.get("humanoid", {}), "humanoid")
    human_bones: Dict[str, int] = {}
    for bone_name, entry in _object(humanoid.get("humanBones", {}), "humanoid.humanBones").items():
        node = entry.get("node") if isinstance(entry, dict) else None
        if not isinstance(node, int) or not 0 <= node < node_count:
            raise VRMKitError(f"Human bone '{bone_name}' references invalid node {node!r}")
        human_bones[bone_name] = node

    presets = _object(_object(vrm.get("expressions", {}), "expressions").get("preset", {}),
                      "expressions.preset")
    expressions: Dict[str, Expression] = {}
    for preset_name, preset in presets.items():
        preset = _object(preset, f"Expression '{preset_name}'")
        bind_list = preset.get("textureTransformBinds", [])
        if not isinstance(bind_list, list):
            raise VRMKitError(f"Expression '{preset_name}' textureTransformBinds must be a list")
        binds = []
        for bind in bind_list:
            bind = _object(bind, f"Expression '{preset_name}' texture transform bind")
            material = bind.get("material")
            if not isinstance(material, int) or not 0 <= material < material_count:
                raise VRMKitError(f"Expression '{preset_name}' references invalid material {material!r}")
            binds.append(TextureTransformBind(
                material=material,
                offset=_pair(bind.get("offset", [0.0, 0.0]), f"Expression '{preset_name}' offset"),
                scale=_pair(bind.get("scale", [1.0, 1.0]), f"Expression '{preset_name}' scale"),
            ))
        expressions[preset_name] = Expression(
            name=preset_name,
            is_binary=bool(preset.get("isBinary", False)),
            override_blink=preset.get("overrideBlink", "none"),
            override_look_at=preset.get("overrideLookAt", "none"),
            override_mouth=preset.get("overrideMouth", "none"),
            texture_transform_binds=binds,
        )

    return VRMDocument(
        gltf=gltf,
        spec_version=str(vrm.get("specVersion", "")),
        meta=dict(_object(vrm.get("meta", {}), "meta")),
        human_bones=human_bones,
        expressions=expressions,
    )
