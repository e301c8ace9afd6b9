"""
VRMKit Export Module

Generic glTF 2.0 / GLB export of a composed scene, built on pygltflib.

The exporter owns node, mesh, material and buffer serialization. Extensions
such as the VRM rig descriptor are added by ExportPlugin objects that the
exporter calls at fixed points of its single pass:

- on_node() once per node, in index order, as the node is assigned its index
- on_material() once per distinct material, when it is first assigned an index
- on_finalize() once at the end, with the complete in-progress document

Hooks run synchronously. Only the final file write may run in a worker thread
(export_glb_async).
"""

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pygltflib

from .composer import SceneNode, SkinnedMesh
from .errors import ExportError, VRMKitError
from .materials import Material, Texture

GENERATOR = "vrmkit"
UNLIT_EXTENSION = "KHR_materials_unlit"


class ExportPlugin(ABC):
    """Hooks invoked by GLTFExporter during one export pass."""

    @abstractmethod
    def on_node(self, name: Optional[str], index: int, has_mesh: bool) -> None:
        """Called once per node after it has been assigned its final index."""

    @abstractmethod
    def on_material(self, name: Optional[str], index: int) -> None:
        """Called once per material after it has been assigned its final index."""

    @abstractmethod
    def on_finalize(self, gltf: pygltflib.GLTF2) -> None:
        """Called once with the full document, before it is serialized."""


class _BufferWriter:
    """Appends aligned buffer views and accessors to a document."""

    def __init__(self, gltf: pygltflib.GLTF2):
        self.gltf = gltf
        self.blob = bytearray()

    def _view(self, data: bytes, target: Optional[int] = None) -> int:
        # Every view starts on a 4-byte boundary
        self.blob.extend(b"\x00" * ((4 - len(self.blob) % 4) % 4))
        view = pygltflib.BufferView(buffer=0, byteOffset=len(self.blob), byteLength=len(data))
        if target is not None:
            view.target = target
        self.blob.extend(data)
        self.gltf.bufferViews.append(view)
        return len(self.gltf.bufferViews) - 1

    def accessor(self, array: np.ndarray, component_type: int, accessor_type: str,
                 target: Optional[int] = None, include_min_max: bool = False) -> int:
        view = self._view(array.tobytes(), target)
        kwargs = {
            "bufferView": view,
            "byteOffset": 0,
            "componentType": component_type,
            "count": len(array),
            "type": accessor_type,
        }
        if include_min_max and len(array):
            kwargs["min"] = array.min(axis=0).tolist()
            kwargs["max"] = array.max(axis=0).tolist()
        self.gltf.accessors.append(pygltflib.Accessor(**kwargs))
        return len(self.gltf.accessors) - 1

    def image(self, texture: Texture) -> int:
        view = self._view(texture.data)
        self.gltf.images.append(pygltflib.Image(name=texture.name, mimeType=texture.mime_type, bufferView=view))
        return len(self.gltf.images) - 1


class GLTFExporter:
    """Serializes a SceneNode tree into a pygltflib.GLTF2 document."""

    def __init__(self, generator: str = GENERATOR):
        self.generator = generator
        self._plugins: List[ExportPlugin] = []

    def register(self, plugin: ExportPlugin) -> ExportPlugin:
        self._plugins.append(plugin)
        return plugin

    @property
    def plugins(self) -> Tuple[ExportPlugin, ...]:
        return tuple(self._plugins)

    def parse(self, root: SceneNode) -> pygltflib.GLTF2:
        """Build the document for root and run every plugin's hooks.

        Raises:
            VRMKitError: Raised by a plugin (propagated unchanged).
            ExportError: For any other failure while assembling the document.
        """
        try:
            return _ExportPass(self).run(root)
        except VRMKitError:
            raise
        except Exception as e:
            raise ExportError(f"Failed to export glTF: {e}") from e


class _ExportPass:
    def __init__(self, exporter: GLTFExporter):
        self.plugins = exporter.plugins
        self.gltf = pygltflib.GLTF2(
            asset=pygltflib.Asset(version="2.0", generator=exporter.generator),
            scene=0,
            scenes=[pygltflib.Scene(nodes=[])],
            nodes=[],
            meshes=[],
            materials=[],
            textures=[],
            images=[],
            samplers=[],
            skins=[],
            accessors=[],
            bufferViews=[],
            buffers=[],
        )
        self.buffers = _BufferWriter(self.gltf)
        self.material_index: Dict[int, int] = {}
        self.texture_index: Dict[int, int] = {}
        self.bone_node_index: Dict[int, int] = {}
        self.skinned: List[Tuple[int, SkinnedMesh]] = []

    def run(self, root: SceneNode) -> pygltflib.GLTF2:
        gltf = self.gltf
        gltf.scenes[0].nodes = [self.process_node(root)]
        self.process_skins()

        if any(m.extensions and UNLIT_EXTENSION in m.extensions for m in gltf.materials):
            _use_extension(gltf, UNLIT_EXTENSION)

        for plugin in self.plugins:
            plugin.on_finalize(gltf)

        gltf.buffers = [pygltflib.Buffer(byteLength=len(self.buffers.blob))]
        gltf.set_binary_blob(bytes(self.buffers.blob))
        return gltf

    def process_node(self, node: SceneNode) -> int:
        index = len(self.gltf.nodes)
        gltf_node = pygltflib.Node(name=node.name)
        if any(node.translation):
            gltf_node.translation = [float(v) for v in node.translation]
        self.gltf.nodes.append(gltf_node)
        if node.bone is not None:
            self.bone_node_index[node.bone] = index
        if node.mesh is not None:
            gltf_node.mesh = self.process_mesh(node.mesh)
            self.skinned.append((index, node.mesh))

        for plugin in self.plugins:
            plugin.on_node(node.name, index, node.mesh is not None)

        children = [self.process_node(child) for child in node.children]
        if children:
            gltf_node.children = children
        return index

    def process_mesh(self, mesh: SkinnedMesh) -> int:
        geometry = mesh.geometry
        buffers = self.buffers
        attributes = pygltflib.Attributes(
            POSITION=buffers.accessor(geometry.positions.astype(np.float32), pygltflib.FLOAT,
                                      pygltflib.VEC3, pygltflib.ARRAY_BUFFER, include_min_max=True),
            NORMAL=buffers.accessor(geometry.normals.astype(np.float32), pygltflib.FLOAT,
                                    pygltflib.VEC3, pygltflib.ARRAY_BUFFER),
            TEXCOORD_0=buffers.accessor(geometry.uvs.astype(np.float32), pygltflib.FLOAT,
                                        pygltflib.VEC2, pygltflib.ARRAY_BUFFER),
            JOINTS_0=buffers.accessor(geometry.skin_indices.astype(np.uint16), pygltflib.UNSIGNED_SHORT,
                                      pygltflib.VEC4, pygltflib.ARRAY_BUFFER),
            WEIGHTS_0=buffers.accessor(geometry.skin_weights.astype(np.float32), pygltflib.FLOAT,
                                       pygltflib.VEC4, pygltflib.ARRAY_BUFFER),
        )

        ranges = [(g.start, g.count, g.material_index) for g in geometry.groups]
        if not ranges:
            ranges = [(0, len(geometry.indices), 0)]

        primitives = []
        for start, count, material_slot in ranges:
            # Empty groups still reserve their material slot
            material = self.process_material(mesh.materials[material_slot])
            if count == 0:
                continue
            indices = geometry.indices[start:start + count].astype(np.uint32)
            primitives.append(pygltflib.Primitive(
                attributes=attributes,
                indices=buffers.accessor(indices, pygltflib.UNSIGNED_INT, pygltflib.SCALAR,
                                         pygltflib.ELEMENT_ARRAY_BUFFER),
                material=material,
            ))

        self.gltf.meshes.append(pygltflib.Mesh(name=mesh.name, primitives=primitives))
        return len(self.gltf.meshes) - 1

    def process_material(self, material: Material) -> int:
        key = id(material)
        if key in self.material_index:
            return self.material_index[key]

        pbr = pygltflib.PbrMetallicRoughness(
            baseColorFactor=list(material.base_color_factor()),
            metallicFactor=0.0,
            roughnessFactor=1.0,
        )
        if material.texture is not None:
            pbr.baseColorTexture = pygltflib.TextureInfo(index=self.process_texture(material.texture))

        self.gltf.materials.append(pygltflib.Material(
            name=material.name,
            pbrMetallicRoughness=pbr,
            doubleSided=material.double_sided,
            extensions={UNLIT_EXTENSION: {}},
        ))
        index = len(self.gltf.materials) - 1
        self.material_index[key] = index
        for plugin in self.plugins:
            plugin.on_material(material.name, index)
        return index

    def process_texture(self, texture: Texture) -> int:
        key = id(texture)
        if key in self.texture_index:
            return self.texture_index[key]
        if not self.gltf.samplers:
            self.gltf.samplers.append(pygltflib.Sampler(
                magFilter=pygltflib.LINEAR,
                minFilter=pygltflib.LINEAR_MIPMAP_LINEAR,
                wrapS=pygltflib.REPEAT,
                wrapT=pygltflib.REPEAT,
            ))
        image = self.buffers.image(texture)
        self.gltf.textures.append(pygltflib.Texture(name=texture.name, source=image, sampler=0))
        index = len(self.gltf.textures) - 1
        self.texture_index[key] = index
        return index

    def process_skins(self) -> None:
        for node_index, mesh in self.skinned:
            skeleton = mesh.skeleton
            missing = [bone.name for bone in skeleton if bone.index not in self.bone_node_index]
            if missing:
                raise ExportError(f"Mesh '{mesh.name}' is bound to bones not present in the scene: {missing}")
            joints = [self.bone_node_index[bone.index] for bone in skeleton]

            # glTF matrices are column-major; numpy is row-major
            ibm = np.ascontiguousarray(mesh.inverse_bind_matrices().transpose(0, 2, 1)).astype(np.float32)
            ibm_accessor = self.buffers.accessor(ibm.reshape(len(joints), 16), pygltflib.FLOAT, pygltflib.MAT4)

            self.gltf.skins.append(pygltflib.Skin(
                joints=joints,
                inverseBindMatrices=ibm_accessor,
                skeleton=joints[skeleton.root.index],
            ))
            self.gltf.nodes[node_index].skin = len(self.gltf.skins) - 1


def _use_extension(gltf: pygltflib.GLTF2, name: str) -> None:
    if not isinstance(gltf.extensionsUsed, list):
        gltf.extensionsUsed = []
    if name not in gltf.extensionsUsed:
        gltf.extensionsUsed.append(name)


def glb_bytes(gltf: pygltflib.GLTF2) -> bytes:
    return b"".join(gltf.save_to_bytes())


def write_glb(gltf: pygltflib.GLTF2, output_path: Union[str, Path]) -> Path:
    """Write the document as GLB.

    The bytes go to a temporary file in the same directory that replaces
    output_path only once fully written. I/O errors propagate unchanged.
    """
    output_path = Path(output_path)
    data = glb_bytes(gltf)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=str(output_path.parent or "."))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, output_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return output_path


async def export_glb_async(exporter: GLTFExporter, root: SceneNode,
                           output_path: Union[str, Path]) -> pygltflib.GLTF2:
    """Run the export pass synchronously, then write the file in a worker thread."""
    gltf = exporter.parse(root)
    await asyncio.to_thread(write_glb, gltf, output_path)
    return gltf


def export_glb(exporter: GLTFExporter, root: SceneNode,
               output_path: Union[str, Path]) -> pygltflib.GLTF2:
    """Blocking wrapper around export_glb_async.

    Starts its own event loop with asyncio.run, so it raises RuntimeError when
    called from a running loop. Async callers must await export_glb_async.
    """
    return asyncio.run(export_glb_async(exporter, root, output_path))
