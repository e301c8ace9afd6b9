import contextlib
import io
import tempfile
import unittest
from pathlib import Path
import sys


# Allow `import vrmkit.*` from repo root.
_BLENDER_DIR = Path(__file__).resolve().parents[2]
if str(_BLENDER_DIR) not in sys.path:
    sys.path.insert(0, str(_BLENDER_DIR))


class TestEndToEnd(unittest.TestCase):
    def test_two_bone_skeleton(self) -> None:
        from vrmkit.composer import compose
        from vrmkit.export import GLTFExporter, export_glb
        from vrmkit.geometry import sphere_cylinder
        from vrmkit.materials import Material
        from vrmkit.parts import PartTreeBuilder
        from vrmkit.skeleton import SkeletonBuilder
        from vrmkit.skin_weights import assign_blend
        from vrmkit.vrm_extension import ExpressionPreset, TextureBind, VRMExtensionWriter
        from vrmkit.vrm_reader import read_vrm

        skeleton = SkeletonBuilder()
        root = skeleton.add_bone("root", (0, 0.0, 0))
        child = skeleton.add_bone("child", (0, 0.5, 0), parent=root)

        # Spans the blend region [0.25, 0.75]
        geometry = sphere_cylinder(0.1, 0.1, 1.0, sphere_top=True, sphere_bottom=True)
        assign_blend(geometry, "y", root, child, 0.25, 0.75)

        parts = PartTreeBuilder(skeleton)
        parts.add_part("limbMesh", geometry, [Material("limbMaterial")])
        scene = compose(parts.freeze(), skeleton.freeze())

        exporter = GLTFExporter()
        writer = exporter.register(VRMExtensionWriter(
            bone_names=("root", "child"),
            presets=(ExpressionPreset("aa", (TextureBind("limbMaterial", "aa"),)),),
        ))
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "limb.vrm"
            gltf = export_glb(exporter, scene, path)
            document = read_vrm(path)

        # One node per bone plus the part node that groups them
        self.assertEqual(len(gltf.nodes), 3)
        self.assertEqual(len(gltf.materials), 1)
        self.assertEqual(document.human_bones, {"root": 1, "child": 2})
        self.assertEqual(document.bone_node("root").name, "root")
        self.assertEqual(document.bone_node("child").name, "child")
        self.assertEqual(writer.warnings, [])

        aa = document.expressions["aa"]
        self.assertEqual(aa.texture_transform_binds[0].material, 0)
        self.assertEqual(aa.texture_transform_binds[0].offset, (0.0, 0.125))


class TestAvatarRoundTrip(unittest.TestCase):
    def test_full_avatar(self) -> None:
        from vrmkit.config import ExportConfig
        from vrmkit.main import build_vrm
        from vrmkit.skeleton_presets import HUMAN_BONE_NAMES
        from vrmkit.vrm_reader import read_vrm

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "avatar.vrm"
            with contextlib.redirect_stdout(io.StringIO()):
                result = build_vrm(ExportConfig(name="Round Trip", authors=["tester"]), path, verify=True)
            document = read_vrm(path)

        self.assertEqual(result.warnings, [])
        self.assertEqual(document.spec_version, "1.0")
        self.assertEqual(document.meta["name"], "Round Trip")
        self.assertEqual(document.meta["authors"], ["tester"])

        self.assertEqual(set(document.human_bones), set(HUMAN_BONE_NAMES))
        for bone_name in HUMAN_BONE_NAMES:
            self.assertEqual(document.bone_node(bone_name).name, bone_name)

        self.assertEqual(len(document.expressions), 8)
        blink = document.expressions["blink"]
        self.assertTrue(blink.is_binary)
        self.assertEqual(blink.override_mouth, "none")
        self.assertEqual(
            [document.material_name(b.material) for b in blink.texture_transform_binds],
            ["headLeftEyeMaterial", "headRightEyeMaterial"],
        )
        oh = document.expressions["oh"].texture_transform_binds[0]
        self.assertEqual(document.material_name(oh.material), "headMouthMaterial")
        self.assertEqual(oh.offset, (0.0, 0.625))
        self.assertEqual(oh.scale, (1.0, 1.0))


class TestParseErrors(unittest.TestCase):
    def _gltf(self, extension, used=True):
        import pygltflib

        gltf = pygltflib.GLTF2(
            nodes=[pygltflib.Node(name="hips")],
            materials=[pygltflib.Material(name="m")],
        )
        if extension is not None:
            gltf.extensions = {"VRMC_vrm": extension}
            gltf.extensionsUsed = ["VRMC_vrm"] if used else []
        return gltf

    def test_missing_extension(self) -> None:
        from vrmkit.errors import VRMKitError
        from vrmkit.vrm_reader import parse_vrm

        with self.assertRaises(VRMKitError):
            parse_vrm(self._gltf(None))

    def test_extension_must_be_declared(self) -> None:
        from vrmkit.errors import VRMKitError
        from vrmkit.vrm_reader import parse_vrm

        with self.assertRaises(VRMKitError):
            parse_vrm(self._gltf({"specVersion": "1.0"}, used=False))

    def test_invalid_node_reference(self) -> None:
        from vrmkit.errors import VRMKitError
        from vrmkit.vrm_reader import parse_vrm

        extension = {"humanoid": {"humanBones": {"hips": {"node": 4}}}}
        with self.assertRaises(VRMKitError):
            parse_vrm(self._gltf(extension))

    def test_invalid_material_reference(self) -> None:
        from vrmkit.errors import VRMKitError
        from vrmkit.vrm_reader import parse_vrm

        extension = {"expressions": {"preset": {"aa": {"textureTransformBinds": [{"material": 2}]}}}}
        with self.assertRaises(VRMKitError):
            parse_vrm(self._gltf(extension))

    def test_malformed_expressions(self) -> None:
        from vrmkit.errors import VRMKitError
        from vrmkit.vrm_reader import parse_vrm

        malformed = [
            {"expressions": {"preset": {"aa": "not an object"}}},
            {"expressions": {"preset": {"aa": {"textureTransformBinds": [{"material": 0, "offset": [0.5]}]}}}},
            {"expressions": {"preset": {"aa": {"textureTransformBinds": [{"material": 0, "scale": []}]}}}},
            {"expressions": {"preset": {"aa": {"textureTransformBinds": [{"material": 0, "offset": ["x", 0]}]}}}},
            {"expressions": {"preset": {"aa": {"textureTransformBinds": [0]}}}},
            {"expressions": {"preset": {"aa": {"textureTransformBinds": {"material": 0}}}}},
            {"expressions": {"preset": []}},
            {"humanoid": {"humanBones": []}},
        ]
        for extension in malformed:
            with self.subTest(extension=extension):
                with self.assertRaises(VRMKitError):
                    parse_vrm(self._gltf(extension))

    def test_valid_minimal_document(self) -> None:
        from vrmkit.vrm_reader import parse_vrm

        extension = {
            "specVersion": "1.0",
            "humanoid": {"humanBones": {"hips": {"node": 0}}},
            "expressions": {"preset": {"aa": {
                "isBinary": True,
                "textureTransformBinds": [{"material": 0, "offset": [0, 0.125]}],
            }}},
        }
        document = parse_vrm(self._gltf(extension))
        self.assertEqual(document.human_bones, {"hips": 0})
        self.assertEqual(document.expressions["aa"].texture_transform_binds[0].scale, (1.0, 1.0))
        self.assertEqual(document.expressions["aa"].override_blink, "none")


if __name__ == "__main__":
    unittest.main()
