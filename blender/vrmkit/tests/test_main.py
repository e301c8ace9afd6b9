import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path
import sys


# Allow `import vrmkit.*` from repo root.
_BLENDER_DIR = Path(__file__).resolve().parents[2]
if str(_BLENDER_DIR) not in sys.path:
    sys.path.insert(0, str(_BLENDER_DIR))


def _run(argv):
    from vrmkit.main import main

    out = io.StringIO()
    err = io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class TestMain(unittest.TestCase):
    def test_writes_vrm_and_report(self) -> None:
        from vrmkit.vrm_reader import read_vrm

        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "avatar.vrm"
            report = Path(tmp) / "report.json"
            code, stdout, _ = _run([
                "--out", str(out), "--report", str(report),
                "--name", "CLI Avatar", "--author", "a", "--author", "b", "--verify",
            ])

            self.assertEqual(code, 0)
            self.assertIn("Wrote", stdout)
            document = read_vrm(out)
            data = json.loads(report.read_text())

        self.assertEqual(document.meta["name"], "CLI Avatar")
        self.assertEqual(document.meta["authors"], ["a", "b"])
        self.assertTrue(data["ok"])
        self.assertEqual(data["metrics"]["bone_count"], 20)
        self.assertEqual(data["output_path"], str(out))
        self.assertIn("duration_ms", data)
        self.assertNotIn("warnings", data)

    def test_config_file_and_atlas(self) -> None:
        from PIL import Image
        from vrmkit.vrm_reader import read_vrm

        with tempfile.TemporaryDirectory() as tmp:
            atlas = Path(tmp) / "faces.png"
            Image.new("RGBA", (4, 16)).save(atlas)
            config = Path(tmp) / "config.json"
            config.write_text(json.dumps({"name": "From Config", "atlas_path": str(atlas)}))
            out = Path(tmp) / "avatar.vrm"

            code, _, _ = _run(["--out", str(out), "--config", str(config)])
            self.assertEqual(code, 0)
            document = read_vrm(out)

        gltf = document.gltf
        self.assertEqual(document.meta["name"], "From Config")
        self.assertEqual(len(gltf.images), 1)
        self.assertEqual(gltf.images[0].mimeType, "image/png")
        mouth = gltf.materials[document.expressions["aa"].texture_transform_binds[0].material]
        self.assertEqual(mouth.pbrMetallicRoughness.baseColorTexture.index, 0)

    def test_atlas_dir_is_stacked(self) -> None:
        from PIL import Image
        from vrmkit.vrm_reader import read_vrm

        with tempfile.TemporaryDirectory() as tmp:
            slices = Path(tmp) / "slices"
            slices.mkdir()
            Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(slices / "normal.png")
            Image.new("RGBA", (4, 4), (0, 255, 0, 255)).save(slices / "aa.png")
            out = Path(tmp) / "avatar.vrm"
            report = Path(tmp) / "report.json"

            code, stdout, _ = _run([
                "--out", str(out), "--atlas-dir", str(slices), "--report", str(report),
            ])
            self.assertEqual(code, 0)
            document = read_vrm(out)
            data = json.loads(report.read_text())

        self.assertEqual(len(document.gltf.images), 1)
        # Six of the eight expression slices fall back to the neutral face
        self.assertEqual(len(data["warnings"]), 6)
        self.assertIn("No 'ih' slice", stdout)

    def test_atlas_path_and_dir_conflict(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "avatar.vrm"
            code, _, stderr = _run([
                "--out", str(out), "--atlas", "a.png", "--atlas-dir", tmp,
            ])
            self.assertEqual(code, 1)
            self.assertFalse(out.exists())
        self.assertIn("not both", stderr)

    def test_bad_config_fails_with_report(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = Path(tmp) / "config.json"
            config.write_text(json.dumps({"unknown": 1}))
            report = Path(tmp) / "report.json"
            out = Path(tmp) / "avatar.vrm"

            code, _, stderr = _run(["--out", str(out), "--config", str(config), "--report", str(report)])

            self.assertEqual(code, 1)
            self.assertIn("unknown", stderr)
            self.assertFalse(out.exists())
            data = json.loads(report.read_text())
        self.assertFalse(data["ok"])
        self.assertIn("Failed to load config", data["error"])

    def test_unwritable_output_fails(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "missing" / "avatar.vrm"
            report = Path(tmp) / "report.json"
            code, _, _ = _run(["--out", str(out), "--report", str(report)])
            self.assertEqual(code, 1)
            data = json.loads(report.read_text())
        self.assertFalse(data["ok"])
        self.assertIn("error", data)

    def test_blend_out_requires_blender(self) -> None:
        from vrmkit import blender_bridge

        if blender_bridge.BLENDER_AVAILABLE:
            self.skipTest("running inside Blender")
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "avatar.vrm"
            code, _, stderr = _run(["--out", str(out), "--blend-out", str(Path(tmp) / "a.blend")])
            self.assertEqual(code, 1)
            self.assertFalse(out.exists())
        self.assertIn("Blender", stderr)


if __name__ == "__main__":
    unittest.main()
