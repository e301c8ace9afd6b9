"""Main entry point for VRMKit.

This module provides the main() function that serves as the CLI entry point.
It parses command-line arguments, builds the avatar, exports it as VRM and
writes an optional run report.
"""

import argparse
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import pygltflib

from .atlas import atlas_texture, check_atlas, compose_atlas, find_slices
from .body_parts import build_avatar
from .composer import SceneNode, compose
from .config import ExportConfig, load_config
from .export import GLTFExporter, export_glb
from .materials import Texture
from .metrics import compute_scene_metrics
from .report import write_report
from .vrm_extension import VRMExtensionWriter
from .vrm_reader import read_vrm

from . import blender_bridge


@dataclass
class BuildResult:
    gltf: pygltflib.GLTF2
    scene: SceneNode
    metrics: Dict[str, Any]
    warnings: List[str]
    output_path: Path


def load_atlas(config: ExportConfig, warnings: Optional[List[str]] = None) -> Optional[Texture]:
    """Load the configured atlas image, or stack one from a slice directory."""
    if config.atlas_path and config.atlas_dir:
        raise ValueError("Set either atlas_path or atlas_dir, not both")
    if config.atlas_path:
        atlas = Texture.from_file(config.atlas_path)
    elif config.atlas_dir:
        atlas = atlas_texture(compose_atlas(find_slices(config.atlas_dir), warnings=warnings))
    else:
        return None
    check_atlas(atlas, warnings=warnings)
    return atlas


def build_scene(config: ExportConfig, warnings: Optional[List[str]] = None):
    """Build and compose the avatar described by config."""
    avatar = build_avatar(atlas=load_atlas(config, warnings))
    scene = compose(avatar.parts, avatar.skeleton, root_offset=config.root_offset)
    return avatar, scene


def build_vrm(config: ExportConfig, output_path: Path, verify: bool = False) -> BuildResult:
    """Build the avatar, export it to output_path and optionally read it back."""
    warnings: List[str] = []
    _, scene = build_scene(config, warnings)

    exporter = GLTFExporter()
    writer = exporter.register(VRMExtensionWriter(meta=config.meta()))
    gltf = export_glb(exporter, scene, output_path)
    warnings.extend(writer.warnings)

    if verify:
        document = read_vrm(output_path)
        missing = [name for name in writer.bone_names if name not in document.human_bones]
        if missing:
            message = f"exported rig is missing bones: {', '.join(missing)}"
            print(f"Warning: {message}")
            warnings.append(message)

    return BuildResult(
        gltf=gltf,
        scene=scene,
        metrics=compute_scene_metrics(scene),
        warnings=warnings,
        output_path=Path(output_path),
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a rigged humanoid avatar as VRM 1.0")
    parser.add_argument("--out", required=True, type=Path,
                        help="Output .vrm (binary glTF) path")
    parser.add_argument("--config", type=Path,
                        help="JSON file with export settings")
    parser.add_argument("--atlas", type=Path,
                        help="Face texture atlas image (PNG/JPEG) embedded for the head")
    parser.add_argument("--atlas-dir", type=Path,
                        help="Directory of per-expression slices (normal.png, aa.png, ...) stacked into the atlas")
    parser.add_argument("--name", help="Avatar display name")
    parser.add_argument("--author", action="append", dest="authors",
                        help="Author name (repeatable)")
    parser.add_argument("--report", type=Path,
                        help="Path for report JSON output")
    parser.add_argument("--verify", action="store_true",
                        help="Re-read the written file and validate its VRM extension")
    parser.add_argument("--blend-out", type=Path,
                        help="Also save a .blend file (requires running inside Blender)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    start = time.monotonic()

    def report(ok: bool, **kwargs) -> None:
        if args.report:
            duration_ms = int((time.monotonic() - start) * 1000)
            write_report(args.report, ok=ok, duration_ms=duration_ms, **kwargs)

    try:
        config = load_config(args.config) if args.config else ExportConfig()
        config = config.with_overrides(name=args.name, authors=args.authors, atlas_path=args.atlas,
                                      atlas_dir=args.atlas_dir)
    except Exception as e:
        report(False, error=f"Failed to load config: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.blend_out and not blender_bridge.BLENDER_AVAILABLE:
        report(False, error="--blend-out requires running inside Blender")
        print("Error: --blend-out requires running inside Blender", file=sys.stderr)
        return 1

    try:
        result = build_vrm(config, args.out, verify=args.verify)
        if args.blend_out:
            blender_bridge.build_blender_scene(result.scene)
            blender_bridge.save_blend(args.blend_out)
    except Exception as e:
        report(False, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    report(True, metrics=result.metrics, warnings=result.warnings, output_path=str(result.output_path))
    print(f"Wrote {result.output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
