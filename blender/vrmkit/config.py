"""
VRMKit Configuration Module

Export-time settings. Character construction constants (bones, part shapes,
expression presets) are compiled in; only metadata and output options are
configurable, from CLI flags and an optional JSON file.
"""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .body_parts import AVATAR_ROOT_OFFSET
from .vrm_extension import VRMMeta


@dataclass
class ExportConfig:
    name: str = "vrmkit avatar"
    version: str = "1.0"
    authors: List[str] = field(default_factory=lambda: ["vrmkit"])
    license_url: str = "https://vrm.dev/licenses/1.0/"
    atlas_path: Optional[Path] = None
    atlas_dir: Optional[Path] = None
    root_offset: Tuple[float, float, float] = AVATAR_ROOT_OFFSET

    def meta(self) -> VRMMeta:
        return VRMMeta(
            name=self.name,
            version=self.version,
            authors=list(self.authors),
            license_url=self.license_url,
        )

    def with_overrides(self, **overrides: Any) -> "ExportConfig":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def config_from_dict(data: Dict[str, Any], base: Optional[ExportConfig] = None) -> ExportConfig:
    """Overlay a JSON-style dict on base (or the defaults).

    Raises:
        ValueError: On unknown keys or values of the wrong shape.
    """
    if not isinstance(data, dict):
        raise ValueError("config must be a JSON object")
    known = {f.name for f in fields(ExportConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    values: Dict[str, Any] = dict(data)
    if "authors" in values:
        authors = values["authors"]
        if isinstance(authors, str):
            authors = [authors]
        if not isinstance(authors, list) or not all(isinstance(a, str) for a in authors):
            raise ValueError("authors must be a string or a list of strings")
        values["authors"] = authors
    for key in ("atlas_path", "atlas_dir"):
        if values.get(key) is not None:
            values[key] = Path(values[key])
    if "root_offset" in values:
        offset = values["root_offset"]
        if not isinstance(offset, (list, tuple)) or len(offset) != 3:
            raise ValueError("root_offset must be a list of 3 numbers")
        values["root_offset"] = tuple(float(v) for v in offset)
    for key in ("name", "version", "license_url"):
        if key in values and not isinstance(values[key], str):
            raise ValueError(f"{key} must be a string")

    return replace(base or ExportConfig(), **values)


def load_config(path: Path, base: Optional[ExportConfig] = None) -> ExportConfig:
    with open(path, 'r') as f:
        data = json.load(f)
    return config_from_dict(data, base)
