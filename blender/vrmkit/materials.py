"""
Materials module for VRMKit avatar generation.

Materials are unlit (flat color, optionally textured), matching the toon look
of the generated avatar. Colors are given as sRGB hex values and converted to
linear factors on export.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union


@dataclass(frozen=True, eq=False)
class Texture:
    """An encoded image embedded in the exported document."""

    name: str
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_file(cls, path: Union[str, Path], name: Optional[str] = None) -> "Texture":
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix == ".png":
            mime_type = "image/png"
        elif suffix in (".jpg", ".jpeg"):
            mime_type = "image/jpeg"
        else:
            raise ValueError(f"Unsupported texture format: {path.suffix} (expected .png or .jpg)")
        return cls(name=name or path.stem, data=path.read_bytes(), mime_type=mime_type)


@dataclass(frozen=True, eq=False)
class Material:
    """Unlit material. Identity (not name) decides sharing on export."""

    name: str
    color: int = 0xFFFFFF
    texture: Optional[Texture] = None
    double_sided: bool = False

    def base_color_factor(self) -> Tuple[float, float, float, float]:
        r = (self.color >> 16) & 0xFF
        g = (self.color >> 8) & 0xFF
        b = self.color & 0xFF
        return (srgb_to_linear(r / 255), srgb_to_linear(g / 255), srgb_to_linear(b / 255), 1.0)


def srgb_to_linear(c: float) -> float:
    if c < 0.04045:
        return c * 0.0773993808
    return (c * 0.9478672986 + 0.0521327014) ** 2.4
