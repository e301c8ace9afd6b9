"""
VRMKit Texture Atlas Module

The face texture is one image that stacks one rendering per expression as
horizontal slices. Head UVs address only the first slice; an expression is
selected at runtime by offsetting a material's texture transform by whole
slices.

Drawing the slices is left to artists or external tools. This module only
stacks finished slice images into an atlas and checks atlas dimensions.
"""

import io
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from .materials import Texture

# Slice order in the atlas (top to bottom). The index is the slice number.
TEXTURE_KINDS = (
    "normal",
    "aa",
    "ih",
    "ou",
    "ee",
    "oh",
    "blinkLeft",
    "blinkRight",
)

ATLAS_TEXTURE_NAME = "faceAtlas"


def slot_index(kind: str, kinds: Sequence[str] = TEXTURE_KINDS) -> int:
    try:
        return list(kinds).index(kind)
    except ValueError:
        raise ValueError(f"Unknown texture kind '{kind}'; expected one of {list(kinds)}") from None


def slot_offset(kind: str, kinds: Sequence[str] = TEXTURE_KINDS) -> Tuple[float, float]:
    """UV offset that moves the first slice onto the slice for kind."""
    return (0.0, slot_index(kind, kinds) * (1 / len(kinds)))


def remap_uvs_to_first_slot(uvs: np.ndarray, slot_count: int = len(TEXTURE_KINDS)) -> np.ndarray:
    """Flip V (images are stored top-down) and squeeze it into the first slice."""
    if slot_count < 1:
        raise ValueError(f"slot_count must be positive, got {slot_count}")
    uvs = np.array(uvs, dtype=np.float64, copy=True).reshape(-1, 2)
    uvs[:, 1] = (1 - uvs[:, 1]) / slot_count
    return uvs


# =============================================================================
# Atlas images
# =============================================================================

def find_slices(directory: Union[str, Path], kinds: Sequence[str] = TEXTURE_KINDS) -> Dict[str, Path]:
    """Map each texture kind to <directory>/<kind>.png where that file exists."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ValueError(f"Atlas slice directory not found: {directory}")
    return {kind: directory / f"{kind}.png" for kind in kinds if (directory / f"{kind}.png").is_file()}


def compose_atlas(slices: Dict[str, Union[str, Path]], kinds: Sequence[str] = TEXTURE_KINDS,
                  warnings: Optional[List[str]] = None) -> 'Image.Image':
    """Stack slice images into one atlas, slice 0 at the top.

    The first kind (the neutral face) is required; any other missing kind
    reuses it and is reported as a warning.

    Raises:
        ValueError: If the first kind is missing, a kind is unknown, or the
                    slices do not all have the same size.
    """
    unknown = sorted(set(slices) - set(kinds))
    if unknown:
        raise ValueError(f"Unknown texture kinds: {', '.join(unknown)}")
    base_kind = kinds[0]
    if base_kind not in slices:
        raise ValueError(f"Atlas requires a '{base_kind}' slice")

    images = {}
    for kind, path in slices.items():
        with Image.open(path) as image:
            images[kind] = image.convert('RGBA')
    width, height = images[base_kind].size
    for kind, image in images.items():
        if image.size != (width, height):
            raise ValueError(
                f"Slice '{kind}' is {image.size[0]}x{image.size[1]}, expected {width}x{height}"
            )

    atlas = Image.new('RGBA', (width, height * len(kinds)), (0, 0, 0, 0))
    for i, kind in enumerate(kinds):
        image = images.get(kind)
        if image is None:
            message = f"No '{kind}' slice; using '{base_kind}'"
            print(f"Warning: {message}")
            if warnings is not None:
                warnings.append(message)
            image = images[base_kind]
        atlas.paste(image, (0, i * height))
    return atlas


def atlas_texture(image: 'Image.Image', name: str = ATLAS_TEXTURE_NAME) -> Texture:
    """Encode an atlas image as an embeddable PNG texture."""
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return Texture(name=name, data=buffer.getvalue(), mime_type="image/png")


def check_atlas(texture: Texture, slot_count: int = len(TEXTURE_KINDS),
                warnings: Optional[List[str]] = None) -> Tuple[int, int]:
    """Decode texture and warn if its height does not split into whole slices.

    Returns:
        The image (width, height).
    """
    with Image.open(io.BytesIO(texture.data)) as image:
        width, height = image.size
    if height % slot_count:
        message = (
            f"Atlas '{texture.name}' height {height} is not a multiple of {slot_count}; "
            "expression slices will bleed into each other"
        )
        print(f"Warning: {message}")
        if warnings is not None:
            warnings.append(message)
    return width, height
