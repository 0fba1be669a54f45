"""The canvas colour palette and exact-match classification.

The table order is canonical: classification returns the first entry whose
RGB matches, and statistics rows are emitted in this order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .color import Color

# id reserved for "transparent / no palette colour"
TRANSPARENT_ID = 0


@dataclass(frozen=True)
class PaletteColor:
    id: int
    name: str
    premium: bool
    rgb: Color


def _entry(id_: int, premium: bool, name: str, rgb: Tuple[int, int, int]) -> PaletteColor:
    return PaletteColor(id=id_, name=name, premium=premium, rgb=Color(*rgb))


PALETTE: Tuple[PaletteColor, ...] = (
    _entry(0, False, "Transparent", (0, 0, 0)),
    _entry(1, False, "Black", (0, 0, 0)),
    _entry(2, False, "Dark Gray", (60, 60, 60)),
    _entry(3, False, "Gray", (120, 120, 120)),
    _entry(4, False, "Light Gray", (210, 210, 210)),
    _entry(5, False, "White", (255, 255, 255)),
    _entry(6, False, "Deep Red", (96, 0, 24)),
    _entry(7, False, "Red", (237, 28, 36)),
    _entry(8, False, "Orange", (255, 127, 39)),
    _entry(9, False, "Gold", (246, 170, 9)),
    _entry(10, False, "Yellow", (249, 221, 59)),
    _entry(11, False, "Light Yellow", (255, 250, 188)),
    _entry(12, False, "Dark Green", (14, 185, 104)),
    _entry(13, False, "Green", (19, 230, 123)),
    _entry(14, False, "Light Green", (135, 255, 94)),
    _entry(15, False, "Dark Teal", (12, 129, 110)),
    _entry(16, False, "Teal", (16, 174, 166)),
    _entry(17, False, "Light Teal", (19, 225, 190)),
    _entry(18, False, "Dark Blue", (40, 80, 158)),
    _entry(19, False, "Blue", (64, 147, 228)),
    _entry(20, False, "Cyan", (96, 247, 242)),
    _entry(21, False, "Indigo", (107, 80, 246)),
    _entry(22, False, "Light Indigo", (153, 177, 251)),
    _entry(23, False, "Dark Purple", (120, 12, 153)),
    _entry(24, False, "Purple", (170, 56, 185)),
    _entry(25, False, "Light Purple", (224, 159, 249)),
    _entry(26, False, "Dark Pink", (203, 0, 122)),
    _entry(27, False, "Pink", (236, 31, 128)),
    _entry(28, False, "Light Pink", (243, 141, 169)),
    _entry(29, False, "Dark Brown", (104, 70, 52)),
    _entry(30, False, "Brown", (149, 104, 42)),
    _entry(31, False, "Beige", (248, 178, 119)),
    _entry(32, True, "Medium Gray", (170, 170, 170)),
    _entry(33, True, "Dark Red", (165, 14, 30)),
    _entry(34, True, "Light Red", (250, 128, 114)),
    _entry(35, True, "Dark Orange", (228, 92, 26)),
    _entry(36, True, "Light Tan", (214, 181, 148)),
    _entry(37, True, "Dark Goldenrod", (156, 132, 49)),
    _entry(38, True, "Goldenrod", (197, 173, 49)),
    _entry(39, True, "Light Goldenrod", (232, 212, 95)),
    _entry(40, True, "Dark Olive", (74, 107, 58)),
    _entry(41, True, "Olive", (90, 148, 74)),
    _entry(42, True, "Light Olive", (132, 197, 115)),
    _entry(43, True, "Dark Cyan", (15, 121, 159)),
    _entry(44, True, "Light Cyan", (187, 250, 242)),
    _entry(45, True, "Light Blue", (125, 199, 255)),
    _entry(46, True, "Dark Indigo", (77, 49, 184)),
    _entry(47, True, "Dark Slate Blue", (74, 66, 132)),
    _entry(48, True, "Slate Blue", (122, 113, 196)),
    _entry(49, True, "Light Slate Blue", (181, 174, 241)),
    _entry(50, True, "Light Brown", (219, 164, 99)),
    _entry(51, True, "Dark Beige", (209, 128, 81)),
    _entry(52, True, "Light Beige", (255, 197, 165)),
    _entry(53, True, "Dark Peach", (155, 82, 73)),
    _entry(54, True, "Peach", (209, 128, 120)),
    _entry(55, True, "Light Peach", (250, 182, 164)),
    _entry(56, True, "Dark Tan", (123, 99, 82)),
    _entry(57, True, "Tan", (156, 132, 107)),
    _entry(58, True, "Dark Slate", (51, 57, 65)),
    _entry(59, True, "Slate", (109, 117, 141)),
    _entry(60, True, "Light Slate", (179, 185, 209)),
    _entry(61, True, "Dark Stone", (109, 100, 63)),
    _entry(62, True, "Stone", (148, 140, 107)),
    _entry(63, True, "Light Stone", (205, 197, 158)),
)

PALETTE_BY_ID: Dict[int, PaletteColor] = {c.id: c for c in PALETTE}


def _build_rgb_index() -> Dict[Tuple[int, int, int], int]:
    index: Dict[Tuple[int, int, int], int] = {}
    for entry in PALETTE:
        if entry.id == TRANSPARENT_ID:
            continue
        # first entry in table order wins
        index.setdefault(entry.rgb.rgb, entry.id)
    return index


_RGB_TO_ID = _build_rgb_index()


def opaque_entries() -> List[PaletteColor]:
    """All entries except the transparent sentinel, in table order."""
    return [c for c in PALETTE if c.id != TRANSPARENT_ID]


def lookup(color_id: int) -> Optional[PaletteColor]:
    return PALETTE_BY_ID.get(color_id)


def classify(color: Color) -> int:
    """Palette id whose RGB exactly equals the colour's, alpha ignored.

    Returns ``TRANSPARENT_ID`` (0) when no entry matches.
    """
    return _RGB_TO_ID.get((int(color[0]), int(color[1]), int(color[2])), TRANSPARENT_ID)


def _pack_rgb(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.uint32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def classify_image(rgba: np.ndarray) -> np.ndarray:
    """Classify every pixel of a bitmap; returns an ``H x W`` array of ids."""
    packed = _pack_rgb(rgba)
    uniques, inverse = np.unique(packed.reshape(-1), return_inverse=True)
    ids = np.array(
        [_RGB_TO_ID.get((int(v) >> 16, (int(v) >> 8) & 0xFF, int(v) & 0xFF), TRANSPARENT_ID)
         for v in uniques],
        dtype=np.int32,
    )
    return ids[inverse.reshape(-1)].reshape(packed.shape)
