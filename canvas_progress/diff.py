"""Per-pixel difference overlay between a template and the live canvas."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

import numpy as np

from .bitmap import require_same_size
from .color import Color
from .config import DEFAULT_MARKER_COLORS
from .palette import TRANSPARENT_ID, lookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkerColors:
    """Overlay colour for each pixel state."""
    transparent: Color = Color.from_hex(DEFAULT_MARKER_COLORS["transparent"])
    unselected: Color = Color.from_hex(DEFAULT_MARKER_COLORS["unselected"])
    match: Color = Color.from_hex(DEFAULT_MARKER_COLORS["match"])
    missing: Color = Color.from_hex(DEFAULT_MARKER_COLORS["missing"])

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "MarkerColors":
        """Resolve CSS/hex strings; missing or empty keys keep the defaults."""
        values = {}
        for key in ("transparent", "unselected", "match", "missing"):
            text = (mapping.get(key) or "").strip()
            if text:
                values[key] = Color.from_css(text)
        return cls(**values)


@dataclass
class DifferenceResult:
    overlay: np.ndarray
    # (x, y) of every missing pixel in row-major order
    missing: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def missing_count(self) -> int:
        return len(self.missing)


def classify_difference(
    template: np.ndarray,
    live: np.ndarray,
    selected_color_id: Optional[int] = None,
    markers: Optional[MarkerColors] = None,
) -> DifferenceResult:
    """Tag every template pixel as transparent, unselected, match or missing.

    Priority, highest first:
      1. template alpha is 0                      -> transparent
      2. a colour filter is set and the template
         pixel's RGB is not that colour            -> unselected
      3. template RGBA == live RGBA                -> match
      4. otherwise                                 -> missing (listed)
    """
    require_same_size(template, live)
    markers = markers or MarkerColors()

    transparent = template[..., 3] == 0
    if selected_color_id is not None:
        entry = lookup(selected_color_id)
        if entry is None or entry.id == TRANSPARENT_ID:
            raise ValueError(f"Unknown palette colour id {selected_color_id}")
        target = np.array(entry.rgb.rgb, dtype=np.uint8)
        unselected = ~np.all(template[..., :3] == target, axis=-1) & ~transparent
    else:
        unselected = np.zeros(transparent.shape, dtype=bool)

    considered = ~transparent & ~unselected
    equal = np.all(template == live, axis=-1)
    matched = considered & equal
    missing = considered & ~equal

    overlay = np.empty(template.shape[:2] + (4,), dtype=np.uint8)
    overlay[transparent] = markers.transparent
    overlay[unselected] = markers.unselected
    overlay[matched] = markers.match
    overlay[missing] = markers.missing

    ys, xs = np.nonzero(missing)
    missing_list = [(int(x), int(y)) for y, x in zip(ys, xs)]
    logger.debug(
        "Difference: %d transparent, %d unselected, %d matched, %d missing",
        int(transparent.sum()), int(unselected.sum()), int(matched.sum()), len(missing_list),
    )
    return DifferenceResult(overlay=overlay, missing=missing_list)
