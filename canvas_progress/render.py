"""Inspection output: enlarged overlays, ping markers and a text table.

The difference overlay is 1 image pixel per canvas pixel, which is too small
to review. ``upscale`` blows it up with nearest-neighbour sampling and
``draw_pings`` rings every missing pixel so stragglers are easy to spot.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from .statistics import StatisticsRow, StatisticsSummary

logger = logging.getLogger(__name__)

# Ping ring colour (RGBA) and radius in output pixels
PING_COLOR = (255, 0, 0, 255)
PING_RADIUS = 12


def upscale(image: np.ndarray, scale: int) -> np.ndarray:
    """Nearest-neighbour enlarge by an integer factor."""
    if scale < 1:
        raise ValueError(f"scale must be >= 1, got {scale}")
    if scale == 1:
        return image.copy()
    h, w = image.shape[:2]
    return cv2.resize(image, (w * scale, h * scale), interpolation=cv2.INTER_NEAREST)


def draw_pings(
    image: np.ndarray,
    missing: Sequence[Tuple[int, int]],
    scale: int = 1,
    color: Tuple[int, int, int, int] = PING_COLOR,
    radius: int = PING_RADIUS,
    thickness: int = 2,
) -> np.ndarray:
    """Draw a ring centred on every listed pixel of an image upscaled by ``scale``.

    Args:
        image: RGBA image, already enlarged by ``scale``.
        missing: ``(x, y)`` canvas pixel coordinates.
        scale: Enlargement factor of ``image`` relative to canvas pixels.

    Returns:
        A copy of ``image`` with the rings drawn.
    """
    out = np.ascontiguousarray(image.copy())
    for x, y in missing:
        cx = int(round((x + 0.5) * scale))
        cy = int(round((y + 0.5) * scale))
        cv2.circle(out, (cx, cy), radius, color, thickness, cv2.LINE_AA)
    return out


def render_overlay(
    overlay: np.ndarray,
    missing: Optional[Sequence[Tuple[int, int]]] = None,
    scale: int = 8,
) -> np.ndarray:
    big = upscale(overlay, scale)
    if missing:
        big = draw_pings(big, missing, scale=scale)
    return big


def save_image(image: np.ndarray, output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image)).save(output_path)
    logger.info("Image saved: %s", output_path)
    return output_path


def format_statistics_table(
    rows: Iterable[StatisticsRow],
    summary: Optional[StatisticsSummary] = None,
) -> str:
    header = f"{'id':>3}  {'colour':<18} {'total':>9} {'done':>9} {'left':>9} {'%':>8}"
    lines: List[str] = [header, "-" * len(header)]
    for row in rows:
        name = row.color.name + (" *" if row.color.premium else "")
        lines.append(
            f"{row.color.id:>3}  {name:<18} {row.total:>9,} {row.completed:>9,} "
            f"{row.remaining:>9,} {row.completion_ratio * 100:>7.2f}%"
        )
    if summary is not None:
        lines.append("-" * len(header))
        lines.append(
            f"{'':>3}  {'all':<18} {summary.total:>9,} {summary.completed:>9,} "
            f"{summary.remaining:>9,} {summary.completion_ratio * 100:>7.2f}%"
        )
    return "\n".join(lines)
