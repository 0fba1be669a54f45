"""Per-colour completion statistics for a template against the live canvas."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

import numpy as np

from .bitmap import require_same_size
from .palette import PALETTE, TRANSPARENT_ID, PaletteColor, classify_image, opaque_entries

logger = logging.getLogger(__name__)

SORT_KEYS = (
    "color_id",
    "color_name",
    "premium",
    "total",
    "completed",
    "completion_ratio",
    "remaining",
)


@dataclass(frozen=True)
class StatisticsRow:
    """Template pixel count for one palette colour and how many are in place."""
    color: PaletteColor
    total: int = 0
    completed: int = 0

    @property
    def completion_ratio(self) -> float:
        # nothing required counts as done
        return self.completed / self.total if self.total > 0 else 1.0

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    def to_dict(self) -> dict:
        return {
            "color_id": self.color.id,
            "color_name": self.color.name,
            "premium": self.color.premium,
            "rgb": list(self.color.rgb.rgb),
            "total": int(self.total),
            "completed": int(self.completed),
            "completion_ratio": float(self.completion_ratio),
            "remaining": int(self.remaining),
        }


@dataclass(frozen=True)
class StatisticsSummary:
    total: int
    completed: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    @property
    def completion_ratio(self) -> float:
        return self.completed / self.total if self.total > 0 else 1.0


def compute_statistics(template: np.ndarray, live: np.ndarray) -> List[StatisticsRow]:
    """Count total and completed template pixels per palette colour.

    One row per non-transparent palette entry, in palette order. Template
    pixels with alpha 0 are skipped. Opaque template pixels whose RGB is not
    a palette colour are dropped from every row. A pixel is completed when
    its full RGBA equals the live pixel's.

    Raises:
        DimensionMismatchError: the bitmaps differ in size.
    """
    require_same_size(template, live)

    opaque = template[..., 3] != 0
    ids = classify_image(template)
    equal = np.all(template == live, axis=-1)

    counted = opaque & (ids != TRANSPARENT_ID)
    minlength = len(PALETTE)
    totals = np.bincount(ids[counted], minlength=minlength)
    completed = np.bincount(ids[counted & equal], minlength=minlength)

    unmatched = int(np.count_nonzero(opaque & (ids == TRANSPARENT_ID)))
    if unmatched:
        logger.debug("%d opaque template pixels are not palette colours", unmatched)
    logger.debug(
        "Statistics: %d transparent, %d counted, %d completed",
        int(np.count_nonzero(~opaque)), int(totals.sum()), int(completed.sum()),
    )

    return [
        StatisticsRow(color=entry, total=int(totals[entry.id]), completed=int(completed[entry.id]))
        for entry in opaque_entries()
    ]


def _sort_value(row: StatisticsRow, key: str):
    if key == "color_id":
        return row.color.id
    if key == "color_name":
        return row.color.name
    if key == "premium":
        return row.color.premium
    return getattr(row, key)


def sort_rows(
    rows: Iterable[StatisticsRow],
    key: str = "total",
    descending: bool = True,
) -> List[StatisticsRow]:
    """Stable sort by any read-model field."""
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key {key!r}, expected one of {', '.join(SORT_KEYS)}")
    return sorted(rows, key=lambda r: _sort_value(r, key), reverse=descending)


def visible_rows(rows: Iterable[StatisticsRow]) -> List[StatisticsRow]:
    """Rows for colours that actually appear in the template."""
    return [r for r in rows if r.total > 0]


def summarize(rows: Iterable[StatisticsRow]) -> StatisticsSummary:
    total = 0
    completed = 0
    for row in rows:
        total += row.total
        completed += row.completed
    return StatisticsSummary(total=total, completed=completed)


def rows_by_id(rows: Iterable[StatisticsRow]) -> Dict[int, StatisticsRow]:
    return {r.color.id: r for r in rows}
