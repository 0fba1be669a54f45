"""Public interface for the canvas template progress tracker."""

from __future__ import annotations

from .bitmap import DimensionMismatchError, ImageDecodeError, sample_pixel
from .color import Color
from .diff import DifferenceResult, MarkerColors, classify_difference
from .palette import PALETTE, PaletteColor, classify, lookup
from .refresh import RefreshController, RefreshTrigger
from .statistics import StatisticsRow, compute_statistics, sort_rows, summarize
from .stitcher import Placement, stitch, tile_range
from .template import Template, TemplateCollection, TemplateDecodeError, TemplateImageError
from .tiles import CancelToken, FetchCancelled, TileFetcher

__all__ = [
    "PALETTE",
    "CancelToken",
    "Color",
    "DifferenceResult",
    "DimensionMismatchError",
    "FetchCancelled",
    "ImageDecodeError",
    "MarkerColors",
    "PaletteColor",
    "Placement",
    "RefreshController",
    "RefreshTrigger",
    "StatisticsRow",
    "Template",
    "TemplateCollection",
    "TemplateDecodeError",
    "TemplateImageError",
    "TileFetcher",
    "classify",
    "classify_difference",
    "compute_statistics",
    "lookup",
    "sample_pixel",
    "sort_rows",
    "stitch",
    "summarize",
    "tile_range",
]
