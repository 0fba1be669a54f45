"""Stitch remote tiles into a live bitmap aligned with a template.

Steps:
  1. work out the rectangle of tiles covering the template window
  2. fetch every tile concurrently and wait for all of them
  3. paste each tile into a composite at its grid-relative position
  4. crop the composite to the template's exact pixel window
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .tiles import CancelToken, TileFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """Where a ``width x height`` window sits in tile space."""
    tile_x: int
    tile_y: int
    pixel_x: int
    pixel_y: int
    width: int
    height: int


@dataclass(frozen=True)
class TileRange:
    origin_x: int
    origin_y: int
    count_x: int
    count_y: int

    @property
    def end_x(self) -> int:
        return self.origin_x + self.count_x - 1

    @property
    def end_y(self) -> int:
        return self.origin_y + self.count_y - 1

    def tiles(self) -> List[Tuple[int, int]]:
        """Tile coordinates in row-major order."""
        return [
            (self.origin_x + dx, self.origin_y + dy)
            for dy in range(self.count_y)
            for dx in range(self.count_x)
        ]

    def composite_size(self, tile_size: int) -> Tuple[int, int]:
        return self.count_x * tile_size, self.count_y * tile_size


def _validate_placement(p: Placement, tile_size: int) -> None:
    if p.width <= 0 or p.height <= 0:
        raise ValueError(f"Template size must be positive, got {p.width}x{p.height}")
    if p.tile_x < 0 or p.tile_y < 0:
        raise ValueError(f"Tile origin must be non-negative, got ({p.tile_x}, {p.tile_y})")
    for name, offset in (("pixel_x", p.pixel_x), ("pixel_y", p.pixel_y)):
        if not 0 <= offset < tile_size:
            raise ValueError(f"{name} must be in [0, {tile_size}), got {offset}")


def tile_range(placement: Placement, tile_size: int) -> TileRange:
    """Inclusive rectangle of tiles covering the placement's pixel window."""
    _validate_placement(placement, tile_size)
    end_x = placement.tile_x + (placement.pixel_x + placement.width - 1) // tile_size
    end_y = placement.tile_y + (placement.pixel_y + placement.height - 1) // tile_size
    return TileRange(
        origin_x=placement.tile_x,
        origin_y=placement.tile_y,
        count_x=end_x - placement.tile_x + 1,
        count_y=end_y - placement.tile_y + 1,
    )


def composite_tiles(
    tiles: Dict[Tuple[int, int], np.ndarray],
    rng: TileRange,
    tile_size: int,
) -> np.ndarray:
    """Paste tiles into one transparent canvas; tiles never overlap."""
    width, height = rng.composite_size(tile_size)
    canvas = np.zeros((height, width, 4), dtype=np.uint8)
    for (tx, ty), tile in tiles.items():
        x0 = (tx - rng.origin_x) * tile_size
        y0 = (ty - rng.origin_y) * tile_size
        h = min(tile.shape[0], tile_size)
        w = min(tile.shape[1], tile_size)
        canvas[y0:y0 + h, x0:x0 + w] = tile[:h, :w, :4]
    return canvas


def crop(composite: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
    out = composite[y:y + height, x:x + width]
    if out.shape[:2] != (height, width):
        raise ValueError(
            f"Crop {width}x{height}+{x}+{y} exceeds composite "
            f"{composite.shape[1]}x{composite.shape[0]}"
        )
    return out.copy()


async def fetch_tiles(
    rng: TileRange,
    fetcher: TileFetcher,
    token: CancelToken,
) -> Dict[Tuple[int, int], np.ndarray]:
    """Fetch every tile of the range concurrently and wait for all of them."""
    coords = rng.tiles()
    tasks = [asyncio.ensure_future(fetcher.fetch(x, y, token)) for x, y in coords]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        # one fetch gave up (cancellation): stop the sibling retry loops too
        token.cancel()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return dict(zip(coords, results))


async def stitch(
    placement: Placement,
    fetcher: TileFetcher,
    token: Optional[CancelToken] = None,
) -> np.ndarray:
    """Build the live bitmap for a placement, shape ``height x width x 4``."""
    tile_size = fetcher.config.tile_size
    rng = tile_range(placement, tile_size)
    token = token or CancelToken()
    logger.info(
        "Stitching %dx%d tiles (%d..%d, %d..%d) for %dx%d window",
        rng.count_x, rng.count_y, rng.origin_x, rng.end_x, rng.origin_y, rng.end_y,
        placement.width, placement.height,
    )

    tiles = await fetch_tiles(rng, fetcher, token)
    token.raise_if_cancelled()

    composite = composite_tiles(tiles, rng, tile_size)
    live = crop(composite, placement.pixel_x, placement.pixel_y,
                placement.width, placement.height)
    logger.debug("Stitched live bitmap %dx%d", live.shape[1], live.shape[0])
    return live
