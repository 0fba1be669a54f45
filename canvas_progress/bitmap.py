"""Raster helpers shared by the stitcher, classifier and aggregator.

Every bitmap in the package is an ``H x W x 4`` ``uint8`` numpy array in
RGBA order.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .color import Color

logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Encoded image bytes could not be turned into a bitmap."""


class DimensionMismatchError(ValueError):
    """Two bitmaps that must be aligned pixel-for-pixel differ in size."""


def to_rgba(image: Union[np.ndarray, Image.Image]) -> np.ndarray:
    """Normalise a PIL image or a gray/RGB/RGBA array to a contiguous RGBA array."""
    if isinstance(image, Image.Image):
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return np.array(image, dtype=np.uint8)

    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported bitmap shape {arr.shape}")
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=-1)
    return np.ascontiguousarray(arr)


def decode_image(data: bytes) -> np.ndarray:
    """Decode PNG/JPEG/GIF/... bytes into an RGBA array."""
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return to_rgba(img)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageDecodeError(f"Could not decode image ({len(data)} bytes): {exc}") from exc


def encode_png(image: np.ndarray) -> bytes:
    buf = BytesIO()
    Image.fromarray(to_rgba(image)).save(buf, format="PNG")
    return buf.getvalue()


def size_of(image: np.ndarray) -> Tuple[int, int]:
    """(width, height) of a bitmap."""
    return int(image.shape[1]), int(image.shape[0])


def require_same_size(template: np.ndarray, live: np.ndarray) -> None:
    """Raise ``DimensionMismatchError`` unless both bitmaps share width and height."""
    if template.shape[:2] != live.shape[:2]:
        tw, th = size_of(template)
        lw, lh = size_of(live)
        raise DimensionMismatchError(
            f"Template bitmap is {tw}x{th} but live bitmap is {lw}x{lh}"
        )


def sample_pixel(buffer, offset: int) -> Color:
    """Extract the RGBA pixel at a linear byte offset of a flat buffer."""
    return Color.from_buffer(buffer, offset)


def pixel_coordinates(linear_index: int, width: int) -> Tuple[int, int]:
    """Map a byte offset of a flat RGBA buffer to ``(x, y)``."""
    pixel = linear_index // 4
    return pixel % width, pixel // width
