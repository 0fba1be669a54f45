"""Template records: placement, source image, share tokens and collections.

A template is a reference pixel-art image anchored at a tile plus a pixel
offset inside that tile. It owns two bitmaps once loaded: the template image
itself and the stitched live image of the same size.

Share tokens are URL-safe base64 of the JSON record (bitmaps never included)
so a template can travel in a URL fragment.
"""

from __future__ import annotations

import base64
import binascii
import http.client
import json
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np

from .bitmap import ImageDecodeError, decode_image, require_same_size, to_rgba
from .stitcher import Placement

logger = logging.getLogger(__name__)

IMAGE_TIMEOUT = 60

# current JSON keys -> keys of tokens written by the old web client
LEGACY_KEYS = {
    "tileOriginX": "tlX",
    "tileOriginY": "tlY",
    "pixelOffsetX": "pxX",
    "pixelOffsetY": "pxY",
    "sourceImageUrl": "imageDataUrl",
}


class TemplateDecodeError(ValueError):
    """A share token or stored record is not a valid template."""


class TemplateImageError(ImageDecodeError):
    """The template's source image could not be read or decoded."""


def read_image_source(url: str) -> bytes:
    """Raw bytes behind a ``data:`` URL, an ``http(s)://`` URL or a file path."""
    if url.startswith("data:"):
        header, _, payload = url.partition(",")
        if header.endswith(";base64"):
            return base64.b64decode(payload)
        return urllib.parse.unquote_to_bytes(payload)
    if url.startswith(("http://", "https://")):
        with urllib.request.urlopen(url, timeout=IMAGE_TIMEOUT) as resp:
            return resp.read()
    if url.startswith("file://"):
        url = urllib.request.url2pathname(urllib.parse.urlparse(url).path)
    return Path(url).read_bytes()


@dataclass
class Template:
    name: str
    tile_x: int
    tile_y: int
    pixel_x: int
    pixel_y: int
    image_url: str

    template_image: Optional[np.ndarray] = field(default=None, repr=False, compare=False)
    live_image: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        for attr in ("tile_x", "tile_y", "pixel_x", "pixel_y"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{attr} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{attr} must be non-negative, got {value}")

    # ---- bitmaps ----

    @property
    def width(self) -> int:
        return -1 if self.template_image is None else int(self.template_image.shape[1])

    @property
    def height(self) -> int:
        return -1 if self.template_image is None else int(self.template_image.shape[0])

    @property
    def is_loaded(self) -> bool:
        return self.template_image is not None

    def placement(self) -> Placement:
        if self.template_image is None:
            raise TemplateImageError(f"Template {self.name!r} has no loaded image")
        return Placement(
            tile_x=self.tile_x,
            tile_y=self.tile_y,
            pixel_x=self.pixel_x,
            pixel_y=self.pixel_y,
            width=self.width,
            height=self.height,
        )

    def load_template_image(self, loader: Optional[Callable[[str], bytes]] = None) -> np.ndarray:
        """Read and decode the source image; on failure the template keeps no bitmap."""
        loader = loader or read_image_source
        self.template_image = None
        try:
            data = loader(self.image_url)
            image = decode_image(data)
        except (OSError, ValueError, http.client.HTTPException, ImageDecodeError) as exc:
            raise TemplateImageError(
                f"Could not load image for template {self.name!r}: {exc}"
            ) from exc
        self.template_image = image
        logger.info("Template %r image loaded: %dx%d", self.name, self.width, self.height)
        return image

    def set_template_image(self, image) -> None:
        self.template_image = to_rgba(image)

    def set_live_image(self, image: np.ndarray) -> None:
        """Replace the live bitmap; it must match the template image size."""
        if self.template_image is None:
            raise TemplateImageError(f"Template {self.name!r} has no loaded image")
        image = to_rgba(image)
        require_same_size(self.template_image, image)
        self.live_image = image

    # ---- records and tokens ----

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "tileOriginX": self.tile_x,
            "tileOriginY": self.tile_y,
            "pixelOffsetX": self.pixel_x,
            "pixelOffsetY": self.pixel_y,
            "sourceImageUrl": self.image_url,
        }

    @classmethod
    def from_record(cls, data) -> "Template":
        if not isinstance(data, dict):
            raise TemplateDecodeError(f"Template record must be an object, got {type(data).__name__}")

        def pick(key: str):
            if key in data:
                return data[key]
            legacy = LEGACY_KEYS.get(key)
            if legacy and legacy in data:
                return data[legacy]
            raise TemplateDecodeError(f"Template record is missing {key!r}")

        name = pick("name")
        url = pick("sourceImageUrl")
        if not isinstance(name, str) or not isinstance(url, str):
            raise TemplateDecodeError("Template name and sourceImageUrl must be strings")
        try:
            return cls(
                name=name,
                tile_x=pick("tileOriginX"),
                tile_y=pick("tileOriginY"),
                pixel_x=pick("pixelOffsetX"),
                pixel_y=pick("pixelOffsetY"),
                image_url=url,
            )
        except TemplateDecodeError:
            raise
        except ValueError as exc:
            raise TemplateDecodeError(str(exc)) from exc

    def serialize(self) -> str:
        text = json.dumps(self.to_record(), ensure_ascii=False, separators=(",", ":"))
        return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")

    @classmethod
    def deserialize(cls, token: str) -> "Template":
        """Inverse of ``serialize``; also reads standard-alphabet/unpadded tokens."""
        if not isinstance(token, str):
            raise TemplateDecodeError("Template token must be a string")
        cleaned = token.strip().lstrip("#")
        if not cleaned:
            raise TemplateDecodeError("Template token is empty")
        cleaned = cleaned.replace("+", "-").replace("/", "_")
        cleaned += "=" * (-len(cleaned) % 4)
        try:
            raw = base64.b64decode(cleaned.encode("ascii"), altchars=b"-_", validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
            raise TemplateDecodeError(f"Malformed template token: {exc}") from exc
        return cls.from_record(data)


class TemplateCollection:
    """Ordered list of templates; the storage medium is up to the caller."""

    def __init__(self, templates: Optional[List[Template]] = None):
        self._templates: List[Template] = list(templates or [])

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self):
        return iter(list(self._templates))

    def templates(self) -> List[Template]:
        return list(self._templates)

    def index_of(self, template: Template) -> int:
        for i, t in enumerate(self._templates):
            if t is template:
                return i
        return -1

    def find_index_by_coordinates(self, tile_x: int, tile_y: int, pixel_x: int, pixel_y: int) -> int:
        for i, t in enumerate(self._templates):
            if (t.tile_x, t.tile_y, t.pixel_x, t.pixel_y) == (tile_x, tile_y, pixel_x, pixel_y):
                return i
        return -1

    def add(self, template: Template) -> int:
        """Append, or replace the template anchored at the same coordinates."""
        existing = self.find_index_by_coordinates(
            template.tile_x, template.tile_y, template.pixel_x, template.pixel_y
        )
        if existing != -1:
            self._templates[existing] = template
            logger.debug("Replaced template at index %d: %s", existing, template.name)
            return existing
        self._templates.append(template)
        logger.debug("Added template: %s", template.name)
        return len(self._templates) - 1

    def remove(self, index: int) -> Template:
        if not 0 <= index < len(self._templates):
            raise IndexError(f"No template at index {index}")
        return self._templates.pop(index)

    def dumps(self) -> str:
        return json.dumps([t.to_record() for t in self._templates], ensure_ascii=False)

    @classmethod
    def loads(cls, text: str) -> "TemplateCollection":
        try:
            records = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TemplateDecodeError(f"Malformed template collection: {exc}") from exc
        if not isinstance(records, list):
            raise TemplateDecodeError("Template collection must be a JSON list")
        return cls([Template.from_record(r) for r in records])
