"""RGBA colour value with exact equality."""

from __future__ import annotations

import re
from typing import NamedTuple, Sequence, Tuple

import numpy as np

_RGB_FUNC = re.compile(
    r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*(\d+(?:\.\d+)?)\s*)?\)$"
)
_HEX = re.compile(r"^#?([0-9A-Fa-f]{3,8})$")


def _clamp(value: int) -> int:
    return max(0, min(255, int(value)))


class Color(NamedTuple):
    """An 8-bit RGBA colour.

    Equality is component-wise on all four channels, there is no tolerance.
    """
    r: int
    g: int
    b: int
    a: int = 255

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @property
    def is_transparent(self) -> bool:
        return self.a == 0

    def to_hex(self) -> str:
        """Hex string in the form ``#rrggbbaa``."""
        return "#" + "".join(f"{_clamp(c):02x}" for c in self)

    def as_array(self) -> np.ndarray:
        return np.array(self, dtype=np.uint8)

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "Color":
        if len(values) == 3:
            return cls(int(values[0]), int(values[1]), int(values[2]))
        if len(values) == 4:
            return cls(int(values[0]), int(values[1]), int(values[2]), int(values[3]))
        raise ValueError(
            f"Can't create color from {list(values)!r} with length {len(values)}"
        )

    @classmethod
    def from_hex(cls, text: str) -> "Color":
        """Parse ``#rgb``, ``#rgba``, ``#rrggbb`` or ``#rrggbbaa``."""
        match = _HEX.match(text.strip())
        if not match:
            raise ValueError(f"Not a hex colour: {text!r}")
        digits = match.group(1)
        if len(digits) in (3, 4):
            digits = "".join(c + c for c in digits)
        if len(digits) not in (6, 8):
            raise ValueError(f"Not a hex colour: {text!r}")
        channels = [int(digits[i:i + 2], 16) for i in range(0, len(digits), 2)]
        return cls.from_sequence(channels)

    @classmethod
    def from_css(cls, text: str) -> "Color":
        """Parse a CSS ``rgb()``/``rgba()`` value or a hex colour.

        The alpha of ``rgba()`` is the CSS 0..1 float.
        """
        text = text.strip()
        match = _RGB_FUNC.match(text)
        if match:
            r, g, b, a = match.groups()
            alpha = float(a) if a is not None else 1.0
            return cls(_clamp(r), _clamp(g), _clamp(b), _clamp(round(alpha * 255)))
        return cls.from_hex(text)

    @classmethod
    def from_buffer(cls, buffer, offset: int) -> "Color":
        """Read the pixel starting at a linear byte offset of a flat RGBA buffer."""
        if isinstance(buffer, np.ndarray):
            data = buffer.reshape(-1)
        else:
            data = memoryview(buffer).cast("B")
        if offset < 0 or offset + 4 > len(data):
            raise IndexError(f"Offset {offset} outside buffer of {len(data)} bytes")
        return cls(int(data[offset]), int(data[offset + 1]),
                   int(data[offset + 2]), int(data[offset + 3]))
