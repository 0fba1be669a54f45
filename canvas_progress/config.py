"""Tracker configuration: tile server constants, fetch settings, marker colours."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# ---------------------------------------------------------------------------
# Remote canvas deployment
# ---------------------------------------------------------------------------
TILE_HOST = "https://backend.wplace.live"
TILE_PATH = "/files/s0/tiles/{x}/{y}.png"

# Tiles are square
TILE_SIZE = 1000

# Seconds to wait after every candidate URL for a tile has failed
COOLDOWN_SECONDS = 10.0

# Per-request socket timeout
REQUEST_TIMEOUT = 30.0

# Seconds between automatic live image refreshes
AUTO_UPDATE_INTERVAL = 60.0


# ---------------------------------------------------------------------------
# Difference overlay marker colours (#rrggbbaa)
# ---------------------------------------------------------------------------
DEFAULT_MARKER_COLORS: Dict[str, str] = {
    "transparent": "#00000000",
    "unselected": "#d2d2d2ff",
    "match": "#00c800ff",
    "missing": "#ff0000ff",
}

MARKER_ENV_VARS: Dict[str, str] = {
    "transparent": "CANVAS_MARKER_TRANSPARENT",
    "unselected": "CANVAS_MARKER_UNSELECTED",
    "match": "CANVAS_MARKER_MATCH",
    "missing": "CANVAS_MARKER_MISSING",
}


@dataclass
class FetchConfig:
    """Where and how tiles are fetched."""
    host: str = TILE_HOST
    tile_size: int = TILE_SIZE
    cooldown: float = COOLDOWN_SECONDS
    timeout: float = REQUEST_TIMEOUT
    cache_bust: bool = True
    # relay URL templates tried after the direct URL, "{url}" is replaced
    # by the quoted direct tile URL
    proxies: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {self.tile_size}")
        if self.cooldown < 0:
            raise ValueError(f"cooldown must be >= 0, got {self.cooldown}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        self.host = self.host.rstrip("/")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "FetchConfig":
        env = os.environ if environ is None else environ
        proxies = [
            p.strip() for p in env.get("CANVAS_PROXIES", "").split(",") if p.strip()
        ]
        return cls(
            host=env.get("CANVAS_TILE_HOST", TILE_HOST),
            tile_size=int(env.get("CANVAS_TILE_SIZE", TILE_SIZE)),
            cooldown=float(env.get("CANVAS_COOLDOWN", COOLDOWN_SECONDS)),
            timeout=float(env.get("CANVAS_TIMEOUT", REQUEST_TIMEOUT)),
            proxies=proxies,
        )


def marker_colors_from_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Return marker colour strings, environment values over the defaults."""
    env = os.environ if environ is None else environ
    colors = dict(DEFAULT_MARKER_COLORS)
    for key, var in MARKER_ENV_VARS.items():
        value = env.get(var, "").strip()
        if value:
            colors[key] = value
    return colors
