"""Fetch single canvas tiles, retrying forever with a cooldown.

The upstream tile server is rate limited and flaky, and one template can
need dozens of tiles. A failed tile is therefore never reported to the
caller: every candidate URL (direct, then each relay proxy) is tried, then
the fetcher waits out the cooldown and starts over. The only way out of the
loop other than success is a ``CancelToken``.

Usage::

    fetcher = TileFetcher(FetchConfig())
    tile = await fetcher.fetch(1143, 745)
"""

from __future__ import annotations

import asyncio
import http.client
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Awaitable, Callable, List, Optional, Tuple

import numpy as np

from .bitmap import ImageDecodeError, decode_image
from .config import TILE_PATH, FetchConfig

logger = logging.getLogger(__name__)

USER_AGENT = "canvas-progress/0.1"

# (url, timeout) -> (http status, body)
Transport = Callable[[str, float], Tuple[int, bytes]]
# (seconds, token) -> awaitable
Sleeper = Callable[[float, "CancelToken"], Awaitable[None]]


class FetchCancelled(Exception):
    """Raised inside a fetch or stitch whose ``CancelToken`` was cancelled."""


class CancelToken:
    """Cooperative cancellation signal shared by every fetch of one stitch."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FetchCancelled("fetch cancelled")

    async def wait(self) -> None:
        await self._event.wait()


def tile_url(x: int, y: int, config: FetchConfig, cache_buster: Optional[int] = None) -> str:
    url = config.host + TILE_PATH.format(x=x, y=y)
    if cache_buster is not None:
        url += f"?t={cache_buster}"
    return url


def candidate_urls(x: int, y: int, config: FetchConfig,
                   cache_buster: Optional[int] = None) -> List[str]:
    """Direct tile URL followed by the same request routed through each proxy."""
    direct = tile_url(x, y, config, cache_buster)
    urls = [direct]
    for template in config.proxies:
        urls.append(template.replace("{url}", urllib.parse.quote(direct, safe="")))
    return urls


def urllib_transport(url: str, timeout: float) -> Tuple[int, bytes]:
    """Blocking GET. HTTP error statuses are returned, not raised."""
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as e:
        return e.code, b""


async def cooldown_sleep(seconds: float, token: CancelToken) -> None:
    """Wait ``seconds`` on the monotonic clock, waking early on cancellation."""
    deadline = time.monotonic() + seconds
    while True:
        token.raise_if_cancelled()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            return


class TileFetcher:
    """Retrieves tiles as RGBA arrays."""

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        transport: Optional[Transport] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.config = config or FetchConfig()
        self.transport = transport or urllib_transport
        self.sleep = sleep or cooldown_sleep
        self.attempts = 0

    def _cache_buster(self) -> Optional[int]:
        if not self.config.cache_bust:
            return None
        return int(time.time() * 1000)

    async def _try_url(self, url: str) -> Optional[np.ndarray]:
        self.attempts += 1
        try:
            status, body = await asyncio.to_thread(self.transport, url, self.config.timeout)
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            logger.warning("Tile request failed: %s (%s)", url, e)
            return None
        if status != 200:
            logger.warning("Tile request returned HTTP %d: %s", status, url)
            return None
        try:
            return decode_image(body)
        except ImageDecodeError as e:
            logger.warning("Tile response not decodable: %s (%s)", url, e)
            return None

    async def fetch(self, x: int, y: int, token: Optional[CancelToken] = None) -> np.ndarray:
        """Return tile ``(x, y)``; retries until it succeeds or ``token`` is cancelled."""
        token = token or CancelToken()
        round_no = 0
        while True:
            round_no += 1
            for url in candidate_urls(x, y, self.config, self._cache_buster()):
                token.raise_if_cancelled()
                tile = await self._try_url(url)
                if tile is not None:
                    logger.debug("Tile %d/%d loaded (%dx%d) on round %d",
                                 x, y, tile.shape[1], tile.shape[0], round_no)
                    return tile
            logger.warning("Tile %d/%d unavailable, retrying in %.1fs (round %d)",
                           x, y, self.config.cooldown, round_no)
            token.raise_if_cancelled()
            await self.sleep(self.config.cooldown, token)
