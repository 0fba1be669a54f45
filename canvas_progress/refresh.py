"""Keep a template's live bitmap and statistics fresh.

One ``RefreshController`` per active template. Three triggers feed it: the
auto-refresh timer, a manual request and a window-focus request. At most one
stitch is in flight at a time:

  * manual and focus triggers cancel the in-flight stitch and start over,
  * a timer tick that finds a stitch in flight is skipped.

Results go to the ``on_event`` callback as one of the event dataclasses
below; the controller never touches presentation code itself.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Union

from .config import AUTO_UPDATE_INTERVAL
from .statistics import StatisticsRow, compute_statistics
from .stitcher import stitch
from .template import Template
from .tiles import CancelToken, FetchCancelled, TileFetcher

logger = logging.getLogger(__name__)


class RefreshTrigger(str, Enum):
    TIMER = "timer"
    MANUAL = "manual"
    FOCUS = "focus"


@dataclass
class LiveImageUpdated:
    template: Template
    statistics: List[StatisticsRow] = field(default_factory=list)
    trigger: RefreshTrigger = RefreshTrigger.MANUAL
    kind: str = "live_image_updated"


@dataclass
class RefreshCancelled:
    template: Template
    trigger: RefreshTrigger = RefreshTrigger.MANUAL
    kind: str = "refresh_cancelled"


@dataclass
class RefreshFailed:
    template: Template
    error: BaseException
    trigger: RefreshTrigger = RefreshTrigger.MANUAL
    kind: str = "refresh_failed"


RefreshEvent = Union[LiveImageUpdated, RefreshCancelled, RefreshFailed]


class RefreshController:
    """Coalesces refresh triggers for one template."""

    def __init__(
        self,
        template: Template,
        fetcher: TileFetcher,
        on_event: Callable[[RefreshEvent], None],
        interval: float = AUTO_UPDATE_INTERVAL,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.template = template
        self.fetcher = fetcher
        self.on_event = on_event
        self.interval = interval
        self.refresh_count = 0
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancelToken] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the auto-refresh timer; the first tick refreshes immediately."""
        if self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._timer_loop())

    async def stop(self) -> None:
        """Stop the timer and abandon any in-flight refresh."""
        if self._timer is not None:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None
        await self._cancel_in_flight()

    async def _timer_loop(self) -> None:
        while True:
            self.refresh(RefreshTrigger.TIMER)
            await asyncio.sleep(self.interval)

    async def _cancel_in_flight(self) -> None:
        task, token = self._task, self._token
        if task is None or task.done():
            return
        logger.debug("Cancelling in-flight refresh of %r", self.template.name)
        if token is not None:
            token.cancel()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def refresh(self, trigger: RefreshTrigger = RefreshTrigger.MANUAL) -> Optional[asyncio.Task]:
        """Request a refresh; returns the task doing it, or None if skipped."""
        if self.in_flight:
            if trigger == RefreshTrigger.TIMER:
                logger.debug("Timer tick skipped, refresh of %r still in flight",
                             self.template.name)
                return None
            previous, previous_token = self._task, self._token
            if previous_token is not None:
                previous_token.cancel()
            previous.cancel()
        else:
            previous = None

        token = CancelToken()
        self._token = token
        self._task = asyncio.create_task(self._run(trigger, token, previous))
        self._task.add_done_callback(functools.partial(self._finished, trigger))
        return self._task

    def _finished(self, trigger: RefreshTrigger, task: asyncio.Task) -> None:
        # also covers tasks cancelled before their first step
        if task.cancelled():
            cancelled = True
        else:
            cancelled = isinstance(task.exception(), FetchCancelled)
        if cancelled:
            logger.info("Refresh of %r cancelled", self.template.name)
            self.on_event(RefreshCancelled(template=self.template, trigger=trigger))

    async def _run(self, trigger: RefreshTrigger, token: CancelToken,
                   previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            # the old stitch must be gone before the new one can swap bitmaps
            await asyncio.gather(previous, return_exceptions=True)

        template = self.template
        logger.info("Refreshing %r (%s)", template.name, trigger.value)
        try:
            live = await stitch(template.placement(), self.fetcher, token)
            token.raise_if_cancelled()
            template.set_live_image(live)
            rows = compute_statistics(template.template_image, template.live_image)
        except FetchCancelled:
            raise
        except Exception as exc:
            logger.error("Refresh of %r failed: %s", template.name, exc)
            self.on_event(RefreshFailed(template=template, error=exc, trigger=trigger))
            raise
        self.refresh_count += 1
        self.on_event(LiveImageUpdated(template=template, statistics=rows, trigger=trigger))
