"""Tests for refresh coalescing: cancel-and-restart, skipped timer ticks, events."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from canvas_progress.config import FetchConfig
from canvas_progress.refresh import (
    LiveImageUpdated,
    RefreshCancelled,
    RefreshController,
    RefreshFailed,
    RefreshTrigger,
)
from canvas_progress.statistics import rows_by_id
from canvas_progress.template import Template, TemplateImageError

RED = (237, 28, 36, 255)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _GatedFetcher:
    """Serves a solid red tile once ``gate`` is open; honours cancellation."""

    def __init__(self, open_gate: bool = True):
        self.config = FetchConfig(host="https://tiles.example", tile_size=4)
        self.gate = asyncio.Event()
        if open_gate:
            self.gate.set()
        self.calls = 0

    async def fetch(self, x, y, token=None):
        self.calls += 1
        while not self.gate.is_set():
            token.raise_if_cancelled()
            await asyncio.sleep(0.005)
        return np.tile(np.array(RED, dtype=np.uint8), (4, 4, 1))


def _make_template(loaded: bool = True) -> Template:
    t = Template(name="Flag", tile_x=0, tile_y=0, pixel_x=1, pixel_y=1, image_url="unused")
    if loaded:
        t.set_template_image(np.tile(np.array(RED, dtype=np.uint8), (2, 2, 1)))
    return t


def _make_controller(fetcher, template=None, interval=60.0):
    events = []
    controller = RefreshController(template or _make_template(), fetcher, events.append,
                                   interval=interval)
    return controller, events


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRefreshController:
    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            RefreshController(_make_template(), object(), lambda e: None, interval=0)

    @pytest.mark.asyncio
    async def test_refresh_emits_live_image_updated(self):
        controller, events = _make_controller(_GatedFetcher())

        await controller.refresh(RefreshTrigger.MANUAL)

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, LiveImageUpdated)
        assert event.kind == "live_image_updated"
        assert event.trigger is RefreshTrigger.MANUAL
        red = rows_by_id(event.statistics)[7]
        assert (red.total, red.completed) == (4, 4)
        assert event.template.live_image.shape == (2, 2, 4)
        assert controller.refresh_count == 1

    @pytest.mark.asyncio
    async def test_manual_refresh_cancels_in_flight(self):
        fetcher = _GatedFetcher(open_gate=False)
        controller, events = _make_controller(fetcher)

        first = controller.refresh(RefreshTrigger.MANUAL)
        await asyncio.sleep(0.02)
        assert controller.in_flight
        second = controller.refresh(RefreshTrigger.FOCUS)
        fetcher.gate.set()
        await second

        assert first.cancelled()
        assert [type(e) for e in events] == [RefreshCancelled, LiveImageUpdated]
        assert events[1].trigger is RefreshTrigger.FOCUS
        assert controller.refresh_count == 1

    @pytest.mark.asyncio
    async def test_back_to_back_refresh_reports_cancel(self):
        controller, events = _make_controller(_GatedFetcher())

        first = controller.refresh(RefreshTrigger.MANUAL)
        second = controller.refresh(RefreshTrigger.FOCUS)
        await second

        assert first.cancelled()
        assert [type(e) for e in events] == [RefreshCancelled, LiveImageUpdated]
        assert events[0].trigger is RefreshTrigger.MANUAL

    @pytest.mark.asyncio
    async def test_every_superseded_refresh_reports_cancel(self):
        fetcher = _GatedFetcher(open_gate=False)
        controller, events = _make_controller(fetcher)

        first = controller.refresh(RefreshTrigger.MANUAL)
        await asyncio.sleep(0.02)
        second = controller.refresh(RefreshTrigger.MANUAL)
        third = controller.refresh(RefreshTrigger.FOCUS)
        fetcher.gate.set()
        await third
        await asyncio.gather(first, second, return_exceptions=True)

        assert first.cancelled() and second.cancelled()
        kinds = [type(e) for e in events]
        assert kinds.count(RefreshCancelled) == 2
        assert kinds.count(LiveImageUpdated) == 1
        assert controller.refresh_count == 1

    @pytest.mark.asyncio
    async def test_timer_tick_skipped_while_in_flight(self):
        fetcher = _GatedFetcher(open_gate=False)
        controller, events = _make_controller(fetcher)

        first = controller.refresh(RefreshTrigger.MANUAL)
        await asyncio.sleep(0.01)
        assert controller.refresh(RefreshTrigger.TIMER) is None
        fetcher.gate.set()
        await first

        assert fetcher.calls == 1
        assert [type(e) for e in events] == [LiveImageUpdated]

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        controller, events = _make_controller(_GatedFetcher(), template=_make_template(loaded=False))

        with pytest.raises(TemplateImageError):
            await controller.refresh()

        assert len(events) == 1
        assert isinstance(events[0], RefreshFailed)
        assert isinstance(events[0].error, TemplateImageError)
        assert controller.refresh_count == 0

    @pytest.mark.asyncio
    async def test_timer_refreshes_until_stopped(self):
        controller, events = _make_controller(_GatedFetcher(), interval=0.01)

        controller.start()
        while controller.refresh_count < 2:
            await asyncio.sleep(0.005)
        await controller.stop()

        assert not controller.in_flight
        assert all(e.trigger is RefreshTrigger.TIMER
                   for e in events if isinstance(e, LiveImageUpdated))
