"""Tests for overlay rendering and the statistics table."""

from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from canvas_progress.palette import lookup
from canvas_progress.render import (
    draw_pings,
    format_statistics_table,
    render_overlay,
    save_image,
    upscale,
)
from canvas_progress.statistics import StatisticsRow, summarize


def _make_overlay() -> np.ndarray:
    overlay = np.zeros((3, 4, 4), dtype=np.uint8)
    overlay[..., 1] = 200
    overlay[..., 3] = 255
    return overlay


class TestUpscale:
    def test_nearest_neighbour(self):
        overlay = _make_overlay()
        overlay[1, 2] = (255, 0, 0, 255)
        big = upscale(overlay, 5)
        assert big.shape == (15, 20, 4)
        assert (big[5:10, 10:15] == (255, 0, 0, 255)).all()
        assert tuple(big[0, 0]) == (0, 200, 0, 255)

    def test_scale_one_copies(self):
        overlay = _make_overlay()
        out = upscale(overlay, 1)
        out[:] = 0
        assert overlay[0, 0, 1] == 200

    def test_invalid_scale(self):
        with pytest.raises(ValueError):
            upscale(_make_overlay(), 0)


class TestPings:
    def test_ring_drawn_around_missing_pixel(self):
        big = upscale(_make_overlay(), 20)
        out = draw_pings(big, [(1, 1)], scale=20, radius=8, thickness=2)
        # (30, 30) is the ring centre; 8px to the right is on the ring
        assert out[30, 38, 0] > 128 and out[30, 38, 1] < 200
        assert tuple(out[30, 30]) == (0, 200, 0, 255)
        assert tuple(big[30, 38]) == (0, 200, 0, 255)

    def test_render_overlay_without_pings(self):
        out = render_overlay(_make_overlay(), missing=None, scale=2)
        assert out.shape == (6, 8, 4)

    def test_save_image(self, tmp_path):
        path = save_image(render_overlay(_make_overlay(), [(0, 0)], scale=4), tmp_path / "o" / "x.png")
        with Image.open(path) as img:
            assert img.mode == "RGBA"
            assert img.size == (16, 12)


class TestStatisticsTable:
    def test_table_lists_rows_and_totals(self):
        rows = [
            StatisticsRow(color=lookup(7), total=1200, completed=300),
            StatisticsRow(color=lookup(40), total=10, completed=10),
        ]
        text = format_statistics_table(rows, summarize(rows))
        lines = text.splitlines()
        assert "Red" in lines[2] and "1,200" in lines[2] and "25.00%" in lines[2]
        assert lines[3].split()[1] == lookup(40).name.split()[0]
        assert "*" in lines[3]
        assert lines[-1].split()[0] == "all"
        assert "1,210" in lines[-1]
