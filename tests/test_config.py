"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from canvas_progress.config import (
    COOLDOWN_SECONDS,
    DEFAULT_MARKER_COLORS,
    TILE_HOST,
    FetchConfig,
    marker_colors_from_env,
)


class TestFetchConfig:
    def test_defaults_from_empty_env(self):
        cfg = FetchConfig.from_env({})
        assert cfg.host == TILE_HOST
        assert cfg.cooldown == COOLDOWN_SECONDS
        assert cfg.proxies == []
        assert cfg.cache_bust

    def test_env_overrides(self):
        cfg = FetchConfig.from_env({
            "CANVAS_TILE_HOST": "http://localhost:9000/",
            "CANVAS_TILE_SIZE": "256",
            "CANVAS_COOLDOWN": "0.5",
            "CANVAS_TIMEOUT": "3",
            "CANVAS_PROXIES": "https://a.example/?{url}, ,https://b.example/{url}",
        })
        assert cfg.host == "http://localhost:9000"
        assert cfg.tile_size == 256
        assert cfg.cooldown == 0.5
        assert cfg.timeout == 3.0
        assert cfg.proxies == ["https://a.example/?{url}", "https://b.example/{url}"]

    @pytest.mark.parametrize("kwargs", [{"tile_size": 0}, {"cooldown": -1}, {"timeout": 0}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            FetchConfig(**kwargs)


class TestMarkerColors:
    def test_env_values_override_defaults(self):
        colors = marker_colors_from_env({"CANVAS_MARKER_MISSING": "#0000ff", "CANVAS_MARKER_MATCH": " "})
        assert colors["missing"] == "#0000ff"
        assert colors["match"] == DEFAULT_MARKER_COLORS["match"]
        assert set(colors) == set(DEFAULT_MARKER_COLORS)
