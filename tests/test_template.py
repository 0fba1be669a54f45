"""Tests for template records, share tokens, image loading and collections."""

from __future__ import annotations

import base64
import http.client
import json

import numpy as np
import pytest

from canvas_progress.bitmap import DimensionMismatchError, encode_png
from canvas_progress.template import (
    Template,
    TemplateCollection,
    TemplateDecodeError,
    TemplateImageError,
    read_image_source,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_template(name="Flag", tile=(1143, 745), pixel=(12, 900), url="https://img.example/a.png"):
    return Template(
        name=name,
        tile_x=tile[0],
        tile_y=tile[1],
        pixel_x=pixel[0],
        pixel_y=pixel[1],
        image_url=url,
    )


def _data_url(image: np.ndarray) -> str:
    return "data:image/png;base64," + base64.b64encode(encode_png(image)).decode("ascii")


def _make_image(w=3, h=2) -> np.ndarray:
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[..., 0] = 237
    img[..., 1] = 28
    img[..., 2] = 36
    img[..., 3] = 255
    return img


# ---------------------------------------------------------------------------
# Tests: tokens
# ---------------------------------------------------------------------------


class TestShareToken:
    def test_round_trip(self):
        t = _make_template(name="Ünïcode ✓")
        token = t.serialize()
        assert "+" not in token and "/" not in token
        assert Template.deserialize(token) == t

    def test_record_keys(self):
        record = _make_template().to_record()
        assert set(record) == {
            "name", "tileOriginX", "tileOriginY", "pixelOffsetX", "pixelOffsetY", "sourceImageUrl",
        }

    def test_legacy_token(self):
        legacy = {"name": "Old", "tlX": 1, "tlY": 2, "pxX": 3, "pxY": 4,
                  "imageDataUrl": "data:image/png;base64,AAAA"}
        token = base64.b64encode(json.dumps(legacy).encode()).decode().rstrip("=")
        t = Template.deserialize("#" + token)
        assert (t.tile_x, t.tile_y, t.pixel_x, t.pixel_y) == (1, 2, 3, 4)
        assert t.image_url.startswith("data:")

    def test_bitmaps_are_not_serialized(self):
        t = _make_template()
        t.set_template_image(_make_image())
        decoded = json.loads(base64.urlsafe_b64decode(t.serialize()))
        assert "template_image" not in decoded
        assert not Template.deserialize(t.serialize()).is_loaded

    @pytest.mark.parametrize(
        "token", ["", "!!!not base64!!!", "bm90IGpzb24", "WzEsMl0", "é", "abcédef"]
    )
    def test_malformed_tokens(self, token):
        with pytest.raises(TemplateDecodeError):
            Template.deserialize(token)

    def test_missing_key(self):
        record = _make_template().to_record()
        del record["tileOriginX"]
        token = base64.urlsafe_b64encode(json.dumps(record).encode()).decode()
        with pytest.raises(TemplateDecodeError, match="tileOriginX"):
            Template.deserialize(token)

    def test_negative_coordinate_rejected(self):
        record = _make_template().to_record()
        record["pixelOffsetX"] = -1
        token = base64.urlsafe_b64encode(json.dumps(record).encode()).decode()
        with pytest.raises(TemplateDecodeError):
            Template.deserialize(token)


# ---------------------------------------------------------------------------
# Tests: bitmaps
# ---------------------------------------------------------------------------


class TestTemplateImages:
    def test_unloaded_size_is_unknown(self):
        t = _make_template()
        assert (t.width, t.height) == (-1, -1)
        with pytest.raises(TemplateImageError):
            t.placement()

    def test_load_from_data_url(self):
        t = _make_template(url=_data_url(_make_image(3, 2)))
        t.load_template_image()
        assert (t.width, t.height) == (3, 2)
        p = t.placement()
        assert (p.tile_x, p.pixel_y, p.width, p.height) == (1143, 900, 3, 2)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "t.png"
        path.write_bytes(encode_png(_make_image(5, 4)))
        t = _make_template(url=str(path))
        t.load_template_image()
        assert t.template_image.shape == (4, 5, 4)

    def test_decode_failure_leaves_no_bitmap(self):
        t = _make_template()
        t.set_template_image(_make_image())
        with pytest.raises(TemplateImageError):
            t.load_template_image(loader=lambda url: b"garbage")
        assert t.template_image is None
        assert t.width == -1

    def test_loader_error_is_wrapped(self, tmp_path):
        t = _make_template(url=str(tmp_path / "nope.png"))
        with pytest.raises(TemplateImageError):
            t.load_template_image()

    def test_truncated_download_is_wrapped(self):
        def cut_short(url):
            raise http.client.IncompleteRead(b"\x89PNG", 1024)

        t = _make_template()
        with pytest.raises(TemplateImageError):
            t.load_template_image(loader=cut_short)
        assert not t.is_loaded

    def test_live_image_must_match(self):
        t = _make_template()
        t.set_template_image(_make_image(3, 2))
        t.set_live_image(np.zeros((2, 3, 4), dtype=np.uint8))
        with pytest.raises(DimensionMismatchError):
            t.set_live_image(np.zeros((3, 3, 4), dtype=np.uint8))
        assert t.live_image.shape == (2, 3, 4)

    def test_read_plain_data_url(self):
        assert read_image_source("data:text/plain,a%20b") == b"a b"


# ---------------------------------------------------------------------------
# Tests: collection
# ---------------------------------------------------------------------------


class TestTemplateCollection:
    def test_add_replaces_same_anchor(self):
        c = TemplateCollection()
        assert c.add(_make_template(name="a")) == 0
        assert c.add(_make_template(name="b", pixel=(0, 0))) == 1
        assert c.add(_make_template(name="c")) == 0
        assert [t.name for t in c] == ["c", "b"]

    def test_lookup_helpers(self):
        a = _make_template(name="a")
        c = TemplateCollection([a])
        assert c.index_of(a) == 0
        assert c.index_of(_make_template(name="a")) == -1
        assert c.find_index_by_coordinates(1143, 745, 12, 900) == 0
        assert c.find_index_by_coordinates(0, 0, 0, 0) == -1

    def test_remove(self):
        c = TemplateCollection([_make_template()])
        removed = c.remove(0)
        assert removed.name == "Flag"
        assert len(c) == 0
        with pytest.raises(IndexError):
            c.remove(0)

    def test_dumps_loads(self):
        c = TemplateCollection([_make_template(name="a"), _make_template(name="b", tile=(0, 0))])
        again = TemplateCollection.loads(c.dumps())
        assert again.templates() == c.templates()

    @pytest.mark.parametrize("text", ["{", "{}", "[{\"name\": 1}]"])
    def test_loads_rejects_bad_input(self, text):
        with pytest.raises(TemplateDecodeError):
            TemplateCollection.loads(text)
