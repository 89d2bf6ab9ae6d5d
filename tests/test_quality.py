"""Tests for brightness / sharpness measurement."""

import pytest
from PIL import UnidentifiedImageError

from conftest import make_checkerboard, make_png

from claim_triage.quality import measure_quality


def test_flat_image_has_no_sharpness():
    q = measure_quality(make_png((128, 128, 128)))
    assert q["brightness"] == pytest.approx(128.0)
    assert q["sharpness"] == pytest.approx(0.0)


def test_dark_image_is_dark():
    assert measure_quality(make_png((5, 5, 5)))["brightness"] < 10


def test_edges_raise_sharpness():
    assert measure_quality(make_checkerboard())["sharpness"] > 100


def test_garbage_bytes_fail():
    with pytest.raises(UnidentifiedImageError):
        measure_quality(b"definitely not an image")
