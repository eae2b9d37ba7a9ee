# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Tests for image loading and rescaling."""

import numpy as np
import pytest
from PIL import Image

from cardtally.runtime.imageio import load_image, rescale


def _write(path, pixels, mode=None):
    img = Image.fromarray(pixels)
    if mode is not None:
        img = img.convert(mode)
    img.save(path)
    return path


class TestLoadImage:

    def test_downscales_longer_side(self, tmp_path):
        path = _write(tmp_path / "wide.png", np.full((100, 200, 3), 90, dtype=np.uint8))
        pixels = load_image(path, 50)
        assert pixels.shape == (25, 50, 3)
        assert pixels.dtype == np.uint8

    def test_upscales(self, tmp_path):
        path = _write(tmp_path / "small.png", np.full((40, 20, 3), 90, dtype=np.uint8))
        assert load_image(path, 80).shape == (80, 40, 3)

    def test_rgba_converted(self, tmp_path):
        path = _write(tmp_path / "alpha.png", np.full((10, 10, 3), 200, dtype=np.uint8), "RGBA")
        pixels = load_image(path, 10)
        assert pixels.shape == (10, 10, 3)
        assert (pixels == 200).all()

    def test_grayscale_converted(self, tmp_path):
        path = _write(tmp_path / "gray.png", np.full((10, 10, 3), 60, dtype=np.uint8), "L")
        assert load_image(path, 10).shape == (10, 10, 3)

    def test_invalid_limit(self, tmp_path):
        path = _write(tmp_path / "img.png", np.zeros((4, 4, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            load_image(path, 0)


class TestRescale:

    def test_unchanged_at_limit(self):
        pixels = np.zeros((30, 60, 3), dtype=np.uint8)
        assert rescale(pixels, 60) is pixels

    def test_keeps_solid_color(self):
        pixels = np.full((30, 60, 3), [10, 120, 240], dtype=np.uint8)
        out = rescale(pixels, 20)
        assert out.shape == (10, 20, 3)
        assert np.abs(out.astype(int) - [10, 120, 240]).max() <= 1
