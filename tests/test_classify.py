# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Tests for pixel classification and confidence masking."""

import numpy as np
import pytest

from cardtally.errors import ClassifierNotReady
from cardtally.schema import ClassificationResult, Palette
from cardtally.vision.classify import classify_pixels
from cardtally.vision.colorspace import srgb_uint8_to_oklab
from cardtally.vision.contours import extract_contours
from cardtally.vision.index import NearestNeighborIndex
from cardtally.vision.masking import (
    color_diff_raster,
    confidence_masks,
    confident_pixels,
    squared_threshold,
)
from cardtally.vision.palette import train_palette

GREEN = (30, 180, 60)
PINK = (230, 90, 170)


def _scene(height=100, width=100):
    """Gray table with one green and one pink 20x20 card."""
    pixels = np.full((height, width, 3), 128, dtype=np.uint8)
    pixels[10:30, 10:30] = GREEN
    pixels[55:75, 60:80] = PINK
    return pixels


def _marks(height=100, width=100):
    green = np.zeros((height, width), dtype=np.uint8)
    green[15:25, 15:25] = 255
    pink = np.zeros((height, width), dtype=np.uint8)
    pink[60:70, 65:75] = 255
    return {"green": green, "pink": pink, "yellow": None}


def _trained():
    lab = srgb_uint8_to_oklab(_scene())
    palette = train_palette(lab, _marks())
    return lab, palette, NearestNeighborIndex.build(palette)


def _single_group_palette():
    lab = np.zeros((4, 3), dtype=np.float32)
    rgb = np.full((4, 3), [10, 200, 10], dtype=np.uint8)
    return Palette(lab=lab, rgb=rgb, gradations=4, groups=("green",))


def _result(distances):
    distances = np.asarray(distances, dtype=np.float32)
    return ClassificationResult(
        indices=np.zeros(distances.shape, dtype=np.int32),
        distances=distances,
    )


class TestClassifyPixels:

    def test_shapes(self):
        lab, palette, index = _trained()
        result = classify_pixels(lab, index)
        assert result.shape == (100, 100)
        assert result.indices.dtype == np.int32
        assert result.distances.dtype == np.float32

    def test_indices_in_range(self):
        lab, palette, index = _trained()
        result = classify_pixels(lab, index)
        assert result.indices.min() >= 0
        assert result.indices.max() < len(palette)

    def test_distances_non_negative(self):
        lab, _, index = _trained()
        assert (classify_pixels(lab, index).distances >= 0).all()

    def test_groups_follow_cards(self):
        lab, palette, index = _trained()
        result = classify_pixels(lab, index)
        assert palette.group_of(result.indices[20, 20]) == "green"
        assert palette.group_of(result.indices[65, 70]) == "pink"

    def test_no_index(self):
        lab = srgb_uint8_to_oklab(_scene())
        with pytest.raises(ClassifierNotReady):
            classify_pixels(lab, None)

    def test_bad_shape(self):
        _, _, index = _trained()
        with pytest.raises(ValueError):
            classify_pixels(np.zeros((10, 10), dtype=np.float32), index)


class TestConfidenceMasks:

    def test_two_cards_end_to_end(self):
        """Each card is found once, the table belongs to no color."""
        lab, palette, index = _trained()
        masks = confidence_masks(classify_pixels(lab, index), palette, 0.06)

        assert set(masks) == {"green", "pink", "yellow"}
        assert not masks["yellow"].any()
        assert masks["green"][0, 0] == 0

        for color in ("green", "pink"):
            found = extract_contours(masks[color], color, area_min=100)
            assert len(found) == 1
            assert 300 <= found[0].area <= 400

    def test_mask_values(self):
        lab, palette, index = _trained()
        masks = confidence_masks(classify_pixels(lab, index), palette, 0.06)
        for mask in masks.values():
            assert mask.dtype == np.uint8
            assert set(np.unique(mask)) <= {0, 255}

    def test_squared_threshold(self):
        assert squared_threshold(0.1) == pytest.approx(0.03)

    def test_larger_threshold_is_superset(self):
        lab, _, index = _trained()
        result = classify_pixels(lab, index)
        for small, large in [(0.0, 0.01), (0.01, 0.06), (0.06, 0.5)]:
            narrow = confident_pixels(result, small)
            wide = confident_pixels(result, large)
            assert not (narrow & ~wide).any()

    def test_zero_threshold_confident_nowhere(self):
        lab, _, index = _trained()
        assert not confident_pixels(classify_pixels(lab, index), 0.0).any()

    def test_opening_removes_isolated_pixel(self):
        distances = np.ones((20, 20))
        distances[3, 3] = 0.0
        distances[10:15, 10:15] = 0.0
        masks = confidence_masks(_result(distances), _single_group_palette(), 0.06)

        green = masks["green"]
        assert green[3, 3] == 0
        assert (green[10:15, 10:15] == 255).all()
        assert green.sum() == 25 * 255

    def test_missing_group_gets_blank_mask(self):
        masks = confidence_masks(_result(np.zeros((8, 8))), _single_group_palette(), 0.06)
        assert masks["pink"].shape == (8, 8)
        assert not masks["pink"].any()


class TestColorDiffRaster:

    def test_paints_masked_pixels(self):
        distances = np.ones((20, 20))
        distances[5:15, 5:15] = 0.0
        palette = _single_group_palette()
        result = _result(distances)
        masks = confidence_masks(result, palette, 0.06)

        raster = color_diff_raster(result, palette, masks)
        assert raster.shape == (20, 20, 3)
        assert tuple(raster[10, 10]) == (10, 200, 10)
        assert tuple(raster[0, 0]) == (0, 0, 0)
