# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Tests for the named artifact cache."""

import numpy as np
import pytest

from cardtally.errors import MissingArtifact
from cardtally.runtime.cache import DerivedDataCache, TagFamily, tag_family
from cardtally.runtime.storage import SnapshotStorage

MASK = "train.contours.green"


class _Source:
    """Image source counting how often it is read."""

    def __init__(self, height=20, width=30):
        self.pixels = np.full((height, width, 3), [200, 50, 50], dtype=np.uint8)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.pixels


class TestTagFamily:

    @pytest.mark.parametrize("tag,family", [
        ("input", TagFamily.INPUT),
        ("lab", TagFamily.LAB),
        ("train.contours.pink", TagFamily.MASK),
        ("count.contours.yellow", TagFamily.MASK),
        ("palette.lab", TagFamily.PALETTE_LAB),
        ("palette.rgb", TagFamily.PALETTE_RGB),
        ("indices", TagFamily.STORED),
        ("colorDiff", TagFamily.STORED),
    ])
    def test_family(self, tag, family):
        assert tag_family(tag) is family


class TestDerivedDataCache:

    def test_input_pulled_once(self):
        source = _Source()
        cache = DerivedDataCache(source)
        assert cache.get("input").shape == (20, 30, 3)
        cache.get("input")
        assert source.calls == 1

    def test_lab_derived_from_input(self):
        cache = DerivedDataCache(_Source())
        lab = cache.get("lab")
        assert lab.shape == (20, 30, 3)
        assert lab.dtype == np.float32

    def test_mask_is_blank(self):
        cache = DerivedDataCache(_Source())
        mask = cache.get(MASK)
        assert mask.shape == (20, 30)
        assert mask.dtype == np.uint8
        assert not mask.any()

    def test_shape(self):
        assert DerivedDataCache(_Source(7, 9)).shape == (7, 9)

    def test_stored_miss_raises(self):
        cache = DerivedDataCache(_Source())
        with pytest.raises(MissingArtifact):
            cache.get("indices")

    def test_set_and_get(self):
        cache = DerivedDataCache(_Source())
        value = np.arange(4)
        cache.set("indices", value)
        assert cache.get("indices") is value
        assert cache.contains("indices")

    def test_setting_input_drops_lab(self):
        cache = DerivedDataCache(_Source())
        cache.get("lab")
        cache.set("input", np.zeros((5, 5, 3), dtype=np.uint8))
        assert not cache.contains("lab")
        assert cache.get("lab").shape == (5, 5, 3)

    def test_palette_rgb_follows_palette_lab(self):
        cache = DerivedDataCache(_Source())
        cache.set("palette.lab", np.array([[1.0, 0.0, 0.0]], dtype=np.float32))
        np.testing.assert_array_equal(cache.get("palette.rgb"), [[255, 255, 255]])

        cache.set("palette.lab", np.array([[0.0, 0.0, 0.0]], dtype=np.float32))
        np.testing.assert_array_equal(cache.get("palette.rgb"), [[0, 0, 0]])

    def test_invalidate_drops_dependents(self):
        cache = DerivedDataCache(_Source())
        cache.set("palette.lab", np.zeros((1, 3), dtype=np.float32))
        cache.get("palette.rgb")
        cache.invalidate("palette.lab")
        assert not cache.contains("palette.lab")
        assert not cache.contains("palette.rgb")

    def test_invalidate_missing_tag(self):
        DerivedDataCache(_Source()).invalidate("nothing")

    def test_tags_by_prefix(self):
        cache = DerivedDataCache(_Source())
        cache.get("train.contours.pink")
        cache.get("train.contours.green")
        cache.get("count.contours.green")
        assert cache.tags("train.") == ["train.contours.green", "train.contours.pink"]

    def test_get_optional_does_not_compute(self):
        cache = DerivedDataCache(_Source())
        assert cache.get_optional(MASK) is None
        assert not cache.contains(MASK)


class TestPersistence:

    def test_round_trip(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "table.jpg")
        cache = DerivedDataCache(_Source(), storage)
        cache.get(MASK)[2:8, 3:9] = 255
        cache.save_persistent()

        restored = DerivedDataCache(_Source(), storage)
        assert restored.load_persistent() == [MASK]
        np.testing.assert_array_equal(restored.get(MASK), cache.get(MASK))

    def test_only_whitelisted_masks_saved(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "table.jpg")
        cache = DerivedDataCache(_Source(), storage)
        cache.get("count.contours.green")
        cache.save_persistent()
        assert not storage.mask_path("count.contours.green").exists()

    def test_missing_mask_deletes_file(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "table.jpg")
        cache = DerivedDataCache(_Source(), storage)
        cache.get(MASK)
        cache.save_persistent()
        assert storage.mask_path(MASK).exists()

        cache.invalidate(MASK)
        cache.save_persistent()
        assert not storage.mask_path(MASK).exists()

    def test_incompatible_mask_discarded(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "table.jpg")
        small = DerivedDataCache(_Source(10, 10), storage)
        small.get(MASK)[:] = 255
        small.save_persistent()

        cache = DerivedDataCache(_Source(20, 30), storage)
        assert cache.load_persistent() == []
        assert not cache.get(MASK).any()
        assert not storage.mask_path(MASK).exists()

    def test_without_storage(self):
        cache = DerivedDataCache(_Source())
        assert cache.load_persistent() == []
        cache.save_persistent()
