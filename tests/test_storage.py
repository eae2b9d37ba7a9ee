# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Tests for the on-disk snapshot layout."""

import numpy as np
from PIL import Image

from cardtally.runtime.storage import INDEX_FILE, PALETTE_FILE, SnapshotStorage
from cardtally.vision.palette import palette_from_rgb


def _palette(groups=("green", "yellow")):
    rng = np.random.RandomState(3)
    rgb = rng.randint(0, 256, size=(4 * len(groups), 3)).astype(np.uint8)
    return palette_from_rgb(rgb, groups, 4)


class TestLayout:

    def test_creates_cache_dir(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        assert storage.cache_dir == tmp_path / "shot.cache"
        assert storage.cache_dir.is_dir()

    def test_shared_files_next_to_photo(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        assert storage.palette_path == tmp_path / PALETTE_FILE
        assert storage.index_path == tmp_path / INDEX_FILE
        assert storage.mask_path("train.contours.pink") == (
            tmp_path / "shot.cache" / "train.contours.pink.png"
        )


class TestMasks:

    def test_round_trip(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        mask = np.zeros((12, 16), dtype=np.uint8)
        mask[3:6, 4:10] = 255
        storage.save_mask("train.contours.green", mask)
        np.testing.assert_array_equal(storage.load_mask("train.contours.green", (12, 16)), mask)

    def test_missing(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        assert storage.load_mask("train.contours.green", (12, 16)) is None

    def test_wrong_size_removed(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        storage.save_mask("train.contours.green", np.zeros((12, 16), dtype=np.uint8))
        assert storage.load_mask("train.contours.green", (16, 12)) is None
        assert not storage.mask_path("train.contours.green").exists()

    def test_save_none_deletes(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        storage.save_mask("train.contours.green", np.zeros((4, 4), dtype=np.uint8))
        storage.save_mask("train.contours.green", None)
        assert not storage.mask_path("train.contours.green").exists()
        storage.save_mask("train.contours.green", None)


class TestPalette:

    def test_round_trip(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        palette = _palette()
        storage.save_palette(palette)

        loaded = storage.load_palette()
        np.testing.assert_array_equal(loaded.rgb, palette.rgb)
        assert loaded.groups == ("green", "yellow")
        assert loaded.gradations == 4
        assert loaded.lab.dtype == np.float32

    def test_swatch_is_column(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        storage.save_palette(_palette())
        with Image.open(storage.palette_path) as img:
            assert img.size == (1, 8)

    def test_plain_swatch_assumes_default_groups(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        rgb = np.zeros((8, 1, 3), dtype=np.uint8)
        Image.fromarray(rgb).save(storage.palette_path)
        assert storage.load_palette().groups == ("green", "pink")

    def test_missing(self, tmp_path):
        assert SnapshotStorage(tmp_path / "shot.jpg").load_palette() is None

    def test_has_classifier(self, tmp_path):
        storage = SnapshotStorage(tmp_path / "shot.jpg")
        assert not storage.has_classifier()
        storage.save_palette(_palette())
        assert not storage.has_classifier()
        storage.index_path.write_bytes(b"")
        assert storage.has_classifier()

    def test_shared_between_photos(self, tmp_path):
        SnapshotStorage(tmp_path / "first.jpg").save_palette(_palette())
        assert SnapshotStorage(tmp_path / "second.jpg").load_palette() is not None
