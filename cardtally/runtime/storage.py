# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
On-disk layout for a snapshot.

For a photo ``<dir>/<name>.<ext>``:

- ``<dir>/<name>.cache/<tag>.png``: one grayscale PNG per persistent mask
- ``<dir>/palette.png``: the trained palette as an N x 1 RGB swatch,
  with the color group names in a ``groups`` text chunk
- ``<dir>/flann.dat``: the nearest-neighbour index over that palette

The palette and index live next to the photos so every snapshot taken
in the same session (same cards, same lighting) reuses one training.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray
from PIL import Image, PngImagePlugin

from cardtally.schema import COLOR_NAMES, GRADATIONS_PER_COLOR, Palette
from cardtally.vision.palette import palette_from_rgb

logger = logging.getLogger(__name__)

PALETTE_FILE = "palette.png"
INDEX_FILE = "flann.dat"

_GROUPS_KEY = "groups"
_GRADATIONS_KEY = "gradations"


class SnapshotStorage:
    """
    Files belonging to one source image.

    Creates the cache directory on construction.
    """

    def __init__(self, image_path: Union[str, Path]) -> None:
        image_path = Path(image_path).absolute()
        self.image_path = image_path
        self.parent_dir = image_path.parent
        self.cache_dir = self.parent_dir / f"{image_path.stem}.cache"
        if not self.cache_dir.exists():
            logger.info(f"Creating cache directory {self.cache_dir}")
            self.cache_dir.mkdir(parents=True)

    @property
    def palette_path(self) -> Path:
        return self.parent_dir / PALETTE_FILE

    @property
    def index_path(self) -> Path:
        return self.parent_dir / INDEX_FILE

    def mask_path(self, tag: str) -> Path:
        return self.cache_dir / f"{tag}.png"

    # -------------------------------------------------------------------------
    # Masks
    # -------------------------------------------------------------------------

    def load_mask(self, tag: str, shape: tuple[int, int]) -> Optional[NDArray[np.uint8]]:
        """
        Read a persisted mask.

        Returns None when no file exists. A file whose dimensions differ
        from ``shape`` is deleted and None returned.
        """
        path = self.mask_path(tag)
        if not path.exists():
            return None

        with Image.open(path) as img:
            mask = np.array(img.convert("L"), dtype=np.uint8)

        if mask.shape != tuple(shape):
            logger.info(f"Incompatible mask {path} ({mask.shape}, expected {tuple(shape)}), removing")
            path.unlink()
            return None
        return mask

    def save_mask(self, tag: str, mask: Optional[NDArray[np.uint8]]) -> None:
        """Write a mask, or delete its file when ``mask`` is None."""
        path = self.mask_path(tag)
        if mask is not None:
            Image.fromarray(np.ascontiguousarray(mask, dtype=np.uint8)).save(path)
        elif path.exists():
            path.unlink()

    # -------------------------------------------------------------------------
    # Palette + index
    # -------------------------------------------------------------------------

    def has_classifier(self) -> bool:
        """True when both the palette swatch and the index file exist."""
        return self.palette_path.exists() and self.index_path.exists()

    def save_palette(self, palette: Palette) -> None:
        """Write the palette swatch (display colors plus group metadata)."""
        info = PngImagePlugin.PngInfo()
        info.add_text(_GROUPS_KEY, ",".join(palette.groups))
        info.add_text(_GRADATIONS_KEY, str(palette.gradations))
        swatch = np.ascontiguousarray(palette.rgb.reshape(-1, 1, 3), dtype=np.uint8)
        Image.fromarray(swatch).save(self.palette_path, pnginfo=info)

    def load_palette(self) -> Optional[Palette]:
        """
        Read the palette swatch, or None if there is none.

        Swatches without group metadata are assumed to hold every color
        in the default order.
        """
        if not self.palette_path.exists():
            return None

        with Image.open(self.palette_path) as img:
            text = dict(getattr(img, "text", {}) or {})
            rgb = np.array(img.convert("RGB"), dtype=np.uint8).reshape(-1, 3)

        gradations = int(text.get(_GRADATIONS_KEY, GRADATIONS_PER_COLOR))
        if _GROUPS_KEY in text:
            groups = tuple(g for g in text[_GROUPS_KEY].split(",") if g)
        else:
            groups = COLOR_NAMES[:len(rgb) // gradations]
        return palette_from_rgb(rgb, groups, gradations)
