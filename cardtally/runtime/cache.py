# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Named artifact cache for one snapshot.

Every raster the pipeline touches lives here under a string tag. Tags
fall into a closed set of families, each with one rule for producing a
value on a cache miss:

    input         ->  pulled from the image source
    lab           ->  OKLab conversion of "input"
    *.contours.*  ->  blank mask sized like "input"
    palette.rgb   ->  display colors of "palette.lab"
    anything else ->  stored only; a miss raises MissingArtifact

Rules are pure functions of other tags, so replacing a tag only has to
drop the tags derived from it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable, Optional

import numpy as np
from numpy.typing import NDArray

from cardtally.errors import MissingArtifact
from cardtally.schema import PERSISTENT_MASKS
from cardtally.vision.colorspace import oklab_to_srgb_uint8, srgb_uint8_to_oklab

logger = logging.getLogger(__name__)

ImageSource = Callable[[], NDArray[np.uint8]]


class TagFamily(Enum):
    """Recomputation rule selected by a tag."""

    INPUT = "input"
    LAB = "lab"
    MASK = "mask"
    PALETTE_LAB = "palette.lab"
    PALETTE_RGB = "palette.rgb"
    STORED = "stored"


def tag_family(tag: str) -> TagFamily:
    if tag == "input":
        return TagFamily.INPUT
    if tag == "lab":
        return TagFamily.LAB
    if ".contours." in tag:
        return TagFamily.MASK
    if tag == "palette.lab":
        return TagFamily.PALETTE_LAB
    if tag == "palette.rgb":
        return TagFamily.PALETTE_RGB
    return TagFamily.STORED


# Tags to drop when the key tag is replaced or invalidated
_DEPENDENTS: dict[str, tuple[str, ...]] = {
    "input": ("lab",),
    "palette.lab": ("palette.rgb",),
}


class DerivedDataCache:
    """
    Lazily computed rasters keyed by tag.

    Args:
        source: Callable returning the size-limited uint8 RGB input image
        storage: Optional SnapshotStorage for the persistent mask whitelist
        persistent: Mask tags read by load_persistent and written by
            save_persistent
    """

    def __init__(
        self,
        source: ImageSource,
        storage=None,
        persistent: Iterable[str] = PERSISTENT_MASKS,
    ) -> None:
        self._source = source
        self._storage = storage
        self._persistent = tuple(persistent)
        self._artifacts: dict[str, NDArray] = {}

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get(self, tag: str) -> NDArray:
        """Return the artifact for ``tag``, computing it on a miss."""
        if tag not in self._artifacts:
            logger.debug(f"Cache miss for {tag}")
            self._artifacts[tag] = self._compute(tag)
        return self._artifacts[tag]

    def set(self, tag: str, artifact: NDArray) -> None:
        """Store or overwrite ``tag``; derived tags are dropped."""
        self._drop_dependents(tag)
        self._artifacts[tag] = artifact

    def invalidate(self, tag: str) -> None:
        """Forget ``tag`` (and tags derived from it). Missing tags are ignored."""
        self._drop_dependents(tag)
        self._artifacts.pop(tag, None)

    def contains(self, tag: str) -> bool:
        return tag in self._artifacts

    def tags(self, prefix: str = "") -> list[str]:
        """Stored tags starting with ``prefix``, sorted."""
        return sorted(t for t in self._artifacts if t.startswith(prefix))

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width) of the input image."""
        return self.get("input").shape[:2]

    def _drop_dependents(self, tag: str) -> None:
        for dependent in _DEPENDENTS.get(tag, ()):
            self.invalidate(dependent)

    def _compute(self, tag: str) -> NDArray:
        family = tag_family(tag)

        if family is TagFamily.INPUT:
            pixels = np.ascontiguousarray(self._source(), dtype=np.uint8)
            if pixels.ndim != 3 or pixels.shape[2] != 3:
                raise ValueError(f"Expected (H, W, 3) input image, got shape {pixels.shape}")
            return pixels

        if family is TagFamily.LAB:
            return np.ascontiguousarray(srgb_uint8_to_oklab(self.get("input")))

        if family is TagFamily.MASK:
            return np.zeros(self.shape, dtype=np.uint8)

        if family is TagFamily.PALETTE_RGB:
            return oklab_to_srgb_uint8(self.get("palette.lab"))

        raise MissingArtifact(tag)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load_persistent(self) -> list[str]:
        """
        Read the whitelisted masks from storage.

        Incompatible files are deleted by the storage layer and leave the
        mask blank.

        Returns:
            Tags that were loaded
        """
        if self._storage is None:
            return []
        loaded = []
        shape = self.shape
        for tag in self._persistent:
            mask = self._storage.load_mask(tag, shape)
            if mask is not None:
                self.set(tag, mask)
                loaded.append(tag)
        return loaded

    def save_persistent(self) -> None:
        """
        Write the whitelisted masks to storage.

        A whitelisted mask that is not in memory has its file removed:
        "no mask" is a state worth persisting too.
        """
        if self._storage is None:
            return
        for tag in self._persistent:
            self._storage.save_mask(tag, self._artifacts.get(tag))

    def get_optional(self, tag: str) -> Optional[NDArray]:
        """Stored value of ``tag`` without computing it."""
        return self._artifacts.get(tag)
