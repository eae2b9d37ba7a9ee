# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Counting session for one photographed scene.

Ties the pipeline together around a single DerivedDataCache:

    train:  training masks -> palette -> index (saved next to the photo)
    count:  classify (worker thread) -> confidence masks -> contours

All state is owned by the session and mutated only from the thread that
drives it. The one exception is pixel classification, which runs on a
single worker; its result is picked up by :meth:`finish_count`, which
then runs masking and contour extraction in order, exactly once.

Example:
    >>> with SnapshotSession.open("table.jpg") as session:
    ...     session.set_train_mode("green")
    ...     session.pick(120, 80)
    ...     session.train()
    ...     counts = session.count()
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Union

import cv2
import numpy as np
from numpy.typing import NDArray

from cardtally.errors import ClassifierNotReady, CountInProgress
from cardtally.runtime.cache import DerivedDataCache, ImageSource
from cardtally.runtime.display import DisplaySurface, NullDisplay
from cardtally.runtime.imageio import load_image
from cardtally.runtime.reporting import ResultSink
from cardtally.runtime.storage import SnapshotStorage
from cardtally.schema import (
    COLOR_NAMES,
    COUNT_PREFIX,
    GRADATIONS_PER_COLOR,
    ClassificationResult,
    CountConfig,
    IndexConfig,
    Palette,
    Rect,
    count_tag,
    train_tag,
)
from cardtally.vision.classify import classify_pixels
from cardtally.vision.editor import ContourLayers, RegionEditor
from cardtally.vision.index import NearestNeighborIndex
from cardtally.vision.masking import color_diff_raster, confidence_masks
from cardtally.vision.palette import train_palette

logger = logging.getLogger(__name__)


class Mode(Enum):
    INERT = "inert"
    TRAIN = "train"
    COUNT = "count"


class SnapshotSession:
    """
    Training and counting state for one image.

    Args:
        source: Callable returning the size-limited uint8 RGB image
        storage: Where masks, palette and index persist (None keeps
            everything in memory)
        config: Pipeline tunables
        index_config: Nearest-neighbour index parameters
        display: Receiver of polygon and overlay updates
        colors: Card colors, in palette group order
        gradations: Palette entries per color
    """

    def __init__(
        self,
        source: ImageSource,
        *,
        storage: Optional[SnapshotStorage] = None,
        config: Optional[CountConfig] = None,
        index_config: Optional[IndexConfig] = None,
        display: Optional[DisplaySurface] = None,
        colors: Iterable[str] = COLOR_NAMES,
        gradations: int = GRADATIONS_PER_COLOR,
    ) -> None:
        self.colors = tuple(colors)
        self.gradations = gradations
        self.config = config if config is not None else CountConfig()
        self.index_config = index_config if index_config is not None else IndexConfig()
        self.display = display if display is not None else NullDisplay()
        self.storage = storage

        self.cache = DerivedDataCache(
            source,
            storage=storage,
            persistent=[train_tag(c) for c in self.colors],
        )
        self.layers = ContourLayers(self.display)
        self.editor = RegionEditor(self.cache, self.layers)

        self.mode = Mode.INERT
        self.color = self.colors[0]
        self.palette: Optional[Palette] = None
        self.index: Optional[NearestNeighborIndex] = None

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="cardtally-classify"
        )
        self._pending: Optional[concurrent.futures.Future] = None

        for tag in self.cache.load_persistent():
            self.editor.detect(tag, simplify=self.config.simplify)

        if storage is not None and storage.has_classifier():
            self._restore_classifier()

        self.display.refresh()

    @classmethod
    def open(
        cls,
        image_path: Union[str, Path],
        *,
        config: Optional[CountConfig] = None,
        **kwargs,
    ) -> SnapshotSession:
        """Open a photo, with storage next to it."""
        config = config if config is not None else CountConfig()
        logger.debug(f"Loading {image_path}")
        return cls(
            lambda: load_image(image_path, config.size_limit),
            storage=SnapshotStorage(image_path),
            config=config,
            **kwargs,
        )

    def __enter__(self) -> SnapshotSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Persist training masks and stop the classification worker."""
        logger.debug("Closing snapshot")
        self.cache.save_persistent()
        self._executor.shutdown(wait=True)

    def with_config(self, **changes) -> CountConfig:
        """Replace selected tunables; returns the new configuration."""
        self.config = dataclasses.replace(self.config, **changes)
        return self.config

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def set_train_mode(self, color: str) -> None:
        if color not in self.colors:
            raise ValueError(f"Unknown color {color!r}, expected one of {self.colors}")
        self.mode = Mode.TRAIN
        self.color = color
        self.display.refresh()

    def set_count_mode(self) -> None:
        self.mode = Mode.COUNT
        self.display.refresh()

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def pick(self, x: int, y: int) -> list:
        """
        Add the region around ``(x, y)`` to the active layer.

        In train mode that is the active color's training mask. In count
        mode it is the count mask of the color the classifier gave the
        clicked pixel, so counting must have run first.
        """
        height, width = self.cache.shape
        if not (0 <= x < width and 0 <= y < height):
            return []

        if self.mode is Mode.TRAIN:
            region = train_tag(self.color)
        elif self.mode is Mode.COUNT:
            if not self.cache.contains("indices") or self.palette is None:
                logger.warning("Count cards first!")
                return []
            entry = int(self.cache.get("indices")[y, x])
            region = count_tag(self.palette.group_of(entry))
        else:
            return []

        added = self.editor.pick(
            x, y, self.config.tolerance_fuzz, region, simplify=self.config.simplify
        )
        self.display.refresh()
        return added

    def unpick(self, x: int, y: int) -> list:
        """Erase the committed region under ``(x, y)`` from its mask."""
        if self.mode is Mode.INERT:
            return []
        removed = self.editor.unpick(x, y)
        self.display.refresh()
        return removed

    def merge_contours(self, rect: Rect) -> list:
        if self.mode is Mode.INERT:
            return []
        merged = self.editor.merge_contours(rect)
        self.display.refresh()
        return merged

    def clear_contours(self, rect: Rect) -> list:
        if self.mode is Mode.INERT:
            return []
        removed = self.editor.clear_contours(rect)
        self.display.refresh()
        return removed

    def reset_layer(self) -> None:
        """Forget the active color's training mask and polygons."""
        if self.mode is Mode.TRAIN:
            tag = train_tag(self.color)
            self.editor.clear_layer(tag)
            self.cache.invalidate(tag)
        self.display.refresh()

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train(self, *, max_iter: int = 10, seed: Optional[int] = 42) -> Palette:
        """
        Build a palette from the training masks and index it.

        The previous palette and index are discarded. With storage, the
        palette swatch and index are written next to the photo.

        Raises:
            InsufficientTrainingData: If no color has marked samples
        """
        masks = {c: self.cache.get_optional(train_tag(c)) for c in self.colors}
        palette = train_palette(
            self.cache.get("lab"),
            masks,
            gradations=self.gradations,
            max_iter=max_iter,
            seed=seed,
        )
        self._set_palette(palette)
        self.index = NearestNeighborIndex.build(palette, self.index_config)

        if self.storage is not None:
            self.storage.save_palette(palette)
            self.index.save(self.storage.index_path)

        logger.debug(f"Built classifier over {len(palette)} palette entries")
        self.display.refresh()
        return palette

    def _set_palette(self, palette: Palette) -> None:
        self.palette = palette
        self.index = None
        self.cache.set("palette.lab", palette.lab)
        swatch = self.cache.get("palette.rgb").reshape(1, -1, 3)
        self.display.overlay_changed("train.palette", swatch)

    def _restore_classifier(self) -> None:
        try:
            palette = self.storage.load_palette()
        except (ValueError, OSError) as e:
            logger.warning(f"Could not restore palette from {self.storage.palette_path}: {e}")
            return
        if palette is None or palette.is_empty:
            return
        self._set_palette(palette)
        try:
            self.index = NearestNeighborIndex.load(
                self.storage.index_path, palette, self.index_config
            )
        except (ValueError, cv2.error) as e:
            logger.warning(f"Could not restore index from {self.storage.index_path}: {e}")

    # -------------------------------------------------------------------------
    # Counting
    # -------------------------------------------------------------------------

    @property
    def counting(self) -> bool:
        """True while a classification run is outstanding."""
        return self._pending is not None

    def start_count(self) -> concurrent.futures.Future:
        """
        Start classifying every pixel on the worker thread.

        Switches to count mode. Call :meth:`finish_count` to collect the
        result.

        Raises:
            ClassifierNotReady: If no palette index exists
            CountInProgress: If a previous run has not been finished
        """
        if self.index is None or self.palette is None:
            raise ClassifierNotReady("Teach me the colors first")
        if self._pending is not None:
            raise CountInProgress("A classification run is already outstanding")

        self.mode = Mode.COUNT
        self._pending = self._executor.submit(classify_pixels, self.cache.get("lab"), self.index)
        return self._pending

    def finish_count(self, timeout: Optional[float] = None) -> dict[str, int]:
        """
        Wait for the outstanding classification, then mask and count.

        Returns:
            Count per color

        Raises:
            RuntimeError: If no classification was started
            TimeoutError: If the run is still going after ``timeout``;
                it stays outstanding
        """
        future = self._pending
        if future is None:
            raise RuntimeError("No classification outstanding; call start_count() first")
        concurrent.futures.wait([future], timeout=timeout)
        if not future.done():
            raise TimeoutError("Classification is still running")

        self._pending = None
        result = future.result()

        self.cache.set("indices", result.indices)
        self.cache.set("dists", result.distances)
        return self.apply_threshold()

    def count(self) -> dict[str, int]:
        """Classify, mask and count synchronously."""
        self.start_count()
        return self.finish_count()

    @property
    def classification(self) -> Optional[ClassificationResult]:
        indices = self.cache.get_optional("indices")
        dists = self.cache.get_optional("dists")
        if indices is None or dists is None:
            return None
        return ClassificationResult(indices=indices, distances=dists)

    def apply_threshold(self, threshold: Optional[float] = None) -> dict[str, int]:
        """
        Rebuild count masks and the color-difference overlay, then recount.

        Args:
            threshold: New per-channel tolerance (keeps the configured one
                when None)

        Returns:
            Count per color
        """
        if threshold is not None:
            self.with_config(color_diff_threshold=threshold)
        result = self.classification
        if result is None or self.palette is None:
            logger.warning("Count cards first!")
            return self.counts()

        masks = confidence_masks(
            result, self.palette, self.config.color_diff_threshold, self.colors
        )
        for color, mask in masks.items():
            self.cache.set(count_tag(color), mask)

        color_diff = color_diff_raster(result, self.palette, masks)
        self.cache.set("colorDiff", color_diff)
        self.display.overlay_changed("count.colorDiff", color_diff)
        return self.recount()

    def recount(self) -> dict[str, int]:
        """Re-trace all count masks with the current size filter."""
        for color in self.colors:
            tag = count_tag(color)
            self.editor.clear_layer(tag)
            self.editor.detect(
                tag,
                area_min=self.config.area_min,
                simplify=self.config.simplify,
            )
        self.display.refresh()
        return self.counts()

    def counts(self, prefix: str = COUNT_PREFIX) -> dict[str, int]:
        """Committed polygons per color in the ``prefix`` layers."""
        return {c: self.layers.count(prefix + c) for c in self.colors}

    def report(self, sink: ResultSink) -> bool:
        """Send the current counts; failures are the sink's to log."""
        return sink.send(self.counts())

    def mask(self, tag: str) -> NDArray[np.uint8]:
        """Current mask for ``tag`` (blank if never edited)."""
        return self.cache.get(tag)
