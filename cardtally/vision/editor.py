# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Interactive mask editing.

Masks are the source of truth; committed polygons are a disposable view
of them, kept in :class:`ContourLayers` so the user can point at, merge
or erase regions. Every edit writes the mask first and then refreshes the
affected polygons.

Flood fills are 4-connected and fixed-range: the tolerance is measured
against the seed pixel, not between neighbours, so a pick cannot creep
along a gradient.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import cv2
import numpy as np
from shapely.geometry import MultiPoint, Point, Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from cardtally.schema import Contour, Rect
from cardtally.vision.contours import convex_hull, extract_contours, image_rect, paint_contour

if TYPE_CHECKING:
    from cardtally.runtime.cache import DerivedDataCache
    from cardtally.runtime.display import DisplaySurface

logger = logging.getLogger(__name__)

_PICK_FLAGS = 4 | (255 << 8) | cv2.FLOODFILL_MASK_ONLY | cv2.FLOODFILL_FIXED_RANGE
_ERASE_FLAGS = 4 | cv2.FLOODFILL_FIXED_RANGE


def contour_shape(contour: Contour) -> BaseGeometry:
    """
    Geometry used for hit testing a contour.

    Vertices sit on pixel centers. Regions thinner than a pixel trace to
    fewer than three points or a zero-area ring; those get a half-pixel
    buffer so they can still be clicked.
    """
    points = contour.points.astype(np.float64)
    if len(points) >= 3:
        shape = make_valid(Polygon(points))
        if shape.area > 0:
            return shape
    return MultiPoint(points).convex_hull.buffer(0.5)


def rect_shape(rect: Rect) -> Polygon:
    """Footprint of a pixel rectangle: every covered pixel center plus half a pixel."""
    return box(rect.x - 0.5, rect.y - 0.5, rect.right - 0.5, rect.bottom - 0.5)


class ContourLayers:
    """Committed polygons grouped by owning region."""

    def __init__(self, display: Optional[DisplaySurface] = None) -> None:
        self._layers: dict[str, list[Contour]] = {}
        self._shapes: dict[Contour, BaseGeometry] = {}
        self.display = display

    def add(self, contour: Contour) -> None:
        self._layers.setdefault(contour.region, []).append(contour)
        self._shapes[contour] = contour_shape(contour)
        if self.display is not None:
            self.display.polygon_added(contour)

    def remove(self, contour: Contour) -> None:
        self._layers[contour.region].remove(contour)
        del self._shapes[contour]
        if self.display is not None:
            self.display.polygon_removed(contour)

    def clear(self, region: str) -> list[Contour]:
        removed = list(self._layers.get(region, ()))
        for contour in removed:
            self.remove(contour)
        return removed

    def contours(self, region: Optional[str] = None) -> list[Contour]:
        if region is not None:
            return list(self._layers.get(region, ()))
        return [c for layer in self._layers.values() for c in layer]

    def count(self, region: str) -> int:
        return len(self._layers.get(region, ()))

    def at_point(self, x: float, y: float) -> list[Contour]:
        """Contours whose shape contains or touches the point."""
        point = Point(x, y)
        return [c for c in self.contours() if self._shapes[c].intersects(point)]

    def intersecting(self, rect: Rect, region: Optional[str] = None) -> list[Contour]:
        """Contours of ``region`` (or any region) overlapping ``rect``."""
        area = rect_shape(rect)
        return [c for c in self.contours(region) if self._shapes[c].intersects(area)]

    def within(self, rect: Rect) -> list[Contour]:
        """Contours lying entirely inside ``rect``."""
        area = rect_shape(rect)
        return [c for c in self.contours() if area.covers(self._shapes[c])]


class RegionEditor:
    """
    Flood-fill based editing of region masks.

    Args:
        cache: Source of the ``"lab"`` working image and of region masks
        layers: Committed polygons, updated alongside the masks
    """

    def __init__(self, cache: DerivedDataCache, layers: ContourLayers) -> None:
        self._cache = cache
        self.layers = layers

    def detect(
        self,
        region: str,
        roi: Optional[Rect] = None,
        *,
        area_min: float = 0.0,
        simplify: float = 1.0,
    ) -> list[Contour]:
        """Extract contours of a region mask (optionally inside ``roi``) and commit them."""
        if not self._cache.contains(region):
            return []
        contours = extract_contours(
            self._cache.get(region),
            region,
            roi=roi,
            area_min=area_min,
            simplify=simplify,
        )
        for contour in contours:
            self.layers.add(contour)
        return contours

    def commit(self, contour: Contour, paint: bool = False) -> None:
        """Add a polygon to its layer, optionally filling it into the mask."""
        if paint:
            paint_contour(self._cache.get(contour.region), contour)
        self.layers.add(contour)

    def pick(
        self,
        x: int,
        y: int,
        fuzz: float,
        region: str,
        *,
        simplify: float = 1.0,
    ) -> list[Contour]:
        """
        Add the color region around a seed to a mask.

        Flood fills the working image from ``(x, y)`` with per-channel
        tolerance ``fuzz``, ORs the filled pixels into the ``region`` mask,
        then re-traces the contours around the change. Polygons of the
        same region touching the fill are replaced.

        Returns:
            The newly committed contours (empty for a no-op)
        """
        lab = self._cache.get("lab")
        full = image_rect(lab)
        if not full.contains_point(x, y):
            return []

        mask = self._cache.get(region)
        height, width = lab.shape[:2]
        filled_mask = np.zeros((height + 2, width + 2), dtype=np.uint8)
        tolerance = (float(fuzz),) * 3
        filled, _, _, rect = cv2.floodFill(
            lab,
            filled_mask,
            (int(x), int(y)),
            0,  # unused with FLOODFILL_MASK_ONLY
            tolerance,
            tolerance,
            _PICK_FLAGS,
        )
        if filled < 1:
            return []

        bounds = Rect(*(int(v) for v in rect))
        rows, cols = bounds.slices()
        mask[rows, cols] |= filled_mask[1:-1, 1:-1][rows, cols]

        # Every polygon reaching into the re-traced area is re-traced with it,
        # so no region ends up with two polygons.
        roi = bounds.grow(1).intersect(full)
        touching = self.layers.intersecting(roi.grow(1), region=region)
        while touching:
            for contour in touching:
                roi = roi.union(contour.bounds)
                self.layers.remove(contour)
            roi = roi.grow(1).intersect(full)
            touching = self.layers.intersecting(roi.grow(1), region=region)

        logger.debug(f"Picked {filled} pixels into {region}, re-tracing {roi}")
        return self.detect(region, roi, simplify=simplify)

    def unpick(self, x: int, y: int) -> list[Contour]:
        """
        Erase the region under a point.

        Every committed polygon containing ``(x, y)`` is removed, and its
        mask is flood filled with zero from that point. A simplified
        polygon can cover background pixels; a click on one erases from
        the polygon's first vertex instead.

        Returns:
            The removed contours (empty for a no-op)
        """
        hits = self.layers.at_point(x, y)
        for contour in hits:
            mask = self._cache.get(contour.region)
            seed = contour.seed
            if image_rect(mask).contains_point(x, y) and mask[int(y), int(x)] != 0:
                seed = (int(x), int(y))
            cv2.floodFill(mask, None, seed, 0, 0, 0, _ERASE_FLAGS)
            self.layers.remove(contour)
        return hits

    def merge_contours(self, rect: Rect) -> list[Contour]:
        """
        Merge the polygons inside ``rect`` into one per region.

        Regions with two or more polygons fully inside ``rect`` are
        replaced by the convex hull of those polygons, which is also
        painted into the mask. Other regions are left alone.

        Returns:
            The committed hull contours
        """
        grouped: dict[str, list[Contour]] = {}
        for contour in self.layers.within(rect):
            grouped.setdefault(contour.region, []).append(contour)

        merged = []
        for region, group in grouped.items():
            if len(group) < 2:
                continue
            hull = convex_hull(group, region)
            for contour in group:
                self.layers.remove(contour)
            self.commit(hull, paint=True)
            merged.append(hull)
            logger.debug(f"Merged {len(group)} polygons of {region}")
        return merged

    def clear_contours(self, rect: Rect) -> list[Contour]:
        """
        Erase every polygon lying inside ``rect``.

        Each mask region is flood filled with zero from the polygon's first
        vertex (always a pixel of the traced region). Nothing is re-traced.

        Returns:
            The removed contours
        """
        removed = self.layers.within(rect)
        for contour in removed:
            mask = self._cache.get(contour.region)
            cv2.floodFill(mask, None, contour.seed, 0, 0, 0, _ERASE_FLAGS)
            self.layers.remove(contour)
        return removed

    def clear_layer(self, region: str) -> list[Contour]:
        """Drop all committed polygons of a region, leaving its mask as is."""
        return self.layers.clear(region)
