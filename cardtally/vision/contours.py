# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Contour extraction from binary masks.

Only outer boundaries are traced; holes inside a region are ignored.
Each region is one countable object.
"""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np
from numpy.typing import NDArray

from cardtally.schema import Contour, Rect


def image_rect(raster: NDArray) -> Rect:
    """Rectangle covering a whole raster."""
    height, width = raster.shape[:2]
    return Rect(0, 0, width, height)


def extract_contours(
    mask: NDArray[np.uint8],
    region: str,
    *,
    roi: Optional[Rect] = None,
    area_min: float = 0.0,
    simplify: float = 1.0,
) -> list[Contour]:
    """
    Trace the outer contours of a mask.

    Args:
        mask: (H, W) uint8 mask; non-zero pixels are foreground
        region: Owner name stamped on every returned contour
        roi: Restrict tracing to this rectangle (clipped to the mask).
            Returned points are in full-image coordinates.
        area_min: Drop contours whose traced area is below this
        simplify: approxPolyDP epsilon in pixels; 0 keeps raw points

    Returns:
        New list of contours. The mask is not modified.
    """
    full = image_rect(mask)
    roi = full if roi is None else roi.intersect(full)
    if roi.is_empty():
        return []

    rows, cols = roi.slices()
    # findContours may modify its input on older OpenCV releases
    scratch = np.ascontiguousarray(mask[rows, cols], dtype=np.uint8).copy()
    found, _ = cv2.findContours(
        scratch,
        cv2.RETR_EXTERNAL,
        cv2.CHAIN_APPROX_TC89_L1,
        offset=(roi.x, roi.y),
    )

    contours = []
    for raw in found:
        if cv2.contourArea(raw) < area_min:
            continue
        if simplify > 0:
            raw = cv2.approxPolyDP(raw, simplify, True)
        contours.append(Contour(region=region, points=raw.reshape(-1, 2).astype(np.int32)))
    return contours


def paint_contour(mask: NDArray[np.uint8], contour: Contour, value: int = 255) -> None:
    """Fill the polygon of ``contour`` into ``mask`` in place."""
    cv2.fillPoly(mask, [contour.points.reshape(-1, 1, 2)], int(value))


def convex_hull(contours: list[Contour], region: str) -> Contour:
    """Convex hull of the union of several contours."""
    points = np.concatenate([c.points for c in contours]).reshape(-1, 1, 2)
    hull = cv2.convexHull(points)
    return Contour(region=region, points=hull.reshape(-1, 2).astype(np.int32))
