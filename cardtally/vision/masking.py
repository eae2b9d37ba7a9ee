# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Confidence masking of classification results.

A pixel counts toward a color only when it lies close enough to its
nearest palette entry. The tolerance ``t`` is given per channel, so the
squared-distance cut-off is ``3 * t**2``. Pixels beyond it belong to no
color. Each color mask is then opened (erode, dilate) with a 3x3 element
to drop isolated pixels before contours are traced.
"""

from __future__ import annotations

from typing import Iterable

import cv2
import numpy as np
from numpy.typing import NDArray

from cardtally.schema import COLOR_NAMES, ClassificationResult, Palette

_OPEN_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


def squared_threshold(color_diff_threshold: float) -> float:
    """Squared-distance cut-off for a per-channel tolerance."""
    return 3.0 * float(color_diff_threshold) ** 2


def confident_pixels(
    result: ClassificationResult,
    color_diff_threshold: float,
) -> NDArray[np.bool_]:
    """
    Pixels whose nearest palette entry is within tolerance.

    Raising the threshold never removes a pixel from this set.
    """
    return result.distances < squared_threshold(color_diff_threshold)


def confidence_masks(
    result: ClassificationResult,
    palette: Palette,
    color_diff_threshold: float,
    colors: Iterable[str] = COLOR_NAMES,
) -> dict[str, NDArray[np.uint8]]:
    """
    Split confidently classified pixels into one mask per color.

    Args:
        result: Output of classify_pixels
        palette: Palette the result indexes into
        color_diff_threshold: Per-channel OKLab tolerance
        colors: Colors to produce masks for. Colors missing from the
            palette get blank masks.

    Returns:
        Mapping color -> (H, W) uint8 mask with values {0, 255}
    """
    confident = confident_pixels(result, color_diff_threshold)
    group = result.indices // palette.gradations

    masks = {}
    for color in colors:
        mask = np.zeros(result.shape, dtype=np.uint8)
        if color in palette.groups:
            mask[confident & (group == palette.groups.index(color))] = 255
            mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, _OPEN_KERNEL)
        masks[color] = mask
    return masks


def color_diff_raster(
    result: ClassificationResult,
    palette: Palette,
    masks: dict[str, NDArray[np.uint8]],
) -> NDArray[np.uint8]:
    """
    Display raster: each masked pixel painted with its palette entry color.

    Only pixels that survived the opening of their own color mask are
    painted; everything else stays black.
    """
    raster = np.zeros(result.shape + (3,), dtype=np.uint8)
    group = result.indices // palette.gradations
    for color, mask in masks.items():
        if color not in palette.groups:
            continue
        shown = (mask != 0) & (group == palette.groups.index(color))
        raster[shown] = palette.rgb[result.indices[shown]]
    return raster
