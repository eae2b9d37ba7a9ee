# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Numeric core for Cardtally.

Palette training, nearest-neighbour classification, confidence masking,
contour extraction and flood-fill mask editing. Everything here works on
NumPy rasters handed in by the caller; session state lives in
cardtally.runtime.
"""

from cardtally.vision.classify import classify_pixels
from cardtally.vision.contours import extract_contours
from cardtally.vision.editor import ContourLayers, RegionEditor
from cardtally.vision.index import NearestNeighborIndex
from cardtally.vision.masking import color_diff_raster, confidence_masks
from cardtally.vision.palette import train_palette

__all__ = [
    "train_palette",
    "NearestNeighborIndex",
    "classify_pixels",
    "confidence_masks",
    "color_diff_raster",
    "extract_contours",
    "ContourLayers",
    "RegionEditor",
]
