# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Schema definitions for a counting snapshot.

Configuration and results are frozen dataclasses. Raster payloads are
NumPy arrays owned by the session cache; masks are edited in place there,
never through these records.
"""

from cardtally.schema.snapshot import (
    COLOR_NAMES,
    COUNT_PREFIX,
    GRADATIONS_PER_COLOR,
    INDEX_ALGORITHMS,
    PERSISTENT_MASKS,
    TRAIN_PREFIX,
    ClassificationResult,
    Contour,
    CountConfig,
    IndexConfig,
    Palette,
    Rect,
    count_tag,
    train_tag,
)

__all__ = [
    # Constants
    "COLOR_NAMES",
    "GRADATIONS_PER_COLOR",
    "PERSISTENT_MASKS",
    "TRAIN_PREFIX",
    "COUNT_PREFIX",
    "INDEX_ALGORITHMS",
    "train_tag",
    "count_tag",
    # Geometry
    "Rect",
    "Contour",
    # Pipeline data
    "Palette",
    "ClassificationResult",
    # Configuration
    "CountConfig",
    "IndexConfig",
]
