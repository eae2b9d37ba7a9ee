# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Value types for a counting snapshot.

Design principles:
- Immutable where possible: configuration and results are frozen dataclasses
- Raster data lives in NumPy arrays; masks are uint8 with values {0, 255}
- Coordinates are image pixels, x to the right and y down

Color groups:
    A palette holds ``gradations`` consecutive entries per trained color.
    The group of entry ``i`` is recovered by integer division,
    ``i // gradations``, so every group must occupy exactly ``gradations``
    rows and groups must be contiguous.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


# =============================================================================
# Constants
# =============================================================================

COLOR_NAMES: tuple[str, ...] = ("green", "pink", "yellow")

GRADATIONS_PER_COLOR = 4

TRAIN_PREFIX = "train.contours."
COUNT_PREFIX = "count.contours."

# Masks that survive across sessions
PERSISTENT_MASKS: tuple[str, ...] = tuple(TRAIN_PREFIX + c for c in COLOR_NAMES)


def train_tag(color: str) -> str:
    """Mask tag of the training layer for ``color``."""
    return TRAIN_PREFIX + color


def count_tag(color: str) -> str:
    """Mask tag of the counting layer for ``color``."""
    return COUNT_PREFIX + color


# =============================================================================
# Geometry
# =============================================================================


@dataclass(frozen=True, slots=True)
class Rect:
    """
    Integer axis-aligned rectangle in image coordinates.

    Covers pixels ``x <= px < x + width`` and ``y <= py < y + height``.
    """
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_bounds(cls, x0: int, y0: int, x1: int, y1: int) -> Rect:
        """Build from inclusive-exclusive corner bounds."""
        return cls(x0, y0, max(0, x1 - x0), max(0, y1 - y0))

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def grow(self, margin: int) -> Rect:
        return Rect(
            self.x - margin,
            self.y - margin,
            self.width + 2 * margin,
            self.height + 2 * margin,
        )

    def union(self, other: Rect) -> Rect:
        if self.is_empty():
            return other
        if other.is_empty():
            return self
        return Rect.from_bounds(
            min(self.x, other.x),
            min(self.y, other.y),
            max(self.right, other.right),
            max(self.bottom, other.bottom),
        )

    def intersect(self, other: Rect) -> Rect:
        return Rect.from_bounds(
            max(self.x, other.x),
            max(self.y, other.y),
            min(self.right, other.right),
            min(self.bottom, other.bottom),
        )

    def contains_point(self, x: float, y: float) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom

    def slices(self) -> tuple[slice, slice]:
        """Row/column slices selecting this rectangle from a raster."""
        return slice(self.y, self.bottom), slice(self.x, self.right)


# =============================================================================
# Palette
# =============================================================================


@dataclass(frozen=True, eq=False)
class Palette:
    """
    Trained color centers in two parallel representations.

    Attributes:
        lab: (N, 3) float32 OKLab centers, used for distance computation
        rgb: (N, 3) uint8 sRGB centers, used for display and the swatch file
        gradations: Entries per color group
        groups: Names of the color groups that emitted centers, in entry order.
            A color with no training samples is absent here.
    """
    lab: NDArray[np.float32]
    rgb: NDArray[np.uint8]
    gradations: int = GRADATIONS_PER_COLOR
    groups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.lab.ndim != 2 or self.lab.shape[1] != 3:
            raise ValueError(f"Expected (N, 3) lab palette, got shape {self.lab.shape}")
        if self.rgb.shape != self.lab.shape:
            raise ValueError(
                f"Palette representations disagree: lab {self.lab.shape}, rgb {self.rgb.shape}"
            )
        if len(self.lab) != len(self.groups) * self.gradations:
            raise ValueError(
                f"{len(self.lab)} entries cannot hold {len(self.groups)} groups "
                f"of {self.gradations}"
            )

    def __len__(self) -> int:
        return len(self.lab)

    @property
    def is_empty(self) -> bool:
        return len(self.lab) == 0

    def group_index(self, entry: int) -> int:
        return int(entry) // self.gradations

    def group_of(self, entry: int) -> str:
        """Name of the color group owning palette entry ``entry``."""
        return self.groups[self.group_index(entry)]

    def group_entries(self, color: str) -> NDArray[np.float32]:
        """The ``gradations`` OKLab centers of one color group."""
        i = self.groups.index(color)
        return self.lab[i * self.gradations:(i + 1) * self.gradations]


# =============================================================================
# Classification
# =============================================================================


@dataclass(frozen=True, eq=False)
class ClassificationResult:
    """
    Per-pixel nearest palette entry.

    Attributes:
        indices: (H, W) int32 index of the nearest palette entry
        distances: (H, W) float32 squared OKLab distance to that entry
    """
    indices: NDArray[np.int32]
    distances: NDArray[np.float32]

    @property
    def shape(self) -> tuple[int, int]:
        return self.indices.shape[:2]


# =============================================================================
# Contours
# =============================================================================


@dataclass(frozen=True, eq=False)
class Contour:
    """
    A simplified closed outer boundary of one connected mask region.

    Contours compare by identity: two extractions of the same mask give
    distinct but equal-looking records. Compare ``points`` to test shape
    equality.

    Attributes:
        region: Mask tag owning this polygon (e.g. ``"count.contours.pink"``)
        points: (K, 2) int32 vertices, x then y, in full image coordinates
    """
    region: str
    points: NDArray[np.int32]

    @property
    def area(self) -> float:
        """Enclosed polygon area (shoelace formula)."""
        if len(self.points) < 3:
            return 0.0
        x = self.points[:, 0].astype(np.float64)
        y = self.points[:, 1].astype(np.float64)
        return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)

    @property
    def bounds(self) -> Rect:
        """Bounding rectangle covering every vertex pixel."""
        x0, y0 = self.points.min(axis=0)
        x1, y1 = self.points.max(axis=0)
        return Rect.from_bounds(int(x0), int(y0), int(x1) + 1, int(y1) + 1)

    @property
    def seed(self) -> tuple[int, int]:
        """First vertex; always a pixel of the region it was traced from."""
        x, y = self.points[0]
        return int(x), int(y)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class CountConfig:
    """Tunables read by the pipeline operations."""

    # Per-channel flood fill tolerance for picking (OKLab units).
    # L spans 0-1, a/b roughly -0.4..0.4.
    tolerance_fuzz: float = 0.04

    # Minimum card side in pixels; counted regions need size_filter_min**2 area
    size_filter_min: int = 10

    # Per-channel color tolerance t; a pixel is confidently classified when
    # its squared distance to the nearest palette entry is below 3 * t**2
    color_diff_threshold: float = 0.06

    # Longer side of the working image in pixels
    size_limit: int = 1600

    # approxPolyDP epsilon; 0 keeps raw boundary points
    simplify: float = 1.0

    @property
    def area_min(self) -> float:
        return float(self.size_filter_min * self.size_filter_min)


INDEX_ALGORITHMS = ("linear", "kdtree")


@dataclass(frozen=True)
class IndexConfig:
    """Parameters for the nearest-neighbour index over the palette."""

    algorithm: str = "kdtree"

    # Randomized kd-trees to build
    trees: int = 4

    # Leaves visited per query in interactive (bounded-effort) searches
    checks: int = 32

    def __post_init__(self) -> None:
        if self.algorithm not in INDEX_ALGORITHMS:
            raise ValueError(
                f"Unknown index algorithm {self.algorithm!r}, "
                f"expected one of {INDEX_ALGORITHMS}"
            )
