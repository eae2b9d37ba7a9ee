# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Display surface interface.

The pipeline pushes polygons and overlay rasters to whatever renders
them and never reads anything back. All calls are fire-and-forget.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from cardtally.schema import Contour


class DisplaySurface(Protocol):
    """Receiver of visual updates from a session."""

    def polygon_added(self, contour: Contour) -> None:
        ...

    def polygon_removed(self, contour: Contour) -> None:
        ...

    def overlay_changed(self, name: str, raster: NDArray[np.uint8]) -> None:
        """A named raster layer (palette swatch, color difference) was replaced."""
        ...

    def refresh(self) -> None:
        """Redraw; called after every completed user-level operation."""
        ...


class NullDisplay:
    """Display surface that discards every update."""

    def polygon_added(self, contour: Contour) -> None:
        pass

    def polygon_removed(self, contour: Contour) -> None:
        pass

    def overlay_changed(self, name: str, raster: NDArray[np.uint8]) -> None:
        pass

    def refresh(self) -> None:
        pass
