# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Whole-image pixel classification.

Every pixel of the working image is matched to its nearest palette entry
in one batched FLANN query. This is the slowest step of the pipeline
(linear in pixel count), which is why sessions run it on a worker thread.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from cardtally.errors import ClassifierNotReady
from cardtally.schema import ClassificationResult
from cardtally.vision.index import NearestNeighborIndex

logger = logging.getLogger(__name__)


def classify_pixels(
    lab: NDArray[np.float32],
    index: Optional[NearestNeighborIndex],
) -> ClassificationResult:
    """
    Classify every pixel of ``lab`` against the palette index.

    Args:
        lab: (H, W, 3) OKLab working image
        index: Index over the current palette

    Returns:
        ClassificationResult with (H, W) indices and squared distances

    Raises:
        ClassifierNotReady: If no index has been built or loaded
    """
    if index is None:
        raise ClassifierNotReady("Teach me the colors first: no palette index")
    if lab.ndim != 3 or lab.shape[2] != 3:
        raise ValueError(f"Expected (H, W, 3) image, got shape {lab.shape}")

    height, width = lab.shape[:2]
    started = time.perf_counter()

    indices, dists = index.knn(lab.reshape(-1, 3), k=1, exact=True)

    logger.debug(
        f"K-nearest neighbour search over {height * width} pixels "
        f"took {time.perf_counter() - started:.3f}s"
    )
    return ClassificationResult(
        indices=indices.reshape(height, width),
        distances=dists.reshape(height, width),
    )
