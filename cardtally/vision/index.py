# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Nearest-neighbour search over the palette.

Wraps OpenCV's FLANN index. The index is built once per palette, can be
saved next to the palette swatch and restored in later sessions, and
answers 1-NN queries for arbitrary OKLab pixels.

A restored index is only meaningful over the palette it was built from.
Nothing here checks that: callers rebuild whenever the palette changes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np
from numpy.typing import NDArray

from cardtally.errors import InsufficientTrainingData
from cardtally.schema import IndexConfig, Palette

logger = logging.getLogger(__name__)

# cvflann::flann_algorithm_t
FLANN_INDEX_LINEAR = 0
FLANN_INDEX_KDTREE = 1

# cvflann::flann_checks_t
FLANN_CHECKS_UNLIMITED = -1


def _index_params(config: IndexConfig) -> dict:
    if config.algorithm == "linear":
        return {"algorithm": FLANN_INDEX_LINEAR}
    return {"algorithm": FLANN_INDEX_KDTREE, "trees": int(config.trees)}


def _as_features(values: NDArray[np.floating]) -> NDArray[np.float32]:
    features = np.ascontiguousarray(values, dtype=np.float32)
    if features.ndim != 2 or features.shape[1] != 3:
        raise ValueError(f"Expected (N, 3) OKLab values, got shape {features.shape}")
    return features


class NearestNeighborIndex:
    """
    FLANN index over palette OKLab centers.

    Use :meth:`build` or :meth:`load` rather than the constructor.
    """

    def __init__(
        self,
        flann: "cv2.flann_Index",
        features: NDArray[np.float32],
        config: IndexConfig,
    ) -> None:
        self._flann = flann
        # FLANN keeps a pointer into this buffer; it must outlive the index
        self._features = features
        self.config = config

    def __len__(self) -> int:
        return len(self._features)

    @classmethod
    def build(
        cls,
        palette: Palette,
        config: Optional[IndexConfig] = None,
    ) -> NearestNeighborIndex:
        """
        Build an index over ``palette.lab``.

        Raises:
            InsufficientTrainingData: If the palette is empty
        """
        if config is None:
            config = IndexConfig()
        if palette.is_empty:
            raise InsufficientTrainingData("No training data: cannot index an empty palette")

        features = _as_features(palette.lab)
        flann = cv2.flann_Index(features, _index_params(config))
        logger.debug(f"Built {config.algorithm} index over {len(features)} palette entries")
        return cls(flann, features, config)

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        palette: Palette,
        config: Optional[IndexConfig] = None,
    ) -> NearestNeighborIndex:
        """
        Restore an index saved with :meth:`save`.

        Args:
            path: Index file
            palette: The palette the index was built over
            config: Search settings (the saved structure keeps its own build
                parameters)

        Raises:
            FileNotFoundError: If ``path`` does not exist
            InsufficientTrainingData: If the palette is empty
            ValueError: If OpenCV cannot read the file
        """
        if config is None:
            config = IndexConfig()
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"No saved index at {path}")
        if palette.is_empty:
            raise InsufficientTrainingData("No training data: cannot index an empty palette")

        features = _as_features(palette.lab)
        flann = cv2.flann_Index()
        if not flann.load(features, str(path)):
            raise ValueError(f"Could not load index from {path}")
        logger.debug(f"Loaded index over {len(features)} palette entries from {path}")
        return cls(flann, features, config)

    def save(self, path: Union[str, Path]) -> None:
        """Write the index structure (not the palette) to ``path``."""
        self._flann.save(str(path))

    def knn(
        self,
        query: NDArray[np.floating],
        k: int = 1,
        *,
        exact: bool = True,
    ) -> tuple[NDArray[np.int32], NDArray[np.float32]]:
        """
        Find the ``k`` nearest palette entries of each query pixel.

        Args:
            query: (N, 3) OKLab values
            k: Neighbours per query, at most ``len(self)``
            exact: Search with unlimited checks. Set False for interactive
                queries to use the configured bounded effort.

        Returns:
            (indices, distances), each of shape (N, k). Distances are
            squared Euclidean.
        """
        if not 1 <= k <= len(self):
            raise ValueError(f"k must be in [1, {len(self)}], got {k}")
        query = _as_features(query)
        if len(query) == 0:
            return np.empty((0, k), np.int32), np.empty((0, k), np.float32)

        checks = FLANN_CHECKS_UNLIMITED if exact else int(self.config.checks)
        indices, dists = self._flann.knnSearch(query, k, params={"checks": checks})
        indices = np.asarray(indices, dtype=np.int32).reshape(len(query), k)
        dists = np.asarray(dists, dtype=np.float32).reshape(len(query), k)
        return indices, dists
