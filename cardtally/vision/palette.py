# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Palette training by per-color k-means clustering.

Every training mask marks sample pixels of one card color. The OKLab
values under each mask are clustered independently into a fixed number
of centers (gradations), so lighting variations of one color end up as
separate palette entries that still map back to the same group.

Groups with no marked pixels are skipped. The remaining groups are
concatenated in color order, which keeps ``entry // gradations`` a valid
group lookup.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import numpy as np
from numpy.typing import NDArray

from cardtally.errors import InsufficientTrainingData
from cardtally.schema import GRADATIONS_PER_COLOR, Palette
from cardtally.vision.colorspace import oklab_to_srgb_uint8, srgb_uint8_to_oklab

logger = logging.getLogger(__name__)


def collect_samples(
    lab: NDArray[np.float32],
    mask: NDArray[np.uint8],
) -> NDArray[np.float32]:
    """
    Gather the OKLab values of every marked pixel.

    Args:
        lab: (H, W, 3) working image
        mask: (H, W) training mask; any non-zero value marks a sample

    Returns:
        (N, 3) float32 sample array, N = number of marked pixels
    """
    if mask.shape != lab.shape[:2]:
        raise ValueError(
            f"Mask shape {mask.shape} does not match image shape {lab.shape[:2]}"
        )
    return lab[mask != 0].astype(np.float32, copy=False).reshape(-1, 3)


def train_palette(
    lab: NDArray[np.float32],
    masks: Mapping[str, Optional[NDArray[np.uint8]]],
    *,
    gradations: int = GRADATIONS_PER_COLOR,
    max_iter: int = 10,
    seed: Optional[int] = 42,
) -> Palette:
    """
    Build a new palette from training masks.

    Args:
        lab: (H, W, 3) OKLab working image
        masks: Training mask per color, in color-group order. A missing
            (None) or blank mask contributes no entries.
        gradations: Centers per color group
        max_iter: Maximum Lloyd iterations per group
        seed: Random seed for k-means++ seeding (None for random)

    Returns:
        Palette with exactly ``gradations`` entries per non-empty group

    Raises:
        InsufficientTrainingData: If every mask is empty
    """
    if gradations < 1:
        raise ValueError(f"gradations must be positive, got {gradations}")

    centers_list = []
    groups = []

    for color, mask in masks.items():
        if mask is None:
            continue
        samples = collect_samples(lab, mask)
        if len(samples) == 0:
            logger.debug(f"No training samples for {color}, skipping")
            continue

        centers, _ = _kmeans(
            samples.astype(np.float64),
            k=gradations,
            max_iter=max_iter,
            seed=seed,
        )
        logger.debug(f"Clustered {len(samples)} samples of {color} into {len(centers)} centers")
        centers_list.append(centers)
        groups.append(color)

    if not centers_list:
        raise InsufficientTrainingData("No training data: mark sample regions first")

    palette_lab = np.concatenate(centers_list).astype(np.float32)
    return Palette(
        lab=palette_lab,
        rgb=oklab_to_srgb_uint8(palette_lab),
        gradations=gradations,
        groups=tuple(groups),
    )


def palette_from_rgb(
    rgb: NDArray[np.uint8],
    groups: tuple[str, ...],
    gradations: int = GRADATIONS_PER_COLOR,
) -> Palette:
    """
    Rebuild a palette from its display colors (e.g. a saved swatch).

    The OKLab centers are recomputed from 8-bit colors, so they differ
    from the trained ones by quantization error.
    """
    rgb = np.asarray(rgb, dtype=np.uint8).reshape(-1, 3)
    return Palette(
        lab=srgb_uint8_to_oklab(rgb),
        rgb=rgb.copy(),
        gradations=gradations,
        groups=tuple(groups),
    )


def _kmeans(
    data: NDArray[np.float64],
    k: int,
    max_iter: int = 10,
    seed: Optional[int] = None,
) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
    """
    Vectorized k-means returning exactly ``k`` centers.

    Seeds with k-means++ over the distinct samples, then refines with
    Lloyd iterations on the full data. When there are fewer distinct
    samples than ``k`` (a uniformly colored region, say), the distinct
    values are repeated to fill all ``k`` slots.

    Args:
        data: Array of shape (N, D), N >= 1
        k: Number of clusters
        max_iter: Maximum iterations
        seed: Random seed

    Returns:
        (centroids, labels) where:
        - centroids: (k, D) array of cluster centers
        - labels: (N,) array of cluster assignments
    """
    rng = np.random.default_rng(seed)
    n, d = data.shape

    if n == 0:
        raise ValueError("No valid data points for clustering")

    unique_data = np.unique(data, axis=0)
    n_unique = len(unique_data)
    k_eff = min(k, n_unique)

    # k-means++ initialization
    centroids = np.empty((k_eff, d), dtype=np.float64)
    centroids[0] = unique_data[rng.integers(n_unique)]

    for i in range(1, k_eff):
        dists_to_centroids = np.sum(
            (unique_data[:, np.newaxis, :] - centroids[np.newaxis, :i, :]) ** 2,
            axis=2
        )
        dists = np.min(dists_to_centroids, axis=1)
        total = dists.sum()
        if total == 0:
            centroids[i] = unique_data[rng.integers(n_unique)]
        else:
            centroids[i] = unique_data[rng.choice(n_unique, p=dists / total)]

    labels = np.full(n, -1, dtype=np.int64)

    for _ in range(max_iter):
        old_labels = labels

        dists = np.sum(
            (data[:, np.newaxis, :] - centroids[np.newaxis, :, :]) ** 2,
            axis=2
        )
        labels = np.argmin(dists, axis=1)

        if np.array_equal(labels, old_labels):
            break

        # empty clusters keep their previous center
        for j in range(k_eff):
            members = labels == j
            if np.any(members):
                centroids[j] = data[members].mean(axis=0)

    if k_eff < k:
        centroids = centroids[np.arange(k) % k_eff]

    return centroids, labels
