# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Color space conversions for the working image and the palette.

Conversion chain: sRGB -> Linear RGB -> OKLab

The perceptual space is OKLab (https://bottosson.github.io/posts/oklab/).
Euclidean distance there tracks perceived difference, which is what the
nearest-neighbour classifier and the pick tolerance measure. L spans
[0, 1]; a and b stay within roughly [-0.4, 0.4] for sRGB colors.

Rasters are converted as float64 internally and returned as float32,
the type OpenCV's flood fill and FLANN operate on.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


# =============================================================================
# sRGB <-> Linear RGB
# =============================================================================


def srgb_to_linear(srgb: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert sRGB values [0,1] to linear RGB.

    Piecewise: linear below 0.04045, gamma 2.4 above.
    """
    srgb = np.asarray(srgb, dtype=np.float64)
    return np.where(
        srgb <= 0.04045,
        srgb / 12.92,
        np.power((srgb + 0.055) / 1.055, 2.4)
    )


def linear_to_srgb(linear: NDArray[np.float64]) -> NDArray[np.float64]:
    """Inverse of srgb_to_linear, clipped to [0,1]."""
    linear = np.maximum(np.asarray(linear, dtype=np.float64), 0.0)
    srgb = np.where(
        linear <= 0.0031308,
        linear * 12.92,
        1.055 * np.power(linear, 1.0 / 2.4) - 0.055
    )
    return np.clip(srgb, 0.0, 1.0)


# =============================================================================
# Linear RGB <-> OKLab
# =============================================================================

# Linear sRGB to LMS (cone responses)
_M1 = np.array([
    [0.4122214708, 0.5363325363, 0.0514459929],
    [0.2119034982, 0.6806995451, 0.1073969566],
    [0.0883024619, 0.2817188376, 0.6299787005],
], dtype=np.float64)

# LMS to OKLab
_M2 = np.array([
    [0.2104542553, 0.7936177850, -0.0040720468],
    [1.9779984951, -2.4285922050, 0.4505937099],
    [0.0259040371, 0.7827717662, -0.8086757660],
], dtype=np.float64)

_M1_INV = np.linalg.inv(_M1)
_M2_INV = np.linalg.inv(_M2)


def linear_rgb_to_oklab(rgb: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert linear RGB to OKLab.

    Args:
        rgb: Array of shape (..., 3) with linear RGB values

    Returns:
        Array of shape (..., 3) with OKLab values (L, a, b)
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    lms = rgb @ _M1.T
    # signed cube root keeps out-of-gamut values finite
    lms_cbrt = np.cbrt(lms)
    return lms_cbrt @ _M2.T


def oklab_to_linear_rgb(lab: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Convert OKLab to linear RGB.

    Args:
        lab: Array of shape (..., 3) with OKLab values (L, a, b)

    Returns:
        Array of shape (..., 3) with linear RGB values (may leave [0,1])
    """
    lab = np.asarray(lab, dtype=np.float64)
    lms = (lab @ _M2_INV.T) ** 3
    return lms @ _M1_INV.T


# =============================================================================
# Image-level helpers
# =============================================================================


def srgb_uint8_to_oklab(pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """
    Convert uint8 sRGB pixels [0,255] to float32 OKLab.

    Accepts any shape (..., 3): a whole (H, W, 3) image or an (N, 3) palette.
    """
    pixels = np.asarray(pixels)
    if pixels.shape[-1] != 3:
        raise ValueError(f"Expected (..., 3) pixels, got shape {pixels.shape}")
    srgb = pixels.astype(np.float64) / 255.0
    lab = linear_rgb_to_oklab(srgb_to_linear(srgb))
    return lab.astype(np.float32)


def oklab_to_srgb_uint8(lab: NDArray[np.floating]) -> NDArray[np.uint8]:
    """
    Convert OKLab values to displayable uint8 sRGB.

    Out-of-gamut colors are clipped.
    """
    lab = np.asarray(lab, dtype=np.float64)
    if lab.shape[-1] != 3:
        raise ValueError(f"Expected (..., 3) OKLab values, got shape {lab.shape}")
    srgb = linear_to_srgb(oklab_to_linear_rgb(lab))
    return np.round(srgb * 255.0).astype(np.uint8)


def squared_distance(
    lab1: NDArray[np.floating],
    lab2: NDArray[np.floating],
) -> NDArray[np.float64]:
    """
    Squared Euclidean OKLab distance along the last axis.

    This is the metric FLANN's L2 index reports, so classification
    distances can be compared against it directly.
    """
    delta = np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64)
    return np.sum(delta ** 2, axis=-1)
