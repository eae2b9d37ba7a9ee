# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Image source: decoding and rescaling of the photographed scene.

Produces the ``"input"`` raster: uint8 sRGB, shape (H, W, 3), with its
longer side equal to the configured size limit.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Union

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageCms

logger = logging.getLogger(__name__)


def load_image(path: Union[str, Path], size_limit: int) -> NDArray[np.uint8]:
    """
    Load a photo as sRGB and scale it to ``size_limit``.

    Embedded ICC profiles are converted to sRGB so colors match what
    the camera recorded. The image is resized (up or down) so that its
    longer side is exactly ``size_limit``, keeping the aspect ratio.

    Args:
        path: Image file
        size_limit: Target length of the longer side in pixels

    Returns:
        (H, W, 3) uint8 array
    """
    if size_limit < 1:
        raise ValueError(f"size_limit must be positive, got {size_limit}")

    img = Image.open(path)

    if "icc_profile" in img.info:
        if img.mode != "RGB":
            img = img.convert("RGB")
        try:
            embedded_profile = ImageCms.ImageCmsProfile(io.BytesIO(img.info["icc_profile"]))
            srgb_profile = ImageCms.createProfile("sRGB")
            img = ImageCms.profileToProfile(img, embedded_profile, srgb_profile)
        except ImageCms.PyCMSError as e:
            logger.debug(f"Ignoring unusable ICC profile in {path}: {e}")
    elif img.mode != "RGB":
        img = img.convert("RGB")

    pixels = np.array(img, dtype=np.uint8)
    return rescale(pixels, size_limit)


def rescale(pixels: NDArray[np.uint8], size_limit: int) -> NDArray[np.uint8]:
    """Resize so the longer side equals ``size_limit`` (Lanczos)."""
    height, width = pixels.shape[:2]
    longest = max(height, width)
    if longest == size_limit:
        return pixels

    scale = size_limit / longest
    new_width = max(1, round(width * scale))
    new_height = max(1, round(height * scale))
    logger.debug(f"Scaling input from {width}x{height} to {new_width}x{new_height}")

    img = Image.fromarray(pixels)
    img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)
    return np.array(img, dtype=np.uint8)
