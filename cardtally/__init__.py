# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Cardtally -- trainable color classifier for counting cards in a photo.

Mark a few cards of each color, train a palette, and count every
connected region the classifier assigns to each color.

Quick start::

    from cardtally import SnapshotSession

    with SnapshotSession.open("table.jpg") as session:
        session.set_train_mode("green")
        session.pick(120, 80)
        session.train()
        session.count()   # {"green": 12, "pink": 0, "yellow": 0}
"""

from __future__ import annotations

__version__ = "1.0.0"

from cardtally.errors import (
    CardTallyError,
    ClassifierNotReady,
    CountInProgress,
    InsufficientTrainingData,
    MissingArtifact,
)
from cardtally.runtime import HttpResultSink, Mode, SnapshotSession
from cardtally.schema import (
    ClassificationResult,
    Contour,
    CountConfig,
    IndexConfig,
    Palette,
    Rect,
)

__all__ = [
    # Core API
    "SnapshotSession",
    "Mode",
    "HttpResultSink",
    # Types (commonly needed)
    "CountConfig",
    "IndexConfig",
    "Palette",
    "ClassificationResult",
    "Contour",
    "Rect",
    # Errors
    "CardTallyError",
    "InsufficientTrainingData",
    "ClassifierNotReady",
    "CountInProgress",
    "MissingArtifact",
    # Version
    "__version__",
]
