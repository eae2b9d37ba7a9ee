# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""
Session runtime for Cardtally.

Owns the mutable state of one snapshot and talks to the outside:

1. Cache -- named rasters, derived lazily, some persisted per image
2. Storage -- masks, palette swatch and index on disk
3. Collaborators -- image source, display surface, result sink
"""

from cardtally.runtime.cache import DerivedDataCache, TagFamily
from cardtally.runtime.display import DisplaySurface, NullDisplay
from cardtally.runtime.imageio import load_image
from cardtally.runtime.reporting import HttpResultSink, ResultSink
from cardtally.runtime.session import Mode, SnapshotSession
from cardtally.runtime.storage import SnapshotStorage

__all__ = [
    "SnapshotSession",
    "Mode",
    "DerivedDataCache",
    "TagFamily",
    "SnapshotStorage",
    "load_image",
    "DisplaySurface",
    "NullDisplay",
    "ResultSink",
    "HttpResultSink",
]
