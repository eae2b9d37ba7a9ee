# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Exceptions raised by the counting pipeline."""

from __future__ import annotations


class CardTallyError(Exception):
    """Base class for pipeline errors."""


class InsufficientTrainingData(CardTallyError, ValueError):
    """No color group has marked sample pixels, so no palette can be built."""


class ClassifierNotReady(CardTallyError, RuntimeError):
    """Classification was requested before a palette index exists."""


class CountInProgress(CardTallyError, RuntimeError):
    """A classification run is already outstanding for this session."""


class MissingArtifact(CardTallyError, KeyError):
    """A cache tag has no stored value and no rule to derive one."""
