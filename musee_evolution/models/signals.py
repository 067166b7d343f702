"""Typed view over the snapshot metadata bag.

Upstream scanners stash derived scalar signals in ``Snapshot.metadata``
as plain strings (``"muscle_definition": "0.62"``).  This module turns
the known keys into small tagged variants so the transformation scanners
never parse strings themselves.  Unknown keys stay in the raw bag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Union

logger = logging.getLogger(__name__)

MUSCLE_DEFINITION = "muscle_definition"
SKIN_QUALITY = "skin_quality"
COSMETIC_PROCEDURES = "cosmetic_procedures"


@dataclass(frozen=True)
class MuscleDefinition:
    value: float
    key: str = MUSCLE_DEFINITION


@dataclass(frozen=True)
class SkinQuality:
    value: float
    key: str = SKIN_QUALITY


@dataclass(frozen=True)
class CosmeticProcedure:
    name: str
    key: str = COSMETIC_PROCEDURES


Signal = Union[MuscleDefinition, SkinQuality, CosmeticProcedure]


def _parse_float(raw: str) -> float | None:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def parse_signal(key: str, raw: str) -> Signal | None:
    """Decode one metadata entry, or None if the key is unknown or unparseable."""
    if key == MUSCLE_DEFINITION:
        value = _parse_float(raw)
        return MuscleDefinition(value) if value is not None else None
    if key == SKIN_QUALITY:
        value = _parse_float(raw)
        return SkinQuality(value) if value is not None else None
    if key == COSMETIC_PROCEDURES:
        return CosmeticProcedure(str(raw))
    return None


def parse_signals(metadata: Mapping[str, str]) -> dict[str, Signal]:
    """Return every known signal present in *metadata*, keyed by name."""
    signals: dict[str, Signal] = {}
    for key, raw in metadata.items():
        signal = parse_signal(key, raw)
        if signal is not None:
            signals[key] = signal
        elif key in (MUSCLE_DEFINITION, SKIN_QUALITY):
            logger.debug("Skipping unparseable %s value %r", key, raw)
    return signals
