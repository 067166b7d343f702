"""Transformation classification across a whole timeline.

Two independent passes over the time-sorted snapshots:

1. Adjacent pairs: run the change detector, keep strong physical/health
   changes and classify them by evidence tag.
2. Gradual patterns: scan derived signals across the whole list for
   fitness, aging and cosmetic trends that no single pair would show.

Results are ordered by the start of their time range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from musee_evolution.engine.change_detector import (
    FACIAL_TAGS,
    FITNESS_TAGS,
    ChangeDetector,
    DetectedChange,
    EvidenceTag,
)
from musee_evolution.models.signals import (
    COSMETIC_PROCEDURES,
    MUSCLE_DEFINITION,
    SKIN_QUALITY,
    CosmeticProcedure,
    MuscleDefinition,
    SkinQuality,
)
from musee_evolution.models.temporal import ChangeType, Snapshot, Timeline

logger = logging.getLogger(__name__)

SIGNIFICANT_CONFIDENCE = 0.7
SURGICAL_CONFIDENCE = 0.9
PHYSICAL_TYPES = frozenset({ChangeType.PHYSICAL_APPEARANCE, ChangeType.HEALTH})

FITNESS_MIN_POINTS = 3
FITNESS_MIN_GAIN = 0.2
FITNESS_CONFIDENCE = 0.75

AGING_MIN_YEARS = 1.0
AGING_MIN_DECLINE = 0.1
AGING_CONFIDENCE = 0.65

GRADUAL_COSMETIC_CONFIDENCE = 0.70

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


class TransformationType(str, Enum):
    SURGICAL = "surgical"
    COSMETIC = "cosmetic"
    FITNESS = "fitness"
    AGING = "aging"
    WEIGHT_CHANGE = "weight_change"
    HAIR_CHANGE = "hair_change"
    MAKEUP_CHANGE = "makeup_change"
    LIGHTING_CHANGE = "lighting_change"
    UNKNOWN = "unknown"


DESCRIPTION_PREFIX = {
    TransformationType.SURGICAL: "Surgical transformation detected",
    TransformationType.COSMETIC: "Cosmetic enhancement",
    TransformationType.FITNESS: "Fitness transformation",
    TransformationType.AGING: "Natural aging changes",
    TransformationType.WEIGHT_CHANGE: "Weight change",
    TransformationType.HAIR_CHANGE: "Hair styling changes",
    TransformationType.MAKEUP_CHANGE: "Makeup technique changes",
    TransformationType.LIGHTING_CHANGE: "Lighting/studio changes",
    TransformationType.UNKNOWN: "Unclassified transformation",
}


@dataclass(frozen=True)
class DetectedTransformation:
    type: TransformationType
    confidence: float
    description: str
    evidence: tuple[str, ...]
    start: datetime
    end: datetime
    before_snapshot: Optional[Snapshot] = None
    after_snapshot: Optional[Snapshot] = None
    __hash__ = None


# ═══════════════════════════════════════════════════════════════════════════
# Adjacent-pair pass
# ═══════════════════════════════════════════════════════════════════════════

def classify_transformation(changes: list[DetectedChange]) -> TransformationType:
    """Decision table over evidence tags.

    ``surgical`` looks at the confidence of the *first* qualifying change,
    not the strongest one.
    """
    def has(tags: frozenset[EvidenceTag]) -> bool:
        return any(c.tags & tags for c in changes)

    first_confidence = changes[0].confidence if changes else 0.0
    if has(FACIAL_TAGS) and first_confidence > SURGICAL_CONFIDENCE:
        return TransformationType.SURGICAL
    if has(frozenset({EvidenceTag.COSMETIC})):
        return TransformationType.COSMETIC
    if has(FITNESS_TAGS):
        return TransformationType.FITNESS
    return TransformationType.UNKNOWN


def describe_transformation(kind: TransformationType, changes: list[DetectedChange]) -> str:
    joined = ", ".join(c.description for c in changes)
    return f"{DESCRIPTION_PREFIX[kind]}: {joined}"


def analyze_pair(
    before: Snapshot,
    after: Snapshot,
    detector: ChangeDetector,
) -> Optional[DetectedTransformation]:
    significant = [
        c for c in detector.detect_changes(before, after)
        if c.confidence > SIGNIFICANT_CONFIDENCE and c.type in PHYSICAL_TYPES
    ]
    if not significant:
        return None

    kind = classify_transformation(significant)
    return DetectedTransformation(
        type=kind,
        confidence=sum(c.confidence for c in significant) / len(significant),
        description=describe_transformation(kind, significant),
        evidence=tuple(e for c in significant for e in c.evidence),
        start=before.timestamp,
        end=after.timestamp,
        before_snapshot=before,
        after_snapshot=after,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Gradual-pattern pass
# ═══════════════════════════════════════════════════════════════════════════

def detect_fitness_pattern(snapshots: list[Snapshot]) -> Optional[DetectedTransformation]:
    if len(snapshots) < FITNESS_MIN_POINTS:
        return None

    points: list[tuple[datetime, float]] = []
    for snap in snapshots:
        signal = snap.signals.get(MUSCLE_DEFINITION)
        if isinstance(signal, MuscleDefinition):
            points.append((snap.timestamp, signal.value))

    if len(points) < FITNESS_MIN_POINTS:
        return None

    points.sort(key=lambda p: p[0])
    first, last = points[0], points[-1]
    if last[1] <= first[1] + FITNESS_MIN_GAIN:
        return None

    return DetectedTransformation(
        type=TransformationType.FITNESS,
        confidence=FITNESS_CONFIDENCE,
        description=f"Gradual fitness improvement detected over {len(points)} snapshots",
        evidence=(f"Muscle definition increased from {first[1]} to {last[1]}",),
        start=first[0],
        end=last[0],
        before_snapshot=snapshots[0],
        after_snapshot=snapshots[-1],
    )


def detect_aging_pattern(snapshots: list[Snapshot]) -> Optional[DetectedTransformation]:
    if len(snapshots) < 2:
        return None

    first_snap, last_snap = snapshots[0], snapshots[-1]
    years = (last_snap.timestamp - first_snap.timestamp).total_seconds() / SECONDS_PER_YEAR
    if years < AGING_MIN_YEARS:
        return None

    qualities = [
        signal.value
        for signal in (s.signals.get(SKIN_QUALITY) for s in snapshots)
        if isinstance(signal, SkinQuality)
    ]
    if len(qualities) < 2 or not qualities[-1] < qualities[0] - AGING_MIN_DECLINE:
        return None

    return DetectedTransformation(
        type=TransformationType.AGING,
        confidence=AGING_CONFIDENCE,
        description=f"Natural aging detected over {years:.1f} years",
        evidence=(f"Skin quality decreased from {qualities[0]} to {qualities[-1]}",),
        start=first_snap.timestamp,
        end=last_snap.timestamp,
        before_snapshot=first_snap,
        after_snapshot=last_snap,
    )


def detect_cosmetic_pattern(snapshots: list[Snapshot]) -> Optional[DetectedTransformation]:
    entries: list[tuple[datetime, str]] = []
    for snap in snapshots:
        signal = snap.signals.get(COSMETIC_PROCEDURES)
        if isinstance(signal, CosmeticProcedure):
            entries.append((snap.timestamp, signal.name))

    if len(entries) < 2:
        return None

    distinct = list(dict.fromkeys(name for _, name in entries))
    if len(distinct) <= 1:
        return None

    return DetectedTransformation(
        type=TransformationType.COSMETIC,
        confidence=GRADUAL_COSMETIC_CONFIDENCE,
        description="Gradual cosmetic changes detected over time",
        evidence=(f"Procedures changed: {' → '.join(distinct)}",),
        start=entries[0][0],
        end=entries[-1][0],
        before_snapshot=snapshots[0],
        after_snapshot=snapshots[-1],
    )


def detect_gradual_changes(snapshots: list[Snapshot]) -> list[DetectedTransformation]:
    found = [
        detect_fitness_pattern(snapshots),
        detect_aging_pattern(snapshots),
        detect_cosmetic_pattern(snapshots),
    ]
    return [t for t in found if t is not None]


# ═══════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════

class TransformationDetector:
    def __init__(self, change_detector: ChangeDetector | None = None):
        self.change_detector = change_detector or ChangeDetector()

    def detect_transformations(self, timeline: Timeline) -> list[DetectedTransformation]:
        snapshots = sorted(timeline.snapshots, key=lambda s: s.timestamp)

        transformations: list[DetectedTransformation] = []
        for before, after in zip(snapshots, snapshots[1:]):
            found = analyze_pair(before, after, self.change_detector)
            if found is not None:
                transformations.append(found)

        transformations.extend(detect_gradual_changes(snapshots))
        transformations.sort(key=lambda t: t.start)

        logger.debug(f"Detected {len(transformations)} transformation(s) over {len(snapshots)} snapshots")
        return transformations


def detect_transformations(timeline: Timeline) -> list[DetectedTransformation]:
    return TransformationDetector().detect_transformations(timeline)
