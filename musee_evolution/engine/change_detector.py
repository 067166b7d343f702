"""Pairwise change detection between two snapshots.

Pure functions; never raises for well-typed snapshots.  Missing claims or
metadata on either side simply skip that check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from musee_evolution.models.signals import COSMETIC_PROCEDURES
from musee_evolution.models.temporal import (
    PHYSICAL_PROPERTIES,
    ChangeType,
    Claim,
    ClaimProperty,
    Snapshot,
)

logger = logging.getLogger(__name__)

HEIGHT_THRESHOLD = 5.0          # same unit as stored claims (cm)
MIN_CONFIDENCE = 0.3

HEIGHT_CONFIDENCE = 0.9
COSMETIC_CONFIDENCE = 0.8
RELATIONSHIP_CONFIDENCE = 0.7
CONTENT_CONFIDENCE = 0.6


class EvidenceTag(str, Enum):
    """Closed vocabulary describing what a change's evidence is about."""
    HEIGHT = "height"
    WEIGHT = "weight"
    BODY = "body"
    MUSCLE = "muscle"
    FACIAL = "facial"
    NOSE = "nose"
    MOUTH = "mouth"
    COSMETIC = "cosmetic"
    RELATIONSHIP = "relationship"
    ASSET_COUNT = "asset_count"


FACIAL_TAGS = frozenset({EvidenceTag.FACIAL, EvidenceTag.NOSE, EvidenceTag.MOUTH})
FITNESS_TAGS = frozenset({EvidenceTag.HEIGHT, EvidenceTag.WEIGHT, EvidenceTag.BODY, EvidenceTag.MUSCLE})


@dataclass(frozen=True)
class DetectedChange:
    type: ChangeType
    description: str
    confidence: float
    evidence: tuple[str, ...]
    timestamp: datetime
    tags: frozenset[EvidenceTag] = frozenset()


def _measurement(claims: list[Claim], prop: ClaimProperty) -> Optional[float]:
    """First numeric claim for *prop*, ignoring string values."""
    for claim in claims:
        if claim.property == prop and claim.numeric_value is not None:
            return claim.numeric_value
    return None


def detect_physical_changes(old: Snapshot, new: Snapshot) -> list[DetectedChange]:
    changes: list[DetectedChange] = []

    old_physical = old.claims_for(*PHYSICAL_PROPERTIES)
    new_physical = new.claims_for(*PHYSICAL_PROPERTIES)

    # Only height is diffed numerically for now.
    old_h = _measurement(old_physical, ClaimProperty.HEIGHT)
    new_h = _measurement(new_physical, ClaimProperty.HEIGHT)
    if old_h is not None and new_h is not None and abs(new_h - old_h) > HEIGHT_THRESHOLD:
        changes.append(DetectedChange(
            type=ChangeType.PHYSICAL_APPEARANCE,
            description=f"Height changed from {old_h}cm to {new_h}cm",
            confidence=HEIGHT_CONFIDENCE,
            evidence=("Height measurement in biographical claims",),
            timestamp=new.timestamp,
            tags=frozenset({EvidenceTag.HEIGHT}),
        ))

    old_proc = old.metadata.get(COSMETIC_PROCEDURES)
    new_proc = new.metadata.get(COSMETIC_PROCEDURES)
    if old_proc is not None and new_proc is not None and old_proc != new_proc:
        changes.append(DetectedChange(
            type=ChangeType.PHYSICAL_APPEARANCE,
            description=f"Cosmetic procedures updated: {new_proc}",
            confidence=COSMETIC_CONFIDENCE,
            evidence=("Cosmetic procedures metadata changed",),
            timestamp=new.timestamp,
            tags=frozenset({EvidenceTag.COSMETIC}),
        ))

    return changes


def detect_lifestyle_changes(old: Snapshot, new: Snapshot) -> list[DetectedChange]:
    old_rel = [c.value for c in old.claims_for(ClaimProperty.RELATIONSHIP)]
    new_rel = [c.value for c in new.claims_for(ClaimProperty.RELATIONSHIP)]

    if old_rel == new_rel:
        return []
    return [DetectedChange(
        type=ChangeType.RELATIONSHIPS,
        description="Relationship information updated",
        confidence=RELATIONSHIP_CONFIDENCE,
        evidence=("Relationship claims changed between snapshots",),
        timestamp=new.timestamp,
        tags=frozenset({EvidenceTag.RELATIONSHIP}),
    )]


def detect_content_changes(old: Snapshot, new: Snapshot) -> list[DetectedChange]:
    old_count, new_count = len(old.media_refs), len(new.media_refs)
    if old_count == new_count:
        return []
    return [DetectedChange(
        type=ChangeType.OTHER,
        description=f"Content library size changed from {old_count} to {new_count} items",
        confidence=CONTENT_CONFIDENCE,
        evidence=("Asset count difference",),
        timestamp=new.timestamp,
        tags=frozenset({EvidenceTag.ASSET_COUNT}),
    )]


def detect_changes(old: Snapshot, new: Snapshot) -> list[DetectedChange]:
    """All changes between *old* and *new* with confidence of at least 0.3."""
    changes = (
        detect_physical_changes(old, new)
        + detect_lifestyle_changes(old, new)
        + detect_content_changes(old, new)
    )
    kept = [c for c in changes if c.confidence >= MIN_CONFIDENCE]
    logger.debug(f"{old.snapshot_id} -> {new.snapshot_id}: {len(kept)} change(s)")
    return kept


class ChangeDetector:
    """Object wrapper so callers can inject an alternative detector."""

    def detect_changes(self, old: Snapshot, new: Snapshot) -> list[DetectedChange]:
        return detect_changes(old, new)
