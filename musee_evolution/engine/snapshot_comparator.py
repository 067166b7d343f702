"""Snapshot comparison and whole-timeline evolution reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from musee_evolution.engine.change_detector import ChangeDetector, DetectedChange
from musee_evolution.models.temporal import ChangeType, Snapshot, Timeline

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
SIGNIFICANCE_THRESHOLD = 0.7


class ChangeCategory(str, Enum):
    PHYSICAL = "physical"
    LIFESTYLE = "lifestyle"
    CONTENT = "content"
    METADATA = "metadata"


CATEGORY_MAP = {
    ChangeType.PHYSICAL_APPEARANCE: ChangeCategory.PHYSICAL,
    ChangeType.HEALTH: ChangeCategory.PHYSICAL,
    ChangeType.CAREER: ChangeCategory.LIFESTYLE,
    ChangeType.LIFESTYLE: ChangeCategory.LIFESTYLE,
    ChangeType.OTHER: ChangeCategory.CONTENT,
}


def category_for(change_type: ChangeType) -> ChangeCategory:
    return CATEGORY_MAP.get(change_type, ChangeCategory.METADATA)


@dataclass(frozen=True)
class ComparedChange:
    category: ChangeCategory
    field: str
    before_value: Optional[str]
    after_value: Optional[str]
    significance: float
    description: str
    evidence: tuple[str, ...]


@dataclass(frozen=True)
class ComparisonSummary:
    total_changes: int
    significant_changes: int
    physical_changes: int
    lifestyle_changes: int
    content_changes: int
    metadata_changes: int
    overall_change_magnitude: float     # 0.0-1.0
    change_velocity: float              # changes per day

    @property
    def has_major_transformation(self) -> bool:
        return self.overall_change_magnitude > 0.8 or self.significant_changes > 3

    @property
    def change_rate_description(self) -> str:
        v = self.change_velocity
        if v < 0.1:
            return "Minimal change over time"
        if v < 0.5:
            return "Gradual evolution"
        if v < 1.0:
            return "Moderate transformation"
        if v < 2.0:
            return "Rapid change"
        return "Dramatic transformation"


@dataclass(frozen=True)
class ComparisonResult:
    before: Snapshot
    after: Snapshot
    changes: tuple[ComparedChange, ...]
    summary: ComparisonSummary
    confidence: float
    __hash__ = None

    @property
    def time_difference(self) -> timedelta:
        return self.after.timestamp - self.before.timestamp

    @property
    def has_significant_changes(self) -> bool:
        return any(c.significance > SIGNIFICANCE_THRESHOLD for c in self.changes)


class EvolutionPattern(str, Enum):
    NONE = "none"
    STABLE = "stable"
    GRADUAL = "gradual"
    MODERATE = "moderate"
    ACTIVE = "active"


PATTERN_DESCRIPTIONS = {
    EvolutionPattern.NONE: "No data available",
    EvolutionPattern.STABLE: "Stable with minimal changes",
    EvolutionPattern.GRADUAL: "Gradual evolution over time",
    EvolutionPattern.MODERATE: "Moderate transformation pace",
    EvolutionPattern.ACTIVE: "Active transformation period",
}


@dataclass(frozen=True)
class EvolutionReport:
    comparisons: tuple[ComparisonResult, ...]
    total_changes: int
    significant_changes: int
    time_span: timedelta
    overall_magnitude: float
    average_change_velocity: float
    key_transformations: tuple[str, ...]
    pattern: EvolutionPattern = EvolutionPattern.NONE
    evolution_pattern: str = field(default="")
    __hash__ = None

    def __post_init__(self) -> None:
        if not self.evolution_pattern:
            object.__setattr__(self, "evolution_pattern", PATTERN_DESCRIPTIONS[self.pattern])

    @classmethod
    def empty(cls) -> EvolutionReport:
        return cls(
            comparisons=(),
            total_changes=0,
            significant_changes=0,
            time_span=timedelta(0),
            overall_magnitude=0.0,
            average_change_velocity=0.0,
            key_transformations=(),
        )

    @property
    def formatted_time_span(self) -> str:
        days = int(self.time_span.total_seconds() // SECONDS_PER_DAY)
        if days < 30:
            return f"{days} days"
        if days < 365:
            return f"{days // 30} months"
        return f"{days // 365} years"

    @property
    def transformation_intensity(self) -> str:
        m = self.overall_magnitude
        if m < 0.3:
            return "Minimal"
        if m < 0.6:
            return "Moderate"
        if m < 0.8:
            return "Significant"
        return "Major"


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def to_compared_change(change: DetectedChange) -> ComparedChange:
    return ComparedChange(
        category=category_for(change.type),
        field=change.evidence[0] if change.evidence else "unknown",
        before_value=None,
        after_value=None,
        significance=change.confidence,
        description=change.description,
        evidence=change.evidence,
    )


def summarize(changes: list[ComparedChange], elapsed: timedelta) -> ComparisonSummary:
    n = len(changes)
    mean_significance = sum(c.significance for c in changes) / max(1, n)
    days = elapsed.total_seconds() / SECONDS_PER_DAY

    def count(category: ChangeCategory) -> int:
        return sum(1 for c in changes if c.category == category)

    return ComparisonSummary(
        total_changes=n,
        significant_changes=sum(1 for c in changes if c.significance > SIGNIFICANCE_THRESHOLD),
        physical_changes=count(ChangeCategory.PHYSICAL),
        lifestyle_changes=count(ChangeCategory.LIFESTYLE),
        content_changes=count(ChangeCategory.CONTENT),
        metadata_changes=count(ChangeCategory.METADATA),
        overall_change_magnitude=min(1.0, mean_significance * n / 10.0),
        change_velocity=n / days if days > 0 else 0.0,
    )


def comparison_confidence(before: Snapshot, after: Snapshot, changes: list[ComparedChange]) -> float:
    """Data-completeness heuristic, clamped to [0, 1]."""
    confidence = 0.5
    for present in (before.claims, after.claims, before.media_refs, after.media_refs):
        if present:
            confidence += 0.1
    if any(c.significance > 0.8 for c in changes):
        confidence += 0.1
    # Under a day apart: likely noise
    if (after.timestamp - before.timestamp).total_seconds() < SECONDS_PER_DAY:
        confidence -= 0.1
    return max(0.0, min(1.0, confidence))


def classify_pattern(comparisons: list[ComparisonResult]) -> EvolutionPattern:
    """Pattern from the mean of per-pair change velocities."""
    if not comparisons:
        return EvolutionPattern.NONE
    velocity = sum(c.summary.change_velocity for c in comparisons) / len(comparisons)
    if velocity < 0.1:
        return EvolutionPattern.STABLE
    if velocity < 0.5:
        return EvolutionPattern.GRADUAL
    if velocity < 1.0:
        return EvolutionPattern.MODERATE
    return EvolutionPattern.ACTIVE


def key_transformations(comparisons: list[ComparisonResult]) -> list[str]:
    labels = []
    if any(c.summary.physical_changes > 0 and c.summary.overall_change_magnitude > 0.6
           for c in comparisons):
        labels.append("Major physical transformation detected")
    if any(c.summary.lifestyle_changes > 0 for c in comparisons):
        labels.append("Lifestyle or career changes identified")
    if any(c.summary.change_velocity > 1.0 for c in comparisons):
        labels.append("Rapid transformation period observed")
    return labels


# ═══════════════════════════════════════════════════════════════════════════
# Comparator
# ═══════════════════════════════════════════════════════════════════════════

class SnapshotComparator:
    def __init__(self, change_detector: ChangeDetector | None = None):
        self.change_detector = change_detector or ChangeDetector()

    def compare_snapshots(self, before: Snapshot, after: Snapshot) -> ComparisonResult:
        changes = [
            to_compared_change(c)
            for c in self.change_detector.detect_changes(before, after)
        ]
        return ComparisonResult(
            before=before,
            after=after,
            changes=tuple(changes),
            summary=summarize(changes, after.timestamp - before.timestamp),
            confidence=comparison_confidence(before, after, changes),
        )

    def generate_evolution_report(self, timeline: Timeline) -> EvolutionReport:
        if len(timeline.snapshots) < 2:
            return EvolutionReport.empty()

        snapshots = sorted(timeline.snapshots, key=lambda s: s.timestamp)
        comparisons = [
            self.compare_snapshots(before, after)
            for before, after in zip(snapshots, snapshots[1:])
        ]

        total = sum(len(c.changes) for c in comparisons)
        significant = sum(
            1 for c in comparisons for ch in c.changes if ch.significance > SIGNIFICANCE_THRESHOLD
        )
        span = snapshots[-1].timestamp - snapshots[0].timestamp
        span_days = span.total_seconds() / SECONDS_PER_DAY

        report = EvolutionReport(
            comparisons=tuple(comparisons),
            total_changes=total,
            significant_changes=significant,
            time_span=span,
            overall_magnitude=sum(c.summary.overall_change_magnitude for c in comparisons) / len(comparisons),
            average_change_velocity=total / span_days if span_days > 0 else 0.0,
            key_transformations=tuple(key_transformations(comparisons)),
            pattern=classify_pattern(comparisons),
        )
        logger.debug(f"Evolution report: {total} changes over {report.formatted_time_span}")
        return report
