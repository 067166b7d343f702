"""EROSS score history: recording, trends, milestones and event correlations.

Analysis functions never raise on short input.  Too few entries yields a
neutral result (``stable`` trend, 0.5 confidence, no prediction) or an
empty list.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from musee_evolution.config.settings import CORRELATION_WINDOW_DAYS
from musee_evolution.engine.trend_analysis import linear_fit
from musee_evolution.models.temporal import (
    ChangeEvent,
    DateRange,
    ScoreEntry,
    ScoreHistory,
    Snapshot,
    Timeline,
    utc_now,
)
from musee_evolution.storage.timeline_store import TimelineStore

logger = logging.getLogger(__name__)

NEUTRAL_CONFIDENCE = 0.5
TREND_BAND = 0.05               # ±5% relative to the previous score
IMPROVEMENT_STEP = 0.1
HIGH_SCORE = 0.8
CONSISTENCY_MIN_COUNT = 3


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class ComparisonSignificance(str, Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    MAJOR = "major"


class MilestoneType(str, Enum):
    PEAK_SCORE = "peak_score"
    SIGNIFICANT_IMPROVEMENT = "significant_improvement"
    CONSISTENCY = "consistency"


class CorrelationStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


@dataclass(frozen=True)
class ScoreTrendAnalysis:
    current_score: float
    trend_direction: TrendDirection
    trend_magnitude: float
    prediction: Optional[float]
    confidence: float


@dataclass(frozen=True)
class ScorePeriodComparison:
    period_a_average: float
    period_b_average: float
    difference: float
    percent_change: float
    significance: ComparisonSignificance
    period_a_sample_size: int
    period_b_sample_size: int


@dataclass(frozen=True)
class ScoreMilestone:
    type: MilestoneType
    score: float
    timestamp: datetime
    description: str


@dataclass(frozen=True)
class ScoreEventCorrelation:
    event: ChangeEvent
    score_change: float
    correlation_strength: CorrelationStrength
    sample_size: int
    __hash__ = None


@dataclass(frozen=True)
class ScoreEvolutionReport:
    timeline: Timeline
    score_history: ScoreHistory
    trend_analysis: ScoreTrendAnalysis
    milestones: tuple[ScoreMilestone, ...]
    correlations: tuple[ScoreEventCorrelation, ...]
    insights: tuple[str, ...]
    generated_at: datetime = field(default_factory=utc_now)
    __hash__ = None

    @property
    def summary(self) -> str:
        values = [e.score for e in self.score_history.scores]
        low = min(values) if values else 0.0
        high = max(values) if values else 0.0
        avg = sum(values) / len(values) if values else 0.0
        snaps = self.timeline.snapshots
        start = snaps[0].timestamp.date().isoformat() if snaps else "Unknown"
        end = snaps[-1].timestamp.date().isoformat() if snaps else "Unknown"
        notable = sum(1 for c in self.correlations if c.correlation_strength != CorrelationStrength.WEAK)
        return "\n".join([
            "EROSS Score Evolution Report",
            f"Period: {start} - {end}",
            f"Score Range: {low:.2f} - {high:.2f}",
            f"Average Score: {avg:.2f}",
            f"Current Trend: {self.trend_analysis.trend_direction.value}",
            f"Key Milestones: {len(self.milestones)}",
            f"Significant Correlations: {notable}",
        ])


# ═══════════════════════════════════════════════════════════════════════════
# Pure analysis
# ═══════════════════════════════════════════════════════════════════════════

def score_confidence(components: dict[str, float]) -> float:
    """More components means more confidence; out-of-range values cost 20%."""
    base = min(0.9, 0.5 + 0.1 * len(components))
    if any(v < 0.0 or v > 1.0 for v in components.values()):
        return base * 0.8
    return base


def predict_next_score(values: list[float]) -> Optional[float]:
    """OLS of score against sequence index, evaluated one step past the end."""
    if len(values) < 3:
        return None
    slope, intercept = linear_fit(values)
    return max(0.0, min(1.0, slope * len(values) + intercept))


def trend_confidence(values: list[float]) -> float:
    """``1 - coefficient of variation``, clamped to [0, 1]."""
    if len(values) < 2:
        return NEUTRAL_CONFIDENCE
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.0
    cov = statistics.pstdev(values) / mean
    return max(0.0, min(1.0, 1.0 - cov))


def analyze_score_trends(history: ScoreHistory) -> ScoreTrendAnalysis:
    scores = history.scores
    if len(scores) < 2:
        return ScoreTrendAnalysis(
            current_score=scores[-1].score if scores else 0.0,
            trend_direction=TrendDirection.STABLE,
            trend_magnitude=0.0,
            prediction=None,
            confidence=NEUTRAL_CONFIDENCE,
        )

    current, previous = scores[-1].score, scores[-2].score
    if current > previous * (1 + TREND_BAND):
        direction = TrendDirection.IMPROVING
    elif current < previous * (1 - TREND_BAND):
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE

    delta = abs(current - previous)
    values = [e.score for e in scores]
    return ScoreTrendAnalysis(
        current_score=current,
        trend_direction=direction,
        trend_magnitude=delta / previous if previous > 0 else delta,
        prediction=predict_next_score(values),
        confidence=trend_confidence(values),
    )


def _significance(percent_change: float) -> ComparisonSignificance:
    pct = abs(percent_change)
    if pct < 1.0:
        return ComparisonSignificance.MINIMAL
    if pct < 5.0:
        return ComparisonSignificance.MODERATE
    if pct < 10.0:
        return ComparisonSignificance.SIGNIFICANT
    return ComparisonSignificance.MAJOR


def compare_score_periods(
    history: ScoreHistory,
    period_a: DateRange,
    period_b: DateRange,
) -> ScorePeriodComparison:
    a = [e.score for e in history.scores if e.timestamp in period_a]
    b = [e.score for e in history.scores if e.timestamp in period_b]
    avg_a = sum(a) / len(a) if a else 0.0
    avg_b = sum(b) / len(b) if b else 0.0
    difference = avg_b - avg_a
    percent = difference / avg_a * 100.0 if avg_a > 0 else 0.0
    return ScorePeriodComparison(
        period_a_average=avg_a,
        period_b_average=avg_b,
        difference=difference,
        percent_change=percent,
        significance=_significance(percent),
        period_a_sample_size=len(a),
        period_b_sample_size=len(b),
    )


def get_score_milestones(history: ScoreHistory) -> list[ScoreMilestone]:
    scores = history.scores
    if not scores:
        return []

    milestones: list[ScoreMilestone] = []

    peak = max(scores, key=lambda e: e.score)
    milestones.append(ScoreMilestone(
        type=MilestoneType.PEAK_SCORE,
        score=peak.score,
        timestamp=peak.timestamp,
        description=f"Peak EROSS score of {peak.score:.2f}",
    ))

    for prev, curr in zip(scores, scores[1:]):
        if curr.score > prev.score + IMPROVEMENT_STEP:
            milestones.append(ScoreMilestone(
                type=MilestoneType.SIGNIFICANT_IMPROVEMENT,
                score=curr.score,
                timestamp=curr.timestamp,
                description=f"Significant improvement from {prev.score:.2f} to {curr.score:.2f}",
            ))

    high = [e for e in scores if e.score >= HIGH_SCORE]
    if len(high) >= CONSISTENCY_MIN_COUNT:
        milestones.append(ScoreMilestone(
            type=MilestoneType.CONSISTENCY,
            score=sum(e.score for e in high) / len(high),
            timestamp=high[-1].timestamp,
            description=f"Consistent high scores ({len(high)} scores >= {HIGH_SCORE})",
        ))

    milestones.sort(key=lambda m: m.timestamp)
    return milestones


def analyze_score_event_correlations(
    timeline: Timeline,
    history: ScoreHistory,
    window_days: int = CORRELATION_WINDOW_DAYS,
) -> list[ScoreEventCorrelation]:
    window = timedelta(days=window_days)
    correlations = []

    for event in timeline.change_events:
        span = DateRange(event.timestamp - window, event.timestamp + window)
        nearby = [e for e in history.scores if e.timestamp in span]
        if len(nearby) < 2:
            continue

        before = [e.score for e in nearby if e.timestamp < event.timestamp]
        after = [e.score for e in nearby if e.timestamp > event.timestamp]
        if not before or not after:
            continue

        change = sum(after) / len(after) - sum(before) / len(before)
        if abs(change) > 0.1:
            strength = CorrelationStrength.STRONG
        elif abs(change) > 0.05:
            strength = CorrelationStrength.MODERATE
        else:
            strength = CorrelationStrength.WEAK

        correlations.append(ScoreEventCorrelation(
            event=event,
            score_change=change,
            correlation_strength=strength,
            sample_size=len(nearby),
        ))

    return correlations


def evolution_insights(
    trend: ScoreTrendAnalysis,
    milestones: list[ScoreMilestone],
    correlations: list[ScoreEventCorrelation],
) -> list[str]:
    insights = []
    pct = trend.trend_magnitude * 100
    if trend.trend_direction == TrendDirection.IMPROVING:
        insights.append(f"EROSS scores are trending upward with {pct:.1f}% improvement")
    elif trend.trend_direction == TrendDirection.DECLINING:
        insights.append(f"EROSS scores are trending downward with {pct:.1f}% decline")
    else:
        insights.append("EROSS scores have remained stable with minimal variation")

    peak = next((m for m in milestones if m.type == MilestoneType.PEAK_SCORE), None)
    if peak is not None:
        insights.append(f"Peak EROSS score of {peak.score:.2f} achieved")
    if any(m.type == MilestoneType.CONSISTENCY for m in milestones):
        insights.append("Consistently high scores sustained over time")

    strong = sum(1 for c in correlations if c.correlation_strength == CorrelationStrength.STRONG)
    if strong:
        insights.append(f"{strong} change event(s) correlate strongly with EROSS score shifts")
    return insights


# ═══════════════════════════════════════════════════════════════════════════
# Manager
# ═══════════════════════════════════════════════════════════════════════════

class ScoreHistoryManager:
    """Score recording through the store plus the analysis functions above."""

    def __init__(self, store: TimelineStore, correlation_window_days: int = CORRELATION_WINDOW_DAYS):
        self.store = store
        self.correlation_window_days = correlation_window_days

    def record_score(
        self,
        score: float,
        components: dict[str, float] | None = None,
        snapshot: Snapshot | None = None,
        source: str = "analysis",
    ) -> ScoreEntry:
        components = dict(components or {})
        entry = ScoreEntry(
            timestamp=snapshot.timestamp if snapshot is not None else utc_now(),
            score=score,
            components=components,
            confidence=score_confidence(components),
            source=source,
        )
        self.store.add_score(entry)
        return entry

    def score_history(self) -> ScoreHistory:
        return self.store.load_score_history()

    def analyze_score_trends(self, history: ScoreHistory) -> ScoreTrendAnalysis:
        return analyze_score_trends(history)

    def compare_score_periods(
        self, history: ScoreHistory, period_a: DateRange, period_b: DateRange
    ) -> ScorePeriodComparison:
        return compare_score_periods(history, period_a, period_b)

    def get_score_milestones(self, history: ScoreHistory) -> list[ScoreMilestone]:
        return get_score_milestones(history)

    def analyze_score_event_correlations(
        self, timeline: Timeline, history: ScoreHistory
    ) -> list[ScoreEventCorrelation]:
        return analyze_score_event_correlations(timeline, history, self.correlation_window_days)

    def generate_evolution_report(
        self,
        timeline: Timeline | None = None,
        history: ScoreHistory | None = None,
    ) -> ScoreEvolutionReport:
        """Full report; loads timeline and history from the store when omitted."""
        timeline = timeline if timeline is not None else self.store.load_timeline()
        history = history if history is not None else self.store.load_score_history()

        trend = self.analyze_score_trends(history)
        milestones = self.get_score_milestones(history)
        correlations = self.analyze_score_event_correlations(timeline, history)
        return ScoreEvolutionReport(
            timeline=timeline,
            score_history=history,
            trend_analysis=trend,
            milestones=tuple(milestones),
            correlations=tuple(correlations),
            insights=tuple(evolution_insights(trend, milestones, correlations)),
        )
