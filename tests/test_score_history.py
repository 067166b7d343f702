"""Tests for the EROSS score history manager."""

from datetime import timedelta

import pytest

from musee_evolution.engine.score_history import (
    ComparisonSignificance,
    CorrelationStrength,
    MilestoneType,
    ScoreHistoryManager,
    TrendDirection,
    analyze_score_event_correlations,
    analyze_score_trends,
    compare_score_periods,
    get_score_milestones,
    score_confidence,
)
from musee_evolution.models.temporal import DateRange, ScoreEntry, ScoreHistory, Timeline


# ═══════════════════════════════════════════════════════════════════════════
# Trends
# ═══════════════════════════════════════════════════════════════════════════

class TestAnalyzeScoreTrends:
    def test_constant_series(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.5, 0.5, 0.5, 0.5]))

        assert trend.trend_direction == TrendDirection.STABLE
        assert trend.confidence == pytest.approx(1.0)
        assert trend.prediction == pytest.approx(0.5)
        assert trend.current_score == 0.5

    def test_improving(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.5, 0.6]))

        assert trend.trend_direction == TrendDirection.IMPROVING
        assert trend.trend_magnitude == pytest.approx(0.2)
        assert trend.prediction is None

    def test_declining(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.6, 0.5]))

        assert trend.trend_direction == TrendDirection.DECLINING
        assert trend.trend_magnitude == pytest.approx(1 / 6)

    def test_within_five_percent_is_stable(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.60, 0.62]))
        assert trend.trend_direction == TrendDirection.STABLE

    def test_compares_last_two_chronologically(self, base_time):
        history = ScoreHistory((
            ScoreEntry(base_time + timedelta(days=2), 0.9),
            ScoreEntry(base_time, 0.1),
            ScoreEntry(base_time + timedelta(days=1), 0.5),
        ))
        trend = analyze_score_trends(history)

        assert trend.current_score == 0.9
        assert trend.trend_direction == TrendDirection.IMPROVING

    def test_prediction_is_clamped(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.6, 0.8, 1.0]))
        assert trend.prediction == 1.0

    def test_prediction_follows_line(self, base_time, history_factory):
        trend = analyze_score_trends(history_factory(base_time, [0.1, 0.2, 0.3]))
        assert trend.prediction == pytest.approx(0.4)

    @pytest.mark.parametrize("values", [[], [0.7]])
    def test_insufficient_data_is_neutral(self, base_time, history_factory, values):
        trend = analyze_score_trends(history_factory(base_time, values))

        assert trend.trend_direction == TrendDirection.STABLE
        assert trend.trend_magnitude == 0.0
        assert trend.prediction is None
        assert trend.confidence == 0.5
        assert trend.current_score == (values[-1] if values else 0.0)


# ═══════════════════════════════════════════════════════════════════════════
# Period comparison
# ═══════════════════════════════════════════════════════════════════════════

class TestCompareScorePeriods:
    def _compare(self, base_time, a_values, b_values):
        entries = [ScoreEntry(base_time + timedelta(days=i), v) for i, v in enumerate(a_values)]
        entries += [ScoreEntry(base_time + timedelta(days=100 + i), v) for i, v in enumerate(b_values)]
        period_a = DateRange(base_time, base_time + timedelta(days=50))
        period_b = DateRange(base_time + timedelta(days=100), base_time + timedelta(days=150))
        return compare_score_periods(ScoreHistory(tuple(entries)), period_a, period_b)

    def test_seventy_to_seventy_seven(self, base_time):
        result = self._compare(base_time, [68, 72], [77])

        assert result.period_a_average == pytest.approx(70)
        assert result.period_b_average == pytest.approx(77)
        assert result.difference == pytest.approx(7)
        assert result.percent_change == pytest.approx(10.0)
        assert result.significance == ComparisonSignificance.MAJOR
        assert (result.period_a_sample_size, result.period_b_sample_size) == (2, 1)

    @pytest.mark.parametrize("b,significance", [
        (100.5, ComparisonSignificance.MINIMAL),
        (103, ComparisonSignificance.MODERATE),
        (107, ComparisonSignificance.SIGNIFICANT),
        (88, ComparisonSignificance.MAJOR),
    ])
    def test_significance_buckets(self, base_time, b, significance):
        assert self._compare(base_time, [100], [b]).significance == significance

    def test_empty_first_period(self, base_time):
        result = self._compare(base_time, [], [0.8])

        assert result.percent_change == 0.0
        assert result.significance == ComparisonSignificance.MINIMAL


# ═══════════════════════════════════════════════════════════════════════════
# Milestones
# ═══════════════════════════════════════════════════════════════════════════

class TestMilestones:
    def test_extraction(self, base_time, history_factory):
        milestones = get_score_milestones(history_factory(base_time, [0.5, 0.62, 0.6, 0.85]))

        peaks = [m for m in milestones if m.type == MilestoneType.PEAK_SCORE]
        jumps = [m for m in milestones if m.type == MilestoneType.SIGNIFICANT_IMPROVEMENT]

        assert len(peaks) == 1 and peaks[0].score == 0.85
        assert [m.score for m in jumps] == [0.62, 0.85]
        assert not any(m.type == MilestoneType.CONSISTENCY for m in milestones)
        stamps = [m.timestamp for m in milestones]
        assert stamps == sorted(stamps)

    def test_consistency(self, base_time, history_factory):
        milestones = get_score_milestones(history_factory(base_time, [0.8, 0.85, 0.9, 0.5]))

        (consistency,) = [m for m in milestones if m.type == MilestoneType.CONSISTENCY]
        assert consistency.score == pytest.approx(0.85)
        assert consistency.timestamp == base_time + timedelta(days=60)

    def test_consistency_needs_three_high_scores(self, base_time, history_factory):
        milestones = get_score_milestones(history_factory(base_time, [0.8, 0.9, 0.7]))
        assert not any(m.type == MilestoneType.CONSISTENCY for m in milestones)

    def test_empty_history(self):
        assert get_score_milestones(ScoreHistory()) == []


# ═══════════════════════════════════════════════════════════════════════════
# Event correlations
# ═══════════════════════════════════════════════════════════════════════════

class TestCorrelations:
    def _history(self, event_time, offsets_and_scores):
        return ScoreHistory(tuple(
            ScoreEntry(event_time + timedelta(days=d), s) for d, s in offsets_and_scores
        ))

    @pytest.mark.parametrize("after,strength", [
        (0.7, CorrelationStrength.STRONG),
        (0.6, CorrelationStrength.MODERATE),
        (0.55, CorrelationStrength.WEAK),
    ])
    def test_strength(self, base_time, event_factory, after, strength):
        event = event_factory(base_time)
        history = self._history(base_time, [(-20, 0.5), (-10, 0.55), (10, after), (45, 0.1)])

        (corr,) = analyze_score_event_correlations(Timeline(change_events=(event,)), history)

        assert corr.correlation_strength == strength
        assert corr.score_change == pytest.approx(after - 0.525)
        assert corr.sample_size == 3
        assert corr.event == event

    def test_window_is_inclusive(self, base_time, event_factory):
        event = event_factory(base_time)
        history = self._history(base_time, [(-30, 0.5), (30, 0.9)])

        (corr,) = analyze_score_event_correlations(Timeline(change_events=(event,)), history)
        assert corr.sample_size == 2

    def test_needs_scores_on_both_sides(self, base_time, event_factory):
        event = event_factory(base_time)
        history = self._history(base_time, [(-20, 0.5), (-10, 0.9), (0, 0.9)])

        assert analyze_score_event_correlations(Timeline(change_events=(event,)), history) == []

    def test_custom_window(self, base_time, event_factory):
        event = event_factory(base_time)
        history = self._history(base_time, [(-20, 0.5), (20, 0.9)])
        timeline = Timeline(change_events=(event,))

        assert analyze_score_event_correlations(timeline, history, window_days=10) == []


# ═══════════════════════════════════════════════════════════════════════════
# Manager (store-backed)
# ═══════════════════════════════════════════════════════════════════════════

class TestScoreConfidence:
    @pytest.mark.parametrize("components,expected", [
        ({}, 0.5),
        ({"a": 0.5, "b": 0.5}, 0.7),
        ({"a": 0.1, "b": 0.1, "c": 0.1, "d": 0.1, "e": 0.1}, 0.9),
        ({"a": 1.5, "b": 0.5}, 0.56),
    ])
    def test_confidence(self, components, expected):
        assert score_confidence(components) == pytest.approx(expected)


class TestScoreHistoryManager:
    def test_record_score_persists(self, store, base_time, snapshot_factory):
        manager = ScoreHistoryManager(store)
        snap = snapshot_factory(base_time)

        entry = manager.record_score(0.72, {"symmetry": 0.8, "skin_quality": 0.7}, snapshot=snap)
        history = manager.score_history()

        assert history.scores == (entry,)
        assert entry.timestamp == base_time
        assert entry.confidence == pytest.approx(0.7)
        assert entry.source == "analysis"

    def test_generate_evolution_report(self, store, base_time, event_factory):
        manager = ScoreHistoryManager(store)
        for i, score in enumerate([0.5, 0.62, 0.6, 0.85]):
            store.add_score(ScoreEntry(base_time + timedelta(days=10 * i), score))
        store.add_change_event(event_factory(base_time + timedelta(days=25)))

        report = manager.generate_evolution_report()

        assert report.trend_analysis.trend_direction == TrendDirection.IMPROVING
        assert len(report.milestones) == 3
        assert len(report.correlations) == 1
        assert report.correlations[0].correlation_strength == CorrelationStrength.STRONG
        assert report.insights[0].startswith("EROSS scores are trending upward")
        assert "Peak EROSS score of 0.85 achieved" in report.insights
        assert any("correlate strongly" in i for i in report.insights)

        summary = report.summary
        assert summary.splitlines()[0] == "EROSS Score Evolution Report"
        assert "Score Range: 0.50 - 0.85" in summary
        assert "Current Trend: improving" in summary
        assert "Key Milestones: 3" in summary
        assert "Significant Correlations: 1" in summary
