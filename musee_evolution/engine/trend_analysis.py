"""Regression-based trend analysis over a score history.

Slope and intercept are fitted against sequence index (not wall-clock
time), so irregular sampling does not distort the slope.  All returned
numbers are plain Python floats.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Sequence

import numpy as np

from musee_evolution.config.settings import (
    MOVING_AVERAGE_WINDOW,
    PREDICTION_HORIZON,
    PREDICTION_PERIOD_DAYS,
)
from musee_evolution.models.temporal import ScoreHistory

logger = logging.getLogger(__name__)

SLOPE_BAND = 0.01
ANOMALY_SIGMA = 2.0
NEUTRAL_CONFIDENCE = 0.5
MAX_PREDICTIONS = 3


class Direction(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class AnomalyType(str, Enum):
    PEAK = "peak"
    VALLEY = "valley"


@dataclass(frozen=True)
class Prediction:
    timestamp: datetime
    value: float
    confidence: float


@dataclass(frozen=True)
class Anomaly:
    timestamp: datetime
    value: float
    expected_value: float
    deviation: float
    type: AnomalyType


@dataclass(frozen=True)
class TrendAnalysisResult:
    direction: Direction
    slope: float                    # score change per entry
    intercept: float
    volatility: float               # population stdev of scores
    consistency_score: float        # 0.0-1.0, higher = steadier
    moving_average: list[float]
    predictions: list[Prediction]
    anomalies: list[Anomaly]
    confidence: float
    __hash__ = None


def linear_fit(values: Sequence[float]) -> tuple[float, float]:
    """Least-squares ``(slope, intercept)`` of *values* against 0..n-1."""
    if len(values) < 2:
        return 0.0, float(values[0]) if values else 0.0
    x = np.arange(len(values), dtype=float)
    slope, intercept = np.polyfit(x, np.asarray(values, dtype=float), 1)
    return float(slope), float(intercept)


def moving_average(values: Sequence[float], window: int) -> list[float]:
    """Means of every full window; empty if the window does not fit."""
    if window <= 0 or len(values) < window:
        return []
    kernel = np.ones(window) / window
    return [float(v) for v in np.convolve(np.asarray(values, dtype=float), kernel, mode="valid")]


def consistency_from(values: np.ndarray) -> float:
    mean = float(values.mean())
    if mean <= 0:
        return 0.0
    return max(0.0, min(1.0, 1.0 - float(values.std()) / mean))


def predict(
    history: ScoreHistory,
    slope: float,
    intercept: float,
    horizon: int = PREDICTION_HORIZON,
    period_days: int = PREDICTION_PERIOD_DAYS,
) -> list[Prediction]:
    """Up to three periods ahead of the last entry; *horizon* above that is clamped."""
    scores = history.scores
    if len(scores) < 3:
        return []

    last = scores[-1].timestamp
    n = len(scores)
    predictions = []
    for ahead in range(1, min(horizon, MAX_PREDICTIONS) + 1):
        value = slope * (n + ahead - 1) + intercept
        predictions.append(Prediction(
            timestamp=last + timedelta(days=period_days * ahead),
            value=max(0.0, min(1.0, value)),
            confidence=max(0.0, min(1.0, max(0.1, 1.0 - 0.2 * ahead))),
        ))
    return predictions


def detect_anomalies(history: ScoreHistory, mean: float, stdev: float) -> list[Anomaly]:
    threshold = ANOMALY_SIGMA * stdev
    anomalies = []
    for entry in history.scores:
        deviation = abs(entry.score - mean)
        if deviation > threshold:
            anomalies.append(Anomaly(
                timestamp=entry.timestamp,
                value=entry.score,
                expected_value=mean,
                deviation=deviation,
                type=AnomalyType.PEAK if entry.score > mean else AnomalyType.VALLEY,
            ))
    return anomalies


def analyze_trend(history: ScoreHistory, window: int = MOVING_AVERAGE_WINDOW) -> TrendAnalysisResult:
    values = np.asarray([e.score for e in history.scores], dtype=float)

    if values.size == 0:
        return TrendAnalysisResult(
            direction=Direction.STABLE,
            slope=0.0,
            intercept=0.0,
            volatility=0.0,
            consistency_score=0.0,
            moving_average=[],
            predictions=[],
            anomalies=[],
            confidence=NEUTRAL_CONFIDENCE,
        )

    slope, intercept = linear_fit(values.tolist())
    if slope > SLOPE_BAND:
        direction = Direction.IMPROVING
    elif slope < -SLOPE_BAND:
        direction = Direction.DECLINING
    else:
        direction = Direction.STABLE

    mean = float(values.mean())
    stdev = float(values.std())
    consistency = consistency_from(values)

    result = TrendAnalysisResult(
        direction=direction,
        slope=slope,
        intercept=intercept,
        volatility=stdev,
        consistency_score=consistency,
        moving_average=moving_average(values.tolist(), window),
        predictions=predict(history, slope, intercept),
        anomalies=detect_anomalies(history, mean, stdev),
        confidence=consistency if values.size >= 2 else NEUTRAL_CONFIDENCE,
    )
    logger.debug(f"Trend over {values.size} scores: {direction.value} (slope={slope:.4f})")
    return result
