"""Composite EROSS scoring from partially available evidence.

Each component is computed only when its input is present and adds
``score * weight`` to the overall score.  Weights of missing components
are not redistributed by default, so incomplete input scores low; pass
``renormalize=True`` to divide by the weight actually covered instead.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

import yaml

from musee_evolution.config.settings import SCORING_WEIGHTS_PATH
from musee_evolution.errors import ScoringConfigurationError
from musee_evolution.models.features import (
    ContentQualityMetrics,
    SocialMediaData,
    VisionFeatures,
)
from musee_evolution.models.temporal import ScoreEntry, utc_now

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.001

# Fixed per-component confidences
BODY_CONFIDENCE = 0.85
SKIN_CONFIDENCE = 0.80
SYMMETRY_CONFIDENCE = 0.90
CONTENT_CONFIDENCE = 0.75
SOCIAL_CONFIDENCE = 0.70
UNIQUENESS_CONFIDENCE = 0.60
VISION_CONFIDENCE_CAP = 0.95

RESOLUTION_BASELINE = 4000.0        # 4K edge
FOLLOWER_BASELINE = 1_000_000.0
POST_BASELINE = 100.0
CONSISTENCY_SCALE = 20.0


class ScoringComponent(str, Enum):
    FACIAL_BEAUTY = "facial_beauty"
    BODY_PROPORTION = "body_proportion"
    SKIN_QUALITY = "skin_quality"
    SYMMETRY = "symmetry"
    CONTENT_QUALITY = "content_quality"
    SOCIAL_ENGAGEMENT = "social_engagement"
    CONSISTENCY = "consistency"
    UNIQUENESS = "uniqueness"


@dataclass(frozen=True)
class ScoringWeights:
    facial_beauty: float = 0.25
    body_proportion: float = 0.20
    skin_quality: float = 0.15
    symmetry: float = 0.15
    content_quality: float = 0.10
    social_engagement: float = 0.08
    consistency: float = 0.05
    uniqueness: float = 0.02

    @classmethod
    def standard(cls) -> ScoringWeights:
        return cls()

    @classmethod
    def from_yaml(cls, path: Path | str = SCORING_WEIGHTS_PATH) -> ScoringWeights:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        weights = data.get("weights", data)
        return cls(**{k: float(v) for k, v in weights.items() if k in cls.__dataclass_fields__})

    def weight_for(self, component: ScoringComponent) -> float:
        return getattr(self, component.value)

    @property
    def total(self) -> float:
        return sum(self.weight_for(c) for c in ScoringComponent)

    def validate(self) -> None:
        if abs(self.total - 1.0) >= WEIGHT_TOLERANCE:
            raise ScoringConfigurationError(self.total)


@dataclass(frozen=True)
class ComponentScore:
    score: float
    weight: float
    confidence: float

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight


@dataclass(frozen=True)
class CompositeScore:
    overall_score: float
    components: dict[ScoringComponent, ComponentScore]
    confidence: float
    calculated_at: datetime = field(default_factory=utc_now)
    __hash__ = None              # components is a dict

    def to_score_entry(self, timestamp: datetime | None = None, source: str = "composite") -> ScoreEntry:
        return ScoreEntry(
            timestamp=timestamp or self.calculated_at,
            score=self.overall_score,
            components={c.value: cs.score for c, cs in self.components.items()},
            confidence=self.confidence,
            source=source,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Component heuristics
# ═══════════════════════════════════════════════════════════════════════════

def vision_confidence(vision: VisionFeatures) -> float:
    """0.5 plus 0.1 for every populated sub-feature, capped at 0.95."""
    confidence = 0.5
    if vision.facial_ratios and vision.facial_ratios.eye_to_nose_ratio > 0:
        confidence += 0.1
    if vision.eye_analysis and vision.eye_analysis.symmetry > 0:
        confidence += 0.1
    if vision.nose_analysis and vision.nose_analysis.bridge_width > 0:
        confidence += 0.1
    if vision.mouth_analysis and vision.mouth_analysis.appeal > 0:
        confidence += 0.1
    if vision.body_ratios and vision.body_ratios.overall_score > 0:
        confidence += 0.1
    return min(VISION_CONFIDENCE_CAP, confidence)


def content_quality_score(content: ContentQualityMetrics) -> float:
    resolution = min(1.0, content.resolution / RESOLUTION_BASELINE)
    return (
        resolution * 0.3
        + content.composition_score * 0.3
        + content.lighting_score * 0.2
        + content.focus_score * 0.2
    )


def social_engagement_score(social: SocialMediaData) -> float:
    followers = min(1.0, (social.follower_count or 0) / FOLLOWER_BASELINE)
    posts = min(1.0, len(social.posts) / POST_BASELINE)
    return followers * 0.6 + posts * 0.4


def consistency_score(historical: Sequence[ScoreEntry]) -> tuple[float, float]:
    """``(score, confidence)`` from the spread of past scores."""
    values = [e.score for e in historical]
    stability = max(0.0, 1.0 - statistics.pstdev(values) / CONSISTENCY_SCALE)
    score = stability if len(values) >= 2 else 0.5
    return score, stability


def uniqueness_score(vision: Optional[VisionFeatures], social: Optional[SocialMediaData]) -> float:
    uniqueness = 0.5
    if vision is not None:
        if vision.facial_ratios and vision.facial_ratios.golden_ratio_score < 0.8:
            uniqueness += 0.1
        if vision.eye_analysis and vision.eye_analysis.overall_appeal < 0.7:
            uniqueness += 0.05
    if social is not None:
        if len(social.posts) < 50:
            uniqueness += 0.1
        if len(social.media_urls) > len(social.posts):
            uniqueness += 0.05
    return min(1.0, uniqueness)


# ═══════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════

class CompositeScoringEngine:
    def __init__(self, weights: ScoringWeights | None = None, renormalize: bool = False):
        self.weights = weights or ScoringWeights.standard()
        self.weights.validate()
        self.renormalize = renormalize

    @classmethod
    def from_config(cls, path: Path | str = SCORING_WEIGHTS_PATH, renormalize: bool = False) -> CompositeScoringEngine:
        return cls(ScoringWeights.from_yaml(path), renormalize=renormalize)

    def calculate_composite_score(
        self,
        vision: Optional[VisionFeatures] = None,
        social: Optional[SocialMediaData] = None,
        content: Optional[ContentQualityMetrics] = None,
        historical_scores: Sequence[ScoreEntry] = (),
    ) -> CompositeScore:
        self.weights.validate()

        computed: dict[ScoringComponent, tuple[float, float]] = {}

        if vision is not None:
            computed[ScoringComponent.FACIAL_BEAUTY] = (vision.vision_score, vision_confidence(vision))
            if vision.body_ratios is not None:
                computed[ScoringComponent.BODY_PROPORTION] = (
                    vision.body_ratios.overall_score, BODY_CONFIDENCE,
                )
            if vision.skin_analysis is not None:
                skin = vision.skin_analysis
                computed[ScoringComponent.SKIN_QUALITY] = (
                    (skin.overall_quality + skin.radiance + skin.tone) / 3.0, SKIN_CONFIDENCE,
                )
            if vision.symmetry_scores is not None:
                sym = vision.symmetry_scores
                computed[ScoringComponent.SYMMETRY] = (
                    (sym.facial_symmetry + sym.body_symmetry) / 2.0, SYMMETRY_CONFIDENCE,
                )

        if content is not None:
            computed[ScoringComponent.CONTENT_QUALITY] = (content_quality_score(content), CONTENT_CONFIDENCE)

        if social is not None:
            computed[ScoringComponent.SOCIAL_ENGAGEMENT] = (social_engagement_score(social), SOCIAL_CONFIDENCE)

        if historical_scores:
            computed[ScoringComponent.CONSISTENCY] = consistency_score(historical_scores)

        computed[ScoringComponent.UNIQUENESS] = (uniqueness_score(vision, social), UNIQUENESS_CONFIDENCE)

        components = {
            comp: ComponentScore(score=score, weight=self.weights.weight_for(comp), confidence=conf)
            for comp, (score, conf) in computed.items()
        }

        overall = sum(c.weighted_score for c in components.values())
        if self.renormalize:
            covered = sum(c.weight for c in components.values())
            overall = overall / covered if covered > 0 else 0.0

        confidence = sum(c.confidence for c in components.values()) / len(components)

        logger.debug(
            f"Composite score {overall:.3f} from {len(components)} component(s), "
            f"confidence {confidence:.2f}"
        )
        return CompositeScore(overall_score=overall, components=components, confidence=confidence)
