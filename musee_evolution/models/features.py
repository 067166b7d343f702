"""Input records for composite scoring.

Vision, content and social features are produced by upstream analyzers.
They arrive here as plain numbers; no image or network work happens in
this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class FacialRatios:
    golden_ratio_score: float = 0.0
    eye_to_nose_ratio: float = 0.0
    overall_score: float = 0.0


@dataclass(frozen=True)
class BodyRatios:
    overall_score: float = 0.0
    waist_to_hip_ratio: Optional[float] = None
    shoulder_to_waist_ratio: Optional[float] = None


@dataclass(frozen=True)
class SymmetryScores:
    facial_symmetry: float = 0.0
    body_symmetry: float = 0.0


@dataclass(frozen=True)
class SkinAnalysis:
    overall_quality: float = 0.0
    radiance: float = 0.0
    tone: float = 0.0
    texture: float = 0.0
    blemishes: float = 0.0


@dataclass(frozen=True)
class EyeAnalysis:
    symmetry: float = 0.0
    overall_appeal: float = 0.0


@dataclass(frozen=True)
class NoseAnalysis:
    bridge_width: float = 0.0
    appeal: float = 0.0


@dataclass(frozen=True)
class MouthAnalysis:
    appeal: float = 0.0
    symmetry: float = 0.0


@dataclass(frozen=True)
class FacialStructure:
    overall_structure: float = 0.0


@dataclass(frozen=True)
class FeatureScores:
    skin_quality: float = 0.0
    muscle_definition: float = 0.0
    overall_score: float = 0.0


@dataclass(frozen=True)
class VisionFeatures:
    """Output of the upstream vision analyzer.

    ``vision_score`` is the analyzer's own 0-1 summary and is used as the
    facial beauty component directly.  Sub-records are optional; each one
    present raises the confidence of that component.
    """

    vision_score: float
    facial_ratios: Optional[FacialRatios] = None
    body_ratios: Optional[BodyRatios] = None
    symmetry_scores: Optional[SymmetryScores] = None
    skin_analysis: Optional[SkinAnalysis] = None
    eye_analysis: Optional[EyeAnalysis] = None
    nose_analysis: Optional[NoseAnalysis] = None
    mouth_analysis: Optional[MouthAnalysis] = None
    facial_structure: Optional[FacialStructure] = None
    feature_scores: Optional[FeatureScores] = None


@dataclass(frozen=True)
class ContentQualityMetrics:
    resolution: float               # longest edge in pixels
    composition_score: float = 0.0
    lighting_score: float = 0.0
    focus_score: float = 0.0
    overall_quality: float = 0.0


@dataclass(frozen=True)
class SocialMediaData:
    platform: str
    username: str
    follower_count: Optional[int] = None
    posts: tuple[str, ...] = ()
    media_urls: tuple[str, ...] = field(default_factory=tuple)
