"""Create a demo bundle with a year of snapshots and scores, then report on it.

Run: python -m musee_evolution.scripts.seed_demo [bundle-dir]
"""

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from musee_evolution.config.settings import LOG_FORMAT, LOG_LEVEL, MUSEE_BUNDLE_ROOT
from musee_evolution.engine.composite_scoring import CompositeScoringEngine
from musee_evolution.engine.score_history import ScoreHistoryManager
from musee_evolution.engine.snapshot_comparator import SnapshotComparator
from musee_evolution.engine.trend_analysis import analyze_trend
from musee_evolution.engine.transformation_detector import TransformationDetector
from musee_evolution.models.features import (
    BodyRatios,
    ContentQualityMetrics,
    FacialRatios,
    SkinAnalysis,
    SocialMediaData,
    SymmetryScores,
    VisionFeatures,
)
from musee_evolution.models.temporal import (
    Claim,
    ClaimProperty,
    MediaAsset,
    Snapshot,
    SubjectState,
)
from musee_evolution.services.change_logger import ChangeEventLogger
from musee_evolution.storage.bundle import MuseeBundle
from musee_evolution.storage.timeline_store import TimelineStore

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("seed_demo")


def demo_snapshots(start: datetime) -> list[Snapshot]:
    subject = SubjectState(subject_id="demo-subject", display_name="Demo Subject")
    muscle = [0.40, 0.48, 0.55, 0.66]
    skin = [0.90, 0.86, 0.82, 0.76]
    snapshots = []
    for i, (m, s) in enumerate(zip(muscle, skin)):
        claims = [Claim(ClaimProperty.HEIGHT, 168.0, claim_id=f"height-{i}")]
        if i >= 2:
            claims.append(Claim(ClaimProperty.RELATIONSHIP, "married", claim_id=f"rel-{i}"))
        metadata = {"muscle_definition": f"{m}", "skin_quality": f"{s}"}
        metadata["cosmetic_procedures"] = "none" if i < 3 else "veneers"
        snapshots.append(Snapshot(
            timestamp=start + timedelta(days=130 * i),
            subject_state=subject,
            media_refs=tuple(MediaAsset(asset_id=f"asset-{k}") for k in range(3 + 2 * i)),
            claims=tuple(claims),
            metadata=metadata,
        ))
    return snapshots


def seed(bundle_dir: Path) -> None:
    bundle = MuseeBundle.create_new(bundle_dir)
    store = TimelineStore(bundle)
    store.initialize_storage()

    start = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    snapshots = demo_snapshots(start)
    store.add_snapshots(snapshots)

    ChangeEventLogger(store).analyze_and_log_changes()

    engine = CompositeScoringEngine()
    manager = ScoreHistoryManager(store)
    for i, snap in enumerate(snapshots):
        history = manager.score_history().scores
        composite = engine.calculate_composite_score(
            vision=VisionFeatures(
                vision_score=0.62 + 0.04 * i,
                facial_ratios=FacialRatios(golden_ratio_score=0.78, eye_to_nose_ratio=1.1),
                body_ratios=BodyRatios(overall_score=0.60 + 0.05 * i),
                symmetry_scores=SymmetryScores(facial_symmetry=0.8, body_symmetry=0.75),
                skin_analysis=SkinAnalysis(overall_quality=0.8, radiance=0.7, tone=0.75),
            ),
            social=SocialMediaData(platform="instagram", username="demo", follower_count=250_000 + 50_000 * i),
            content=ContentQualityMetrics(resolution=3000, composition_score=0.7, lighting_score=0.65, focus_score=0.8),
            historical_scores=history,
        )
        manager.record_score(
            composite.overall_score,
            {c.value: cs.score for c, cs in composite.components.items()},
            snapshot=snap,
            source="composite",
        )

    timeline = store.load_timeline()
    report = SnapshotComparator().generate_evolution_report(timeline)
    logger.info(
        f"Evolution: {report.total_changes} changes over {report.formatted_time_span}, "
        f"{report.evolution_pattern} ({report.transformation_intensity})"
    )
    for label in report.key_transformations:
        logger.info(f"  - {label}")

    for t in TransformationDetector().detect_transformations(timeline):
        logger.info(f"Transformation [{t.type.value}] {t.confidence:.2f}: {t.description}")

    score_report = manager.generate_evolution_report()
    for line in score_report.summary.splitlines():
        logger.info(line)
    for insight in score_report.insights:
        logger.info(f"  * {insight}")

    trend = analyze_trend(manager.score_history())
    logger.info(f"Trend {trend.direction.value}, slope {trend.slope:.4f}, volatility {trend.volatility:.4f}")

    stats = store.storage_stats()
    logger.info(
        f"Stored {stats.snapshot_count} snapshots, {stats.change_event_count} events, "
        f"{stats.score_count} scores ({stats.formatted_size})"
    )


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else MUSEE_BUNDLE_ROOT / "demo.musee"
    seed(target)
