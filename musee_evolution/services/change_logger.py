"""Turn detected changes between stored snapshots into change events."""

from __future__ import annotations

import logging
import uuid

from musee_evolution.engine.change_detector import ChangeDetector, DetectedChange
from musee_evolution.models.temporal import ChangeEvent
from musee_evolution.storage.timeline_store import TimelineStore

logger = logging.getLogger(__name__)


def to_change_event(change: DetectedChange) -> ChangeEvent:
    return ChangeEvent(
        id=str(uuid.uuid4()),
        timestamp=change.timestamp,
        type=change.type,
        description=change.description,
        confidence=change.confidence,
        source_urls=(),
        metadata={"evidence": "; ".join(change.evidence)},
    )


class ChangeEventLogger:
    """Runs the change detector over consecutive stored snapshots.

    Re-running is safe: a change already logged with the same timestamp,
    type and description is not logged again.
    """

    def __init__(self, store: TimelineStore, detector: ChangeDetector | None = None):
        self.store = store
        self.detector = detector or ChangeDetector()

    def analyze_and_log_changes(self) -> list[ChangeEvent]:
        timeline = self.store.load_timeline()
        if len(timeline.snapshots) < 2:
            return []

        seen = {(e.timestamp, e.type, e.description) for e in timeline.change_events}
        logged: list[ChangeEvent] = []

        snapshots = timeline.snapshots
        for old, new in zip(snapshots, snapshots[1:]):
            for change in self.detector.detect_changes(old, new):
                key = (change.timestamp, change.type, change.description)
                if key in seen:
                    continue
                seen.add(key)
                event = to_change_event(change)
                self.store.add_change_event(event)
                logged.append(event)

        logger.info(f"Logged {len(logged)} change event(s) for {self.store.bundle.name}")
        return logged
