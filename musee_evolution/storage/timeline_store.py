"""Timeline Store: the one stateful component.

Every write loads the whole timeline (or score history), mutates it,
and stores the whole document back, then mirrors it into the bundle
manifest.  Writers on the same bundle are serialized by a per-bundle
lock inside this process.  Each document write is a compare-and-swap on
the document ``version``, made atomic by the backend (a file lock or
WATCH/MULTI), so a writer in another process cannot silently overwrite
a newer copy.  I/O and decode errors propagate.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from musee_evolution.models.temporal import (
    ChangeEvent,
    ChangeType,
    DateRange,
    ScoreEntry,
    ScoreHistory,
    Snapshot,
    Timeline,
)
from musee_evolution.storage.backends import (
    EROSS_HISTORY_DOC,
    TIMELINE_DOC,
    TemporalBackend,
    make_backend,
)
from musee_evolution.storage.bundle import MuseeBundle

logger = logging.getLogger(__name__)

_REGISTRY_LOCK = threading.Lock()
_BUNDLE_LOCKS: dict[str, threading.RLock] = {}


def _lock_for(bundle: MuseeBundle) -> threading.RLock:
    key = str(bundle.path.resolve())
    with _REGISTRY_LOCK:
        lock = _BUNDLE_LOCKS.get(key)
        if lock is None:
            lock = _BUNDLE_LOCKS[key] = threading.RLock()
        return lock


def format_size(num_bytes: int) -> str:
    """Human-readable byte count (decimal units, as file browsers show)."""
    if num_bytes < 1000:
        return f"{num_bytes} bytes"
    size = float(num_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1000.0
        if size < 1000 or unit == "GB":
            return f"{size:.1f} {unit}"
    return f"{size:.1f} GB"


@dataclass(frozen=True)
class StorageStats:
    snapshot_count: int
    change_event_count: int
    score_count: int
    total_storage_size: int
    last_updated: datetime

    @property
    def formatted_size(self) -> str:
        return format_size(self.total_storage_size)


class TimelineStore:
    """Persistent timeline and score history for one bundle."""

    def __init__(self, bundle: MuseeBundle, backend: TemporalBackend | None = None):
        self.bundle = bundle
        self.backend = backend or make_backend(bundle)
        self._lock = _lock_for(bundle)

    # ── Documents ────────────────────────────────────────────────────────

    def _load_timeline(self) -> tuple[Timeline, int]:
        doc = self.backend.load_document(TIMELINE_DOC)
        if doc is None:
            return Timeline(), 0
        return Timeline.from_dict(doc), int(doc.get("version", 0))

    def _load_history(self) -> tuple[ScoreHistory, int]:
        doc = self.backend.load_document(EROSS_HISTORY_DOC)
        if doc is None:
            return ScoreHistory(), 0
        return ScoreHistory.from_dict(doc), int(doc.get("version", 0))

    def _sync_manifest(
        self,
        timeline: Optional[Timeline] = None,
        history: Optional[ScoreHistory] = None,
    ) -> None:
        manifest = self.bundle.read_manifest()
        self.bundle.write_manifest(manifest.with_temporal(timeline, history))

    def initialize_storage(self) -> None:
        """Create the backend layout and empty documents if missing."""
        with self._lock:
            self.backend.initialize()
            if self.backend.load_document(TIMELINE_DOC) is None:
                self.backend.save_document(TIMELINE_DOC, Timeline().to_dict(), 0)
            if self.backend.load_document(EROSS_HISTORY_DOC) is None:
                self.backend.save_document(EROSS_HISTORY_DOC, ScoreHistory().to_dict(), 0)
        logger.info(f"Initialized temporal storage for bundle {self.bundle.name}")

    # ── Writes ───────────────────────────────────────────────────────────

    def add_snapshot(self, snapshot: Snapshot) -> bool:
        """Store *snapshot*. Returns False when its id is already stored."""
        return self.add_snapshots([snapshot]) == 1

    def add_snapshots(self, snapshots: Iterable[Snapshot]) -> int:
        """Store several snapshots in one timeline write; returns how many were new."""
        with self._lock:
            timeline, version = self._load_timeline()
            known = {s.snapshot_id for s in timeline.snapshots}

            added: list[Snapshot] = []
            for snapshot in snapshots:
                sid = snapshot.snapshot_id
                if sid in known or self.backend.snapshot_exists(sid):
                    logger.info(f"Snapshot {sid} already stored, skipping")
                    continue
                known.add(sid)
                added.append(snapshot)

            if not added:
                return 0

            for snapshot in added:
                timeline = timeline.adding_snapshot(snapshot)
            self.backend.save_document(TIMELINE_DOC, timeline.to_dict(), version)
            for snapshot in added:
                self.backend.put_snapshot(snapshot)
            self._sync_manifest(timeline=timeline)

        logger.info(
            f"Stored {len(added)} snapshot(s) for {self.bundle.name} "
            f"({len(timeline.snapshots)} total)"
        )
        return len(added)

    def add_change_event(self, event: ChangeEvent) -> None:
        with self._lock:
            timeline, version = self._load_timeline()
            timeline = timeline.adding_change_event(event)
            self.backend.save_document(TIMELINE_DOC, timeline.to_dict(), version)
            self._sync_manifest(timeline=timeline)
        logger.info(f"Logged {event.type.value} change event {event.id}")

    def add_score(self, entry: ScoreEntry) -> None:
        with self._lock:
            history, version = self._load_history()
            history = history.adding([entry])
            self.backend.save_document(EROSS_HISTORY_DOC, history.to_dict(), version)
            self._sync_manifest(history=history)
        logger.info(f"Recorded EROSS score {entry.score:.3f} ({entry.source})")

    # ── Reads ────────────────────────────────────────────────────────────

    def load_timeline(self) -> Timeline:
        return self._load_timeline()[0]

    def load_score_history(self) -> ScoreHistory:
        return self._load_history()[0]

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        return self.backend.get_snapshot(snapshot_id)

    def snapshots_in(self, date_range: DateRange) -> list[Snapshot]:
        return self.load_timeline().snapshots_in(date_range)

    def snapshots_between(self, start: datetime, end: datetime) -> list[Snapshot]:
        return self.snapshots_in(DateRange(start, end))

    def change_events_in(self, date_range: DateRange) -> list[ChangeEvent]:
        return self.load_timeline().change_events_in(date_range)

    def change_events_of_type(self, change_type: ChangeType) -> list[ChangeEvent]:
        return [e for e in self.load_timeline().change_events if e.type == change_type]

    def latest_snapshot(self) -> Optional[Snapshot]:
        snapshots = self.load_timeline().snapshots
        return snapshots[-1] if snapshots else None

    def storage_stats(self) -> StorageStats:
        timeline = self.load_timeline()
        history = self.load_score_history()
        return StorageStats(
            snapshot_count=len(timeline.snapshots),
            change_event_count=len(timeline.change_events),
            score_count=len(history.scores),
            total_storage_size=self.backend.storage_size(),
            last_updated=timeline.last_updated,
        )
