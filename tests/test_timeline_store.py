"""Tests for the timeline store, its backends and the bundle manifest."""

import json
import threading
from datetime import timedelta

import pytest
from filelock import FileLock

from musee_evolution.errors import BundleFormatError, ConcurrentWriteError
from musee_evolution.models.temporal import ChangeType, DateRange, ScoreEntry
from musee_evolution.storage import backends
from musee_evolution.storage.backends import (
    EROSS_HISTORY_DOC,
    TIMELINE_DOC,
    FileTemporalBackend,
    RedisTemporalBackend,
    make_backend,
)
from musee_evolution.storage.bundle import BundleInfo, Manifest, MuseeBundle
from musee_evolution.storage.timeline_store import TimelineStore, format_size


@pytest.fixture(params=["file", "redis"])
def any_store(request, store, redis_store):
    """Run a test against both backends."""
    return store if request.param == "file" else redis_store


# ═══════════════════════════════════════════════════════════════════════════
# Bundle / manifest
# ═══════════════════════════════════════════════════════════════════════════

class TestBundle:
    def test_create_new_writes_manifest(self, bundle):
        manifest = bundle.validate()

        assert bundle.manifest_path.exists()
        assert manifest.evolution_timeline is None
        assert manifest.eross_history is None

    def test_unknown_format_rejected(self, tmp_path):
        b = MuseeBundle.create_new(tmp_path / "old.musee", Manifest(bundle=BundleInfo(format_version="0.1")))
        with pytest.raises(BundleFormatError):
            b.validate()

    def test_manifest_keeps_foreign_sections(self, tmp_path, base_time, snapshot_factory):
        manifest = Manifest(
            bundle=BundleInfo(),
            person={"name": "Subject"},
            tags=["editorial"],
            claims=[{"property": "height", "value": 170}],
        )
        b = MuseeBundle.create_new(tmp_path / "s.musee", manifest)
        s = TimelineStore(b, FileTemporalBackend(b))
        s.add_snapshot(snapshot_factory(base_time))

        raw = json.loads(b.manifest_path.read_text())

        assert raw["person"] == {"name": "Subject"}
        assert raw["tags"] == ["editorial"]
        assert len(raw["evolutionTimeline"]["snapshots"]) == 1

    def test_missing_manifest_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MuseeBundle(tmp_path / "nothing.musee").read_manifest()


# ═══════════════════════════════════════════════════════════════════════════
# Snapshots
# ═══════════════════════════════════════════════════════════════════════════

class TestSnapshots:
    def test_idempotent_insert(self, any_store, base_time, snapshot_factory):
        snap = snapshot_factory(base_time, height=170.0)

        assert any_store.add_snapshot(snap) is True
        assert any_store.add_snapshot(snap) is False
        assert len(any_store.load_timeline().snapshots) == 1

    def test_same_timestamp_different_content_is_duplicate(self, any_store, base_time, snapshot_factory):
        any_store.add_snapshot(snapshot_factory(base_time, height=170.0))
        assert any_store.add_snapshot(snapshot_factory(base_time, height=180.0)) is False

    def test_sort_invariant(self, any_store, base_time, snapshot_factory):
        for days in (5, 1, 9, 3):
            any_store.add_snapshot(snapshot_factory(base_time + timedelta(days=days)))

        stamps = [s.timestamp for s in any_store.load_timeline().snapshots]
        assert stamps == sorted(stamps)

    def test_add_snapshots_counts_new(self, any_store, base_time, snapshot_factory):
        snaps = [snapshot_factory(base_time + timedelta(days=d)) for d in (0, 1, 1, 2)]

        assert any_store.add_snapshots(snaps) == 3
        assert any_store.add_snapshots(snaps) == 0

    def test_manifest_mirrors_timeline(self, any_store, base_time, snapshot_factory):
        any_store.add_snapshot(snapshot_factory(base_time))
        any_store.add_snapshot(snapshot_factory(base_time + timedelta(days=1)))

        manifest = any_store.bundle.read_manifest()
        assert manifest.evolution_timeline.snapshots == any_store.load_timeline().snapshots

    def test_snapshot_record_is_stored(self, any_store, base_time, snapshot_factory):
        snap = snapshot_factory(base_time, assets=2)
        any_store.add_snapshot(snap)

        assert any_store.get_snapshot(snap.snapshot_id) == snap

    def test_file_layout(self, store, bundle, base_time, snapshot_factory):
        store.add_snapshot(snapshot_factory(base_time))

        temporal = bundle.path / "Temporal"
        assert (temporal / "timeline.json").exists()
        assert (temporal / "eross_history.json").exists()
        assert (temporal / "Snapshots" / "2024-01-01T12-00-00.000Z.json").exists()


# ═══════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════

class TestQueries:
    def test_range_queries(self, any_store, base_time, snapshot_factory, event_factory):
        for d in range(5):
            any_store.add_snapshot(snapshot_factory(base_time + timedelta(days=d)))
        any_store.add_change_event(event_factory(base_time + timedelta(days=1), ChangeType.CAREER, "a"))
        any_store.add_change_event(event_factory(base_time + timedelta(days=4), ChangeType.HEALTH, "b"))

        window = DateRange(base_time + timedelta(days=1), base_time + timedelta(days=2))
        assert len(any_store.snapshots_in(window)) == 2
        assert len(any_store.snapshots_between(base_time, base_time + timedelta(days=10))) == 5
        assert [e.id for e in any_store.change_events_in(window)] == ["a"]
        assert [e.id for e in any_store.change_events_of_type(ChangeType.HEALTH)] == ["b"]
        assert any_store.latest_snapshot().timestamp == base_time + timedelta(days=4)

    def test_latest_snapshot_empty(self, any_store):
        assert any_store.latest_snapshot() is None

    def test_scores(self, any_store, base_time):
        any_store.add_score(ScoreEntry(base_time + timedelta(days=1), 0.6))
        any_store.add_score(ScoreEntry(base_time, 0.5))

        history = any_store.load_score_history()
        assert [e.score for e in history.scores] == [0.5, 0.6]
        assert any_store.bundle.read_manifest().eross_history == history

    def test_storage_stats(self, any_store, base_time, snapshot_factory, event_factory):
        any_store.add_snapshot(snapshot_factory(base_time))
        any_store.add_change_event(event_factory(base_time))
        any_store.add_score(ScoreEntry(base_time, 0.5))

        stats = any_store.storage_stats()

        assert (stats.snapshot_count, stats.change_event_count, stats.score_count) == (1, 1, 1)
        assert stats.total_storage_size > 0
        assert stats.formatted_size


@pytest.mark.parametrize("num_bytes,text", [
    (512, "512 bytes"),
    (1500, "1.5 KB"),
    (2_500_000, "2.5 MB"),
    (3_000_000_000, "3.0 GB"),
])
def test_format_size(num_bytes, text):
    assert format_size(num_bytes) == text


# ═══════════════════════════════════════════════════════════════════════════
# Versioned writes
# ═══════════════════════════════════════════════════════════════════════════

class TestVersionedWrites:
    def test_versions_increase(self, any_store, base_time, snapshot_factory):
        backend = any_store.backend
        before = backend.load_document(TIMELINE_DOC)["version"]
        any_store.add_snapshot(snapshot_factory(base_time))

        assert backend.load_document(TIMELINE_DOC)["version"] == before + 1
        assert backend.load_document(EROSS_HISTORY_DOC)["version"] == 1

    def test_stale_write_file(self, bundle):
        backend = FileTemporalBackend(bundle)
        backend.initialize()
        backend.save_document(TIMELINE_DOC, {"snapshots": []}, 0)

        with pytest.raises(ConcurrentWriteError) as exc:
            backend.save_document(TIMELINE_DOC, {"snapshots": []}, 0)
        assert (exc.value.expected_version, exc.value.found_version) == (0, 1)

    def test_stale_write_redis(self, bundle, r):
        backend = RedisTemporalBackend(bundle, r=r, prefix="test")
        backend.save_document(EROSS_HISTORY_DOC, {"scores": []}, 0)
        backend.save_document(EROSS_HISTORY_DOC, {"scores": []}, 1)

        with pytest.raises(ConcurrentWriteError):
            backend.save_document(EROSS_HISTORY_DOC, {"scores": []}, 1)

    def test_redis_keys(self, redis_store, r, base_time, snapshot_factory):
        redis_store.add_snapshot(snapshot_factory(base_time))

        assert r.exists("test:subject:timeline")
        assert r.hexists("test:subject:snapshots", "2024-01-01T12-00-00.000Z")

    def test_external_writer_is_detected(self, store, base_time, snapshot_factory):
        """A writer in another process bumps the version between our load and save."""
        backend = store.backend
        original_load = backend.load_document
        bumped = {"done": False}

        def racing_load(name):
            doc = original_load(name)
            if name == TIMELINE_DOC and not bumped["done"]:
                bumped["done"] = True
                backend.save_document(TIMELINE_DOC, {k: v for k, v in doc.items() if k != "version"}, doc["version"])
            return doc

        backend.load_document = racing_load
        with pytest.raises(ConcurrentWriteError):
            store.add_snapshot(snapshot_factory(base_time))

    def test_writer_between_check_and_rename_is_rejected(self, bundle, monkeypatch):
        """Another writer arriving after the version check waits for the rename, then fails."""
        first = FileTemporalBackend(bundle)
        second = FileTemporalBackend(bundle, lock_timeout=5)
        first.save_document(TIMELINE_DOC, {"who": "init"}, 0)

        real_write = backends.write_json_atomic
        outcome = {}

        def second_writer():
            try:
                second.save_document(TIMELINE_DOC, {"who": "second"}, 1)
            except ConcurrentWriteError as exc:
                outcome["error"] = exc

        def interleaving_write(path, payload):
            if payload.get("who") == "first":
                t = threading.Thread(target=second_writer)
                t.start()
                t.join(timeout=0.3)
                outcome["blocked"] = t.is_alive()
                outcome["thread"] = t
            real_write(path, payload)

        monkeypatch.setattr(backends, "write_json_atomic", interleaving_write)
        first.save_document(TIMELINE_DOC, {"who": "first"}, 1)
        outcome["thread"].join(timeout=5)

        assert outcome["blocked"] is True
        assert (outcome["error"].expected_version, outcome["error"].found_version) == (1, 2)
        assert first.load_document(TIMELINE_DOC) == {"who": "first", "version": 2}

    def test_lock_timeout_raises_concurrent_write(self, bundle):
        backend = FileTemporalBackend(bundle, lock_timeout=0.05)
        backend.save_document(TIMELINE_DOC, {"snapshots": []}, 0)

        with FileLock(str(backend.root / "timeline.json.lock")):
            with pytest.raises(ConcurrentWriteError) as exc:
                backend.save_document(TIMELINE_DOC, {"snapshots": []}, 1)

        assert exc.value.found_version == 1
        assert backend.load_document(TIMELINE_DOC)["version"] == 1

    def test_concurrent_writers_lose_nothing(self, bundle, base_time, snapshot_factory):
        stores = [TimelineStore(bundle, FileTemporalBackend(bundle)) for _ in range(4)]
        stores[0].initialize_storage()

        def write(i, s):
            for k in range(5):
                s.add_snapshot(snapshot_factory(base_time + timedelta(hours=10 * k + i)))

        threads = [threading.Thread(target=write, args=(i, s)) for i, s in enumerate(stores)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(stores[0].load_timeline().snapshots) == 20


class TestMakeBackend:
    def test_file(self, bundle):
        assert isinstance(make_backend(bundle, "file"), FileTemporalBackend)

    def test_redis(self, bundle, r):
        assert isinstance(make_backend(bundle, "redis", r=r), RedisTemporalBackend)

    def test_unknown(self, bundle):
        with pytest.raises(ValueError):
            make_backend(bundle, "s3")
