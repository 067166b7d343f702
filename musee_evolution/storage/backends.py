"""Persistence backends for temporal documents.

Two documents per bundle, ``timeline`` and ``eross_history``, each a JSON
object carrying an integer ``version``.  Writes are compare-and-swap on
that version: a writer that read version N may only store version N+1.
Per-snapshot records are stored next to them, keyed by snapshot id.

``FileTemporalBackend`` keeps everything under ``<bundle>/Temporal`` and
holds an OS-level ``<doc>.json.lock`` across the version check and the
rename, so writers in other processes are excluded too.
``RedisTemporalBackend`` keeps it in Redis under ``<prefix>:<bundle>:...``
and uses WATCH/MULTI for the version check.  A writer that loses the race
(or times out waiting for the lock) gets ``ConcurrentWriteError``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import redis
from filelock import FileLock, Timeout

from musee_evolution.config.settings import (
    MUSEE_LOCK_TIMEOUT,
    MUSEE_REDIS_PREFIX,
    MUSEE_STORE_BACKEND,
    REDIS_URL,
)
from musee_evolution.errors import ConcurrentWriteError
from musee_evolution.models.temporal import Snapshot
from musee_evolution.storage.bundle import MuseeBundle, write_json_atomic

logger = logging.getLogger(__name__)

TEMPORAL_DIR = "Temporal"
SNAPSHOTS_DIR = "Snapshots"
TIMELINE_DOC = "timeline"
EROSS_HISTORY_DOC = "eross_history"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def _version_of(doc: Optional[dict[str, Any]]) -> int:
    return int(doc.get("version", 0)) if doc else 0


# ═══════════════════════════════════════════════════════════════════════════
# File backend
# ═══════════════════════════════════════════════════════════════════════════

class FileTemporalBackend:
    """Temporal documents as JSON files inside the bundle directory."""

    def __init__(self, bundle: MuseeBundle, lock_timeout: float = MUSEE_LOCK_TIMEOUT):
        self.bundle = bundle
        self.lock_timeout = lock_timeout
        self.root = bundle.path / TEMPORAL_DIR
        self.snapshots_dir = self.root / SNAPSHOTS_DIR

    def initialize(self) -> None:
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)

    def _doc_path(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def load_document(self, name: str) -> Optional[dict[str, Any]]:
        path = self._doc_path(name)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def _doc_lock(self, name: str) -> FileLock:
        return FileLock(str(self.root / f"{name}.json.lock"), timeout=self.lock_timeout)

    def save_document(self, name: str, payload: dict[str, Any], expected_version: int) -> int:
        """Check the stored version and replace the file under one OS-level lock."""
        self.root.mkdir(parents=True, exist_ok=True)
        new_version = expected_version + 1
        try:
            with self._doc_lock(name):
                found = _version_of(self.load_document(name))
                if found != expected_version:
                    raise ConcurrentWriteError(name, expected_version, found)
                write_json_atomic(self._doc_path(name), {**payload, "version": new_version})
        except Timeout as exc:
            found = _version_of(self.load_document(name))
            raise ConcurrentWriteError(name, expected_version, found) from exc
        return new_version

    def snapshot_exists(self, snapshot_id: str) -> bool:
        return (self.snapshots_dir / f"{snapshot_id}.json").exists()

    def put_snapshot(self, snapshot: Snapshot) -> None:
        write_json_atomic(self.snapshots_dir / f"{snapshot.snapshot_id}.json", snapshot.to_dict())

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        path = self.snapshots_dir / f"{snapshot_id}.json"
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as fh:
            return Snapshot.from_dict(json.load(fh))

    def storage_size(self) -> int:
        if not self.root.exists():
            return 0
        return sum(p.stat().st_size for p in self.root.rglob("*") if p.is_file())


# ═══════════════════════════════════════════════════════════════════════════
# Redis backend
# ═══════════════════════════════════════════════════════════════════════════

class RedisTemporalBackend:
    """Temporal documents as JSON strings in Redis.

    Keys::

        <prefix>:<bundle>:timeline        STRING  JSON document
        <prefix>:<bundle>:eross_history   STRING  JSON document
        <prefix>:<bundle>:snapshots       HASH    snapshot_id → JSON
    """

    def __init__(
        self,
        bundle: MuseeBundle,
        r: redis.Redis | None = None,
        prefix: str = MUSEE_REDIS_PREFIX,
    ):
        self.bundle = bundle
        self.r = r or _get_redis()
        self.namespace = f"{prefix}:{bundle.name}"

    def initialize(self) -> None:
        """Nothing to create; keys appear on first write."""

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}"

    @property
    def _snapshots_key(self) -> str:
        return self._key("snapshots")

    def load_document(self, name: str) -> Optional[dict[str, Any]]:
        raw = self.r.get(self._key(name))
        return json.loads(raw) if raw else None

    def save_document(self, name: str, payload: dict[str, Any], expected_version: int) -> int:
        key = self._key(name)
        new_version = expected_version + 1
        with self.r.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                found = _version_of(json.loads(raw) if raw else None)
                if found != expected_version:
                    pipe.unwatch()
                    raise ConcurrentWriteError(name, expected_version, found)
                pipe.multi()
                pipe.set(key, json.dumps({**payload, "version": new_version}))
                pipe.execute()
            except redis.WatchError as exc:
                found = _version_of(self.load_document(name))
                raise ConcurrentWriteError(name, expected_version, found) from exc
        return new_version

    def snapshot_exists(self, snapshot_id: str) -> bool:
        return bool(self.r.hexists(self._snapshots_key, snapshot_id))

    def put_snapshot(self, snapshot: Snapshot) -> None:
        self.r.hset(self._snapshots_key, snapshot.snapshot_id, json.dumps(snapshot.to_dict()))

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        raw = self.r.hget(self._snapshots_key, snapshot_id)
        return Snapshot.from_dict(json.loads(raw)) if raw else None

    def storage_size(self) -> int:
        total = 0
        for name in (TIMELINE_DOC, EROSS_HISTORY_DOC):
            total += int(self.r.strlen(self._key(name)) or 0)
        for raw in self.r.hvals(self._snapshots_key):
            total += len(raw.encode("utf-8") if isinstance(raw, str) else raw)
        return total


TemporalBackend = FileTemporalBackend | RedisTemporalBackend


def make_backend(
    bundle: MuseeBundle,
    kind: str = MUSEE_STORE_BACKEND,
    r: redis.Redis | None = None,
) -> TemporalBackend:
    """Build the configured backend for *bundle* (``file`` or ``redis``)."""
    if kind == "file":
        return FileTemporalBackend(bundle)
    if kind == "redis":
        return RedisTemporalBackend(bundle, r=r)
    raise ValueError(f"Unknown temporal store backend: {kind!r}")
