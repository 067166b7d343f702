"""Shared test fixtures for the evolution test suite."""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from musee_evolution.models.temporal import (
    ChangeEvent,
    ChangeType,
    Claim,
    ClaimProperty,
    MediaAsset,
    ScoreEntry,
    ScoreHistory,
    Snapshot,
    SubjectState,
)
from musee_evolution.storage.backends import FileTemporalBackend, RedisTemporalBackend
from musee_evolution.storage.bundle import MuseeBundle
from musee_evolution.storage.timeline_store import TimelineStore


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Time ─────────────────────────────────────────────────────────────────

@pytest.fixture
def base_time():
    """Fixed reference instant: 2024-01-01T12:00:00Z."""
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Factories ────────────────────────────────────────────────────────────

SUBJECT = SubjectState(subject_id="subject-1", display_name="Test Subject")


def make_snapshot(
    ts: datetime,
    height=None,
    relationships=(),
    assets: int = 0,
    **metadata,
) -> Snapshot:
    claims = []
    if height is not None:
        claims.append(Claim(ClaimProperty.HEIGHT, height, claim_id="height"))
    for i, rel in enumerate(relationships):
        claims.append(Claim(ClaimProperty.RELATIONSHIP, rel, claim_id=f"rel-{i}"))
    return Snapshot(
        timestamp=ts,
        subject_state=SUBJECT,
        media_refs=tuple(MediaAsset(asset_id=f"a{i}") for i in range(assets)),
        claims=tuple(claims),
        metadata={k: str(v) for k, v in metadata.items()},
    )


def make_history(start: datetime, values, step_days: int = 30) -> ScoreHistory:
    return ScoreHistory(tuple(
        ScoreEntry(timestamp=start + timedelta(days=step_days * i), score=v)
        for i, v in enumerate(values)
    ))


def make_event(ts: datetime, change_type=ChangeType.PHYSICAL_APPEARANCE, event_id="evt") -> ChangeEvent:
    return ChangeEvent(
        id=event_id,
        timestamp=ts,
        type=change_type,
        description="asserted change",
        confidence=0.8,
    )


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def history_factory():
    return make_history


@pytest.fixture
def event_factory():
    return make_event


# ── Bundles and stores ───────────────────────────────────────────────────

@pytest.fixture
def bundle(tmp_path):
    return MuseeBundle.create_new(tmp_path / "subject.musee")


@pytest.fixture
def store(bundle):
    s = TimelineStore(bundle, FileTemporalBackend(bundle))
    s.initialize_storage()
    return s


@pytest.fixture
def redis_store(bundle, r):
    s = TimelineStore(bundle, RedisTemporalBackend(bundle, r=r, prefix="test"))
    s.initialize_storage()
    return s
