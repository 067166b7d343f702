"""Timeline data model for subject evolution tracking.

Immutable value types: a ``Snapshot`` is the subject's recorded state at
one instant, a ``ChangeEvent`` is an externally asserted change, and a
``Timeline`` keeps both time-sorted.  ``ScoreHistory`` is the EROSS score
series.  Inserts return new values; nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from musee_evolution.models.signals import Signal, parse_signals


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC so mixed inputs stay comparable."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def parse_timestamp(raw: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def format_timestamp(ts: datetime) -> str:
    return ensure_utc(ts).isoformat()


def snapshot_id(ts: datetime) -> str:
    """Stable snapshot identifier derived from the timestamp.

    ISO-8601 in UTC with millisecond precision, colons escaped so the id is
    safe as a file name: ``2024-03-01T12-00-00.000Z``.
    """
    iso = ensure_utc(ts).astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-")


# ═══════════════════════════════════════════════════════════════════════════
# Date ranges
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DateRange:
    """Closed interval ``[start, end]``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))

    def __contains__(self, ts: datetime) -> bool:
        return self.start <= ensure_utc(ts) <= self.end


# ═══════════════════════════════════════════════════════════════════════════
# Subject state, media and claims
# ═══════════════════════════════════════════════════════════════════════════

class ClaimProperty(str, Enum):
    HEIGHT = "height"
    WEIGHT = "weight"
    BUST = "bust"
    WAIST = "waist"
    HIPS = "hips"
    HAIR_STYLE = "hair_style"
    HAIR_COLOR = "hair_color"
    RELATIONSHIP = "relationship"
    SIMILARITY = "similarity"
    EROSS = "eross"
    NOTE = "note"


PHYSICAL_PROPERTIES = frozenset({
    ClaimProperty.HEIGHT,
    ClaimProperty.WEIGHT,
    ClaimProperty.BUST,
    ClaimProperty.WAIST,
    ClaimProperty.HIPS,
    ClaimProperty.HAIR_STYLE,
    ClaimProperty.HAIR_COLOR,
})


@dataclass(frozen=True)
class Claim:
    """A biographical claim about the subject (``height = 170.0``)."""

    property: ClaimProperty
    value: Any                      # str or number
    claim_id: str = ""
    confidence: str = "unverified"  # unverified | low | medium | high

    @property
    def numeric_value(self) -> Optional[float]:
        if isinstance(self.value, bool):
            return None
        if isinstance(self.value, (int, float)):
            return float(self.value)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "property": self.property.value,
            "value": self.value,
            "claim_id": self.claim_id,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Claim:
        return cls(
            property=ClaimProperty(data["property"]),
            value=data["value"],
            claim_id=data.get("claim_id", ""),
            confidence=data.get("confidence", "unverified"),
        )


@dataclass(frozen=True)
class MediaAsset:
    asset_id: str
    sha256: str = ""
    kind: str = "image"             # image | video | other
    original_filename: Optional[str] = None
    source_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "sha256": self.sha256,
            "kind": self.kind,
            "original_filename": self.original_filename,
            "source_url": self.source_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaAsset:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SubjectState:
    subject_id: str
    display_name: str = ""
    aliases: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "display_name": self.display_name,
            "aliases": list(self.aliases),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubjectState:
        return cls(
            subject_id=data["subject_id"],
            display_name=data.get("display_name", ""),
            aliases=tuple(data.get("aliases", ())),
            tags=tuple(data.get("tags", ())),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Snapshot:
    """The subject's full recorded state at one timestamp."""

    timestamp: datetime
    subject_state: SubjectState
    media_refs: tuple[MediaAsset, ...] = ()
    claims: tuple[Claim, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    __hash__ = None              # metadata is a dict

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "media_refs", tuple(self.media_refs))
        object.__setattr__(self, "claims", tuple(self.claims))
        object.__setattr__(self, "metadata", dict(self.metadata))

    @property
    def snapshot_id(self) -> str:
        return snapshot_id(self.timestamp)

    @property
    def signals(self) -> dict[str, Signal]:
        """Typed derived signals decoded from ``metadata``."""
        return parse_signals(self.metadata)

    def claims_for(self, *properties: ClaimProperty) -> list[Claim]:
        wanted = set(properties)
        return [c for c in self.claims if c.property in wanted]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "subject_state": self.subject_state.to_dict(),
            "media_refs": [a.to_dict() for a in self.media_refs],
            "claims": [c.to_dict() for c in self.claims],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            subject_state=SubjectState.from_dict(data["subject_state"]),
            media_refs=tuple(MediaAsset.from_dict(a) for a in data.get("media_refs", [])),
            claims=tuple(Claim.from_dict(c) for c in data.get("claims", [])),
            metadata={str(k): str(v) for k, v in data.get("metadata", {}).items()},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Change events
# ═══════════════════════════════════════════════════════════════════════════

class ChangeType(str, Enum):
    PHYSICAL_APPEARANCE = "physical_appearance"
    LIFESTYLE = "lifestyle"
    CAREER = "career"
    HEALTH = "health"
    RELATIONSHIPS = "relationships"
    OTHER = "other"


@dataclass(frozen=True)
class ChangeEvent:
    """An externally asserted change, recorded rather than detected."""

    id: str
    timestamp: datetime
    type: ChangeType
    description: str
    confidence: float               # 0.0-1.0
    source_urls: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    __hash__ = None              # metadata is a dict

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "source_urls", tuple(self.source_urls))
        object.__setattr__(self, "metadata", dict(self.metadata))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "type": self.type.value,
            "description": self.description,
            "confidence": self.confidence,
            "source_urls": list(self.source_urls),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeEvent:
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            type=ChangeType(data["type"]),
            description=data.get("description", ""),
            confidence=float(data.get("confidence", 0.0)),
            source_urls=tuple(data.get("source_urls", ())),
            metadata=dict(data.get("metadata", {})),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Timeline
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Timeline:
    """Snapshots and change events, each kept ascending by timestamp.

    The model does not deduplicate; the store does that by snapshot id.
    """

    snapshots: tuple[Snapshot, ...] = ()
    change_events: tuple[ChangeEvent, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    __hash__ = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "snapshots", tuple(sorted(self.snapshots, key=lambda s: s.timestamp))
        )
        object.__setattr__(
            self, "change_events", tuple(sorted(self.change_events, key=lambda e: e.timestamp))
        )
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))
        object.__setattr__(self, "last_updated", ensure_utc(self.last_updated))

    def adding_snapshot(self, snapshot: Snapshot) -> Timeline:
        return Timeline(
            snapshots=self.snapshots + (snapshot,),
            change_events=self.change_events,
            created_at=self.created_at,
            last_updated=utc_now(),
        )

    def adding_change_event(self, event: ChangeEvent) -> Timeline:
        return Timeline(
            snapshots=self.snapshots,
            change_events=self.change_events + (event,),
            created_at=self.created_at,
            last_updated=utc_now(),
        )

    def snapshots_in(self, date_range: DateRange) -> list[Snapshot]:
        return [s for s in self.snapshots if s.timestamp in date_range]

    def change_events_in(self, date_range: DateRange) -> list[ChangeEvent]:
        return [e for e in self.change_events if e.timestamp in date_range]

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshots": [s.to_dict() for s in self.snapshots],
            "change_events": [e.to_dict() for e in self.change_events],
            "created_at": format_timestamp(self.created_at),
            "last_updated": format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Timeline:
        return cls(
            snapshots=tuple(Snapshot.from_dict(s) for s in data.get("snapshots", [])),
            change_events=tuple(ChangeEvent.from_dict(e) for e in data.get("change_events", [])),
            created_at=parse_timestamp(data["created_at"]),
            last_updated=parse_timestamp(data["last_updated"]),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Score history
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScoreEntry:
    timestamp: datetime
    score: float                    # 0.0-1.0, displayed x100
    components: dict[str, float] = field(default_factory=dict)
    confidence: float = 0.5
    source: str = "analysis"
    __hash__ = None              # components is a dict

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "components", dict(self.components))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "score": self.score,
            "components": dict(self.components),
            "confidence": self.confidence,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreEntry:
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            score=float(data["score"]),
            components={k: float(v) for k, v in data.get("components", {}).items()},
            confidence=float(data.get("confidence", 0.5)),
            source=data.get("source", "analysis"),
        )


@dataclass(frozen=True)
class ScoreHistory:
    """EROSS scores; construction always re-sorts by timestamp."""

    scores: tuple[ScoreEntry, ...] = ()
    __hash__ = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "scores", tuple(sorted(self.scores, key=lambda e: e.timestamp))
        )

    @property
    def latest_score(self) -> Optional[ScoreEntry]:
        return self.scores[-1] if self.scores else None

    def adding(self, entries: Iterable[ScoreEntry]) -> ScoreHistory:
        return ScoreHistory(self.scores + tuple(entries))

    def score_trend(self, start: datetime, end: datetime) -> list[ScoreEntry]:
        window = DateRange(start, end)
        return [e for e in self.scores if e.timestamp in window]

    def average_change_rate(self, days: int = 30) -> Optional[float]:
        """Mean score delta across consecutive entries at most *days* apart."""
        if len(self.scores) < 2:
            return None

        total_change = 0.0
        count = 0
        for prev, curr in zip(self.scores, self.scores[1:]):
            if (curr.timestamp - prev.timestamp).days <= days:
                total_change += curr.score - prev.score
                count += 1

        return total_change / count if count else None

    def to_dict(self) -> dict[str, Any]:
        return {"scores": [e.to_dict() for e in self.scores]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreHistory:
        return cls(tuple(ScoreEntry.from_dict(e) for e in data.get("scores", [])))
