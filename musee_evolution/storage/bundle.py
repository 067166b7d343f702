"""Musée bundle directory and its ``manifest.json``.

A bundle is a directory holding the subject's manifest plus asset files.
The manifest carries the person record, tags, assets, claims and
relationships (kept as raw JSON here, other tools own those) and two
optional temporal sections this package maintains: ``evolutionTimeline``
and ``erossHistory``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from musee_evolution.config.settings import BUNDLE_APP_NAME, BUNDLE_FORMAT_VERSION
from musee_evolution.errors import BundleFormatError
from musee_evolution.models.temporal import (
    ScoreHistory,
    Timeline,
    format_timestamp,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write JSON next to *path* then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class BundleInfo:
    format_version: str = BUNDLE_FORMAT_VERSION
    created_at: str = field(default_factory=lambda: format_timestamp(utc_now()))
    app: str = BUNDLE_APP_NAME

    def to_dict(self) -> dict[str, Any]:
        return {"format": self.format_version, "createdAt": self.created_at, "app": self.app}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BundleInfo:
        return cls(
            format_version=data.get("format", BUNDLE_FORMAT_VERSION),
            created_at=data.get("createdAt", format_timestamp(utc_now())),
            app=data.get("app", BUNDLE_APP_NAME),
        )


@dataclass(frozen=True)
class Manifest:
    bundle: BundleInfo
    person: dict[str, Any] = field(default_factory=dict)
    tags: list[Any] = field(default_factory=list)
    assets: list[Any] = field(default_factory=list)
    claims: list[Any] = field(default_factory=list)
    relationships: list[Any] = field(default_factory=list)
    evolution_timeline: Optional[Timeline] = None
    eross_history: Optional[ScoreHistory] = None

    def with_temporal(
        self,
        timeline: Optional[Timeline] = None,
        eross_history: Optional[ScoreHistory] = None,
    ) -> Manifest:
        """Return a copy with whichever temporal sections are given replaced."""
        return Manifest(
            bundle=self.bundle,
            person=self.person,
            tags=self.tags,
            assets=self.assets,
            claims=self.claims,
            relationships=self.relationships,
            evolution_timeline=timeline if timeline is not None else self.evolution_timeline,
            eross_history=eross_history if eross_history is not None else self.eross_history,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "bundle": self.bundle.to_dict(),
            "person": self.person,
            "tags": self.tags,
            "assets": self.assets,
            "claims": self.claims,
            "relationships": self.relationships,
        }
        if self.evolution_timeline is not None:
            data["evolutionTimeline"] = self.evolution_timeline.to_dict()
        if self.eross_history is not None:
            data["erossHistory"] = self.eross_history.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        timeline = data.get("evolutionTimeline")
        history = data.get("erossHistory")
        return cls(
            bundle=BundleInfo.from_dict(data.get("bundle", {})),
            person=data.get("person", {}),
            tags=data.get("tags", []),
            assets=data.get("assets", []),
            claims=data.get("claims", []),
            relationships=data.get("relationships", []),
            evolution_timeline=Timeline.from_dict(timeline) if timeline else None,
            eross_history=ScoreHistory.from_dict(history) if history else None,
        )


class MuseeBundle:
    """Handle on a bundle directory on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def manifest_path(self) -> Path:
        return self.path / MANIFEST_FILE

    @property
    def created_at(self) -> datetime:
        return parse_timestamp(self.read_manifest().bundle.created_at)

    @classmethod
    def create_new(cls, path: Path | str, manifest: Optional[Manifest] = None) -> MuseeBundle:
        bundle = cls(path)
        bundle.path.mkdir(parents=True, exist_ok=True)
        bundle.write_manifest(manifest or Manifest(bundle=BundleInfo()))
        logger.info(f"Created bundle at {bundle.path}")
        return bundle

    def read_manifest(self) -> Manifest:
        with self.manifest_path.open("r", encoding="utf-8") as fh:
            return Manifest.from_dict(json.load(fh))

    def write_manifest(self, manifest: Manifest) -> None:
        write_json_atomic(self.manifest_path, manifest.to_dict())

    def validate(self) -> Manifest:
        manifest = self.read_manifest()
        if manifest.bundle.format_version != BUNDLE_FORMAT_VERSION:
            raise BundleFormatError(
                f"{self.path}: unsupported bundle format "
                f"{manifest.bundle.format_version!r} (expected {BUNDLE_FORMAT_VERSION!r})"
            )
        return manifest
