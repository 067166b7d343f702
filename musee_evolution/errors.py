"""Exception types raised by the evolution core.

Analytic code never raises for well-typed input. The only deliberate
exceptions are configuration errors and storage conflicts; raw I/O and
decode errors propagate from the store untouched.
"""

from __future__ import annotations


class MuseeError(Exception):
    """Base class for errors raised by this package."""


class ScoringConfigurationError(MuseeError, ValueError):
    """Composite scoring weights do not sum to 1.0."""

    def __init__(self, total: float):
        self.total = total
        super().__init__(f"Scoring weights must sum to 1.0, got {total:.4f}")


class ConcurrentWriteError(MuseeError):
    """A versioned write lost the race against another writer."""

    def __init__(self, document: str, expected_version: int, found_version: int):
        self.document = document
        self.expected_version = expected_version
        self.found_version = found_version
        super().__init__(
            f"{document}: expected version {expected_version}, "
            f"found {found_version}"
        )


class BundleFormatError(MuseeError, ValueError):
    """Manifest declares a bundle format this package cannot read."""
