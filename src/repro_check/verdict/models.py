"""Typed records for tier results and the final verdict."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReproStatus = Literal["reproducible", "not_reproducible"]
STATUS_REPRODUCIBLE: ReproStatus = "reproducible"
STATUS_NOT_REPRODUCIBLE: ReproStatus = "not_reproducible"

TIER_CRITICAL = "critical_binaries"
TIER_MODULES = "modules"
TIER_FILES = "files"
TIER_ARTIFACT = "artifact"
TIER_RELEASE = "release"


def render_flag(value: bool) -> str:
    """Lowercase boolean as used in notes strings."""

    return "true" if value else "false"


@dataclass(frozen=True, slots=True)
class TierResult:
    """Outcome of one independent comparison tier."""

    name: str
    passed: bool
    diff_count: int | None = None
    differing_paths: tuple[str, ...] = ()
    excluded_count: int = 0
    excluded_paths: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def flag(self) -> str:
        return f"{self.name}={render_flag(self.passed)}"


@dataclass(frozen=True, slots=True)
class FileComparison:
    """Built versus official digest for one named file.

    `tier` names the check that produced the entry: a tier name, or
    `artifact` / `release` for bundle and release-file hashes.
    """

    filename: str
    built_hash: str | None
    official_hash: str | None
    signature_stripped: bool = False
    tier: str | None = None

    @property
    def available(self) -> bool:
        return self.built_hash is not None and self.official_hash is not None

    @property
    def match(self) -> bool:
        return self.available and self.built_hash == self.official_hash


@dataclass(frozen=True, slots=True)
class VerdictRecord:
    """Durable output of one comparison run."""

    date: str
    script_version: str
    build_type: str
    architecture: str
    status: ReproStatus
    artifact: FileComparison
    files: tuple[FileComparison, ...]
    tiers: tuple[TierResult, ...]
    notes: str
    target: str | None = None
    warnings: tuple[str, ...] = ()
    releases: tuple[FileComparison, ...] = ()

    @property
    def reproducible(self) -> bool:
        return self.status == STATUS_REPRODUCIBLE

    def tier(self, name: str) -> TierResult | None:
        """Return the named tier result when that tier was evaluated."""

        for result in self.tiers:
            if result.name == name:
                return result
        return None
