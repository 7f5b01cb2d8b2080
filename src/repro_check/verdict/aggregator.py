"""Combine tier outcomes into one reproducibility verdict."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Sequence

from repro_check.errors import AggregatorStateError
from repro_check.utils.time_utils import iso_timestamp
from repro_check.verdict.models import (
    STATUS_NOT_REPRODUCIBLE,
    STATUS_REPRODUCIBLE,
    TIER_ARTIFACT,
    TIER_RELEASE,
    FileComparison,
    TierResult,
    VerdictRecord,
    render_flag,
)
from repro_check.verdict.tiers import TierOutcome

LOGGER = logging.getLogger(__name__)


class AggregatorState(str, Enum):
    """Lifecycle of one aggregation."""

    PENDING = "pending"
    CRITICAL_CHECKED = "critical_checked"
    MODULES_CHECKED = "modules_checked"
    FILESET_CHECKED = "fileset_checked"
    FINALIZED = "finalized"


class VerdictAggregator:
    """Collect tier outcomes in order and produce the VerdictRecord.

    Each `record_*` call advances the state by one step, whether or not the
    tier was evaluated (pass None for a tier that had nothing to check).
    The aggregate status is reproducible only if every evaluated tier
    passed; the whole-artifact hash is reported next to it but never
    overrides it.
    """

    def __init__(
        self,
        *,
        script_version: str,
        build_type: str,
        architecture: str,
        target: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.script_version = script_version
        self.build_type = build_type
        self.architecture = architecture
        self.target = target
        self.logger = logger or LOGGER
        self.state = AggregatorState.PENDING
        self._tiers: list[TierResult] = []
        self._files: list[FileComparison] = []
        self._warnings: list[str] = []

    def _advance(self, expected: AggregatorState, following: AggregatorState) -> None:
        if self.state is not expected:
            raise AggregatorStateError(
                f"cannot move to {following.value} from {self.state.value}; expected {expected.value}"
            )
        self.state = following

    def _collect(self, outcome: TierOutcome | None) -> None:
        if outcome is None:
            return
        self._tiers.append(outcome.result)
        self._files.extend(replace(item, tier=outcome.result.name) for item in outcome.files)
        self._warnings.extend(outcome.warnings)
        self.logger.info(
            "aggregator.tier name=%s passed=%s diff_count=%s",
            outcome.result.name,
            outcome.result.passed,
            outcome.result.diff_count,
        )

    def record_critical(self, outcome: TierOutcome | None) -> None:
        self._advance(AggregatorState.PENDING, AggregatorState.CRITICAL_CHECKED)
        self._collect(outcome)

    def record_modules(self, outcome: TierOutcome | None) -> None:
        self._advance(AggregatorState.CRITICAL_CHECKED, AggregatorState.MODULES_CHECKED)
        self._collect(outcome)

    def record_fileset(self, outcome: TierOutcome | None) -> None:
        self._advance(AggregatorState.MODULES_CHECKED, AggregatorState.FILESET_CHECKED)
        self._collect(outcome)

    def add_warning(self, message: str) -> None:
        if self.state is AggregatorState.FINALIZED:
            raise AggregatorStateError("cannot add warnings after finalization")
        self._warnings.append(message)

    def finalize(
        self,
        artifact: FileComparison,
        generated_at: datetime | None = None,
        *,
        releases: Sequence[FileComparison] = (),
    ) -> VerdictRecord:
        """Close the aggregation and build the immutable record.

        Release-file hashes, like the bundle hash, are reported next to the
        tiered verdict. They decide the status only when no tier ran.
        """

        self._advance(AggregatorState.FILESET_CHECKED, AggregatorState.FINALIZED)

        artifact = replace(artifact, tier=TIER_ARTIFACT)
        release_entries = tuple(replace(item, tier=TIER_RELEASE) for item in releases)
        tiers_passed = all(result.passed for result in self._tiers)
        if not self._tiers:
            # nothing tiered to judge: only identical hashes count
            hashed = [item for item in (artifact, *release_entries) if item.available or item.tier == TIER_RELEASE]
            tiers_passed = bool(hashed) and all(item.match for item in hashed)
            self._warnings.append("no comparison tier was evaluated; verdict follows the artifact hashes")
        status = STATUS_REPRODUCIBLE if tiers_passed else STATUS_NOT_REPRODUCIBLE

        notes = self._render_notes(artifact, release_entries, tiers_passed)
        record = VerdictRecord(
            date=iso_timestamp(generated_at),
            script_version=self.script_version,
            build_type=self.build_type,
            architecture=self.architecture,
            status=status,
            artifact=artifact,
            files=tuple(self._files),
            tiers=tuple(self._tiers),
            notes=notes,
            target=self.target,
            warnings=tuple(self._warnings),
            releases=release_entries,
        )
        self.logger.info("aggregator.finalized status=%s notes=%s", status, notes)
        return record

    def _render_notes(
        self,
        artifact: FileComparison,
        releases: Sequence[FileComparison],
        tiers_passed: bool,
    ) -> str:
        parts = [result.flag for result in self._tiers]
        if artifact.available:
            parts.append(f"artifact_hash_match={render_flag(artifact.match)}")
        else:
            parts.append("artifact_hash_match=unavailable")
        if releases:
            matched = sum(1 for item in releases if item.match)
            parts.append(f"release_hashes_match={matched}/{len(releases)}")

        summary = " ".join(parts)
        details: list[str] = []
        for result in self._tiers:
            if result.notes:
                details.append(f"{result.name}: " + ", ".join(result.notes))
        for item in releases:
            if item.official_hash is None:
                details.append(f"release: {item.filename} not listed in official checksums")
            elif item.built_hash is None:
                details.append(f"release: {item.filename} unreadable")
            elif not item.match:
                details.append(f"release: {item.filename} hash mismatch")

        hashes_match = artifact.match if artifact.available else None
        if releases:
            releases_match = all(item.match for item in releases)
            hashes_match = releases_match if hashes_match is None else hashes_match and releases_match
        if self._tiers and hashes_match is not None and hashes_match != tiers_passed:
            if tiers_passed:
                details.append("whole-artifact hashes differ but all tiers passed; tiered verdict is authoritative")
            else:
                details.append("whole-artifact hashes match but a tier failed; tiered verdict is authoritative")
            self.logger.warning(
                "aggregator.artifact_disagrees hashes_match=%s tiers_passed=%s", hashes_match, tiers_passed
            )

        if not details:
            return summary
        return summary + "; " + "; ".join(details)
