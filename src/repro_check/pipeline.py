"""Comparison run orchestration: tiers, aggregation and report output."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Sequence
from uuid import uuid4

import polars as pl

from repro_check.config import AppSettings, TargetProfile
from repro_check.errors import InputError
from repro_check.hashing.hasher import digest_or_none
from repro_check.hashing.signature import SignatureNormalizer
from repro_check.hashing.sums import load_sha256sums, lookup_digest
from repro_check.report.tables import build_file_comparison_frame
from repro_check.report.writer import ReportPaths, write_report_bundle
from repro_check.rules import ExclusionSet
from repro_check.tree.lister import list_tree
from repro_check.utils.paths import ensure_directories
from repro_check.verdict.aggregator import VerdictAggregator
from repro_check.verdict.models import FileComparison, VerdictRecord
from repro_check.verdict.tiers import (
    compare_file,
    run_container_tier,
    run_critical_tier,
    run_fileset_tier,
)

LOGGER = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_NOT_REPRODUCIBLE = 1
EXIT_INVALID_INPUT = 2


@dataclass(frozen=True, slots=True)
class ComparisonInputs:
    """Paths handed over by the build and download collaborators."""

    built_root: Path
    official_root: Path
    built_artifact: Path | None = None
    official_artifact: Path | None = None
    release_files: tuple[Path, ...] = ()
    official_sums: Path | None = None


@dataclass(frozen=True, slots=True)
class ComparisonOptions:
    """Per-run switches; None falls back to the settings value."""

    strict: bool | None = None
    skip_extract: bool | None = None
    compare_content: bool | None = None
    display_limit: int | None = None
    workers: int | None = None


@dataclass(frozen=True, slots=True)
class ResolvedOptions:
    strict: bool
    skip_extract: bool
    compare_content: bool
    display_limit: int
    workers: int


@dataclass(frozen=True, slots=True)
class ComparisonOutcome:
    """In-memory result of the engine, before anything is written."""

    record: VerdictRecord
    file_table: pl.DataFrame


@dataclass(frozen=True, slots=True)
class ComparisonRunResult:
    """Return object for a full comparison run."""

    run_id: str
    record: VerdictRecord
    reports: ReportPaths
    duration_sec: float

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.record)


def exit_code_for(record: VerdictRecord) -> int:
    """Map the aggregate verdict to the process exit status."""

    return EXIT_SUCCESS if record.reproducible else EXIT_NOT_REPRODUCIBLE


def resolve_options(settings: AppSettings, options: ComparisonOptions | None) -> ResolvedOptions:
    chosen = options or ComparisonOptions()
    base = settings.comparison
    return ResolvedOptions(
        strict=base.strict if chosen.strict is None else chosen.strict,
        skip_extract=base.skip_extract if chosen.skip_extract is None else chosen.skip_extract,
        compare_content=base.compare_content if chosen.compare_content is None else chosen.compare_content,
        display_limit=base.display_limit if chosen.display_limit is None else max(1, chosen.display_limit),
        workers=base.hash_workers if chosen.workers is None else max(1, chosen.workers),
    )


def _validate_artifact_inputs(inputs: ComparisonInputs) -> None:
    """Bundle and release files are optional, but a path that was given must exist."""

    for side, path in (("built", inputs.built_artifact), ("official", inputs.official_artifact)):
        if path is not None and not path.is_file():
            raise InputError(f"{side} artifact not found: {path}", side=side)
    for path in inputs.release_files:
        if not path.is_file():
            raise InputError(f"built release file not found: {path}", side="built")
    if inputs.release_files and inputs.official_sums is None:
        raise InputError("release files need an official checksum file to compare against", side="official")
    if inputs.official_sums is not None and not inputs.official_sums.is_file():
        raise InputError(f"official checksum file not found: {inputs.official_sums}", side="official")


def _compare_bundles(
    inputs: ComparisonInputs,
    profile: TargetProfile,
    normalizer: SignatureNormalizer,
    official_sums: dict[str, str] | None,
    logger: logging.Logger,
) -> tuple[FileComparison, list[str]]:
    reference = inputs.built_artifact or inputs.official_artifact
    if reference is None:
        return FileComparison(filename=profile.artifact_name or "N/A", built_hash=None, official_hash=None), [
            "no release bundles supplied; whole-artifact hash not compared"
        ]
    filename = profile.artifact_name or reference.name
    if inputs.official_artifact is None and official_sums is not None:
        # the checksum listing stands in for the official bundle; signatures cannot be stripped from it
        comparison, warnings = compare_file(inputs.built_artifact, None, filename, logger=logger)
        comparison = replace(comparison, official_hash=lookup_digest(official_sums, filename))
    else:
        comparison, warnings = compare_file(
            inputs.built_artifact,
            inputs.official_artifact,
            filename,
            normalizer=normalizer,
            logger=logger,
        )
    logger.info(
        "pipeline.artifact filename=%s built=%s official=%s match=%s",
        filename,
        comparison.built_hash,
        comparison.official_hash,
        comparison.match,
    )
    return comparison, warnings


def _compare_releases(
    release_files: Sequence[Path],
    official_sums: dict[str, str] | None,
    logger: logging.Logger,
) -> list[FileComparison]:
    """Hash each built release file and look up its official digest by name."""

    if not release_files or official_sums is None:
        return []
    releases: list[FileComparison] = []
    for path in release_files:
        built_hash = digest_or_none(path, logger)
        official_hash = lookup_digest(official_sums, path.name)
        if official_hash is None:
            logger.warning("pipeline.release_unlisted filename=%s", path.name)
        releases.append(FileComparison(filename=path.name, built_hash=built_hash, official_hash=official_hash))
        logger.info(
            "pipeline.release filename=%s built=%s official=%s match=%s",
            path.name,
            built_hash,
            official_hash,
            releases[-1].match,
        )
    return releases


def compare_artifacts(
    settings: AppSettings,
    inputs: ComparisonInputs,
    profile: TargetProfile,
    *,
    target_name: str | None = None,
    options: ComparisonOptions | None = None,
    logger: logging.Logger | None = None,
) -> ComparisonOutcome:
    """Run all tiers over two artifact trees and aggregate the verdict.

    Input errors (missing roots or bundles) raise InputError before any
    tier runs. Tool failures degrade only their own tier.
    """

    effective_logger = logger or LOGGER
    resolved = resolve_options(settings, options)

    built_tree = list_tree(inputs.built_root, "built", logger=effective_logger)
    official_tree = list_tree(inputs.official_root, "official", logger=effective_logger)
    _validate_artifact_inputs(inputs)
    official_sums = (
        load_sha256sums(inputs.official_sums, logger=effective_logger) if inputs.official_sums is not None else None
    )
    effective_logger.info(
        "pipeline.listed built_files=%s official_files=%s strict=%s",
        len(built_tree),
        len(official_tree),
        resolved.strict,
    )

    normalizer = SignatureNormalizer(
        settings.tools.signature_strip_command,
        patterns=profile.signed_patterns,
        logger=effective_logger,
    )
    exclusions = ExclusionSet() if resolved.strict else ExclusionSet.from_config(profile.exclusions)

    aggregator = VerdictAggregator(
        script_version=settings.project.script_version,
        build_type=profile.build_type,
        architecture=profile.architecture,
        target=target_name,
        logger=effective_logger,
    )

    aggregator.record_critical(
        run_critical_tier(
            inputs.built_root,
            inputs.official_root,
            profile.critical_files,
            normalizer=normalizer,
            display_limit=resolved.display_limit,
            logger=effective_logger,
        )
    )
    aggregator.record_modules(
        run_container_tier(
            inputs.built_root,
            inputs.official_root,
            profile.containers,
            tools=settings.tools,
            strict=resolved.strict,
            skip_extract=resolved.skip_extract,
            display_limit=resolved.display_limit,
            workers=resolved.workers,
            scratch_root=settings.paths.scratch_root,
            logger=effective_logger,
        )
    )
    fileset = run_fileset_tier(
        built_tree,
        official_tree,
        exclusions=exclusions,
        container_paths=[spec.path for spec in profile.containers],
        normalizer=normalizer,
        compare_content=resolved.compare_content,
        display_limit=resolved.display_limit,
        workers=resolved.workers,
        logger=effective_logger,
    )
    aggregator.record_fileset(fileset)

    artifact, bundle_warnings = _compare_bundles(inputs, profile, normalizer, official_sums, effective_logger)
    for warning in bundle_warnings:
        aggregator.add_warning(warning)
    releases = _compare_releases(inputs.release_files, official_sums, effective_logger)
    record = aggregator.finalize(artifact, releases=releases)

    file_table = build_file_comparison_frame(fileset.diffs, fileset.digests, exclusions)
    return ComparisonOutcome(record=record, file_table=file_table)


def run_comparison(
    settings: AppSettings,
    inputs: ComparisonInputs,
    profile: TargetProfile,
    *,
    target_name: str | None = None,
    options: ComparisonOptions | None = None,
    output_dir: Path | None = None,
    logger: logging.Logger | None = None,
) -> ComparisonRunResult:
    """Compare, then write the report bundle under the reports root."""

    effective_logger = logger or LOGGER
    run_id = f"compare-{uuid4().hex[:12]}"
    started_mono = time.monotonic()
    effective_logger.info(
        "pipeline.start run_id=%s target=%s built_root=%s official_root=%s",
        run_id,
        target_name,
        inputs.built_root,
        inputs.official_root,
    )

    outcome = compare_artifacts(
        settings,
        inputs,
        profile,
        target_name=target_name,
        options=options,
        logger=effective_logger,
    )
    destination = output_dir or (settings.paths.reports_root / (target_name or "adhoc") / run_id)
    ensure_directories([settings.paths.work_root, settings.paths.scratch_root, destination])
    recorded_inputs: dict[str, Any] = {
        "built_root": str(inputs.built_root),
        "official_root": str(inputs.official_root),
        "built_artifact": str(inputs.built_artifact) if inputs.built_artifact else None,
        "official_artifact": str(inputs.official_artifact) if inputs.official_artifact else None,
        "release_files": [str(path) for path in inputs.release_files],
        "official_sums": str(inputs.official_sums) if inputs.official_sums else None,
        "options": asdict(resolve_options(settings, options)),
    }
    reports = write_report_bundle(
        outcome.record,
        outcome.file_table,
        destination,
        run_id=run_id,
        inputs=recorded_inputs,
    )
    duration = round(time.monotonic() - started_mono, 3)
    effective_logger.info(
        "pipeline.done run_id=%s status=%s duration_sec=%s results=%s",
        run_id,
        outcome.record.status,
        duration,
        reports.results_path,
    )
    return ComparisonRunResult(run_id=run_id, record=outcome.record, reports=reports, duration_sec=duration)


def apply_profile_overrides(
    profile: TargetProfile,
    *,
    build_type: str | None = None,
    architecture: str | None = None,
    artifact_name: str | None = None,
) -> TargetProfile:
    """Return a copy of the profile with CLI-provided tags applied."""

    updates: dict[str, str] = {}
    if build_type is not None:
        updates["build_type"] = build_type
    if architecture is not None:
        updates["architecture"] = architecture
    if artifact_name is not None:
        updates["artifact_name"] = artifact_name
    return profile.model_copy(update=updates) if updates else profile

