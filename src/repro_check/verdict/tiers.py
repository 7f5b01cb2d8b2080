"""Tier runners: critical files, container deep inspection, file set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from repro_check.config import ContainerSpec, ToolsConfig
from repro_check.containers.deep import inspect_archives
from repro_check.containers.extractors import build_extractor
from repro_check.errors import ExtractionError
from repro_check.hashing.hasher import digest_or_none
from repro_check.hashing.signature import SignatureNormalizer
from repro_check.rules import ExclusionSet
from repro_check.tree.content import diff_with_content
from repro_check.tree.differ import Classification, PathDiff, mark_content_differences
from repro_check.tree.lister import ArtifactTree
from repro_check.verdict.models import (
    TIER_CRITICAL,
    TIER_FILES,
    TIER_MODULES,
    FileComparison,
    TierResult,
)

LOGGER = logging.getLogger(__name__)

SIDE_LABELS: dict[Classification, str] = {
    Classification.MISSING_IN_A: "missing in built",
    Classification.MISSING_IN_B: "missing in official",
    Classification.CONTENT_DIFFERS: "content differs",
}


@dataclass(frozen=True, slots=True)
class TierOutcome:
    """Tier result plus the supporting data the reporter needs."""

    result: TierResult
    files: tuple[FileComparison, ...] = ()
    warnings: tuple[str, ...] = ()
    diffs: tuple[PathDiff, ...] = ()
    digests: dict[str, tuple[str | None, str | None]] = field(default_factory=dict)


def _side_digest(
    path: Path,
    relative_path: str,
    normalizer: SignatureNormalizer | None,
    logger: logging.Logger,
) -> tuple[str | None, bool, str | None]:
    """Digest one side, stripping its signature first when the path is a signed class."""

    if normalizer is None or not normalizer.applies_to(relative_path):
        return digest_or_none(path, logger), False, None
    try:
        stripped = normalizer.strip(path)
    except OSError as exc:
        logger.warning("tiers.signed_unreadable path=%s error=%s", path, exc)
        return None, False, None
    return stripped.digest, stripped.stripped, stripped.warning


def compare_file(
    built_path: Path | None,
    official_path: Path | None,
    filename: str,
    *,
    normalizer: SignatureNormalizer | None = None,
    logger: logging.Logger | None = None,
) -> tuple[FileComparison, list[str]]:
    """Hash a built/official pair, returning the comparison and any strip warnings."""

    effective_logger = logger or LOGGER
    warnings: list[str] = []
    built_hash: str | None = None
    official_hash: str | None = None
    built_stripped = False
    official_stripped = False

    if built_path is not None:
        built_hash, built_stripped, warning = _side_digest(built_path, filename, normalizer, effective_logger)
        if warning:
            warnings.append(warning)
    if official_path is not None:
        official_hash, official_stripped, warning = _side_digest(
            official_path, filename, normalizer, effective_logger
        )
        if warning:
            warnings.append(warning)

    comparison = FileComparison(
        filename=filename,
        built_hash=built_hash,
        official_hash=official_hash,
        signature_stripped=built_stripped and official_stripped,
    )
    return comparison, warnings


def run_critical_tier(
    built_root: Path,
    official_root: Path,
    critical_files: Sequence[str],
    *,
    normalizer: SignatureNormalizer | None = None,
    display_limit: int = 20,
    logger: logging.Logger | None = None,
) -> TierOutcome | None:
    """Every critical file must exist on both sides with identical digests."""

    effective_logger = logger or LOGGER
    if not critical_files:
        return None

    files: list[FileComparison] = []
    warnings: list[str] = []
    failing: list[str] = []
    notes: list[str] = []
    for relative_path in critical_files:
        built_path = built_root.joinpath(*relative_path.split("/"))
        official_path = official_root.joinpath(*relative_path.split("/"))
        comparison, strip_warnings = compare_file(
            built_path, official_path, relative_path, normalizer=normalizer, logger=effective_logger
        )
        files.append(comparison)
        warnings.extend(strip_warnings)
        notes.extend(strip_warnings)
        if comparison.match:
            effective_logger.info("critical.match file=%s sha256=%s", relative_path, comparison.built_hash)
            continue

        failing.append(relative_path)
        if comparison.built_hash is None:
            notes.append(f"{relative_path}: missing or unreadable in built")
        if comparison.official_hash is None:
            notes.append(f"{relative_path}: missing or unreadable in official")
        if comparison.available:
            notes.append(f"{relative_path}: hash mismatch")
        effective_logger.error(
            "critical.mismatch file=%s built=%s official=%s",
            relative_path,
            comparison.built_hash,
            comparison.official_hash,
        )

    matched = len(critical_files) - len(failing)
    notes.insert(0, f"{matched}/{len(critical_files)} critical files match")
    result = TierResult(
        name=TIER_CRITICAL,
        passed=not failing,
        diff_count=len(failing),
        differing_paths=tuple(failing[:display_limit]),
        notes=tuple(notes),
    )
    return TierOutcome(result=result, files=tuple(files), warnings=tuple(warnings))


def run_container_tier(
    built_root: Path,
    official_root: Path,
    containers: Sequence[ContainerSpec],
    *,
    tools: ToolsConfig,
    strict: bool = False,
    skip_extract: bool = False,
    display_limit: int = 20,
    workers: int = 4,
    scratch_root: Path | None = None,
    logger: logging.Logger | None = None,
) -> TierOutcome | None:
    """Whole-file hash per container, falling back to deep inspection on mismatch."""

    effective_logger = logger or LOGGER
    if not containers:
        return None

    files: list[FileComparison] = []
    notes: list[str] = []
    differing: list[str] = []
    excluded: list[str] = []
    excluded_count = 0
    diff_total = 0
    compared = False
    passed = True

    for spec in containers:
        built_path = built_root.joinpath(*spec.path.split("/"))
        official_path = official_root.joinpath(*spec.path.split("/"))
        comparison, _ = compare_file(built_path, official_path, spec.path, logger=effective_logger)
        files.append(comparison)

        if not comparison.available:
            passed = False
            missing_sides = [
                side
                for side, digest in (("built", comparison.built_hash), ("official", comparison.official_hash))
                if digest is None
            ]
            notes.append(f"{spec.path}: missing or unreadable in {' and '.join(missing_sides)}")
            continue
        if comparison.match:
            compared = True
            notes.append(f"{spec.path}: identical")
            effective_logger.info("modules.identical container=%s", spec.path)
            continue
        if skip_extract:
            passed = False
            notes.append(f"{spec.path}: hash differs, extraction skipped")
            effective_logger.warning("modules.extract_skipped container=%s", spec.path)
            continue

        effective_logger.warning(
            "modules.hash_differs container=%s built=%s official=%s; running deep inspection",
            spec.path,
            comparison.built_hash,
            comparison.official_hash,
        )
        rules = ExclusionSet() if strict else ExclusionSet.from_patterns(spec.path, spec.exclude)
        try:
            inspection = inspect_archives(
                built_path,
                official_path,
                build_extractor(spec, tools, logger=effective_logger),
                exclusions=rules,
                groups=spec.groups,
                display_limit=display_limit,
                workers=workers,
                scratch_root=scratch_root,
                logger=effective_logger,
            )
        except (OSError, ExtractionError) as exc:
            effective_logger.exception("modules.inspection_error container=%s", spec.path)
            passed = False
            notes.append(f"{spec.path}: deep inspection error: {exc}")
            continue
        except Exception as exc:
            # an unexpected failure fails this container only, the run still gets a verdict
            effective_logger.exception("modules.inspection_crashed container=%s", spec.path)
            passed = False
            notes.append(f"{spec.path}: deep inspection error: {type(exc).__name__}: {exc}")
            continue

        excluded_count += inspection.excluded_count
        excluded.extend(inspection.excluded_paths)
        if inspection.diff_count is None:
            passed = False
            notes.append(f"{spec.path}: {inspection.reason}")
            continue

        compared = True
        diff_total += inspection.diff_count
        differing.extend(inspection.differing_paths)
        if inspection.passed:
            notes.append(
                f"{spec.path}: hash differs, extracted contents identical "
                f"({inspection.official_file_count} files)"
            )
        else:
            passed = False
            notes.append(f"{spec.path}: {inspection.diff_count} extracted files differ")
        if inspection.excluded_count:
            notes.append(f"{spec.path}: {inspection.excluded_count} excluded differences")
        if inspection.group_counts:
            breakdown = " ".join(f"{name}={count}" for name, count in inspection.group_counts.items())
            notes.append(f"{spec.path}: {breakdown}")

    result = TierResult(
        name=TIER_MODULES,
        passed=passed,
        diff_count=diff_total if compared else None,
        differing_paths=tuple(differing[:display_limit]),
        excluded_count=excluded_count,
        excluded_paths=tuple(excluded[:display_limit]),
        notes=tuple(notes),
    )
    return TierOutcome(result=result, files=tuple(files))


def _describe_excluded(excluded: Sequence[PathDiff], exclusions: ExclusionSet) -> str:
    by_rule: dict[str, int] = {}
    for item in excluded:
        rule = exclusions.rule_for(item.path) or "unknown"
        by_rule[rule] = by_rule.get(rule, 0) + 1
    rendered = ", ".join(f"{rule}={count}" for rule, count in sorted(by_rule.items()))
    return f"{len(excluded)} excluded differences ({rendered})"


def run_fileset_tier(
    built: ArtifactTree,
    official: ArtifactTree,
    *,
    exclusions: ExclusionSet,
    container_paths: Sequence[str] = (),
    normalizer: SignatureNormalizer | None = None,
    compare_content: bool = True,
    display_limit: int = 20,
    workers: int = 4,
    logger: logging.Logger | None = None,
) -> TierOutcome:
    """Merge-join both listings; unexplained differences fail the tier.

    Container paths are only checked for presence here, their content is
    judged by the container tier. Paths the normalizer applies to are
    compared after signature stripping.
    """

    effective_logger = logger or LOGGER
    container_set = set(container_paths)
    signed: list[str] = []
    if compare_content and normalizer is not None:
        signed = [
            path
            for path in built.paths
            if path in official
            and path not in container_set
            and path not in built.links
            and path not in official.links
            and normalizer.applies_to(path)
        ]
    diffs, digests = diff_with_content(
        built,
        official,
        workers=workers,
        skip_content=[*container_paths, *signed],
        compare_content=compare_content,
        logger=effective_logger,
    )

    files: list[FileComparison] = []
    warnings: list[str] = []
    differing_signed: set[str] = set()
    for path in signed:
        comparison, strip_warnings = compare_file(
            built.absolute(path), official.absolute(path), path, normalizer=normalizer, logger=effective_logger
        )
        files.append(comparison)
        warnings.extend(strip_warnings)
        digests[path] = (comparison.built_hash, comparison.official_hash)
        if not comparison.match:
            differing_signed.add(path)
    if differing_signed:
        diffs = mark_content_differences(diffs, differing_signed)
    failing, excluded = exclusions.partition(diffs)

    notes = [f"built_files={len(built)} official_files={len(official)}"]
    if signed:
        notes.append(f"{len(signed)} signed files compared after stripping")
    notes.extend(warnings)
    if len(built) != len(official):
        notes.append(f"file count differs by {len(official) - len(built)}")
    for classification, label in SIDE_LABELS.items():
        count = sum(1 for item in failing if item.classification is classification)
        if count:
            notes.append(f"{count} {label}")
    if excluded:
        notes.append(_describe_excluded(excluded, exclusions))
        effective_logger.info("files.excluded count=%s", len(excluded))
    if failing:
        effective_logger.error("files.differences count=%s first=%s", len(failing), failing[0].path)

    result = TierResult(
        name=TIER_FILES,
        passed=not failing,
        diff_count=len(failing),
        differing_paths=tuple(item.path for item in failing[:display_limit]),
        excluded_count=len(excluded),
        excluded_paths=tuple(item.path for item in excluded[:display_limit]),
        notes=tuple(notes),
    )
    return TierOutcome(
        result=result, files=tuple(files), warnings=tuple(warnings), diffs=tuple(diffs), digests=digests
    )
