"""Compare two container artifacts by their extracted contents."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from repro_check.containers.extractors import Extractor
from repro_check.errors import ExtractionError
from repro_check.rules import ExclusionSet
from repro_check.tree.content import diff_with_content
from repro_check.tree.lister import list_tree

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeepInspection:
    """Outcome of extracting and diffing one pair of containers.

    `diff_count` is None when extraction failed and nothing was compared.
    `differing_paths` keeps merge-join encounter order, capped at the
    display limit.
    """

    passed: bool
    diff_count: int | None
    differing_paths: tuple[str, ...] = ()
    excluded_count: int = 0
    excluded_paths: tuple[str, ...] = ()
    group_counts: dict[str, int] = field(default_factory=dict)
    built_file_count: int = 0
    official_file_count: int = 0
    reason: str | None = None


def _failed(reason: str) -> DeepInspection:
    return DeepInspection(passed=False, diff_count=None, reason=reason)


def inspect_archives(
    built_archive: Path,
    official_archive: Path,
    extractor: Extractor,
    *,
    exclusions: ExclusionSet | None = None,
    groups: Mapping[str, str] | None = None,
    display_limit: int = 20,
    workers: int = 4,
    scratch_root: Path | None = None,
    logger: logging.Logger | None = None,
) -> DeepInspection:
    """Extract both containers into a private scratch tree and diff the results.

    Extraction failure on either side is a conservative fail, and so is an
    extraction that yields nothing from a non-empty archive. The scratch
    tree is removed whether the comparison passes, fails or raises.
    """

    effective_logger = logger or LOGGER
    rules = exclusions or ExclusionSet()
    if scratch_root is not None:
        scratch_root.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="repro_check_extract_", dir=scratch_root) as tmp_dir:
        scratch = Path(tmp_dir)
        sides = (("built", built_archive, scratch / "built"), ("official", official_archive, scratch / "official"))
        for side, archive, destination in sides:
            try:
                extractor.extract(archive, destination)
            except ExtractionError as exc:
                effective_logger.error("deep.extract_failed side=%s archive=%s error=%s", side, archive, exc)
                return _failed(f"extraction failed ({side}): {exc}")
            effective_logger.info("deep.extracted side=%s archive=%s", side, archive)

        built_tree = list_tree(scratch / "built", "built", logger=effective_logger)
        official_tree = list_tree(scratch / "official", "official", logger=effective_logger)
        listed = (("built", built_archive, built_tree), ("official", official_archive, official_tree))
        for side, archive, tree in listed:
            if len(tree) == 0 and archive.stat().st_size > 0:
                effective_logger.error("deep.extract_empty side=%s archive=%s", side, archive)
                return _failed(f"extraction produced no files ({side})")
        diffs, _ = diff_with_content(built_tree, official_tree, workers=workers, logger=effective_logger)

    failing, excluded = rules.partition(diffs)
    group_counts: dict[str, int] = {}
    for name, prefix in sorted((groups or {}).items()):
        group_counts[name] = sum(1 for item in failing if item.path.startswith(prefix))

    effective_logger.info(
        "deep.compared built_files=%s official_files=%s differing=%s excluded=%s",
        len(built_tree),
        len(official_tree),
        len(failing),
        len(excluded),
    )
    return DeepInspection(
        passed=not failing,
        diff_count=len(failing),
        differing_paths=tuple(item.path for item in failing[:display_limit]),
        excluded_count=len(excluded),
        excluded_paths=tuple(item.path for item in excluded[:display_limit]),
        group_counts=group_counts,
        built_file_count=len(built_tree),
        official_file_count=len(official_tree),
    )
