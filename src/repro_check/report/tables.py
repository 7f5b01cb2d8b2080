"""Tabular per-path comparison output."""

from __future__ import annotations

from typing import Mapping, Sequence

import polars as pl

from repro_check.rules import ExclusionSet
from repro_check.tree.differ import Classification, PathDiff

ONLY_IN: dict[Classification, str] = {
    Classification.MISSING_IN_A: "official",
    Classification.MISSING_IN_B: "built",
}


def _file_comparison_schema() -> dict[str, pl.DataType]:
    """Stable schema for the file comparison table."""

    return {
        "path": pl.String,
        "classification": pl.String,
        "only_in": pl.String,
        "excluded_by": pl.String,
        "built_sha256": pl.String,
        "official_sha256": pl.String,
    }


def empty_file_comparison() -> pl.DataFrame:
    return pl.DataFrame(schema=_file_comparison_schema())


def build_file_comparison_frame(
    diffs: Sequence[PathDiff],
    digests: Mapping[str, tuple[str | None, str | None]],
    exclusions: ExclusionSet,
) -> pl.DataFrame:
    """One row per classified path, in merge-join order."""

    if not diffs:
        return empty_file_comparison()

    rows: list[dict[str, object]] = []
    for item in diffs:
        built_digest, official_digest = digests.get(item.path, (None, None))
        rows.append(
            {
                "path": item.path,
                "classification": item.classification.value,
                "only_in": ONLY_IN.get(item.classification),
                "excluded_by": None if item.is_match else exclusions.rule_for(item.path),
                "built_sha256": built_digest,
                "official_sha256": official_digest,
            }
        )
    return pl.DataFrame(rows, schema=_file_comparison_schema())


def classification_counts(frame: pl.DataFrame) -> dict[str, int]:
    """Return row counts per classification, sorted by classification name."""

    counts = {item.value: 0 for item in Classification}
    if frame.height == 0:
        return dict(sorted(counts.items()))
    for row in frame.group_by("classification").len(name="count").to_dicts():
        counts[str(row["classification"])] = int(row["count"])
    return dict(sorted(counts.items()))
