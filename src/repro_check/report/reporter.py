"""Serialize verdict records into stable YAML and text blocks."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

import yaml

from repro_check.utils.time_utils import iso_timestamp
from repro_check.verdict.models import FileComparison, TierResult, VerdictRecord, render_flag

ErrorStatus = Literal["ftbfs", "nosource"]
UNKNOWN_HASH = "N/A"


def _file_payload(comparison: FileComparison, notes: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "filename": comparison.filename,
        "hash": comparison.built_hash or UNKNOWN_HASH,
        "official_hash": comparison.official_hash or UNKNOWN_HASH,
        "match": comparison.match,
        "signature_stripped": comparison.signature_stripped,
        "tier": comparison.tier,
    }
    if notes is not None:
        payload["notes"] = notes
    return payload


def _tier_payload(result: TierResult) -> dict[str, Any]:
    return {
        "name": result.name,
        "passed": result.passed,
        "diff_count": result.diff_count,
        "differing_paths": list(result.differing_paths),
        "excluded_count": result.excluded_count,
        "excluded_paths": list(result.excluded_paths),
        "notes": list(result.notes),
    }


def record_to_dict(record: VerdictRecord) -> dict[str, Any]:
    """Map a record onto the COMPARISON_RESULTS field names."""

    files = [_file_payload(record.artifact, notes=record.notes)]
    files.extend(_file_payload(item) for item in record.releases)
    files.extend(_file_payload(item) for item in record.files)
    result: dict[str, Any] = {
        "architecture": record.architecture,
        "status": record.status,
        "files": files,
        "tiers": [_tier_payload(tier) for tier in record.tiers],
        "warnings": list(record.warnings),
    }
    payload: dict[str, Any] = {
        "date": record.date,
        "script_version": record.script_version,
        "build_type": record.build_type,
        "results": [result],
    }
    if record.target is not None:
        payload["target"] = record.target
    return payload


def _dump(payload: dict[str, Any]) -> str:
    return yaml.safe_dump(payload, sort_keys=True, default_flow_style=False, allow_unicode=True, width=4096)


def render_record(record: VerdictRecord) -> str:
    """Render the record as YAML with keys sorted at every level."""

    return _dump(record_to_dict(record))


def render_error_record(
    *,
    script_version: str,
    build_type: str,
    architecture: str,
    status: ErrorStatus,
    error: str,
    generated_at: datetime | None = None,
) -> str:
    """YAML for runs that ended before a verdict could be formed."""

    payload = {
        "date": iso_timestamp(generated_at),
        "script_version": script_version,
        "build_type": build_type,
        "results": [
            {
                "architecture": architecture,
                "filename": UNKNOWN_HASH,
                "hash": UNKNOWN_HASH,
                "match": False,
                "status": status,
                "error": error,
            }
        ],
    }
    return _dump(payload)


def render_results_block(record: VerdictRecord) -> str:
    """Human-readable summary framed by Begin/End Results markers."""

    verdict_text = "reproducible" if record.reproducible else "differences found"
    lines = [
        "===== Begin Results =====",
        f"target:         {record.target or 'N/A'}",
        f"buildType:      {record.build_type}",
        f"architecture:   {record.architecture}",
        f"verdict:        {verdict_text}",
        f"artifact:       {record.artifact.filename}",
        f"builtHash:      {record.artifact.built_hash or UNKNOWN_HASH}",
        f"officialHash:   {record.artifact.official_hash or UNKNOWN_HASH}",
    ]
    for release in record.releases:
        lines.append(f"release:        {release.filename} {render_flag(release.match)}")
    lines.extend(["", "Tiers:"])
    if not record.tiers:
        lines.append("  (none evaluated)")
    for tier in record.tiers:
        count = "n/a" if tier.diff_count is None else str(tier.diff_count)
        lines.append(f"  {tier.name}: {render_flag(tier.passed)} (differences: {count}, excluded: {tier.excluded_count})")
        for path in tier.differing_paths:
            lines.append(f"    - {path}")

    lines.extend(["", "Diff:", record.notes])
    if record.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"  {warning}" for warning in record.warnings)
    lines.append("===== End Results =====")
    return "\n".join(lines) + "\n"
