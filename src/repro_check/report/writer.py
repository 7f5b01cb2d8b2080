"""Persist comparison run artifacts atomically."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import polars as pl

from repro_check.report.reporter import record_to_dict, render_record, render_results_block
from repro_check.report.tables import classification_counts
from repro_check.utils.paths import write_df_pair_atomically, write_json_atomically, write_text_atomically
from repro_check.verdict.models import VerdictRecord

RESULTS_FILE = "COMPARISON_RESULTS.yaml"
SUMMARY_FILE = "run_summary.json"
TABLE_PARQUET_FILE = "file_comparison.parquet"
TABLE_CSV_FILE = "file_comparison.csv"
RESULTS_BLOCK_FILE = "verification_summary.txt"


@dataclass(frozen=True, slots=True)
class ReportPaths:
    """Files written for one comparison run."""

    output_dir: Path
    results_path: Path
    summary_path: Path
    table_parquet_path: Path
    table_csv_path: Path
    results_block_path: Path


def write_report_bundle(
    record: VerdictRecord,
    file_table: pl.DataFrame,
    output_dir: Path,
    *,
    run_id: str,
    inputs: dict[str, Any] | None = None,
) -> ReportPaths:
    """Write YAML record, JSON summary, per-path table and results block."""

    output_dir.mkdir(parents=True, exist_ok=True)
    results_path = write_text_atomically(render_record(record), output_dir / RESULTS_FILE)
    parquet_path, csv_path = write_df_pair_atomically(
        file_table,
        output_dir / TABLE_PARQUET_FILE,
        output_dir / TABLE_CSV_FILE,
    )
    block_path = write_text_atomically(render_results_block(record), output_dir / RESULTS_BLOCK_FILE)

    summary: dict[str, Any] = {
        "run_id": run_id,
        "status": record.status,
        "record": record_to_dict(record),
        "classification_counts": classification_counts(file_table),
        "inputs": inputs or {},
        "outputs": {
            "results_path": str(results_path),
            "table_parquet_path": str(parquet_path),
            "table_csv_path": str(csv_path),
            "results_block_path": str(block_path),
        },
    }
    summary_path = write_json_atomically(summary, output_dir / SUMMARY_FILE)
    return ReportPaths(
        output_dir=output_dir,
        results_path=results_path,
        summary_path=summary_path,
        table_parquet_path=parquet_path,
        table_csv_path=csv_path,
        results_block_path=block_path,
    )


def write_error_record(content: str, output_dir: Path) -> Path:
    """Write an error COMPARISON_RESULTS.yaml produced by render_error_record."""

    return write_text_atomically(content, output_dir / RESULTS_FILE)
