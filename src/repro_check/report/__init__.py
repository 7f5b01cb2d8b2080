"""Result reporting: YAML records, text blocks and comparison tables."""

from repro_check.report.reporter import (
    record_to_dict,
    render_error_record,
    render_record,
    render_results_block,
)
from repro_check.report.tables import (
    build_file_comparison_frame,
    classification_counts,
    empty_file_comparison,
)
from repro_check.report.writer import (
    RESULTS_FILE,
    ReportPaths,
    write_error_record,
    write_report_bundle,
)

__all__ = [
    "record_to_dict",
    "render_record",
    "render_error_record",
    "render_results_block",
    "build_file_comparison_frame",
    "classification_counts",
    "empty_file_comparison",
    "RESULTS_FILE",
    "ReportPaths",
    "write_report_bundle",
    "write_error_record",
]
