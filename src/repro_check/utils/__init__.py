"""Shared utility helpers."""

from repro_check.utils.paths import (
    ensure_directories,
    write_df_pair_atomically,
    write_json_atomically,
    write_text_atomically,
)
from repro_check.utils.time_utils import iso_timestamp, now_utc

__all__ = [
    "ensure_directories",
    "write_text_atomically",
    "write_json_atomically",
    "write_df_pair_atomically",
    "now_utc",
    "iso_timestamp",
]
