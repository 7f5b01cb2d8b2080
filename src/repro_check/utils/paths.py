"""Path and filesystem helper functions."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4

import polars as pl


def ensure_directories(paths: Iterable[Path]) -> list[Path]:
    """Create all directories in the iterable if they do not exist."""

    created_or_existing: list[Path] = []
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)
        created_or_existing.append(directory)
    return created_or_existing


def _atomic_temp_path(target_path: Path) -> Path:
    """Create a unique temp path next to the target for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def write_text_atomically(content: str, output_path: Path) -> Path:
    """Write UTF-8 text atomically via temporary file then os.replace."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _atomic_temp_path(output_path)
    try:
        temp_path.write_text(content, encoding="utf-8")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    """Write JSON atomically via temporary file then os.replace."""

    rendered = json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n"
    return write_text_atomically(rendered, output_path)


def write_df_pair_atomically(df: pl.DataFrame, parquet_path: Path, csv_path: Path) -> tuple[Path, Path]:
    """Write dataframe as parquet and csv atomically."""

    parquet_path.parent.mkdir(parents=True, exist_ok=True)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    parquet_tmp = _atomic_temp_path(parquet_path)
    csv_tmp = _atomic_temp_path(csv_path)
    try:
        df.write_parquet(parquet_tmp)
        df.write_csv(csv_tmp)
        os.replace(parquet_tmp, parquet_path)
        os.replace(csv_tmp, csv_path)
    finally:
        if parquet_tmp.exists():
            parquet_tmp.unlink()
        if csv_tmp.exists():
            csv_tmp.unlink()
    return parquet_path, csv_path
