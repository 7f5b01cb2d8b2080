"""Typer CLI entrypoint for repro_check."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError

from repro_check.config import AppSettings, TargetProfile, load_settings, resolve_target
from repro_check.errors import InputError, ReproCheckError
from repro_check.hashing.hasher import hash_many
from repro_check.hashing.signature import SignatureNormalizer
from repro_check.logging_utils import configure_logging
from repro_check.pipeline import (
    EXIT_INVALID_INPUT,
    EXIT_NOT_REPRODUCIBLE,
    ComparisonInputs,
    ComparisonOptions,
    apply_profile_overrides,
    run_comparison,
)
from repro_check.report.reporter import ErrorStatus, render_error_record, render_results_block
from repro_check.report.writer import write_error_record
from repro_check.tree.differ import diff_sorted, non_matching
from repro_check.tree.lister import list_tree

app = typer.Typer(
    add_completion=False,
    help="Reproducible-build comparison of built versus official artifact trees.",
    no_args_is_help=True,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    help="Optional settings YAML path.",
    exists=False,
    file_okay=True,
    dir_okay=False,
    readable=True,
)


def _load_settings_or_exit(config_file: Path | None) -> AppSettings:
    try:
        return load_settings(config_file=config_file)
    except ValidationError as exc:
        typer.echo(f"Invalid settings: {exc}", err=True)
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
    *,
    verbose: bool = False,
) -> tuple[AppSettings, logging.Logger]:
    settings = _load_settings_or_exit(config_file)
    if configure:
        level = logging.DEBUG if verbose else logging.INFO
        logger = configure_logging(settings.paths.logs_root / "repro_check.log", level=level)
    else:
        logger = logging.getLogger("repro_check")
    return settings, logger


def _error_status(exc: InputError) -> ErrorStatus:
    return "nosource" if exc.side == "official" else "ftbfs"


@app.command("show-config")
def show_config(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("list-targets")
def list_targets(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """List configured target profiles."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    if not settings.targets:
        typer.echo("No targets configured.")
        return
    for name, profile in sorted(settings.targets.items()):
        typer.echo(
            f"{name}: build_type={profile.build_type} architecture={profile.architecture} "
            f"critical_files={len(profile.critical_files)} containers={len(profile.containers)} "
            f"exclusions={len(profile.exclusions)}"
        )


@app.command("compare")
def compare_cmd(
    built_root: Path = typer.Argument(..., help="Root of the locally built artifact tree."),
    official_root: Path = typer.Argument(..., help="Root of the official release tree."),
    target: str | None = typer.Option(None, "--target", help="Target profile name from settings."),
    built_artifact: Path | None = typer.Option(None, "--built-artifact", help="Built release bundle file."),
    official_artifact: Path | None = typer.Option(
        None, "--official-artifact", help="Official release bundle file."
    ),
    release_files: list[Path] | None = typer.Option(
        None, "--release-file", help="Built release file to check against the official checksums; repeatable."
    ),
    official_sums: Path | None = typer.Option(
        None, "--official-sums", help="Official SHA256SUMS listing (hash  filename per line)."
    ),
    build_type: str | None = typer.Option(None, "--build-type", help="Override build classification tag."),
    arch: str | None = typer.Option(None, "--arch", help="Override architecture tag."),
    strict: bool | None = typer.Option(
        None, "--strict/--no-strict", help="Disable exclusion rules so every difference counts."
    ),
    skip_extract: bool | None = typer.Option(
        None, "--skip-extract/--extract", help="Fail containers with differing hashes without extracting."
    ),
    compare_content: bool | None = typer.Option(
        None, "--content/--no-content", help="Hash matched paths in the file-set tier."
    ),
    display_limit: int | None = typer.Option(None, "--display-limit", min=1, help="Max paths listed per tier."),
    workers: int | None = typer.Option(None, "--workers", min=1, help="Hashing threads."),
    output_dir: Path | None = typer.Option(None, "--output-dir", help="Directory for the report bundle."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Compare built and official trees and write COMPARISON_RESULTS.yaml."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True, verbose=verbose)
    error_dir = output_dir or (settings.paths.reports_root / (target or "adhoc") / "last-error")

    profile: TargetProfile = TargetProfile()
    try:
        profile = apply_profile_overrides(
            resolve_target(settings, target),
            build_type=build_type,
            architecture=arch,
        )
        result = run_comparison(
            settings,
            ComparisonInputs(
                built_root=built_root,
                official_root=official_root,
                built_artifact=built_artifact,
                official_artifact=official_artifact,
                release_files=tuple(release_files or ()),
                official_sums=official_sums,
            ),
            profile,
            target_name=target,
            options=ComparisonOptions(
                strict=strict,
                skip_extract=skip_extract,
                compare_content=compare_content,
                display_limit=display_limit,
                workers=workers,
            ),
            output_dir=output_dir,
            logger=logger,
        )
    except InputError as exc:
        logger.error("compare.input_error error=%s", exc)
        path = write_error_record(
            render_error_record(
                script_version=settings.project.script_version,
                build_type=build_type or profile.build_type,
                architecture=arch or profile.architecture,
                status=_error_status(exc),
                error=str(exc),
            ),
            error_dir,
        )
        typer.echo(f"error: {exc}", err=True)
        typer.echo(f"results_path: {path}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc
    except ReproCheckError as exc:
        logger.exception("compare.internal_error")
        path = write_error_record(
            render_error_record(
                script_version=settings.project.script_version,
                build_type=profile.build_type,
                architecture=profile.architecture,
                status="ftbfs",
                error=f"internal error: {exc}",
            ),
            error_dir,
        )
        typer.echo(f"internal error: {exc}", err=True)
        typer.echo(f"results_path: {path}")
        raise typer.Exit(code=EXIT_NOT_REPRODUCIBLE) from exc

    typer.echo(render_results_block(result.record), nl=False)
    typer.echo(f"run_id: {result.run_id}")
    typer.echo(f"status: {result.record.status}")
    typer.echo(f"results_path: {result.reports.results_path}")
    typer.echo(f"summary_path: {result.reports.summary_path}")
    typer.echo(f"table_path: {result.reports.table_parquet_path}")
    raise typer.Exit(code=result.exit_code)


@app.command("diff-trees")
def diff_trees_cmd(
    tree_a: Path = typer.Argument(..., help="First tree root (A)."),
    tree_b: Path = typer.Argument(..., help="Second tree root (B)."),
    show_all: bool = typer.Option(False, "--all", help="Also print matching paths."),
) -> None:
    """Print the structural merge-join of two trees."""

    try:
        left = list_tree(tree_a, "a")
        right = list_tree(tree_b, "b")
    except InputError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc

    diffs = diff_sorted(left.paths, right.paths)
    shown = diffs if show_all else non_matching(diffs)
    for item in shown:
        typer.echo(f"{item.classification.value}\t{item.path}")
    typer.echo(f"a_files: {len(left)} b_files: {len(right)} differences: {len(non_matching(diffs))}")


@app.command("hash")
def hash_cmd(
    paths: list[Path] = typer.Argument(..., help="Files to hash."),
    workers: int = typer.Option(4, "--workers", min=1, help="Hashing threads."),
) -> None:
    """Print SHA-256 digests in sha256sum format."""

    digests = hash_many(paths, workers=workers)
    missing = 0
    for path, digest in digests.items():
        if digest is None:
            missing += 1
            typer.echo(f"unreadable: {path}", err=True)
            continue
        typer.echo(f"{digest}  {path}")
    if missing:
        raise typer.Exit(code=EXIT_INVALID_INPUT)


@app.command("strip-signature")
def strip_signature_cmd(
    path: Path = typer.Argument(..., help="Signed binary."),
    output: Path = typer.Option(..., "--output", help="Where to write the normalized bytes."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Remove an embedded code signature and write the result."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    normalizer = SignatureNormalizer(settings.tools.signature_strip_command, logger=logger)
    try:
        stripped = normalizer.strip(path)
    except OSError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(stripped.data)
    if stripped.warning:
        typer.echo(f"warning: {stripped.warning}", err=True)
    typer.echo(f"stripped: {str(stripped.stripped).lower()}")
    typer.echo(f"sha256: {stripped.digest}")
    typer.echo(f"output: {output}")


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
