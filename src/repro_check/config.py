"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from repro_check.errors import InputError

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "REPRO_CHECK_SETTINGS_FILE"

ExtractorKind = Literal["zip", "tar", "command"]


def _check_relative_path(value: str, *, label: str) -> str:
    """Normalize a tree-relative POSIX path and reject absolute or escaping ones."""

    candidate = value.strip().replace("\\", "/")
    if candidate == "":
        raise ValueError(f"{label} entries must not be empty")
    pure = PurePosixPath(candidate)
    if pure.is_absolute() or ".." in pure.parts:
        raise ValueError(f"{label} entry must be relative to the artifact root: {value}")
    return pure.as_posix()


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "repro_check"
    script_version: str = "v0.4.0"


class PathsConfig(BaseModel):
    """Filesystem locations used by comparison runs."""

    work_root: Path = Path("./work")
    scratch_root: Path = Path("./work/scratch")
    reports_root: Path = Path("./reports")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class ComparisonConfig(BaseModel):
    """Engine-wide comparison switches."""

    display_limit: int = Field(default=20, ge=1)
    hash_workers: int = Field(default=4, ge=1)
    compare_content: bool = True
    strict: bool = False
    skip_extract: bool = False


class ToolsConfig(BaseModel):
    """External tool command templates; `{input}` and `{output}` are substituted."""

    signature_strip_command: list[str] = Field(
        default_factory=lambda: ["osslsigncode", "remove-signature", "-in", "{input}", "-out", "{output}"],
        min_length=1,
    )
    extract_command: list[str] = Field(
        default_factory=lambda: ["jimage", "extract", "--dir", "{output}", "{input}"],
        min_length=1,
    )


class ExclusionRuleConfig(BaseModel):
    """Named group of path patterns whose differences are informational only."""

    name: str
    patterns: list[str] = Field(min_length=1)


class ContainerSpec(BaseModel):
    """Aggregate binary eligible for deep inspection when its hash differs."""

    path: str
    extractor: ExtractorKind = "zip"
    command: list[str] | None = None
    exclude: list[str] = Field(default_factory=list)
    groups: dict[str, str] = Field(default_factory=dict)

    @field_validator("path")
    @classmethod
    def _validate_path(cls, value: str) -> str:
        return _check_relative_path(value, label="container")


class TargetProfile(BaseModel):
    """Per-application comparison profile."""

    build_type: str = "tarball"
    architecture: str = "x86_64-linux-gnu"
    artifact_name: str | None = None
    critical_files: list[str] = Field(default_factory=list)
    containers: list[ContainerSpec] = Field(default_factory=list)
    exclusions: list[ExclusionRuleConfig] = Field(default_factory=list)
    signed_patterns: list[str] = Field(default_factory=list)

    @field_validator("critical_files")
    @classmethod
    def _validate_critical_files(cls, values: list[str]) -> list[str]:
        normalized = [_check_relative_path(value, label="critical file") for value in values]
        duplicates = sorted({item for item in normalized if normalized.count(item) > 1})
        if duplicates:
            raise ValueError(f"critical file list has duplicates: {', '.join(duplicates)}")
        return normalized

    @model_validator(mode="after")
    def _unique_containers(self) -> "TargetProfile":
        seen: set[str] = set()
        for container in self.containers:
            if container.path in seen:
                raise ValueError(f"container listed twice: {container.path}")
            seen.add(container.path)
        return self


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    targets: dict[str, TargetProfile] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_prefix="REPRO_CHECK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for config markers."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / DEFAULT_SETTINGS_FILE).exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root() / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths})


def resolve_target(settings: AppSettings, name: str | None) -> TargetProfile:
    """Return the named target profile, or an empty profile when no name is given."""

    if name is None:
        return TargetProfile()
    try:
        return settings.targets[name]
    except KeyError:
        known = ", ".join(sorted(settings.targets)) or "(none configured)"
        raise InputError(f"Unknown target '{name}'. Known targets: {known}") from None
