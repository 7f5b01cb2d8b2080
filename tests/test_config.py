from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from repro_check.config import (
    AppSettings,
    ContainerSpec,
    TargetProfile,
    load_settings,
    resolve_settings_file,
    resolve_target,
)
from repro_check.errors import InputError

REPO_SETTINGS = Path(__file__).resolve().parents[1] / "configs" / "settings.yaml"

SAMPLE = """
project:
  script_version: v9.9.9
paths:
  reports_root: ./out/reports
comparison:
  display_limit: 7
targets:
  demo:
    build_type: deb
    critical_files: [bin/app]
    exclusions:
      - name: legal
        patterns: ["legal/"]
"""


def _write_settings(tmp_path: Path, content: str = SAMPLE) -> Path:
    settings_file = tmp_path / "configs" / "settings.yaml"
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text(content, encoding="utf-8")
    return settings_file


def test_load_settings_reads_yaml_and_resolves_paths(tmp_path: Path) -> None:
    settings = load_settings(_write_settings(tmp_path))

    assert settings.project.script_version == "v9.9.9"
    assert settings.comparison.display_limit == 7
    assert settings.paths.reports_root == (tmp_path / "out" / "reports").resolve()
    assert settings.paths.logs_root == (tmp_path / "logs").resolve()
    assert settings.targets["demo"].critical_files == ["bin/app"]


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPRO_CHECK_COMPARISON__DISPLAY_LIMIT", "3")
    settings = load_settings(_write_settings(tmp_path))
    assert settings.comparison.display_limit == 3


def test_settings_file_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_file = _write_settings(tmp_path)
    monkeypatch.setenv("REPRO_CHECK_SETTINGS_FILE", str(settings_file))
    assert resolve_settings_file() == settings_file


def test_repository_settings_parse() -> None:
    settings = load_settings(REPO_SETTINGS)
    sparrow = settings.targets["sparrow-tarball"]
    assert "bin/Sparrow" in sparrow.critical_files
    assert sparrow.containers[0].extractor == "command"
    assert settings.targets["electrum-win"].signed_patterns == ["*.exe"]


@pytest.mark.parametrize("bad_path", ["/etc/passwd", "../outside", "lib/../../x", ""])
def test_critical_files_must_stay_inside_the_root(bad_path: str) -> None:
    with pytest.raises(ValidationError):
        TargetProfile(critical_files=[bad_path])


def test_duplicate_entries_are_rejected() -> None:
    with pytest.raises(ValidationError):
        TargetProfile(critical_files=["bin/app", "bin/app"])
    with pytest.raises(ValidationError):
        TargetProfile(containers=[ContainerSpec(path="a.jar"), ContainerSpec(path="a.jar")])


def test_windows_separators_are_normalized() -> None:
    assert TargetProfile(critical_files=["bin\\app.exe"]).critical_files == ["bin/app.exe"]


def test_resolve_target() -> None:
    settings = AppSettings.model_construct(targets={"demo": TargetProfile(build_type="deb")})
    assert resolve_target(settings, "demo").build_type == "deb"
    assert resolve_target(settings, None) == TargetProfile()
    with pytest.raises(InputError, match="Known targets: demo"):
        resolve_target(settings, "nope")
