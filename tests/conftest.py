"""Shared fixtures for comparison engine tests."""

from __future__ import annotations

import io
import sys
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Mapping

import pytest

from repro_check.config import AppSettings, PathsConfig

TreeFactory = Callable[[Path, Mapping[str, bytes]], Path]
ZipFactory = Callable[..., Path]


def write_tree(root: Path, files: Mapping[str, bytes]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for relative_path, data in files.items():
        target = root.joinpath(*relative_path.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return root


def write_zip(path: Path, members: Mapping[str, bytes], *, date_time: tuple[int, ...] = (2024, 1, 1, 0, 0, 0)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as bundle:
        for name, data in members.items():
            bundle.writestr(zipfile.ZipInfo(name, date_time=date_time), data)
    return path


def write_tar(path: Path, members: Mapping[str, bytes], *, mtime: int = 0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as bundle:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = mtime
            bundle.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def make_tree() -> TreeFactory:
    return write_tree


@pytest.fixture
def make_zip() -> ZipFactory:
    return write_zip


@pytest.fixture
def make_tar() -> ZipFactory:
    return write_tar


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    """Settings rooted in a temp dir, independent of configs/settings.yaml."""

    return AppSettings.model_construct(
        paths=PathsConfig(
            work_root=tmp_path / "work",
            scratch_root=tmp_path / "work" / "scratch",
            reports_root=tmp_path / "reports",
            logs_root=tmp_path / "logs",
        ),
    )


@pytest.fixture
def copy_tool(tmp_path: Path) -> list[str]:
    """Command template for a fake tool that copies {input} to {output}, dropping a SIG trailer."""

    script = tmp_path / "fake_tool.py"
    script.write_text(
        "import sys\n"
        "data = open(sys.argv[1], 'rb').read()\n"
        "marker = data.find(b'SIG:')\n"
        "if marker >= 0:\n"
        "    data = data[:marker]\n"
        "open(sys.argv[2], 'wb').write(data)\n",
        encoding="utf-8",
    )
    return [sys.executable, str(script), "{input}", "{output}"]


@pytest.fixture
def failing_tool(tmp_path: Path) -> list[str]:
    script = tmp_path / "failing_tool.py"
    script.write_text("import sys\nsys.stderr.write('corrupt image\\n')\nsys.exit(3)\n", encoding="utf-8")
    return [sys.executable, str(script), "{input}", "{output}"]
