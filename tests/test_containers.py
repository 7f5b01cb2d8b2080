from __future__ import annotations

import io
import os
import random
import sys
import tarfile
import zipfile
from pathlib import Path

import pytest

from repro_check.config import ContainerSpec, ToolsConfig
from repro_check.containers.deep import inspect_archives
from repro_check.containers.extractors import (
    CommandExtractor,
    TarExtractor,
    ZipExtractor,
    build_extractor,
)
from repro_check.errors import ExtractionError
from repro_check.rules import ExclusionSet


def test_zip_extractor_unpacks_members(tmp_path: Path, make_zip) -> None:
    archive = make_zip(tmp_path / "app.jar", {"a/B.class": b"b", "META-INF/MANIFEST.MF": b"m"})
    ZipExtractor().extract(archive, tmp_path / "out")
    assert (tmp_path / "out" / "a" / "B.class").read_bytes() == b"b"


def test_zip_extractor_rejects_corrupt_archive(tmp_path: Path) -> None:
    archive = tmp_path / "broken.jar"
    archive.write_bytes(b"not a zip")
    with pytest.raises(ExtractionError, match="broken.jar"):
        ZipExtractor().extract(archive, tmp_path / "out")


def test_zip_extractor_rejects_escaping_members(tmp_path: Path, make_zip) -> None:
    archive = make_zip(tmp_path / "evil.zip", {"../escape.txt": b"x"})
    with pytest.raises(ExtractionError, match="unsafe"):
        ZipExtractor().extract(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_tar_extractor_unpacks_members(tmp_path: Path, make_tar) -> None:
    archive = make_tar(tmp_path / "bundle.tar.gz", {"bin/app": b"elf"})
    TarExtractor().extract(archive, tmp_path / "out")
    assert (tmp_path / "out" / "bin" / "app").read_bytes() == b"elf"


def test_command_extractor_reports_tool_failure(tmp_path: Path, failing_tool: list[str]) -> None:
    archive = tmp_path / "modules"
    archive.write_bytes(b"image")
    with pytest.raises(ExtractionError, match="exited 3"):
        CommandExtractor(failing_tool).extract(archive, tmp_path / "out")


def test_command_extractor_reports_missing_tool(tmp_path: Path) -> None:
    archive = tmp_path / "modules"
    archive.write_bytes(b"image")
    with pytest.raises(ExtractionError, match="unavailable"):
        CommandExtractor(["no-such-jimage-binary", "{input}", "{output}"]).extract(archive, tmp_path / "out")


def test_build_extractor_uses_container_command_over_default() -> None:
    tools = ToolsConfig()
    command = build_extractor(ContainerSpec(path="lib/modules", extractor="command", command=["x", "{input}"]), tools)
    fallback = build_extractor(ContainerSpec(path="lib/modules", extractor="command"), tools)
    assert isinstance(command, CommandExtractor)
    assert command.command == ["x", "{input}"]
    assert isinstance(fallback, CommandExtractor)
    assert fallback.command == tools.extract_command
    assert isinstance(build_extractor(ContainerSpec(path="a.tar"), tools), ZipExtractor)
    assert isinstance(build_extractor(ContainerSpec(path="a.tar", extractor="tar"), tools), TarExtractor)


def test_inspect_archives_identical_contents_pass(tmp_path: Path, make_zip) -> None:
    members = {"a/One.class": b"1", "a/Two.class": b"2"}
    built = make_zip(tmp_path / "built.jar", members, date_time=(2024, 1, 1, 0, 0, 0))
    official = make_zip(tmp_path / "official.jar", members, date_time=(2023, 6, 1, 12, 0, 0))
    scratch = tmp_path / "scratch"

    inspection = inspect_archives(built, official, ZipExtractor(), scratch_root=scratch)

    assert inspection.passed
    assert inspection.diff_count == 0
    assert inspection.official_file_count == 2
    assert list(scratch.iterdir()) == []


def test_inspect_archives_reports_differences_with_groups(tmp_path: Path, make_zip) -> None:
    built = make_zip(
        tmp_path / "built.jar",
        {"app/A.class": b"1", "app/B.class": b"x", "lib/C.class": b"3", "META-INF/X.SF": b"s1"},
    )
    official = make_zip(
        tmp_path / "official.jar",
        {"app/A.class": b"1", "app/B.class": b"y", "lib/D.class": b"4", "META-INF/X.SF": b"s2"},
    )

    inspection = inspect_archives(
        built,
        official,
        ZipExtractor(),
        exclusions=ExclusionSet.from_patterns("signatures", ["META-INF/*.SF"]),
        groups={"app": "app/", "lib": "lib/"},
        display_limit=2,
        scratch_root=tmp_path / "scratch",
    )

    assert not inspection.passed
    assert inspection.diff_count == 3
    assert inspection.differing_paths == ("app/B.class", "lib/C.class")
    assert inspection.excluded_count == 1
    assert inspection.excluded_paths == ("META-INF/X.SF",)
    assert inspection.group_counts == {"app": 1, "lib": 2}


def test_inspect_archives_extraction_failure_is_conservative(tmp_path: Path, make_zip) -> None:
    built = make_zip(tmp_path / "built.jar", {"a": b"1"})
    official = tmp_path / "official.jar"
    official.write_bytes(b"truncated download")
    scratch = tmp_path / "scratch"

    inspection = inspect_archives(built, official, ZipExtractor(), scratch_root=scratch)

    assert not inspection.passed
    assert inspection.diff_count is None
    assert inspection.reason is not None
    assert "extraction failed (official)" in inspection.reason
    assert list(scratch.iterdir()) == []


def test_inspect_archives_with_command_extractor(tmp_path: Path) -> None:
    script = tmp_path / "fake_jimage.py"
    script.write_text(
        "import pathlib, sys\n"
        "src, out = pathlib.Path(sys.argv[1]), pathlib.Path(sys.argv[2])\n"
        "for line in src.read_text().splitlines():\n"
        "    if not line:\n"
        "        continue\n"
        "    name, _, body = line.partition('=')\n"
        "    target = out / name\n"
        "    target.parent.mkdir(parents=True, exist_ok=True)\n"
        "    target.write_text(body)\n",
        encoding="utf-8",
    )
    built = tmp_path / "built_modules"
    official = tmp_path / "official_modules"
    built.write_text("java.base/Object.class=1\njava.base/String.class=2\n", encoding="utf-8")
    official.write_text("java.base/Object.class=1\njava.base/String.class=2\n\n", encoding="utf-8")
    extractor = CommandExtractor([sys.executable, str(script), "{input}", "{output}"])

    inspection = inspect_archives(built, official, extractor, scratch_root=tmp_path / "scratch")

    assert inspection.passed
    assert inspection.built_file_count == 2


def _deflated_zip(path: Path, name: str, data: bytes) -> Path:
    info = zipfile.ZipInfo(name, date_time=(2024, 1, 1, 0, 0, 0))
    info.compress_type = zipfile.ZIP_DEFLATED
    with zipfile.ZipFile(path, "w") as bundle:
        bundle.writestr(info, data)
    return path


def _corrupt_deflate_stream(path: Path, name: str) -> None:
    raw = bytearray(path.read_bytes())
    # local header is 30 bytes plus the name; writestr adds no extra field
    start = 30 + len(name.encode())
    raw[start : start + 8] = b"\xff" * 8
    path.write_bytes(bytes(raw))


def _tar_with(path: Path, *members: tarfile.TarInfo) -> Path:
    with tarfile.open(path, "w:gz") as bundle:
        for member in members:
            bundle.addfile(member)
    return path


def _symlink_member(name: str, target: str) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    return info


def test_zip_extractor_wraps_inflate_errors(tmp_path: Path) -> None:
    archive = _deflated_zip(tmp_path / "app.jar", "Main.class", b"A" * 4096)
    _corrupt_deflate_stream(archive, "Main.class")

    with pytest.raises(ExtractionError, match="app.jar"):
        ZipExtractor().extract(archive, tmp_path / "out")


def test_tar_extractor_wraps_truncated_gzip(tmp_path: Path) -> None:
    archive = tmp_path / "bundle.tar.gz"
    data = random.Random(7).randbytes(256 * 1024)
    info = tarfile.TarInfo("lib/blob.bin")
    info.size = len(data)
    with tarfile.open(archive, "w:gz") as bundle:
        bundle.addfile(info, io.BytesIO(data))
    archive.write_bytes(archive.read_bytes()[: archive.stat().st_size // 2])

    with pytest.raises(ExtractionError, match="bundle.tar.gz"):
        TarExtractor().extract(archive, tmp_path / "out")


def test_tar_extractor_keeps_relative_symlinks(tmp_path: Path) -> None:
    archive = _tar_with(tmp_path / "bundle.tar.gz", _symlink_member("bin/tool", "../lib/tool-1"))

    TarExtractor().extract(archive, tmp_path / "out")

    link = tmp_path / "out" / "bin" / "tool"
    assert link.is_symlink()
    assert os.readlink(link) == "../lib/tool-1"


def test_tar_extractor_rejects_absolute_symlink(tmp_path: Path) -> None:
    archive = _tar_with(tmp_path / "bundle.tar.gz", _symlink_member("bin/tool", "/usr/bin/evil"))

    with pytest.raises(ExtractionError, match="bundle.tar.gz"):
        TarExtractor().extract(archive, tmp_path / "out")


def test_tar_extractor_rejects_fifo_members(tmp_path: Path) -> None:
    fifo = tarfile.TarInfo("run/pipe")
    fifo.type = tarfile.FIFOTYPE
    archive = _tar_with(tmp_path / "bundle.tar.gz", fifo)

    with pytest.raises(ExtractionError, match="unsupported member type 'run/pipe'"):
        TarExtractor().extract(archive, tmp_path / "out")


def test_inspect_archives_corrupt_deflate_is_conservative(tmp_path: Path, make_zip) -> None:
    built = make_zip(tmp_path / "built.jar", {"Main.class": b"A" * 4096})
    official = _deflated_zip(tmp_path / "official.jar", "Main.class", b"A" * 4096)
    _corrupt_deflate_stream(official, "Main.class")
    scratch = tmp_path / "scratch"

    inspection = inspect_archives(built, official, ZipExtractor(), scratch_root=scratch)

    assert not inspection.passed
    assert inspection.diff_count is None
    assert inspection.reason is not None
    assert inspection.reason.startswith("extraction failed (official)")
    assert list(scratch.iterdir()) == []


def test_inspect_archives_detects_retargeted_symlink(tmp_path: Path) -> None:
    built = _tar_with(tmp_path / "built.tar.gz", _symlink_member("bin/tool", "../lib/tool-1"))
    official = _tar_with(tmp_path / "official.tar.gz", _symlink_member("bin/tool", "../lib/tool-2"))

    inspection = inspect_archives(built, official, TarExtractor(), scratch_root=tmp_path / "scratch")

    assert not inspection.passed
    assert inspection.diff_count == 1
    assert inspection.differing_paths == ("bin/tool",)


def test_inspect_archives_symlink_to_absolute_path_fails(tmp_path: Path) -> None:
    built = _tar_with(tmp_path / "built.tar.gz", _symlink_member("bin/tool", "../lib/tool-1"))
    official = _tar_with(tmp_path / "official.tar.gz", _symlink_member("bin/tool", "/usr/bin/evil"))

    inspection = inspect_archives(built, official, TarExtractor(), scratch_root=tmp_path / "scratch")

    assert not inspection.passed
    assert inspection.diff_count is None
    assert inspection.reason is not None
    assert "extraction failed (official)" in inspection.reason


def test_inspect_archives_empty_extraction_fails(tmp_path: Path) -> None:
    script = tmp_path / "noop_tool.py"
    script.write_text("import sys\nsys.exit(0)\n", encoding="utf-8")
    built = tmp_path / "built_modules"
    official = tmp_path / "official_modules"
    built.write_bytes(b"JIMAGE\nA.class=1\n")
    official.write_bytes(b"JIMAGE\nA.class=2\n")
    extractor = CommandExtractor([sys.executable, str(script), "{input}", "{output}"])

    inspection = inspect_archives(built, official, extractor, scratch_root=tmp_path / "scratch")

    assert not inspection.passed
    assert inspection.diff_count is None
    assert inspection.reason == "extraction produced no files (built)"


class _CrashingExtractor:
    """Unpacks the first archive, then fails unexpectedly on the second."""

    kind = "crash"

    def __init__(self) -> None:
        self.calls = 0

    def extract(self, archive: Path, destination: Path) -> None:
        self.calls += 1
        if self.calls > 1:
            raise RuntimeError("decoder crashed")
        destination.mkdir(parents=True, exist_ok=True)
        (destination / "A.class").write_bytes(archive.read_bytes())


def test_inspect_archives_removes_scratch_when_extractor_crashes(tmp_path: Path) -> None:
    built = tmp_path / "built.jar"
    official = tmp_path / "official.jar"
    built.write_bytes(b"1")
    official.write_bytes(b"2")
    scratch = tmp_path / "scratch"
    extractor = _CrashingExtractor()

    with pytest.raises(RuntimeError, match="decoder crashed"):
        inspect_archives(built, official, extractor, scratch_root=scratch)

    assert extractor.calls == 2
    assert list(scratch.iterdir()) == []
