"""Unpack container artifacts into scratch directories."""

from __future__ import annotations

import logging
import lzma
import subprocess
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Protocol, Sequence

from repro_check.config import ContainerSpec, ToolsConfig
from repro_check.errors import ExtractionError
from repro_check.hashing.signature import render_command

LOGGER = logging.getLogger(__name__)

# raised by the decompressors underneath zipfile and tarfile
DECODE_ERRORS: tuple[type[BaseException], ...] = (EOFError, NotImplementedError, zlib.error, lzma.LZMAError)


class Extractor(Protocol):
    """Extracts one archive into an empty destination directory."""

    kind: str

    def extract(self, archive: Path, destination: Path) -> None:
        """Raise ExtractionError when the archive cannot be fully unpacked."""


def _is_safe_member(name: str) -> bool:
    pure = PurePosixPath(name.replace("\\", "/"))
    return not pure.is_absolute() and ".." not in pure.parts


def _is_supported_member(member: tarfile.TarInfo) -> bool:
    return member.isfile() or member.isdir() or member.issym() or member.islnk()


class ZipExtractor:
    """Zip-family containers: jar, apk, zip."""

    kind = "zip"

    def extract(self, archive: Path, destination: Path) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(archive) as bundle:
                unsafe = [name for name in bundle.namelist() if not _is_safe_member(name)]
                if unsafe:
                    raise ExtractionError(f"{archive.name}: unsafe member path {unsafe[0]!r}")
                bundle.extractall(destination)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, RuntimeError, *DECODE_ERRORS) as exc:
            raise ExtractionError(f"{archive.name}: {exc}") from exc


class TarExtractor:
    """Tarballs in any compression tarfile understands.

    Symlinks and hardlinks are extracted as links so their targets take part
    in the comparison; device and fifo members abort the extraction.
    """

    kind = "tar"

    def extract(self, archive: Path, destination: Path) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(archive) as bundle:
                members = bundle.getmembers()
                unsafe = [member.name for member in members if not _is_safe_member(member.name)]
                if unsafe:
                    raise ExtractionError(f"{archive.name}: unsafe member path {unsafe[0]!r}")
                special = [member.name for member in members if not _is_supported_member(member)]
                if special:
                    raise ExtractionError(f"{archive.name}: unsupported member type {special[0]!r}")
                # the data filter rejects links that point outside the destination
                bundle.extractall(destination, filter="data")
        except (tarfile.TarError, OSError, *DECODE_ERRORS) as exc:
            raise ExtractionError(f"{archive.name}: {exc}") from exc


class CommandExtractor:
    """External extraction tool driven by a command template (e.g. jimage)."""

    kind = "command"

    def __init__(self, command: Sequence[str], logger: logging.Logger | None = None) -> None:
        self.command = list(command)
        self.logger = logger or LOGGER

    def extract(self, archive: Path, destination: Path) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        argv = render_command(self.command, input_path=archive, output_path=destination)
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ExtractionError(f"extraction tool unavailable: {exc}") from exc
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            reason = detail[0] if detail else "no output"
            raise ExtractionError(f"{archive.name}: extraction tool exited {proc.returncode}: {reason}")
        self.logger.debug("extractors.command_done archive=%s destination=%s", archive, destination)


def build_extractor(spec: ContainerSpec, tools: ToolsConfig, logger: logging.Logger | None = None) -> Extractor:
    """Instantiate the extractor configured for a container."""

    if spec.extractor == "zip":
        return ZipExtractor()
    if spec.extractor == "tar":
        return TarExtractor()
    return CommandExtractor(spec.command or tools.extract_command, logger=logger)
