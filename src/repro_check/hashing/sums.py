"""Read sha256sum-style checksum listings (SHA256SUMS)."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from repro_check.errors import InputError

LOGGER = logging.getLogger(__name__)

_DIGEST = re.compile(r"^[0-9a-fA-F]{64}$")


def parse_sha256sums(text: str, logger: logging.Logger | None = None) -> dict[str, str]:
    """Map file names to lowercase hex digests.

    Lines are `<digest>  <name>` or `<digest> *<name>` (binary mode). Blank
    lines and lines without a SHA-256 digest are skipped.
    """

    effective_logger = logger or LOGGER
    digests: dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        fields = line.strip().split(maxsplit=1)
        if len(fields) != 2:
            continue
        digest, name = fields
        if not _DIGEST.match(digest):
            effective_logger.warning("sums.skipped_line line=%s", number)
            continue
        digests[name.strip().removeprefix("*")] = digest.lower()
    return digests


def load_sha256sums(path: Path, logger: logging.Logger | None = None) -> dict[str, str]:
    """Parse a checksum file; a missing or empty listing is an input error."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputError(f"official checksum file unreadable: {path}: {exc}", side="official") from exc
    digests = parse_sha256sums(text, logger=logger)
    if not digests:
        raise InputError(f"official checksum file lists no SHA-256 digests: {path}", side="official")
    return digests


def lookup_digest(digests: dict[str, str], filename: str) -> str | None:
    """Find a digest by exact name, falling back to a unique basename match."""

    if filename in digests:
        return digests[filename]
    basename = filename.rsplit("/", 1)[-1]
    candidates = [digest for name, digest in digests.items() if name.rsplit("/", 1)[-1] == basename]
    return candidates[0] if len(candidates) == 1 else None
