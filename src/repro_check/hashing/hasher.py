"""SHA-256 digests for artifact files."""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def sha256_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of an in-memory byte string."""

    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of a file; raises OSError if unreadable."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def digest_or_none(path: Path, logger: logging.Logger | None = None) -> str | None:
    """Hash `path`, returning None when the file is missing or unreadable."""

    effective_logger = logger or LOGGER
    try:
        return sha256_file(path)
    except OSError as exc:
        effective_logger.warning("hasher.unreadable path=%s error=%s", path, exc)
        return None


@dataclass(slots=True)
class FileEntry:
    """One file of an artifact tree; the digest is computed on first access."""

    relative_path: str
    path: Path
    size: int | None
    _digest: str | None = field(default=None, init=False, repr=False)
    _hashed: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_path(cls, root: Path, relative_path: str) -> "FileEntry":
        path = root.joinpath(*relative_path.split("/"))
        try:
            size: int | None = path.stat().st_size
        except OSError:
            size = None
        return cls(relative_path=relative_path, path=path, size=size)

    @property
    def exists(self) -> bool:
        return self.size is not None

    @property
    def digest(self) -> str | None:
        if not self._hashed:
            self._digest = digest_or_none(self.path)
            self._hashed = True
        return self._digest


def hash_many(
    paths: Sequence[Path],
    *,
    workers: int = 4,
    logger: logging.Logger | None = None,
) -> dict[Path, str | None]:
    """Hash independent files on a thread pool.

    Returns only after every digest is available, keyed in input order.
    """

    effective_logger = logger or LOGGER
    if not paths:
        return {}
    if workers <= 1 or len(paths) == 1:
        return {path: digest_or_none(path, effective_logger) for path in paths}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repro-hash") as pool:
        digests = list(pool.map(lambda item: digest_or_none(item, effective_logger), paths))
    return dict(zip(paths, digests))
