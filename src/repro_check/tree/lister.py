"""List artifact trees as sorted relative POSIX paths."""

from __future__ import annotations

import logging
import os
from bisect import bisect_left
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from repro_check.errors import InputError
from repro_check.hashing.hasher import FileEntry
from repro_check.tree.differ import check_sorted_unique

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArtifactTree:
    """Named root plus the sorted, duplicate-free relative paths of its entries.

    Entries are regular files and symbolic links. Links are never followed;
    `links` maps each link path to its literal target so a retargeted link
    compares as different content.
    """

    name: str
    root: Path
    paths: tuple[str, ...]
    links: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_sorted_unique(self.paths, label=self.name)

    def __len__(self) -> int:
        return len(self.paths)

    def __contains__(self, relative_path: object) -> bool:
        if not isinstance(relative_path, str):
            return False
        index = bisect_left(self.paths, relative_path)
        return index < len(self.paths) and self.paths[index] == relative_path

    def absolute(self, relative_path: str) -> Path:
        """Resolve a tree-relative path under the root."""

        return self.root.joinpath(*relative_path.split("/"))

    def link_target(self, relative_path: str) -> str | None:
        return self.links.get(relative_path)

    def entry(self, relative_path: str) -> FileEntry:
        """Return a lazily hashed entry for one path of this tree."""

        return FileEntry.from_path(self.root, relative_path)


def list_tree(root: Path, name: str, logger: logging.Logger | None = None) -> ArtifactTree:
    """Walk `root` and return its files and symlinks in code point order."""

    effective_logger = logger or LOGGER
    if not root.exists():
        raise InputError(f"{name} artifact root not found: {root}", side=name)
    if not root.is_dir():
        raise InputError(f"{name} artifact root is not a directory: {root}", side=name)

    collected: set[str] = set()
    links: dict[str, str] = {}
    for dir_path, dir_names, file_names in os.walk(root, followlinks=False):
        current = Path(dir_path)
        # symlinked directories show up in dir_names but are not descended into
        for entry_name in [*dir_names, *file_names]:
            entry_path = current / entry_name
            relative_path = entry_path.relative_to(root).as_posix()
            if entry_path.is_symlink():
                links[relative_path] = os.readlink(entry_path)
                collected.add(relative_path)
            elif entry_path.is_file():
                collected.add(relative_path)

    paths = tuple(sorted(collected))
    effective_logger.debug(
        "lister.listed name=%s root=%s files=%s links=%s", name, root, len(paths), len(links)
    )
    return ArtifactTree(name=name, root=root, paths=paths, links=links)
