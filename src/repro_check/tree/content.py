"""Structural diff plus per-path content hashing across two trees."""

from __future__ import annotations

import logging
from typing import Collection

from repro_check.hashing.hasher import digest_or_none, hash_many
from repro_check.tree.differ import PathDiff, diff_sorted, mark_content_differences
from repro_check.tree.lister import ArtifactTree

LOGGER = logging.getLogger(__name__)

LINK_PREFIX = "symlink:"


def _link_digest(tree: ArtifactTree, relative_path: str, logger: logging.Logger) -> str | None:
    target = tree.link_target(relative_path)
    if target is None:
        return digest_or_none(tree.absolute(relative_path), logger)
    return f"{LINK_PREFIX}{target}"


def diff_with_content(
    built: ArtifactTree,
    official: ArtifactTree,
    *,
    workers: int = 4,
    skip_content: Collection[str] = (),
    compare_content: bool = True,
    logger: logging.Logger | None = None,
) -> tuple[list[PathDiff], dict[str, tuple[str | None, str | None]]]:
    """Merge-join two trees and hash every matched path on both sides.

    Matched paths whose digests differ, or which cannot be read on either
    side, become CONTENT_DIFFERS. Symlinks are compared by their literal
    target and never followed, so a link on one side and a regular file on
    the other always differ. Paths in `skip_content` keep their structural
    classification. Returns the classifications together with the
    (built, official) digests of every compared path.
    """

    effective_logger = logger or LOGGER
    diffs = diff_sorted(built.paths, official.paths)
    if not compare_content:
        return diffs, {}

    skipped = set(skip_content)
    matched = [item.path for item in diffs if item.is_match and item.path not in skipped]
    linked = {path for path in matched if path in built.links or path in official.links}
    hashed = [path for path in matched if path not in linked]
    built_digests = hash_many([built.absolute(path) for path in hashed], workers=workers, logger=effective_logger)
    official_digests = hash_many(
        [official.absolute(path) for path in hashed], workers=workers, logger=effective_logger
    )

    digests: dict[str, tuple[str | None, str | None]] = {}
    differing: set[str] = set()
    for path in matched:
        if path in linked:
            built_digest = _link_digest(built, path, effective_logger)
            official_digest = _link_digest(official, path, effective_logger)
        else:
            built_digest = built_digests[built.absolute(path)]
            official_digest = official_digests[official.absolute(path)]
        digests[path] = (built_digest, official_digest)
        if built_digest is None or official_digest is None or built_digest != official_digest:
            differing.add(path)

    effective_logger.debug(
        "content.compared built=%s official=%s hashed=%s links=%s differing=%s",
        built.root,
        official.root,
        len(hashed),
        len(linked),
        len(differing),
    )
    return mark_content_differences(diffs, differing), digests
