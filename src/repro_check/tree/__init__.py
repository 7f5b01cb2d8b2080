"""Artifact tree listing and sorted merge-join diffing."""

from repro_check.tree.differ import (
    Classification,
    PathDiff,
    check_sorted_unique,
    diff_sorted,
    mark_content_differences,
    non_matching,
)
from repro_check.tree.lister import ArtifactTree, list_tree
from repro_check.tree.content import diff_with_content

__all__ = [
    "ArtifactTree",
    "list_tree",
    "diff_with_content",
    "Classification",
    "PathDiff",
    "check_sorted_unique",
    "diff_sorted",
    "mark_content_differences",
    "non_matching",
]
