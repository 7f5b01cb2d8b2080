"""Two-pointer merge-join over sorted path sequences."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from repro_check.errors import TreeOrderError


class Classification(str, Enum):
    """Outcome for one path of a tree comparison."""

    MATCH = "match"
    CONTENT_DIFFERS = "content_differs"
    MISSING_IN_A = "missing_in_a"
    MISSING_IN_B = "missing_in_b"


@dataclass(frozen=True, slots=True)
class PathDiff:
    """Classification of a single relative path."""

    path: str
    classification: Classification

    @property
    def is_match(self) -> bool:
        return self.classification is Classification.MATCH


def check_sorted_unique(paths: Sequence[str], label: str = "paths") -> None:
    """Raise TreeOrderError unless `paths` is strictly increasing."""

    for index in range(1, len(paths)):
        previous, current = paths[index - 1], paths[index]
        if previous == current:
            raise TreeOrderError(f"{label}: duplicate path {current!r} at index {index}")
        if previous > current:
            raise TreeOrderError(f"{label}: unsorted paths {previous!r} > {current!r} at index {index}")


def diff_sorted(a: Sequence[str], b: Sequence[str]) -> list[PathDiff]:
    """Classify every path of two sorted sequences in merge order.

    Equal heads are reported as MATCH without looking at content; callers
    hash matched paths and use `mark_content_differences` to downgrade them.
    A path present only in `a` is MISSING_IN_B, one present only in `b` is
    MISSING_IN_A.
    """

    check_sorted_unique(a, label="a")
    check_sorted_unique(b, label="b")

    result: list[PathDiff] = []
    i = 0
    j = 0
    while i < len(a) and j < len(b):
        head_a = a[i]
        head_b = b[j]
        if head_a == head_b:
            result.append(PathDiff(head_a, Classification.MATCH))
            i += 1
            j += 1
        elif head_a < head_b:
            result.append(PathDiff(head_a, Classification.MISSING_IN_B))
            i += 1
        else:
            result.append(PathDiff(head_b, Classification.MISSING_IN_A))
            j += 1

    result.extend(PathDiff(path, Classification.MISSING_IN_B) for path in a[i:])
    result.extend(PathDiff(path, Classification.MISSING_IN_A) for path in b[j:])
    return result


def mark_content_differences(diffs: Iterable[PathDiff], differing: set[str]) -> list[PathDiff]:
    """Return a copy with MATCH entries in `differing` reclassified as CONTENT_DIFFERS."""

    marked: list[PathDiff] = []
    for item in diffs:
        if item.is_match and item.path in differing:
            marked.append(PathDiff(item.path, Classification.CONTENT_DIFFERS))
        else:
            marked.append(item)
    return marked


def non_matching(diffs: Iterable[PathDiff]) -> list[PathDiff]:
    """Filter out MATCH entries, keeping merge order."""

    return [item for item in diffs if not item.is_match]
