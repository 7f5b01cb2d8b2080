"""Exclusion rules for known-benign path differences."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from typing import Iterable, Sequence

from repro_check.config import ExclusionRuleConfig
from repro_check.tree.differ import PathDiff


def pattern_matches(pattern: str, path: str) -> bool:
    """Match a tree-relative path against one pattern.

    A trailing slash selects a directory subtree at any depth
    (`legal/` matches `legal/x` and `lib/runtime/legal/x`); anything else
    is an fnmatch glob over the whole path, where `*` also crosses `/`.
    """

    if pattern.endswith("/"):
        return path.startswith(pattern) or f"/{pattern}" in f"/{path}"
    return fnmatch.fnmatchcase(path, pattern)


@dataclass(frozen=True, slots=True)
class ExclusionRule:
    """Named predicate marking paths as informational only."""

    name: str
    patterns: tuple[str, ...]

    def matches(self, path: str) -> bool:
        return any(pattern_matches(pattern, path) for pattern in self.patterns)


@dataclass(frozen=True, slots=True)
class ExclusionSet:
    """Ordered collection of exclusion rules; the first matching rule wins."""

    rules: tuple[ExclusionRule, ...] = ()

    @classmethod
    def from_config(cls, configs: Sequence[ExclusionRuleConfig]) -> "ExclusionSet":
        return cls(tuple(ExclusionRule(item.name, tuple(item.patterns)) for item in configs))

    @classmethod
    def from_patterns(cls, name: str, patterns: Sequence[str]) -> "ExclusionSet":
        if not patterns:
            return cls()
        return cls((ExclusionRule(name, tuple(patterns)),))

    def __bool__(self) -> bool:
        return bool(self.rules)

    def rule_for(self, path: str) -> str | None:
        """Return the name of the first rule matching `path`, if any."""

        for rule in self.rules:
            if rule.matches(path):
                return rule.name
        return None

    def partition(self, diffs: Iterable[PathDiff]) -> tuple[list[PathDiff], list[PathDiff]]:
        """Split non-match diffs into (counted toward verdict, excluded)."""

        failing: list[PathDiff] = []
        excluded: list[PathDiff] = []
        for item in diffs:
            if item.is_match:
                continue
            if self.rule_for(item.path) is not None:
                excluded.append(item)
            else:
                failing.append(item)
        return failing, excluded
