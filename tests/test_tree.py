from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from repro_check.errors import InputError, TreeOrderError
from repro_check.tree.content import diff_with_content
from repro_check.tree.differ import Classification
from repro_check.tree.lister import ArtifactTree, list_tree


def test_list_tree_returns_sorted_posix_paths(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "built", {"lib/z.so": b"z", "bin/app": b"a", "README": b"r"})
    (root / "empty_dir").mkdir()

    tree = list_tree(root, "built")

    assert tree.paths == ("README", "bin/app", "lib/z.so")
    assert len(tree) == 3
    assert "bin/app" in tree
    assert "bin" not in tree
    assert tree.absolute("lib/z.so") == root / "lib" / "z.so"


def test_list_tree_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(InputError) as excinfo:
        list_tree(tmp_path / "nope", "official")
    assert excinfo.value.side == "official"


def test_list_tree_rejects_file_root(tmp_path: Path) -> None:
    target = tmp_path / "file"
    target.write_text("x", encoding="utf-8")
    with pytest.raises(InputError, match="not a directory"):
        list_tree(target, "built")


def test_artifact_tree_enforces_order(tmp_path: Path) -> None:
    with pytest.raises(TreeOrderError):
        ArtifactTree(name="built", root=tmp_path, paths=("b", "a"))


def test_entry_hashes_lazily(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "t", {"a.txt": b"hello"})
    entry = list_tree(root, "t").entry("a.txt")
    assert entry.exists
    assert entry.size == 5
    assert entry.digest == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


def test_diff_with_content_flags_changed_bytes(tmp_path: Path, make_tree) -> None:
    built = list_tree(make_tree(tmp_path / "b", {"same": b"1", "changed": b"x", "only_built": b"q"}), "built")
    official = list_tree(make_tree(tmp_path / "o", {"same": b"1", "changed": b"y"}), "official")

    diffs, digests = diff_with_content(built, official, workers=2)

    by_path = {item.path: item.classification for item in diffs}
    assert by_path == {
        "changed": Classification.CONTENT_DIFFERS,
        "only_built": Classification.MISSING_IN_B,
        "same": Classification.MATCH,
    }
    assert set(digests) == {"changed", "same"}
    assert digests["same"][0] == digests["same"][1]


def test_diff_with_content_skips_listed_paths(tmp_path: Path, make_tree) -> None:
    built = list_tree(make_tree(tmp_path / "b", {"lib/modules": b"1"}), "built")
    official = list_tree(make_tree(tmp_path / "o", {"lib/modules": b"2"}), "official")

    diffs, digests = diff_with_content(built, official, skip_content=["lib/modules"])

    assert diffs[0].classification is Classification.MATCH
    assert digests == {}


def test_diff_with_content_can_be_structural_only(tmp_path: Path, make_tree) -> None:
    built = list_tree(make_tree(tmp_path / "b", {"a": b"1"}), "built")
    official = list_tree(make_tree(tmp_path / "o", {"a": b"2"}), "official")

    diffs, digests = diff_with_content(built, official, compare_content=False)

    assert diffs[0].is_match
    assert digests == {}


def test_list_tree_records_symlinks_without_following(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "built", {"lib/real.so": b"elf", "share/doc.txt": b"d"})
    os.symlink("../lib/real.so", root / "share" / "libapp.so")
    os.symlink("/usr/bin/evil", root / "share" / "dangling")
    os.symlink("share", root / "docs")

    tree = list_tree(root, "built")

    assert tree.paths == ("docs", "lib/real.so", "share/dangling", "share/doc.txt", "share/libapp.so")
    assert tree.link_target("share/libapp.so") == "../lib/real.so"
    assert tree.link_target("share/dangling") == "/usr/bin/evil"
    assert tree.link_target("docs") == "share"
    assert tree.link_target("lib/real.so") is None


def test_diff_with_content_compares_symlink_targets(tmp_path: Path, make_tree) -> None:
    built_root = make_tree(tmp_path / "b", {"lib/real": b"x"})
    official_root = make_tree(tmp_path / "o", {"lib/real": b"x"})
    os.symlink("lib/real", built_root / "same_link")
    os.symlink("lib/real", official_root / "same_link")
    os.symlink("lib/real", built_root / "retargeted")
    os.symlink("/usr/bin/evil", official_root / "retargeted")
    os.symlink("lib/real", built_root / "link_vs_file")
    (official_root / "link_vs_file").write_bytes(b"x")

    diffs, digests = diff_with_content(list_tree(built_root, "built"), list_tree(official_root, "official"))

    by_path = {item.path: item.classification for item in diffs}
    assert by_path == {
        "lib/real": Classification.MATCH,
        "link_vs_file": Classification.CONTENT_DIFFERS,
        "retargeted": Classification.CONTENT_DIFFERS,
        "same_link": Classification.MATCH,
    }
    assert digests["retargeted"] == ("symlink:lib/real", "symlink:/usr/bin/evil")
    assert digests["link_vs_file"] == ("symlink:lib/real", hashlib.sha256(b"x").hexdigest())
