"""
Tests for rejected-hunk discovery and collection.
"""

import json
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from deploykit.exceptions import RecoveryError
from deploykit.recovery.rejects import (
    DirectoryArtifactStore,
    DirEntry,
    collect_rejected_hunks,
    find_rejected_hunks,
    read_tree,
)
from deploykit.testing import RecordingArtifactStore


def file(name: str) -> DirEntry:
    return DirEntry(name, is_file=True)


def directory(name: str, *children: DirEntry) -> DirEntry:
    return DirEntry(name, is_file=False, children=tuple(children))


def test_find_rejected_hunks_walks_nested_tree() -> None:
    tree = directory(
        "repo",
        file("README.md"),
        file("app.cs.rej"),
        directory(
            "src",
            file("Program.cs"),
            directory("Views", file("Home.cshtml.rej"), file("Home.cshtml")),
        ),
        directory("empty"),
    )

    found = find_rejected_hunks(tree)

    assert [r.relative_path for r in found] == [
        PurePosixPath("app.cs.rej"),
        PurePosixPath("src/Views/Home.cshtml.rej"),
    ]


def test_find_rejected_hunks_ignores_directories_with_suffix() -> None:
    tree = directory("repo", directory("weird.rej", file("inner.txt")))
    assert find_rejected_hunks(tree) == []


def test_find_rejected_hunks_custom_suffix() -> None:
    tree = directory("repo", file("a.orig"), file("b.rej"))
    found = find_rejected_hunks(tree, suffix=".orig")
    assert [str(r.relative_path) for r in found] == ["a.orig"]


names = st.text(alphabet="abcdefgh", min_size=1, max_size=6)


@st.composite
def trees(draw: Callable[..., Any], depth: int = 0) -> DirEntry:
    children: list[DirEntry] = []
    for name in draw(st.lists(names, max_size=3, unique=True)):
        if depth < 2 and draw(st.booleans()):
            subtree = draw(trees(depth=depth + 1))
            children.append(directory(name, *subtree.children))
        else:
            children.append(file(name + draw(st.sampled_from([".rej", ".cs", ""]))))
    return directory("root", *children)


def count_suffix(entry: DirEntry, suffix: str) -> int:
    if entry.is_file:
        return 1 if entry.name.endswith(suffix) else 0
    return sum(count_suffix(child, suffix) for child in entry.children)


@given(tree=trees())
@settings(max_examples=100)
def test_find_rejected_hunks_finds_every_rej_file_once(tree: DirEntry) -> None:
    found = find_rejected_hunks(tree)

    assert len(found) == count_suffix(tree, ".rej")
    assert len({r.relative_path for r in found}) == len(found)
    assert all(r.relative_path.name.endswith(".rej") for r in found)


def test_read_tree_skips_git_directory(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "index.rej").write_text("x")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.cs.rej").write_text("x")

    found = find_rejected_hunks(read_tree(tmp_path))

    assert [str(r.relative_path) for r in found] == ["src/a.cs.rej"]


def test_collect_uploads_once_and_removes_from_working_copy(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "a.cs.rej").write_text("hunk a")
    (root / "src" / "b.cs.rej").write_text("hunk b")
    (root / "src" / "b.cs").write_text("code")
    store = RecordingArtifactStore()

    collected = collect_rejected_hunks(root, tmp_path / "staging", store, "patch-rejections-dep-1")

    assert len(collected) == 2
    assert len(store.uploads) == 1
    upload = store.uploads[0]
    assert upload.name == "patch-rejections-dep-1"
    assert sorted(upload.files) == ["a.cs.rej", "src/b.cs.rej"]
    assert upload.contents["src/b.cs.rej"] == "hunk b"
    assert upload.retention_days == 30
    assert not (root / "a.cs.rej").exists()
    assert not (root / "src" / "b.cs.rej").exists()
    assert (root / "src" / "b.cs").exists()


def test_collect_without_rejects_uploads_nothing(tmp_path: Path) -> None:
    (tmp_path / "repo").mkdir()
    store = RecordingArtifactStore()

    assert collect_rejected_hunks(tmp_path / "repo", tmp_path / "s", store, "name") == []
    assert store.uploads == []


def test_directory_artifact_store_writes_manifest(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    (staging / "src").mkdir(parents=True)
    rej = staging / "src" / "a.rej"
    rej.write_text("hunk")

    DirectoryArtifactStore(tmp_path / "artifacts").upload("patch-rejections-1", [rej], staging, 30)

    target = tmp_path / "artifacts" / "patch-rejections-1"
    assert (target / "src" / "a.rej").read_text() == "hunk"
    manifest = json.loads((target / "manifest.json").read_text())
    assert manifest["files"] == ["src/a.rej"]
    assert manifest["retentionDays"] == 30


def test_directory_artifact_store_unwritable_base(tmp_path: Path) -> None:
    blocker = tmp_path / "artifacts"
    blocker.write_text("not a directory")
    rej = tmp_path / "a.rej"
    rej.write_text("hunk")

    with pytest.raises(RecoveryError) as exc_info:
        DirectoryArtifactStore(blocker).upload("patch-rejections-1", [rej], tmp_path, 30)

    assert exc_info.value.code == "RECOVERY_FAILED"
    assert "patch-rejections-1" in exc_info.value.message


def test_collect_unstageable_rejects_is_recovery_error(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    root.mkdir()
    (root / "a.cs.rej").write_text("hunk")
    staging = tmp_path / "staging"
    staging.write_text("in the way")
    store = RecordingArtifactStore()

    with pytest.raises(RecoveryError):
        collect_rejected_hunks(root, staging, store, "patch-rejections-dep-1")

    assert store.uploads == []
