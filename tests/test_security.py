from __future__ import annotations

from pathlib import Path

import pytest

from worktree_snapshot.core.errors import InvalidRootError
from worktree_snapshot.core.repository import GitRepository
from worktree_snapshot.core.security import ensure_within_root, normalize_relpath, resolve_root


def test_resolve_root_rejects_missing_and_file_roots(tmp_path: Path):
    with pytest.raises(InvalidRootError, match="Root does not exist:"):
        resolve_root(tmp_path / "does_not_exist")

    f = tmp_path / "file.txt"
    f.write_text("data", encoding="utf-8")
    with pytest.raises(InvalidRootError, match="Root is not a directory:"):
        resolve_root(f)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("rebase-merge/onto", "rebase-merge/onto"),
        ("./MERGE_HEAD", "MERGE_HEAD"),
        ("././sequencer/todo", "sequencer/todo"),
        ("rebase-merge\\msgnum", "rebase-merge/msgnum"),
        ("  CHERRY_PICK_HEAD ", "CHERRY_PICK_HEAD"),
        ("", ""),
    ],
)
def test_normalize_relpath(raw, expected):
    assert normalize_relpath(raw) == expected


def test_ensure_within_root_blocks_traversal(tmp_path: Path):
    root = tmp_path / "repo"
    root.mkdir()

    assert ensure_within_root(root, root / "sub") == (root / "sub").resolve()
    with pytest.raises(InvalidRootError, match="Path escapes root"):
        ensure_within_root(root, root / ".." / ".." / "etc" / "passwd")


def test_markers_cannot_escape_git_dir(tmp_git_repo: Path):
    (tmp_git_repo / "secret.txt").write_text("not a marker", encoding="utf-8")
    repo = GitRepository(tmp_git_repo)

    assert repo.read("../secret.txt") is None
    assert repo.exists("../secret.txt") is False


def test_git_dir_from_gitdir_file(tmp_git_repo: Path, git):
    linked = tmp_git_repo.parent / "linked"
    git(["git", "worktree", "add", "-q", "-b", "side", str(linked)], tmp_git_repo)

    repo = GitRepository(linked)
    git_dir = repo.git_dir()

    assert git_dir is not None
    assert git_dir.is_dir()
    assert git_dir != tmp_git_repo / ".git"
    assert (git_dir / "HEAD").is_file()
