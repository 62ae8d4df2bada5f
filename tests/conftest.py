from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from worktree_snapshot.core.errors import GitExecutionError
from worktree_snapshot.core.models import CommitSummary


def _run(cmd: list[str], cwd: Path, check: bool = True) -> str:
    p = subprocess.run(
        cmd,
        cwd=str(cwd),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    if check and p.returncode != 0:
        raise subprocess.CalledProcessError(p.returncode, cmd, output=p.stdout)
    return p.stdout.strip()


def commit_file(repo: Path, relpath: str, content: str, msg: str) -> str:
    p = repo / relpath
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    _run(["git", "add", "-A"], repo)
    _run(["git", "commit", "-m", msg], repo)
    return _run(["git", "rev-parse", "HEAD"], repo)


@pytest.fixture()
def tmp_git_repo(tmp_path: Path) -> Path:
    """
    Creates a small deterministic git repo:
      - 1 initial commit on `main`
      - known author identity, no signing, no editor
      - a couple of files + subdir
    """
    repo = tmp_path / "repo"
    repo.mkdir()

    _run(["git", "init", "-q"], repo)
    _run(["git", "symbolic-ref", "HEAD", "refs/heads/main"], repo)
    _run(["git", "config", "user.email", "ci@example.com"], repo)
    _run(["git", "config", "user.name", "CI"], repo)
    _run(["git", "config", "commit.gpgsign", "false"], repo)
    _run(["git", "config", "core.editor", "true"], repo)
    _run(["git", "config", "core.autocrlf", "false"], repo)

    (repo / "README.md").write_text("# dummy\n", encoding="utf-8")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("print('hi')\n", encoding="utf-8")

    _run(["git", "add", "-A"], repo)
    _run(["git", "commit", "-m", "initial"], repo)

    return repo


@pytest.fixture()
def git_head(tmp_git_repo: Path) -> str:
    return _run(["git", "rev-parse", "HEAD"], tmp_git_repo)


@pytest.fixture()
def make_change(tmp_git_repo: Path):
    """
    Helper: make working tree dirty in a predictable way.
    """
    def _maker(relpath: str = "README.md", text: str = "changed\n") -> Path:
        p = tmp_git_repo / relpath
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p
    return _maker


@pytest.fixture()
def git():
    return _run


class FakeRepository:
    """In-memory stand-in for GitRepository's four collaborator roles."""

    def __init__(
        self,
        status: str | None = "",
        markers: dict[str, str] | None = None,
        conflict_counts: dict[str, int] | None = None,
        binary: dict[str, set[str]] | None = None,
        commits: dict[tuple[str, str], list[CommitSummary]] | None = None,
    ) -> None:
        self.status = status
        self.markers = dict(markers or {})
        self.conflict_counts = dict(conflict_counts or {})
        self.binary = dict(binary or {})
        self.commits = dict(commits or {})
        self.fail_conflict_scan: Exception | None = None
        self.binary_refs: list[str] = []

    def raw_status(self) -> str | None:
        return self.status

    def exists(self, name: str) -> bool:
        if name in self.markers:
            return True
        prefix = name.rstrip("/") + "/"
        return any(k.startswith(prefix) for k in self.markers)

    def read(self, name: str) -> str | None:
        return self.markers.get(name)

    def conflict_marker_counts(self) -> dict[str, int]:
        if self.fail_conflict_scan is not None:
            raise self.fail_conflict_scan
        return dict(self.conflict_counts)

    def binary_paths(self, ref: str) -> set[str]:
        self.binary_refs.append(ref)
        if ref not in self.binary:
            raise RuntimeError(f"bad revision '{ref}'")
        return set(self.binary[ref])

    def commits_between(self, from_sha: str, to_sha: str) -> list[CommitSummary]:
        if (from_sha, to_sha) not in self.commits:
            raise GitExecutionError(f"unknown range {from_sha}..{to_sha}")
        return list(self.commits[(from_sha, to_sha)])


@pytest.fixture()
def fake_repo():
    return FakeRepository


def porcelain(*records: str) -> str:
    """Join records into a NUL-terminated porcelain v2 -z stream."""
    return "".join(r + "\0" for r in records)
