from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

from conftest import commit_file

from worktree_snapshot.core import git_runner as gr
from worktree_snapshot.core.conflicts import ConflictScanTarget, resolve_conflict_details
from worktree_snapshot.core.errors import GitExecutionError, GitPolicyError, InvalidRootError
from worktree_snapshot.core.git_runner import GitRunnerConfig, SafeGitRunner, require_ok
from worktree_snapshot.core.models import ConflictFilesDetails
from worktree_snapshot.core.repository import GitRepository


def test_failed_ref_lookup_reports_nonzero_exit(tmp_git_repo: Path):
    runner = SafeGitRunner(tmp_git_repo)

    res = runner.run(["rev-parse", "--verify", "MERGE_HEAD"])
    assert res.exit_code != 0
    assert "fatal" in res.combined_output.lower()


def test_require_ok_raises_with_context(tmp_git_repo: Path):
    runner = SafeGitRunner(tmp_git_repo)
    res = runner.run(["diff", "--numstat", "-z", "REBASE_HEAD"])

    with pytest.raises(GitExecutionError, match="diff --numstat REBASE_HEAD failed"):
        require_ok(res, context="diff --numstat REBASE_HEAD")


def test_require_ok_passes_result_through(tmp_git_repo: Path):
    res = SafeGitRunner(tmp_git_repo).run(["status"])
    assert require_ok(res, context="status") is res


def test_git_runner_with_nonexistent_repo(tmp_path: Path):
    with pytest.raises(InvalidRootError):
        SafeGitRunner(tmp_path / "nope")


def test_git_binary_not_found_raises_gitexecutionerror(tmp_git_repo: Path):
    runner = SafeGitRunner(tmp_git_repo)

    with patch("subprocess.Popen", side_effect=FileNotFoundError("git not found")):
        with pytest.raises(GitExecutionError):
            runner.run(["status"])


def test_git_command_timeout_handling(tmp_git_repo: Path, monkeypatch):
    class FakePopen:
        def __init__(self, *args, **kwargs):
            self.pid = 12345
            self.returncode = None
            self._calls = 0

        def communicate(self, timeout=None):
            self._calls += 1
            if self._calls == 1:
                raise subprocess.TimeoutExpired(cmd="git status", timeout=timeout)
            return ("partial", "")

        def wait(self, timeout=None):
            self.returncode = 0
            return 0

    terminated = []
    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    monkeypatch.setattr(gr, "_terminate", lambda p: terminated.append(p.pid))

    runner = SafeGitRunner(tmp_git_repo, config=GitRunnerConfig(timeout_s=0.001))

    res = runner.run(["status"])
    assert res.timed_out is True
    assert res.exit_code == gr.TIMEOUT_EXIT_CODE
    assert res.stdout == "partial"
    assert terminated == [12345]


def test_status_output_truncation(tmp_git_repo: Path, make_change):
    for i in range(50):
        make_change(f"untracked/file_{i:03d}.txt", "x\n")

    runner = SafeGitRunner(tmp_git_repo, config=GitRunnerConfig(max_output_chars=200))

    res = runner.run(["status", "--porcelain=2", "-z", "--untracked-files=all"])
    assert res.output_truncated is True
    assert (len(res.stdout) + len(res.stderr)) <= 200


def test_show_output_truncation(tmp_git_repo: Path):
    commit_file(tmp_git_repo, "large.txt", "x" * 10_000, "add large")

    runner = SafeGitRunner(tmp_git_repo, config=GitRunnerConfig(max_output_chars=1000))
    res = runner.run(["show", "HEAD:large.txt"])
    assert res.output_truncated is True
    assert len(res.stdout) <= 1000


def test_git_runner_empty_args_rejected(tmp_git_repo: Path):
    with pytest.raises(GitPolicyError):
        SafeGitRunner(tmp_git_repo).run([])


def test_runner_pins_locale_and_disables_locks(tmp_git_repo: Path):
    env = SafeGitRunner(tmp_git_repo)._build_env({"GIT_EDITOR": ":"})
    assert env["LC_ALL"] == "C"
    assert env["GIT_OPTIONAL_LOCKS"] == "0"
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["GIT_EDITOR"] == ":"


def test_git_runner_argv_and_duration_are_recorded(tmp_git_repo: Path):
    res = SafeGitRunner(tmp_git_repo).run(["log", "-n", "5"])
    assert res.argv == ["git", "log", "-n", "5"]
    assert isinstance(res.duration_ms, int)
    assert res.duration_ms >= 0
    assert "stdout" not in res.to_dict()


def test_git_runner_handles_subprocess_exception(tmp_git_repo: Path, monkeypatch):
    runner = SafeGitRunner(tmp_git_repo)
    monkeypatch.setattr(gr, "_terminate", lambda p: None)

    def mock_communicate(*args, **kwargs):
        raise RuntimeError("Unexpected error")

    with patch("subprocess.Popen") as popen:
        proc = MagicMock()
        proc.communicate = mock_communicate
        proc.pid = 12345
        popen.return_value = proc

        with pytest.raises(GitExecutionError):
            runner.run(["status"])


def test_error_types_inheritance():
    from worktree_snapshot.core.errors import (
        MissingOldPathError,
        StatusParseError,
        UnknownStatusCodeError,
        WorktreeSnapshotError,
    )

    for err in (InvalidRootError, GitPolicyError, GitExecutionError, StatusParseError):
        assert issubclass(err, WorktreeSnapshotError)
    assert issubclass(UnknownStatusCodeError, StatusParseError)
    assert issubclass(MissingOldPathError, StatusParseError)


def _write_conflicted_files(repo: Path, count: int) -> None:
    for i in range(count):
        commit_file(repo, f"conflicts/file_{i:02d}.txt", "base\n", f"add file {i}")
    for i in range(count):
        (repo / f"conflicts/file_{i:02d}.txt").write_text(
            "<<<<<<< ours\nours\n=======\ntheirs\n>>>>>>> theirs\n", encoding="utf-8"
        )


def test_truncated_conflict_scan_fails_instead_of_undercounting(tmp_git_repo: Path):
    _write_conflicted_files(tmp_git_repo, 30)

    full = GitRepository(tmp_git_repo).conflict_marker_counts()
    assert len(full) == 30
    assert sum(full.values()) == 90

    small = GitRepository(tmp_git_repo, config=GitRunnerConfig(max_output_chars=500))
    with pytest.raises(GitExecutionError, match="exceeded 500 chars"):
        small.conflict_marker_counts()

    recovered = resolve_conflict_details(small, ConflictScanTarget.WORKING_DIRECTORY)
    assert recovered.value == ConflictFilesDetails.empty()
    assert isinstance(recovered.error, GitExecutionError)


def test_truncated_commit_range_fails(tmp_git_repo: Path, git_head: str):
    for i in range(20):
        commit_file(tmp_git_repo, f"log/file_{i:02d}.txt", f"{i}\n", f"commit number {i}")

    repo = GitRepository(tmp_git_repo)
    assert len(repo.commits_between(git_head, "HEAD")) == 20

    small = GitRepository(tmp_git_repo, config=GitRunnerConfig(max_output_chars=500))
    with pytest.raises(GitExecutionError):
        small.commits_between(git_head, "HEAD")
