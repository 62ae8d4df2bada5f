from __future__ import annotations

from pathlib import Path

import structlog

from .errors import GitExecutionError, InvalidRootError
from .git_runner import GitRunnerConfig, SafeGitRunner, require_ok
from .limits import MAX_STATUS_BUFFER_CHARS
from .models import CommitSummary, GitRunResult
from .parsers import parse_binary_paths, parse_commit_summaries, parse_conflict_marker_counts
from .security import ensure_within_root, normalize_relpath

logger = structlog.get_logger()

NOT_A_REPOSITORY_EXIT_CODE = 128

_STATUS_ARGS = [
    "status",
    "--untracked-files=all",
    "--branch",
    "--porcelain=2",
    "-z",
]

# `diff --check` exits with 2 when it found problems.
_DIFF_CHECK_OK = (0, 2)


class GitRepository:
    """
    Collaborators backed by the git executable and the on-disk git dir.

    Implements StatusStreamSource, MarkerStore, ConflictScanner and
    CommitRangeWalker for one working tree.
    """

    def __init__(self, root: str | Path, config: GitRunnerConfig | None = None) -> None:
        self.runner = SafeGitRunner(root, config=config or GitRunnerConfig(max_output_chars=MAX_STATUS_BUFFER_CHARS))
        self.root = self.runner.root

    # --- git dir -----------------------------------------------------------

    def git_dir(self) -> Path | None:
        """
        Metadata directory of this working tree. Handles the `gitdir:` file
        of linked worktrees and submodules; falls back to asking git when
        the root is a subdirectory.
        """
        dot_git = self.root / ".git"
        try:
            if dot_git.is_dir():
                return dot_git
            if dot_git.is_file():
                text = dot_git.read_text(encoding="utf-8").strip()
                if text.startswith("gitdir:"):
                    return (self.root / text[len("gitdir:"):].strip()).resolve()
        except OSError as e:
            logger.debug("git_dir_unreadable", root=str(self.root), error=str(e))
            return None

        res = self.runner.run(["rev-parse", "--absolute-git-dir"])
        if res.exit_code != 0:
            return None
        out = res.stdout.strip()
        return Path(out) if out else None

    def _marker_path(self, name: str) -> Path | None:
        git_dir = self.git_dir()
        if git_dir is None:
            return None
        try:
            return ensure_within_root(git_dir, git_dir / normalize_relpath(name))
        except InvalidRootError:
            logger.warning("marker_outside_git_dir", marker=name)
            return None

    # --- StatusStreamSource --------------------------------------------------

    def raw_status(self) -> str | None:
        res = self.runner.run(_STATUS_ARGS)
        if res.exit_code == NOT_A_REPOSITORY_EXIT_CODE:
            logger.info("not_a_repository", root=str(self.root))
            return None
        if res.output_truncated:
            logger.warning("status_output_too_large", root=str(self.root), limit=MAX_STATUS_BUFFER_CHARS)
            return None
        require_ok(res, context="status")
        return res.stdout

    # --- MarkerStore ---------------------------------------------------------

    def exists(self, name: str) -> bool:
        path = self._marker_path(name)
        if path is None:
            return False
        try:
            return path.exists()
        except OSError:
            return False

    def read(self, name: str) -> str | None:
        path = self._marker_path(name)
        if path is None:
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("marker_unreadable", marker=name, error=str(e))
            return None

    def _require_complete(self, res: GitRunResult, context: str) -> GitRunResult:
        """A scan cut at the output ceiling is a failed scan, never a partial one."""
        if res.output_truncated:
            raise GitExecutionError(
                f"{context} output exceeded {self.runner.config.max_output_chars} chars"
            )
        return res

    # --- ConflictScanner -----------------------------------------------------

    def conflict_marker_counts(self) -> dict[str, int]:
        res = self.runner.run(["diff", "--check"])
        if res.exit_code not in _DIFF_CHECK_OK:
            raise GitExecutionError(f"diff --check failed: {res.stderr.strip()}")
        self._require_complete(res, "diff --check")
        return parse_conflict_marker_counts(res.stdout)

    def binary_paths(self, ref: str) -> set[str]:
        res = require_ok(self.runner.run(["diff", "--numstat", "-z", ref]), context=f"diff --numstat {ref}")
        self._require_complete(res, f"diff --numstat {ref}")
        return parse_binary_paths(res.stdout)

    # --- CommitRangeWalker ---------------------------------------------------

    def commits_between(self, from_sha: str, to_sha: str) -> list[CommitSummary]:
        res = require_ok(
            self.runner.run(["log", "--reverse", "--format=%H%x00%s", f"{from_sha}..{to_sha}", "--"]),
            context="log(range)",
        )
        self._require_complete(res, "log(range)")
        return parse_commit_summaries(res.stdout)
