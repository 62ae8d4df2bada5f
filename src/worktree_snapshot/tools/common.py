from __future__ import annotations

from ..core.git_runner import GitRunnerConfig, SafeGitRunner
from ..core.limits import MAX_STATUS_BUFFER_CHARS, MAX_TOOL_OUTPUT_CHARS
from ..core.repository import GitRepository
from ..core.security import resolve_root


_DEFAULT_CFG = GitRunnerConfig(timeout_s=3.0, max_output_chars=MAX_TOOL_OUTPUT_CHARS)
_STATUS_CFG = GitRunnerConfig(timeout_s=10.0, max_output_chars=MAX_STATUS_BUFFER_CHARS)


def make_runner(root: str = ".") -> SafeGitRunner:
    return SafeGitRunner(root=resolve_root(root), config=_DEFAULT_CFG)


def make_repository(root: str = ".") -> GitRepository:
    return GitRepository(resolve_root(root), config=_STATUS_CFG)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(int(value), high))
