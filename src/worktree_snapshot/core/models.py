from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class GitRunResult:
    argv: list[str]
    root: str
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    timed_out: bool
    output_truncated: bool

    @property
    def combined_output(self) -> str:
        return "\n".join(s for s in (self.stderr, self.stdout) if s)

    def to_dict(self) -> dict[str, Any]:
        return {
            "argv": self.argv,
            "root": self.root,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "output_truncated": self.output_truncated,
        }


@dataclass(frozen=True)
class StatusHeader:
    """A `# ...` record of the porcelain v2 stream, prefix removed."""
    value: str


@dataclass(frozen=True)
class FileEntry:
    """
    One change record from the porcelain v2 stream.

    `old_path` is only set for renamed/copied records. The modes are the
    octal HEAD/index/worktree modes when the record carries them.
    """
    path: str
    status_code: str
    submodule_status_code: str
    old_path: str | None = None
    head_mode: str | None = None
    index_mode: str | None = None
    worktree_mode: str | None = None

    @property
    def modes(self) -> tuple[str, ...]:
        return tuple(m for m in (self.head_mode, self.index_mode, self.worktree_mode) if m)


@dataclass(frozen=True)
class AheadBehind:
    ahead: int
    behind: int


@dataclass(frozen=True)
class CommitSummary:
    sha: str
    summary: str


@dataclass(frozen=True)
class Recovered(Generic[T]):
    """
    Value of a scan whose failure was downgraded.

    `error` holds the swallowed exception so callers can decide to log,
    retry or ignore it; `value` is then the empty fallback.
    """
    value: T
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ConflictFilesDetails:
    conflict_counts_by_path: dict[str, int]
    binary_file_paths: frozenset[str]

    @classmethod
    def empty(cls) -> ConflictFilesDetails:
        return cls(conflict_counts_by_path={}, binary_file_paths=frozenset())
