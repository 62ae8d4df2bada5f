"""
Interfaces the snapshot engine reads from.

`repository.GitRepository` implements all of them on top of the git
executable; tests use in-memory stand-ins.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import CommitSummary


@runtime_checkable
class StatusStreamSource(Protocol):
    def raw_status(self) -> str | None:
        """NUL-delimited porcelain v2 stream, or None if the root is not a repository."""
        ...


@runtime_checkable
class MarkerStore(Protocol):
    """Marker names are paths relative to the repository metadata directory."""

    def exists(self, name: str) -> bool: ...

    def read(self, name: str) -> str | None: ...


@runtime_checkable
class ConflictScanner(Protocol):
    def conflict_marker_counts(self) -> dict[str, int]: ...

    def binary_paths(self, ref: str) -> set[str]: ...


@runtime_checkable
class CommitRangeWalker(Protocol):
    def commits_between(self, from_sha: str, to_sha: str) -> list[CommitSummary]:
        """Commits reachable from `to_sha` but not `from_sha`, oldest first."""
        ...


@runtime_checkable
class Repository(StatusStreamSource, MarkerStore, ConflictScanner, CommitRangeWalker, Protocol):
    """Everything a full status query needs."""
