from __future__ import annotations


class WorktreeSnapshotError(Exception):
    """Base error for the project."""


class InvalidRootError(WorktreeSnapshotError):
    pass


class GitPolicyError(WorktreeSnapshotError):
    pass


class GitExecutionError(WorktreeSnapshotError):
    pass


class StatusParseError(WorktreeSnapshotError):
    """A status record broke the porcelain contract."""


class UnknownStatusCodeError(StatusParseError):
    pass


class MissingOldPathError(StatusParseError):
    pass
