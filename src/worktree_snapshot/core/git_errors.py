"""Recognition of the git failure messages that multi-commit operations care about."""

from __future__ import annotations

import re
from enum import Enum


class GitErrorKind(str, Enum):
    UNRESOLVED_CONFLICTS = "unresolved-conflicts"
    REBASE_CONFLICTS = "rebase-conflicts"
    CONFLICT_MODIFY_DELETED_IN_BRANCH = "conflict-modify-deleted-in-branch"
    MERGE_CONFLICTS = "merge-conflicts"
    REBASE_WITH_LOCAL_CHANGES = "rebase-with-local-changes"
    MERGE_WITH_LOCAL_CHANGES = "merge-with-local-changes"
    LOCAL_CHANGES_OVERWRITTEN = "local-changes-overwritten"
    MERGE_COMMIT_NO_MAINLINE_OPTION = "merge-commit-no-mainline-option"
    NOTHING_TO_COMMIT = "nothing-to-commit"
    NO_MERGE_TO_ABORT = "no-merge-to-abort"
    BAD_REVISION = "bad-revision"
    NOT_A_GIT_REPOSITORY = "not-a-git-repository"
    LOCK_FILE_ALREADY_EXISTS = "lock-file-already-exists"


# Checked in order; the first match wins.
_PATTERNS: tuple[tuple[re.Pattern[str], GitErrorKind], ...] = (
    (
        re.compile(
            r"You must edit all merge conflicts and then\nmark them as resolved using git add"
            r"|fatal: Exiting because of an unresolved conflict"
            r"|Committing is not possible because you have unmerged files"
        ),
        GitErrorKind.UNRESOLVED_CONFLICTS,
    ),
    (re.compile(r"Resolve all conflicts manually, mark them as resolved with"), GitErrorKind.REBASE_CONFLICTS),
    (
        re.compile(r"CONFLICT \(modify/delete\): (.+) deleted in (.+) and modified in (.+)"),
        GitErrorKind.CONFLICT_MODIFY_DELETED_IN_BRANCH,
    ),
    (
        re.compile(r"(Merge conflict|Automatic merge failed; fix conflicts and then commit the result)"),
        GitErrorKind.MERGE_CONFLICTS,
    ),
    (
        re.compile(r"error: cannot (pull with rebase|rebase): You have unstaged changes\.\n\s*error: [Pp]lease commit or stash them\."),
        GitErrorKind.REBASE_WITH_LOCAL_CHANGES,
    ),
    (
        re.compile(r"error: Your local changes to the following files would be overwritten by merge:\n"),
        GitErrorKind.MERGE_WITH_LOCAL_CHANGES,
    ),
    (
        re.compile(
            r"error: (?:Your local changes to the following|The following untracked working tree) "
            r"files would be overwritten by checkout:"
        ),
        GitErrorKind.LOCAL_CHANGES_OVERWRITTEN,
    ),
    (re.compile(r"error: commit (.+) is a merge but no -m option was given"), GitErrorKind.MERGE_COMMIT_NO_MAINLINE_OPTION),
    (re.compile(r"nothing to commit"), GitErrorKind.NOTHING_TO_COMMIT),
    (re.compile(r"fatal: There is no merge to abort"), GitErrorKind.NO_MERGE_TO_ABORT),
    (re.compile(r"fatal: bad revision '(.*)'"), GitErrorKind.BAD_REVISION),
    (re.compile(r"fatal: [Nn]ot a git repository \(or any of the parent directories\): (.*)"), GitErrorKind.NOT_A_GIT_REPOSITORY),
    (re.compile(r"Another git process seems to be running in this repository"), GitErrorKind.LOCK_FILE_ALREADY_EXISTS),
)

DESCRIPTIONS: dict[GitErrorKind, str] = {
    GitErrorKind.REBASE_CONFLICTS: "We found some conflicts while trying to rebase. Please resolve the conflicts before continuing.",
    GitErrorKind.MERGE_CONFLICTS: "We found some conflicts while trying to merge. Please resolve the conflicts and commit the changes.",
    GitErrorKind.UNRESOLVED_CONFLICTS: "There are unresolved conflicts in the working directory.",
    GitErrorKind.NOTHING_TO_COMMIT: "There are no changes to commit.",
    GitErrorKind.NO_MERGE_TO_ABORT: "There is no merge in progress, so there is nothing to abort.",
    GitErrorKind.NOT_A_GIT_REPOSITORY: "This is not a git repository.",
    GitErrorKind.LOCK_FILE_ALREADY_EXISTS: "A lock file already exists in the repository, which blocks this operation from completing.",
}


def detect_git_error(output: str) -> GitErrorKind | None:
    for pattern, kind in _PATTERNS:
        if pattern.search(output):
            return kind
    return None


def describe_git_error(kind: GitErrorKind) -> str | None:
    return DESCRIPTIONS.get(kind)
