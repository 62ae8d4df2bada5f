from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from .git_runner import SafeGitRunner, require_ok

logger = structlog.get_logger()

STASH_ENTRY_MARKER = "!!worktree-snapshot"

_STASH_MESSAGE_RE = re.compile(rf"{re.escape(STASH_ENTRY_MARKER)}<(.+)>$")

_FIELDS = ("%gd", "%H", "%gs", "%T", "%P")
STASH_LIST_ARGS = ["stash", "list", f"--format={'%x00'.join(_FIELDS)}"]

# No refs/stash reflog (or not a repository).
NO_STASH_EXIT_CODE = 128


@dataclass(frozen=True)
class StashEntry:
    name: str
    branch_name: str
    stash_sha: str
    tree: str
    parents: tuple[str, ...]


@dataclass(frozen=True)
class StashResult:
    # Only the entries this tool created, newest first
    editor_entries: tuple[StashEntry, ...]
    stash_entry_count: int


def create_stash_message(branch_name: str) -> str:
    return f"{STASH_ENTRY_MARKER}<{branch_name}>"


def extract_branch_from_message(message: str) -> str | None:
    """
    Branch recorded in a stash message created by `create_stash_message`.
    git prefixes stash messages with `On <branch>: `, so only the tail is matched.
    """
    m = _STASH_MESSAGE_RE.search(message.strip())
    return m.group(1) if m else None


def parse_stash_list(output: str) -> StashResult:
    entries: list[StashEntry] = []
    count = 0
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = line.split("\0")
        if len(fields) != len(_FIELDS):
            logger.warning("stash_record_malformed", fields=len(fields))
            continue
        count += 1

        name, stash_sha, message, tree, parents = fields
        branch_name = extract_branch_from_message(message)
        if branch_name is None:
            continue
        entries.append(
            StashEntry(
                name=name,
                branch_name=branch_name,
                stash_sha=stash_sha,
                tree=tree,
                parents=tuple(parents.split()),
            )
        )
    return StashResult(editor_entries=tuple(entries), stash_entry_count=count)


def get_stashes(runner: SafeGitRunner) -> StashResult:
    res = runner.run(STASH_LIST_ARGS)
    if res.exit_code == NO_STASH_EXIT_CODE:
        return StashResult(editor_entries=(), stash_entry_count=0)
    require_ok(res, context="stash list")
    return parse_stash_list(res.stdout)


def get_last_stash_entry_for_branch(runner: SafeGitRunner, branch_name: str) -> StashEntry | None:
    # `stash list` is newest first
    for entry in get_stashes(runner).editor_entries:
        if entry.branch_name == branch_name:
            return entry
    return None
