from __future__ import annotations

import re
from collections import Counter
from typing import Iterable

import structlog

from .models import CommitSummary, FileEntry, StatusHeader

logger = structlog.get_logger()

StatusItem = StatusHeader | FileEntry

HEADER_PREFIX = "# "

CHANGED_ENTRY = "1"
RENAMED_OR_COPIED_ENTRY = "2"
UNMERGED_ENTRY = "u"
UNTRACKED_ENTRY = "?"
IGNORED_ENTRY = "!"

UNTRACKED_STATUS_CODE = "??"
UNTRACKED_SUBMODULE_CODE = "????"

_XY = r"([MTADRCU?!.]{2})"
_SUB = r"(N\.\.\.|S[C.][M.][U.])"
_MODE = r"(\d+)"
_SHA = r"[a-f0-9]+"

_CHANGED_RE = re.compile(rf"^1 {_XY} {_SUB} {_MODE} {_MODE} {_MODE} {_SHA} {_SHA} (.+)$", re.DOTALL)
_RENAMED_OR_COPIED_RE = re.compile(
    rf"^2 {_XY} {_SUB} {_MODE} {_MODE} {_MODE} {_SHA} {_SHA} [RC]\d+ (.+)$", re.DOTALL
)
_UNMERGED_RE = re.compile(
    rf"^u ([DAU]{{2}}) {_SUB} {_MODE} {_MODE} {_MODE} {_MODE} {_SHA} {_SHA} {_SHA} (.+)$", re.DOTALL
)

_CONFLICT_MARKER_RE = re.compile(r"^(.+):\d+: leftover conflict marker$", re.MULTILINE)


def parse_porcelain_status(output: str) -> list[StatusItem]:
    """
    Parse `git status --porcelain=2 --branch -z` output.

    Renamed/copied records are followed by an extra NUL field holding the
    original path; it is consumed here so later records stay aligned.
    Records that do not match their shape are dropped, never raised.
    """
    items: list[StatusItem] = []
    tokens = output.split("\0")
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1
        if not token:
            continue

        if token.startswith(HEADER_PREFIX):
            items.append(StatusHeader(value=token[len(HEADER_PREFIX):]))
            continue

        kind = token[0]
        if kind == CHANGED_ENTRY:
            entry = _parse_changed_entry(token)
        elif kind == RENAMED_OR_COPIED_ENTRY:
            old_path = tokens[i] if i < len(tokens) else ""
            i += 1
            entry = _parse_renamed_or_copied_entry(token, old_path)
        elif kind == UNMERGED_ENTRY:
            entry = _parse_unmerged_entry(token)
        elif kind == UNTRACKED_ENTRY:
            entry = _parse_untracked_entry(token)
        elif kind == IGNORED_ENTRY:
            continue
        else:
            logger.warning("status_record_unknown", record=token)
            continue

        if entry is not None:
            items.append(entry)

    return items


def split_status_items(items: Iterable[StatusItem]) -> tuple[list[StatusHeader], list[FileEntry]]:
    headers: list[StatusHeader] = []
    entries: list[FileEntry] = []
    for item in items:
        if isinstance(item, StatusHeader):
            headers.append(item)
        else:
            entries.append(item)
    return headers, entries


def _parse_changed_entry(field: str) -> FileEntry | None:
    m = _CHANGED_RE.match(field)
    if not m:
        logger.warning("status_record_malformed", kind="changed", record=field)
        return None
    xy, sub, m_head, m_index, m_worktree, path = m.groups()
    return FileEntry(
        path=path,
        status_code=xy,
        submodule_status_code=sub,
        head_mode=m_head,
        index_mode=m_index,
        worktree_mode=m_worktree,
    )


def _parse_renamed_or_copied_entry(field: str, old_path: str) -> FileEntry | None:
    m = _RENAMED_OR_COPIED_RE.match(field)
    if not m:
        logger.warning("status_record_malformed", kind="renamed_or_copied", record=field)
        return None
    if not old_path:
        logger.warning("status_record_missing_old_path", record=field)
        return None
    xy, sub, m_head, m_index, m_worktree, path = m.groups()
    return FileEntry(
        path=path,
        status_code=xy,
        submodule_status_code=sub,
        old_path=old_path,
        head_mode=m_head,
        index_mode=m_index,
        worktree_mode=m_worktree,
    )


def _parse_unmerged_entry(field: str) -> FileEntry | None:
    m = _UNMERGED_RE.match(field)
    if not m:
        logger.warning("status_record_malformed", kind="unmerged", record=field)
        return None
    xy, sub, _m1, _m2, _m3, m_worktree, path = m.groups()
    return FileEntry(
        path=path,
        status_code=xy,
        submodule_status_code=sub,
        worktree_mode=m_worktree,
    )


def _parse_untracked_entry(field: str) -> FileEntry | None:
    path = field[2:]
    if not path:
        return None
    return FileEntry(
        path=path,
        status_code=UNTRACKED_STATUS_CODE,
        submodule_status_code=UNTRACKED_SUBMODULE_CODE,
    )


def parse_conflict_marker_counts(output: str) -> dict[str, int]:
    """
    Count `<path>:<line>: leftover conflict marker` lines from `git diff --check`.
    Whitespace complaints in the same output are ignored.
    """
    return dict(Counter(m.group(1) for m in _CONFLICT_MARKER_RE.finditer(output)))


def parse_binary_paths(output: str) -> set[str]:
    """
    Parse `git diff --numstat -z` output and keep the binary (`-\\t-\\t`) paths.

    Renames come as `added\\tdeleted\\t\\0old\\0new\\0`; the new path is used.
    """
    paths: set[str] = set()
    tokens = output.split("\0")
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1
        if not token:
            continue
        parts = token.split("\t", 2)
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        if not path:
            # rename: skip the old path, take the new one
            path = tokens[i + 1] if i + 1 < len(tokens) else ""
            i += 2
        if path and added == "-" and deleted == "-":
            paths.add(path)
    return paths


def parse_commit_summaries(output: str) -> list[CommitSummary]:
    """Parse `git log --format=%H%x00%s` lines."""
    commits: list[CommitSummary] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        sha, _, summary = line.partition("\0")
        sha = sha.strip()
        if sha:
            commits.append(CommitSummary(sha=sha, summary=summary))
    return commits


def parse_sequencer_todo(text: str) -> list[CommitSummary]:
    """
    Parse the `pick <sha> <summary>` lines of a sequencer todo list.
    Anything else (comments, other commands, bare picks) is skipped.
    """
    commits: list[CommitSummary] = []
    for line in text.splitlines():
        parts = line.split(maxsplit=2)
        if len(parts) < 3 or parts[0] != "pick":
            continue
        commits.append(CommitSummary(sha=parts[1], summary=parts[2]))
    return commits
