from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable

import structlog

from .classification import classify, is_added_then_deleted, map_status
from .errors import MissingOldPathError
from .file_status import (
    DiffSelection,
    UntrackedEntry,
    WorkingDirectoryFileChange,
    WorkingDirectoryStatus,
    initial_selection_type,
)
from .models import AheadBehind, ConflictFilesDetails, FileEntry, StatusHeader
from .operations import RebaseInternalState

logger = structlog.get_logger()

DETACHED_HEAD = "(detached)"

_BRANCH_OID_RE = re.compile(r"^branch\.oid ([a-f0-9]+)$")
_BRANCH_HEAD_RE = re.compile(r"^branch\.head (.*)$")
_BRANCH_UPSTREAM_RE = re.compile(r"^branch\.upstream (.*)$")
_BRANCH_AB_RE = re.compile(r"^branch\.ab \+(\d+) -(\d+)$")


@dataclass(frozen=True)
class StatusHeadersData:
    current_branch: str | None = None
    current_upstream_branch: str | None = None
    current_tip: str | None = None
    branch_ahead_behind: AheadBehind | None = None


def parse_status_header(data: StatusHeadersData, header: StatusHeader) -> StatusHeadersData:
    value = header.value

    m = _BRANCH_OID_RE.match(value)
    if m:
        return replace(data, current_tip=m.group(1))

    m = _BRANCH_HEAD_RE.match(value)
    if m:
        if m.group(1) == DETACHED_HEAD:
            return data
        return replace(data, current_branch=m.group(1))

    m = _BRANCH_UPSTREAM_RE.match(value)
    if m:
        return replace(data, current_upstream_branch=m.group(1))

    m = _BRANCH_AB_RE.match(value)
    if m:
        return replace(data, branch_ahead_behind=AheadBehind(ahead=int(m.group(1)), behind=int(m.group(2))))

    return data


def fold_status_headers(headers: Iterable[StatusHeader]) -> StatusHeadersData:
    """Fold branch headers in stream order; a later header overrides an earlier one."""
    data = StatusHeadersData()
    for header in headers:
        data = parse_status_header(data, header)
    return data


def build_status_map(
    entries: Iterable[FileEntry],
    conflict_details: ConflictFilesDetails | None = None,
) -> dict[str, WorkingDirectoryFileChange]:
    """
    Fold entries into a path -> change map, in stream order.

    Added-then-deleted entries are dropped. An untracked record replaces any
    earlier record for the same path.
    """
    details = conflict_details or ConflictFilesDetails.empty()
    files: dict[str, WorkingDirectoryFileChange] = {}

    for entry in entries:
        status_entry = map_status(entry.status_code, entry.submodule_status_code, entry.modes)

        if is_added_then_deleted(status_entry):
            continue
        if isinstance(status_entry, UntrackedEntry):
            files.pop(entry.path, None)

        try:
            app_status = classify(entry, details)
        except MissingOldPathError as e:
            logger.warning("status_entry_rejected", path=entry.path, error=str(e))
            continue

        selection = DiffSelection(default_selection_type=initial_selection_type(app_status))
        files[entry.path] = WorkingDirectoryFileChange(path=entry.path, status=app_status, selection=selection)

    return files


@dataclass(frozen=True)
class StatusResult:
    """
    Point-in-time snapshot of a working tree.

    At most one of `merge_head_found`, `rebase_internal_state` and
    `is_cherry_picking_head_found` is set.
    """
    current_branch: str | None
    current_upstream_branch: str | None
    current_tip: str | None
    branch_ahead_behind: AheadBehind | None
    # False when the directory is not a repository
    exists: bool
    merge_head_found: bool
    squash_msg_found: bool
    rebase_internal_state: RebaseInternalState | None
    is_cherry_picking_head_found: bool
    working_directory: WorkingDirectoryStatus
    do_conflicted_files_exist: bool


def build_status_result(
    *,
    headers: StatusHeadersData,
    files: Iterable[WorkingDirectoryFileChange],
    merge_head_found: bool,
    squash_msg_found: bool,
    rebase_state: RebaseInternalState | None,
    cherry_pick_head_found: bool,
    conflicted_files_exist: bool,
) -> StatusResult:
    # merge, then rebase, then cherry-pick
    if merge_head_found:
        rebase_state = None
        cherry_pick_head_found = False
    elif rebase_state is not None:
        cherry_pick_head_found = False

    return StatusResult(
        current_branch=headers.current_branch,
        current_upstream_branch=headers.current_upstream_branch,
        current_tip=headers.current_tip,
        branch_ahead_behind=headers.branch_ahead_behind,
        exists=True,
        merge_head_found=merge_head_found,
        squash_msg_found=squash_msg_found,
        rebase_internal_state=rebase_state,
        is_cherry_picking_head_found=cherry_pick_head_found,
        working_directory=WorkingDirectoryStatus.from_files(files),
        do_conflicted_files_exist=conflicted_files_exist,
    )
