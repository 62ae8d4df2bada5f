"""Public queries: the working tree snapshot and the progress of the active operation."""

from __future__ import annotations

import structlog

from .classification import is_conflict_code
from .collaborators import Repository
from .conflicts import resolve_conflict_details, select_scan_target
from .operations import (
    ActiveOperation,
    MultiCommitOperationProgress,
    cherry_pick_head_found,
    detect_active_operation,
    get_cherry_pick_snapshot,
    get_rebase_internal_state,
    get_rebase_snapshot,
    merge_head_found,
    squash_msg_found,
)
from .parsers import parse_porcelain_status, split_status_items
from .snapshot import StatusResult, build_status_map, build_status_result, fold_status_headers

logger = structlog.get_logger()


def get_status(repository: Repository) -> StatusResult | None:
    """
    Snapshot the working tree.

    Returns None when the root is not a repository or the status output does
    not fit the status buffer. Failures of the conflict scans degrade to
    empty conflict details.
    """
    raw = repository.raw_status()
    if raw is None:
        return None

    headers, entries = split_status_items(parse_porcelain_status(raw))

    conflicted_files_exist = any(is_conflict_code(e.status_code) for e in entries)
    merge_head = merge_head_found(repository)
    rebase_state = get_rebase_internal_state(repository)

    target = select_scan_target(
        merge_head_found=merge_head,
        rebase_in_progress=rebase_state is not None,
        conflicted_files_in_index=conflicted_files_exist,
    )
    details = resolve_conflict_details(repository, target)

    files = build_status_map(entries, details.value)

    result = build_status_result(
        headers=fold_status_headers(headers),
        files=files.values(),
        merge_head_found=merge_head,
        squash_msg_found=squash_msg_found(repository),
        rebase_state=rebase_state,
        cherry_pick_head_found=cherry_pick_head_found(repository),
        conflicted_files_exist=conflicted_files_exist,
    )
    logger.debug(
        "status_snapshot",
        files=len(result.working_directory.files),
        conflicted=conflicted_files_exist,
        scan_target=target.name,
    )
    return result


def get_operation_progress(repository: Repository) -> MultiCommitOperationProgress | None:
    """Progress of the active rebase or cherry-pick; None for merges and when unavailable."""
    operation = detect_active_operation(repository)

    if operation is ActiveOperation.REBASE:
        snapshot = get_rebase_snapshot(repository, repository)
        return snapshot.progress if snapshot else None
    if operation is ActiveOperation.CHERRY_PICK:
        snapshot = get_cherry_pick_snapshot(repository, repository)
        return snapshot.progress if snapshot else None
    return None
