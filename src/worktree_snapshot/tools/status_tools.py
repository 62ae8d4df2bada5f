from __future__ import annotations

from dataclasses import asdict
from typing import Any

from .common import clamp, make_repository, make_runner
from ..core.conflicts import resolve_conflict_details, select_scan_target
from ..core.file_status import (
    AppFileStatus,
    CopiedOrRenamedFileStatus,
    WorkingDirectoryFileChange,
    is_conflict_with_markers,
    is_manual_conflict,
)
from ..core.limits import MAX_TOOL_FILES
from ..core.operations import MultiCommitOperationProgress, detect_active_operation
from ..core.stash import get_stashes
from ..core.status import get_operation_progress, get_status


def _status_to_dict(status: AppFileStatus) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": status.kind.value}
    if isinstance(status, CopiedOrRenamedFileStatus):
        out["old_path"] = status.old_path
    if is_conflict_with_markers(status):
        out["conflict"] = status.entry.details.action.value
        out["conflict_marker_count"] = status.conflict_marker_count
    elif is_manual_conflict(status):
        out["conflict"] = status.entry.details.action.value
        out["manual"] = True
    out["submodule"] = asdict(status.submodule_status) if status.submodule_status else None
    return out


def _file_to_dict(change: WorkingDirectoryFileChange) -> dict[str, Any]:
    return {
        "path": change.path,
        "status": _status_to_dict(change.status),
        "selection": change.selection.get_selection_type().value,
    }


def _progress_to_dict(progress: MultiCommitOperationProgress) -> dict[str, Any]:
    return {
        "kind": progress.kind.value,
        "current_commit_summary": progress.current_commit_summary,
        "position": progress.position,
        "total_commit_count": progress.total_commit_count,
        "value": progress.value,
    }


def status_snapshot(root: str = ".", max_files: int = 500) -> dict[str, Any]:
    """
    Branch, working directory changes and in-progress operation of a repository.
    """
    repo = make_repository(root)
    result = get_status(repo)
    if result is None:
        return {"root": repo.root.as_posix(), "exists": False}

    files = result.working_directory.files
    limit = clamp(max_files, 1, MAX_TOOL_FILES)
    ahead_behind = result.branch_ahead_behind
    rebase = result.rebase_internal_state

    return {
        "root": repo.root.as_posix(),
        "exists": result.exists,
        "branch": result.current_branch,
        "upstream": result.current_upstream_branch,
        "tip": result.current_tip,
        "ahead_behind": asdict(ahead_behind) if ahead_behind else None,
        "merge_head_found": result.merge_head_found,
        "squash_msg_found": result.squash_msg_found,
        "rebase": asdict(rebase) if rebase else None,
        "cherry_picking": result.is_cherry_picking_head_found,
        "conflicted_files_exist": result.do_conflicted_files_exist,
        "include_all": result.working_directory.include_all,
        "files": [_file_to_dict(f) for f in files[:limit]],
        "count": len(files),
        "truncated": len(files) > limit,
    }


def operation_progress(root: str = ".") -> dict[str, Any]:
    repo = make_repository(root)
    operation = detect_active_operation(repo)
    progress = get_operation_progress(repo)
    return {
        "root": repo.root.as_posix(),
        "operation": operation.value,
        "progress": _progress_to_dict(progress) if progress else None,
    }


def conflict_details(root: str = ".") -> dict[str, Any]:
    """
    Conflict marker counts and binary conflicted paths for the active operation.
    """
    repo = make_repository(root)
    result = get_status(repo)
    if result is None:
        return {"root": repo.root.as_posix(), "exists": False}

    target = select_scan_target(
        merge_head_found=result.merge_head_found,
        rebase_in_progress=result.rebase_internal_state is not None,
        conflicted_files_in_index=result.do_conflicted_files_exist,
    )
    details = resolve_conflict_details(repo, target)
    return {
        "root": repo.root.as_posix(),
        "exists": True,
        "target": target.name.lower(),
        "conflict_counts_by_path": dict(sorted(details.value.conflict_counts_by_path.items())),
        "binary_file_paths": sorted(details.value.binary_file_paths),
        "error": str(details.error) if details.error else None,
    }


def stash_entries(root: str = ".") -> dict[str, Any]:
    r = make_runner(root)
    result = get_stashes(r)
    return {
        "root": r.root.as_posix(),
        "entries": [asdict(e) for e in result.editor_entries],
        "stash_entry_count": result.stash_entry_count,
    }
