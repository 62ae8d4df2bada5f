from __future__ import annotations

from enum import Enum

import structlog

from .collaborators import ConflictScanner
from .models import ConflictFilesDetails, Recovered

logger = structlog.get_logger()


class ConflictScanTarget(str, Enum):
    """Which comparison the conflict scan runs against; the value is the ref."""
    MERGE = "MERGE_HEAD"
    REBASE = "REBASE_HEAD"
    WORKING_DIRECTORY = "HEAD"
    NONE = ""


def select_scan_target(
    *,
    merge_head_found: bool,
    rebase_in_progress: bool,
    conflicted_files_in_index: bool,
) -> ConflictScanTarget:
    """
    Merge first, then rebase, then any other conflicted index (for example
    after restoring a stash or during a cherry-pick).
    """
    if merge_head_found:
        return ConflictScanTarget.MERGE
    if rebase_in_progress:
        return ConflictScanTarget.REBASE
    if conflicted_files_in_index:
        return ConflictScanTarget.WORKING_DIRECTORY
    return ConflictScanTarget.NONE


def _working_directory_binary_paths(scanner: ConflictScanner) -> frozenset[str]:
    # HEAD may not exist yet (unborn branch); that only means nothing is binary.
    try:
        return frozenset(scanner.binary_paths(ConflictScanTarget.WORKING_DIRECTORY.value))
    except Exception as e:
        logger.info("binary_scan_without_head", error=str(e))
        return frozenset()


def resolve_conflict_details(
    scanner: ConflictScanner,
    target: ConflictScanTarget,
) -> Recovered[ConflictFilesDetails]:
    """
    Collect marker counts and binary paths for `target`.

    Never raises: a failing scan is logged and reported through
    `Recovered.error` with empty details as the value.
    """
    if target is ConflictScanTarget.NONE:
        return Recovered(ConflictFilesDetails.empty())

    try:
        counts = scanner.conflict_marker_counts()
        if target is ConflictScanTarget.WORKING_DIRECTORY:
            binary = _working_directory_binary_paths(scanner)
        else:
            binary = frozenset(scanner.binary_paths(target.value))
    except Exception as e:
        logger.warning("conflict_scan_failed", target=target.name, error=str(e))
        return Recovered(ConflictFilesDetails.empty(), error=e)

    return Recovered(ConflictFilesDetails(conflict_counts_by_path=dict(counts), binary_file_paths=binary))
