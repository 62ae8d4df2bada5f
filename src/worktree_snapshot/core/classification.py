from __future__ import annotations

import re

from .errors import MissingOldPathError, UnknownStatusCodeError
from .file_status import (
    AppFileStatus,
    AppFileStatusKind,
    ConflictDetails,
    ConflictedFileStatus,
    ConflictsWithMarkers,
    CopiedOrRenamedFileStatus,
    GitStatusEntry as E,
    ManualConflict,
    ManualConflictEntry,
    OrdinaryEntry,
    PlainFileStatus,
    RenamedOrCopiedEntry,
    StatusEntry,
    SubmoduleStatus,
    TextConflictEntry,
    UnmergedEntry,
    UnmergedEntrySummary as S,
    UntrackedEntry,
    UntrackedFileStatus,
)
from .models import ConflictFilesDetails, FileEntry
from .parsers import UNTRACKED_STATUS_CODE

SUBMODULE_MODE = "160000"

CONFLICT_STATUS_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

_ORDINARY_CODE_RE = re.compile(r"^[.MTADRC]{2}$")

_CONFLICTS: dict[str, ConflictDetails] = {
    "DD": ConflictDetails(S.BOTH_DELETED, E.DELETED, E.DELETED),
    "AU": ConflictDetails(S.ADDED_BY_US, E.ADDED, E.UPDATED_BUT_UNMERGED),
    "UD": ConflictDetails(S.DELETED_BY_THEM, E.UPDATED_BUT_UNMERGED, E.DELETED),
    "UA": ConflictDetails(S.ADDED_BY_THEM, E.UPDATED_BUT_UNMERGED, E.ADDED),
    "DU": ConflictDetails(S.DELETED_BY_US, E.DELETED, E.UPDATED_BUT_UNMERGED),
    "AA": ConflictDetails(S.BOTH_ADDED, E.ADDED, E.ADDED),
    "UU": ConflictDetails(S.BOTH_MODIFIED, E.UPDATED_BUT_UNMERGED, E.UPDATED_BUT_UNMERGED),
}

_TEXT_CONFLICT_ACTIONS = frozenset({S.BOTH_ADDED, S.BOTH_MODIFIED})

K = AppFileStatusKind

# (kind, index, working tree) for the codes git emits most often.
_ORDINARY: dict[str, tuple[AppFileStatusKind, E, E]] = {
    ".M": (K.MODIFIED, E.UNCHANGED, E.MODIFIED),
    "M.": (K.MODIFIED, E.MODIFIED, E.UNCHANGED),
    ".A": (K.NEW, E.UNCHANGED, E.ADDED),
    "A.": (K.NEW, E.ADDED, E.UNCHANGED),
    ".D": (K.DELETED, E.UNCHANGED, E.DELETED),
    "D.": (K.DELETED, E.DELETED, E.UNCHANGED),
    ".R": (K.RENAMED, E.UNCHANGED, E.RENAMED),
    "R.": (K.RENAMED, E.RENAMED, E.UNCHANGED),
    ".C": (K.COPIED, E.UNCHANGED, E.COPIED),
    "C.": (K.COPIED, E.COPIED, E.UNCHANGED),
    "AD": (K.NEW, E.ADDED, E.DELETED),
    "AM": (K.NEW, E.ADDED, E.MODIFIED),
    "RM": (K.RENAMED, E.RENAMED, E.MODIFIED),
    "RD": (K.RENAMED, E.RENAMED, E.DELETED),
}


def _letter(ch: str) -> E:
    # type changes are reported as modifications
    return E.MODIFIED if ch == "T" else E(ch)


def map_submodule_status(
    submodule_status_code: str,
    status_code: str = "",
    modes: tuple[str, ...] = (),
) -> SubmoduleStatus | None:
    """
    Derive the submodule flags of an entry.

    A path is a submodule if the sub field starts with `S` or one of its modes
    is the gitlink mode. A submodule being added or removed is reported as a
    plain add/delete, so no submodule status is returned for `A`/`D` letters.
    """
    coded = submodule_status_code.startswith("S")
    if not coded and SUBMODULE_MODE not in modes:
        return None
    if "A" in status_code or "D" in status_code:
        return None

    if coded:
        return SubmoduleStatus(
            commit_changed=submodule_status_code[1:2] == "C",
            modified_changes=submodule_status_code[2:3] == "M",
            untracked_changes=submodule_status_code[3:4] == "U",
        )
    return SubmoduleStatus(commit_changed="M" in status_code, modified_changes=False, untracked_changes=False)


def map_status(
    status_code: str,
    submodule_status_code: str = "",
    modes: tuple[str, ...] = (),
) -> StatusEntry:
    """Map a raw two-letter code to its entry kind. Unknown codes are fatal."""
    submodule_status = map_submodule_status(submodule_status_code, status_code, modes)

    if status_code == UNTRACKED_STATUS_CODE:
        return UntrackedEntry(submodule_status=submodule_status)

    conflict = _CONFLICTS.get(status_code)
    if conflict is not None:
        if conflict.action in _TEXT_CONFLICT_ACTIONS:
            return TextConflictEntry(details=conflict, submodule_status=submodule_status)
        return ManualConflictEntry(details=conflict, submodule_status=submodule_status)

    known = _ORDINARY.get(status_code)
    if known is not None:
        kind, index, working_tree = known
    elif _ORDINARY_CODE_RE.match(status_code):
        index, working_tree = _letter(status_code[0]), _letter(status_code[1])
        if "R" in status_code:
            kind = K.RENAMED
        elif "C" in status_code:
            kind = K.COPIED
        elif index is E.ADDED:
            kind = K.NEW
        else:
            kind = K.MODIFIED
    else:
        raise UnknownStatusCodeError(f"Unknown file status code: {status_code!r}")

    if kind in (K.RENAMED, K.COPIED):
        return RenamedOrCopiedEntry(kind=kind, index=index, working_tree=working_tree, submodule_status=submodule_status)
    return OrdinaryEntry(type=kind, index=index, working_tree=working_tree, submodule_status=submodule_status)


def is_added_then_deleted(entry: StatusEntry) -> bool:
    """Added to the index, then removed from disk: a net no-op."""
    return (
        isinstance(entry, OrdinaryEntry)
        and entry.index is E.ADDED
        and entry.working_tree is E.DELETED
    )


def parse_conflicted_state(
    entry: UnmergedEntry,
    path: str,
    conflict_details: ConflictFilesDetails,
) -> ConflictedFileStatus:
    if isinstance(entry, TextConflictEntry) and path not in conflict_details.binary_file_paths:
        return ConflictsWithMarkers(
            entry=entry,
            conflict_marker_count=conflict_details.conflict_counts_by_path.get(path, 0),
            submodule_status=entry.submodule_status,
        )
    return ManualConflict(entry=entry, submodule_status=entry.submodule_status)


def convert_to_app_status(
    path: str,
    entry: StatusEntry,
    conflict_details: ConflictFilesDetails,
    old_path: str | None,
) -> AppFileStatus:
    if isinstance(entry, OrdinaryEntry):
        return PlainFileStatus(kind=entry.type, submodule_status=entry.submodule_status)
    if isinstance(entry, RenamedOrCopiedEntry):
        if not old_path:
            raise MissingOldPathError(f"{entry.kind.value} entry without an original path: {path}")
        return CopiedOrRenamedFileStatus(kind=entry.kind, old_path=old_path, submodule_status=entry.submodule_status)
    if isinstance(entry, UntrackedEntry):
        return UntrackedFileStatus(submodule_status=entry.submodule_status)
    return parse_conflicted_state(entry, path, conflict_details)


def classify(entry: FileEntry, conflict_details: ConflictFilesDetails | None = None) -> AppFileStatus:
    """Classify one parsed status record."""
    status = map_status(entry.status_code, entry.submodule_status_code, entry.modes)
    return convert_to_app_status(
        entry.path,
        status,
        conflict_details or ConflictFilesDetails.empty(),
        entry.old_path,
    )


def is_conflict_code(status_code: str) -> bool:
    return status_code in CONFLICT_STATUS_CODES
