from __future__ import annotations

import pytest

from worktree_snapshot.core.classification import (
    classify,
    is_added_then_deleted,
    map_status,
    map_submodule_status,
)
from worktree_snapshot.core.errors import MissingOldPathError, StatusParseError, UnknownStatusCodeError
from worktree_snapshot.core.file_status import (
    AppFileStatusKind,
    ConflictsWithMarkers,
    CopiedOrRenamedFileStatus,
    GitStatusEntry,
    ManualConflict,
    ManualConflictEntry,
    OrdinaryEntry,
    PlainFileStatus,
    RenamedOrCopiedEntry,
    SubmoduleStatus,
    TextConflictEntry,
    UnmergedEntrySummary,
    UntrackedEntry,
    UntrackedFileStatus,
)
from worktree_snapshot.core.models import ConflictFilesDetails, FileEntry


@pytest.mark.parametrize(
    "code, kind",
    [
        (".M", AppFileStatusKind.MODIFIED),
        ("M.", AppFileStatusKind.MODIFIED),
        ("MM", AppFileStatusKind.MODIFIED),
        (".T", AppFileStatusKind.MODIFIED),
        ("A.", AppFileStatusKind.NEW),
        ("AM", AppFileStatusKind.NEW),
        (".D", AppFileStatusKind.DELETED),
        ("D.", AppFileStatusKind.DELETED),
        ("MD", AppFileStatusKind.MODIFIED),
    ],
)
def test_ordinary_codes(code, kind):
    entry = map_status(code, "N...")
    assert isinstance(entry, OrdinaryEntry)
    assert entry.type is kind
    assert entry.submodule_status is None


def test_index_and_worktree_letters_are_kept():
    entry = map_status("AD", "N...")
    assert entry.index is GitStatusEntry.ADDED
    assert entry.working_tree is GitStatusEntry.DELETED
    assert is_added_then_deleted(entry)
    assert not is_added_then_deleted(map_status("A.", "N..."))


@pytest.mark.parametrize("code, kind", [("R.", AppFileStatusKind.RENAMED), ("RM", AppFileStatusKind.RENAMED), ("C.", AppFileStatusKind.COPIED)])
def test_rename_and_copy_codes(code, kind):
    entry = map_status(code, "N...")
    assert isinstance(entry, RenamedOrCopiedEntry)
    assert entry.kind is kind


def test_untracked():
    assert isinstance(map_status("??", "????"), UntrackedEntry)


@pytest.mark.parametrize(
    "code, action, text",
    [
        ("DD", UnmergedEntrySummary.BOTH_DELETED, False),
        ("AU", UnmergedEntrySummary.ADDED_BY_US, False),
        ("UD", UnmergedEntrySummary.DELETED_BY_THEM, False),
        ("UA", UnmergedEntrySummary.ADDED_BY_THEM, False),
        ("DU", UnmergedEntrySummary.DELETED_BY_US, False),
        ("AA", UnmergedEntrySummary.BOTH_ADDED, True),
        ("UU", UnmergedEntrySummary.BOTH_MODIFIED, True),
    ],
)
def test_conflict_codes(code, action, text):
    entry = map_status(code, "N...")
    assert isinstance(entry, TextConflictEntry if text else ManualConflictEntry)
    assert entry.details.action is action


@pytest.mark.parametrize("code", ["XY", "U.", "!!", "", "M"])
def test_unknown_codes_are_fatal(code):
    with pytest.raises(UnknownStatusCodeError):
        map_status(code, "N...")
    assert issubclass(UnknownStatusCodeError, StatusParseError)


def test_submodule_flags_from_sub_field():
    status = map_submodule_status("SCMU", ".M")
    assert status == SubmoduleStatus(commit_changed=True, modified_changes=True, untracked_changes=True)

    status = map_submodule_status("S.M.", ".M")
    assert status == SubmoduleStatus(commit_changed=False, modified_changes=True, untracked_changes=False)


def test_submodule_detected_from_gitlink_mode():
    status = map_submodule_status("N...", ".M", ("160000", "160000", "160000"))
    assert status == SubmoduleStatus(commit_changed=True, modified_changes=False, untracked_changes=False)


def test_regular_file_has_no_submodule_status():
    assert map_submodule_status("N...", ".M", ("100644", "100644", "100644")) is None


@pytest.mark.parametrize("code", ["A.", ".D", "D."])
def test_added_or_deleted_submodule_is_plain(code):
    entry = map_status(code, "SC..", ("000000", "160000", "160000"))
    assert isinstance(entry, OrdinaryEntry)
    assert entry.submodule_status is None


def test_classify_plain_and_untracked():
    assert classify(FileEntry("a.txt", ".M", "N...")) == PlainFileStatus(kind=AppFileStatusKind.MODIFIED)
    assert classify(FileEntry("n.txt", "??", "????")) == UntrackedFileStatus()


def test_classify_rename_requires_old_path():
    status = classify(FileEntry("new.txt", "R.", "N...", old_path="old.txt"))
    assert status == CopiedOrRenamedFileStatus(kind=AppFileStatusKind.RENAMED, old_path="old.txt")

    with pytest.raises(MissingOldPathError):
        classify(FileEntry("new.txt", "R.", "N..."))


def test_copied_or_renamed_status_rejects_empty_old_path():
    with pytest.raises(ValueError):
        CopiedOrRenamedFileStatus(kind=AppFileStatusKind.RENAMED, old_path="")
    with pytest.raises(ValueError):
        CopiedOrRenamedFileStatus(kind=AppFileStatusKind.MODIFIED, old_path="x")


def test_text_conflict_uses_marker_count():
    details = ConflictFilesDetails(conflict_counts_by_path={"c.txt": 2}, binary_file_paths=frozenset())
    status = classify(FileEntry("c.txt", "UU", "N..."), details)

    assert isinstance(status, ConflictsWithMarkers)
    assert status.conflict_marker_count == 2
    assert status.kind is AppFileStatusKind.CONFLICTED


def test_text_conflict_without_markers_counts_zero():
    status = classify(FileEntry("c.txt", "AA", "N..."), ConflictFilesDetails.empty())
    assert isinstance(status, ConflictsWithMarkers)
    assert status.conflict_marker_count == 0


def test_binary_text_conflict_is_manual():
    details = ConflictFilesDetails(conflict_counts_by_path={}, binary_file_paths=frozenset({"img.png"}))
    status = classify(FileEntry("img.png", "UU", "N..."), details)
    assert isinstance(status, ManualConflict)


def test_delete_conflict_is_manual():
    status = classify(FileEntry("gone.txt", "UD", "N..."))
    assert isinstance(status, ManualConflict)
    assert status.entry.details.action is UnmergedEntrySummary.DELETED_BY_THEM
