"""File status model: the closed set of statuses a working-directory path can have."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Union


class GitStatusEntry(str, Enum):
    MODIFIED = "M"
    ADDED = "A"
    DELETED = "D"
    RENAMED = "R"
    COPIED = "C"
    UNCHANGED = "."
    UNTRACKED = "?"
    IGNORED = "!"
    UPDATED_BUT_UNMERGED = "U"


class AppFileStatusKind(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    COPIED = "copied"
    RENAMED = "renamed"
    CONFLICTED = "conflicted"
    UNTRACKED = "untracked"


class UnmergedEntrySummary(str, Enum):
    ADDED_BY_US = "added-by-us"
    DELETED_BY_US = "deleted-by-us"
    ADDED_BY_THEM = "added-by-them"
    DELETED_BY_THEM = "deleted-by-them"
    BOTH_DELETED = "both-deleted"
    BOTH_ADDED = "both-added"
    BOTH_MODIFIED = "both-modified"


@dataclass(frozen=True)
class SubmoduleStatus:
    commit_changed: bool
    modified_changes: bool
    untracked_changes: bool


# --- raw entry kinds produced by the classifier -----------------------------


@dataclass(frozen=True)
class OrdinaryEntry:
    type: AppFileStatusKind
    index: GitStatusEntry | None
    working_tree: GitStatusEntry | None
    submodule_status: SubmoduleStatus | None = None


@dataclass(frozen=True)
class RenamedOrCopiedEntry:
    kind: AppFileStatusKind
    index: GitStatusEntry | None
    working_tree: GitStatusEntry | None
    submodule_status: SubmoduleStatus | None = None


@dataclass(frozen=True)
class UntrackedEntry:
    submodule_status: SubmoduleStatus | None = None


@dataclass(frozen=True)
class ConflictDetails:
    action: UnmergedEntrySummary
    us: GitStatusEntry
    them: GitStatusEntry


@dataclass(frozen=True)
class TextConflictEntry:
    """Both sides added or modified the file: markers can be written into it."""
    details: ConflictDetails
    submodule_status: SubmoduleStatus | None = None


@dataclass(frozen=True)
class ManualConflictEntry:
    """A conflict that has to be resolved by picking a side."""
    details: ConflictDetails
    submodule_status: SubmoduleStatus | None = None


UnmergedEntry = Union[TextConflictEntry, ManualConflictEntry]
StatusEntry = Union[OrdinaryEntry, RenamedOrCopiedEntry, UntrackedEntry, TextConflictEntry, ManualConflictEntry]


# --- app-level statuses ------------------------------------------------------


@dataclass(frozen=True)
class PlainFileStatus:
    kind: AppFileStatusKind
    submodule_status: SubmoduleStatus | None = None


@dataclass(frozen=True)
class UntrackedFileStatus:
    submodule_status: SubmoduleStatus | None = None
    kind: AppFileStatusKind = field(default=AppFileStatusKind.UNTRACKED, init=False)


@dataclass(frozen=True)
class CopiedOrRenamedFileStatus:
    kind: AppFileStatusKind
    old_path: str
    submodule_status: SubmoduleStatus | None = None

    def __post_init__(self) -> None:
        if self.kind not in (AppFileStatusKind.COPIED, AppFileStatusKind.RENAMED):
            raise ValueError(f"not a copy/rename kind: {self.kind}")
        if not self.old_path:
            raise ValueError("copied/renamed status requires a non-empty old_path")


@dataclass(frozen=True)
class ConflictsWithMarkers:
    entry: TextConflictEntry
    conflict_marker_count: int
    submodule_status: SubmoduleStatus | None = None
    kind: AppFileStatusKind = field(default=AppFileStatusKind.CONFLICTED, init=False)


@dataclass(frozen=True)
class ManualConflict:
    entry: UnmergedEntry
    submodule_status: SubmoduleStatus | None = None
    kind: AppFileStatusKind = field(default=AppFileStatusKind.CONFLICTED, init=False)


ConflictedFileStatus = Union[ConflictsWithMarkers, ManualConflict]
AppFileStatus = Union[PlainFileStatus, UntrackedFileStatus, CopiedOrRenamedFileStatus, ConflictsWithMarkers, ManualConflict]


def is_conflicted_file_status(status: AppFileStatus) -> bool:
    return status.kind is AppFileStatusKind.CONFLICTED


def is_conflict_with_markers(status: AppFileStatus) -> bool:
    return isinstance(status, ConflictsWithMarkers)


def is_manual_conflict(status: AppFileStatus) -> bool:
    return isinstance(status, ManualConflict)


# --- selection ---------------------------------------------------------------


class DiffSelectionType(str, Enum):
    ALL = "all"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class DiffSelection:
    """
    Which lines of a file's diff are included in the next commit.

    Stored as a default (all / none) plus the set of lines whose state
    diverges from it. `selectable_lines`, once known from the diff, bounds
    what can be toggled; None means every line is selectable.
    """
    default_selection_type: DiffSelectionType = DiffSelectionType.ALL
    divergent_lines: frozenset[int] = frozenset()
    selectable_lines: frozenset[int] | None = None

    def is_selectable(self, line: int) -> bool:
        return self.selectable_lines is None or line in self.selectable_lines

    def is_selected(self, line: int) -> bool:
        if not self.is_selectable(line):
            return False
        default_on = self.default_selection_type is DiffSelectionType.ALL
        return default_on != (line in self.divergent_lines)

    def get_selection_type(self) -> DiffSelectionType:
        if not self.divergent_lines:
            return self.default_selection_type
        if self.selectable_lines is not None and self.selectable_lines <= self.divergent_lines:
            if self.default_selection_type is DiffSelectionType.ALL:
                return DiffSelectionType.NONE
            return DiffSelectionType.ALL
        return DiffSelectionType.PARTIAL

    def with_select_all(self) -> DiffSelection:
        return replace(self, default_selection_type=DiffSelectionType.ALL, divergent_lines=frozenset())

    def with_select_none(self) -> DiffSelection:
        return replace(self, default_selection_type=DiffSelectionType.NONE, divergent_lines=frozenset())

    def with_line_selection(self, line: int, selected: bool) -> DiffSelection:
        return self.with_range_selection(line, 1, selected)

    def with_range_selection(self, start: int, count: int, selected: bool) -> DiffSelection:
        default_on = self.default_selection_type is DiffSelectionType.ALL
        lines = set(self.divergent_lines)
        for line in range(start, start + count):
            if not self.is_selectable(line):
                continue
            if selected == default_on:
                lines.discard(line)
            else:
                lines.add(line)
        return replace(self, divergent_lines=frozenset(lines))

    def with_selectable_lines(self, lines: Iterable[int]) -> DiffSelection:
        selectable = frozenset(lines)
        return replace(self, selectable_lines=selectable, divergent_lines=self.divergent_lines & selectable)


@dataclass(frozen=True)
class WorkingDirectoryFileChange:
    path: str
    status: AppFileStatus
    selection: DiffSelection = DiffSelection()

    @property
    def id(self) -> str:
        return self.path

    def with_include_all(self, include: bool) -> WorkingDirectoryFileChange:
        selection = self.selection.with_select_all() if include else self.selection.with_select_none()
        return self.with_selection(selection)

    def with_selection(self, selection: DiffSelection) -> WorkingDirectoryFileChange:
        return replace(self, selection=selection)


def initial_selection_type(status: AppFileStatus) -> DiffSelectionType:
    """Submodules with only dirty contents are left out of the next commit by default."""
    submodule = status.submodule_status
    if status.kind is AppFileStatusKind.MODIFIED and submodule is not None and not submodule.commit_changed:
        return DiffSelectionType.NONE
    return DiffSelectionType.ALL


def get_include_all_state(files: Iterable[WorkingDirectoryFileChange]) -> bool | None:
    files = list(files)
    if not files:
        return True
    types = {f.selection.get_selection_type() for f in files}
    if types == {DiffSelectionType.ALL}:
        return True
    if types == {DiffSelectionType.NONE}:
        return False
    return None


@dataclass(frozen=True)
class WorkingDirectoryStatus:
    files: tuple[WorkingDirectoryFileChange, ...] = ()
    include_all: bool | None = True

    @classmethod
    def from_files(cls, files: Iterable[WorkingDirectoryFileChange]) -> WorkingDirectoryStatus:
        files = tuple(files)
        return cls(files=files, include_all=get_include_all_state(files))

    def with_include_all_files(self, include_all: bool) -> WorkingDirectoryStatus:
        return WorkingDirectoryStatus(
            files=tuple(f.with_include_all(include_all) for f in self.files),
            include_all=include_all,
        )

    def find_file_index_by_id(self, file_id: str) -> int:
        for i, f in enumerate(self.files):
            if f.id == file_id:
                return i
        return -1

    def find_file_with_id(self, file_id: str) -> WorkingDirectoryFileChange | None:
        i = self.find_file_index_by_id(file_id)
        return self.files[i] if i >= 0 else None
