"""
In-progress operation state: merge, rebase (including squash) and cherry-pick.

Everything here reads markers from the repository metadata directory and
treats unreadable or half-written state as "not available" instead of
raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Union

import structlog

from .collaborators import CommitRangeWalker, MarkerStore
from .errors import GitPolicyError, WorktreeSnapshotError
from .file_status import AppFileStatusKind
from .git_errors import GitErrorKind, describe_git_error, detect_git_error
from .git_runner import require_ok
from .models import CommitSummary, GitRunResult
from .parsers import parse_sequencer_todo

if TYPE_CHECKING:
    from .repository import GitRepository
    from .snapshot import StatusResult

logger = structlog.get_logger()

MERGE_HEAD = "MERGE_HEAD"
SQUASH_MSG = "SQUASH_MSG"
CHERRY_PICK_HEAD = "CHERRY_PICK_HEAD"
REBASE_HEAD = "REBASE_HEAD"

REBASE_MERGE_DIR = "rebase-merge"
REBASE_ORIG_HEAD = f"{REBASE_MERGE_DIR}/orig-head"
REBASE_HEAD_NAME = f"{REBASE_MERGE_DIR}/head-name"
REBASE_ONTO = f"{REBASE_MERGE_DIR}/onto"
REBASE_MSGNUM = f"{REBASE_MERGE_DIR}/msgnum"
REBASE_END = f"{REBASE_MERGE_DIR}/end"
REBASE_TODO = f"{REBASE_MERGE_DIR}/git-rebase-todo"
REBASE_DONE = f"{REBASE_MERGE_DIR}/done"

SEQUENCER_HEAD = "sequencer/head"
SEQUENCER_ABORT_SAFETY = "sequencer/abort-safety"
SEQUENCER_TODO = "sequencer/todo"

_BRANCH_REF_PREFIX = "refs/heads/"
_SQUASH_COMMANDS = frozenset({"squash", "s", "fixup", "f"})

_REBASING_RE = re.compile(r"Rebasing \((\d+)/(\d+)\)")
_CHERRY_PICKED_RE = re.compile(r"^\[(.*\s.*)\]")
_UP_TO_DATE_RE = re.compile(r"^Current branch [^ ]+ is up to date\.?$", re.MULTILINE)


class ActiveOperation(str, Enum):
    MERGE = "merge"
    REBASE = "rebase"
    CHERRY_PICK = "cherry-pick"
    NONE = "none"


class MultiCommitOperationKind(str, Enum):
    REBASE = "rebase"
    CHERRY_PICK = "cherry-pick"
    SQUASH = "squash"


@dataclass(frozen=True)
class RebaseInternalState:
    # The branch containing commits that should be rebased
    target_branch: str
    # Where the rebased commits are replayed onto
    base_branch_tip: str
    # Tip of the target branch when the rebase started
    original_branch_tip: str


@dataclass(frozen=True)
class MultiCommitOperationProgress:
    kind: MultiCommitOperationKind
    current_commit_summary: str
    position: int
    total_commit_count: int
    value: int


@dataclass(frozen=True)
class RebaseSnapshot:
    progress: MultiCommitOperationProgress
    commits: tuple[CommitSummary, ...]


@dataclass(frozen=True)
class CherryPickSnapshot:
    progress: MultiCommitOperationProgress
    remaining_commits: tuple[CommitSummary, ...]
    commits: tuple[CommitSummary, ...]
    target_branch_undo_sha: str
    cherry_picked_count: int


# --- markers -----------------------------------------------------------------


def _marker_exists(markers: MarkerStore, name: str) -> bool:
    try:
        return markers.exists(name)
    except OSError as e:
        logger.debug("marker_check_failed", marker=name, error=str(e))
        return False


def read_marker(markers: MarkerStore, name: str) -> str | None:
    """Stripped marker contents; None when missing, unreadable or empty."""
    try:
        raw = markers.read(name)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("marker_read_failed", marker=name, error=str(e))
        return None
    if raw is None:
        return None
    return raw.strip() or None


def merge_head_found(markers: MarkerStore) -> bool:
    return _marker_exists(markers, MERGE_HEAD)


def squash_msg_found(markers: MarkerStore) -> bool:
    return _marker_exists(markers, SQUASH_MSG)


def cherry_pick_head_found(markers: MarkerStore) -> bool:
    return _marker_exists(markers, CHERRY_PICK_HEAD)


def rebase_head_found(markers: MarkerStore) -> bool:
    return _marker_exists(markers, REBASE_HEAD)


def read_rebase_head(markers: MarkerStore) -> str | None:
    sha = read_marker(markers, REBASE_HEAD)
    if sha is None:
        logger.warning("rebase_head_unreadable")
    return sha


def get_rebase_internal_state(markers: MarkerStore) -> RebaseInternalState | None:
    """None unless a rebase is in progress and all three tips are readable."""
    if not _marker_exists(markers, REBASE_MERGE_DIR):
        return None

    original_branch_tip = read_marker(markers, REBASE_ORIG_HEAD)
    target_branch = read_marker(markers, REBASE_HEAD_NAME)
    base_branch_tip = read_marker(markers, REBASE_ONTO)
    if original_branch_tip is None or target_branch is None or base_branch_tip is None:
        logger.info("rebase_state_incomplete")
        return None

    if target_branch.startswith(_BRANCH_REF_PREFIX):
        target_branch = target_branch[len(_BRANCH_REF_PREFIX):]

    return RebaseInternalState(
        target_branch=target_branch,
        base_branch_tip=base_branch_tip,
        original_branch_tip=original_branch_tip,
    )


def detect_active_operation(markers: MarkerStore) -> ActiveOperation:
    """Merge wins over rebase, rebase over cherry-pick, when several markers are present."""
    if merge_head_found(markers):
        return ActiveOperation.MERGE
    if get_rebase_internal_state(markers) is not None:
        return ActiveOperation.REBASE
    if cherry_pick_head_found(markers):
        return ActiveOperation.CHERRY_PICK
    return ActiveOperation.NONE


# --- progress ----------------------------------------------------------------


def progress_value(position: int, total: int) -> int:
    """Percentage in 0..100."""
    if total <= 0:
        return 0
    return round(max(0.0, min(position / total, 1.0)) * 100)


def _commit_summary_at(commits: tuple[CommitSummary, ...] | list[CommitSummary], index: int) -> str:
    return commits[index].summary if 0 <= index < len(commits) else ""


def _parse_counter(markers: MarkerStore, name: str) -> int | None:
    raw = read_marker(markers, name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _is_squash_rebase(markers: MarkerStore) -> bool:
    for name in (REBASE_DONE, REBASE_TODO):
        text = read_marker(markers, name) or ""
        for line in text.splitlines():
            words = line.split(maxsplit=1)
            if words and words[0] in _SQUASH_COMMANDS:
                return True
    return False


def get_rebase_snapshot(markers: MarkerStore, walker: CommitRangeWalker) -> RebaseSnapshot | None:
    """
    Progress of the rebase in `rebase-merge/`.

    `msgnum` is the 1-based position of the commit being applied and `end`
    the total; the commit list between `onto` and `orig-head` supplies the
    summary. Missing, partial or inconsistent state returns None.
    """
    position = _parse_counter(markers, REBASE_MSGNUM)
    total = _parse_counter(markers, REBASE_END)
    original_branch_tip = read_marker(markers, REBASE_ORIG_HEAD)
    base_branch_tip = read_marker(markers, REBASE_ONTO)

    if position is None or total is None or original_branch_tip is None or base_branch_tip is None:
        return None
    if position <= 0 or total <= 0:
        return None

    try:
        commits = tuple(walker.commits_between(base_branch_tip, original_branch_tip))
    except Exception as e:
        logger.warning("rebase_commit_walk_failed", error=str(e))
        return None
    if not commits:
        return None

    kind = MultiCommitOperationKind.SQUASH if _is_squash_rebase(markers) else MultiCommitOperationKind.REBASE
    progress = MultiCommitOperationProgress(
        kind=kind,
        current_commit_summary=_commit_summary_at(commits, position - 1),
        position=position,
        total_commit_count=total,
        value=progress_value(position, total),
    )
    return RebaseSnapshot(progress=progress, commits=commits)


def get_cherry_pick_snapshot(markers: MarkerStore, walker: CommitRangeWalker) -> CherryPickSnapshot | None:
    """
    Progress of a multi-commit cherry-pick from `sequencer/`.

    Already picked commits are those between `sequencer/head` (the branch
    tip before the cherry-pick) and `sequencer/abort-safety` (the tip after
    the last successful pick).
    """
    if not cherry_pick_head_found(markers):
        return None

    abort_safety_sha = read_marker(markers, SEQUENCER_ABORT_SAFETY)
    head_sha = read_marker(markers, SEQUENCER_HEAD)
    todo = read_marker(markers, SEQUENCER_TODO)
    if abort_safety_sha is None or head_sha is None or todo is None:
        logger.info("cherry_pick_sequencer_incomplete")
        return None

    remaining = tuple(parse_sequencer_todo(todo))

    try:
        picked = tuple(walker.commits_between(head_sha, abort_safety_sha))
    except Exception as e:
        logger.warning("cherry_pick_commit_walk_failed", error=str(e))
        return None

    commits = picked + remaining
    if not commits:
        return None

    position = len(picked) + 1
    progress = MultiCommitOperationProgress(
        kind=MultiCommitOperationKind.CHERRY_PICK,
        current_commit_summary=remaining[0].summary if remaining else "",
        position=position,
        total_commit_count=len(commits),
        value=progress_value(position, len(commits)),
    )
    return CherryPickSnapshot(
        progress=progress,
        remaining_commits=remaining,
        commits=commits,
        target_branch_undo_sha=head_sha,
        cherry_picked_count=len(picked),
    )


class RebaseProgressParser:
    """Turns `Rebasing (n/m)` output lines into progress."""

    def __init__(self, commits: list[CommitSummary] | tuple[CommitSummary, ...]) -> None:
        self._commits = tuple(commits)

    def parse(self, line: str) -> MultiCommitOperationProgress | None:
        m = _REBASING_RE.search(line)
        if not m:
            return None
        position, total = int(m.group(1)), int(m.group(2))
        return MultiCommitOperationProgress(
            kind=MultiCommitOperationKind.REBASE,
            current_commit_summary=_commit_summary_at(self._commits, position - 1),
            position=position,
            total_commit_count=total,
            value=progress_value(position, total),
        )


class CherryPickProgressParser:
    """Counts `[branch sha] summary` lines, one per commit applied."""

    def __init__(self, commits: list[CommitSummary] | tuple[CommitSummary, ...], count: int = 0) -> None:
        self._commits = tuple(commits)
        self._count = count

    def parse(self, line: str) -> MultiCommitOperationProgress | None:
        if not _CHERRY_PICKED_RE.match(line):
            return None
        self._count += 1
        total = len(self._commits)
        return MultiCommitOperationProgress(
            kind=MultiCommitOperationKind.CHERRY_PICK,
            current_commit_summary=_commit_summary_at(self._commits, self._count - 1),
            position=self._count,
            total_commit_count=total,
            value=progress_value(self._count, total),
        )


# --- results -----------------------------------------------------------------


class MultiCommitOperationResult(str, Enum):
    COMPLETED_WITHOUT_ERROR = "completed-without-error"
    # Nothing to do: the branch already contained the commits.
    ALREADY_UP_TO_DATE = "already-up-to-date"
    # Conflicts need resolving before the operation can continue.
    CONFLICTS_ENCOUNTERED = "conflicts-encountered"
    # Tracked files were left unstaged, so git refused to continue.
    OUTSTANDING_FILES_NOT_STAGED = "outstanding-files-not-staged"
    # The repository state could not be checked; nothing was attempted.
    ABORTED = "aborted"
    ERROR = "error"


_CONFLICT_ERRORS = frozenset(
    {
        GitErrorKind.REBASE_CONFLICTS,
        GitErrorKind.MERGE_CONFLICTS,
        GitErrorKind.CONFLICT_MODIFY_DELETED_IN_BRANCH,
    }
)


def _parse_multi_commit_result(res: GitRunResult, operation: str) -> MultiCommitOperationResult:
    if res.exit_code == 0 and not res.timed_out:
        if _UP_TO_DATE_RE.search(res.stdout.strip()):
            return MultiCommitOperationResult.ALREADY_UP_TO_DATE
        return MultiCommitOperationResult.COMPLETED_WITHOUT_ERROR

    error = detect_git_error(res.combined_output)
    if error in _CONFLICT_ERRORS:
        return MultiCommitOperationResult.CONFLICTS_ENCOUNTERED
    if error is GitErrorKind.UNRESOLVED_CONFLICTS:
        return MultiCommitOperationResult.OUTSTANDING_FILES_NOT_STAGED

    logger.error(
        "multi_commit_operation_failed",
        operation=operation,
        exit_code=res.exit_code,
        timed_out=res.timed_out,
        git_error=error.value if error else None,
        description=describe_git_error(error) if error else None,
        stderr=res.stderr.strip(),
    )
    return MultiCommitOperationResult.ERROR


def parse_rebase_result(res: GitRunResult) -> MultiCommitOperationResult:
    return _parse_multi_commit_result(res, "rebase")


def parse_cherry_pick_result(res: GitRunResult) -> MultiCommitOperationResult:
    return _parse_multi_commit_result(res, "cherry-pick")


# --- state machine -----------------------------------------------------------


@dataclass(frozen=True)
class NotStarted:
    pass


@dataclass(frozen=True)
class InProgress:
    position: int
    total: int


@dataclass(frozen=True)
class Finished:
    result: MultiCommitOperationResult


OperationState = Union[NotStarted, InProgress, Finished]


class MultiCommitOperation:
    """
    NotStarted -> InProgress(position, total) -> Finished(result).

    Progress after a terminal result is ignored; a finished operation stays
    finished.
    """

    def __init__(self, kind: MultiCommitOperationKind) -> None:
        self.kind = kind
        self.state: OperationState = NotStarted()

    @property
    def is_finished(self) -> bool:
        return isinstance(self.state, Finished)

    def start(self, total: int) -> OperationState:
        if isinstance(self.state, NotStarted):
            self.state = InProgress(position=0, total=total)
        return self.state

    def advance(self, progress: MultiCommitOperationProgress) -> OperationState:
        if self.is_finished:
            logger.warning("progress_after_finish", kind=self.kind.value, position=progress.position)
            return self.state
        self.state = InProgress(position=progress.position, total=progress.total_commit_count)
        return self.state

    def finish(self, result: MultiCommitOperationResult) -> OperationState:
        if self.is_finished:
            logger.warning("finish_after_finish", kind=self.kind.value, result=result.value)
            return self.state
        self.state = Finished(result=result)
        return self.state


# --- running operations ------------------------------------------------------

_NO_EDITOR_ENV = {"GIT_EDITOR": ":"}

ProgressCallback = Callable[[MultiCommitOperationProgress], None]


def _has_tracked_changes(status: StatusResult) -> bool:
    return any(
        f.status.kind is not AppFileStatusKind.UNTRACKED for f in status.working_directory.files
    )


def _check_ref_arg(ref: str) -> None:
    if not ref or ref.startswith("-"):
        raise GitPolicyError(f"Refusing ref argument: {ref!r}")


def _drive(
    repository: GitRepository,
    operation: MultiCommitOperation,
    args: list[str],
    parser: RebaseProgressParser | CherryPickProgressParser,
    parse_result: Callable[[GitRunResult], MultiCommitOperationResult],
    on_progress: ProgressCallback | None,
) -> MultiCommitOperationResult:
    """
    Run one mutating git command and move `operation` through its states:
    every progress line advances it, the exit status finishes it.
    """
    res = repository.runner.run(args, read_only=False, env=_NO_EDITOR_ENV)

    for line in res.combined_output.splitlines():
        progress = parser.parse(line)
        if progress is None:
            continue
        operation.advance(progress)
        if on_progress is not None:
            on_progress(progress)

    result = parse_result(res)
    operation.finish(result)
    logger.info(
        "multi_commit_operation_finished",
        kind=operation.kind.value,
        command=args[:2],
        exit_code=res.exit_code,
        result=result.value,
    )
    return result


def _abandon(operation: MultiCommitOperation) -> MultiCommitOperationResult:
    operation.finish(MultiCommitOperationResult.ABORTED)
    return MultiCommitOperationResult.ABORTED


def rebase(
    repository: GitRepository,
    base_branch: str,
    target_branch: str,
    on_progress: ProgressCallback | None = None,
    *,
    operation: MultiCommitOperation | None = None,
) -> MultiCommitOperationResult:
    """
    Rebase `target_branch` onto `base_branch`.

    Returns ABORTED without running the rebase when the commits between the
    two refs cannot be listed (unknown ref, unreadable history).
    """
    operation = operation or MultiCommitOperation(MultiCommitOperationKind.REBASE)
    _check_ref_arg(base_branch)
    _check_ref_arg(target_branch)

    try:
        commits = repository.commits_between(base_branch, target_branch)
    except WorktreeSnapshotError as e:
        logger.warning("rebase_refs_unresolved", base=base_branch, target=target_branch, error=str(e))
        return _abandon(operation)

    operation.start(len(commits))
    return _drive(
        repository,
        operation,
        ["rebase", base_branch, target_branch],
        RebaseProgressParser(commits),
        parse_rebase_result,
        on_progress,
    )


def cherry_pick(
    repository: GitRepository,
    commits: list[CommitSummary] | tuple[CommitSummary, ...],
    on_progress: ProgressCallback | None = None,
    *,
    operation: MultiCommitOperation | None = None,
) -> MultiCommitOperationResult:
    """Apply `commits`, oldest first, on top of the current branch."""
    operation = operation or MultiCommitOperation(MultiCommitOperationKind.CHERRY_PICK)
    if not commits:
        return _abandon(operation)
    for commit in commits:
        _check_ref_arg(commit.sha)

    operation.start(len(commits))
    return _drive(
        repository,
        operation,
        ["cherry-pick", *(c.sha for c in commits), "--keep-redundant-commits"],
        CherryPickProgressParser(commits),
        parse_cherry_pick_result,
        on_progress,
    )


def _resume(operation: MultiCommitOperation, progress: MultiCommitOperationProgress | None) -> None:
    if progress is None:
        operation.start(0)
        return
    operation.start(progress.total_commit_count)
    operation.advance(progress)


def continue_rebase(
    repository: GitRepository,
    status: StatusResult | None,
    on_progress: ProgressCallback | None = None,
    *,
    operation: MultiCommitOperation | None = None,
) -> MultiCommitOperationResult:
    """
    Continue the rebase after conflicts were resolved and staged.

    When the current step left no tracked changes the commit would be empty,
    so the step is skipped instead.
    """
    operation = operation or MultiCommitOperation(MultiCommitOperationKind.REBASE)
    if status is None or read_rebase_head(repository) is None:
        return _abandon(operation)

    snapshot = get_rebase_snapshot(repository, repository)
    _resume(operation, snapshot.progress if snapshot else None)

    action = "--continue" if _has_tracked_changes(status) else "--skip"
    return _drive(
        repository,
        operation,
        ["rebase", action],
        RebaseProgressParser(snapshot.commits if snapshot else ()),
        parse_rebase_result,
        on_progress,
    )


def continue_cherry_pick(
    repository: GitRepository,
    status: StatusResult | None,
    on_progress: ProgressCallback | None = None,
    *,
    operation: MultiCommitOperation | None = None,
) -> MultiCommitOperationResult:
    operation = operation or MultiCommitOperation(MultiCommitOperationKind.CHERRY_PICK)
    if status is None or not cherry_pick_head_found(repository):
        return _abandon(operation)

    snapshot = get_cherry_pick_snapshot(repository, repository)
    _resume(operation, snapshot.progress if snapshot else None)
    parser = CherryPickProgressParser(
        snapshot.commits if snapshot else (),
        count=snapshot.cherry_picked_count if snapshot else 0,
    )

    action = "--continue" if _has_tracked_changes(status) else "--skip"
    return _drive(repository, operation, ["cherry-pick", action], parser, parse_cherry_pick_result, on_progress)


def abort_rebase(repository: GitRepository) -> GitRunResult:
    return require_ok(repository.runner.run(["rebase", "--abort"], read_only=False), context="rebase --abort")


def abort_cherry_pick(repository: GitRepository) -> GitRunResult:
    return require_ok(
        repository.runner.run(["cherry-pick", "--abort"], read_only=False), context="cherry-pick --abort"
    )
