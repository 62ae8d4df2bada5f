from .status_tools import (
    status_snapshot,
    operation_progress,
    conflict_details,
    stash_entries,
)

__all__ = [
    "status_snapshot",
    "operation_progress",
    "conflict_details",
    "stash_entries",
]
