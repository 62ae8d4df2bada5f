from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from worktree_snapshot.core.log_config import configure_logging
from worktree_snapshot.tools import (
    conflict_details,
    operation_progress,
    stash_entries,
    status_snapshot,
)

mcp = FastMCP("worktree-snapshot")


@mcp.tool()
def status_snapshot_tool(root: str = ".", max_files: int = 500) -> dict:
    return status_snapshot(root=root, max_files=max_files)


@mcp.tool()
def operation_progress_tool(root: str = ".") -> dict:
    return operation_progress(root=root)


@mcp.tool()
def conflict_details_tool(root: str = ".") -> dict:
    return conflict_details(root=root)


@mcp.tool()
def stash_entries_tool(root: str = ".") -> dict:
    return stash_entries(root=root)


def main() -> None:
    configure_logging()
    mcp.run()


if __name__ == "__main__":
    main()
