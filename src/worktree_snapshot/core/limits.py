from __future__ import annotations

# `git status` output above this is refused rather than parsed.
MAX_STATUS_BUFFER_CHARS = 20_000_000

# Ceiling for every other command issued by the tools layer.
MAX_TOOL_OUTPUT_CHARS = 80_000

MAX_TOOL_FILES = 2_000
