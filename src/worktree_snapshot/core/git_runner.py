from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import structlog

from .errors import GitExecutionError, GitPolicyError
from .limits import MAX_TOOL_OUTPUT_CHARS
from .models import GitRunResult
from .security import resolve_root

logger = structlog.get_logger()

TIMEOUT_EXIT_CODE = 124


def _kill_process_tree_windows(pid: int) -> None:
    """
    Kill a process tree on Windows (git may spawn helper processes such as
    credential managers, ssh, pagers, etc.).
    """
    subprocess.run(
        ["taskkill", "/PID", str(pid), "/T", "/F"],
        capture_output=True,
        text=True,
    )


def _kill_process_group_posix(p: subprocess.Popen) -> None:
    """Kill the whole process group; falls back to p.kill()."""
    try:
        os.killpg(p.pid, signal.SIGKILL)
    except OSError:
        with contextlib.suppress(OSError):
            p.kill()


def _terminate(p: subprocess.Popen) -> None:
    if os.name == "nt":
        _kill_process_tree_windows(p.pid)
    else:
        _kill_process_group_posix(p)


def require_ok(res: GitRunResult, context: str) -> GitRunResult:
    if res.exit_code != 0:
        raise GitExecutionError(f"{context} failed: {res.stderr.strip()}")
    return res


@dataclass(frozen=True)
class GitRunnerConfig:
    """
    Runner configuration. `max_output_chars` is the stdout+stderr ceiling;
    status queries raise it to the status buffer limit.
    """
    timeout_s: float = 10.0
    max_output_chars: int = MAX_TOOL_OUTPUT_CHARS

    # Read-only allowlist: everything the snapshot engine needs to inspect.
    read_only_allowlist: tuple[str, ...] = (
        "status",
        "diff",
        "log",
        "rev-list",
        "rev-parse",
        "merge-base",
        "show",
        "cat-file",
        "stash",
    )

    # `stash` is only allowed in these forms while read-only.
    read_only_stash_actions: tuple[str, ...] = ("list", "show")


class SafeGitRunner:
    """
    Local-only git runner:
      - No shell
      - Enforces cwd=root
      - Hard timeout, killing stuck process trees / groups
      - Output ceiling (stdout+stderr) with deterministic truncation
      - Read-only policy unless the caller opts out per call
    """

    def __init__(self, root: str | Path, config: GitRunnerConfig | None = None) -> None:
        self.root = resolve_root(root)
        self.config = config or GitRunnerConfig()

    def run(
        self,
        args: Iterable[str],
        *,
        read_only: bool = True,
        env: dict[str, str] | None = None,
    ) -> GitRunResult:
        args_list = list(args)
        self._validate_args(args_list, read_only=read_only)

        argv = ["git", *args_list]
        logger.debug("git_exec", command=argv, cwd=str(self.root), read_only=read_only)

        start = time.perf_counter()
        stdout, stderr, exit_code, timed_out = self._run_process(
            argv=argv,
            cwd=self.root,
            env=self._build_env(env),
            timeout_s=self.config.timeout_s,
        )
        duration_ms = int((time.perf_counter() - start) * 1000)

        stdout, stderr, output_truncated = self._apply_output_ceiling(stdout, stderr)
        if output_truncated:
            logger.warning("git_output_truncated", command=argv, limit=self.config.max_output_chars)

        return GitRunResult(
            argv=argv,
            root=str(self.root),
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
            timed_out=timed_out,
            output_truncated=output_truncated,
        )

    def _validate_args(self, args_list: list[str], *, read_only: bool) -> None:
        if not args_list:
            raise GitPolicyError("Empty git args are not allowed.")

        if not read_only:
            return

        lowered = [a.strip().lower() for a in args_list]
        subcmd = lowered[0]
        if subcmd not in self.config.read_only_allowlist:
            raise GitPolicyError(
                f"Blocked git subcommand in read-only mode: '{subcmd}'. "
                f"Allowed: {', '.join(self.config.read_only_allowlist)}"
            )

        dangerous_flags = {"--global", "--system", "--delete", "--force", "-f", "--output"}
        if any(f in lowered for f in dangerous_flags):
            raise GitPolicyError(f"Blocked potentially mutating git flags in read-only mode: {args_list}")

        if subcmd == "stash":
            action = lowered[1] if len(lowered) >= 2 else "push"
            if action not in self.config.read_only_stash_actions:
                raise GitPolicyError(f"Blocked stash mutation in read-only mode: '{action}'.")

    def _build_env(self, extra_env: dict[str, str] | None) -> dict[str, str]:
        """Controlled environment: no prompts, no pager, C locale, no index refresh locks."""
        merged_env = dict(os.environ)
        merged_env.update(
            {
                "GIT_TERMINAL_PROMPT": "0",
                "GCM_INTERACTIVE": "Never",
                "GIT_PAGER": "cat",
                "LC_ALL": "C",
                "GIT_OPTIONAL_LOCKS": "0",
            }
        )

        if extra_env:
            merged_env.update(extra_env)

        return merged_env

    def _run_process(
        self,
        *,
        argv: list[str],
        cwd: Path,
        env: dict[str, str],
        timeout_s: float,
    ) -> tuple[str, str, int, bool]:
        """
        Popen + communicate(timeout).
        Returns: (stdout, stderr, exit_code, timed_out)
        """
        popen_kwargs: dict = {}
        if os.name != "nt":
            popen_kwargs["start_new_session"] = True

        try:
            p = subprocess.Popen(
                argv,
                cwd=str(cwd),
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                shell=False,
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            raise GitExecutionError("git executable not found in PATH.") from e
        except OSError as e:
            raise GitExecutionError(f"Failed to spawn git: {type(e).__name__}: {e}") from e

        try:
            out, err = p.communicate(timeout=timeout_s)
            return out or "", err or "", int(p.returncode or 0), False

        except subprocess.TimeoutExpired:
            logger.warning("git_exec_timeout", command=argv, timeout=timeout_s)
            try:
                out, err = p.communicate(timeout=0.2)
            except (subprocess.TimeoutExpired, OSError, ValueError):
                out, err = ("", "")

            try:
                _terminate(p)
            finally:
                with contextlib.suppress(subprocess.TimeoutExpired, OSError):
                    p.wait(timeout=0.5)

            return out or "", err or "", TIMEOUT_EXIT_CODE, True

        except Exception as e:
            with contextlib.suppress(OSError):
                _terminate(p)
            logger.error("git_exec_error", command=argv, error=str(e))
            raise GitExecutionError(f"Failed while running git: {type(e).__name__}: {e}") from e

    def _apply_output_ceiling(self, stdout: str, stderr: str) -> tuple[str, str, bool]:
        """
        Enforce output ceiling (stdout+stderr). Prefer keeping stderr:
        up to half for stderr, rest for stdout.
        """
        max_chars = max(1, int(self.config.max_output_chars))
        if len(stdout) + len(stderr) <= max_chars:
            return stdout, stderr, False

        keep_stderr = min(len(stderr), max_chars // 2)
        keep_stdout = max_chars - keep_stderr

        return stdout[:keep_stdout], stderr[:keep_stderr], True
