# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Subprocess-backed executor implementation for sdgr.

This module provides:
- run_cmd(): buffered execution of an argv list (tmux, git)
- run_argv(): buffered execution of a shell script with positional
  arguments (build environment capture)
- run_tty(): passthrough execution with full terminal control
  (make, tmux attach, $SCHRODINGER/run)

Every call takes an ``env`` overlay that is merged onto the process
environment, so the selected build and sourced build environment are
threaded explicitly into each command.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TTYResult:
    """Result from TTY/passthrough execution (no output capture)."""

    exit_code: int
    started_at: str
    duration_ms: int


class SubprocessExecutor:
    """Subprocess implementation of Executor protocol."""

    def __init__(self, force_color: bool = False, timeout: int | None = 30):
        """Initialize executor with configuration.

        Args:
            force_color: If True, set color-forcing env variables
            timeout: Default timeout in seconds for buffered commands
                (None waits forever)
        """
        self.force_color = force_color
        self.timeout = timeout

    def _build_env(self, env: Mapping[str, str] | None = None) -> dict:
        merged = os.environ.copy()
        if env:
            merged.update(env)
        if self.force_color:
            merged["PY_COLORS"] = "1"
            merged["FORCE_COLOR"] = "1"
            merged["CLICOLOR_FORCE"] = "1"
        return merged

    def _run_buffered(
        self,
        argv: list[str],
        cwd: str | None,
        env: Mapping[str, str] | None,
        timeout: int | None,
    ) -> tuple[int, str, str, str, int]:
        merged_env = self._build_env(env)
        timeout = timeout if timeout is not None else self.timeout

        started_at = datetime.now().isoformat()
        start_time = datetime.now()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=merged_env,
                cwd=cwd,
            )
            duration_ms = int(
                (datetime.now() - start_time).total_seconds() * 1000
            )
            exit_code = (
                1 if result.returncode == 127 else result.returncode
            )
            return (
                exit_code, result.stdout, result.stderr,
                started_at, duration_ms
            )
        except subprocess.TimeoutExpired:
            duration_ms = int(
                (datetime.now() - start_time).total_seconds() * 1000
            )
            return (
                1, "",
                f"Command timed out after {timeout} seconds",
                started_at, duration_ms
            )
        except Exception as e:
            duration_ms = int(
                (datetime.now() - start_time).total_seconds() * 1000
            )
            return (
                1, "", f"Error executing command: {e}",
                started_at, duration_ms
            )

    def run_cmd(
        self,
        argv: list[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
    ) -> tuple[int, str, str, str, int]:
        """Run an argv list (no shell) and return buffered results.

        Returns:
            (exit_code, stdout, stderr, started_at, duration_ms)
        """
        return self._run_buffered(list(argv), cwd, env, timeout)

    def run_argv(
        self,
        script: str,
        posargs: list[str] | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        shell: str = "/bin/sh",
        timeout: int | None = None,
    ) -> tuple[int, str, str, str, int]:
        """Run a script with positional arguments using ``<shell> -c``.

        This provides proper support for $1, $2, $@, etc. by using:
        [shell, "-c", script, "_", arg1, arg2, ...]

        Args:
            script: Shell script to execute
            posargs: Positional arguments (become $1, $2, etc.)
            cwd: Working directory for the command
            env: Variables merged onto the process environment
            shell: Shell binary (bash is needed to source bash scripts)
            timeout: Overrides self.timeout

        Returns:
            (exit_code, stdout, stderr, started_at, duration_ms)
        """
        argv = [shell, "-c", script, "_"]
        if posargs:
            argv.extend(posargs)
        return self._run_buffered(argv, cwd, env, timeout)

    def run_tty(
        self,
        command: str | list[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
    ) -> TTYResult:
        """Run a command with full terminal control (no output capture).

        The command inherits stdin/stdout/stderr from the parent process.
        A string runs through the shell; a list runs as argv. Unlike the
        buffered calls there is no default timeout: interactive programs
        (tmux attach, make) run until they exit.

        Returns:
            TTYResult (exit_code, started_at, duration_ms)
        """
        merged_env = self._build_env(env)
        started_at = datetime.now().isoformat()
        start_ts = time.time()

        deadline = start_ts + timeout if timeout is not None else None

        try:
            proc = subprocess.Popen(
                command,
                shell=isinstance(command, str),
                stdin=None,  # inherit from parent
                stdout=None,  # inherit from parent
                stderr=None,  # inherit from parent
                env=merged_env,
                cwd=cwd,
            )

            timed_out = False
            interrupted = False
            try:
                while True:
                    rc = proc.poll()
                    if rc is not None:
                        break
                    if deadline is not None and time.time() >= deadline:
                        timed_out = True
                        break
                    time.sleep(0.05)
            except KeyboardInterrupt:
                # The child shares our terminal and got the SIGINT too.
                interrupted = True

            if interrupted:
                try:
                    proc.wait(timeout=5.0)
                except Exception:
                    proc.kill()
                    proc.wait()
                exit_code = 130
            elif timed_out:
                try:
                    proc.terminate()
                except Exception:
                    pass
                try:
                    proc.wait(timeout=1.0)
                except Exception:
                    try:
                        proc.kill()
                    except Exception:
                        pass
                exit_code = 1
            else:
                exit_code = (
                    proc.returncode if proc.returncode is not None else 1
                )

        except Exception:
            duration_ms = int((time.time() - start_ts) * 1000)
            return TTYResult(
                exit_code=1,
                started_at=started_at,
                duration_ms=duration_ms,
            )

        duration_ms = int((time.time() - start_ts) * 1000)

        # Normalize exit code 127 (command not found) to 1 for consistency
        if exit_code == 127:
            exit_code = 1

        return TTYResult(
            exit_code=exit_code,
            started_at=started_at,
            duration_ms=duration_ms,
        )
