# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Protocol definitions for dependency injection.

These interfaces keep the kernel and session bootstrapper independent of
the real subprocess executor, the snapshot file layout and tmux.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class Executor(Protocol):
    """Protocol for command execution."""

    def run_cmd(
        self,
        argv: list[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
    ) -> tuple[int, str, str, str, int]:
        """Run an argv list and return buffered results.

        Returns:
            (exit_code, stdout, stderr, started_at, duration_ms)
        """
        ...

    def run_argv(
        self,
        script: str,
        posargs: list[str] | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        shell: str = "/bin/sh",
        timeout: int | None = None,
    ) -> tuple[int, str, str, str, int]:
        """Run a shell script with positional arguments."""
        ...

    def run_tty(
        self,
        command: str | list[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
    ) -> Any:
        """Run a command attached to the terminal; result has exit_code."""
        ...


class SnapshotStore(Protocol):
    """Protocol for branch-keyed environment snapshot storage."""

    def path_for(self, branch: str) -> Any:
        """Location of the snapshot for a branch (for diagnostics)."""
        ...

    def exists(self, branch: str) -> bool:
        ...

    def load(self, branch: str) -> dict[str, str] | None:
        """Return the snapshot, or None if none was saved."""
        ...

    def save(self, branch: str, values: dict[str, str]) -> Any:
        """Write the snapshot for a branch."""
        ...


class Multiplexer(Protocol):
    """Protocol for a terminal multiplexer holding execution contexts."""

    def has_session(self, name: str) -> bool:
        ...

    def new_session(
        self,
        name: str,
        window: str,
        start_dir: str | None,
        env: Mapping[str, str],
    ) -> str:
        """Create a detached session; return the first window's target."""
        ...

    def new_window(
        self,
        session: str,
        window: str,
        start_dir: str | None,
        env: Mapping[str, str],
    ) -> str:
        """Append a window to a session; return its target."""
        ...

    def send_keys(self, target: str, keys: str) -> None:
        ...

    def select_window(self, target: str) -> None:
        ...

    def attach(self, name: str, detach_others: bool = True) -> int:
        """Attach (or switch) the terminal to the session; exit code."""
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def system(self) -> dict[str, Any]:
        ...

    @property
    def environment(self) -> dict[str, Any]:
        ...

    @property
    def session(self) -> dict[str, Any]:
        ...

    @property
    def commands(self) -> dict[str, Any]:
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        ...
