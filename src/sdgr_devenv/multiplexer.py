# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
tmux-backed Multiplexer implementation.

Sessions are matched exactly (``=name``) so that "2024-1" never resolves to
"2024-10". Window targets are taken from tmux itself (``-P -F``) rather
than assumed, which keeps us correct under a non-zero ``base-index``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from .errors import DevEnvError
from .interfaces import Executor

WINDOW_TARGET_FORMAT = "#{session_name}:#{window_index}"


class MultiplexerError(DevEnvError):
    """A tmux command failed."""


def _env_args(env: Mapping[str, str]) -> list[str]:
    args: list[str] = []
    for key, value in env.items():
        args.extend(["-e", f"{key}={value}"])
    return args


class TmuxMultiplexer:
    """tmux implementation of the Multiplexer protocol."""

    def __init__(self, executor: Executor, binary: str = "tmux"):
        self.executor = executor
        self.binary = binary

    def _tmux(self, *args: str) -> str:
        exit_code, stdout, stderr, _, _ = self.executor.run_cmd(
            [self.binary, *args]
        )
        if exit_code != 0:
            detail = (stderr or stdout).strip()
            raise MultiplexerError(
                f"tmux {args[0]} failed"
                + (f": {detail}" if detail else "")
            )
        return stdout.strip()

    @staticmethod
    def inside_tmux() -> bool:
        return bool(os.environ.get("TMUX"))

    def has_session(self, name: str) -> bool:
        exit_code, _, _, _, _ = self.executor.run_cmd(
            [self.binary, "has-session", "-t", f"={name}"]
        )
        return exit_code == 0

    def new_session(
        self,
        name: str,
        window: str,
        start_dir: str | None,
        env: Mapping[str, str],
    ) -> str:
        args = ["new-session", "-d", "-P", "-F", WINDOW_TARGET_FORMAT,
                "-s", name, "-n", window]
        if start_dir:
            args.extend(["-c", start_dir])
        args.extend(_env_args(env))
        return self._tmux(*args)

    def new_window(
        self,
        session: str,
        window: str,
        start_dir: str | None,
        env: Mapping[str, str],
    ) -> str:
        args = ["new-window", "-d", "-P", "-F", WINDOW_TARGET_FORMAT,
                "-t", f"={session}:", "-n", window]
        if start_dir:
            args.extend(["-c", start_dir])
        args.extend(_env_args(env))
        return self._tmux(*args)

    def send_keys(self, target: str, keys: str) -> None:
        self._tmux("send-keys", "-t", target, keys, "C-m")

    def select_window(self, target: str) -> None:
        self._tmux("select-window", "-t", target)

    def attach(self, name: str, detach_others: bool = True) -> int:
        """Attach the terminal to ``name``.

        From inside tmux the current client is switched instead, since
        nesting sessions is refused by tmux.
        """
        if self.inside_tmux():
            argv = [self.binary, "switch-client", "-t", f"={name}"]
        else:
            argv = [self.binary, "attach-session"]
            if detach_others:
                argv.append("-d")
            argv.extend(["-t", f"={name}"])
        return self.executor.run_tty(argv).exit_code
