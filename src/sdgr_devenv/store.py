# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
File-backed environment snapshot store.

One snapshot per branch, stored as plain ``KEY=VALUE`` lines at
``<home>/<prefix><branch>``. Written from inside the build container, read
by host sessions. No locking: one writer per branch.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_PREFIX = ".centos7_build_env_"


def parse_snapshot(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines.

    Blank lines and ``#`` comments are skipped, a leading ``export `` is
    tolerated and values wrapped in matching quotes are unwrapped.
    """
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        values[key] = value
    return values


def format_snapshot(values: dict[str, str]) -> str:
    return "".join(f"{key}={value}\n" for key, value in values.items())


class FileSnapshotStore:
    """File implementation of the SnapshotStore protocol."""

    def __init__(self, root: Path, prefix: str = DEFAULT_PREFIX):
        """Initialize store.

        Args:
            root: Directory holding snapshot files (the suite home)
            prefix: File name prefix; the branch is appended
        """
        self.root = root
        self.prefix = prefix

    def path_for(self, branch: str) -> Path:
        return self.root / f"{self.prefix}{branch}"

    def exists(self, branch: str) -> bool:
        return self.path_for(branch).is_file()

    def load(self, branch: str) -> dict[str, str] | None:
        """Return the snapshot for ``branch`` or None if there is none."""
        path = self.path_for(branch)
        if not path.is_file():
            return None
        return parse_snapshot(path.read_text(encoding="utf-8"))

    def save(self, branch: str, values: dict[str, str]) -> Path:
        """Write (overwrite) the snapshot for ``branch``."""
        path = self.path_for(branch)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(format_snapshot(values), encoding="utf-8")
        return path
