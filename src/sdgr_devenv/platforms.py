# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Per-OS capabilities.

The build environment script can be sourced directly on Darwin, Windows and
inside the Linux build container. A Linux host can only build inside the
container, so it restores an environment snapshot written from there.
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from pathlib import Path

DOCKERENV = Path("/.dockerenv")


@dataclass(frozen=True)
class Platform:
    """Capability set of the OS we are running on."""

    name: str
    family: str
    can_run_env_script: bool
    in_container: bool = False
    has_build_container: bool = False

    @property
    def known(self) -> bool:
        return self.family != "unknown"


DARWIN = Platform("darwin", "darwin", can_run_env_script=True)
WINDOWS = Platform("windows", "windows", can_run_env_script=True)
LINUX_HOST = Platform(
    "linux-host", "linux", can_run_env_script=False, has_build_container=True
)
LINUX_CONTAINER = Platform(
    "linux-container", "linux", can_run_env_script=True, in_container=True
)
UNKNOWN = Platform("unknown", "unknown", can_run_env_script=False)


def detect_platform(
    system: str | None = None, dockerenv: Path = DOCKERENV
) -> Platform:
    """Pick the capability set for ``system`` (default: this machine)."""
    if system is None:
        system = _platform.system()
    lowered = system.lower()

    if lowered == "darwin":
        return DARWIN
    if lowered == "linux":
        return LINUX_CONTAINER if dockerenv.exists() else LINUX_HOST
    if lowered == "windows" or lowered.startswith(("mingw", "msys", "cygwin")):
        return WINDOWS
    return UNKNOWN
