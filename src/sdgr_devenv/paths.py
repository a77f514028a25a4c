# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Branch selection and build path derivation.

A build is identified by its branch (e.g. "2024-1"). Every directory of a
build is a pure function of (home, branch):

    <home>/software/lib        SCHRODINGER_LIB
    <home>/<branch>/source     SCHRODINGER_SRC
    <home>/<branch>/build      SCHRODINGER
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import MissingInputError

# "2024-1" is shown as "24-1".
BRANCH_PREFIX_WIDTH = 2


@dataclass(frozen=True)
class BuildPaths:
    home: Path
    branch: str
    libraries_dir: Path
    source_dir: Path
    build_dir: Path

    @property
    def short_name(self) -> str:
        return short_branch_name(self.branch)

    def as_environ(self) -> dict[str, str]:
        """The variables a shell needs to locate this build."""
        return {
            "SCHRODINGER_LIB": str(self.libraries_dir),
            "SCHRODINGER_SRC": str(self.source_dir),
            "SCHRODINGER": str(self.build_dir),
        }

    def format_args(self) -> dict[str, str]:
        """Placeholder values for config templates."""
        return {
            "home": str(self.home),
            "branch": self.branch,
            "name": self.short_name,
            "libraries_dir": str(self.libraries_dir),
            "source_dir": str(self.source_dir),
            "build_dir": str(self.build_dir),
        }


def short_branch_name(branch: str) -> str:
    return branch[BRANCH_PREFIX_WIDTH:]


def select_build(branch: str | None, home: Path) -> BuildPaths:
    """Derive the build paths for a branch.

    Raises:
        MissingInputError: if branch is empty.
        ValueError: if branch would escape the home directory.
    """
    branch = (branch or "").strip()
    if not branch:
        raise MissingInputError(
            "Build", "Usage: select <branch> (e.g. select 2024-1)"
        )
    if "/" in branch or os.sep in branch or branch in (".", ".."):
        raise ValueError(f"Invalid branch name: {branch!r}")

    return BuildPaths(
        home=home,
        branch=branch,
        libraries_dir=home / "software" / "lib",
        source_dir=home / branch / "source",
        build_dir=home / branch / "build",
    )


def branch_from_build_dir(build_dir: str | Path) -> str:
    """Recover the branch from a build dir like ``<home>/<branch>/build``."""
    return Path(str(build_dir).rstrip("/")).parent.name


def paths_from_environ(
    environ: Mapping[str, str], home: Path
) -> BuildPaths | None:
    """Rebuild BuildPaths from $SCHRODINGER, or None if it is not set."""
    build_dir = environ.get("SCHRODINGER")
    if not build_dir:
        return None
    branch = branch_from_build_dir(build_dir)
    if not branch:
        return None
    return select_build(branch, home)


def first_match(directory: Path, pattern: str) -> Path | None:
    """First (sorted) entry of ``directory`` matching a glob, or None."""
    if not directory.is_dir():
        return None
    matches = sorted(directory.glob(pattern))
    return matches[0] if matches else None
