# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Build environment resolution.

Where the platform can source ``mmshare/build_env`` we run it in a shell and
capture the variables it changes. Inside the Linux build container the
configured snapshot keys are also written to the snapshot store. Host
sessions cannot build a complete environment themselves: they restore that
snapshot, then source the script on top of it and keep whatever it adds.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import EnvironmentUnavailable
from .interfaces import Executor, SnapshotStore
from .paths import BuildPaths
from .platforms import Platform

ENV_MARKER = "__SDGR_ENV__"

# Variables every shell sets for itself; never part of a snapshot.
SHELL_INTERNAL_VARS = frozenset({"_", "SHLVL", "PWD", "OLDPWD"})

CAPTURE_SCRIPT = (
    f"env -0; printf '{ENV_MARKER}\\0'; "
    '. "$1" >&2 || exit $?; '
    "env -0"
)

DEFAULT_SNAPSHOT_KEYS = ("QTDIR", "SCHRODINGER_BUILD_ENV_VERSION")


@dataclass
class EnvironmentSnapshot:
    """Ordered variables needed to build and run the suite."""

    branch: str
    variables: dict[str, str] = field(default_factory=dict)
    source: str = "script"  # "script", "cache" or "cache+script"
    # Why sourcing the script over a restored snapshot failed, if it did.
    script_error: str = ""

    def export_lines(self) -> str:
        """``export KEY=VALUE`` lines suitable for ``eval``."""
        return "".join(
            f"export {key}={shlex.quote(value)}\n"
            for key, value in self.variables.items()
        )


def _parse_env0(raw: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for entry in raw.split("\0"):
        key, sep, value = entry.partition("=")
        if sep and key:
            values[key] = value
    return values


def capture_script_environment(
    executor: Executor,
    script: Path,
    env: Mapping[str, str] | None = None,
    shell: str = "bash",
    timeout: int | None = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """Source ``script`` in a subshell and report what it changed.

    Returns:
        (changed, after): the new or modified variables in the order the
        shell reports them, and the full environment after sourcing.

    Raises:
        EnvironmentUnavailable: if the script is missing or fails.
    """
    if not script.is_file():
        raise EnvironmentUnavailable(
            f"Build environment script {script} does not exist."
        )

    exit_code, stdout, stderr, _, _ = executor.run_argv(
        CAPTURE_SCRIPT,
        posargs=[str(script)],
        env=env,
        shell=shell,
        timeout=timeout,
    )
    if exit_code != 0:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        raise EnvironmentUnavailable(
            f"Sourcing {script} failed with exit code {exit_code}"
            + (f": {detail}" if detail else ".")
        )

    before_raw, sep, after_raw = stdout.partition(f"{ENV_MARKER}\0")
    if not sep:
        raise EnvironmentUnavailable(
            f"Could not read the environment produced by {script}."
        )

    before = _parse_env0(before_raw)
    after = _parse_env0(after_raw)
    changed = {
        key: value
        for key, value in after.items()
        if key not in SHELL_INTERNAL_VARS and before.get(key) != value
    }
    return changed, after


def resolve_environment(
    paths: BuildPaths,
    platform: Platform,
    executor: Executor,
    store: SnapshotStore,
    env_cfg: dict[str, Any] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> EnvironmentSnapshot:
    """Make the build environment for ``paths`` available.

    Args:
        paths: Selected build
        platform: Capabilities of the current OS
        executor: Runs the build environment script
        store: Snapshot cache keyed by branch
        env_cfg: ``environment`` section of the config
        base_env: Environment the script runs on top of (defaults to
            os.environ plus the build path variables)

    Raises:
        EnvironmentUnavailable: the environment can neither be sourced nor
            restored. Callers treat this as degraded, not fatal.
    """
    env_cfg = env_cfg or {}
    if base_env is None:
        base_env = {**os.environ, **paths.as_environ()}

    if not platform.known:
        raise EnvironmentUnavailable("Unknown OS.")

    script = Path(
        env_cfg.get("script", "{source_dir}/mmshare/build_env").format(
            **paths.format_args()
        )
    )
    shell = env_cfg.get("shell", "bash")
    timeout = env_cfg.get("timeout")

    if platform.can_run_env_script:
        changed, after = capture_script_environment(
            executor,
            script,
            env=base_env,
            shell=shell,
            timeout=timeout,
        )
        if platform.in_container:
            keys = env_cfg.get("snapshot_keys") or DEFAULT_SNAPSHOT_KEYS
            cached = {key: after.get(key, "") for key in keys}
            store.save(paths.branch, cached)
        return EnvironmentSnapshot(
            branch=paths.branch, variables=changed, source="script"
        )

    cached = store.load(paths.branch)
    if cached is None:
        raise EnvironmentUnavailable(
            f"Build environment file {store.path_for(paths.branch)} does not "
            "exist. You won't be able to use designer, yapf, etc."
        )

    variables = dict(cached)
    width = int(env_cfg.get("buildvenv_version_width", 7))
    version = variables.get("SCHRODINGER_BUILD_ENV_VERSION", "")
    if version:
        venv_bin = paths.build_dir / "buildvenv" / version[:width] / "bin"
        current_path = base_env.get("PATH", "")
        variables["PATH"] = (
            f"{venv_bin}{os.pathsep}{current_path}" if current_path
            else str(venv_bin)
        )
    snapshot = EnvironmentSnapshot(
        branch=paths.branch, variables=variables, source="cache"
    )

    # The host still sources the script on top of the restored values;
    # a failure there leaves the cached environment usable.
    try:
        changed, _ = capture_script_environment(
            executor,
            script,
            env={**base_env, **variables},
            shell=shell,
            timeout=timeout,
        )
    except EnvironmentUnavailable as e:
        snapshot.script_error = str(e)
    else:
        snapshot.variables.update(changed)
        snapshot.source = "cache+script"
    return snapshot
