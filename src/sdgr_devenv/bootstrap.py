# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Session bootstrapper.

For a branch, create (once) a tmux session named after it with one window
per configured role. Every window starts with the build path variables and
the resolved build environment, then receives the role's startup keys.

Per-branch lifecycle: ABSENT -> CREATED -> ATTACHED. Sessions are never
destroyed here; bootstrapping an existing session only re-attaches.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .environment import EnvironmentSnapshot
from .errors import EnvironmentUnavailable
from .interfaces import Multiplexer
from .paths import BuildPaths, select_build
from .platforms import Platform


class SessionState(Enum):
    ABSENT = "absent"
    CREATED = "created"
    ATTACHED = "attached"


@dataclass(frozen=True)
class Role:
    """One execution context of a session."""

    name: str
    cwd: str = ""
    keys: tuple[str, ...] = ()
    # Only sent when the build environment was resolved.
    primed_keys: tuple[str, ...] = ()
    # Enter the build container first where the platform has one.
    container: bool = False


DEFAULT_ROLES: tuple[Role, ...] = (
    Role("src", "{source_dir}", ("cd {source_dir}/mmshare",)),
    Role(
        "build/test", "{build_dir}",
        ("cd {build_dir}/mmshare-v*/python/test",), container=True,
    ),
    Role("maestro", "{build_dir}"),
    Role("ipython", "{build_dir}", primed_keys=("{build_dir}/run ipython",)),
    Role("misc", "{source_dir}"),
)


def roles_from_config(raw_roles: Iterable[Any] | None) -> list[Role]:
    """Build Role objects from the ``session.roles`` config list."""
    if not raw_roles:
        return list(DEFAULT_ROLES)

    roles: list[Role] = []
    for raw in raw_roles:
        if isinstance(raw, str):
            roles.append(Role(raw))
            continue
        if not isinstance(raw, dict) or not raw.get("name"):
            raise ValueError(f"Invalid session role: {raw!r}")
        roles.append(
            Role(
                name=str(raw["name"]),
                cwd=str(raw.get("cwd") or ""),
                keys=tuple(raw.get("keys") or ()),
                primed_keys=tuple(raw.get("primed_keys") or ()),
                container=bool(raw.get("container", False)),
            )
        )
    return roles


@dataclass
class SessionHandle:
    branch: str
    session_name: str
    state: SessionState
    created: bool
    contexts: list[str] = field(default_factory=list)
    environment_primed: bool = False


def _noop(_msg: str) -> None:
    pass


@dataclass
class SessionBootstrapper:
    """Creates or attaches the per-branch set of execution contexts."""

    multiplexer: Multiplexer
    platform: Platform
    home: Path
    resolve_env: Callable[[BuildPaths], EnvironmentSnapshot]
    roles: list[Role] = field(default_factory=lambda: list(DEFAULT_ROLES))
    container_command: str = ""
    container_setup: str = ""
    clear_after_setup: bool = True
    detach_others: bool = True

    warn_fn: Callable[[str], None] = _noop
    info_fn: Callable[[str], None] = _noop
    debug_fn: Callable[[str], None] = _noop

    _states: dict[str, SessionState] = field(default_factory=dict)

    def state(self, branch: str) -> SessionState:
        if branch in self._states:
            return self._states[branch]
        if self.multiplexer.has_session(branch):
            return SessionState.CREATED
        return SessionState.ABSENT

    def bootstrap_session(
        self, branch: str | None, attach: bool = True
    ) -> SessionHandle:
        """Create the session for ``branch`` if needed, then attach.

        Raises:
            MissingInputError: if branch is empty.
        """
        paths = select_build(branch, self.home)
        name = paths.branch

        handle = SessionHandle(
            branch=name,
            session_name=name,
            state=SessionState.CREATED,
            created=False,
        )

        if self.multiplexer.has_session(name):
            self.debug_fn(f"Session {name} exists; attaching only.")
        else:
            self._create(paths, handle)
            handle.created = True
        self._states[name] = SessionState.CREATED

        if attach:
            exit_code = self.multiplexer.attach(
                name, detach_others=self.detach_others
            )
            if exit_code == 0:
                handle.state = SessionState.ATTACHED
                self._states[name] = SessionState.ATTACHED
            else:
                self.warn_fn(
                    f"Could not attach to session {name} "
                    f"(exit code {exit_code})."
                )
        return handle

    def _create(self, paths: BuildPaths, handle: SessionHandle) -> None:
        env = paths.as_environ()
        try:
            snapshot = self.resolve_env(paths)
        except EnvironmentUnavailable as e:
            self.warn_fn(str(e))
            self.warn_fn(
                "Creating the session without the build environment."
            )
        else:
            env.update(snapshot.variables)
            handle.environment_primed = True

        fmt = paths.format_args()
        for idx, role in enumerate(self.roles):
            start_dir = self._start_dir(role, fmt)
            if idx == 0:
                target = self.multiplexer.new_session(
                    handle.session_name, role.name, start_dir, env
                )
            else:
                target = self.multiplexer.new_window(
                    handle.session_name, role.name, start_dir, env
                )
            self.debug_fn(f"Created {role.name} at {target}")
            handle.contexts.append(target)

            for keys in self._startup_keys(
                role, fmt, handle.environment_primed
            ):
                self.multiplexer.send_keys(target, keys)

        if handle.contexts:
            self.multiplexer.select_window(handle.contexts[0])
        self.info_fn(
            f"Created session {handle.session_name} with "
            f"{len(handle.contexts)} windows."
        )

    def _start_dir(self, role: Role, fmt: dict[str, str]) -> str | None:
        if not role.cwd:
            return None
        start_dir = role.cwd.format(**fmt)
        return start_dir if Path(start_dir).is_dir() else None

    def _startup_keys(
        self, role: Role, fmt: dict[str, str], primed: bool
    ) -> list[str]:
        keys: list[str] = []
        if (role.container and self.platform.has_build_container
                and self.container_command):
            keys.append(self.container_command.format(**fmt))
            if self.container_setup:
                keys.append(self.container_setup.format(**fmt))

        keys.extend(k.format(**fmt) for k in role.keys)

        if primed:
            keys.extend(k.format(**fmt) for k in role.primed_keys)
        elif role.primed_keys:
            self.warn_fn(
                f"Failed to source build environment. Can't run "
                f"{role.primed_keys[0].format(**fmt)} in {role.name}."
            )

        if keys and self.clear_after_setup:
            keys.append("clear")
        return keys
