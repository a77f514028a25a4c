# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
sdgr kernel.

Core implementation of sdgr:
- build selection (held as session state, last-write-wins)
- build environment resolution, applied to an explicit env overlay
- per-branch tmux session bootstrap
- wrappers around make, git and $SCHRODINGER/run

Important boundary:
- Kernel does not load YAML or detect the OS.
- Kernel consumes the injected ConfigModel, Platform and collaborators.

Every command returns the text meant for stdout and sets
``last_exit_code`` (0 success, 1 reported error). Diagnostics are tagged
lines written through ``error_fn``.
"""

from __future__ import annotations

import os
import shlex
import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from . import config as cfg_module
from .bootstrap import (
    SessionBootstrapper,
    SessionHandle,
    SessionState,
    roles_from_config,
)
from .buildinger import BUILDINGER_SCRIPT, setup_ide_autocomplete
from .config import ANSI_COLORS, UI_CLEAR, colorize
from .environment import EnvironmentSnapshot, resolve_environment
from .errors import DevEnvError, EnvironmentUnavailable, MissingInputError
from .interfaces import ConfigModel, Executor, Multiplexer, SnapshotStore
from .paths import BuildPaths, first_match, paths_from_environ, select_build
from .platforms import Platform
from .utils import format_table

MAKE_TARGETS = ("python", "python-scripts", "python-modules")


def _path_exports(paths: BuildPaths) -> str:
    return "".join(
        f"export {key}={shlex.quote(value)}\n"
        for key, value in paths.as_environ().items()
    )


def write_crash_log(
    error: Exception,
    raw_command: str = "",
    branch: str = "",
) -> None:
    """Write an entry to the crash log.

    Logs unhandled exceptions. Only creates the log directory when
    actually needed. Appends to crash.log (never overwrites).
    """
    try:
        crash_log_path = cfg_module.crash_log_path(cfg_module.get_data_root())
        crash_log_path.parent.mkdir(parents=True, exist_ok=True)

        lines = [f"{datetime.now().isoformat()}"]
        if raw_command:
            lines.append(f"raw={raw_command}")
        if branch:
            lines.append(f"branch={branch}")
        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(traceback.format_exc())
        lines.append("----")

        with crash_log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # If we can't write the crash log, fail silently
        # (we're already in an error state)
        pass


@dataclass
class Kernel:
    """sdgr session engine."""

    executor: Executor
    multiplexer: Multiplexer
    store: SnapshotStore
    config: ConfigModel
    platform: Platform
    home: Path

    # Session state
    paths: BuildPaths | None = None
    env_overlay: dict[str, str] = field(default_factory=dict)
    environment_primed: bool = False

    running: bool = False
    interactive: bool = False
    debug: bool = False
    last_exit_code: int = 0
    history: list[str] = field(default_factory=list)

    # Derived from config
    base_commands: dict[str, Any] = field(default_factory=dict)
    command_triggers: dict[str, str] = field(default_factory=dict)
    bootstrapper: SessionBootstrapper | None = None

    # ---- Output hooks (wired by UI/CLI) ----
    output_fn: Callable[[str], None] | None = None
    error_fn: Callable[[str], None] | None = None

    def __post_init__(self) -> None:
        self.base_commands = self.config.commands.get("base", {}) or {}
        self.command_triggers = {}
        for action_name, cmd_cfg in self.base_commands.items():
            for trig in cmd_cfg.get("triggers", []) or []:
                self.command_triggers[trig] = action_name

        if self.bootstrapper is None:
            self.bootstrapper = self._build_bootstrapper()

    def _build_bootstrapper(self) -> SessionBootstrapper:
        session_cfg = self.config.session or {}
        env_cfg = self.config.environment or {}
        return SessionBootstrapper(
            multiplexer=self.multiplexer,
            platform=self.platform,
            home=self.home,
            resolve_env=self._resolve_for,
            roles=roles_from_config(session_cfg.get("roles")),
            container_command=env_cfg.get("container_command", ""),
            container_setup=env_cfg.get("container_setup", ""),
            clear_after_setup=bool(session_cfg.get("clear_after_setup", True)),
            detach_others=bool(session_cfg.get("detach_others", True)),
            warn_fn=self._warn,
            info_fn=self._info,
            debug_fn=self._debug,
        )

    # -----------------------
    # Diagnostics
    # -----------------------

    def _write_err(self, text: str) -> None:
        if self.error_fn is not None:
            self.error_fn(text)
        else:
            sys.stderr.write(text)
            sys.stderr.flush()

    def _emit(self, tag: str, msg: str) -> None:
        self._write_err(colorize(tag, msg) + "\n")

    def _info(self, msg: str) -> None:
        self._emit("INFO", msg)

    def _warn(self, msg: str) -> None:
        self._emit("WARN", msg)

    def _error(self, msg: str) -> None:
        self._emit("ERR", msg)

    def _success(self, msg: str) -> None:
        self._emit("OK", msg)

    def _debug(self, msg: str) -> None:
        if self.debug:
            self._emit("DEBUG", msg)

    # -----------------------
    # Session
    # -----------------------

    def start(self, include_prompt: bool = True) -> str:
        """Start an interactive sdgr session."""
        self.running = True
        self.interactive = True

        out: list[str] = []
        msg = self.config.get_path("system.welcome.message", "")
        if isinstance(msg, str) and msg.strip():
            out.append(msg.strip())
        if self.paths is not None:
            out.append(f"Build {self.paths.branch} selected from $SCHRODINGER.")
        if include_prompt:
            out.append(self.prompt())
        return "\n\n".join(out)

    def prompt(self) -> str:
        """Return the current prompt string with ANSI colors."""
        name = self.config.get_path("system.name", "sdgr")
        cyan = ANSI_COLORS["cyan"]
        pink = ANSI_COLORS["pink"]
        reset = ANSI_COLORS["reset"]
        if self.paths is None:
            return f"{cyan}{name}{reset}{pink}>{reset}"
        return (
            f"{cyan}{name}{reset}[{self.paths.short_name}]"
            f"{pink}>{reset}"
        )

    def session_env(self) -> dict[str, str]:
        """Variables every command of this session runs with."""
        env: dict[str, str] = {}
        if self.paths is not None:
            env.update(self.paths.as_environ())
        env.update(self.env_overlay)
        return env

    # -----------------------
    # UI helper hooks
    # -----------------------

    def list_branches(self) -> list[str]:
        """Branches checked out under home (used for completion)."""
        if not self.home.is_dir():
            return []
        return sorted(
            p.name for p in self.home.iterdir()
            if p.is_dir() and ((p / "source").is_dir() or (p / "build").is_dir())
        )

    def list_command_completions(self) -> list[dict[str, str]]:
        """[{"key": "<trigger>", "description": "<text>"}...]"""
        items: list[dict[str, str]] = []
        for trigger, action in sorted(self.command_triggers.items()):
            cmd_cfg = self.base_commands.get(action, {}) or {}
            items.append({
                "key": trigger,
                "description": str(cmd_cfg.get("description", "")),
            })
        return items

    def where_names(self) -> list[str]:
        return ["src", "mm", "ss", "bld", "mmb", "mmt", "ssb", "lib"]

    # -----------------------
    # Core operations
    # -----------------------

    def select_build(self, branch: str | None) -> BuildPaths:
        """Select a build for the session; clears any sourced environment.

        Raises:
            MissingInputError: if branch is empty.
        """
        paths = select_build(branch, self.home)
        if self.paths != paths:
            self.env_overlay = {}
            self.environment_primed = False
        self.paths = paths
        return paths

    def resolve_environment(self) -> EnvironmentSnapshot:
        """Resolve the build environment of the selected build.

        The result is applied to the session's env overlay.

        Raises:
            MissingInputError: no build is selected.
            EnvironmentUnavailable: environment cannot be sourced/restored.
        """
        paths = self._require_paths("SCHRODINGER_SRC")
        snapshot = self._resolve_for(paths)
        self.env_overlay.update(snapshot.variables)
        self.environment_primed = True
        return snapshot

    def bootstrap_session(
        self, branch: str | None = None, attach: bool = True
    ) -> SessionHandle:
        """Create or attach the tmux session of ``branch``.

        Defaults to the selected build's branch.
        """
        if not branch and self.paths is not None:
            branch = self.paths.branch
        if not branch:
            raise MissingInputError(
                "Branch", "Usage: session <branch>"
            )
        assert self.bootstrapper is not None
        self._prepare_tty()
        try:
            return self.bootstrapper.bootstrap_session(branch, attach=attach)
        finally:
            self._restore_tty()

    def _resolve_for(self, paths: BuildPaths) -> EnvironmentSnapshot:
        base_env = {**os.environ, **paths.as_environ()}
        if self.paths == paths:
            base_env.update(self.env_overlay)
        return resolve_environment(
            paths,
            self.platform,
            self.executor,
            self.store,
            env_cfg=self.config.environment or {},
            base_env=base_env,
        )

    def _require_paths(self, variable: str = "SCHRODINGER") -> BuildPaths:
        if self.paths is None:
            raise MissingInputError(
                variable, "Select a build first: select <branch>"
            )
        return self.paths

    def adopt_environ(self, environ: dict[str, str] | None = None) -> None:
        """Pick up a build already selected in the calling shell."""
        if environ is None:
            environ = dict(os.environ)
        try:
            paths = paths_from_environ(environ, self.home)
        except (MissingInputError, ValueError):
            paths = None
        if paths is not None:
            self.paths = paths
            self._debug(f"Adopted build {paths.branch} from $SCHRODINGER")

    # -----------------------
    # Command handling
    # -----------------------

    def _triggers(self, key: str) -> set[str]:
        cmd_cfg = self.config.commands.get(key, {}) or {}
        return set(cmd_cfg.get("triggers", []) or [])

    def handle_command(self, command: str) -> str:
        """Handle a single command line."""
        self.history.append(command)
        stripped = command.strip()
        self.last_exit_code = 0

        if not stripped:
            return ""

        if stripped in self._triggers("clear") or command == "\x0c":
            return UI_CLEAR

        if stripped in self._triggers("help"):
            return self._generate_help()

        if stripped in self._triggers("exit"):
            self.running = False
            return "Bye!"

        try:
            parts = shlex.split(stripped)
        except ValueError:
            parts = stripped.split()

        action = self.command_triggers.get(parts[0])
        if action is None:
            self.last_exit_code = 1
            return f"Unknown command: {parts[0]} (type ? for help)"

        handler = getattr(self, f"_handle_{action}", None)
        if handler is None:
            self.last_exit_code = 1
            return f"Command {parts[0]} is not available."

        self._debug(f"{action} {parts[1:]}")
        try:
            return handler(parts[1:])
        except DevEnvError as e:
            self._error(str(e))
            self.last_exit_code = 1
            return ""
        except ValueError as e:
            self._error(str(e))
            self.last_exit_code = 1
            return ""

    def _fail(self, msg: str) -> str:
        self._error(msg)
        self.last_exit_code = 1
        return ""

    # -----------------------
    # Handlers
    # -----------------------

    def _handle_select(self, args: list[str]) -> str:
        paths = self.select_build(args[0] if args else None)
        for key, value in paths.as_environ().items():
            self._info(f"{key} is set to {value}")
        if self.interactive:
            return ""
        return _path_exports(paths)

    def _handle_env(self, args: list[str]) -> str:
        export = "--export" in args
        try:
            snapshot = self.resolve_environment()
        except EnvironmentUnavailable as e:
            self._warn(str(e))
            self.last_exit_code = 1
            return ""
        self._debug(
            f"{len(snapshot.variables)} variables from {snapshot.source}"
        )
        if snapshot.script_error:
            self._debug(snapshot.script_error)
        if self.interactive and not export:
            self._success(
                f"Build environment for {snapshot.branch} applied "
                f"({snapshot.source})."
            )
            return ""
        # Path variables too, so a fresh shell gets the selected build.
        assert self.paths is not None
        return _path_exports(self.paths) + snapshot.export_lines()

    def _handle_session(self, args: list[str]) -> str:
        attach = bool(self.config.get_path("session.attach", True))
        branch: str | None = None
        for arg in args:
            if arg == "--no-attach":
                attach = False
            elif branch is None:
                branch = arg
        handle = self.bootstrap_session(branch, attach=attach)
        if attach and handle.state is not SessionState.ATTACHED:
            self.last_exit_code = 1
        return ""

    def _where_targets(self, paths: BuildPaths) -> dict[str, Path | None]:
        mmshare_build = first_match(paths.build_dir, "mmshare-v*")
        return {
            "src": paths.source_dir,
            "mm": paths.source_dir / "mmshare",
            "ss": paths.source_dir / "scisol-src",
            "bld": paths.build_dir,
            "mmb": mmshare_build,
            "mmt": (
                mmshare_build / "python" / "test" if mmshare_build else None
            ),
            "ssb": first_match(paths.build_dir, "scisol-v*"),
            "lib": paths.libraries_dir,
        }

    def _handle_where(self, args: list[str]) -> str:
        paths = self._require_paths()
        targets = self._where_targets(paths)
        key = args[0] if args else "src"
        if key not in self.where_names():
            return self._fail(
                f"Unknown location {key}. Choose from: "
                + ", ".join(targets)
            )
        path = targets[key]
        if path is None:
            return self._fail(f"No {key} directory under {paths.build_dir}.")
        return f"{path}\n"

    def _handle_branch(self, args: list[str]) -> str:
        paths = self._require_paths()
        return f"{paths.branch}\n"

    def _handle_status(self, args: list[str]) -> str:
        rows: list[list[Any]] = [
            ["platform", self.platform.name],
            ["home", self.home],
        ]
        if self.paths is None:
            rows.append(["branch", "(none selected)"])
        else:
            paths = self.paths
            assert self.bootstrapper is not None
            rows.extend([
                ["branch", paths.branch],
                ["SCHRODINGER_LIB", paths.libraries_dir],
                ["SCHRODINGER_SRC", paths.source_dir],
                ["SCHRODINGER", paths.build_dir],
                ["environment", "applied" if self.environment_primed
                 else "not applied"],
                ["snapshot", self.store.path_for(paths.branch)
                 if self.store.exists(paths.branch) else "missing"],
                ["session", self.bootstrapper.state(paths.branch).value],
            ])
        return format_table(["key", "value"], rows) + "\n"

    def _handle_switch_branches(self, args: list[str]) -> str:
        if not args:
            raise MissingInputError(
                "Branch", "Specify branch to checkout..."
            )
        git_branch = args[0]
        paths = self._require_paths("SCHRODINGER_SRC")
        self._info(f"$SCHRODINGER_SRC is set to {paths.source_dir}")

        if not paths.source_dir.is_dir():
            return self._fail(f"{paths.source_dir} does not exist.")

        failed: list[str] = []
        for repo in sorted(p for p in paths.source_dir.iterdir() if p.is_dir()):
            self._info(f"Processing {repo} ...")
            fetch = self.executor.run_tty(["git", "-C", str(repo), "fetch"])
            if fetch.exit_code != 0:
                self._debug(
                    f"git fetch in {repo} exited with {fetch.exit_code}"
                )
            result = self.executor.run_tty(
                ["git", "-C", str(repo), "checkout", git_branch]
            )
            if result.exit_code != 0:
                self._error(
                    f"Error checking out {git_branch} in {repo}. "
                    "Is this a Schrodinger suite repo?"
                )
                failed.append(repo.name)

        if failed:
            self.last_exit_code = 1
            return ""
        self._success(f"Checked out {git_branch} in all repositories.")
        return ""

    def mtest_log_path(self) -> Path:
        paths = self._require_paths("SCHRODINGER_SRC")
        return paths.source_dir.parent / "mtest.log"

    def _handle_mtest(self, args: list[str]) -> str:
        log_path = self.mtest_log_path()
        test_args = " ".join(args)
        if "/scisol/" in test_args:
            test_args = f"--post-test {test_args}"
        command = (
            f"make test TEST_ARGS={shlex.quote(test_args)} "
            f"| tee {shlex.quote(str(log_path))}"
        )
        return self._run_tty(command, cwd=os.getcwd())

    def _handle_make(self, args: list[str]) -> str:
        targets = tuple(
            self.config.get_path("make.targets", MAKE_TARGETS) or MAKE_TARGETS
        )
        if not args or args[0] not in targets:
            return self._fail(f"Usage: make <{'|'.join(targets)}>")
        paths = self._require_paths()
        mmshare_build = first_match(paths.build_dir, "mmshare-v*")
        if mmshare_build is None:
            return self._fail(f"No mmshare build found in {paths.build_dir}.")
        return self._run_tty(["make", args[0]], cwd=str(mmshare_build))

    def _handle_run(self, args: list[str]) -> str:
        if not args:
            raise MissingInputError("Program", "Usage: run <program> [ARGS...]")
        paths = self._require_paths()
        return self._run_tty([str(paths.build_dir / "run"), *args])

    def _handle_buildinger(self, args: list[str]) -> str:
        paths = self._require_paths("SCHRODINGER_SRC")
        script = paths.source_dir / BUILDINGER_SCRIPT
        out = self._run_tty([str(script), *args])
        if self.last_exit_code == 0:
            self._debug("Setting up IDE autocomplete")
            for warning in setup_ide_autocomplete(paths):
                self._warn(warning)
        return out

    # -----------------------
    # Execution helpers
    # -----------------------

    def _ui(self) -> Any:
        if self.output_fn is not None and hasattr(self.output_fn, "__self__"):
            return self.output_fn.__self__
        return None

    def _prepare_tty(self) -> None:
        ui = self._ui()
        if ui is not None and hasattr(ui, "prepare_tty_handoff"):
            ui.prepare_tty_handoff()

    def _restore_tty(self) -> None:
        ui = self._ui()
        if ui is not None and hasattr(ui, "restore_after_tty"):
            ui.restore_after_tty()

    def _run_tty(self, command: str | list[str], cwd: str | None = None) -> str:
        shown = command if isinstance(command, str) else shlex.join(command)
        self._emit("RUN", shown)
        self._prepare_tty()
        try:
            result = self.executor.run_tty(
                command, cwd=cwd, env=self.session_env()
            )
        finally:
            self._restore_tty()
        self.last_exit_code = 0 if result.exit_code == 0 else 1
        if result.exit_code != 0:
            self._error(f"{shown} exited with {result.exit_code}")
        return ""

    # -----------------------
    # Help
    # -----------------------

    def _generate_help(self) -> str:
        rows: list[list[Any]] = []
        for _action, cmd_cfg in self.base_commands.items():
            triggers = cmd_cfg.get("triggers", []) or []
            rows.append([
                cmd_cfg.get("usage", triggers[0] if triggers else ""),
                ", ".join(triggers[1:]),
                cmd_cfg.get("description", ""),
            ])
        table = format_table(["command", "aliases", "description"], rows)
        return table + "\n"
