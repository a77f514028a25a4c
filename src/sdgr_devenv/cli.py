# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
sdgr CLI entry point and REPL loop.

Design:
- CLI owns process startup: config, OS detection, home resolution.
- Kernel is the session engine (config+store+executor+tmux injected).
- ``sdgr <command> ...`` runs one command and exits with its status.
- ``sdgr`` alone starts the REPL; the selected build lives in the kernel
  for the rest of the session.

Shell usage:
    eval "$(sdgr select 2024-1)"
    eval "$(sdgr env)"
    cd "$(sdgr where mm)"
"""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Callable

from . import config
from .errors import DevEnvError
from .executor import SubprocessExecutor
from .kernel import Kernel, write_crash_log
from .multiplexer import TmuxMultiplexer
from .platforms import Platform, detect_platform
from .store import DEFAULT_PREFIX, FileSnapshotStore

USAGE = "Usage: sdgr [--debug] [--branch BRANCH] [COMMAND [ARGS...]]"


def run_repl(
    kernel: Kernel,
    ui=None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the standard sdgr REPL loop."""
    while kernel.running:
        try:
            prompt = kernel.prompt()

            if ui is not None:
                line = ui.read(prompt)
            else:
                line = input_fn(prompt + " ")

            line = (line or "").strip()
            if not line:
                continue

            try:
                response = kernel.handle_command(line)

                if response == config.UI_CLEAR:
                    if ui is not None:
                        ui.clear()
                    else:
                        output_fn("\033[2J\033[H")
                    continue

                if response:
                    if ui is not None:
                        ui.write(response)
                    else:
                        output_fn(response)

            except Exception as e:
                # Unhandled exception - write crash log
                write_crash_log(
                    e,
                    raw_command=line,
                    branch=kernel.paths.branch if kernel.paths else "",
                )
                error_msg = (
                    f"[ERROR] Unhandled exception: "
                    f"{type(e).__name__}: {e}"
                )
                if ui is not None:
                    ui.write(error_msg + "\n")
                else:
                    output_fn(error_msg)
                # Continue session

        except (KeyboardInterrupt, EOFError):
            msg = "\nBye!\n"
            if ui is not None:
                ui.write(msg)
            else:
                output_fn(msg)
            break


def parse_args(argv: list[str]) -> tuple[dict[str, object], list[str]]:
    """Split leading global options from the command line.

    Returns:
        (options, command_parts)
    """
    options: dict[str, object] = {"debug": False, "branch": None}
    i = 0
    while i < len(argv) and argv[i].startswith("--"):
        arg = argv[i]
        if arg == "--debug":
            options["debug"] = True
        elif arg == "--branch":
            if i + 1 >= len(argv):
                raise DevEnvError("--branch requires a value.")
            i += 1
            options["branch"] = argv[i]
        elif arg.startswith("--branch="):
            options["branch"] = arg.split("=", 1)[1]
        elif arg in ("--help", "-h"):
            options["help"] = True
        else:
            # Command options (e.g. "env --export") end global parsing.
            break
        i += 1
    return options, argv[i:]


def build_kernel(
    cfg: config.YAMLConfig | None = None,
    platform: Platform | None = None,
) -> Kernel:
    """Explicit wiring: config + executor + store + tmux into a kernel."""
    if cfg is None:
        cfg = config.load_system_config()
    if platform is None:
        platform = detect_platform()

    home = config.resolve_home(cfg, platform.family)
    executor = SubprocessExecutor(force_color=False)
    store = FileSnapshotStore(
        home, prefix=cfg.environment.get("snapshot_prefix", DEFAULT_PREFIX)
    )
    kernel = Kernel(
        executor=executor,
        multiplexer=TmuxMultiplexer(executor),
        store=store,
        config=cfg,
        platform=platform,
        home=home,
        debug=config.is_debug(cfg),
    )
    kernel.adopt_environ(dict(os.environ))
    return kernel


def main(argv: list[str] | None = None) -> int:
    """Main entry point for sdgr."""
    if argv is None:
        argv = sys.argv[1:]

    try:
        options, parts = parse_args(argv)
        if options.get("help"):
            print(USAGE)
            return 0
        kernel = build_kernel()
        if options["debug"]:
            kernel.debug = True
        if options["branch"]:
            kernel.select_build(str(options["branch"]))
    except (DevEnvError, ValueError) as e:
        sys.stderr.write(config.colorize("ERR", str(e)) + "\n")
        return 1

    if parts:
        try:
            output = kernel.handle_command(shlex.join(parts))
        except Exception as e:
            write_crash_log(e, raw_command=" ".join(parts))
            raise
        if output and output != config.UI_CLEAR:
            sys.stdout.write(output)
        return kernel.last_exit_code

    start_output = kernel.start(include_prompt=False)

    if os.environ.get("SDGR_LEGACY_UI") == "1" or not sys.stdin.isatty():
        if start_output:
            print(start_output)
        run_repl(kernel)
        return kernel.last_exit_code

    # Default: PromptToolkitUI (keeps terminal scrollback/copy/select)
    from .ui import PromptToolkitUI

    ui = PromptToolkitUI(kernel)
    kernel.output_fn = ui.write
    kernel.error_fn = ui.write

    if start_output:
        ui.write(start_output)
        if not start_output.endswith("\n"):
            ui.write("\n")

    run_repl(kernel, ui=ui)
    return kernel.last_exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
