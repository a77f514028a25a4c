# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

if TYPE_CHECKING:
    from .kernel import Kernel  # pragma: no cover


# Commands whose first argument is a branch name.
BRANCH_ACTIONS = frozenset({"select", "session"})


# ----------------------------
# Config helpers (come from config.py facade via kernel.config.get_path)
# ----------------------------


def _cfg_get_path(kernel: Kernel | None, path: str, default):
    if kernel is None:
        return default
    cfg = getattr(kernel, "config", None)
    if cfg is None or not hasattr(cfg, "get_path"):
        return default
    try:
        return cfg.get_path(path, default)
    except Exception:
        return default


def _cfg_bool(kernel: Kernel | None, path: str, default: bool) -> bool:
    return bool(_cfg_get_path(kernel, path, default))


def _cfg_dict(kernel: Kernel | None, path: str, default: dict) -> dict:
    val = _cfg_get_path(kernel, path, default)
    return val if isinstance(val, dict) else default


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    return {
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        "sdgr.toolbar.label": "bg:#0b0b0b #808080",
        "sdgr.toolbar.value": "bg:#0b0b0b #d0d0d0 bold",
        "sdgr.toolbar.warn": "bg:#0b0b0b #d7af00",
    }


def _build_style(kernel: Kernel | None) -> Style:
    base = _default_style_dict()
    overrides = _cfg_dict(kernel, "ui.theme.style", {})
    # only keep string->string
    for k, v in list(overrides.items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


# ----------------------------
# Completion
# ----------------------------


class SdgrCompleter(Completer):
    """Completes command triggers, then branch names / where targets."""

    def __init__(self, kernel: Kernel | None) -> None:
        self.kernel = kernel

    def _argument_choices(self, trigger: str) -> list[str]:
        k = self.kernel
        if k is None:
            return []
        action = k.command_triggers.get(trigger)
        try:
            if action in BRANCH_ACTIONS:
                return k.list_branches()
            if action == "where":
                return k.where_names()
        except Exception:
            return []
        return []

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()
        k = self.kernel
        if k is None:
            return

        # First token: command triggers
        if " " not in before:
            for item in k.list_command_completions():
                if item["key"].startswith(before):
                    yield Completion(
                        item["key"],
                        start_position=-len(before),
                        display_meta=item["description"],
                    )
            return

        # Only the first argument is completed
        parts = before.split()
        if len(parts) > 2 or (len(parts) == 2 and before.endswith(" ")):
            return
        token = "" if before.endswith(" ") else parts[-1]
        for choice in self._argument_choices(parts[0]):
            if choice.startswith(token):
                yield Completion(choice, start_position=-len(token))


# ----------------------------
# PromptSession UI + bottom toolbar
# ----------------------------


class PromptToolkitUI:
    """
    This is the *terminal-friendly* UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - Uses PromptSession so completion menus remain exactly as expected.
      - Adds a bottom toolbar with the selected branch, platform and
        whether the build environment is applied.
    """

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel
        self.session: PromptSession[str] | None = None
        self._completer: SdgrCompleter | None = None
        self._style = _build_style(kernel)

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

    # ---------- toolbar rendering ----------

    def _bottom_toolbar(self):
        if not _cfg_bool(self.kernel, "ui.toolbar.enabled", True):
            return ""
        k = self.kernel
        if k is None:
            return ""

        paths = getattr(k, "paths", None)
        out: list[tuple[str, str]] = [
            ("class:sdgr.toolbar.label", " branch "),
        ]
        if paths is None:
            out.append(("class:sdgr.toolbar.warn", "none "))
        else:
            out.append(("class:sdgr.toolbar.value", f"{paths.branch} "))

        out.append(("class:sdgr.toolbar.label", "| env "))
        if getattr(k, "environment_primed", False):
            out.append(("class:sdgr.toolbar.value", "applied "))
        else:
            out.append(("class:sdgr.toolbar.warn", "not applied "))

        platform = getattr(k, "platform", None)
        if platform is not None:
            out.append(("class:sdgr.toolbar.label", "| "))
            out.append(("class:sdgr.toolbar.value", f"{platform.name} "))
        return out

    # ---------- session ----------

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        self._completer = SdgrCompleter(self.kernel)
        self.session = PromptSession(
            key_bindings=self.build_key_bindings(),
            completer=self._completer,
            complete_while_typing=True,
            style=self._style,
            bottom_toolbar=self._bottom_toolbar,
        )

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        # If last output didn't end with newline, insert one
        # before prompt redraw
        if self._needs_newline_before_prompt:
            print_formatted_text(
                ANSI("\n"), style=self._style, end=""
            )
            self._needs_newline_before_prompt = False

        with patch_stdout():
            # prompt contains ANSI from kernel.prompt(), so preserve it
            return self.session.prompt(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline).

        Track prompt safety.
        """
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    def clear(self) -> None:
        pt_clear()

    # ---------- TTY handoff support ----------

    def prepare_tty_handoff(self) -> None:
        """Prepare for handing control to a TTY program (make, tmux)."""
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

    def restore_after_tty(self) -> None:
        """TTY programs leave the cursor at the start of a line."""
        self._needs_newline_before_prompt = False

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            try:
                event.app.renderer.clear()
            except Exception:
                pass
            try:
                event.current_buffer.reset()
            except Exception:
                pass
            event.app.invalidate()

        return kb
