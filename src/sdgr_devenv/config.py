# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Configuration and filesystem discovery for sdgr-devenv.

Handles:
- Packaged YAML defaults loading (sdgr_devenv/defaults/system.yaml)
- Suite home resolution (SDGR_HOME, per-OS templates)
- Data root resolution for the crash log (SDGR_DATA_HOME, ~/.local/share)
- Debug switch (SDGR_DEBUG)
- ANSI coloring constants + UI_CLEAR semantic sentinel
"""

from __future__ import annotations

import getpass
import os
from pathlib import Path
from typing import Any

import yaml

try:
    # Py3.9+
    from importlib import resources as importlib_resources
except Exception:  # pragma: no cover
    import importlib_resources  # type: ignore

from .errors import DevEnvError

# -----------------------
# UI + branding constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "magenta": "\033[38;5;126;1m",
    "yellow": "\033[38;5;226;1m",
    "orange": "\033[38;2;255;165;1;1m",
    "purple": "\033[38;5;96;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

TAG_COLORS: dict[str, str] = {
    "INFO": "cyan",
    "WARN": "yellow",
    "ERR": "red",
    "OK": "green",
    "DEBUG": "dim",
    "RUN": "magenta",
}

# Semantic UI intent for clear screen operations
UI_CLEAR = "__UI_CLEAR__"


def colorize(tag: str, text: str) -> str:
    """Render ``[TAG] text`` with the tag's configured color."""
    color = ANSI_COLORS.get(TAG_COLORS.get(tag, "reset"), "")
    return f"{color}[{tag}]{ANSI_COLORS['reset']} {text}"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Simple config wrapper that implements the ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def system(self) -> dict[str, Any]:
        return self._config.get("system", {})

    @property
    def home(self) -> dict[str, str]:
        return self._config.get("home", {})

    @property
    def environment(self) -> dict[str, Any]:
        return self._config.get("environment", {})

    @property
    def session(self) -> dict[str, Any]:
        return self._config.get("session", {})

    @property
    def commands(self) -> dict[str, Any]:
        return self._config.get("commands", {})

    @property
    def ui(self) -> dict[str, Any]:
        ui_cfg = self._config.get("ui", {})
        return ui_cfg if isinstance(ui_cfg, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("session.roles", []) -> list of role dicts
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Home + data root helpers
# -----------------------


def resolve_home(cfg: YAMLConfig, family: str, user: str | None = None) -> Path:
    """Get the suite home directory in which core suite development happens.

    Resolution order:
    1. SDGR_HOME environment variable (if set)
    2. ``home.<family>`` template from config, formatted with ``{user}``

    Raises:
        DevEnvError: if the OS family has no configured home.
    """
    override = os.getenv("SDGR_HOME")
    if override:
        return Path(override)

    template = cfg.home.get(family)
    if not template:
        raise DevEnvError(
            "Unknown OS. sdgr is designed to work on Linux, Darwin "
            "and Windows."
        )

    if user is None:
        user = os.getenv("USER") or getpass.getuser()
    return Path(template.format(user=user))


def get_data_root() -> Path:
    """Get the data root directory for sdgr.

    Resolution order:
    1. SDGR_DATA_HOME environment variable (if set)
    2. ~/.local/share (default)
    """
    data_home = os.getenv("SDGR_DATA_HOME")
    if data_home:
        root = Path(data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def crash_log_path(data_root: Path) -> Path:
    """<data_root>/sdgr/logs/crash.log"""
    return data_root / "sdgr" / "logs" / "crash.log"


def is_debug(cfg: YAMLConfig | None = None) -> bool:
    """Debug output is on when SDGR_DEBUG=1 or ``system.debug`` is true."""
    if os.getenv("SDGR_DEBUG") == "1":
        return True
    if cfg is None:
        return False
    return bool(cfg.get_path("system.debug", False))


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("sdgr_devenv.defaults")
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from sdgr_devenv/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config() -> YAMLConfig:
    """
    Load system.yaml from packaged defaults and return a YAMLConfig wrapper.
    """
    return YAMLConfig(load_defaults_yaml("system.yaml"))
