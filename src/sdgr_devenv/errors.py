# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Error kinds raised by sdgr-devenv operations.

- MissingInputError: a required argument or variable is absent. Fatal to
  the current command.
- EnvironmentUnavailable: the build environment could not be resolved.
  Callers degrade and continue.
"""

from __future__ import annotations


class DevEnvError(Exception):
    """Base class for reported sdgr-devenv errors."""


class MissingInputError(DevEnvError, ValueError):
    """A required argument or environment variable is not set."""

    def __init__(self, name: str, hint: str = ""):
        self.name = name
        self.hint = hint
        msg = f"{name} is not set."
        if hint:
            msg = f"{msg} {hint}"
        super().__init__(msg)


class EnvironmentUnavailable(DevEnvError):
    """The build environment could not be run or restored."""
