# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
sdgr-devenv core package.

Selects a Schrodinger core suite build, sources its build environment and
bootstraps a per-branch tmux session.
"""
from .kernel import Kernel as Kernel  # noqa: F401 (re-export)

__version__ = "0.1.0"
