# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
Utility functions for sdgr.
"""

import fnmatch
import os
from pathlib import Path
from typing import Any


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str = ""
) -> str:
    """
    Format data as a simple text table without external dependencies.

    Args:
        headers: List of column header names
        rows: List of rows, where each row is a list of values
        title: Optional title to display above the table

    Returns:
        Formatted table as a string
    """
    if not rows:
        return ""

    str_headers = [str(h) for h in headers]
    str_rows = [[str(val) for val in row] for row in rows]

    col_widths = []
    for i, header in enumerate(str_headers):
        max_width = len(header)
        for row in str_rows:
            if i < len(row):
                max_width = max(max_width, len(row[i]))
        col_widths.append(max_width)

    lines = []
    if title:
        lines.append(title)

    lines.append("  ".join(
        header.ljust(col_widths[i]) for i, header in enumerate(str_headers)
    ).rstrip())
    for row in str_rows:
        lines.append("  ".join(
            val.ljust(col_widths[i]) for i, val in enumerate(row)
        ).rstrip())

    return "\n".join(lines)


def find_files(root: Path, pattern: str) -> list[Path]:
    """Recursively find files under ``root`` matching a glob pattern.

    Follows directory symlinks (like ``find -L``), which pathlib's rglob
    does not do on every supported Python.
    """
    if not root.is_dir():
        return []
    found: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root, followlinks=True):
        for name in fnmatch.filter(filenames, pattern):
            found.append(Path(dirpath) / name)
    found.sort()
    return found
