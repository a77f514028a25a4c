# sdgr-devenv — Schrodinger Core Suite Developer Environment
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.


"""
IDE autocomplete setup after a buildinger run.

- Qt: copy the ``*.pyi`` stubs shipped in SCHRODINGER_LIB into
  ``site-packages/schrodinger/Qt`` unless stubs are already there.
- scisol: when a ``scisol-v*`` build exists, symlink its python packages
  into ``site-packages/schrodinger/application/scisol/packages``.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .paths import BuildPaths, first_match
from .utils import find_files

BUILDINGER_SCRIPT = "mmshare/build_tools/buildinger.sh"


def site_packages_dir(paths: BuildPaths) -> Path | None:
    lib_dir = paths.build_dir / "internal" / "lib"
    python_dir = first_match(lib_dir, "python*")
    if python_dir is None:
        return None
    site_packages = python_dir / "site-packages"
    return site_packages if site_packages.is_dir() else None


def setup_qt_stubs(paths: BuildPaths, site_packages: Path) -> bool:
    """Copy Qt stubs into place; True if stubs are present afterwards."""
    qt_dir = site_packages / "schrodinger" / "Qt"
    if not find_files(qt_dir, "*.pyi"):
        stubs = find_files(paths.libraries_dir, "*.pyi")
        if stubs and qt_dir.is_dir():
            for stub in stubs:
                shutil.copy2(stub, qt_dir / stub.name)
    return bool(find_files(qt_dir, "*.pyi"))


def link_scisol_packages(paths: BuildPaths, site_packages: Path) -> bool:
    """Symlink scisol packages; True if their stubs are reachable."""
    packages_dir = (
        site_packages / "schrodinger" / "application" / "scisol" / "packages"
    )
    scisol_build = first_match(paths.build_dir, "scisol-v*")
    if scisol_build is not None and packages_dir.is_dir():
        for pkg in sorted(scisol_build.glob("lib/*/python_packages/scisol/*")):
            if not pkg.is_dir():
                continue
            link = packages_dir / pkg.name
            if link.is_symlink() or link.is_file():
                link.unlink()
            elif link.exists():
                # a real directory is left alone
                continue
            link.symlink_to(pkg, target_is_directory=True)
    return bool(find_files(packages_dir, "*.pyi"))


def setup_ide_autocomplete(paths: BuildPaths) -> list[str]:
    """Run both setup steps; return warnings for the ones that failed."""
    site_packages = site_packages_dir(paths)
    if site_packages is None:
        return [f"No site-packages found under {paths.build_dir}/internal/lib."]

    warnings: list[str] = []
    if not setup_qt_stubs(paths, site_packages):
        warnings.append("Failed to setup Qt autocomplete in IDE.")
    if not link_scisol_packages(paths, site_packages):
        warnings.append("Failed to setup scisol autocomplete in IDE.")
    return warnings
