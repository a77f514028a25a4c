from __future__ import annotations

from pathlib import Path

from sdgr_devenv.utils import find_files, format_table


def test_format_table_aligns_columns() -> None:
    out = format_table(["key", "value"], [["branch", "2024-1"], ["home", "/h"]])

    assert out.splitlines() == [
        "key     value",
        "branch  2024-1",
        "home    /h",
    ]


def test_format_table_with_title() -> None:
    out = format_table(["a"], [["1"]], title="T")
    assert out.splitlines()[0] == "T"


def test_format_table_empty_rows() -> None:
    assert format_table(["a"], []) == ""


def test_find_files_recurses(tmp_path: Path) -> None:
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / "b" / "x.pyi").touch()
    (tmp_path / "y.pyi").touch()
    (tmp_path / "z.py").touch()

    found = find_files(tmp_path, "*.pyi")

    assert found == sorted([tmp_path / "a" / "b" / "x.pyi", tmp_path / "y.pyi"])


def test_find_files_follows_symlinked_dirs(tmp_path: Path) -> None:
    real = tmp_path / "real"
    real.mkdir()
    (real / "stub.pyi").touch()
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(real, target_is_directory=True)

    assert find_files(root, "*.pyi") == [root / "link" / "stub.pyi"]


def test_find_files_missing_root(tmp_path: Path) -> None:
    assert find_files(tmp_path / "missing", "*") == []
