from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from sdgr_devenv import platforms
from sdgr_devenv.environment import (
    ENV_MARKER,
    EnvironmentSnapshot,
    capture_script_environment,
    resolve_environment,
)
from sdgr_devenv.errors import EnvironmentUnavailable
from sdgr_devenv.executor import SubprocessExecutor
from sdgr_devenv.paths import BuildPaths, select_build
from sdgr_devenv.store import FileSnapshotStore


def _env0(values: dict[str, str]) -> str:
    return "".join(f"{k}={v}\0" for k, v in values.items())


class FakeExecutor:
    """Answers run_argv with a canned before/after environment dump."""

    def __init__(
        self,
        before: dict[str, str] | None = None,
        after: dict[str, str] | None = None,
        exit_code: int = 0,
        stderr: str = "",
    ):
        self.before = before or {}
        self.after = after or {}
        self.exit_code = exit_code
        self.stderr = stderr
        self.calls: list[dict] = []

    def run_argv(self, script, posargs=None, cwd=None, env=None,
                 shell="/bin/sh", timeout=None):
        self.calls.append(
            {"script": script, "posargs": posargs, "env": env, "shell": shell}
        )
        stdout = _env0(self.before) + f"{ENV_MARKER}\0" + _env0(self.after)
        return (self.exit_code, stdout, self.stderr, "t", 1)


@pytest.fixture
def paths(tmp_path: Path) -> BuildPaths:
    return select_build("2024-1", tmp_path)


@pytest.fixture
def build_env_script(paths: BuildPaths) -> Path:
    script = paths.source_dir / "mmshare" / "build_env"
    script.parent.mkdir(parents=True)
    script.write_text("export QTDIR=/opt/qt\n")
    return script


@pytest.fixture
def store(tmp_path: Path) -> FileSnapshotStore:
    return FileSnapshotStore(tmp_path)


# ----------------------------------------------------------------
# Script capture
# ----------------------------------------------------------------


def test_capture_reports_changed_variables(build_env_script: Path) -> None:
    executor = FakeExecutor(
        before={"HOME": "/home/u", "PATH": "/bin", "SHLVL": "1"},
        after={
            "HOME": "/home/u",
            "PATH": "/qt/bin:/bin",
            "SHLVL": "2",
            "QTDIR": "/opt/qt",
            "_": "/usr/bin/env",
        },
    )

    changed, after = capture_script_environment(executor, build_env_script)

    assert changed == {"PATH": "/qt/bin:/bin", "QTDIR": "/opt/qt"}
    assert after["HOME"] == "/home/u"
    assert executor.calls[0]["posargs"] == [str(build_env_script)]
    assert executor.calls[0]["shell"] == "bash"


def test_capture_keeps_values_with_newlines_and_equals(
    build_env_script: Path,
) -> None:
    executor = FakeExecutor(after={"MULTI": "a\nb", "EQ": "x=y"})

    changed, _ = capture_script_environment(executor, build_env_script)

    assert changed == {"MULTI": "a\nb", "EQ": "x=y"}


def test_capture_missing_script(tmp_path: Path) -> None:
    with pytest.raises(EnvironmentUnavailable, match="does not exist"):
        capture_script_environment(FakeExecutor(), tmp_path / "build_env")


def test_capture_failing_script(build_env_script: Path) -> None:
    executor = FakeExecutor(exit_code=2, stderr="line 3: oops\n")

    with pytest.raises(EnvironmentUnavailable, match="oops"):
        capture_script_environment(executor, build_env_script)


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
def test_capture_with_real_shell(tmp_path: Path) -> None:
    script = tmp_path / "build_env"
    script.write_text(
        "export SDGR_CAPTURE_TEST=hello\n"
        "echo 'noise on stdout'\n"
    )

    changed, _ = capture_script_environment(SubprocessExecutor(), script)

    assert changed["SDGR_CAPTURE_TEST"] == "hello"


# ----------------------------------------------------------------
# resolve_environment
# ----------------------------------------------------------------


def test_script_platform_runs_script(
    paths: BuildPaths, build_env_script: Path, store: FileSnapshotStore
) -> None:
    executor = FakeExecutor(after={"QTDIR": "/opt/qt"})

    snapshot = resolve_environment(paths, platforms.DARWIN, executor, store)

    assert isinstance(snapshot, EnvironmentSnapshot)
    assert snapshot.source == "script"
    assert snapshot.variables == {"QTDIR": "/opt/qt"}
    # Only the container writes the snapshot.
    assert not store.exists("2024-1")


def test_script_platform_passes_base_env(
    paths: BuildPaths, build_env_script: Path, store: FileSnapshotStore
) -> None:
    executor = FakeExecutor()

    resolve_environment(
        paths, platforms.DARWIN, executor, store, base_env={"A": "1"}
    )

    assert executor.calls[0]["env"] == {"A": "1"}


def test_container_writes_snapshot_keys(
    paths: BuildPaths, build_env_script: Path, store: FileSnapshotStore
) -> None:
    executor = FakeExecutor(
        before={"SCHRODINGER_BUILD_ENV_VERSION": "0123456789abc"},
        after={
            "SCHRODINGER_BUILD_ENV_VERSION": "0123456789abc",
            "QTDIR": "/opt/qt",
            "OTHER": "x",
        },
    )

    resolve_environment(paths, platforms.LINUX_CONTAINER, executor, store)

    assert store.load("2024-1") == {
        "QTDIR": "/opt/qt",
        "SCHRODINGER_BUILD_ENV_VERSION": "0123456789abc",
    }


def test_script_platform_missing_script(
    paths: BuildPaths, store: FileSnapshotStore
) -> None:
    with pytest.raises(EnvironmentUnavailable):
        resolve_environment(paths, platforms.DARWIN, FakeExecutor(), store)


def test_host_restores_snapshot_and_prefixes_buildvenv(
    paths: BuildPaths, store: FileSnapshotStore
) -> None:
    store.save("2024-1", {
        "QTDIR": "/opt/qt",
        "SCHRODINGER_BUILD_ENV_VERSION": "0123456789abc",
    })
    executor = FakeExecutor()

    snapshot = resolve_environment(
        paths, platforms.LINUX_HOST, executor, store,
        base_env={"PATH": "/usr/bin"},
    )

    assert executor.calls == []
    assert snapshot.source == "cache"
    assert snapshot.variables["QTDIR"] == "/opt/qt"
    assert snapshot.variables["PATH"] == (
        f"{paths.build_dir}/buildvenv/0123456/bin:/usr/bin"
    )


def test_host_sources_script_over_snapshot(
    paths: BuildPaths, build_env_script: Path, store: FileSnapshotStore
) -> None:
    store.save("2024-1", {"QTDIR": "/cached/qt"})
    executor = FakeExecutor(
        before={"QTDIR": "/cached/qt"},
        after={"QTDIR": "/cached/qt", "LD_LIBRARY_PATH": "/cached/qt/lib"},
    )

    snapshot = resolve_environment(paths, platforms.LINUX_HOST, executor, store)

    assert snapshot.source == "cache+script"
    assert snapshot.script_error == ""
    assert snapshot.variables == {
        "QTDIR": "/cached/qt",
        "LD_LIBRARY_PATH": "/cached/qt/lib",
    }
    assert executor.calls[0]["env"]["QTDIR"] == "/cached/qt"


def test_host_keeps_snapshot_when_script_fails(
    paths: BuildPaths, build_env_script: Path, store: FileSnapshotStore
) -> None:
    store.save("2024-1", {"QTDIR": "/cached/qt"})
    executor = FakeExecutor(exit_code=1, stderr="build_env: not on CentOS\n")

    snapshot = resolve_environment(paths, platforms.LINUX_HOST, executor, store)

    assert snapshot.source == "cache"
    assert snapshot.variables == {"QTDIR": "/cached/qt"}
    assert "not on CentOS" in snapshot.script_error


def test_host_without_snapshot_is_unavailable(
    paths: BuildPaths, store: FileSnapshotStore
) -> None:
    with pytest.raises(EnvironmentUnavailable, match="does not exist"):
        resolve_environment(paths, platforms.LINUX_HOST, FakeExecutor(), store)


def test_unknown_platform_is_unavailable(
    paths: BuildPaths, store: FileSnapshotStore
) -> None:
    with pytest.raises(EnvironmentUnavailable):
        resolve_environment(paths, platforms.UNKNOWN, FakeExecutor(), store)


def test_export_lines_quote_values() -> None:
    snapshot = EnvironmentSnapshot(
        branch="2024-1", variables={"A": "plain", "B": "two words"}
    )
    assert snapshot.export_lines() == "export A=plain\nexport B='two words'\n"
