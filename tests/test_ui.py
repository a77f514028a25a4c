# tests/test_ui.py
from __future__ import annotations

import importlib
from pathlib import Path

import pytest

prompt_toolkit = pytest.importorskip("prompt_toolkit")

from prompt_toolkit.completion import CompleteEvent  # noqa: E402
from prompt_toolkit.document import Document  # noqa: E402

from sdgr_devenv import config, platforms  # noqa: E402
from sdgr_devenv.kernel import Kernel  # noqa: E402
from sdgr_devenv.store import FileSnapshotStore  # noqa: E402


@pytest.fixture
def kernel(tmp_path: Path) -> Kernel:
    home = tmp_path / "builds"
    for branch in ("2023-4", "2024-1"):
        (home / branch / "source").mkdir(parents=True)
    return Kernel(
        executor=None,
        multiplexer=None,
        store=FileSnapshotStore(home),
        config=config.load_system_config(),
        platform=platforms.LINUX_HOST,
        home=home,
        error_fn=lambda _: None,
    )


def _complete(kernel: Kernel, text: str) -> list[str]:
    ui = importlib.import_module("sdgr_devenv.ui")
    completer = ui.SdgrCompleter(kernel)
    return [
        c.text
        for c in completer.get_completions(Document(text), CompleteEvent())
    ]


def test_completes_command_triggers(kernel: Kernel) -> None:
    assert _complete(kernel, "se") == ["select", "session"]


def test_completes_branch_for_select(kernel: Kernel) -> None:
    assert _complete(kernel, "select ") == ["2023-4", "2024-1"]
    assert _complete(kernel, "stmux 2024") == ["2024-1"]


def test_completes_where_targets(kernel: Kernel) -> None:
    assert _complete(kernel, "where mm") == ["mm", "mmb", "mmt"]


def test_completes_only_first_argument(kernel: Kernel) -> None:
    assert _complete(kernel, "select 2024-1 ") == []
    assert _complete(kernel, "status ") == []


def test_prompt_toolkit_ui_contract_surface() -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    inst = ui.PromptToolkitUI()

    assert callable(getattr(inst, "read", None))
    assert callable(getattr(inst, "write", None))
    assert callable(getattr(inst, "clear", None))
    assert callable(getattr(inst, "build_key_bindings", None))


def test_ctrl_l_binding_is_registered() -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    kb = ui.PromptToolkitUI().build_key_bindings()

    keys = [
        getattr(key, "value", key)
        for binding in kb.bindings
        for key in binding.keys
    ]
    assert "c-l" in keys


def test_toolbar_without_build(kernel: Kernel) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    text = "".join(t for _, t in ui.PromptToolkitUI(kernel)._bottom_toolbar())

    assert "branch none" in text
    assert "not applied" in text
    assert "linux-host" in text


def test_toolbar_with_build(kernel: Kernel) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    kernel.select_build("2024-1")
    kernel.environment_primed = True

    text = "".join(t for _, t in ui.PromptToolkitUI(kernel)._bottom_toolbar())

    assert "2024-1" in text
    assert "| env applied" in text


def test_toolbar_can_be_disabled(kernel: Kernel, monkeypatch: pytest.MonkeyPatch) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    monkeypatch.setattr(
        ui, "_cfg_bool", lambda k, path, default: False, raising=True
    )
    assert ui.PromptToolkitUI(kernel)._bottom_toolbar() == ""


def test_ui_clear_is_ansi_free(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    called = {"clear": 0}

    def fake_clear():
        called["clear"] += 1

    monkeypatch.setattr(ui, "pt_clear", fake_clear, raising=True)

    assert ui.PromptToolkitUI().clear() is None
    assert called["clear"] == 1


def test_ui_write_noops_on_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    called = {"print": 0}

    def fake_print_formatted_text(*args, **kwargs):
        called["print"] += 1

    monkeypatch.setattr(ui, "print_formatted_text", fake_print_formatted_text, raising=True)

    inst = ui.PromptToolkitUI()
    inst.write("")
    inst.write(None)  # type: ignore[arg-type]
    assert called["print"] == 0


def test_ui_write_wraps_ansi_and_tracks_newline(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    seen: list[object] = []

    monkeypatch.setattr(
        ui, "print_formatted_text",
        lambda arg, **kwargs: seen.append(arg), raising=True
    )

    inst = ui.PromptToolkitUI()
    inst.write("\033[31m[ERR]\033[0m no build")
    assert seen[0].__class__.__name__ == "ANSI"
    assert inst._needs_newline_before_prompt is True

    inst.prepare_tty_handoff()
    assert len(seen) == 2
    assert inst._needs_newline_before_prompt is False


def test_ui_read_creates_session_once(monkeypatch: pytest.MonkeyPatch, kernel: Kernel) -> None:
    ui = importlib.import_module("sdgr_devenv.ui")
    created = {"sessions": 0}

    class FakeSession:
        def __init__(self, **kwargs):
            created["sessions"] += 1
            created["completer"] = kwargs.get("completer")

        def prompt(self, arg):
            return "status"

    monkeypatch.setattr(ui, "PromptSession", FakeSession, raising=True)

    inst = ui.PromptToolkitUI(kernel)
    assert inst.read("sdgr>") == "status"
    assert inst.read("sdgr>") == "status"

    assert created["sessions"] == 1
    assert isinstance(created["completer"], ui.SdgrCompleter)
