from __future__ import annotations

import pytest

from sdgr_devenv.executor import TTYResult
from sdgr_devenv.multiplexer import MultiplexerError, TmuxMultiplexer


class RecordingExecutor:
    def __init__(self, responses: list[tuple[int, str, str]] | None = None):
        self.responses = list(responses or [])
        self.commands: list[list[str]] = []
        self.tty_commands: list[list[str]] = []

    def run_cmd(self, argv, cwd=None, env=None, timeout=None):
        self.commands.append(list(argv))
        code, out, err = self.responses.pop(0) if self.responses else (0, "", "")
        return (code, out, err, "t", 1)

    def run_tty(self, command, cwd=None, env=None, timeout=None):
        self.tty_commands.append(list(command))
        return TTYResult(exit_code=0, started_at="t", duration_ms=1)


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


def test_has_session_uses_exact_match() -> None:
    executor = RecordingExecutor([(1, "", "can't find session")])
    tmux = TmuxMultiplexer(executor)

    assert tmux.has_session("2024-1") is False
    assert executor.commands == [["tmux", "has-session", "-t", "=2024-1"]]


def test_has_session_true_on_zero_exit(executor: RecordingExecutor) -> None:
    assert TmuxMultiplexer(executor).has_session("2024-1") is True


def test_new_session_passes_env_and_start_dir() -> None:
    executor = RecordingExecutor([(0, "2024-1:0\n", "")])
    tmux = TmuxMultiplexer(executor)

    target = tmux.new_session("2024-1", "src", "/h/2024-1/source", {"A": "1"})

    assert target == "2024-1:0"
    argv = executor.commands[0]
    assert argv[:2] == ["tmux", "new-session"]
    assert "-d" in argv
    assert argv[argv.index("-s") + 1] == "2024-1"
    assert argv[argv.index("-n") + 1] == "src"
    assert argv[argv.index("-c") + 1] == "/h/2024-1/source"
    assert argv[argv.index("-e") + 1] == "A=1"


def test_new_window_appends_to_session() -> None:
    executor = RecordingExecutor([(0, "2024-1:3\n", "")])
    tmux = TmuxMultiplexer(executor)

    target = tmux.new_window("2024-1", "build/test", None, {})

    assert target == "2024-1:3"
    argv = executor.commands[0]
    assert argv[argv.index("-t") + 1] == "=2024-1:"
    assert "-c" not in argv
    assert "-e" not in argv


def test_failed_command_raises() -> None:
    executor = RecordingExecutor([(1, "", "duplicate session: 2024-1")])
    tmux = TmuxMultiplexer(executor)

    with pytest.raises(MultiplexerError, match="duplicate session"):
        tmux.new_session("2024-1", "src", None, {})


def test_send_keys_presses_enter(executor: RecordingExecutor) -> None:
    TmuxMultiplexer(executor).send_keys("2024-1:0", "cd /x")

    assert executor.commands == [
        ["tmux", "send-keys", "-t", "2024-1:0", "cd /x", "C-m"]
    ]


def test_attach_outside_tmux_detaches_others(
    executor: RecordingExecutor, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("TMUX", raising=False)

    assert TmuxMultiplexer(executor).attach("2024-1") == 0
    assert executor.tty_commands == [
        ["tmux", "attach-session", "-d", "-t", "=2024-1"]
    ]


def test_attach_without_detaching(
    executor: RecordingExecutor, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("TMUX", raising=False)

    TmuxMultiplexer(executor).attach("2024-1", detach_others=False)
    assert executor.tty_commands == [["tmux", "attach-session", "-t", "=2024-1"]]


def test_attach_inside_tmux_switches_client(
    executor: RecordingExecutor, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")

    TmuxMultiplexer(executor).attach("2024-1")
    assert executor.tty_commands == [["tmux", "switch-client", "-t", "=2024-1"]]
