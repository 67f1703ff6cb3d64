from __future__ import annotations

import io
from pathlib import Path

import pytest
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput

from mlc_chat_cli.cli.chat_prompt import PlainLineReader, PromptLineReader, build_line_reader


def test_plain_reader_echoes_prompt_and_strips_newline() -> None:
    stdout = io.StringIO()
    reader = PlainLineReader(stdin=io.StringIO("hello\r\n\nbye"), stdout=stdout)

    assert reader.read_line("USER: ") == "hello"
    assert reader.read_line("USER: ") == ""
    assert reader.read_line("USER: ") == "bye"
    with pytest.raises(EOFError):
        reader.read_line("USER: ")
    assert stdout.getvalue() == "USER: " * 4


def test_prompt_reader_persists_history(tmp_path: Path) -> None:
    history_path = tmp_path / "state" / "history"

    with create_pipe_input() as pipe:
        reader = PromptLineReader(history_path, input=pipe, output=DummyOutput())
        pipe.send_text("hello\r")
        line = reader.read_line("USER: ")

    assert line == "hello"
    assert isinstance(reader.history, FileHistory)
    assert "+hello" in history_path.read_text(encoding="utf-8")


def test_prompt_reader_raises_eof_on_ctrl_d() -> None:
    with create_pipe_input() as pipe:
        reader = PromptLineReader(input=pipe, output=DummyOutput())
        pipe.send_text("\x04")
        with pytest.raises(EOFError):
            reader.read_line("USER: ")

    assert isinstance(reader.history, InMemoryHistory)


def test_build_line_reader_uses_plain_reader_for_pipes() -> None:
    reader = build_line_reader(stdin=io.StringIO("x\n"))

    assert isinstance(reader, PlainLineReader)
    assert reader.read_line("") == "x"


def test_build_line_reader_honours_plain_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    stream = io.StringIO("")
    monkeypatch.setattr(stream, "isatty", lambda: True)

    assert isinstance(build_line_reader(plain=True, stdin=stream), PlainLineReader)
