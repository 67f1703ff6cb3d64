"""Line input for the chat REPL.

Interactive terminals get a prompt_toolkit session with line editing and
history. Piped input, or ``--plain``, falls back to reading raw lines so the
REPL can be scripted.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Protocol, TextIO

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory


class LineReader(Protocol):
    def read_line(self, prompt: str) -> str:
        """Show ``prompt`` and return one line without its newline.

        Raises :class:`EOFError` once the input is exhausted.
        """


class PlainLineReader:
    """Read lines from a text stream, echoing the prompt to ``stdout``."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout

    def read_line(self, prompt: str) -> str:
        self._stdout.write(prompt)
        self._stdout.flush()
        line = self._stdin.readline()
        if not line:
            raise EOFError
        return line.rstrip("\r\n")


class PromptLineReader:
    """prompt_toolkit backed reader with optional persistent history."""

    def __init__(self, history_path: Optional[Path] = None, **session_kwargs: object) -> None:
        history: History
        if history_path is not None:
            history_path = history_path.expanduser()
            history_path.parent.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(history_path))
        else:
            history = InMemoryHistory()
        self.history = history
        self._session: PromptSession[str] = PromptSession(history=history, **session_kwargs)

    def read_line(self, prompt: str) -> str:
        return self._session.prompt(prompt)


def build_line_reader(
    *,
    plain: bool = False,
    history_path: Optional[Path] = None,
    stdin: Optional[TextIO] = None,
) -> LineReader:
    stream = stdin if stdin is not None else sys.stdin
    if plain or not stream.isatty():
        return PlainLineReader(stdin=stream)
    return PromptLineReader(history_path)


__all__ = ["LineReader", "PlainLineReader", "PromptLineReader", "build_line_reader"]
