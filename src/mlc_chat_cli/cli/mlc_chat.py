"""Terminal chat for compiled MLC models.

The CLI resolves a compute device and the artefacts of one model from the
``dist`` directory convention (see :mod:`mlc_chat_cli.inference.artifacts`),
initialises the chat engine with them and runs a read-eval-print loop.
Generated text is streamed "typewriter" style: every few decode steps the
current message is fetched and only the characters that changed since the
last redraw are erased and printed again.

Lines starting with one of the special commands below are handled by the
CLI itself; everything else is sent to the model as a prompt::

    /help               print the special commands
    /exit               quit the cli
    /stats              print out the latest stats (token/sec)
    /reset              restart a fresh chat
    /reload [model_id]  reload the current model, or load ``model_id``
"""

from __future__ import annotations

import argparse
import enum
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from mlc_chat_cli.inference.artifacts import ArtifactLocator, ArtifactSet, candidate_model_ids
from mlc_chat_cli.inference.chat_common import (
    DEVICE_KINDS,
    QUANTIZATION_PRESETS,
    ArtifactError,
    ChatCLIError,
    Utf8DecodeError,
    segment_utf8,
)
from mlc_chat_cli.inference.device import AUTO, DeviceResolver
from mlc_chat_cli.inference.engine import ChatEngine, ChatModule, load_library

from .chat_prompt import LineReader, build_line_reader

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "You can use the following special commands:\n"
    "  /help               print the special commands\n"
    "  /exit               quit the cli\n"
    "  /stats              print out the latest stats (token/sec)\n"
    "  /reset              restart a fresh chat\n"
    '  /reload [model_id]  reload model "model_id" from disk, or reload the current '
    "model if model_id is not specified\n"
)
ERASE_SEQUENCE = "\b \b"
DEFAULT_STREAM_INTERVAL = 2
ARTIFACT_PATH_ENV = "MLC_CHAT_ARTIFACT_PATH"
LOG_LEVEL_ENV = "MLC_CHAT_LOG_LEVEL"


class CommandKind(enum.Enum):
    RESET = "/reset"
    RELOAD = "/reload"
    EXIT = "/exit"
    STATS = "/stats"
    HELP = "/help"
    PROMPT = ""


# Classification order; the first literal that matches wins.
SPECIAL_COMMANDS: Tuple[CommandKind, ...] = (
    CommandKind.RESET,
    CommandKind.RELOAD,
    CommandKind.EXIT,
    CommandKind.STATS,
    CommandKind.HELP,
)


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str = ""
    model_id: Optional[str] = None


def parse_command(line: str) -> Command:
    """Classify one line of input.

    A special command must be followed by whitespace or the end of the line,
    so ``/exitnow`` is sent to the model as an ordinary prompt.
    """

    tokens = line.split()
    head = tokens[0] if tokens else ""
    for kind in SPECIAL_COMMANDS:
        if head != kind.value:
            continue
        if kind is CommandKind.RELOAD:
            return Command(kind, model_id=tokens[1] if len(tokens) > 1 else None)
        return Command(kind)
    return Command(CommandKind.PROMPT, text=line)


@dataclass(frozen=True)
class RedrawPlan:
    """Terminal edits turning one rendered message into the next."""

    erase: int
    emit: Tuple[str, ...]

    def render(self) -> str:
        return ERASE_SEQUENCE * self.erase + "".join(self.emit)


def common_prefix_length(previous: Sequence[str], current: Sequence[str]) -> int:
    limit = min(len(previous), len(current))
    for index in range(limit):
        if previous[index] != current[index]:
            return index
    return limit


def plan_redraw(previous: Sequence[str], current: Sequence[str]) -> RedrawPlan:
    """Erase the clusters after the shared prefix and print the new tail.

    Every cluster is assumed to occupy one terminal column, so wide
    characters are not fully erased.
    """

    keep = common_prefix_length(previous, current)
    return RedrawPlan(erase=len(previous) - keep, emit=tuple(current[keep:]))


@dataclass
class TranscriptLogger:
    """Append a JSONL record of the session for later inspection."""

    path: Path

    def __post_init__(self) -> None:
        self.path = self.path.expanduser()
        parent = self.path.parent
        if not parent.exists():
            parent.mkdir(parents=True, exist_ok=True)

    def record_event(self, message: str, *, role: str = "system", **extra: object) -> None:
        payload: Dict[str, object] = {
            "type": "event",
            "role": role,
            "message": message,
        }
        if extra:
            payload.update(extra)
        self._write(payload)

    def record_turn(self, prompt: str, response: str, *, model_id: str, steps: int) -> None:
        self._write(
            {
                "type": "turn",
                "model_id": model_id,
                "prompt": prompt,
                "response": response,
                "decode_steps": steps,
            }
        )

    def _write(self, payload: Dict[str, object]) -> None:
        record = {"timestamp": datetime.now(UTC).isoformat(), **payload}
        with self.path.open("a", encoding="utf-8") as fh:
            json.dump(record, fh, ensure_ascii=False, sort_keys=True)
            fh.write("\n")


@dataclass
class SessionState:
    role0: str
    role1: str
    model_path: str
    stream_interval: int = DEFAULT_STREAM_INTERVAL
    rendered: List[str] = field(default_factory=list)


class SessionController:
    """Run the chat REPL against ``engine``.

    The controller owns the loaded library and artefact set so ``/reload``
    can swap the model in place. A failed ``/reload <model_id>`` leaves the
    previous model active; errors raised by the engine itself propagate.
    """

    def __init__(
        self,
        engine: ChatEngine,
        locator: ArtifactLocator,
        artifacts: ArtifactSet,
        library: Any,
        *,
        reader: LineReader,
        stream_interval: int = DEFAULT_STREAM_INTERVAL,
        library_loader: Callable[[Path], Any] = load_library,
        transcript: Optional[TranscriptLogger] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        if stream_interval < 1:
            raise ValueError(f"stream_interval must be positive, got {stream_interval}")
        self.engine = engine
        self.locator = locator
        self.artifacts = artifacts
        self.library = library
        self.reader = reader
        self.library_loader = library_loader
        self.transcript = transcript
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr
        self.state = SessionState(
            role0="",
            role1="",
            model_path=str(artifacts.model_path),
            stream_interval=stream_interval,
        )

    # ------------------------------------------------------------------ output
    def _write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def _println(self, text: str = "") -> None:
        self._write(text + "\n")

    def _refresh_roles(self) -> None:
        self.state.role0 = self.engine.get_role0()
        self.state.role1 = self.engine.get_role1()

    # ---------------------------------------------------------------- lifecycle
    def start(self) -> None:
        self.engine.reload(self.library, self.artifacts.model_path)
        self._refresh_roles()
        if self.transcript:
            self.transcript.record_event(
                f"Loaded model {self.artifacts.model_id}",
                model_path=self.state.model_path,
            )

    def run(self) -> None:
        self.start()
        while True:
            try:
                line = self.reader.read_line(f"{self.state.role0}: ")
            except EOFError:
                break
            if not self.dispatch(parse_command(line)):
                break

    def dispatch(self, command: Command) -> bool:
        """Handle ``command``; return ``False`` once the session should stop."""

        kind = command.kind
        if kind is CommandKind.EXIT:
            return False
        if kind is CommandKind.HELP:
            self._println(HELP_TEXT)
        elif kind is CommandKind.STATS:
            self._println(self.engine.runtime_stats_text())
        elif kind is CommandKind.RESET:
            self.engine.reset_chat()
            self._println("RESET CHAT SUCCESS")
            if self.transcript:
                self.transcript.record_event("Chat reset")
        elif kind is CommandKind.RELOAD:
            self.reload(command.model_id)
        else:
            self.generate(command.text)
        return True

    def reload(self, model_id: Optional[str]) -> None:
        if model_id is None:
            self.engine.reload(self.library, self.artifacts.model_path)
            self._println("RELOAD THE SAME MODEL SUCCESS")
            if self.transcript:
                self.transcript.record_event(f"Reloaded model {self.artifacts.model_id}")
            return

        try:
            artifacts = self.locator.resolve_model([model_id])
            self._println(f"Use config {artifacts.config_path}")
            self._println(f"Use lib {artifacts.library_path}")
            library = self.library_loader(artifacts.library_path)
        except ArtifactError as exc:
            self._stderr.write(f"Cannot load model {model_id}: {exc}\n")
            self._stderr.flush()
            logger.warning("Reload of %s failed, keeping %s", model_id, self.artifacts.model_id)
            return

        self.engine.reload(library, artifacts.model_path)
        self.artifacts = artifacts
        self.library = library
        self.state.model_path = str(artifacts.model_path)
        self._refresh_roles()
        self._println(f"LOAD MODEL {model_id} SUCCESS")
        if self.transcript:
            self.transcript.record_event(
                f"Loaded model {model_id}",
                model_path=self.state.model_path,
            )

    # --------------------------------------------------------------- generation
    def redraw(self, message: str) -> RedrawPlan:
        current = segment_utf8(message)
        plan = plan_redraw(self.state.rendered, current)
        self._write(plan.render())
        self.state.rendered = current
        return plan

    def generate(self, prompt: str) -> str:
        """Stream the reply to ``prompt`` and return the final rendered text."""

        self.state.rendered = []
        self._write(f"{self.state.role1}: ")
        self.engine.encode(prompt)
        step = 0
        while not self.engine.stopped():
            self.engine.decode()
            if step % self.state.stream_interval == 0 or self.engine.stopped():
                self.redraw(self.engine.get_message())
            step += 1
        self._println()

        response = "".join(self.state.rendered)
        if self.transcript:
            self.transcript.record_turn(
                prompt,
                response,
                model_id=self.artifacts.model_id,
                steps=step,
            )
        return response


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mlc_chat",
        description="Interactive chat with a compiled MLC model",
    )
    parser.add_argument(
        "--local-id",
        default="",
        help="Model identifier to load; derived from --model and --quantization when empty",
    )
    parser.add_argument(
        "--model",
        default="vicuna-v1-7b",
        help="Model name used to build identifiers",
    )
    parser.add_argument(
        "--quantization",
        default="auto",
        help="Quantization preset, or 'auto' to try "
        + ", ".join(QUANTIZATION_PRESETS)
        + " in order",
    )
    parser.add_argument(
        "--device-name",
        default=AUTO,
        help="Compute backend, one of " + ", ".join(DEVICE_KINDS) + ", or 'auto' for the first available GPU",
    )
    parser.add_argument(
        "--device_id",
        type=int,
        default=0,
        help="Device ordinal",
    )
    parser.add_argument(
        "--artifact-path",
        default=os.environ.get(ARTIFACT_PATH_ENV, "dist"),
        help=f"Root directory of the model artefacts (env: {ARTIFACT_PATH_ENV})",
    )
    parser.add_argument(
        "--evaluate",
        action="store_true",
        help="Run the engine benchmark once instead of chatting",
    )
    parser.add_argument(
        "--stream-interval",
        type=_positive_int,
        default=DEFAULT_STREAM_INTERVAL,
        help="Decode steps between screen refreshes",
    )
    parser.add_argument(
        "--plain",
        action="store_true",
        help="Read input line by line without prompt_toolkit editing",
    )
    parser.add_argument(
        "--history",
        type=Path,
        help="File used to persist prompt_toolkit input history",
    )
    parser.add_argument(
        "--transcript",
        type=str,
        help="Record a JSONL transcript of the session to the given path",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_LEVEL_ENV, "WARNING"),
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help=f"Diagnostic logging level (env: {LOG_LEVEL_ENV})",
    )
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    transcript = TranscriptLogger(Path(args.transcript)) if args.transcript else None

    try:
        device = DeviceResolver().resolve(args.device_name, args.device_id)
        locator = ArtifactLocator.for_host(args.artifact_path, device.kind)
        artifacts = locator.resolve_model(
            candidate_model_ids(args.local_id, args.model, args.quantization)
        )
        print(f"Use config {artifacts.config_path}")
        print(f"Use lib {artifacts.library_path}")
        library = load_library(artifacts.library_path)

        print("Initializing the chat module...")
        engine = ChatModule(device)
        print("Finish loading")
        print(HELP_TEXT, flush=True)

        if args.evaluate:
            engine.reload(library, artifacts.model_path)
            engine.evaluate()
            return 0

        controller = SessionController(
            engine,
            locator,
            artifacts,
            library,
            reader=build_line_reader(plain=args.plain, history_path=args.history),
            stream_interval=args.stream_interval,
            transcript=transcript,
        )
        controller.run()
    except (ChatCLIError, Utf8DecodeError) as exc:
        print(f"mlc_chat: {exc}", file=sys.stderr)
        if transcript:
            transcript.record_event(str(exc), role="error")
        return 1
    except KeyboardInterrupt:
        print("\nExiting.")
        if transcript:
            transcript.record_event("Session interrupted", role="system")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
