from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence


class FakeEngine:
    """Scripted stand-in for the compiled chat module.

    Each ``decode`` call advances to the next entry of ``replies[turn]``;
    the engine reports ``stopped`` once a turn's script is exhausted.
    """

    def __init__(
        self,
        replies: Sequence[Sequence[str]] = (),
        *,
        roles: tuple[str, str] = ("USER", "ASSISTANT"),
        stats: str = "prefill: 1.0 tok/s, decode: 2.0 tok/s",
    ) -> None:
        self.replies: List[List[str]] = [list(reply) for reply in replies]
        self.roles = roles
        self.stats = stats
        self.calls: List[tuple] = []
        self._script: List[str] = []
        self._step = 0
        self._turn = 0

    def reload(self, library, model_path) -> None:
        self.calls.append(("reload", library, str(model_path)))

    def stopped(self) -> bool:
        return self._step >= len(self._script)

    def encode(self, text: str) -> None:
        self.calls.append(("encode", text))
        self._script = self.replies[self._turn] if self._turn < len(self.replies) else []
        self._turn += 1
        self._step = 0

    def decode(self) -> None:
        self.calls.append(("decode",))
        self._step += 1

    def get_message(self) -> str:
        self.calls.append(("get_message",))
        return self._script[self._step - 1] if self._step else ""

    def reset_chat(self) -> None:
        self.calls.append(("reset_chat",))

    def runtime_stats_text(self) -> str:
        return self.stats

    def get_role0(self) -> str:
        return self.roles[0]

    def get_role1(self) -> str:
        return self.roles[1]

    def evaluate(self) -> None:
        self.calls.append(("evaluate",))

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


def install_model(
    root: Path,
    model_id: str,
    device: str,
    *,
    prebuilt: bool = False,
    lib_subdir: Optional[str] = None,
    lib_names: Optional[Iterable[str]] = None,
    with_params: bool = True,
) -> Path:
    """Lay out the artefacts of ``model_id`` under ``root`` and return the model path."""

    if prebuilt:
        model_path = root / "prebuilt" / model_id
        lib_dir = root / "prebuilt" / "lib"
    else:
        model_path = root / model_id / "params"
        lib_dir = root / model_id
    if lib_subdir is not None:
        lib_dir = lib_dir / lib_subdir
    model_path.mkdir(parents=True, exist_ok=True)
    lib_dir.mkdir(parents=True, exist_ok=True)
    (model_path / "mlc-chat-config.json").write_text('{"conv_template": "vicuna_v1.1"}')
    if with_params:
        (model_path / "ndarray-cache.json").write_text('{"records": []}')
    for name in lib_names if lib_names is not None else [f"{model_id}-{device}.so"]:
        (lib_dir / name).write_bytes(b"\x7fELF")
    return model_path


def apply_backspaces(text: str) -> str:
    """Replay ``text`` the way a terminal would, honouring ``\\b`` moves."""

    cells: List[str] = []
    cursor = 0
    for char in text:
        if char == "\b":
            cursor = max(0, cursor - 1)
            continue
        if cursor < len(cells):
            cells[cursor] = char
        else:
            cells.append(char)
        cursor += 1
    # Anything right of the cursor was blanked by an erase.
    return "".join(cells[:cursor])
