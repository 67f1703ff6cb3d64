"""Command line entry points, loaded on first attribute access."""

from __future__ import annotations

import importlib
from typing import Any

_LOCAL_SUBMODULES = {
    "chat_prompt": "mlc_chat_cli.cli.chat_prompt",
    "mlc_chat": "mlc_chat_cli.cli.mlc_chat",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - simple forwarding
    if name in _LOCAL_SUBMODULES:
        module = importlib.import_module(_LOCAL_SUBMODULES[name])
        globals()[name] = module
        return module
    if name == "main":
        return importlib.import_module(_LOCAL_SUBMODULES["mlc_chat"]).main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - reflective helper
    return sorted(set(_LOCAL_SUBMODULES) | {"main"} | set(globals()))


__all__ = sorted(_LOCAL_SUBMODULES)
