"""Adapter around the compiled MLC chat runtime.

The chat runtime lives in a TVM module created by the ``mlc.llm_chat_create``
global function. We only talk to it through packed functions fetched by
name, so the same small surface (:class:`ChatEngine`) can be provided by a
fake in tests or by another runtime entirely.
"""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Protocol, Union

from .chat_common import DLDEVICE_TYPES, EngineError, LibraryLoadError

if TYPE_CHECKING:  # pragma: no cover - import only used for type checkers
    from .device import DeviceDescriptor

logger = logging.getLogger(__name__)

CHAT_MODULE_FACTORY = "mlc.llm_chat_create"
ENGINE_FUNCTIONS = (
    "reload",
    "stopped",
    "encode",
    "decode",
    "get_message",
    "reset_chat",
    "runtime_stats_text",
    "get_role0",
    "get_role1",
    "evaluate",
)


class ChatEngine(Protocol):
    """Operations the session controller needs from an inference engine."""

    def reload(self, library: Any, model_path: Union[str, Path]) -> None: ...

    def stopped(self) -> bool: ...

    def encode(self, text: str) -> None: ...

    def decode(self) -> None: ...

    def get_message(self) -> str: ...

    def reset_chat(self) -> None: ...

    def runtime_stats_text(self) -> str: ...

    def get_role0(self) -> str: ...

    def get_role1(self) -> str: ...

    def evaluate(self) -> None: ...


def _import_tvm():
    if importlib.util.find_spec("tvm") is None:
        raise EngineError(
            "The MLC chat runtime requires the 'tvm' package. Install the "
            "MLC/TVM runtime wheel for your platform (e.g. `pip install apache-tvm`)."
        )
    import tvm  # type: ignore

    return tvm


def tvm_device_probe(kind: str, ordinal: int) -> bool:
    """Return whether TVM can see device ``ordinal`` of backend ``kind``."""

    tvm = _import_tvm()
    try:
        return bool(tvm.runtime.device(kind, ordinal).exist)
    except tvm.TVMError:
        return False


def load_library(path: Union[str, Path]):
    """Load a compiled model library from ``path``."""

    tvm = _import_tvm()
    try:
        return tvm.runtime.load_module(str(path))
    except tvm.TVMError as exc:
        raise LibraryLoadError(f"Failed to load model library {path}: {exc}") from exc


class ChatModule:
    """:class:`ChatEngine` backed by the packed functions of a TVM chat module."""

    def __init__(self, device: "DeviceDescriptor") -> None:
        tvm = _import_tvm()
        factory = tvm.get_global_func(CHAT_MODULE_FACTORY, allow_missing=True)
        if factory is None:
            raise EngineError(
                f"TVM runtime does not register {CHAT_MODULE_FACTORY!r}; "
                "install a TVM build that ships the MLC chat runtime"
            )
        self.device = device
        self._tvm_error = tvm.TVMError
        self._module = factory(DLDEVICE_TYPES[device.kind], device.ordinal)
        self._functions: Dict[str, Callable[..., Any]] = {
            name: self._module[name] for name in ENGINE_FUNCTIONS
        }
        logger.debug("Created chat module on %s", device)

    def _call(self, name: str, *args: Any) -> Any:
        try:
            return self._functions[name](*args)
        except self._tvm_error as exc:
            raise EngineError(f"{name} failed: {exc}") from exc

    def reload(self, library: Any, model_path: Union[str, Path]) -> None:
        self._call("reload", library, str(model_path))

    def stopped(self) -> bool:
        return bool(self._call("stopped"))

    def encode(self, text: str) -> None:
        self._call("encode", text)

    def decode(self) -> None:
        self._call("decode")

    def get_message(self) -> str:
        return str(self._call("get_message"))

    def reset_chat(self) -> None:
        self._call("reset_chat")

    def runtime_stats_text(self) -> str:
        return str(self._call("runtime_stats_text"))

    def get_role0(self) -> str:
        return str(self._call("get_role0"))

    def get_role1(self) -> str:
        return str(self._call("get_role1"))

    def evaluate(self) -> None:
        self._call("evaluate")


__all__ = [
    "CHAT_MODULE_FACTORY",
    "ENGINE_FUNCTIONS",
    "ChatEngine",
    "ChatModule",
    "load_library",
    "tvm_device_probe",
]
