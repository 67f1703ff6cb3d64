"""Shared chat runtime helpers used across the CLI and the engine adapter."""

from __future__ import annotations

from typing import Dict, List, Tuple, Union

QUANTIZATION_PRESETS: Tuple[str, ...] = (
    "q3f16_0",
    "q4f16_0",
    "q4f32_0",
    "q0f32",
    "q0f16",
)
DEVICE_KINDS: Tuple[str, ...] = ("cuda", "metal", "vulkan", "opencl", "cpu")
AUTO_DEVICE_PRIORITY: Tuple[str, ...] = ("cuda", "metal", "vulkan", "opencl")
# DLPack device type codes.
DLDEVICE_TYPES: Dict[str, int] = {
    "cpu": 1,
    "cuda": 2,
    "opencl": 4,
    "vulkan": 7,
    "metal": 8,
}

CONFIG_NAME = "mlc-chat-config"
PARAMS_CACHE_NAME = "ndarray-cache"
JSON_SUFFIX = ".json"
PARAMS_DIRNAME = "params"
PREBUILT_DIRNAME = "prebuilt"
LIB_DIRNAME = "lib"

_LIB_SUFFIXES: Dict[str, Tuple[str, ...]] = {
    "win32": (".dll",),
    "cygwin": (".dll",),
    "darwin": (".dylib", ".so"),
}
_DEFAULT_LIB_SUFFIXES: Tuple[str, ...] = (".so",)
_ARCH_SUFFIXES: Dict[str, str] = {
    "x86_64": "_x86_64",
    "amd64": "_x86_64",
    "aarch64": "_arm64",
    "arm64": "_arm64",
}


class ChatCLIError(RuntimeError):
    """Base class for errors surfaced by the chat command line."""


class DeviceError(ChatCLIError):
    """Raised when a compute backend cannot be recognised or detected."""


class ArtifactError(ChatCLIError):
    """Raised when model artefacts cannot be located or loaded."""


class ArtifactNotFoundError(ArtifactError):
    """Raised when an artefact search exhausts every candidate path."""


class LibraryLoadError(ArtifactError):
    """Raised when a located model library fails to load."""


class EngineError(ChatCLIError):
    """Raised when the inference engine reports a failure."""


class Utf8DecodeError(ValueError):
    """Raised when engine output cannot be split into UTF-8 characters."""

    def __init__(self, offset: int, data: bytes) -> None:
        super().__init__(f"Invalid UTF8 string at byte {offset}: {data[offset:offset + 4]!r}")
        self.offset = offset


def library_suffixes(platform: str) -> Tuple[str, ...]:
    """Return the shared library extensions for ``platform`` in priority order."""

    return _LIB_SUFFIXES.get(platform, _DEFAULT_LIB_SUFFIXES)


def arch_suffix(machine: str) -> str:
    """Return the library name suffix for the CPU architecture ``machine``."""

    return _ARCH_SUFFIXES.get(machine.lower(), "")


def _cluster_length(lead: int) -> int:
    if lead & 0x80 == 0x00:
        return 1
    if lead & 0xE0 == 0xC0:
        return 2
    if lead & 0xF0 == 0xE0:
        return 3
    if lead & 0xF8 == 0xF0:
        return 4
    return 0


def segment_utf8(value: Union[str, bytes, bytearray]) -> List[str]:
    """Split ``value`` into whole UTF-8 characters.

    Each lead byte selects the length of its cluster and every continuation
    byte must match ``10xxxxxx``. The input is otherwise assumed to be well
    formed: a pattern-valid cluster that is not legal UTF-8 (an overlong
    encoding, say) is kept as one unit and rendered as U+FFFD.
    """

    data = value.encode("utf-8", "surrogatepass") if isinstance(value, str) else bytes(value)
    clusters: List[str] = []
    pos = 0
    while pos < len(data):
        length = _cluster_length(data[pos])
        if length == 0 or pos + length > len(data):
            raise Utf8DecodeError(pos, data)
        for offset in range(1, length):
            if data[pos + offset] & 0xC0 != 0x80:
                raise Utf8DecodeError(pos, data)
        clusters.append(data[pos : pos + length].decode("utf-8", "replace"))
        pos += length
    return clusters


__all__ = [
    "AUTO_DEVICE_PRIORITY",
    "CONFIG_NAME",
    "DEVICE_KINDS",
    "DLDEVICE_TYPES",
    "JSON_SUFFIX",
    "LIB_DIRNAME",
    "PARAMS_CACHE_NAME",
    "PARAMS_DIRNAME",
    "PREBUILT_DIRNAME",
    "QUANTIZATION_PRESETS",
    "ArtifactError",
    "ArtifactNotFoundError",
    "ChatCLIError",
    "DeviceError",
    "EngineError",
    "LibraryLoadError",
    "Utf8DecodeError",
    "arch_suffix",
    "library_suffixes",
    "segment_utf8",
]
