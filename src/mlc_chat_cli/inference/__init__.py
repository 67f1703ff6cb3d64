"""Runtime helpers for locating and driving the MLC chat engine."""

from .artifacts import ArtifactLocator, ArtifactSet, candidate_model_ids, find_file
from .chat_common import (
    ArtifactError,
    ArtifactNotFoundError,
    ChatCLIError,
    DeviceError,
    EngineError,
    LibraryLoadError,
    Utf8DecodeError,
    segment_utf8,
)
from .device import DeviceDescriptor, DeviceResolver
from .engine import ChatEngine, ChatModule, load_library

__all__ = [
    "ArtifactError",
    "ArtifactLocator",
    "ArtifactNotFoundError",
    "ArtifactSet",
    "ChatCLIError",
    "ChatEngine",
    "ChatModule",
    "DeviceDescriptor",
    "DeviceError",
    "DeviceResolver",
    "EngineError",
    "LibraryLoadError",
    "Utf8DecodeError",
    "candidate_model_ids",
    "find_file",
    "load_library",
    "segment_utf8",
]
