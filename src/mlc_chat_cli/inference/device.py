"""Compute backend selection for the chat runtime."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .chat_common import AUTO_DEVICE_PRIORITY, DEVICE_KINDS, DLDEVICE_TYPES, DeviceError, EngineError

logger = logging.getLogger(__name__)

AUTO = "auto"

DeviceProbe = Callable[[str, int], bool]


@dataclass(frozen=True)
class DeviceDescriptor:
    """A concrete backend kind and device ordinal."""

    kind: str
    ordinal: int = 0

    def __post_init__(self) -> None:
        if self.kind not in DEVICE_KINDS:
            raise DeviceError(
                f"Do not recognize device name {self.kind!r}; expected one of "
                + ", ".join(DEVICE_KINDS)
            )
        if self.ordinal < 0:
            raise DeviceError(f"Device ordinal must be non-negative, got {self.ordinal}")

    @property
    def device_type(self) -> int:
        return DLDEVICE_TYPES[self.kind]

    def __str__(self) -> str:
        return f"{self.kind}:{self.ordinal}"


class DeviceResolver:
    """Map a requested backend name, or ``"auto"``, to a :class:`DeviceDescriptor`.

    ``probe`` answers whether a backend has a usable device at an ordinal. It
    must be free of side effects because ``"auto"`` calls it speculatively
    for every candidate in ``priority`` order.
    """

    def __init__(
        self,
        probe: Optional[DeviceProbe] = None,
        priority: Sequence[str] = AUTO_DEVICE_PRIORITY,
    ) -> None:
        if probe is None:
            from .engine import tvm_device_probe

            probe = tvm_device_probe
        self.probe = probe
        self.priority = tuple(priority)

    def _available(self, kind: str) -> bool:
        try:
            found = bool(self.probe(kind, 0))
        except EngineError:
            raise
        except Exception as exc:  # a failing probe only rules out that backend
            logger.debug("Probe for %s raised %s", kind, exc)
            return False
        logger.debug("Probe for %s: %s", kind, "found" if found else "missing")
        return found

    def detect(self) -> str:
        for kind in self.priority:
            if self._available(kind):
                logger.info("Auto detected device %s", kind)
                return kind
        raise DeviceError(
            "Cannot auto detect device-name; no backend found among "
            + ", ".join(self.priority)
        )

    def resolve(self, requested_name: str, ordinal: int = 0) -> DeviceDescriptor:
        kind = self.detect() if requested_name == AUTO else requested_name
        return DeviceDescriptor(kind, ordinal)


__all__ = ["AUTO", "DeviceDescriptor", "DeviceProbe", "DeviceResolver"]
