"""Locate compiled model artefacts from the ``dist`` directory convention.

A model identifier ``<model>-<quantization>`` is laid out either as::

    {root}/{id}/params/mlc-chat-config.json
    {root}/{id}/params/ndarray-cache.json
    {root}/{id}/{id}-{device}.so        (or {root}/{id}/lib/...)

or, for prebuilt downloads, as::

    {root}/prebuilt/{id}/mlc-chat-config.json
    {root}/prebuilt/{id}/ndarray-cache.json
    {root}/prebuilt/lib/{id}-{device}.so

Every search is "first match wins": directories are tried outermost, then
names, then suffixes, so callers list higher priority candidates first.
"""

from __future__ import annotations

import logging
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from .chat_common import (
    CONFIG_NAME,
    JSON_SUFFIX,
    LIB_DIRNAME,
    PARAMS_CACHE_NAME,
    PARAMS_DIRNAME,
    PREBUILT_DIRNAME,
    QUANTIZATION_PRESETS,
    ArtifactNotFoundError,
    arch_suffix,
    library_suffixes,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class ArtifactSet:
    """Canonical paths of everything needed to initialise one model."""

    model_id: str
    config_path: Path
    library_path: Path
    params_dir_path: Path

    @property
    def model_path(self) -> Path:
        return self.config_path.parent


def find_file(
    search_paths: Iterable[PathLike],
    names: Sequence[str],
    suffixes: Sequence[str],
) -> Optional[Path]:
    """Return the first ``{dir}/{name}{suffix}`` that is an existing regular file."""

    for prefix in search_paths:
        for name in names:
            for suffix in suffixes:
                path = Path(f"{prefix}/{name}{suffix}")
                if not path.exists():
                    continue
                path = path.resolve()
                if path.is_file():
                    return path
    return None


def candidate_model_ids(local_id: str, model: str, quantization: str) -> List[str]:
    """Build the ordered model identifiers to try from the CLI flags."""

    if local_id:
        return [local_id]
    if quantization == "auto":
        presets: Sequence[str] = QUANTIZATION_PRESETS
    else:
        presets = (quantization,)
    return [f"{model}-{preset}" for preset in presets]


class ArtifactLocator:
    """Resolve model identifiers to an :class:`ArtifactSet` under ``artifact_root``."""

    def __init__(
        self,
        artifact_root: PathLike,
        device_name: str,
        arch: str = "",
        lib_suffixes: Optional[Sequence[str]] = None,
    ) -> None:
        self.artifact_root = str(artifact_root)
        self.device_name = device_name
        self.arch_suffix = arch
        self.lib_suffixes = tuple(lib_suffixes) if lib_suffixes is not None else library_suffixes(sys.platform)

    @classmethod
    def for_host(cls, artifact_root: PathLike, device_name: str) -> "ArtifactLocator":
        """Build a locator using the running platform's library conventions."""

        return cls(
            artifact_root,
            device_name,
            arch=arch_suffix(platform.machine()),
            lib_suffixes=library_suffixes(sys.platform),
        )

    def config_search_paths(self, model_id: str) -> List[str]:
        root = self.artifact_root
        return [
            f"{root}/{model_id}/{PARAMS_DIRNAME}",
            f"{root}/{PREBUILT_DIRNAME}/{model_id}",
        ]

    def library_dirs(self, model_path: Path) -> List[Path]:
        # params/ sits beside the library; flat layouts keep it in a sibling lib/.
        if model_path.name == PARAMS_DIRNAME:
            return [model_path.parent, model_path.parent / LIB_DIRNAME]
        return [model_path.parent / LIB_DIRNAME]

    def library_names(self, model_id: str) -> List[str]:
        base = f"{model_id}-{self.device_name}"
        names = [base]
        if self.arch_suffix:
            names.append(base + self.arch_suffix)
        return names

    def find_config(self, candidate_ids: Sequence[str]) -> tuple[str, Path]:
        for model_id in candidate_ids:
            config_path = find_file(self.config_search_paths(model_id), [CONFIG_NAME], [JSON_SUFFIX])
            if config_path is not None:
                return model_id, config_path
        first = candidate_ids[0]
        searched = ", ".join(f'"{path}"' for path in self.config_search_paths(first))
        message = f'Cannot find "{CONFIG_NAME}{JSON_SUFFIX}" in path {searched}'
        if len(candidate_ids) > 1:
            message += " or the paths of the other candidates: " + ", ".join(candidate_ids[1:])
        raise ArtifactNotFoundError(message)

    def find_library(self, model_id: str, model_path: Path) -> Path:
        lib_dirs = self.library_dirs(model_path)
        names = self.library_names(model_id)
        lib_path = find_file(lib_dirs, names, self.lib_suffixes)
        if lib_path is None:
            attempted = ", ".join(f'"{name}{suffix}"' for name in names for suffix in self.lib_suffixes)
            searched = ", ".join(str(path) for path in lib_dirs)
            raise ArtifactNotFoundError(f"Cannot find library {attempted} in {searched}")
        return lib_path

    def find_params(self, model_path: Path) -> Path:
        params_json = find_file([model_path], [PARAMS_CACHE_NAME], [JSON_SUFFIX])
        if params_json is None:
            raise ArtifactNotFoundError(
                f'Cannot find "{PARAMS_CACHE_NAME}{JSON_SUFFIX}" for params in {model_path}'
            )
        return params_json.parent

    def resolve_model(self, candidate_ids: Sequence[str]) -> ArtifactSet:
        """Resolve the first candidate with a chat config to a full artefact set.

        The config search fixes the selected identifier; the library and the
        parameter cache must then be found for that same identifier, otherwise
        the whole resolution fails.
        """

        ids = [model_id for model_id in candidate_ids if model_id]
        if not ids:
            raise ArtifactNotFoundError("No model identifier given to search for")

        model_id, config_path = self.find_config(ids)
        logger.debug("Use config %s", config_path)
        model_path = config_path.parent

        lib_path = self.find_library(model_id, model_path)
        logger.debug("Use lib %s", lib_path)

        params_dir = self.find_params(model_path)
        logger.debug("Use params %s", params_dir)

        return ArtifactSet(
            model_id=model_id,
            config_path=config_path,
            library_path=lib_path,
            params_dir_path=params_dir,
        )


__all__ = ["ArtifactLocator", "ArtifactSet", "candidate_model_ids", "find_file"]
