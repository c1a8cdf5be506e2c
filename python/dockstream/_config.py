# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Configuration loading with install-level -> project-level -> env precedence."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

import yaml

from dockstream._buffer import DEFAULT_MAX_BUFFER

_CONFIG_DIRNAME = ".dockstream"
_CONFIG_FILENAME = "dockstream.yaml"
_HOST_ENV_VARS = ("DOCKSTREAM_HOST", "DOCKER_HOST")


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Resolved dockstream configuration."""

    host: str | None = None
    timeout: float = 10.0
    user_agent: str | None = None
    max_buffer: int = DEFAULT_MAX_BUFFER
    strict_chunks: bool = False
    history_path: str | None = None
    log_level: str = "warning"


def load_config(project_root: Path | None = None) -> ClientConfig:
    """Load configuration with precedence: env > project > install > defaults.

    1. Start with defaults
    2. Overlay install-level ``~/.dockstream/dockstream.yaml`` (if exists)
    3. Overlay project-level ``.dockstream/dockstream.yaml`` (if exists)
    4. Overlay ``DOCKSTREAM_HOST`` (or ``DOCKER_HOST``) from the environment
    """
    overrides: dict[str, Any] = {}

    install_config = Path.home() / _CONFIG_DIRNAME / _CONFIG_FILENAME
    if install_config.is_file():
        _merge_yaml(overrides, install_config)

    if project_root is not None:
        project_config = project_root / _CONFIG_DIRNAME / _CONFIG_FILENAME
        if project_config.is_file():
            _merge_yaml(overrides, project_config)

    for var in _HOST_ENV_VARS:
        value = os.environ.get(var)
        if value:
            overrides["host"] = value
            break

    return _build_config(overrides)


def _merge_yaml(target: dict[str, Any], path: Path) -> None:
    """Parse a YAML file and merge its values into *target*."""
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError:
        return
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if key == "logging" and isinstance(value, dict):
            # Flatten logging sub-keys into top-level config keys
            target.update(value)
        else:
            target[key] = value


def _build_config(overrides: dict[str, Any]) -> ClientConfig:
    """Build a ``ClientConfig`` from a dict of overrides."""
    field_names = {f.name for f in dataclasses.fields(ClientConfig)}
    filtered = {k: v for k, v in overrides.items() if k in field_names}
    return ClientConfig(**filtered)
