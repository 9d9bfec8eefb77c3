"""Configuration parsing for podpipe."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

from podpipe.backends import BACKEND_NAMES
from podpipe.config.detector import detect_config
from podpipe.config.models import PodpipeConfig
from podpipe.errors import ConfigError

_ENV_PREFIX = "PODPIPE_"


def _positive_number(value: Any, key: str, kind: type[int] | type[float]) -> Any:
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from None
    if number <= 0:
        raise ConfigError(f"'{key}' must be positive, got {number}")
    return number


def _validate_backend(value: Any) -> str:
    if value not in BACKEND_NAMES:
        raise ConfigError(
            f"Unknown backend {value!r}. Choose one of: {', '.join(BACKEND_NAMES)}"
        )
    return value


def _optional_str(value: Any, key: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return value or None


def parse_config(config_file: Path) -> PodpipeConfig:
    """Parse a podpipe JSON config file.

    Args:
        config_file: Path to the config file.

    Returns:
        Parsed PodpipeConfig.

    Raises:
        ConfigError: If the file cannot be read or holds invalid settings.
    """
    try:
        data = json.loads(config_file.read_text())
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_file} must contain a JSON object")

    config = PodpipeConfig(config_file=config_file)
    if "backend" in data:
        config.backend = _validate_backend(data["backend"])
    for key in ("context", "namespace", "container"):
        if key in data:
            setattr(config, key, _optional_str(data[key], key))
    if "readyTimeout" in data:
        config.ready_timeout = _positive_number(data["readyTimeout"], "readyTimeout", float)
    if "drainTimeout" in data:
        config.drain_timeout = _positive_number(data["drainTimeout"], "drainTimeout", float)
    if "chunkSize" in data:
        config.chunk_size = _positive_number(data["chunkSize"], "chunkSize", int)
    return config


def apply_environment(
    config: PodpipeConfig,
    environ: Mapping[str, str],
) -> PodpipeConfig:
    """Override config values from PODPIPE_* environment variables."""
    updates: dict[str, Any] = {}
    if backend := environ.get(f"{_ENV_PREFIX}BACKEND"):
        updates["backend"] = _validate_backend(backend)
    if context := environ.get(f"{_ENV_PREFIX}CONTEXT"):
        updates["context"] = context
    if namespace := environ.get(f"{_ENV_PREFIX}NAMESPACE"):
        updates["namespace"] = namespace
    if timeout := environ.get(f"{_ENV_PREFIX}READY_TIMEOUT"):
        updates["ready_timeout"] = _positive_number(
            timeout, f"{_ENV_PREFIX}READY_TIMEOUT", float
        )
    return replace(config, **updates)


def load_config(workspace: Path, environ: Mapping[str, str]) -> PodpipeConfig:
    """Load the workspace config file (if any) and apply the environment."""
    config_file = detect_config(workspace)
    config = parse_config(config_file) if config_file else PodpipeConfig()
    return apply_environment(config, environ)
