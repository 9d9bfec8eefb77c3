"""Configuration detection and parsing for podpipe."""

from podpipe.config.detector import detect_config
from podpipe.config.models import PodpipeConfig
from podpipe.config.parser import apply_environment, load_config, parse_config
from podpipe.errors import ConfigError

__all__ = [
    "ConfigError",
    "PodpipeConfig",
    "apply_environment",
    "detect_config",
    "load_config",
    "parse_config",
]
