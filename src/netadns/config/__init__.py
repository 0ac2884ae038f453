"""Configuration loading, validation and logging setup for netadns."""

from .config_parser import (
    add_defaults,
    logging_config,
    parse_config_file,
    resolver_config,
)
from .config_schema import validate_config
from .logging_config import init_logging

__all__ = [
    "add_defaults",
    "init_logging",
    "logging_config",
    "parse_config_file",
    "resolver_config",
    "validate_config",
]
