"""Configuration parsing helpers for netadns.

Brief:
  Reads the YAML config file, validates it, and produces the merged option
  snapshot a resolver engine is built from (explicit options layered over
  the engine's defaults).

Inputs:
  - YAML config paths and parsed config dicts.

Outputs:
  - Validated config dicts and merged resolver option snapshots.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import yaml

from .config_schema import validate_config


def add_defaults(
    conf: Optional[Mapping[str, Any]], defaults: Mapping[str, Any]
) -> Dict[str, Any]:
    """Brief: Fill options missing from conf with engine defaults.

    Inputs:
      - conf: Explicit options (may be None).
      - defaults: Engine default options.

    Outputs:
      - dict: New mapping; options explicitly set to None also take the default.

    Example:
      >>> add_defaults({'threads': 2}, {'threads': 4, 'dnssec': True})
      {'threads': 2, 'dnssec': True}
    """

    merged: Dict[str, Any] = dict(conf or {})
    for option, default in defaults.items():
        if merged.get(option) is None:
            merged[option] = default
    return merged


def parse_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - dict: Parsed configuration mapping (empty file yields {}).

    Raises:
      - ValueError: When the root is not a mapping or validation fails.
      - OSError: When the file cannot be read.
      - yaml.YAMLError: When the file is not valid YAML.
    """

    with open(config_path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    validate_config(cfg, config_path=config_path)
    return cfg


def resolver_config(cfg: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Brief: Return the 'resolver' section of a parsed config (or {})."""

    return dict((cfg or {}).get("resolver") or {})


def logging_config(cfg: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Brief: Return the 'logging' section of a parsed config (or {})."""

    return dict((cfg or {}).get("logging") or {})
