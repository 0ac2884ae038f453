"""JSON Schema-based validation for netadns YAML configuration.

This module centralizes the schema for the ``logging`` and ``resolver``
sections of the config file and turns jsonschema failures into ValueError
messages that name the offending path.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

logger = logging.getLogger("netadns.config")

_LEVEL_NAMES = ["debug", "info", "warn", "warning", "error", "crit", "critical"]

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "netadns configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "logging": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "level": {"type": "string", "enum": _LEVEL_NAMES},
                "stderr": {"type": "boolean"},
                "file": {"type": ["string", "null"]},
                "syslog": {
                    "anyOf": [
                        {"type": "boolean"},
                        {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "address": {"type": "string"},
                                "facility": {"type": "string"},
                                "tag": {"type": "string"},
                            },
                        },
                    ]
                },
            },
        },
        "resolver": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "resolvconf": {"type": ["string", "null"]},
                "forward": {
                    "anyOf": [
                        {"type": "null"},
                        {"type": "string", "minLength": 1},
                        {
                            "type": "array",
                            "items": {"type": "string", "minLength": 1},
                        },
                    ]
                },
                "timeout_ms": {"type": "integer", "minimum": 1},
                "dnssec": {"type": "boolean"},
                "edns_payload": {"type": "integer", "minimum": 512, "maximum": 65535},
                "threads": {"type": "integer", "minimum": 1, "maximum": 256},
            },
        },
    },
}


def _format_path(path: List[Any]) -> str:
    return "config" + "".join(
        "[%d]" % p if isinstance(p, int) else ".%s" % p for p in path
    )


def validate_config(cfg: Dict[str, Any], *, config_path: Optional[str] = None) -> None:
    """Brief: Validate a parsed configuration mapping against CONFIG_SCHEMA.

    Inputs:
      - cfg: Parsed YAML configuration mapping.
      - config_path: Optional file path used in error messages.

    Outputs:
      - None.

    Raises:
      - ValueError: Listing every schema violation, one per line.
    """

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(
        validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.absolute_path]
    )
    if not errors:
        return

    where = " (%s)" % config_path if config_path else ""
    lines = [
        "%s: %s" % (_format_path(list(err.absolute_path)), err.message)
        for err in errors
    ]
    logger.debug("Config validation failed%s: %d error(s)", where, len(lines))
    raise ValueError("Invalid configuration%s:\n  %s" % (where, "\n  ".join(lines)))
