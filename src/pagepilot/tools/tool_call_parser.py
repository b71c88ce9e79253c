"""
Argument handling for tool calls.

Planners deliver tool arguments as a JSON string.  The loop treats them as opaque: it decodes them
when it can (for display and for the built-in tools) and otherwise passes the raw text through.
Validating arguments against the tool schema is the tool's job.
"""

import json
from typing import (
    Any,
    Mapping,
)


def parse_arguments(raw: str) -> Any:
    """Decode *raw* as JSON, falling back to the raw string when it is not valid JSON."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def encode_arguments(args: Any) -> str:
    """Render *args* as the JSON string a page bridge expects."""
    if isinstance(args, str):
        return args
    return json.dumps(args if args is not None else {}, ensure_ascii=False)


def string_argument(args: Any, key: str, default: str) -> str:
    """Return ``args[key]`` as a non-empty string, or *default*."""
    if isinstance(args, Mapping):
        value = args.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return default
