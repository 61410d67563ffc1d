"""Helpers to parse Responses API outputs."""

import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def _loads_object(raw: Any) -> Optional[Dict[str, Any]]:
    """Decode a JSON object, returning None for anything that is not one."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_function_arguments(response: Any, *, tool_name: str) -> Dict[str, Any]:
    """Return the decoded arguments of the `tool_name` function call.

    Falls back to a JSON object in `output_text` when the model answered in
    plain text. Returns an empty dict when nothing decodable is present;
    field defaults are applied by the caller's result model.
    """
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) == "function_call" and getattr(item, "name", None) == tool_name:
            args = _loads_object(getattr(item, "arguments", None))
            if args is not None:
                return args
            logger.warning("Malformed arguments in '%s' function call", tool_name)
            return {}

    args = _loads_object(getattr(response, "output_text", None))
    if args is not None:
        return args

    logger.warning("No '%s' function call found in Responses API output", tool_name)
    return {}


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage information from the response, if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "input_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "output_tokens", None) if usage else None,
    }
