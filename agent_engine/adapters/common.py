"""
Helpers shared by the provider adapters.
"""
import json
from typing import Any, Dict, Union

from agent_engine.exceptions import AgentEngineError, ProviderError


def parse_tool_arguments(raw: Any) -> Union[Dict[str, Any], str]:
    """Parse model-produced tool arguments.

    Malformed arguments are kept as the raw string so the engine can report
    them back to the model as a tool error.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or raw == "":
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return str(raw)
    return parsed if isinstance(parsed, dict) else str(raw)


def serialize_tool_arguments(arguments: Union[Dict[str, Any], str]) -> str:
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments)


def error_event(error: Exception) -> Dict[str, Any]:
    """Terminal stream event for a failure."""
    kind = type(error).__name__ if isinstance(error, AgentEngineError) else ProviderError.__name__
    return {"type": "error", "error": str(error), "kind": kind}
