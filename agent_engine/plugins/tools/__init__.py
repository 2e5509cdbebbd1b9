"""
Tools for the Agent Engine.

This package contains the base AutoTool class and built-in tool implementations.
"""

from agent_engine.plugins.tools.auto_tool import AutoTool
from agent_engine.plugins.tools.calculator import CalculatorTool
from agent_engine.plugins.tools.function_tool import FunctionTool
from agent_engine.plugins.tools.web_search import WebSearchTool

BUILTIN_TOOLS = {
    "calculator": CalculatorTool,
    "web_search": WebSearchTool,
}

__all__ = [
    "AutoTool",
    "CalculatorTool",
    "FunctionTool",
    "WebSearchTool",
    "BUILTIN_TOOLS",
]
