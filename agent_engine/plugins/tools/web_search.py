"""
Placeholder web search tool.

Returns a single canned result for the query. Install a plugin that
registers a real search tool under the same name to replace it.
"""
from typing import Any, Dict

from agent_engine.plugins.tools.auto_tool import AutoTool


class WebSearchTool(AutoTool):
    """Search the web for information."""

    def __init__(self, registry=None):
        super().__init__(
            name="web_search",
            description="Search the web for information",
            registry=registry,
        )

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"}
            },
            "required": ["query"],
        }

    async def execute(self, query: str = "", **params) -> Dict[str, Any]:
        if not query:
            raise ValueError("Missing query parameter")
        return {
            "results": [
                {
                    "title": f"Search result for: {query}",
                    "url": self.settings.get(
                        "placeholder_url", "https://example.com"
                    ),
                    "snippet": "This is a placeholder search result.",
                }
            ]
        }
