"""
FunctionTool: expose a plain Python callable as a local tool.
"""
import asyncio
import inspect
from typing import Any, Callable, Dict, Optional

from agent_engine.plugins.tools.auto_tool import AutoTool


class FunctionTool(AutoTool):
    """Local tool backed by a sync or async callable.

    Sync callables run in a worker thread so they do not block the event loop.

    Example:
        def add(a: int, b: int) -> int:
            return a + b

        registry.register_tool(FunctionTool(add, description="Add two numbers"))
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
        registry=None,
    ):
        self._func = func
        super().__init__(
            name=name or func.__name__,
            description=description or (inspect.getdoc(func) or "").split("\n")[0],
            registry=registry,
            schema=schema,
        )

    async def execute(self, **params) -> Any:
        if inspect.iscoroutinefunction(self._func):
            return await self._func(**params)
        return await asyncio.to_thread(self._func, **params)
