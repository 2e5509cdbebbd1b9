"""
Domain models for the Agent Engine.

This package contains the core domain models that represent agents,
tools, executions and remote tool servers.
"""

from agent_engine.domains.agent import *
from agent_engine.domains.execution import *
from agent_engine.domains.mcp import *
from agent_engine.domains.tools import *
