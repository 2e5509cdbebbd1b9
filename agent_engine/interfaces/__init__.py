"""
Abstract interfaces for the Agent Engine.

These interfaces define the contracts that concrete implementations
must adhere to:
- Provider interfaces for language models and MCP transports
- Plugin interfaces for local tools
- Repository and service interfaces
"""
