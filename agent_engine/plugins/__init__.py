"""
Plugin system for the Agent Engine.

This package provides plugin management, local tool registration, and
plugin discovery mechanisms that extend agents with custom tools.
"""
