"""
Repository implementations for data access.

Holds the remote tool server configuration repository and the in-memory
execution store.
"""
