"""
Service implementations for the Agent Engine.

These services implement the business logic interfaces defined in
agent_engine.interfaces.services.
"""
