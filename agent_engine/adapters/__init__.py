"""
Adapters for external systems and services.

Provider adapters implement agent_engine.interfaces.providers.llm; the mcp
package holds the transports used to reach remote tool servers.
"""
