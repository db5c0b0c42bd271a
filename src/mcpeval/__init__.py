"""mcpeval — agent-orchestration evaluation harness for MCP tool servers."""

__version__ = "0.3.0"
