"""mcpbridge - expose a stdio MCP server as an HTTP endpoint."""

__version__ = "0.1.0"
__logo__ = "🌉"
