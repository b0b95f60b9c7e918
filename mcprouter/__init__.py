"""MCP Router: passkey accounts and API-key session resolution for MCP servers."""

__version__ = "0.1.0"
