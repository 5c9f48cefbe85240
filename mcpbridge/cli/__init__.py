"""CLI module for mcpbridge."""
