"""HTTP surface for mcpbridge."""
