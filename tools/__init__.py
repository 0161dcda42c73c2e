"""MCP tool implementations for the contact relationship graph."""
