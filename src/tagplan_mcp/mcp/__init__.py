"""MCP stdio server exposing the tracking tools."""
