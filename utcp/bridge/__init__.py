"""MCP bridge server exposing a UtcpClient as MCP tools."""
