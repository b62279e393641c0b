"""
Error types for the MCP tool client.

Per-upstream failures are always contained by the aggregation layer; these
exceptions exist so each layer can tell a configuration problem from a
network or parsing problem when deciding what to log and what to skip.
"""

from typing import Optional


class McpClientError(Exception):
    """Base class for all MCP tool client errors."""

    def __init__(self, message: str, connection: str = ""):
        """
        Initialize the error.

        Args:
            message: Error message
            connection: Masked connection key or upstream name, if known
        """
        super().__init__(message)
        self.message = message
        self.connection = connection

    def __str__(self) -> str:
        name = type(self).__name__
        if self.connection:
            return f"{name}: {self.message} (connection: {self.connection})"
        return f"{name}: {self.message}"


class ConfigurationError(McpClientError):
    """Raised when MCP configuration is missing, disabled or invalid."""


class DiscoveryError(McpClientError):
    """Raised when tool discovery against an upstream fails."""

    def __init__(
        self,
        message: str,
        connection: str = "",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, connection)
        self.cause = cause


class ResponseTooLargeError(DiscoveryError):
    """Raised when an upstream response exceeds the configured buffer limit."""

    def __init__(self, limit: int, connection: str = ""):
        super().__init__(
            f"Response exceeded the {limit} byte limit", connection
        )
        self.limit = limit


class InvocationError(McpClientError):
    """Raised when a tool call cannot be completed."""

    def __init__(self, message: str, tool_name: str = "", connection: str = ""):
        super().__init__(message, connection)
        self.tool_name = tool_name

    def __str__(self) -> str:
        if self.tool_name and self.connection:
            return (
                f"InvocationError: {self.message} "
                f"(tool: {self.tool_name}, connection: {self.connection})"
            )
        elif self.tool_name:
            return f"InvocationError: {self.message} (tool: {self.tool_name})"
        return f"InvocationError: {self.message}"
