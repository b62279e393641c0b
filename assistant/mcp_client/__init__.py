"""
MCP tool client

Discovers tools exposed by remote MCP servers, merges them into one
capability set for the chat agent and routes tool calls back to the
upstream that owns each tool.
"""

from .config import (
    AgentConfig,
    BusinessTypeConfig,
    ConnectionConfig,
    ConnectionSettings,
    McpConfig,
    ToolCallbackSettings,
    load_agent_config,
    load_mcp_config,
)
from .errors import (
    ConfigurationError,
    DiscoveryError,
    InvocationError,
    McpClientError,
    ResponseTooLargeError,
)
from .failures import ConnectionHealth, FailureTracker
from .registry import ConnectionHandle, ConnectionRegistry
from .parsing import ToolDescriptor, ToolResponseParser, ToolSet
from .discovery import ToolDiscoveryClient
from .invocation import ToolInvocationClient, parse_arguments
from .aggregator import (
    AggregatedToolSet,
    CapabilityProvider,
    DiscoveryResult,
    ToolAggregator,
    ToolConflict,
    UpstreamToolProvider,
)
from .provider import LocalToolProvider, ToolProviderService, ToolStats

__all__ = [
    "AgentConfig",
    "BusinessTypeConfig",
    "ConnectionConfig",
    "ConnectionSettings",
    "McpConfig",
    "ToolCallbackSettings",
    "load_agent_config",
    "load_mcp_config",
    "ConfigurationError",
    "DiscoveryError",
    "InvocationError",
    "McpClientError",
    "ResponseTooLargeError",
    "ConnectionHealth",
    "FailureTracker",
    "ConnectionHandle",
    "ConnectionRegistry",
    "ToolDescriptor",
    "ToolResponseParser",
    "ToolSet",
    "ToolDiscoveryClient",
    "ToolInvocationClient",
    "parse_arguments",
    "AggregatedToolSet",
    "CapabilityProvider",
    "DiscoveryResult",
    "ToolAggregator",
    "ToolConflict",
    "UpstreamToolProvider",
    "LocalToolProvider",
    "ToolProviderService",
    "ToolStats",
]
