"""
Tool provider service used by the chat layer.

get_tools_for_config is the single entry point the assistant uses to obtain
MCP tools for a configuration. It never raises: a missing or disabled
configuration, or upstreams that yield nothing, all mean "no MCP tools".
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from .aggregator import Arguments, CapabilityProvider, ToolAggregator
from .config import ConnectionSettings, McpConfig
from .errors import ConfigurationError
from .invocation import error_result, format_result, parse_arguments
from .parsing import ToolDescriptor, default_schema
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class LocalToolProvider(CapabilityProvider):
    """Tools implemented by in-process Python callables."""

    def __init__(self, name: str = "local"):
        self.name = name
        self._tools: Dict[str, ToolDescriptor] = {}
        self._functions: Dict[str, Callable[..., Any]] = {}

    def register(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        input_schema: Optional[Dict[str, Any]] = None,
    ) -> ToolDescriptor:
        """
        Register a callable as a tool.

        The callable receives the parsed arguments as keyword arguments.
        """
        tool = ToolDescriptor(
            name=name,
            description=description or (func.__doc__ or "").strip(),
            input_schema=input_schema if input_schema is not None else default_schema(),
        )
        self._tools[name] = tool
        self._functions[name] = func
        return tool

    def tool(self, name: Optional[str] = None, description: str = "", input_schema=None):
        """Decorator form of register."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(name or func.__name__, func, description, input_schema)
            return func

        return decorator

    def list_tools(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def invoke(self, name: str, arguments: Arguments) -> str:
        func = self._functions.get(name)
        if func is None:
            return error_result(f"Unknown tool: {name}")
        try:
            return format_result(func(**parse_arguments(arguments)))
        except Exception as e:
            logger.error(f"Local tool {name} failed: {e}")
            return error_result(f"Tool call failed: {e}")


@dataclass
class ToolStats:
    """Tool counts for one configuration."""

    mcp_tool_count: int = 0
    default_tool_count: int = 0
    mcp_tools_available: bool = False
    default_tools_available: bool = False

    @property
    def total_tool_count(self) -> int:
        return self.mcp_tool_count + self.default_tool_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mcp_tool_count": self.mcp_tool_count,
            "default_tool_count": self.default_tool_count,
            "total_tool_count": self.total_tool_count,
            "mcp_tools_available": self.mcp_tools_available,
            "default_tools_available": self.default_tools_available,
        }

    def __str__(self) -> str:
        return (
            f"ToolStats(mcp={self.mcp_tool_count}, default={self.default_tool_count}, "
            f"total={self.total_tool_count})"
        )


class ToolProviderService:
    """Resolves the tools available to the assistant for a configuration."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        aggregator: Optional[ToolAggregator] = None,
        default_tools: Optional[CapabilityProvider] = None,
        settings: Optional[ConnectionSettings] = None,
    ):
        self.registry = registry or ConnectionRegistry(settings)
        self.aggregator = aggregator or ToolAggregator(self.registry)
        self.default_tools = default_tools

    def _coerce_config(self, config: Union[McpConfig, Dict[str, Any]]) -> McpConfig:
        if isinstance(config, McpConfig):
            return config
        return McpConfig.from_dict(config)

    def _connections(self, config: McpConfig):
        if not config.enabled:
            raise ConfigurationError("Tool callbacks are disabled")
        connections = config.get_enabled_connections()
        if not connections:
            raise ConfigurationError("No enabled MCP connections configured")
        return connections

    def get_tools_for_config(
        self, config: Union[McpConfig, Dict[str, Any], None]
    ) -> Optional[CapabilityProvider]:
        """
        Get MCP tools for a configuration.

        The configuration's ConnectionSettings govern discovery and every
        call made through the returned provider.

        Args:
            config: McpConfig or its dictionary form

        Returns:
            A capability provider with at least one tool, or None
        """
        if config is None:
            logger.debug("No MCP configuration, using default tools")
            return None

        try:
            mcp_config = self._coerce_config(config)
            connections = self._connections(mcp_config)
        except ConfigurationError as e:
            logger.info(f"No MCP tools: {e}")
            return None

        try:
            provider = self.aggregator.tools_for(
                connections, mcp_config.max_concurrent_discoveries, mcp_config.settings
            )
        except Exception as e:
            logger.error(f"Failed to get MCP tools: {e}")
            return None

        if len(provider) == 0:
            logger.warning("No MCP tools available")
            return None

        logger.info(f"MCP tools available: {len(provider)}")
        return provider

    def get_default_tools(self) -> Optional[CapabilityProvider]:
        """Statically configured default tools, if any."""
        return self.default_tools

    def resolve_tools(
        self, config: Union[McpConfig, Dict[str, Any], None]
    ) -> Optional[CapabilityProvider]:
        """MCP tools when available, else the default tools, else None."""
        provider = self.get_tools_for_config(config)
        if provider is not None:
            return provider

        defaults = self.get_default_tools()
        if defaults is not None and len(defaults) > 0:
            logger.info(f"Using default tools: {len(defaults)}")
            return defaults

        logger.warning("No tools available, function calling is disabled")
        return None

    def get_tool_stats(self, config: Union[McpConfig, Dict[str, Any], None]) -> ToolStats:
        stats = ToolStats()

        mcp_tools = self.get_tools_for_config(config)
        if mcp_tools is not None:
            stats.mcp_tool_count = len(mcp_tools)
            stats.mcp_tools_available = True

        defaults = self.get_default_tools()
        if defaults is not None:
            stats.default_tool_count = len(defaults)
            stats.default_tools_available = True

        return stats

    def shutdown(self) -> None:
        self.registry.clear_all()
