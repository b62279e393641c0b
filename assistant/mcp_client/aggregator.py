"""
Aggregation of tools across every upstream of one MCP configuration.

This module provides the capability providers handed to the chat layer and
the ToolAggregator that fans discovery out over the configured upstreams,
skips the ones that fail and merges the rest into one tool list.
"""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import ConnectionConfig, ConnectionSettings
from .discovery import ToolDiscoveryClient
from .invocation import ToolInvocationClient, error_result
from .parsing import ToolDescriptor, ToolSet
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

Arguments = Union[str, Dict[str, Any], None]


class CapabilityProvider(ABC):
    """A set of tools the chat model may call."""

    @abstractmethod
    def list_tools(self) -> List[ToolDescriptor]:
        """Return the available tools."""

    @abstractmethod
    def invoke(self, name: str, arguments: Arguments) -> str:
        """Call a tool by name. Implementations never raise."""

    def get_tool(self, name: str) -> Optional[ToolDescriptor]:
        for tool in self.list_tools():
            if tool.name == name:
                return tool
        return None

    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.list_tools()]

    def __len__(self) -> int:
        return len(self.list_tools())


class UpstreamToolProvider(CapabilityProvider):
    """Tools discovered from a single upstream, invoked against that upstream."""

    def __init__(
        self,
        connection: ConnectionConfig,
        tool_set: ToolSet,
        registry: ConnectionRegistry,
        invocation_client: ToolInvocationClient,
        settings: Optional[ConnectionSettings] = None,
    ):
        self.connection = connection
        self.tool_set = tool_set
        self.registry = registry
        self.invocation_client = invocation_client
        self.settings = settings

    def list_tools(self) -> List[ToolDescriptor]:
        return list(self.tool_set)

    def get_tool(self, name: str) -> Optional[ToolDescriptor]:
        return self.tool_set.get(name)

    def invoke(self, name: str, arguments: Arguments) -> str:
        if name not in self.tool_set:
            return error_result(f"Unknown tool: {name}")
        # Looked up per call so an evicted connection is rebuilt.
        handle = self.registry.get_or_create(
            self.connection.base_url, self.connection.api_key
        )
        return self.invocation_client.invoke(
            handle, self.connection.base_url, name, arguments, self.settings
        )

    def __len__(self) -> int:
        return len(self.tool_set)

    def __str__(self) -> str:
        return f"UpstreamToolProvider({self.connection.name}: {len(self.tool_set)} tools)"


@dataclass
class ToolConflict:
    """A tool name advertised by more than one upstream."""

    tool_name: str
    connections: List[str]
    winner: str

    def __str__(self) -> str:
        return f"ToolConflict({self.tool_name} in {', '.join(self.connections)}; {self.winner} wins)"


class AggregatedToolSet(CapabilityProvider):
    """
    Union of several upstream tool sets.

    Tool names are not namespaced. When two upstreams advertise the same
    name, the one added last owns it.
    """

    def __init__(self, providers: Optional[Iterable[CapabilityProvider]] = None):
        self._routes: Dict[str, Tuple[ToolDescriptor, CapabilityProvider]] = {}
        self._owners: Dict[str, List[str]] = {}
        self.conflicts: List[ToolConflict] = []
        for provider in providers or []:
            self.add_provider(provider)

    def add_provider(self, provider: CapabilityProvider) -> None:
        source = _provider_name(provider)
        for tool in provider.list_tools():
            owners = self._owners.setdefault(tool.name, [])
            if tool.name in self._routes:
                logger.warning(
                    f"Tool name collision for '{tool.name}': "
                    f"{source} replaces {owners[-1]}"
                )
                self.conflicts.append(
                    ToolConflict(tool.name, owners + [source], source)
                )
            owners.append(source)
            self._routes[tool.name] = (tool, provider)

    def list_tools(self) -> List[ToolDescriptor]:
        return [tool for tool, _ in self._routes.values()]

    def get_tool(self, name: str) -> Optional[ToolDescriptor]:
        route = self._routes.get(name)
        return route[0] if route else None

    def invoke(self, name: str, arguments: Arguments) -> str:
        route = self._routes.get(name)
        if route is None:
            return error_result(f"Unknown tool: {name}")
        return route[1].invoke(name, arguments)

    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    def is_empty(self) -> bool:
        return not self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __str__(self) -> str:
        return f"AggregatedToolSet({len(self._routes)} tools, {len(self.conflicts)} conflicts)"


def _provider_name(provider: CapabilityProvider) -> str:
    connection = getattr(provider, "connection", None)
    if connection is not None:
        return connection.name
    return getattr(provider, "name", type(provider).__name__)


@dataclass
class DiscoveryResult:
    """Outcome of discovery against one upstream."""

    connection_name: str
    success: bool
    tools_discovered: int = 0
    error_message: Optional[str] = None
    discovery_time: float = 0.0
    provider: Optional[UpstreamToolProvider] = field(default=None, repr=False)

    def __str__(self) -> str:
        if self.success:
            return (
                f"DiscoveryResult({self.connection_name}: {self.tools_discovered} tools "
                f"in {self.discovery_time:.2f}s)"
            )
        return f"DiscoveryResult({self.connection_name}: FAILED - {self.error_message})"


class ToolAggregator:
    """
    Builds one capability provider from every upstream of a configuration.

    Upstreams are discovered independently on a bounded thread pool. A
    failing upstream is logged and skipped; merge order always follows
    configuration order regardless of which discovery finishes first.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        discovery_client: Optional[ToolDiscoveryClient] = None,
        invocation_client: Optional[ToolInvocationClient] = None,
        max_concurrent_discoveries: int = 4,
    ):
        if max_concurrent_discoveries <= 0:
            raise ValueError("max_concurrent_discoveries must be positive")
        self.registry = registry
        self.discovery_client = discovery_client or ToolDiscoveryClient(registry)
        self.invocation_client = invocation_client or ToolInvocationClient(registry)
        self.max_concurrent_discoveries = max_concurrent_discoveries

    def discover_connection(
        self,
        connection: ConnectionConfig,
        settings: Optional[ConnectionSettings] = None,
    ) -> DiscoveryResult:
        """Discover one upstream. Never raises."""
        if not connection.enabled:
            logger.info(f"Skipping disabled MCP connection: {connection.name}")
            return DiscoveryResult(connection.name, False, error_message="disabled")

        start_time = time.time()
        try:
            handle = self.registry.get_or_create(connection.base_url, connection.api_key)
            tool_set = self.discovery_client.discover(handle, connection.base_url, settings)
        except Exception as e:
            logger.error(f"Tool discovery failed for {connection.name}: {e}")
            return DiscoveryResult(
                connection.name,
                False,
                error_message=str(e),
                discovery_time=time.time() - start_time,
            )

        elapsed = time.time() - start_time
        if tool_set.is_empty():
            logger.warning(f"No tools discovered from {connection.name}")
            return DiscoveryResult(
                connection.name, False, error_message="no tools", discovery_time=elapsed
            )

        provider = UpstreamToolProvider(
            connection, tool_set, self.registry, self.invocation_client, settings
        )
        return DiscoveryResult(
            connection.name,
            True,
            tools_discovered=len(tool_set),
            discovery_time=elapsed,
            provider=provider,
        )

    def discover_all(
        self,
        connections: Iterable[ConnectionConfig],
        max_concurrent: Optional[int] = None,
        settings: Optional[ConnectionSettings] = None,
    ) -> List[DiscoveryResult]:
        """Discover every connection, returning results in input order."""
        connections = list(connections)
        if not connections:
            return []

        workers = min(max_concurrent or self.max_concurrent_discoveries, len(connections))
        if workers == 1:
            results = [self.discover_connection(conn, settings) for conn in connections]
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="mcp-discovery"
            ) as executor:
                results = list(
                    executor.map(
                        lambda conn: self.discover_connection(conn, settings), connections
                    )
                )

        successful = sum(1 for r in results if r.success)
        total_tools = sum(r.tools_discovered for r in results)
        logger.info(
            f"Tool discovery completed: {successful}/{len(results)} connections, "
            f"{total_tools} tools total"
        )
        return results

    def tools_for(
        self,
        connections: Iterable[ConnectionConfig],
        max_concurrent: Optional[int] = None,
        settings: Optional[ConnectionSettings] = None,
    ) -> CapabilityProvider:
        """
        Build the capability provider for a set of upstreams.

        Args:
            connections: Upstream connections in configuration order
            max_concurrent: Override for the discovery pool size
            settings: Connection settings of the configuration, applied to
                discovery and to later tool calls

        Returns:
            The single upstream's provider when exactly one upstream yields
            tools, otherwise an AggregatedToolSet (empty when none do)
        """
        results = self.discover_all(connections, max_concurrent, settings)
        providers = [r.provider for r in results if r.success and r.provider is not None]

        if len(providers) == 1:
            return providers[0]

        aggregated = AggregatedToolSet(providers)
        if aggregated.has_conflicts():
            logger.warning(f"Found {len(aggregated.conflicts)} tool name conflicts")
        return aggregated
