import pytest

from tests.conftest_logging import configure_test_logging

from assistant.mcp_client.config import ConnectionConfig, ConnectionSettings, McpConfig
from assistant.mcp_client.discovery import ToolDiscoveryClient
from assistant.mcp_client.invocation import ToolInvocationClient
from assistant.mcp_client.aggregator import ToolAggregator
from assistant.mcp_client.registry import ConnectionRegistry


@pytest.fixture
def settings():
    """Connection settings with retries enabled but no delay between them."""
    return ConnectionSettings(timeout=5, retry_attempts=3, retry_delay=0)


@pytest.fixture
def registry(settings):
    """Provides a fresh ConnectionRegistry and closes its clients afterwards."""
    registry = ConnectionRegistry(settings)
    yield registry
    registry.clear_all()


@pytest.fixture
def sleeps():
    """Records retry delays instead of sleeping."""
    return []


@pytest.fixture
def discovery_client(registry, sleeps):
    return ToolDiscoveryClient(registry, sleep=sleeps.append)


@pytest.fixture
def invocation_client(registry):
    return ToolInvocationClient(registry)


@pytest.fixture
def aggregator(registry, discovery_client, invocation_client):
    return ToolAggregator(registry, discovery_client, invocation_client)


@pytest.fixture
def crm_connection():
    return ConnectionConfig(name="crm", url="http://crm.test/mcp", api_key="crm-secret-key")


@pytest.fixture
def orders_connection():
    return ConnectionConfig(name="orders", url="http://orders.test/mcp/", api_key="orders-key")


@pytest.fixture
def mcp_config(crm_connection, orders_connection):
    return McpConfig(
        connections={"crm": crm_connection, "orders": orders_connection},
        settings=ConnectionSettings(retry_delay=0),
    )
