"""
Tests for MCP client configuration management.
"""

import json
import tempfile

import pytest

from assistant.mcp_client.config import (
    AgentConfig,
    BusinessTypeConfig,
    ConnectionConfig,
    ConnectionSettings,
    McpConfig,
    extract_mcp_config,
    extract_system_prompt,
    load_agent_config,
    load_mcp_config,
)
from assistant.mcp_client.errors import ConfigurationError


class TestConnectionSettings:
    """Test ConnectionSettings dataclass."""

    def test_default_values(self):
        """Test default values are set correctly."""
        settings = ConnectionSettings()
        assert settings.timeout == 30
        assert settings.retry_attempts == 3
        assert settings.retry_delay == 1.0
        assert settings.max_response_bytes == 1024 * 1024
        assert settings.max_failures == 3

    def test_validation_errors(self):
        """Test validation errors for invalid values."""
        with pytest.raises(ValueError, match="timeout must be positive"):
            ConnectionSettings(timeout=0)

        with pytest.raises(ValueError, match="retry_attempts must be non-negative"):
            ConnectionSettings(retry_attempts=-1)

        with pytest.raises(ValueError, match="retry_delay must be non-negative"):
            ConnectionSettings(retry_delay=-1)

        with pytest.raises(ValueError, match="max_response_bytes must be positive"):
            ConnectionSettings(max_response_bytes=0)

        with pytest.raises(ValueError, match="max_failures must be positive"):
            ConnectionSettings(max_failures=0)


class TestConnectionConfig:
    """Test ConnectionConfig dataclass."""

    def test_from_camel_case(self):
        conn = ConnectionConfig.from_dict(
            "crm", {"url": "http://crm.test/", "apiKey": "k", "params": {"region": "eu"}}
        )
        assert conn.api_key == "k"
        assert conn.params == {"region": "eu"}
        assert conn.enabled is True
        assert conn.base_url == "http://crm.test"

    def test_from_snake_case(self):
        conn = ConnectionConfig.from_dict("crm", {"url": "http://crm.test", "api_key": "k"})
        assert conn.api_key == "k"
        assert conn.params == {}

    def test_missing_url(self):
        with pytest.raises(ValueError, match="requires a url"):
            ConnectionConfig(name="crm", url="")

    def test_empty_name(self):
        with pytest.raises(ValueError, match="name cannot be empty"):
            ConnectionConfig(name="", url="http://crm.test")

    def test_non_string_url(self):
        with pytest.raises(ValueError, match="url must be a string"):
            ConnectionConfig(name="crm", url=123)

    def test_non_string_api_key(self):
        with pytest.raises(ValueError, match="api_key must be a string"):
            ConnectionConfig(name="crm", url="http://crm.test", api_key=42)


class TestMcpConfig:
    """Test McpConfig parsing."""

    def test_flat_shape(self):
        config = McpConfig.from_dict(
            {
                "enabled": True,
                "connections": {
                    "crm": {"url": "http://crm.test", "api_key": "a"},
                    "orders": {"url": "http://orders.test", "enabled": False},
                },
                "settings": {"retry_delay": 0},
            }
        )
        assert config.enabled is True
        assert list(config.connections) == ["crm", "orders"]
        assert [c.name for c in config.get_enabled_connections()] == ["crm"]
        assert config.settings.retry_delay == 0

    def test_nested_service_shape(self):
        config = McpConfig.from_dict(
            {
                "client": {
                    "sse": {
                        "connections": {
                            "crm": {"url": "http://crm.test", "apiKey": "a"},
                        }
                    },
                    "toolcallback": {"enabled": False, "options": {"x": 1}},
                }
            }
        )
        assert config.connections["crm"].api_key == "a"
        assert config.enabled is False
        assert config.tool_callback.options == {"x": 1}

    def test_empty_document(self):
        config = McpConfig.from_dict(None)
        assert config.connections == {}
        assert config.enabled is True

    def test_invalid_connection_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid MCP configuration"):
            McpConfig.from_dict({"connections": {"crm": {"api_key": "a"}}})

    def test_connections_must_be_dict(self):
        with pytest.raises(ConfigurationError):
            McpConfig.from_dict({"connections": ["crm"]})

    @pytest.mark.parametrize(
        "document,message",
        [
            ({"connections": {"crm": {"url": 123}}}, "url must be a string"),
            ({"client": {"sse": ["not", "a", "dict"]}}, "sse must be a dictionary"),
            ({"toolcallback": True, "connections": {}}, "toolcallback must be a dictionary"),
            ({"client": {"toolcallback": "on"}}, "toolcallback must be a dictionary"),
            ({"connections": {}, "settings": ["retry_attempts"]}, "Invalid MCP configuration"),
        ],
    )
    def test_malformed_shapes_raise_configuration_error(self, document, message):
        with pytest.raises(ConfigurationError, match=message):
            McpConfig.from_dict(document)

    def test_to_dict_round_trip(self):
        config = McpConfig.from_dict(
            {"connections": {"crm": {"url": "http://crm.test", "api_key": "a"}}}
        )
        restored = McpConfig.from_dict(config.to_dict())
        assert restored.connections["crm"].url == "http://crm.test"
        assert restored.connections["crm"].api_key == "a"
        assert restored.enabled is True

    def test_max_concurrent_discoveries_validation(self):
        with pytest.raises(ValueError, match="max_concurrent_discoveries must be positive"):
            McpConfig(max_concurrent_discoveries=0)


class TestExtraction:
    """Test systemPrompt/mcp extraction from agent documents."""

    def test_top_level(self):
        document = {"systemPrompt": "Hi", "mcp": {"enabled": True}}
        assert extract_system_prompt(document) == "Hi"
        assert extract_mcp_config(document) == {"enabled": True}

    def test_nested_under_agent(self):
        document = {"agent": {"systemPrompt": "Hi", "mcp": {"enabled": False}}}
        assert extract_system_prompt(document) == "Hi"
        assert extract_mcp_config(document) == {"enabled": False}

    def test_missing(self):
        assert extract_system_prompt({}) is None
        assert extract_mcp_config({"other": 1}) == {}


class TestAgentConfig:
    """Test AgentConfig business type overrides."""

    @pytest.fixture
    def agent_config(self):
        return AgentConfig.from_dict(
            {
                "agent": {
                    "systemPrompt": "You are a support agent.",
                    "mcp": {"connections": {"crm": {"url": "http://crm.test"}}},
                    "businessTypeConfigs": {
                        "orders": {
                            "systemPrompt": "You handle orders.",
                            "mcp": {"connections": {"orders": {"url": "http://orders.test"}}},
                        },
                        "billing": {"systemPrompt": "   "},
                    },
                }
            }
        )

    def test_global_prompt(self, agent_config):
        assert agent_config.get_system_prompt() == "You are a support agent."
        assert agent_config.is_valid() is True

    def test_business_type_prompt(self, agent_config):
        assert agent_config.get_system_prompt("orders") == "You handle orders."

    def test_blank_business_prompt_falls_back(self, agent_config):
        assert agent_config.get_system_prompt("billing") == "You are a support agent."

    def test_unknown_business_type_falls_back(self, agent_config):
        assert agent_config.get_system_prompt("unknown") == "You are a support agent."
        assert list(agent_config.get_mcp_config("unknown").connections) == ["crm"]

    def test_business_type_mcp(self, agent_config):
        assert list(agent_config.get_mcp_config("orders").connections) == ["orders"]
        assert list(agent_config.get_mcp_config("billing").connections) == ["crm"]

    def test_update_business_type_config(self, agent_config):
        agent_config.update_business_type_config(
            "returns", BusinessTypeConfig(system_prompt="You handle returns.")
        )
        assert agent_config.get_system_prompt("returns") == "You handle returns."

    def test_invalid_without_prompt(self):
        assert AgentConfig().is_valid() is False


class TestLoadConfig:
    """Test loading configuration files."""

    def _write(self, data):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)
            return f.name

    def test_load_mcp_config(self):
        path = self._write({"connections": {"crm": {"url": "http://crm.test"}}})
        config = load_mcp_config(path)
        assert list(config.connections) == ["crm"]

    def test_load_mcp_config_from_agent_document(self):
        path = self._write(
            {"agent": {"mcp": {"connections": {"crm": {"url": "http://crm.test"}}}}}
        )
        config = load_mcp_config(path)
        assert list(config.connections) == ["crm"]

    def test_load_agent_config(self):
        path = self._write({"systemPrompt": "Hi"})
        assert load_agent_config(path).system_prompt == "Hi"

    def test_missing_file(self):
        with pytest.raises(ConfigurationError, match="not found"):
            load_mcp_config("/nonexistent/mcp.json")

    def test_invalid_json(self):
        path = self._write("{ invalid json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_mcp_config(path)
