"""
Configuration management for the MCP tool client.

This module handles loading and validating the MCP connection configuration
used by the assistant, including per-business-type agent overrides.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESPONSE_BYTES = 1024 * 1024


@dataclass
class ConnectionSettings:
    """Network settings shared by every upstream connection."""

    timeout: float = 30
    retry_attempts: int = 3
    retry_delay: float = 1.0
    max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES
    max_failures: int = 3

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        if self.max_response_bytes <= 0:
            raise ValueError("max_response_bytes must be positive")
        if self.max_failures <= 0:
            raise ValueError("max_failures must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeout": self.timeout,
            "retry_attempts": self.retry_attempts,
            "retry_delay": self.retry_delay,
            "max_response_bytes": self.max_response_bytes,
            "max_failures": self.max_failures,
        }


@dataclass
class ConnectionConfig:
    """Configuration for a single upstream MCP server."""

    name: str
    url: str
    api_key: str = ""
    params: Dict[str, str] = field(default_factory=dict)
    enabled: bool = True

    def __post_init__(self):
        """Validate connection configuration after initialization."""
        if not self.name:
            raise ValueError("Connection name cannot be empty")
        if not isinstance(self.url, str):
            raise ValueError(f"Connection '{self.name}' url must be a string")
        if not self.url.strip():
            raise ValueError(f"Connection '{self.name}' requires a url")
        if self.api_key is None:
            self.api_key = ""
        if not isinstance(self.api_key, str):
            raise ValueError(f"Connection '{self.name}' api_key must be a string")
        if self.params is None:
            self.params = {}

    @property
    def base_url(self) -> str:
        """Server URL without a trailing slash."""
        return self.url.strip().rstrip("/")

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ConnectionConfig":
        """Create a connection from either camelCase or snake_case keys."""
        if not isinstance(data, dict):
            raise ValueError(f"Connection '{name}' must be a dictionary")
        return cls(
            name=name,
            url=data.get("url", ""),
            api_key=data.get("apiKey", data.get("api_key", "")),
            params=data.get("params") or {},
            enabled=data.get("enabled", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"url": self.url, "api_key": self.api_key}
        if self.params:
            data["params"] = dict(self.params)
        if not self.enabled:
            data["enabled"] = False
        return data


@dataclass
class ToolCallbackSettings:
    """Kill switch and free-form options for tool callbacks."""

    enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class McpConfig:
    """
    MCP configuration for one logical agent configuration.

    Two document shapes are accepted by from_dict: a flat one

        {"enabled": true, "connections": {"crm": {"url": ..., "api_key": ...}}}

    and the nested service shape

        {"client": {"sse": {"connections": {...}}, "toolcallback": {"enabled": true}}}
    """

    connections: Dict[str, ConnectionConfig] = field(default_factory=dict)
    tool_callback: ToolCallbackSettings = field(default_factory=ToolCallbackSettings)
    settings: ConnectionSettings = field(default_factory=ConnectionSettings)
    max_concurrent_discoveries: int = 4

    def __post_init__(self):
        if self.max_concurrent_discoveries <= 0:
            raise ValueError("max_concurrent_discoveries must be positive")

    @property
    def enabled(self) -> bool:
        return self.tool_callback.enabled

    def get_enabled_connections(self) -> List[ConnectionConfig]:
        """Get enabled connections in configuration order."""
        return [conn for conn in self.connections.values() if conn.enabled]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "McpConfig":
        """
        Build an McpConfig from a parsed document.

        Raises:
            ConfigurationError: If the document is malformed
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("MCP configuration must be a dictionary")

        client = data.get("client") or {}
        if not isinstance(client, dict):
            raise ConfigurationError("mcp.client must be a dictionary")

        connections_data = data.get("connections")
        if connections_data is None:
            sse = client.get("sse") or {}
            if not isinstance(sse, dict):
                raise ConfigurationError("mcp.client.sse must be a dictionary")
            connections_data = sse.get("connections") or {}
        if not isinstance(connections_data, dict):
            raise ConfigurationError("connections must be a dictionary")

        callback_data = data.get("toolcallback", client.get("toolcallback")) or {}
        if not isinstance(callback_data, dict):
            raise ConfigurationError("toolcallback must be a dictionary")
        enabled = data.get("enabled", callback_data.get("enabled", True))

        try:
            connections = {}
            for name, conn_data in connections_data.items():
                connections[name] = ConnectionConfig.from_dict(name, conn_data)
                logger.debug(f"Loaded MCP connection config: {name}")

            return cls(
                connections=connections,
                tool_callback=ToolCallbackSettings(
                    enabled=bool(enabled),
                    options=callback_data.get("options") or {},
                ),
                settings=ConnectionSettings(**(data.get("settings") or {})),
                max_concurrent_discoveries=data.get("max_concurrent_discoveries", 4),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid MCP configuration: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to the flat dictionary format."""
        return {
            "enabled": self.tool_callback.enabled,
            "connections": {
                name: conn.to_dict() for name, conn in self.connections.items()
            },
            "toolcallback": {
                "enabled": self.tool_callback.enabled,
                "options": dict(self.tool_callback.options),
            },
            "settings": self.settings.to_dict(),
            "max_concurrent_discoveries": self.max_concurrent_discoveries,
        }

    def __str__(self) -> str:
        enabled_count = len(self.get_enabled_connections())
        return (
            f"McpConfig(connections={enabled_count}/{len(self.connections)} enabled, "
            f"tool_callback={'on' if self.enabled else 'off'})"
        )


def extract_system_prompt(document: Optional[Dict[str, Any]]) -> Optional[str]:
    """Read systemPrompt from the top level or from under 'agent'."""
    if not document:
        return None
    prompt = document.get("systemPrompt")
    if prompt is not None:
        return str(prompt)
    agent = document.get("agent")
    if isinstance(agent, dict) and agent.get("systemPrompt") is not None:
        return str(agent["systemPrompt"])
    logger.debug("No systemPrompt found in config")
    return None


def extract_mcp_config(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Read the mcp section from the top level or from under 'agent'."""
    if not document:
        return {}
    mcp = document.get("mcp")
    if isinstance(mcp, dict):
        return mcp
    agent = document.get("agent")
    if isinstance(agent, dict) and isinstance(agent.get("mcp"), dict):
        return agent["mcp"]
    logger.debug("No MCP config found in config")
    return {}


@dataclass
class BusinessTypeConfig:
    """Overrides applied for one business type."""

    system_prompt: Optional[str] = None
    mcp: Optional[McpConfig] = None
    business: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessTypeConfig":
        mcp_data = extract_mcp_config(data)
        return cls(
            system_prompt=extract_system_prompt(data),
            mcp=McpConfig.from_dict(mcp_data) if mcp_data else None,
            business=data.get("business") or {},
        )


@dataclass
class AgentConfig:
    """Global agent configuration with per-business-type overrides."""

    system_prompt: Optional[str] = None
    mcp: Optional[McpConfig] = None
    business_type_configs: Dict[str, BusinessTypeConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "AgentConfig":
        """
        Build an AgentConfig from a parsed document.

        Raises:
            ConfigurationError: If the document is malformed
        """
        if not isinstance(document, dict):
            raise ConfigurationError("Agent configuration must be a dictionary")

        root = document.get("agent") if isinstance(document.get("agent"), dict) else document
        mcp_data = extract_mcp_config(document)

        business_types = {}
        for business_type, data in (root.get("businessTypeConfigs") or {}).items():
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Business type config '{business_type}' must be a dictionary"
                )
            business_types[business_type] = BusinessTypeConfig.from_dict(data)

        return cls(
            system_prompt=extract_system_prompt(document),
            mcp=McpConfig.from_dict(mcp_data) if mcp_data else None,
            business_type_configs=business_types,
        )

    def update_business_type_config(
        self, business_type: str, config: BusinessTypeConfig
    ) -> None:
        self.business_type_configs[business_type] = config
        logger.info(f"Business type config applied: {business_type}")

    def get_business_type_config(self, business_type: str) -> Optional[BusinessTypeConfig]:
        return self.business_type_configs.get(business_type)

    def get_system_prompt(self, business_type: Optional[str] = None) -> Optional[str]:
        """Business-type prompt when it is set and non-blank, else the global one."""
        if business_type:
            config = self.business_type_configs.get(business_type)
            if config and config.system_prompt and config.system_prompt.strip():
                return config.system_prompt
        return self.system_prompt

    def get_mcp_config(self, business_type: Optional[str] = None) -> Optional[McpConfig]:
        """Business-type MCP config when present, else the global one."""
        if business_type:
            config = self.business_type_configs.get(business_type)
            if config and config.mcp is not None:
                return config.mcp
        return self.mcp

    def is_valid(self) -> bool:
        """A usable agent config needs a non-blank system prompt."""
        valid = bool(self.system_prompt and self.system_prompt.strip())
        if not valid:
            logger.warning("Config validation failed: missing or empty systemPrompt")
        return valid


def _read_json(config_path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    logger.info(f"Loading MCP configuration from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file: {e}")


def load_mcp_config(config_path: Union[str, Path]) -> McpConfig:
    """
    Load an MCP configuration from a JSON file.

    The file may hold the MCP section directly or a whole agent document
    with an 'mcp' section.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded McpConfig instance

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    document = _read_json(config_path)
    mcp_data = extract_mcp_config(document) or document
    config = McpConfig.from_dict(mcp_data)
    logger.info(f"Loaded configuration for {len(config.connections)} connections")
    return config


def load_agent_config(config_path: Union[str, Path]) -> AgentConfig:
    """
    Load an agent configuration from a JSON file.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    return AgentConfig.from_dict(_read_json(config_path))
