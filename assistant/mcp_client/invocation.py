"""
Tool invocation against a single upstream MCP server.

Invocation never raises to the chat layer: any failure is turned into a
JSON object with an "error" field and returned the same way a successful
result would be.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

import httpx

from .config import ConnectionSettings
from .discovery import build_request, tools_endpoint
from .errors import InvocationError, McpClientError
from .registry import ConnectionHandle, ConnectionRegistry

logger = logging.getLogger(__name__)

_STRIP_CHARS = "\"'{} \t\r\n"


def _parse_simple_arguments(raw: str) -> Dict[str, Any]:
    """Best-effort 'key: value, key: value' parsing."""
    arguments: Dict[str, Any] = {}
    for pair in raw.split(","):
        parts = pair.split(":")
        if len(parts) != 2:
            continue
        key = parts[0].strip(_STRIP_CHARS)
        value = parts[1].strip(_STRIP_CHARS)
        if key:
            arguments[key] = value
    return arguments


def parse_arguments(raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Convert model-supplied tool arguments into an argument map.

    A JSON object is used as is. Anything else falls back to permissive
    key:value parsing, and finally to an empty map.

    Args:
        raw: Argument string from the chat model, or an already parsed map

    Returns:
        The argument map, never None
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str) or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    arguments = _parse_simple_arguments(raw)
    if not arguments:
        logger.debug(f"Could not parse tool arguments, sending none: {raw[:200]!r}")
    return arguments


def error_result(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


def format_result(value: Any) -> str:
    """Strings pass through; anything else is serialized as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class ToolInvocationClient:
    """Sends tools/call to the upstream that owns a tool. Single attempt."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        settings: Optional[ConnectionSettings] = None,
    ):
        self.registry = registry
        self.settings = settings or registry.settings

    def invoke(
        self,
        handle: ConnectionHandle,
        base_url: str,
        tool_name: str,
        arguments: Union[str, Dict[str, Any], None],
        settings: Optional[ConnectionSettings] = None,
    ) -> str:
        """
        Call a tool and return its result as a string.

        Args:
            handle: Connection handle from the registry
            base_url: Upstream server URL
            tool_name: Name of the tool to call
            arguments: Raw argument string or argument map
            settings: Per-configuration overrides, the client defaults otherwise

        Returns:
            The tool result, or a JSON object with an "error" field
        """
        try:
            return self._call(
                handle,
                base_url,
                tool_name,
                parse_arguments(arguments),
                settings or self.settings,
            )
        except McpClientError as e:
            logger.error(f"MCP tool call failed: {e}")
            return error_result(f"MCP tool call failed: {e.message}")

    def _call(
        self,
        handle: ConnectionHandle,
        base_url: str,
        tool_name: str,
        arguments: Dict[str, Any],
        settings: ConnectionSettings,
    ) -> str:
        request = build_request("tools/call", {"name": tool_name, "arguments": arguments})
        logger.debug(f"Calling MCP tool {tool_name} on {handle.display_key}")

        try:
            body = handle.post_json(
                tools_endpoint(base_url),
                request,
                timeout=settings.timeout,
                max_bytes=settings.max_response_bytes,
            )
        except McpClientError as e:
            self.registry.report_failure(handle.key, settings.max_failures)
            raise InvocationError(e.message, tool_name, handle.display_key) from e
        except (httpx.HTTPError, RuntimeError) as e:
            self.registry.report_failure(handle.key, settings.max_failures)
            raise InvocationError(str(e), tool_name, handle.display_key) from e
        except (TypeError, ValueError) as e:
            # Raised while encoding the request; not counted as a connection failure.
            raise InvocationError(
                f"Arguments are not JSON serializable: {e}", tool_name, handle.display_key
            ) from e

        try:
            document = json.loads(body)
        except ValueError:
            return body

        if isinstance(document, dict) and "jsonrpc" in document:
            if isinstance(document.get("error"), dict):
                error = document["error"]
                raise InvocationError(
                    f"{error.get('message', 'unknown error')} (code {error.get('code')})",
                    tool_name,
                    handle.display_key,
                )
            if "result" in document:
                return format_result(document["result"])
        return format_result(document)
