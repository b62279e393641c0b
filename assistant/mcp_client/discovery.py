"""
Tool discovery against a single upstream MCP server.
"""

import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .config import ConnectionSettings
from .errors import DiscoveryError, ResponseTooLargeError
from .parsing import ToolResponseParser, ToolSet
from .registry import ConnectionHandle, ConnectionRegistry

logger = logging.getLogger(__name__)

_message_ids = itertools.count(1)


def next_message_id() -> int:
    """Process-wide unique JSON-RPC request id."""
    return next(_message_ids)


def tools_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/tools"


def build_request(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": next_message_id(),
        "method": method,
        "params": params if params is not None else {},
    }


def is_retryable(error: Exception) -> bool:
    """4xx/5xx responses, connect failures and timeouts are retried."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 400
    return isinstance(error, (httpx.ConnectError, httpx.TimeoutException))


def _rpc_error(body: str) -> Optional[Dict[str, Any]]:
    try:
        document = json.loads(body)
    except ValueError:
        return None
    if isinstance(document, dict) and isinstance(document.get("error"), dict):
        if "result" not in document:
            return document["error"]
    return None


class ToolDiscoveryClient:
    """
    Sends tools/list to an upstream and parses the answer.

    Transport failures are retried with a fixed delay. Parsing never raises;
    a body that no strategy can read yields an empty ToolSet and counts as
    a connection failure.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        settings: Optional[ConnectionSettings] = None,
        parser: Optional[ToolResponseParser] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.settings = settings or registry.settings
        self.parser = parser or ToolResponseParser()
        self._sleep = sleep

    def discover(
        self,
        handle: ConnectionHandle,
        base_url: str,
        settings: Optional[ConnectionSettings] = None,
    ) -> ToolSet:
        """
        Discover the tools exposed by one upstream.

        Args:
            handle: Connection handle from the registry
            base_url: Upstream server URL
            settings: Per-configuration overrides for timeout, retries and
                limits; the client defaults apply when omitted

        Returns:
            The parsed ToolSet, possibly empty

        Raises:
            DiscoveryError: If the request fails after all retries
        """
        settings = settings or self.settings
        url = tools_endpoint(base_url)
        body = self._fetch(handle, url, settings)

        rpc_error = _rpc_error(body)
        if rpc_error is not None:
            self.registry.report_failure(handle.key, settings.max_failures)
            raise DiscoveryError(
                f"Upstream returned JSON-RPC error {rpc_error.get('code')}: "
                f"{rpc_error.get('message', '')}",
                handle.display_key,
            )

        tool_set = self.parser.parse(body)
        if tool_set is None:
            logger.warning(
                f"Could not parse tools from {handle.display_key} "
                f"({len(body)} bytes)"
            )
            self.registry.report_failure(handle.key, settings.max_failures)
            return ToolSet()

        self.registry.report_success(handle.key)
        logger.info(
            f"Discovered {len(tool_set)} tools from {handle.display_key} "
            f"using {tool_set.strategy}"
        )
        return tool_set

    def _fetch(
        self, handle: ConnectionHandle, url: str, settings: ConnectionSettings
    ) -> str:
        attempts = settings.retry_attempts + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            request = build_request("tools/list")
            try:
                return handle.post_json(
                    url,
                    request,
                    timeout=settings.timeout,
                    max_bytes=settings.max_response_bytes,
                )
            except ResponseTooLargeError:
                self.registry.report_failure(handle.key, settings.max_failures)
                raise
            except httpx.HTTPError as e:
                last_error = e
                if not is_retryable(e) or attempt == attempts:
                    break
                logger.warning(
                    f"tools/list attempt {attempt}/{attempts} failed for "
                    f"{handle.display_key}: {e}; retrying in {settings.retry_delay}s"
                )
                self._sleep(settings.retry_delay)

        self.registry.report_failure(handle.key, settings.max_failures)
        raise DiscoveryError(
            f"tools/list failed: {last_error}", handle.display_key, cause=last_error
        ) from last_error
