"""
Tests for tool invocation against a single upstream.
"""

import json

import httpx
import respx

from assistant.mcp_client.config import ConnectionSettings
from assistant.mcp_client.invocation import format_result, parse_arguments

BASE_URL = "http://crm.test/mcp"
TOOLS_URL = f"{BASE_URL}/tools"


class TestParseArguments:
    """Test permissive argument parsing."""

    def test_json_object(self):
        assert parse_arguments('{"query": "refund", "limit": 5}') == {
            "query": "refund",
            "limit": 5,
        }

    def test_simple_key_value(self):
        assert parse_arguments("query: refund, status: open") == {
            "query": "refund",
            "status": "open",
        }

    def test_simple_key_value_strips_quotes_and_braces(self):
        assert parse_arguments("{'query': 'refund'}") == {"query": "refund"}

    def test_pairs_with_extra_colons_are_skipped(self):
        assert parse_arguments("url: http://x, id: 7") == {"id": "7"}

    def test_not_json(self):
        assert parse_arguments("not json") == {}

    def test_json_array_is_not_arguments(self):
        assert parse_arguments("[1, 2]") == {}

    def test_blank_and_none(self):
        assert parse_arguments("") == {}
        assert parse_arguments("   ") == {}
        assert parse_arguments(None) == {}

    def test_dict_passthrough(self):
        arguments = {"a": 1}
        parsed = parse_arguments(arguments)
        assert parsed == arguments
        assert parsed is not arguments


class TestFormatResult:
    def test_string_passthrough(self):
        assert format_result("plain") == "plain"

    def test_structured_is_serialized(self):
        assert json.loads(format_result({"a": [1, 2]})) == {"a": [1, 2]}


class TestToolInvocationClient:
    """Test ToolInvocationClient.invoke."""

    @respx.mock
    def test_invoke_sends_tools_call(self, registry, invocation_client):
        route = respx.post(TOOLS_URL).mock(
            return_value=httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "result": {"content": "ok"}}
            )
        )
        handle = registry.get_or_create(BASE_URL, "k")

        result = invocation_client.invoke(handle, BASE_URL, "search", '{"query": "refund"}')

        assert json.loads(result) == {"content": "ok"}
        sent = json.loads(route.calls.last.request.content)
        assert sent["jsonrpc"] == "2.0"
        assert sent["method"] == "tools/call"
        assert sent["params"] == {"name": "search", "arguments": {"query": "refund"}}

    @respx.mock
    def test_not_json_arguments_send_empty_map(self, registry, invocation_client):
        route = respx.post(TOOLS_URL).mock(
            return_value=httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "done"})
        )
        handle = registry.get_or_create(BASE_URL, "k")

        result = invocation_client.invoke(handle, BASE_URL, "search", "not json")

        assert result == "done"
        sent = json.loads(route.calls.last.request.content)
        assert sent["params"]["arguments"] == {}

    @respx.mock
    def test_http_500_returns_error_field(self, registry, invocation_client):
        route = respx.post(TOOLS_URL).mock(return_value=httpx.Response(500))
        handle = registry.get_or_create(BASE_URL, "k")

        result = invocation_client.invoke(handle, BASE_URL, "search", "{}")

        payload = json.loads(result)
        assert "error" in payload
        assert payload["error"].startswith("MCP tool call failed")
        assert route.call_count == 1
        assert registry.tracker.count(handle.key) == 1

    @respx.mock
    def test_transport_error_returns_error_field(self, registry, invocation_client):
        respx.post(TOOLS_URL).mock(side_effect=httpx.ConnectError("refused"))
        handle = registry.get_or_create(BASE_URL, "k")

        payload = json.loads(invocation_client.invoke(handle, BASE_URL, "search", "{}"))

        assert "refused" in payload["error"]

    @respx.mock
    def test_jsonrpc_error_returns_error_field(self, registry, invocation_client):
        respx.post(TOOLS_URL).mock(
            return_value=httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad args"}},
            )
        )
        handle = registry.get_or_create(BASE_URL, "k")

        payload = json.loads(invocation_client.invoke(handle, BASE_URL, "search", "{}"))

        assert "bad args" in payload["error"]
        assert registry.tracker.count(handle.key) == 0

    @respx.mock
    def test_plain_text_result(self, registry, invocation_client):
        respx.post(TOOLS_URL).mock(return_value=httpx.Response(200, text="42 orders"))
        handle = registry.get_or_create(BASE_URL, "k")

        assert invocation_client.invoke(handle, BASE_URL, "count", "") == "42 orders"

    @respx.mock
    def test_non_envelope_json_returned_whole(self, registry, invocation_client):
        respx.post(TOOLS_URL).mock(return_value=httpx.Response(200, json={"orders": [1, 2]}))
        handle = registry.get_or_create(BASE_URL, "k")

        result = invocation_client.invoke(handle, BASE_URL, "orders", {})

        assert json.loads(result) == {"orders": [1, 2]}

    def test_closed_handle_returns_error_field(self, registry, invocation_client):
        handle = registry.get_or_create(BASE_URL, "k")
        registry.evict(handle.key)

        payload = json.loads(invocation_client.invoke(handle, BASE_URL, "search", "{}"))

        assert "error" in payload

    @respx.mock
    def test_unserializable_arguments_return_error_field(self, registry, invocation_client):
        route = respx.post(TOOLS_URL).mock(return_value=httpx.Response(200, text="ok"))
        handle = registry.get_or_create(BASE_URL, "k")

        result = invocation_client.invoke(handle, BASE_URL, "search", {"when": object()})

        payload = json.loads(result)
        assert "not JSON serializable" in payload["error"]
        assert route.call_count == 0
        assert registry.tracker.count(handle.key) == 0

    @respx.mock
    def test_settings_override_timeout(self, registry, invocation_client):
        route = respx.post(TOOLS_URL).mock(return_value=httpx.Response(200, text="ok"))
        handle = registry.get_or_create(BASE_URL, "k")

        invocation_client.invoke(
            handle, BASE_URL, "search", "{}", ConnectionSettings(timeout=7)
        )

        assert route.calls.last.request.extensions["timeout"]["read"] == 7
