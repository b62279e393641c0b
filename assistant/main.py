#!/usr/bin/env python3
"""
Command line access to the MCP tool layer.

Usage:
    python -m assistant.main --config mcp.json list
    python -m assistant.main --config mcp.json call search '{"query": "refund"}'
    python -m assistant.main --config agent.json --business-type orders stats
"""

import argparse
import json
import sys

from .logging_config import setup_logging
from .mcp_client.config import load_agent_config, load_mcp_config
from .mcp_client.errors import ConfigurationError
from .mcp_client.provider import ToolProviderService


def load_config(args):
    """MCP config from --config, honouring --business-type for agent files."""
    if args.business_type:
        agent_config = load_agent_config(args.config)
        config = agent_config.get_mcp_config(args.business_type)
        if config is None:
            raise ConfigurationError(
                f"No MCP configuration for business type '{args.business_type}'"
            )
        return config
    return load_mcp_config(args.config)


def cmd_list(service, config, args):
    """Print the aggregated tool list."""
    provider = service.get_tools_for_config(config)
    if provider is None:
        print("No MCP tools available", file=sys.stderr)
        return 1

    print(json.dumps([tool.to_dict() for tool in provider.list_tools()], indent=2))
    return 0


def cmd_call(service, config, args):
    """Invoke one tool and print its result."""
    provider = service.get_tools_for_config(config)
    if provider is None:
        print("No MCP tools available", file=sys.stderr)
        return 1

    if provider.get_tool(args.tool) is None:
        print(f"Unknown tool: {args.tool}", file=sys.stderr)
        return 1

    result = provider.invoke(args.tool, args.arguments)
    print(result)
    try:
        payload = json.loads(result)
    except ValueError:
        return 0
    return 1 if isinstance(payload, dict) and "error" in payload else 0


def cmd_stats(service, config, args):
    """Print tool and connection statistics."""
    stats = service.get_tool_stats(config)
    print(
        json.dumps(
            {"tools": stats.to_dict(), "connections": service.registry.stats()},
            indent=2,
        )
    )
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Assistant MCP tool client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m assistant.main --config mcp.json list
  python -m assistant.main --config mcp.json call search '{"query": "refund"}'
  python -m assistant.main --config mcp.json stats
        """,
    )
    parser.add_argument("--config", required=True, help="Path to a JSON MCP or agent config")
    parser.add_argument(
        "--business-type", help="Use the MCP config of this business type (agent configs)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("list", help="List discovered tools")

    call_parser = subparsers.add_parser("call", help="Call a tool")
    call_parser.add_argument("tool", help="Tool name")
    call_parser.add_argument("arguments", nargs="?", default="", help="Tool arguments (JSON)")

    subparsers.add_parser("stats", help="Show tool and connection statistics")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    commands = {
        "list": cmd_list,
        "call": cmd_call,
        "stats": cmd_stats,
    }

    service = ToolProviderService(settings=config.settings)
    try:
        return commands[args.command](service, config, args)
    finally:
        service.shutdown()


if __name__ == "__main__":
    sys.exit(main())
