"""Shared helpers for building upstream responses in tests."""


def tools_response(*names, envelope=True):
    """JSON body advertising tools with the given names."""
    tools = [
        {
            "name": name,
            "description": f"{name} tool",
            "inputSchema": {
                "type": "object",
                "properties": {"query": {"type": "string"}},
            },
        }
        for name in names
    ]
    if envelope:
        return {"jsonrpc": "2.0", "id": 1, "result": {"tools": tools}}
    return {"tools": tools}
