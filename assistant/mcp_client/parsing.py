"""
Tool list parsing for MCP discovery responses.

Upstream servers are not always conforming, so a discovery body is run
through an ordered chain of parsing strategies. Each strategy either
returns a ToolSet with at least one tool or None, and the first non-None
result wins. The structured strategies come first; the heuristic scans
only run when the body is not usable JSON in any of the known shapes.
"""

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "MCP tool"
PLACEHOLDER_TOOL_NAME = "mcp_tool"
PLACEHOLDER_DESCRIPTION = "Generic MCP tool exposed by the upstream server"

SCHEMA_FIELDS = ("inputSchema", "input_schema", "parameters", "schema")

_NAME_PATTERN = re.compile(r'"name"\s*:\s*"([^"]*)"')
_DESCRIPTION_PATTERN = re.compile(r'"description"\s*:\s*"([^"]*)"')


def default_schema() -> Dict[str, Any]:
    """Schema used whenever an upstream tool does not declare one."""
    return {"type": "object", "properties": {}}


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool advertised by an upstream server."""

    name: str
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=default_schema)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Tool name cannot be empty")
        if self.description is None:
            object.__setattr__(self, "description", "")
        schema = self.input_schema
        if not isinstance(schema, Mapping):
            schema = default_schema()
        object.__setattr__(
            self, "input_schema", MappingProxyType(copy.deepcopy(dict(schema)))
        )

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> Optional["ToolDescriptor"]:
        """
        Build a descriptor from one entry of a tools array.

        Returns None for entries without a usable name.
        """
        if not isinstance(entry, dict):
            return None
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            return None

        schema = None
        for schema_field in SCHEMA_FIELDS:
            candidate = entry.get(schema_field)
            if isinstance(candidate, dict):
                schema = candidate
                break

        description = entry.get("description")
        return cls(
            name=name.strip(),
            description=description if isinstance(description, str) else "",
            input_schema=schema if schema is not None else default_schema(),
        )

    def schema_dict(self) -> Dict[str, Any]:
        """Mutable deep copy of the input schema."""
        return copy.deepcopy(dict(self.input_schema))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.schema_dict(),
        }

    def __str__(self) -> str:
        return f"ToolDescriptor({self.name})"


@dataclass
class ToolSet:
    """Tools returned by one discovery call, keyed by name."""

    tools: Dict[str, ToolDescriptor] = field(default_factory=dict)
    strategy: str = ""

    @classmethod
    def from_descriptors(
        cls, descriptors: Sequence[ToolDescriptor], strategy: str = ""
    ) -> "ToolSet":
        tools: Dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            tools[descriptor.name] = descriptor
        return cls(tools=tools, strategy=strategy)

    @property
    def names(self) -> List[str]:
        return list(self.tools.keys())

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(name)

    def is_empty(self) -> bool:
        return not self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def __iter__(self):
        return iter(self.tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self.tools


def _load_json(body: str) -> Any:
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return None


def _tools_from_entries(entries: Any, strategy: str) -> Optional[ToolSet]:
    if not isinstance(entries, list):
        return None
    descriptors = []
    for entry in entries:
        descriptor = ToolDescriptor.from_entry(entry)
        if descriptor is None:
            logger.debug(f"Skipping tool entry without a name: {entry!r}")
            continue
        descriptors.append(descriptor)
    if not descriptors:
        return None
    return ToolSet.from_descriptors(descriptors, strategy)


class ParseStrategy:
    """One step of the discovery parsing chain."""

    name = "base"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        raise NotImplementedError


class JsonRpcEnvelopeStrategy(ParseStrategy):
    """Conforming JSON-RPC response: {"result": {"tools": [...]}}."""

    name = "jsonrpc_envelope"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        document = _load_json(body)
        if not isinstance(document, dict):
            return None
        result = document.get("result")
        if not isinstance(result, dict):
            return None
        return _tools_from_entries(result.get("tools"), self.name)


class DirectToolsStrategy(ParseStrategy):
    """Bare tools object: {"tools": [...]}."""

    name = "direct_tools"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        document = _load_json(body)
        if not isinstance(document, dict):
            return None
        return _tools_from_entries(document.get("tools"), self.name)


class DataArrayStrategy(ParseStrategy):
    """Alternative shape: {"data": [{"name": ..., "description": ...}]}."""

    name = "data_array"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        document = _load_json(body)
        if not isinstance(document, dict):
            return None
        return _tools_from_entries(document.get("data"), self.name)


def _matching_bracket(text: str, start: int) -> int:
    """Index of the ']' closing the '[' at start, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return -1


class BracketArrayScanStrategy(ParseStrategy):
    """
    Scrape name/description pairs out of the array following "tools".

    Used for bodies that mention a "tools" key but are not valid JSON, for
    example truncated or concatenated responses.
    """

    name = "bracket_scan"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        marker = body.find('"tools"')
        if marker < 0:
            return None
        start = body.find("[", marker)
        if start < 0:
            return None
        end = _matching_bracket(body, start)
        array_text = body[start + 1 : end] if end > 0 else body[start + 1 :]

        descriptors = []
        for fragment in array_text.split("{"):
            name_match = _NAME_PATTERN.search(fragment)
            if not name_match or not name_match.group(1).strip():
                continue
            description_match = _DESCRIPTION_PATTERN.search(fragment)
            description = description_match.group(1) if description_match else DEFAULT_DESCRIPTION
            descriptors.append(
                ToolDescriptor(name=name_match.group(1).strip(), description=description)
            )

        if not descriptors:
            return None
        return ToolSet.from_descriptors(descriptors, self.name)


def _key_value(line: str, key: str) -> Optional[str]:
    """Value of a 'key: value' line, with quotes and separators stripped."""
    stripped = line.strip().lstrip("-").strip()
    if not stripped.lower().startswith(f"{key}:"):
        return None
    value = stripped[len(key) + 1 :].strip().strip(",").strip().strip("\"'")
    return value or None


class KeyLineScanStrategy(ParseStrategy):
    """
    Line-oriented scrape of YAML-like bodies containing 'tools:'.

    Each 'name:' line starts a tool; a 'description:' line before the next
    'name:' line describes it.
    """

    name = "key_line_scan"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        if '"tools"' in body or "tools:" not in body:
            return None

        entries: List[Dict[str, str]] = []
        for line in body.splitlines():
            name = _key_value(line, "name")
            if name is not None:
                entries.append({"name": name})
                continue
            description = _key_value(line, "description")
            if description is not None and entries and "description" not in entries[-1]:
                entries[-1]["description"] = description

        descriptors = [
            ToolDescriptor(
                name=entry["name"],
                description=entry.get("description", DEFAULT_DESCRIPTION),
            )
            for entry in entries
        ]
        if not descriptors:
            return None
        return ToolSet.from_descriptors(descriptors, self.name)


class LineTokenScanStrategy(ParseStrategy):
    """
    Last structured attempt for free text: any line mentioning a name or a
    tool contributes the token following 'name'.
    """

    name = "line_token_scan"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        if '"tools"' in body or "tools:" in body:
            return None

        descriptors = []
        for line in body.splitlines():
            lowered = line.lower()
            if "name" not in lowered and "tool" not in lowered:
                continue
            position = lowered.find("name")
            if position < 0:
                continue
            remainder = line[position + len("name") :].strip()
            if remainder.startswith(":") or remainder.startswith("="):
                remainder = remainder[1:].strip()
            tokens = remainder.split()
            if not tokens:
                continue
            candidate = tokens[0].strip("\"',;{}[]")
            if candidate:
                descriptors.append(
                    ToolDescriptor(name=candidate, description=DEFAULT_DESCRIPTION)
                )

        if not descriptors:
            return None
        return ToolSet.from_descriptors(descriptors, self.name)


class PlaceholderToolStrategy(ParseStrategy):
    """
    Advertise one generic tool when the body carries no tool markers at all.

    Bodies that do mention tools but could not be read by any earlier step
    are left unparsed so the failure is visible to the caller.
    """

    name = "placeholder"

    def try_parse(self, body: str) -> Optional[ToolSet]:
        if '"tools"' in body or "tools:" in body:
            return None
        return ToolSet.from_descriptors(
            [
                ToolDescriptor(
                    name=PLACEHOLDER_TOOL_NAME,
                    description=PLACEHOLDER_DESCRIPTION,
                    input_schema=default_schema(),
                )
            ],
            self.name,
        )


DEFAULT_STRATEGIES: Sequence[ParseStrategy] = (
    JsonRpcEnvelopeStrategy(),
    DirectToolsStrategy(),
    DataArrayStrategy(),
    BracketArrayScanStrategy(),
    KeyLineScanStrategy(),
    LineTokenScanStrategy(),
    PlaceholderToolStrategy(),
)


class ToolResponseParser:
    """Runs a discovery body through an ordered list of strategies."""

    def __init__(self, strategies: Optional[Sequence[ParseStrategy]] = None):
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)

    def parse(self, body: str) -> Optional[ToolSet]:
        """
        Parse a discovery response body.

        Args:
            body: Raw response text

        Returns:
            The first non-empty ToolSet produced by a strategy, or None if
            every strategy declined
        """
        if body is None or not body.strip():
            return None

        for strategy in self.strategies:
            try:
                tool_set = strategy.try_parse(body)
            except ValueError as e:
                logger.debug(f"Parse strategy {strategy.name} rejected body: {e}")
                continue
            if tool_set is not None and not tool_set.is_empty():
                logger.debug(
                    f"Parsed {len(tool_set)} tools with strategy {strategy.name}"
                )
                return tool_set
        return None
