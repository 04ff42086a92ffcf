"""Tool registry for the agent loop.

A tool is a name, a description, a JSON input schema and an async handler.
The loop only sees this surface; what a tool does is up to the module that
registered it (equipment_tools, drive_tools).
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class UnknownToolError(LookupError):
    """The model asked for a tool that is not registered."""


class ToolInputError(ValueError):
    """Tool arguments failed validation."""


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-neutral tool declaration.

    Attributes:
        name: Unique tool name the model calls.
        description: What the tool does, shown to the model.
        input_schema: JSON schema of type "object" with properties and required.
    """
    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def __post_init__(self):
        if self.input_schema.get("type") != "object":
            raise ValueError(f"Tool {self.name}: input_schema must be of type 'object'")

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    def to_function_spec(self) -> dict[str, Any]:
        """OpenAI-style function spec, accepted by every langchain bind_tools()."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.input_schema.get("properties", {}),
                    "required": self.required,
                },
            },
        }


def object_schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


class ToolRegistry:
    """Maps tool names to definitions and handlers."""

    def __init__(self):
        self._tools: dict[str, tuple[ToolDefinition, ToolHandler]] = {}

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool already registered: {definition.name}")
        self._tools[definition.name] = (definition, handler)

    def definitions(self) -> list[ToolDefinition]:
        return [definition for definition, _ in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, tool_input: dict[str, Any] | None = None) -> Any:
        """Run a tool by name.

        Args:
            name: Registered tool name.
            tool_input: Arguments produced by the model.

        Returns:
            JSON-serializable tool result.

        Raises:
            UnknownToolError: If no tool has this name.
            Exception: Whatever the handler raises.
        """
        request_id = uuid.uuid4().hex[:8]
        entry = self._tools.get(name)
        if entry is None:
            logger.error("tool.unknown", request_id=request_id, tool=name, available=self.names())
            raise UnknownToolError(f"Unknown tool: {name}")

        definition, handler = entry
        args = dict(tool_input or {})
        missing = [key for key in definition.required if args.get(key) in (None, "")]
        if missing:
            raise ToolInputError(f"Missing required arguments: {', '.join(missing)}")

        start = time.monotonic()
        logger.info("tool.called", request_id=request_id, tool=name)
        try:
            result = await handler(args)
        except Exception as e:
            logger.warning("tool.failed", request_id=request_id, tool=name,
                           duration_ms=int((time.monotonic() - start) * 1000), error=str(e))
            raise

        logger.info("tool.completed", request_id=request_id, tool=name,
                    duration_ms=int((time.monotonic() - start) * 1000))
        return result

