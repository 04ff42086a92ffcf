"""Provider-neutral turn types shared by the adapters and the agent loop.

Conversation transcripts are langchain messages; a ModelTurn wraps one
assistant reply together with the tool calls and usage extracted from it.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from consultant.api.schemas import ChatMessage, ImageBlock, TextBlock

TOOL_ERROR_PREFIX = "Ошибка выполнения: "


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(self.input + other.input, self.output + other.output)


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    name: str
    content: str
    is_error: bool = False

    def to_message(self) -> ToolMessage:
        return ToolMessage(
            content=self.content,
            tool_call_id=self.call_id,
            name=self.name,
            status="error" if self.is_error else "success",
        )


@dataclass
class ModelTurn:
    """One model response.

    Attributes:
        message: The raw assistant message, appended to the transcript before tool results.
        text: Plain text the model produced in this turn (may be empty).
        tool_calls: Tool invocations requested in this turn.
        usage: Token accounting if the backend reported it.
    """
    message: AIMessage
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None


@dataclass
class AssistantReply:
    """Result of a full chat exchange through one adapter."""
    message: str
    tools_used: list[str] = field(default_factory=list)
    provider: str | None = None
    tokens_used: TokenUsage | None = None
    iterations: int = 0
    budget_exhausted: bool = False


def message_text(message: BaseMessage) -> str:
    """Concatenate the text parts of a langchain message."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def to_langchain_messages(messages: list[ChatMessage]) -> list[BaseMessage]:
    """Convert chat messages to langchain messages; images become data-URL parts."""
    converted: list[BaseMessage] = []
    for msg in messages:
        if isinstance(msg.content, str):
            content: Any = msg.content
        elif msg.role == "assistant":
            content = " ".join(b.text for b in msg.content if isinstance(b, TextBlock))
        else:
            content = [_block_to_part(b) for b in msg.content]

        if msg.role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


def _block_to_part(block: TextBlock | ImageBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    src = block.source
    return {"type": "image_url", "image_url": {"url": f"data:{src.media_type};base64,{src.data}"}}


def serialize_tool_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)
