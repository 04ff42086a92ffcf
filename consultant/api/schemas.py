"""Pydantic models for the API layer.

Defines chat message shapes (plain text or text/image blocks) and the
request/response schemas for all endpoints.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ImageMediaType = Literal["image/jpeg", "image/png", "image/gif", "image/webp"]


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageSource(BaseModel):
    """Inline image bytes, base64 without the data: prefix."""
    type: Literal["base64"] = "base64"
    media_type: ImageMediaType
    data: str = Field(..., min_length=1)


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    source: ImageSource


ContentBlock = Annotated[TextBlock | ImageBlock, Field(discriminator="type")]
MessageContent = str | list[ContentBlock]


def _check_content(content: MessageContent) -> MessageContent:
    if isinstance(content, str):
        if not content.strip():
            raise ValueError("message content must not be empty")
    elif not content:
        raise ValueError("message content must contain at least one block")
    return content


class ChatMessage(BaseModel):
    """Single conversation turn."""
    role: Literal["user", "assistant"]
    content: MessageContent

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: MessageContent) -> MessageContent:
        return _check_content(v)


class EquipmentContext(BaseModel):
    """Equipment the user opened the chat from (e.g. via QR code)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str
    type: str = ""
    google_drive_url: str | None = Field(default=None, alias="googleDriveUrl")
    maintenance_sheet_id: str | None = Field(default=None, alias="maintenanceSheetId")


class TokenUsageModel(BaseModel):
    input: int = 0
    output: int = 0


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""
    model_config = ConfigDict(populate_by_name=True)

    message: MessageContent
    equipment_context: EquipmentContext | None = Field(default=None, alias="equipmentContext")
    provider: str | None = Field(default=None, description="Preferred provider tag, e.g. 'claude'")

    @field_validator("message")
    @classmethod
    def message_not_empty(cls, v: MessageContent) -> MessageContent:
        return _check_content(v)


class ChatResponse(BaseModel):
    """Outgoing response to the frontend."""
    session_id: str | None
    message: str
    tools_used: list[str] = Field(default_factory=list)
    provider: str | None = None
    tokens_used: TokenUsageModel | None = None
    iterations: int = 0
    budget_exhausted: bool = False
    latency_ms: int


class MessageRecord(BaseModel):
    """Persisted message as returned by the history endpoint."""
    role: Literal["user", "assistant"]
    content: str
    tools_used: list[str] | None = None
    timestamp: datetime


class HistoryResponse(BaseModel):
    session_id: str | None
    messages: list[MessageRecord]
