"""Pydantic models for support chat data."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatStatus(str, Enum):
    """Support chat status, closed by an admin."""

    OPEN = "open"
    CLOSED = "closed"


class ChatMessage(BaseModel):
    """A chat message, either pending (temporary id) or confirmed by the server."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    sender_id: str
    text: str = Field(alias="message_text")
    created_at: datetime
    chat_id: str | None = None

    # Correlation id echoed back by the send function, when it supports it
    client_id: str | None = None

    @field_validator("id", "sender_id", "chat_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    def to_row(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SupportChat(BaseModel):
    """A support chat thread of one user."""

    id: str
    user_id: str
    status: ChatStatus = ChatStatus.OPEN
    created_at: datetime | None = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)
