"""Support domain Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SupportMessageCreate(BaseModel):
    """Request body for sending a support message."""

    content: str = Field(min_length=1, max_length=4000)
    msg_type: Literal["text", "image"] = "text"

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content must not be blank")
        return v


class MessageListParams(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)


class SessionListParams(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=500)


class SupportMessageResponse(BaseModel):
    id: int
    session_id: int
    sender_id: int
    content: str
    msg_type: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SupportSessionResponse(BaseModel):
    id: int
    user_id: int
    status: str
    unread_count: int
    last_message_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
