"""Comment schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    parent_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content must not be blank")
        return v


class CommentResponse(BaseModel):
    id: int
    cat_id: str
    parent_id: Optional[int] = None
    user_id: Optional[int] = None
    nickname: str
    avatar_url: Optional[str] = None
    content: str
    is_ai_reply: bool
    like_count: int
    created_at: datetime
    liked: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)
