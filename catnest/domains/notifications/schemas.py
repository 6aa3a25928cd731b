"""Notification schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    content: Optional[str] = None
    is_read: bool
    related_id: Optional[str] = None
    related_type: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


def notification_to_record(notification) -> dict:
    return NotificationResponse.model_validate(notification).model_dump(mode="json")
