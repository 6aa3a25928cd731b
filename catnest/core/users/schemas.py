"""Typed schemas for user IO."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from catnest.core.users.models import User


class UserResponse(BaseModel):
    id: int
    device_id: str
    nickname: str
    avatar_url: Optional[str] = None
    role: str
    role_codes: List[str] = []
    created_at: datetime
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


def serialize_user(user: "User") -> "UserResponse":
    return UserResponse.model_validate(user)
