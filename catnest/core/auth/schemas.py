"""Schemas for device login."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class DeviceLoginRequest(BaseModel):
    device_id: str = Field(min_length=8, max_length=128)
    nickname: Optional[str] = Field(default=None, max_length=64)
    avatar_url: Optional[str] = Field(default=None, max_length=512)

    @field_validator("device_id")
    @classmethod
    def strip_device_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("device_id must not be blank")
        return v
