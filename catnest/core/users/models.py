"""User models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from catnest.core.utils.clock import utcnow
from catnest.extensions import db

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


class User(db.Model, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(primary_key=True)
    device_id: Mapped[str] = mapped_column(db.String(128), unique=True, nullable=False, index=True)
    nickname: Mapped[str] = mapped_column(db.String(64), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(db.String(512))
    role: Mapped[str] = mapped_column(db.String(16), nullable=False, default=ROLE_USER)
    is_active: Mapped[bool] = mapped_column(default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def role_codes(self) -> list[str]:
        return [self.role] if self.role else []

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
