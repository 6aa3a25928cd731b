"""Authentication service layer."""

from __future__ import annotations

from typing import Optional

from flask_jwt_extended import create_access_token

from catnest.core.users.models import ROLE_USER, User
from catnest.core.utils.clock import utcnow
from catnest.extensions import db

DEFAULT_NICKNAME_PREFIX = "cat-lover-"


def login_device(device_id: str, nickname: Optional[str] = None, avatar_url: Optional[str] = None) -> tuple[User, bool]:
    """Return the user bound to a device, creating it on first sight."""
    user = User.query.filter_by(device_id=device_id).first()
    created = False
    if user is None:
        user = User(
            device_id=device_id,
            nickname=(nickname or "").strip() or f"{DEFAULT_NICKNAME_PREFIX}{device_id[-6:]}",
            avatar_url=avatar_url,
            role=ROLE_USER,
        )
        db.session.add(user)
        created = True
    elif not user.is_active:
        raise ValueError("account_disabled")
    else:
        if nickname and nickname.strip():
            user.nickname = nickname.strip()
        if avatar_url:
            user.avatar_url = avatar_url

    user.last_login_at = utcnow()
    db.session.commit()
    return user, created


def issue_access_token(user: User) -> str:
    """Create an access token carrying the user's role claims."""
    return create_access_token(identity=str(user.id), additional_claims={"roles": user.role_codes})
