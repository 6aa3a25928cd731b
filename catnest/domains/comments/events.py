"""Comment domain catalog."""

from __future__ import annotations

COMMENT_TABLE = "comment"
COMMENT_LIKE_TABLE = "comment_like"

REPLY_PREVIEW_CHARS = 50
