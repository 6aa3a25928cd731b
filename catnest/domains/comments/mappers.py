"""Comment mappers."""

from __future__ import annotations

from typing import Optional

from catnest.domains.comments.models import Comment
from catnest.domains.comments.schemas import CommentResponse


def comment_to_record(comment: Comment, liked: Optional[bool] = None) -> dict:
    """Row as JSON; ``liked`` is caller-specific and left out of the change feed."""
    record = CommentResponse.model_validate(comment).model_dump(mode="json")
    if liked is None:
        record.pop("liked", None)
    else:
        record["liked"] = liked
    return record
