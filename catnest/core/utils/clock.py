"""Timestamps for timezone-less UTC columns."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
