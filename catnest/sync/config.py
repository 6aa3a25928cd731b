"""Configuration helpers for the client sync layer."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class SyncConfig:
    """Runtime knobs for sync scopes."""

    poll_interval_ms: int = 3000
    match_tolerance_seconds: float = 10.0
    poll_failure_alert_after: int = 10
    sse_reconnect_seconds: float = 3.0
    http_timeout_seconds: float = 10.0
    threaded: bool = True

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Build config from environment with sensible defaults."""
        return cls(
            poll_interval_ms=int(os.environ.get("SYNC_POLL_INTERVAL_MS", "3000")),
            match_tolerance_seconds=float(os.environ.get("SYNC_MATCH_TOLERANCE_SECONDS", "10")),
            poll_failure_alert_after=int(os.environ.get("SYNC_POLL_FAILURE_ALERT_AFTER", "10")),
            sse_reconnect_seconds=float(os.environ.get("SYNC_SSE_RECONNECT_SECONDS", "3")),
            http_timeout_seconds=float(os.environ.get("SYNC_HTTP_TIMEOUT_SECONDS", "10")),
            threaded=_flag("SYNC_THREADED", "true"),
        )
