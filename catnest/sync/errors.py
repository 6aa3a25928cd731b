"""Sync layer exception hierarchy."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync layer failures."""

    pass


class MalformedRecordError(SyncError):
    """A pushed or polled record is missing required fields."""

    def __init__(self, message: str, record=None) -> None:
        super().__init__(message)
        self.record = record


class TransportError(SyncError):
    """A read or subscription against the backend failed."""

    pass


class WriteRejectedError(SyncError):
    """The backend refused or failed a write; the optimistic preview is rolled back."""

    def __init__(self, message: str, status_code: int | None = None, local_id: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.local_id = local_id


class PersistentPollFailure(SyncError):
    """Every poll for an extended run of ticks has failed."""

    def __init__(self, message: str, consecutive_failures: int) -> None:
        super().__init__(message)
        self.consecutive_failures = consecutive_failures


class InvalidStateTransition(SyncError):
    """A reconciler lifecycle transition that its state machine does not allow."""

    pass
