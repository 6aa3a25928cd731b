"""Support domain mappers: model -> response DTO / change-feed record."""

from __future__ import annotations

from catnest.domains.support.models import SupportMessage, SupportSession
from catnest.domains.support.schemas import (
    SupportMessageResponse,
    SupportSessionResponse,
)


def message_to_response(message: SupportMessage) -> SupportMessageResponse:
    return SupportMessageResponse.model_validate(message)


def session_to_response(session: SupportSession) -> SupportSessionResponse:
    return SupportSessionResponse.model_validate(session)


def message_to_record(message: SupportMessage) -> dict:
    """JSON-ready row, identical for the REST echo and the change feed."""
    return message_to_response(message).model_dump(mode="json")
