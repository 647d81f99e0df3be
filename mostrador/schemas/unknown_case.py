"""Unknown use case audit schemas."""

import uuid
from datetime import datetime
from typing import Any

from mostrador.schemas.common import BaseSchema


class UnknownCaseOutcome(BaseSchema):
    """Policy decision for a turn the router could not map."""

    should_handoff: bool
    reason: str | None = None


class UnknownCaseResponse(BaseSchema):
    """A stored unknown case."""

    id: uuid.UUID
    conversation_id: str
    contact_id: str | None
    message_content: str
    detected_intent: str | None
    confidence: float | None
    agent_response: str | None
    was_handed_off: bool
    handoff_reason: str | None
    extra_data: dict[str, Any]
    created_at: datetime


class UnknownCaseStats(BaseSchema):
    """Aggregate counts over the unknown case ledger."""

    total: int
    handed_off: int
    by_intent: dict[str, int]
