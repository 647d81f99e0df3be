"""Pydantic schemas for the conversation endpoints."""

from typing import Any

from pydantic import Field

from mostrador.schemas.common import BaseSchema


class SendMessageRequest(BaseSchema):
    """A customer message forwarded by the channel integration."""

    content: str = Field(..., min_length=1, max_length=20000)
    contact_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
