"""Pydantic schemas for request/response validation."""

from mostrador.schemas.ai import AIServiceResponse, IncomingMessage, Intent
from mostrador.schemas.common import BaseSchema, HealthResponse
from mostrador.schemas.conversation_state import ConversationState

__all__ = [
    "AIServiceResponse",
    "BaseSchema",
    "ConversationState",
    "HealthResponse",
    "IncomingMessage",
    "Intent",
]
