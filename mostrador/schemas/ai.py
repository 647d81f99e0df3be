"""Schemas exchanged between the orchestrator and its collaborators."""

import enum
from typing import Any

from pydantic import Field

from mostrador.schemas.common import BaseSchema
from mostrador.schemas.conversation_state import ProductMention


class Intent(str, enum.Enum):
    """Closed set of classifier intents."""

    ORDER_STATUS = "ORDER_STATUS"
    PRODUCT_INFO = "PRODUCT_INFO"
    STORE_INFO = "STORE_INFO"
    OTHERS = "OTHERS"
    HUMAN_HANDOFF = "HUMAN_HANDOFF"
    EXCHANGE_REQUEST = "EXCHANGE_REQUEST"


class HistoryTurn(BaseSchema):
    """A prior message, always in placeholder (masked) form."""

    role: str
    content: str


class IncomingMessage(BaseSchema):
    """A customer message delivered by the transport layer."""

    conversation_id: str
    content: str
    contact_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageContext(BaseSchema):
    """Context handed to guardrail checks."""

    conversation_id: str
    contact_id: str | None = None
    history: list[HistoryTurn] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IntentClassification(BaseSchema):
    """Classifier output."""

    intent: Intent
    confidence: float
    explanation: str | None = None


class ToolInvocation(BaseSchema):
    """One tool call made by a handler, with its raw output."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    output: Any = None


class HandlerResult(BaseSchema):
    """What a specialist handler produced for the turn."""

    text: str
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)


class PromptContext(BaseSchema):
    """Everything a specialist handler needs besides the intent."""

    conversation_id: str
    message: str
    history: list[HistoryTurn] = Field(default_factory=list)
    goal_note: str | None = None
    product_instructions: str | None = None
    order_instructions: str | None = None
    auth_summary: str | None = None
    exchange_note: str | None = None
    pii_metadata: dict[str, str] = Field(default_factory=dict)


class AIServiceResponse(BaseSchema):
    """Result returned to the transport layer for one turn."""

    response: str
    products: list[ProductMention] = Field(default_factory=list)
    intent: str | None = None
    handoff_triggered: bool = False
    handoff_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
