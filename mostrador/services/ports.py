"""Interfaces the orchestrator depends on.

Concrete adapters live elsewhere (``GuardrailService``, ``PersistenceService``,
``IntentClassifier``, ``GraphHandler``, ``StoreClient``, ``HelpdeskClient``,
``UnknownCaseService``)
and are wired in ``mostrador.core.deps``. Tests substitute mocks.
"""

from datetime import datetime
from typing import Any, Protocol

from mostrador.models.message import MessageRole
from mostrador.schemas.ai import (
    HandlerResult,
    HistoryTurn,
    Intent,
    IntentClassification,
    MessageContext,
    PromptContext,
)
from mostrador.schemas.auth import CustomerIdentity
from mostrador.schemas.conversation_state import ConversationState, CustomerAuthState, CustomerGoal
from mostrador.schemas.guardrail import GuardrailResult
from mostrador.schemas.unknown_case import UnknownCaseOutcome


class GuardrailPort(Protocol):
    async def validate_input(self, text: str, context: MessageContext) -> GuardrailResult: ...

    async def validate_output(
        self,
        text: str,
        context: MessageContext,
        pii_metadata: dict[str, str] | None = None,
    ) -> GuardrailResult: ...


class PersistencePort(Protocol):
    async def get_conversation_state(self, conversation_id: str) -> ConversationState | None: ...

    async def update_conversation_state(self, conversation_id: str, **fields: Any) -> None: ...

    async def update_full_conversation_state(
        self, conversation_id: str, state: ConversationState
    ) -> None: ...

    async def set_active_goal(self, conversation_id: str, goal: CustomerGoal | None) -> None: ...

    async def get_customer_auth(self, email: str) -> CustomerAuthState | None: ...

    async def get_customer_auth_by_hash(self, email_hash: str) -> CustomerAuthState | None: ...

    async def set_customer_auth(self, email: str, state: CustomerAuthState) -> None: ...

    async def save_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        tool_calls: list[dict[str, Any]] | None = None,
        contact_id: str | None = None,
    ) -> None: ...

    async def mark_escalated(self, conversation_id: str) -> None: ...

    async def get_recent_messages(self, conversation_id: str, limit: int = 10) -> list[HistoryTurn]: ...


class ClassifierPort(Protocol):
    async def classify(
        self, message: str, history: list[HistoryTurn] | None = None
    ) -> IntentClassification: ...


class HandlerPort(Protocol):
    async def run(self, intent: Intent, context: PromptContext) -> HandlerResult: ...


class IdentityLookupPort(Protocol):
    async def find_identification_by_email(self, email: str) -> CustomerIdentity | None: ...


class HandoffPort(Protocol):
    async def assign_to_human(self, conversation_id: str, reason: str) -> None: ...


class UnknownCasePort(Protocol):
    async def handle(
        self,
        *,
        conversation_id: str,
        message_content: str,
        intent: Intent,
        confidence: float,
        contact_id: str | None = None,
        agent_response: str | None = None,
        now: datetime | None = None,
    ) -> UnknownCaseOutcome: ...
