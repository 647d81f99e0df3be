"""Conversation, message, state and customer-auth storage.

Reads propagate database errors. Writes are best effort: a failed write is
logged, the session is rolled back, and the turn carries on.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.security import hash_email
from mostrador.models.conversation import Conversation, ConversationStatus
from mostrador.models.conversation_state import ConversationStateRecord
from mostrador.models.customer_auth import CustomerAuth
from mostrador.models.message import Message, MessageRole
from mostrador.schemas.ai import HistoryTurn
from mostrador.schemas.conversation_state import (
    ConversationState,
    CustomerAuthState,
    CustomerGoal,
)

logger = logging.getLogger(__name__)


class PersistenceService:
    """SQLAlchemy-backed store for everything a turn reads or writes.

    Per-conversation ordering is the caller's responsibility; concurrent
    turns on the same conversation can overwrite each other's state.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # Conversation state

    async def _get_state_record(self, conversation_id: str) -> ConversationStateRecord | None:
        query = select(ConversationStateRecord).where(
            ConversationStateRecord.conversation_id == conversation_id
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_conversation_state(self, conversation_id: str) -> ConversationState | None:
        """Return the stored state with defaults filled, or None if never written."""
        record = await self._get_state_record(conversation_id)
        if record is None:
            return None
        return ConversationState.from_record(record.state)

    async def update_full_conversation_state(
        self, conversation_id: str, state: ConversationState
    ) -> None:
        try:
            record = await self._get_state_record(conversation_id)
            if record is None:
                record = ConversationStateRecord(conversation_id=conversation_id)
                self.db.add(record)
            record.state = state.model_dump(mode="json")
            record.version = state.version
            await self.db.commit()
        except Exception:
            logger.exception("Failed to save state for conversation %s", conversation_id)
            await self.db.rollback()

    async def update_conversation_state(self, conversation_id: str, **fields: Any) -> None:
        """Merge ``fields`` into the stored state, creating it if needed."""
        try:
            record = await self._get_state_record(conversation_id)
            current = ConversationState.from_record(record.state if record else None)
            data = current.model_dump()
            data.update(fields)
            state = ConversationState.model_validate(data)
        except Exception:
            logger.exception("Failed to merge state for conversation %s", conversation_id)
            await self.db.rollback()
            return
        await self.update_full_conversation_state(conversation_id, state)

    async def set_active_goal(self, conversation_id: str, goal: CustomerGoal | None) -> None:
        await self.update_conversation_state(conversation_id, active_goal=goal)

    # Customer auth

    async def get_customer_auth_by_hash(self, email_hash: str) -> CustomerAuthState | None:
        query = select(CustomerAuth).where(CustomerAuth.email_hash == email_hash)
        result = await self.db.execute(query)
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return CustomerAuthState.model_validate(record)

    async def get_customer_auth(self, email: str) -> CustomerAuthState | None:
        return await self.get_customer_auth_by_hash(hash_email(email))

    async def set_customer_auth(self, email: str, state: CustomerAuthState) -> None:
        """Upsert the long-lived verification record for ``email``."""
        email_hash = hash_email(email)
        try:
            query = select(CustomerAuth).where(CustomerAuth.email_hash == email_hash)
            result = await self.db.execute(query)
            record = result.scalar_one_or_none()
            if record is None:
                record = CustomerAuth(email_hash=email_hash)
                self.db.add(record)
            record.verified = state.verified
            record.verified_at = state.verified_at
            record.expires_at = state.expires_at
            record.verified_in_conversation_id = state.verified_in_conversation_id
            await self.db.commit()
        except Exception:
            logger.exception("Failed to save customer auth %s", email_hash[:8])
            await self.db.rollback()

    # Conversations and messages

    async def _get_or_create_conversation(
        self, conversation_id: str, contact_id: str | None = None
    ) -> Conversation:
        query = select(Conversation).where(Conversation.external_id == conversation_id)
        result = await self.db.execute(query)
        conversation = result.scalar_one_or_none()
        if conversation:
            if contact_id and not conversation.contact_id:
                conversation.contact_id = contact_id
            return conversation

        conversation = Conversation(
            external_id=conversation_id,
            contact_id=contact_id,
            status=ConversationStatus.ACTIVE,
            extra_data={},
        )
        self.db.add(conversation)
        await self.db.flush()
        return conversation

    async def save_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        tool_calls: list[dict[str, Any]] | None = None,
        contact_id: str | None = None,
    ) -> None:
        """Append a message. ``content`` must already be masked."""
        try:
            conversation = await self._get_or_create_conversation(conversation_id, contact_id)
            self.db.add(
                Message(
                    conversation_id=conversation.id,
                    role=role,
                    content=content,
                    tool_calls=tool_calls,
                )
            )
            await self.db.commit()
        except Exception:
            logger.exception("Failed to save %s message for conversation %s", role.value, conversation_id)
            await self.db.rollback()

    async def mark_escalated(self, conversation_id: str) -> None:
        try:
            conversation = await self._get_or_create_conversation(conversation_id)
            conversation.status = ConversationStatus.ESCALATED
            await self.db.commit()
        except Exception:
            logger.exception("Failed to mark conversation %s escalated", conversation_id)
            await self.db.rollback()

    async def get_recent_messages(self, conversation_id: str, limit: int = 10) -> list[HistoryTurn]:
        """Most recent messages in chronological order."""
        query = (
            select(Message)
            .join(Conversation, Message.conversation_id == Conversation.id)
            .where(Conversation.external_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        messages = list(result.scalars().all())
        return [HistoryTurn(role=m.role.value, content=m.content) for m in reversed(messages)]
