"""Conversation model, one row per helpdesk conversation."""

import enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Enum, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mostrador.models.base import Base

if TYPE_CHECKING:
    from mostrador.models.message import Message


class ConversationStatus(str, enum.Enum):
    """Conversation status."""

    ACTIVE = "active"
    ESCALATED = "escalated"


class Conversation(Base):
    """A customer conversation as known to the helpdesk.

    ``external_id`` is the helpdesk's conversation id; every other table
    refers to conversations by that string.
    """

    __tablename__ = "conversations"

    external_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
    )
    contact_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[ConversationStatus] = mapped_column(
        Enum(
            ConversationStatus,
            name="conversation_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ConversationStatus.ACTIVE,
        nullable=False,
    )

    extra_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.external_id} ({self.status.value})>"
