"""Per-conversation state document."""

from typing import Any

from sqlalchemy import Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mostrador.models.base import Base


class ConversationStateRecord(Base):
    """JSONB snapshot of ``ConversationState`` for one conversation."""

    __tablename__ = "conversation_states"

    conversation_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
    )
    state: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return f"<ConversationStateRecord {self.conversation_id} v{self.version}>"
