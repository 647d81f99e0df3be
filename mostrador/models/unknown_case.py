"""Audit ledger of turns the router could not map to a use case."""

from typing import Any

from sqlalchemy import Boolean, Float, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mostrador.models.base import Base


class UnknownUseCase(Base):
    """One unmapped or low-confidence turn, with the policy decision taken."""

    __tablename__ = "unknown_use_cases"

    conversation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    contact_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Masked customer text
    message_content: Mapped[str] = mapped_column(Text, nullable=False)
    detected_intent: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    agent_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    was_handed_off: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    handoff_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    extra_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UnknownUseCase {self.conversation_id} intent={self.detected_intent}>"
