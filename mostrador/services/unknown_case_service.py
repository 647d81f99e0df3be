"""Audit and handoff policy for turns the router cannot map."""

import logging
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.config import settings
from mostrador.models.unknown_case import UnknownUseCase
from mostrador.schemas.ai import Intent
from mostrador.schemas.unknown_case import UnknownCaseOutcome, UnknownCaseResponse, UnknownCaseStats
from mostrador.services.graph.router import is_unknown_case

logger = logging.getLogger(__name__)

UNKNOWN_CASE_HANDOFF_REASON = "Caso no mapeado - derivando a humano"


def is_business_hours(now: datetime) -> bool:
    """Whether humans are available at ``now`` (end hour exclusive)."""
    local = now.astimezone(ZoneInfo(settings.business_hours_timezone))
    if local.weekday() not in settings.business_hours_days:
        return False
    return settings.business_hours_start <= local.hour < settings.business_hours_end


class UnknownCaseService:
    """Records unmapped turns and decides whether a human takes over."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @staticmethod
    def is_unknown(intent: Intent, confidence: float) -> bool:
        return is_unknown_case(intent, confidence)

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
    ) -> UnknownCaseOutcome:
        """Write the audit row and return the handoff decision.

        The decision does not depend on the write succeeding.
        """
        now = now or datetime.now(UTC)
        in_hours = is_business_hours(now)
        reason = UNKNOWN_CASE_HANDOFF_REASON if in_hours else None

        logger.info(
            "Unknown case in conversation %s: intent=%s confidence=%.2f business_hours=%s",
            conversation_id,
            intent.value,
            confidence,
            in_hours,
        )

        extra_data: dict[str, Any] = {
            "timestamp": now.isoformat(),
            "business_hours": {
                "is_within_hours": in_hours,
                "local_time": now.astimezone(ZoneInfo(settings.business_hours_timezone)).isoformat(),
            },
        }
        try:
            self.db.add(
                UnknownUseCase(
                    conversation_id=conversation_id,
                    contact_id=contact_id,
                    message_content=message_content,
                    detected_intent=intent.value,
                    confidence=confidence,
                    agent_response=agent_response,
                    was_handed_off=in_hours,
                    handoff_reason=reason,
                    extra_data=extra_data,
                )
            )
            await self.db.commit()
        except Exception:
            logger.exception("Failed to save unknown case for conversation %s", conversation_id)
            await self.db.rollback()

        return UnknownCaseOutcome(should_handoff=in_hours, reason=reason)

    async def get_recent(self, limit: int = 50) -> list[UnknownCaseResponse]:
        query = select(UnknownUseCase).order_by(UnknownUseCase.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return [UnknownCaseResponse.model_validate(row) for row in result.scalars().all()]

    async def get_stats(self) -> UnknownCaseStats:
        total = await self.db.scalar(select(func.count(UnknownUseCase.id))) or 0
        handed_off = (
            await self.db.scalar(
                select(func.count(UnknownUseCase.id)).where(UnknownUseCase.was_handed_off.is_(True))
            )
            or 0
        )
        grouped = await self.db.execute(
            select(UnknownUseCase.detected_intent, func.count(UnknownUseCase.id))
            .group_by(UnknownUseCase.detected_intent)
            .order_by(func.count(UnknownUseCase.id).desc())
        )
        by_intent = {intent or "UNKNOWN": count for intent, count in grouped.all()}
        return UnknownCaseStats(total=total, handed_off=handed_off, by_intent=by_intent)
