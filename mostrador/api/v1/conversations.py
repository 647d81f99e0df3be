"""Conversation endpoints used by the channel integration."""

from fastapi import APIRouter, HTTPException, Request, status

from mostrador.core.deps import AIServiceDep, DBSession
from mostrador.core.rate_limit import limiter
from mostrador.schemas.ai import AIServiceResponse, IncomingMessage
from mostrador.schemas.chat import SendMessageRequest
from mostrador.schemas.conversation_state import ConversationState
from mostrador.services.persistence_service import PersistenceService

router = APIRouter()


@router.post(
    "/{conversation_id}/messages",
    response_model=AIServiceResponse,
    summary="Process a customer message",
    description="""
    Run one customer turn: guardrails, intent routing, the specialist reply
    and the conversation state update.

    The response text only contains personal data the customer sent in this
    same message. Returns 503 when the AI backend is unavailable.
    """,
)
@limiter.limit("30/minute")
async def send_message(
    request: Request,  # noqa: ARG001
    conversation_id: str,
    body: SendMessageRequest,
    service: AIServiceDep,
) -> AIServiceResponse:
    message = IncomingMessage(
        conversation_id=conversation_id,
        content=body.content,
        contact_id=body.contact_id,
        metadata=body.metadata,
    )
    return await service.process_message(message)


@router.get(
    "/{conversation_id}/state",
    response_model=ConversationState,
    summary="Get conversation state",
)
async def get_conversation_state(conversation_id: str, db: DBSession) -> ConversationState:
    state = await PersistenceService(db).get_conversation_state(conversation_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return state
