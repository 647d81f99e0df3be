"""Turn orchestrator: guardrails, routing, state memory and handoff.

Each customer message goes through one ``process_message`` call:

1. Validate the input; personal data is masked into placeholders.
2. Classify the masked text and update the customer's goal.
3. Decide how much product/order detail the specialist should re-show.
4. Run the specialist; tool arguments are resolved only at execution time.
5. Fold tool results into the conversation state and decide on a handoff.
6. Validate the reply, persist everything in masked form and return it with
   only the customer's own data restored.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, status

from mostrador.core.config import settings
from mostrador.core.logging_config import conversation_id_var
from mostrador.core.security import hash_email
from mostrador.models.message import MessageRole
from mostrador.schemas.ai import (
    AIServiceResponse,
    HandlerResult,
    HistoryTurn,
    IncomingMessage,
    Intent,
    IntentClassification,
    MessageContext,
    PromptContext,
    ToolInvocation,
)
from mostrador.schemas.conversation_state import (
    SUMMARY_MAX_LENGTH,
    ConversationState,
    ExchangeState,
    ExchangeStep,
    OrderMention,
    ProductMention,
)
from mostrador.schemas.guardrail import GuardrailStage
from mostrador.services.auth_service import AuthService
from mostrador.services.exchange_flow import (
    EXCHANGE_HANDOFF_REASON,
    build_exchange_note,
    infer_next_exchange_step,
)
from mostrador.services.goal_service import (
    add_progress_markers,
    apply_goal,
    build_goal_note,
    complete_active_goal,
    detect_goal,
)
from mostrador.services.graph.router import is_unknown_case
from mostrador.services.guardrails.messages import get_fallback_message
from mostrador.services.mention_extraction import (
    extract_orders,
    extract_products,
    extract_products_from_text,
    merge_mentions,
)
from mostrador.services.pii import PIIMetadata, mask, resolve, resolve_nested
from mostrador.services.ports import (
    ClassifierPort,
    GuardrailPort,
    HandlerPort,
    HandoffPort,
    PersistencePort,
    UnknownCasePort,
)
from mostrador.services.presentation.order_presentation import (
    build_order_instructions,
    detect_order_query,
    determine_order_mode,
)
from mostrador.services.presentation.product_presentation import (
    build_product_instructions,
    detect_product_query,
    determine_product_mode,
)
from mostrador.services.tools.handoff_tools import TRANSFER_TOOL_NAME

logger = logging.getLogger(__name__)

AI_UNAVAILABLE_DETAIL = "AI service is temporarily unavailable. Please try again."
DEFAULT_TRANSFER_REASON = "Customer requested transfer"
DEFAULT_HANDOFF_INTENT_REASON = "Customer asked for a human agent"
VERIFY_TOOL_NAME = "verify_dni"


def _load_json(output: Any) -> Any:
    if isinstance(output, str):
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            return None
    return output


def verified_email(invocations: list[ToolInvocation], pii_metadata: PIIMetadata) -> str | None:
    """Real email of the last successful ``verify_dni`` call this turn."""
    for invocation in reversed(invocations):
        if invocation.name != VERIFY_TOOL_NAME:
            continue
        payload = _load_json(invocation.output)
        if isinstance(payload, dict) and payload.get("verified") is True:
            email = resolve_nested(invocation.args, pii_metadata).get("email")
            if email:
                return str(email)
    return None


def transfer_reason(invocations: list[ToolInvocation]) -> str | None:
    """Reason given to ``transfer_to_human``, if the specialist called it."""
    for invocation in invocations:
        if invocation.name == TRANSFER_TOOL_NAME:
            return str(invocation.args.get("reason") or DEFAULT_TRANSFER_REASON)
    return None


def build_summary(state: ConversationState) -> str | None:
    """Short deterministic recap of the conversation for the state record."""
    parts: list[str] = []
    goal = state.active_goal or (state.recent_goals[0] if state.recent_goals else None)
    if goal is not None:
        parts.append(f"Goal: {goal.type.value} ({goal.context.topic or 'general'})")
    if state.products:
        names = ", ".join(p.name for p in state.products[-3:])
        parts.append(f"Products: {names}")
    if state.orders:
        numbers = ", ".join(f"#{o.order_number}" for o in state.orders[-3:])
        parts.append(f"Orders: {numbers}")
    if state.needs_human_help:
        parts.append("Escalated")
    if not parts:
        return None
    return " | ".join(parts)[:SUMMARY_MAX_LENGTH]


class AIService:
    """Runs one customer turn through the whole pipeline."""

    def __init__(
        self,
        guardrails: GuardrailPort,
        persistence: PersistencePort,
        classifier: ClassifierPort,
        handler: HandlerPort,
        auth_service: AuthService,
        handoff: HandoffPort,
        unknown_cases: UnknownCasePort,
    ) -> None:
        self.guardrails = guardrails
        self.persistence = persistence
        self.classifier = classifier
        self.handler = handler
        self.auth_service = auth_service
        self.handoff = handoff
        self.unknown_cases = unknown_cases

    async def process_message(
        self, message: IncomingMessage, now: datetime | None = None
    ) -> AIServiceResponse:
        now = now or datetime.now(UTC)
        cid = message.conversation_id
        conversation_id_var.set(cid)

        history = await self.persistence.get_recent_messages(cid, settings.max_conversation_history)
        context = MessageContext(
            conversation_id=cid,
            contact_id=message.contact_id,
            history=history,
            metadata=message.metadata,
        )

        input_check = await self.guardrails.validate_input(message.content, context)
        if not input_check.allowed:
            logger.warning(
                "Input rejected for conversation %s: %s",
                cid,
                [c.kind.value for c in input_check.failed_checks],
            )
            return AIServiceResponse(
                response=get_fallback_message(GuardrailStage.INPUT, input_check.checks),
                products=[],
                intent=None,
            )

        masked = input_check.sanitized_content or message.content
        pii_metadata: PIIMetadata = dict(input_check.pii_metadata or {})
        await self.persistence.save_message(cid, MessageRole.USER, masked, contact_id=message.contact_id)

        state = await self.persistence.get_conversation_state(cid) or ConversationState()

        classification = await self._classify(masked, history)
        intent = classification.intent

        goal = detect_goal(masked, intent, history, state, now)
        state = apply_goal(state, goal, now)

        prompt_context = await self._build_prompt_context(
            cid, masked, history, state, intent, pii_metadata, now
        )
        result = await self._run_handler(intent, prompt_context)
        invocations = result.tool_invocations

        turn_products = extract_products(invocations, now)
        if not turn_products:
            turn_products = extract_products_from_text(result.text, now)
        turn_orders = extract_orders(invocations, now)
        state = self._merge_turn(state, result, turn_products, turn_orders, pii_metadata)

        previous_exchange = state.exchange_state
        if intent is Intent.EXCHANGE_REQUEST:
            exchange = infer_next_exchange_step(previous_exchange, invocations, result.text, now)
            state = state.model_copy(update={"exchange_state": exchange})

        handoff_reason = await self._handoff_reason(
            message, masked, classification, result, state, previous_exchange, pii_metadata, now
        )
        if handoff_reason:
            state = await self._hand_off(cid, state, handoff_reason, now)

        topic = state.active_goal.context.topic if state.active_goal else None
        state = state.model_copy(update={"last_topic": topic or intent.value.lower()})
        state = state.model_copy(update={"summary": build_summary(state)})

        output_history = history[-settings.relevance_history_turns :] + [
            HistoryTurn(role="user", content=resolve(masked, pii_metadata))
        ]
        output_check = await self.guardrails.validate_output(
            result.text,
            context.model_copy(update={"history": output_history}),
            pii_metadata=pii_metadata,
        )
        if output_check.allowed:
            final = output_check.sanitized_content or result.text
        else:
            logger.warning(
                "Output rejected for conversation %s: %s",
                cid,
                [c.kind.value for c in output_check.failed_checks],
            )
            final = get_fallback_message(GuardrailStage.OUTPUT, output_check.checks)
            turn_products = []

        masked_final = mask(final, existing=pii_metadata).sanitized
        await self.persistence.save_message(
            cid,
            MessageRole.ASSISTANT,
            masked_final,
            tool_calls=[{"id": i.id, "name": i.name, "args": i.args} for i in invocations] or None,
            contact_id=message.contact_id,
        )
        await self.persistence.update_full_conversation_state(cid, state)

        return AIServiceResponse(
            response=resolve(masked_final, pii_metadata),
            products=turn_products,
            intent=intent.value,
            handoff_triggered=handoff_reason is not None,
            handoff_reason=handoff_reason,
            metadata={"state": state.model_dump(mode="json"), "confidence": classification.confidence},
        )

    async def _classify(self, masked: str, history: list[HistoryTurn]) -> IntentClassification:
        try:
            return await self.classifier.classify(masked, history)
        except Exception as e:
            logger.exception("Failed to classify message: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=AI_UNAVAILABLE_DETAIL,
            ) from e

    async def _run_handler(self, intent: Intent, context: PromptContext) -> HandlerResult:
        try:
            result = await self.handler.run(intent, context)
        except HTTPException:
            raise
        except Exception as e:
            logger.exception("Failed to generate AI response: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=AI_UNAVAILABLE_DETAIL,
            ) from e
        if not result.text.strip():
            logger.error("Handler produced no output for intent %s", intent.value)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=AI_UNAVAILABLE_DETAIL,
            )
        return result

    async def _build_prompt_context(
        self,
        cid: str,
        masked: str,
        history: list[HistoryTurn],
        state: ConversationState,
        intent: Intent,
        pii_metadata: PIIMetadata,
        now: datetime,
    ) -> PromptContext:
        product_query = detect_product_query(masked, state.products, now)
        product_mode = determine_product_mode(product_query)
        order_query = detect_order_query(masked, state.orders, now)
        order_mode = determine_order_mode(order_query)
        logger.info(
            "Presentation modes for conversation %s: product=%s order=%s",
            cid,
            product_mode.value,
            order_mode.value,
        )

        auth_summary = await self.auth_service.get_customer_auth_summary(
            cid, state.customer_email_hash, now
        )
        exchange_note = build_exchange_note(state.exchange_state) if intent is Intent.EXCHANGE_REQUEST else None

        return PromptContext(
            conversation_id=cid,
            message=masked,
            history=history,
            goal_note=build_goal_note(state.active_goal),
            product_instructions=build_product_instructions(product_mode, product_query.mentioned, now),
            order_instructions=build_order_instructions(order_mode, order_query.mentioned, now),
            auth_summary=auth_summary,
            exchange_note=exchange_note,
            pii_metadata=pii_metadata,
        )

    def _merge_turn(
        self,
        state: ConversationState,
        result: HandlerResult,
        products: list[ProductMention],
        orders: list[OrderMention],
        pii_metadata: PIIMetadata,
    ) -> ConversationState:
        updates: dict[str, Any] = {
            "products": merge_mentions(state.products, products),
            "orders": merge_mentions(state.orders, orders),
        }
        if state.active_goal is not None:
            goal = add_progress_markers(state.active_goal, result.text, products, orders)
            if orders and not goal.context.order_id:
                context = goal.context.model_copy(update={"order_id": orders[0].order_number})
                goal = goal.model_copy(update={"context": context})
            updates["active_goal"] = goal

        email = verified_email(result.tool_invocations, pii_metadata)
        if email:
            updates["customer_email_hash"] = hash_email(email)
        return state.model_copy(update=updates)

    async def _handoff_reason(
        self,
        message: IncomingMessage,
        masked: str,
        classification: IntentClassification,
        result: HandlerResult,
        state: ConversationState,
        previous_exchange: ExchangeState | None,
        pii_metadata: PIIMetadata,
        now: datetime,
    ) -> str | None:
        """First handoff signal of the turn wins."""
        candidates: list[str | None] = [transfer_reason(result.tool_invocations)]

        if classification.intent is Intent.HUMAN_HANDOFF:
            candidates.append(classification.explanation or DEFAULT_HANDOFF_INTENT_REASON)

        exchange = state.exchange_state
        reached_handoff = (
            exchange is not None
            and exchange.step is ExchangeStep.READY_FOR_HANDOFF
            and (previous_exchange is None or previous_exchange.step is not ExchangeStep.READY_FOR_HANDOFF)
        )
        if reached_handoff:
            candidates.append(EXCHANGE_HANDOFF_REASON)

        if is_unknown_case(classification.intent, classification.confidence):
            outcome = await self.unknown_cases.handle(
                conversation_id=message.conversation_id,
                message_content=masked,
                intent=classification.intent,
                confidence=classification.confidence,
                contact_id=message.contact_id,
                agent_response=mask(result.text, existing=pii_metadata).sanitized,
                now=now,
            )
            if outcome.should_handoff:
                candidates.append(outcome.reason)

        return next((c for c in candidates if c), None)

    async def _hand_off(
        self, cid: str, state: ConversationState, reason: str, now: datetime
    ) -> ConversationState:
        logger.info("Handing off conversation %s: %s", cid, reason)
        try:
            await self.handoff.assign_to_human(cid, reason)
        except Exception:
            logger.exception("Failed to assign conversation %s to a human", cid)
        await self.persistence.mark_escalated(cid)
        state = state.model_copy(update={"needs_human_help": True, "escalation_reason": reason})
        return complete_active_goal(state, now)
