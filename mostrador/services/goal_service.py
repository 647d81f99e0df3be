"""Customer goal tracking.

Maps the classifier intent to a goal type, continues the active goal when
the customer is still on the same journey, and opens a new one otherwise.
Goals only complete when the orchestrator says so.
"""

import logging
import re
import uuid
from datetime import datetime

from mostrador.schemas.ai import HistoryTurn, Intent
from mostrador.schemas.conversation_state import (
    RECENT_GOALS_LIMIT,
    UNKNOWN_ID,
    ConversationState,
    CustomerGoal,
    GoalContext,
    GoalStatus,
    GoalType,
    OrderMention,
    ProductMention,
)
from mostrador.services.pii import PLACEHOLDER_PATTERN

logger = logging.getLogger(__name__)

PRODUCT_GOALS = {GoalType.PRODUCT_SEARCH, GoalType.PRODUCT_QUESTION}
PRODUCT_QUESTION_KEYWORDS = ("talle", "size", "stock", "disponible")
DETECTED_FROM_LENGTH = 100

_INTENT_GOALS: dict[Intent, GoalType | None] = {
    Intent.ORDER_STATUS: GoalType.ORDER_INQUIRY,
    Intent.STORE_INFO: GoalType.STORE_INFO,
    Intent.OTHERS: GoalType.GREETING,
    Intent.EXCHANGE_REQUEST: GoalType.EXCHANGE,
    Intent.HUMAN_HANDOFF: None,
}

_ORDER_NUMBER = re.compile(r"#?(\d+)")
_PRICE = re.compile(r"\$\s?\d")
_SIZE = re.compile(r"\btalles?\b", re.IGNORECASE)


def goal_type_for(message: str, intent: Intent) -> GoalType | None:
    if intent is Intent.PRODUCT_INFO:
        text = message.lower()
        if any(k in text for k in PRODUCT_QUESTION_KEYWORDS):
            return GoalType.PRODUCT_QUESTION
        return GoalType.PRODUCT_SEARCH
    return _INTENT_GOALS.get(intent, GoalType.OTHER)


def _store_topic(text: str) -> str:
    if "horario" in text or "hours" in text:
        return "store_hours"
    if "devoluci" in text or "return" in text:
        return "return_policy"
    if "contacto" in text or "tel" in text or "phone" in text:
        return "contact"
    return "general_info"


def extract_goal_context(message: str, goal_type: GoalType) -> GoalContext:
    text = message.lower()
    match goal_type:
        case GoalType.ORDER_INQUIRY:
            found = _ORDER_NUMBER.search(PLACEHOLDER_PATTERN.sub("", message))
            return GoalContext(order_id=found.group(1) if found else None, topic="order_inquiry")
        case GoalType.PRODUCT_SEARCH:
            return GoalContext(topic="product_search", product_ids=[])
        case GoalType.PRODUCT_QUESTION:
            return GoalContext(topic="product_details", product_ids=[])
        case GoalType.STORE_INFO:
            return GoalContext(topic=_store_topic(text))
        case GoalType.EXCHANGE:
            return GoalContext(topic="exchange")
        case _:
            return GoalContext()


def _continues(active: CustomerGoal, goal_type: GoalType) -> bool:
    if active.status is not GoalStatus.ACTIVE:
        return False
    if active.type == goal_type:
        return True
    return active.type in PRODUCT_GOALS and goal_type in PRODUCT_GOALS


def detect_goal(
    message: str,
    intent: Intent,
    history: list[HistoryTurn],
    current_state: ConversationState,
    now: datetime,
) -> CustomerGoal | None:
    """Continue the active goal or open a new one.

    ``history`` is accepted for callers that want richer detection; the
    current rules only look at the message and intent.
    """
    goal_type = goal_type_for(message, intent)
    if goal_type is None:
        return None

    active = current_state.active_goal
    if active is not None and _continues(active, goal_type):
        logger.debug("Continuing goal %s (%s, detected %s)", active.goal_id, active.type.value, goal_type.value)
        return active.model_copy(update={"last_activity_at": now})

    goal = CustomerGoal(
        goal_id=str(uuid.uuid4()),
        type=goal_type,
        status=GoalStatus.ACTIVE,
        started_at=now,
        last_activity_at=now,
        context=extract_goal_context(message, goal_type),
        progress_markers=[],
        detected_from=message[:DETECTED_FROM_LENGTH],
    )
    logger.info("New goal %s detected: %s", goal.goal_id, goal_type.value)
    return goal


def add_progress_markers(
    goal: CustomerGoal,
    response_text: str,
    products: list[ProductMention],
    orders: list[OrderMention],
) -> CustomerGoal:
    """Append markers for what this turn achieved. Markers are never removed."""
    markers = list(goal.progress_markers)

    def add(marker: str) -> None:
        if marker not in markers:
            markers.append(marker)

    if _PRICE.search(response_text):
        add("products_shown")
    if products:
        add("products_identified")
    if orders:
        add("order_found")
    if _SIZE.search(response_text):
        add("size_info_given")

    product_ids = list(goal.context.product_ids)
    for p in products:
        if p.product_id != UNKNOWN_ID and p.product_id not in product_ids:
            product_ids.append(p.product_id)

    context = goal.context.model_copy(update={"product_ids": product_ids})
    return goal.model_copy(update={"progress_markers": markers, "context": context})


def complete_active_goal(state: ConversationState, now: datetime) -> ConversationState:
    """Close the active goal and move it to the front of ``recent_goals``."""
    active = state.active_goal
    if active is None:
        return state
    done = active.model_copy(update={"status": GoalStatus.COMPLETED, "completed_at": now})
    recent = [done, *[g for g in state.recent_goals if g.goal_id != done.goal_id]]
    return state.model_copy(
        update={"active_goal": None, "recent_goals": recent[:RECENT_GOALS_LIMIT]}
    )


def apply_goal(state: ConversationState, goal: CustomerGoal | None, now: datetime) -> ConversationState:
    """Make ``goal`` the active goal, completing the one it replaces."""
    if goal is None:
        return state
    active = state.active_goal
    if active is not None and active.goal_id != goal.goal_id:
        state = complete_active_goal(state, now)
    return state.model_copy(update={"active_goal": goal})


def build_goal_note(goal: CustomerGoal | None) -> str | None:
    """System note that keeps the specialist aware of the ongoing goal."""
    if goal is None:
        return None
    topic = goal.context.topic or "general"
    context = f"Order #{goal.context.order_id}" if goal.context.order_id else "No specific context"
    return (
        f"ACTIVE GOAL: {goal.type.value}\n"
        f"Topic: {topic}\n"
        f"Context: {context}\n\n"
        "Continue helping the customer achieve their goal naturally."
    )
