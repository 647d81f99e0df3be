"""LangGraph conditional routing logic."""

from mostrador.core.config import settings
from mostrador.schemas.ai import Intent
from mostrador.services.graph.state import GraphState

INTENT_TO_NODE: dict[Intent, str] = {
    Intent.ORDER_STATUS: "orders",
    Intent.PRODUCT_INFO: "products",
    Intent.STORE_INFO: "store_info",
    Intent.EXCHANGE_REQUEST: "exchange",
    Intent.HUMAN_HANDOFF: "handoff",
    Intent.OTHERS: "greetings",
}


def route_intent(intent: Intent) -> str:
    return INTENT_TO_NODE[intent]


def route_conversation(state: GraphState) -> str:
    """Conditional entry point of the workflow: pick the specialist node."""
    return route_intent(Intent(state["intent"]))


def is_unknown_case(intent: Intent, confidence: float) -> bool:
    """Turns the router cannot map with enough certainty."""
    return intent is Intent.OTHERS or confidence < settings.unknown_confidence_threshold
