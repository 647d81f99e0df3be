"""Decide how much of an already-discussed order to repeat."""

import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from mostrador.core.config import settings
from mostrador.schemas.conversation_state import OrderMention
from mostrador.services.presentation.product_presentation import format_time_ago
from mostrador.services.presentation.templates import ORDER_TEMPLATES, OrderPresentationMode

logger = logging.getLogger(__name__)


class OrderQueryType(str, enum.Enum):
    ORDER_LOOKUP = "ORDER_LOOKUP"
    TRACKING_QUERY = "TRACKING_QUERY"
    STATUS_QUERY = "STATUS_QUERY"
    PAYMENT_QUERY = "PAYMENT_QUERY"
    ORDER_LIST = "ORDER_LIST"
    RE_SHOW = "RE_SHOW"


def _compile(patterns: list[str]) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Families in match priority
ORDER_QUERY_PATTERNS: list[tuple[OrderQueryType, list[re.Pattern[str]]]] = [
    (
        OrderQueryType.RE_SHOW,
        _compile([r"mostrar.*de nuevo", r"ver.*otra vez", r"repetir", r"volver a mostrar"]),
    ),
    (
        OrderQueryType.ORDER_LIST,
        _compile(
            [
                r"mis pedidos",
                r"historial",
                r"\bcompras\b",
                r"[uú]ltimos pedidos",
                r"pedidos recientes",
                r"ver pedidos",
            ]
        ),
    ),
    (
        OrderQueryType.TRACKING_QUERY,
        _compile(
            [
                r"d[oó]nde est[aá]",
                r"seguimiento",
                r"tracking",
                r"lleg[oó]",
                r"cu[aá]ndo llega",
                r"env[ií]o",
                r"entrega",
                r"rastrear",
                r"en camino",
            ]
        ),
    ),
    (
        OrderQueryType.PAYMENT_QUERY,
        _compile(
            [
                r"\bpag",
                r"cobr",
                r"reembolso",
                r"transacci[oó]n",
                r"tarjeta",
                r"factura",
                r"comprobante",
                r"rechazad",
                r"aprobad",
            ]
        ),
    ),
    (
        OrderQueryType.STATUS_QUERY,
        _compile(
            [
                r"estado",
                r"qu[eé] pas[oó]",
                r"status",
                r"c[oó]mo est[aá]",
                r"actualizaci[oó]n",
                r"novedad",
            ]
        ),
    ),
]

ORDER_NUMBER_PATTERNS = _compile(
    [
        r"#(\d+)",
        r"(?:pedido|orden|order|compra|n[uú]mero)\s*#?(\d+)",
    ]
)

REFERENCE_PATTERNS = _compile(
    [r"ese pedido", r"mi pedido", r"el pedido", r"la orden", r"mi orden", r"mi compra"]
)

_FOLLOW_UP_MODES = {
    OrderQueryType.TRACKING_QUERY: OrderPresentationMode.TRACKING_ONLY,
    OrderQueryType.STATUS_QUERY: OrderPresentationMode.STATUS_ONLY,
    OrderQueryType.PAYMENT_QUERY: OrderPresentationMode.PAYMENT_ONLY,
}


@dataclass
class OrderQueryContext:
    query_type: OrderQueryType
    mentioned: list[OrderMention] = field(default_factory=list)
    is_follow_up: bool = False
    order_number: str | None = None


def detect_order_query_type(message: str) -> OrderQueryType:
    text = message.lower()
    for query_type, family in ORDER_QUERY_PATTERNS:
        if any(p.search(text) for p in family):
            return query_type
    return OrderQueryType.ORDER_LOOKUP


def extract_order_number(message: str) -> str | None:
    for pattern in ORDER_NUMBER_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def find_referenced_orders(
    message: str, orders: list[OrderMention], order_number: str | None
) -> list[OrderMention]:
    """Orders the message points at, by number or by a generic reference."""
    if not orders:
        return []
    if order_number:
        by_number = [o for o in orders if o.order_number == order_number]
        if by_number:
            return by_number
    if any(p.search(message) for p in REFERENCE_PATTERNS):
        return [max(orders, key=lambda o: o.seen_at)]
    return []


def detect_order_query(message: str, orders: list[OrderMention], now: datetime) -> OrderQueryContext:
    query_type = detect_order_query_type(message)
    order_number = extract_order_number(message)
    mentioned = find_referenced_orders(message, orders, order_number)
    window = timedelta(minutes=settings.recent_mention_window_minutes)
    follow_up = any(now - o.seen_at <= window for o in mentioned)
    logger.debug(
        "Order query %s, number=%s, referenced=%s, follow_up=%s",
        query_type.value,
        order_number,
        [o.order_id for o in mentioned],
        follow_up,
    )
    return OrderQueryContext(
        query_type=query_type,
        mentioned=mentioned,
        is_follow_up=follow_up,
        order_number=order_number,
    )


def determine_order_mode(ctx: OrderQueryContext) -> OrderPresentationMode:
    if ctx.is_follow_up and ctx.query_type in _FOLLOW_UP_MODES:
        return _FOLLOW_UP_MODES[ctx.query_type]
    return OrderPresentationMode.FULL_ORDER


def build_order_instructions(
    mode: OrderPresentationMode,
    mentioned: list[OrderMention],
    now: datetime,
) -> str:
    instructions = ORDER_TEMPLATES[mode]
    if mode is OrderPresentationMode.FULL_ORDER or not mentioned:
        return instructions

    lines = "\n".join(
        f"- **Order #{o.order_number}** (ID: {o.order_id}) - "
        f"{o.last_known_status or 'unknown status'} - mentioned {format_time_ago(o.seen_at, now)}"
        for o in mentioned
    )
    return (
        f"{instructions}\n\n**Orders Being Discussed:**\n{lines}\n\n"
        "Use these order IDs when calling tools. DO NOT ask for the order number again."
    )
