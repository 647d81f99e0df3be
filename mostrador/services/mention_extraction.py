"""Derive product and order mentions from a handler's tool invocations.

Each known tool name has a decoder that turns its raw output into one
variant of ``ToolPayload``. Anything else decodes to ``Unrecognized`` so
callers never index into free-form JSON.
"""

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from mostrador.schemas.ai import ToolInvocation
from mostrador.schemas.conversation_state import (
    UNKNOWN_ID,
    MentionContext,
    OrderMention,
    ProductMention,
)

logger = logging.getLogger(__name__)

PRODUCT_SEARCH_TOOLS = {"search_nuvemshop_products"}
PRODUCT_LOOKUP_TOOLS = {"get_nuvemshop_product", "get_nuvemshop_product_by_sku"}
ORDER_TOOL_CONTEXTS = {
    "get_last_order": MentionContext.LOOKUP,
    "get_order": MentionContext.LOOKUP,
    "get_order_tracking": MentionContext.TRACKING,
    "get_payment_history": MentionContext.PAYMENT,
}

_BOLD_NAME = re.compile(r"\*\*([^*\n]{3,80})\*\*")


@dataclass
class ProductRecord:
    product_id: str
    name: str


@dataclass
class OrderRecord:
    order_id: str
    order_number: str
    status: str | None = None


@dataclass
class ProductListPayload:
    """Result of a catalog search."""

    records: list[ProductRecord] = field(default_factory=list)
    context: MentionContext = MentionContext.SEARCH


@dataclass
class SingleProductPayload:
    """Result of a direct product lookup by id or SKU."""

    record: ProductRecord | None = None
    context: MentionContext = MentionContext.QUESTION


@dataclass
class OrderPayload:
    records: list[OrderRecord] = field(default_factory=list)
    context: MentionContext = MentionContext.LOOKUP


@dataclass
class Unrecognized:
    """Output that is not a known tool or not a known shape."""

    tool_name: str
    reason: str


ToolPayload = ProductListPayload | SingleProductPayload | OrderPayload | Unrecognized


def _localized(value: Any) -> str | None:
    """Return a display string from a plain or localized (``{"es": ...}``) value."""
    if isinstance(value, dict):
        if value.get("es"):
            return str(value["es"])
        return next((str(v) for v in value.values() if v), None)
    if value is None or value == "":
        return None
    return str(value)


def _product_record(item: Any) -> ProductRecord | None:
    if not isinstance(item, dict):
        return None
    product_id = item.get("id")
    name = _localized(item.get("name"))
    if product_id in (None, "") or not name:
        return None
    return ProductRecord(product_id=str(product_id), name=name)


def _order_record(item: Any) -> OrderRecord | None:
    if not isinstance(item, dict):
        return None
    order_id = item.get("id")
    number = item.get("number") or item.get("order_number")
    if order_id in (None, "") or number in (None, ""):
        return None
    status = item.get("status") or item.get("shipping_status") or item.get("payment_status")
    return OrderRecord(order_id=str(order_id), order_number=str(number), status=status)


def _parse_output(invocation: ToolInvocation) -> tuple[Any, str | None]:
    output = invocation.output
    if output is None:
        return None, "empty_output"
    if isinstance(output, str):
        try:
            return json.loads(output), None
        except json.JSONDecodeError:
            logger.warning("Skipping unparseable output from tool %s", invocation.name)
            return None, "invalid_json"
    return output, None


def decode_tool_output(invocation: ToolInvocation) -> ToolPayload:
    """Decode one invocation's output according to its tool name."""
    name = invocation.name
    known = name in PRODUCT_SEARCH_TOOLS or name in PRODUCT_LOOKUP_TOOLS or name in ORDER_TOOL_CONTEXTS
    if not known:
        return Unrecognized(tool_name=name, reason="unknown_tool")

    data, error = _parse_output(invocation)
    if error:
        return Unrecognized(tool_name=name, reason=error)
    if isinstance(data, dict) and "error" in data:
        return Unrecognized(tool_name=name, reason="error_payload")

    if name in PRODUCT_SEARCH_TOOLS:
        items = data.get("products") if isinstance(data, dict) else data
        if not isinstance(items, list):
            return Unrecognized(tool_name=name, reason="unexpected_shape")
        records = [r for r in (_product_record(i) for i in items) if r is not None]
        return ProductListPayload(records=records, context=MentionContext.SEARCH)

    if name in PRODUCT_LOOKUP_TOOLS:
        return SingleProductPayload(record=_product_record(data), context=MentionContext.QUESTION)

    items = data.get("orders") if isinstance(data, dict) and "orders" in data else [data]
    if not isinstance(items, list):
        return Unrecognized(tool_name=name, reason="unexpected_shape")
    records = [r for r in (_order_record(i) for i in items) if r is not None]
    return OrderPayload(records=records, context=ORDER_TOOL_CONTEXTS[name])


def extract_products(invocations: Iterable[ToolInvocation], now: datetime) -> list[ProductMention]:
    """Product mentions from tool outputs, deduplicated by id (first wins)."""
    mentions: dict[str, ProductMention] = {}
    for invocation in invocations:
        payload = decode_tool_output(invocation)
        match payload:
            case ProductListPayload(records=records, context=context):
                found = records
            case SingleProductPayload(record=record, context=context):
                found = [record] if record else []
            case _:
                continue
        for record in found:
            if record.product_id not in mentions:
                mentions[record.product_id] = ProductMention(
                    product_id=record.product_id,
                    name=record.name,
                    mentioned_at=now,
                    context=context,
                )
    return list(mentions.values())


def extract_orders(invocations: Iterable[ToolInvocation], now: datetime) -> list[OrderMention]:
    """Order mentions from tool outputs, deduplicated by id (first wins)."""
    mentions: dict[str, OrderMention] = {}
    for invocation in invocations:
        payload = decode_tool_output(invocation)
        if not isinstance(payload, OrderPayload):
            continue
        for record in payload.records:
            if record.order_id not in mentions:
                mentions[record.order_id] = OrderMention(
                    order_id=record.order_id,
                    order_number=record.order_number,
                    mentioned_at=now,
                    context=payload.context,
                    last_known_status=record.status,
                )
    return list(mentions.values())


def extract_products_from_text(text: str, now: datetime) -> list[ProductMention]:
    """Best-effort scan for bold, capitalized product names in a reply.

    These mentions carry ``UNKNOWN_ID``: the catalog id cannot be recovered
    from prose and must never be guessed.
    """
    mentions: list[ProductMention] = []
    seen: set[str] = set()
    for m in _BOLD_NAME.finditer(text):
        name = m.group(1).strip()
        letters = [c for c in name if c.isalpha()]
        if len(letters) < 3 or not all(c.isupper() for c in letters):
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        mentions.append(
            ProductMention(
                product_id=UNKNOWN_ID,
                name=name,
                mentioned_at=now,
                context=MentionContext.RECOMMENDATION,
            )
        )
    return mentions


MentionT = TypeVar("MentionT", ProductMention, OrderMention)


def _mention_key(mention: ProductMention | OrderMention) -> str:
    if isinstance(mention, OrderMention):
        return f"order:{mention.order_id}"
    if mention.product_id == UNKNOWN_ID:
        return f"name:{mention.name.lower()}"
    return f"product:{mention.product_id}"


def merge_mentions(existing: list[MentionT], new: list[MentionT]) -> list[MentionT]:
    """Merge this turn's mentions into the stored ones.

    Existing entries keep their position and earliest ``mentioned_at``; a
    re-mention refreshes ``last_mentioned_at`` (and an order's status). New
    identifiers are appended in arrival order.
    """
    merged: dict[str, MentionT] = {_mention_key(m): m for m in existing}
    for mention in new:
        key = _mention_key(mention)
        current = merged.get(key)
        if current is None:
            merged[key] = mention
            continue
        update: dict[str, Any] = {
            "mentioned_at": min(current.mentioned_at, mention.mentioned_at),
            "last_mentioned_at": max(current.seen_at, mention.seen_at),
        }
        if isinstance(mention, OrderMention) and mention.last_known_status:
            update["last_known_status"] = mention.last_known_status
        merged[key] = current.model_copy(update=update)
    return list(merged.values())
