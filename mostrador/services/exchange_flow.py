"""Multi-turn product exchange flow.

The exchange specialist collects everything a human agent needs before the
handoff. ``infer_next_exchange_step`` advances the flow from what the
specialist did this turn: tool results first, then keywords in its reply.
"""

import json
import logging
from datetime import datetime
from typing import Any

from mostrador.schemas.ai import ToolInvocation
from mostrador.schemas.conversation_state import (
    ExchangeItem,
    ExchangeState,
    ExchangeStep,
    NewProductSelection,
)

logger = logging.getLogger(__name__)

MAX_VALIDATION_ATTEMPTS = 2
EXCHANGE_HANDOFF_REASON = "Exchange flow completed - all information collected"

# Reply keywords that advance the flow when no tool did
RESPONSE_TRANSITIONS: dict[ExchangeStep, tuple[tuple[str, ...], ExchangeStep]] = {
    ExchangeStep.SELECT_PRODUCT: (("por qué", "qué talle"), ExchangeStep.GET_NEW_PRODUCT),
    ExchangeStep.GET_NEW_PRODUCT: (("verifico", "stock"), ExchangeStep.CHECK_STOCK),
    ExchangeStep.CONFIRM_EXCHANGE: (("dirección", "sucursal"), ExchangeStep.GET_ADDRESS),
    ExchangeStep.GET_ADDRESS: (
        ("equipo", "derivar", "humano", "te paso"),
        ExchangeStep.READY_FOR_HANDOFF,
    ),
}


def _load(output: Any) -> Any:
    if isinstance(output, str):
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            return None
    return output


def _order_items(products: Any) -> list[ExchangeItem]:
    if not isinstance(products, list):
        return []
    items = []
    for p in products:
        if not isinstance(p, dict):
            continue
        values = p.get("variant_values") or []
        items.append(
            ExchangeItem(
                product_id=str(p["product_id"]) if p.get("product_id") is not None else None,
                name=p.get("name"),
                sku=p.get("sku"),
                size=str(values[0]) if len(values) > 0 else None,
                color=str(values[1]) if len(values) > 1 else None,
            )
        )
    return items


def _product_name(value: Any) -> str | None:
    if isinstance(value, dict):
        return value.get("es") or next((v for v in value.values() if v), None)
    return value


def new_exchange_state(now: datetime) -> ExchangeState:
    return ExchangeState(
        step=ExchangeStep.IDENTIFY_CUSTOMER,
        started_at=now,
        last_updated_at=now,
        validation_attempts=0,
    )


def infer_next_exchange_step(
    current: ExchangeState | None,
    invocations: list[ToolInvocation],
    response_text: str,
    now: datetime,
) -> ExchangeState:
    """Return the exchange state after this turn. Pure; ``current`` is not mutated."""
    base = current or new_exchange_state(now)
    if base.step is ExchangeStep.READY_FOR_HANDOFF:
        return base

    step = base.step
    updates: dict[str, Any] = {"last_updated_at": now}

    for invocation in invocations:
        if invocation.name == "get_last_order":
            order = _load(invocation.output)
            if isinstance(order, dict) and order.get("id"):
                updates.update(
                    order_id=str(order["id"]),
                    order_number=str(order["number"]) if order.get("number") is not None else None,
                    order_status=order.get("status"),
                    order_date=order.get("created_at"),
                )
                if "products" in order:
                    updates["order_items"] = _order_items(order["products"])
                if base.step in (ExchangeStep.IDENTIFY_CUSTOMER, ExchangeStep.VALIDATE_ORDER):
                    step = ExchangeStep.SELECT_PRODUCT
            else:
                attempts = updates.get("validation_attempts", base.validation_attempts) + 1
                updates["validation_attempts"] = attempts
                if attempts >= MAX_VALIDATION_ATTEMPTS:
                    step = ExchangeStep.READY_FOR_HANDOFF

        elif invocation.name == "search_nuvemshop_products":
            results = _load(invocation.output)
            if isinstance(results, dict):
                results = results.get("products")
            if isinstance(results, list) and results and isinstance(results[0], dict):
                first = results[0]
                has_stock = any(
                    (v.get("stock") or 0) > 0
                    for v in first.get("variants") or []
                    if isinstance(v, dict)
                )
                previous = base.new_product or NewProductSelection()
                updates["new_product"] = previous.model_copy(
                    update={
                        "product_id": str(first["id"]) if first.get("id") is not None else None,
                        "name": _product_name(first.get("name")),
                        "has_stock": has_stock,
                    }
                )
                if base.step is ExchangeStep.CHECK_STOCK:
                    step = ExchangeStep.CONFIRM_EXCHANGE if has_stock else ExchangeStep.GET_NEW_PRODUCT

        elif invocation.name == "transfer_to_human":
            step = ExchangeStep.READY_FOR_HANDOFF
            updates["policy_explained"] = True

    if step is base.step and base.step in RESPONSE_TRANSITIONS:
        keywords, next_step = RESPONSE_TRANSITIONS[base.step]
        text = response_text.lower()
        if any(k in text for k in keywords):
            step = next_step

    if step is not base.step:
        logger.info("Exchange flow advanced: %s -> %s", base.step.value, step.value)
    updates["step"] = step
    return base.model_copy(update=updates)


def build_exchange_note(state: ExchangeState | None) -> str | None:
    """Summary of the exchange so far, for the exchange specialist prompt."""
    if state is None:
        return None
    lines = [f"## Exchange in progress\nCurrent step: {state.step.value}"]
    if state.order_number:
        lines.append(f"Order: #{state.order_number} ({state.order_status or 'unknown status'})")
    if state.order_items:
        names = ", ".join(
            f"{i.name or i.sku or i.product_id} {i.size or ''}".strip() for i in state.order_items
        )
        lines.append(f"Order items: {names}")
    if state.new_product and state.new_product.name:
        stock = "in stock" if state.new_product.has_stock else "no stock"
        lines.append(f"Requested product: {state.new_product.name} ({stock})")
    if state.validation_attempts:
        lines.append(f"Order validation attempts: {state.validation_attempts}/{MAX_VALIDATION_ATTEMPTS}")
    return "\n".join(lines)
