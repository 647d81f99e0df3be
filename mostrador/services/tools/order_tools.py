"""LangChain @tool definitions for order lookups.

Every tool here reads private customer data, so create_order_tools() wraps
each one with protect_tool(): without a valid auth session the call raises
instead of reaching the store. Orders are always scoped to the customer
stored in the session.
"""

import json
from typing import Any

import httpx
from langchain_core.tools import tool
from pydantic import BaseModel, Field

from mostrador.integrations.store.client import StoreClient
from mostrador.services.auth_service import AuthService, protect_tool


class LastOrderInput(BaseModel):
    """The last order needs no arguments; the customer comes from the session."""


class OrderLookupInput(BaseModel):
    """Input for a single order lookup."""

    order_id: str = Field(description="The order ID (not the order number) from a previous lookup")


ORDER_NOT_FOUND = json.dumps({"error": "Order not found"})


def create_order_tools(
    store_client: StoreClient,
    auth_service: AuthService,
    conversation_id: str,
) -> list[Any]:
    """Create the protected order tools for one conversation."""

    async def _customer_id() -> str | None:
        session = await auth_service.get_session(conversation_id)
        return session.customer_id if session else None

    async def _owned_order(order_id: str) -> dict[str, Any] | None:
        try:
            order = await store_client.get_order(order_id)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        customer_id = await _customer_id()
        if customer_id and order.get("customer_id") and order["customer_id"] != customer_id:
            return None
        return order

    @tool(args_schema=LastOrderInput)
    async def get_last_order() -> str:
        """Get the verified customer's most recent order with its items, status,
        payment status and shipping status."""
        customer_id = await _customer_id()
        if not customer_id:
            return json.dumps({"error": "No store customer linked to this verification"})
        order = await store_client.get_last_order(customer_id)
        if order is None:
            return json.dumps({"error": "The customer has no orders"})
        return json.dumps(order)

    @tool(args_schema=OrderLookupInput)
    async def get_order(order_id: str) -> str:
        """Get one order of the verified customer by order ID."""
        order = await _owned_order(order_id)
        if order is None:
            return ORDER_NOT_FOUND
        return json.dumps(order)

    @tool(args_schema=OrderLookupInput)
    async def get_order_tracking(order_id: str) -> str:
        """Get shipping and tracking details for an order. Use when the customer
        asks where their package is or when it arrives."""
        order = await _owned_order(order_id)
        if order is None:
            return ORDER_NOT_FOUND
        shipments = await store_client.get_order_tracking(order_id)
        return json.dumps(
            {
                "id": order["id"],
                "number": order["number"],
                "shipping_status": order.get("shipping_status"),
                "shipments": shipments,
                "message": None if shipments else "This order has not been shipped yet.",
            }
        )

    @tool(args_schema=OrderLookupInput)
    async def get_payment_history(order_id: str) -> str:
        """Get the payment transactions of an order. Use when the customer asks
        whether a payment went through."""
        order = await _owned_order(order_id)
        if order is None:
            return ORDER_NOT_FOUND
        transactions = await store_client.get_payment_history(order_id)
        return json.dumps(
            {
                "id": order["id"],
                "number": order["number"],
                "payment_status": order.get("payment_status"),
                "total": order.get("total"),
                "transactions": transactions,
            }
        )

    tools = [get_last_order, get_order, get_order_tracking, get_payment_history]
    return [protect_tool(t, auth_service, conversation_id) for t in tools]
