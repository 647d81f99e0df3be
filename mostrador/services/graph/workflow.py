"""LangGraph workflow definition for the customer service specialists."""

import logging
from typing import Any

from langgraph.graph import END, StateGraph

from mostrador.services.graph.nodes import (
    exchange_node,
    greetings_node,
    handoff_node,
    orders_node,
    products_node,
    store_info_node,
)
from mostrador.services.graph.router import INTENT_TO_NODE, route_conversation
from mostrador.services.graph.state import GraphState

logger = logging.getLogger(__name__)


def create_customer_service_graph(
    llm: Any,
    order_tools: list[Any] | None = None,
    product_tools: list[Any] | None = None,
    store_info_tools: list[Any] | None = None,
    exchange_tools: list[Any] | None = None,
) -> Any:
    """Build and compile the specialist workflow.

    Classification happens before the graph runs, so the intent is already
    in the state and the conditional entry point routes straight to one
    specialist node.

    Returns:
        Compiled LangGraph workflow
    """

    async def _orders_node(state: GraphState) -> dict[str, Any]:
        return await orders_node(state, llm, tools=order_tools or None)

    async def _products_node(state: GraphState) -> dict[str, Any]:
        return await products_node(state, llm, tools=product_tools or None)

    async def _store_info_node(state: GraphState) -> dict[str, Any]:
        return await store_info_node(state, llm, tools=store_info_tools or None)

    async def _exchange_node(state: GraphState) -> dict[str, Any]:
        return await exchange_node(state, llm, tools=exchange_tools or None)

    async def _handoff_node(state: GraphState) -> dict[str, Any]:
        return await handoff_node(state, llm)

    async def _greetings_node(state: GraphState) -> dict[str, Any]:
        return await greetings_node(state, llm)

    graph = StateGraph(GraphState)

    graph.add_node("orders", _orders_node)
    graph.add_node("products", _products_node)
    graph.add_node("store_info", _store_info_node)
    graph.add_node("exchange", _exchange_node)
    graph.add_node("handoff", _handoff_node)
    graph.add_node("greetings", _greetings_node)

    nodes = sorted(set(INTENT_TO_NODE.values()))
    graph.set_conditional_entry_point(route_conversation, {name: name for name in nodes})

    for name in nodes:
        graph.add_edge(name, END)

    return graph.compile()
