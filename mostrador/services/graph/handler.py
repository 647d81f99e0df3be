"""Specialist handler: runs the LangGraph workflow for one classified turn."""

import logging
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from mostrador.integrations.store.client import StoreClient
from mostrador.schemas.ai import HandlerResult, HistoryTurn, Intent, PromptContext, ToolInvocation
from mostrador.services.auth_service import AuthService
from mostrador.services.graph.nodes import get_chat_llm
from mostrador.services.graph.workflow import create_customer_service_graph
from mostrador.services.tools.auth_tools import create_auth_tools
from mostrador.services.tools.handoff_tools import create_handoff_tools
from mostrador.services.tools.order_tools import create_order_tools
from mostrador.services.tools.product_tools import create_product_tools
from mostrador.services.tools.store_info_tools import create_store_info_tools

logger = logging.getLogger(__name__)


def history_to_messages(history: list[HistoryTurn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
    return messages


def collect_invocations(
    tool_calls_record: list[dict[str, Any]],
    tool_results_record: list[dict[str, Any]],
) -> list[ToolInvocation]:
    """Pair each recorded call with its output by tool_call_id."""
    outputs = {r["tool_call_id"]: r["result"] for r in tool_results_record}
    return [
        ToolInvocation(id=c["id"], name=c["name"], args=c.get("args") or {}, output=outputs.get(c["id"]))
        for c in tool_calls_record
    ]


class GraphHandler:
    """Builds the per-conversation tool sets and runs the specialist graph."""

    def __init__(self, store_client: StoreClient, auth_service: AuthService, llm: Any | None = None) -> None:
        self.store_client = store_client
        self.auth_service = auth_service
        self.llm = llm

    def build_graph(self, conversation_id: str) -> Any:
        # Tools close over the conversation, so the graph is compiled per turn
        product_tools = create_product_tools(self.store_client)
        order_tools = create_order_tools(self.store_client, self.auth_service, conversation_id)
        auth_tools = create_auth_tools(self.auth_service, conversation_id)
        handoff_tools = create_handoff_tools()
        search_tool = [t for t in product_tools if t.name == "search_nuvemshop_products"]

        return create_customer_service_graph(
            self.llm or get_chat_llm(),
            order_tools=order_tools + auth_tools + handoff_tools,
            product_tools=product_tools,
            store_info_tools=create_store_info_tools(self.store_client),
            exchange_tools=order_tools + auth_tools + search_tool + handoff_tools,
        )

    async def run(self, intent: Intent, context: PromptContext) -> HandlerResult:
        graph = self.build_graph(context.conversation_id)
        messages = history_to_messages(context.history) + [HumanMessage(content=context.message)]

        final = await graph.ainvoke(
            {
                "messages": messages,
                "intent": intent.value,
                "context": context,
                "response": "",
                "tools_used": [],
                "tool_calls_record": [],
                "tool_results_record": [],
            }
        )

        invocations = collect_invocations(
            final.get("tool_calls_record", []), final.get("tool_results_record", [])
        )
        logger.info(
            "Specialist finished: intent=%s, tools=%s",
            intent.value,
            [i.name for i in invocations],
        )
        return HandlerResult(text=final.get("response", ""), tool_invocations=invocations)
