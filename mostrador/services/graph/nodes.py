"""LangGraph node functions for the customer service specialists."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI

from mostrador.core.config import settings
from mostrador.services.auth_service import ToolAccessError
from mostrador.services.graph.prompts import (
    EXCHANGE_NODE_PROMPT,
    GREETINGS_NODE_PROMPT,
    HANDOFF_NODE_PROMPT,
    ORDERS_NODE_PROMPT,
    PII_INSTRUCTIONS,
    PRODUCTS_NODE_PROMPT,
    STORE_INFO_NODE_PROMPT,
)
from mostrador.services.graph.state import GraphState
from mostrador.services.pii import resolve_nested

logger = logging.getLogger(__name__)

MAX_RESPONSE_TOKENS = 800
MAX_TOOL_ITERATIONS = 5
TOOL_LOOP_EXHAUSTED_MESSAGE = (
    "Estoy teniendo problemas para procesar tu consulta. ¿Podés intentar de nuevo?"
)


@dataclass
class ToolLoopResult:
    """Result from the agentic tool loop."""

    content: str
    tools_used: list[str] = field(default_factory=list)
    tool_calls_record: list[dict[str, Any]] = field(default_factory=list)
    tool_results_record: list[dict[str, Any]] = field(default_factory=list)


def get_chat_llm() -> ChatOpenAI:
    """Create a ChatOpenAI instance for the specialists."""
    return ChatOpenAI(
        model=settings.chat_model,
        api_key=settings.openai_api_key,
        temperature=0.3,
        max_tokens=MAX_RESPONSE_TOKENS,
    )


async def _execute_tool(tool_fn: Any, args: dict[str, Any], pii_metadata: dict[str, str]) -> str:
    """Run one tool with placeholders resolved to the real values."""
    try:
        return str(await tool_fn.ainvoke(resolve_nested(args, pii_metadata)))
    except ToolAccessError as e:
        logger.info("Tool %s denied: %s", tool_fn.name, e.code)
        return json.dumps({"error": e.code, "message": str(e)})
    except Exception as e:
        logger.exception("Tool execution error: %s", tool_fn.name)
        return f"Error: {e}"


async def _run_tool_loop(
    llm: Any,
    messages: list[Any],
    tools: list[Any],
    pii_metadata: dict[str, str] | None = None,
    max_iterations: int = MAX_TOOL_ITERATIONS,
) -> ToolLoopResult:
    """Run the agentic tool loop with full tracking.

    The model only ever sees placeholders. Arguments are resolved right before
    each tool runs and the recorded calls keep the placeholder form.

    Returns:
        ToolLoopResult with content, tools used, and detailed records
    """
    result = ToolLoopResult(content="")
    metadata = pii_metadata or {}
    logger.info("Tool loop started: tools=%s", [t.name for t in tools])
    bound_llm = llm.bind_tools(tools)

    for i in range(max_iterations):
        response: AIMessage = await bound_llm.ainvoke(messages)

        if not response.tool_calls:
            logger.info("Tool loop iteration %d: no tool calls, returning text response", i)
            result.content = response.content if isinstance(response.content, str) else ""
            return result

        logger.info(
            "Tool loop iteration %d: tool calls=%s",
            i,
            [tc["name"] for tc in response.tool_calls],
        )
        messages.append(response)
        for tc in response.tool_calls:
            result.tools_used.append(tc["name"])
            result.tool_calls_record.append({"id": tc["id"], "name": tc["name"], "args": tc["args"]})

            tool_fn = next((t for t in tools if t.name == tc["name"]), None)
            if tool_fn:
                tool_result = await _execute_tool(tool_fn, tc["args"], metadata)
            else:
                tool_result = f"Unknown tool: {tc['name']}"

            result.tool_results_record.append({"tool_call_id": tc["id"], "result": tool_result})
            messages.append(ToolMessage(content=tool_result, tool_call_id=tc["id"]))

    logger.warning("Tool loop exhausted after %d iterations", max_iterations)
    result.content = TOOL_LOOP_EXHAUSTED_MESSAGE
    return result


def _system_messages(system: str, state: GraphState) -> list[Any]:
    messages: list[Any] = [SystemMessage(content=system)]
    goal_note = state["context"].goal_note
    if goal_note:
        messages.append(SystemMessage(content=goal_note))
    return messages


async def _specialist(
    state: GraphState,
    llm: Any,
    system: str,
    tools: list[Any] | None = None,
) -> dict[str, Any]:
    messages = _system_messages(system, state) + list(state["messages"])

    if tools:
        result = await _run_tool_loop(llm, messages, tools, state["context"].pii_metadata)
    else:
        response = await llm.ainvoke(messages)
        result = ToolLoopResult(content=response.content if isinstance(response.content, str) else "")

    return {
        "messages": [AIMessage(content=result.content)],
        "response": result.content,
        "tools_used": result.tools_used,
        "tool_calls_record": result.tool_calls_record,
        "tool_results_record": result.tool_results_record,
    }


async def orders_node(state: GraphState, llm: Any, tools: list[Any] | None = None) -> dict[str, Any]:
    """Order status, tracking and payments, behind identity verification."""
    ctx = state["context"]
    system = ORDERS_NODE_PROMPT.format(
        store_name=settings.store_name,
        auth_summary=ctx.auth_summary or "",
        dni_digits=settings.auth_dni_digits,
        pii_instructions=PII_INSTRUCTIONS,
        presentation_instructions=ctx.order_instructions or "",
    )
    return await _specialist(state, llm, system, tools)


async def products_node(state: GraphState, llm: Any, tools: list[Any] | None = None) -> dict[str, Any]:
    """Catalog questions."""
    system = PRODUCTS_NODE_PROMPT.format(
        store_name=settings.store_name,
        pii_instructions=PII_INSTRUCTIONS,
        presentation_instructions=state["context"].product_instructions or "",
    )
    return await _specialist(state, llm, system, tools)


async def store_info_node(state: GraphState, llm: Any, tools: list[Any] | None = None) -> dict[str, Any]:
    system = STORE_INFO_NODE_PROMPT.format(
        store_name=settings.store_name,
        pii_instructions=PII_INSTRUCTIONS,
    )
    return await _specialist(state, llm, system, tools)


async def exchange_node(state: GraphState, llm: Any, tools: list[Any] | None = None) -> dict[str, Any]:
    """Multi-turn exchange flow; the current step arrives in the exchange note."""
    ctx = state["context"]
    system = EXCHANGE_NODE_PROMPT.format(
        store_name=settings.store_name,
        auth_summary=ctx.auth_summary or "",
        pii_instructions=PII_INSTRUCTIONS,
        exchange_note=ctx.exchange_note or "No exchange in progress yet. Start at step 1.",
    )
    return await _specialist(state, llm, system, tools)


async def handoff_node(state: GraphState, llm: Any) -> dict[str, Any]:
    system = HANDOFF_NODE_PROMPT.format(store_name=settings.store_name)
    return await _specialist(state, llm, system)


async def greetings_node(state: GraphState, llm: Any) -> dict[str, Any]:
    system = GREETINGS_NODE_PROMPT.format(store_name=settings.store_name)
    return await _specialist(state, llm, system)
