"""LangGraph conversation state definition."""

from typing import Annotated, Any

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from mostrador.schemas.ai import PromptContext


class GraphState(TypedDict):
    """State that flows through one turn of the specialist workflow.

    Attributes:
        messages: Chat message history (uses LangGraph's add_messages reducer)
        intent: Classified intent value for the current message
        context: Everything the specialist prompt needs for the turn
        response: Final specialist text
        tools_used: Names of the tools called during this turn
        tool_calls_record: Tool calls with their (masked) arguments
        tool_results_record: Raw tool outputs keyed by tool_call_id
    """

    messages: Annotated[list[BaseMessage], add_messages]
    intent: str
    context: PromptContext
    response: str
    tools_used: list[str]
    tool_calls_record: list[dict[str, Any]]
    tool_results_record: list[dict[str, Any]]
