"""LangChain @tool definition for transferring the conversation to a human.

The tool only signals the transfer. The orchestrator sees the call in the
turn's tool invocations and performs the actual assignment.
"""

import json
from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel, Field

TRANSFER_TOOL_NAME = "transfer_to_human"


class TransferInput(BaseModel):
    """Input for a human handoff."""

    reason: str = Field(description="Why a human needs to take over")
    summary: str = Field("", description="Short summary of what the customer needs")


def create_handoff_tools() -> list[Any]:
    @tool(args_schema=TransferInput)
    async def transfer_to_human(reason: str, summary: str = "") -> str:
        """Transfer the conversation to the human support team. Use when the customer
        asks for a person, when a request needs manual handling, or when an exchange
        has all its information collected."""
        return json.dumps({"transferred": True, "reason": reason, "summary": summary})

    return [transfer_to_human]
