"""LangChain @tool definitions for customer identity verification."""

import json
from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from mostrador.core.config import settings
from mostrador.services.auth_service import AuthService


class VerifyDniInput(BaseModel):
    """Input for DNI verification."""

    email: str = Field(description="Email address the customer used to buy")
    dni_last_digits: str = Field(
        description=f"The last {settings.auth_dni_digits} digits of the customer's DNI"
    )


class AuthStatusInput(BaseModel):
    """No arguments; the conversation is implicit."""


def create_auth_tools(auth_service: AuthService, conversation_id: str) -> list[Any]:
    """Create verification tools bound to one conversation."""

    @tool(args_schema=VerifyDniInput)
    async def verify_dni(email: str, dni_last_digits: str) -> str:
        """Verify the customer's identity with their email and the last digits of
        their DNI. Call it once the customer gave both; order tools need it."""
        result = await auth_service.verify(conversation_id, email, dni_last_digits)
        payload: dict[str, Any] = {"verified": result.verified}
        if result.verified:
            payload["message"] = "Identity verified. Order tools are now available."
            payload["expires_at"] = result.expires_at.isoformat() if result.expires_at else None
        else:
            payload["error"] = result.error
        return json.dumps(payload)

    @tool(args_schema=AuthStatusInput)
    async def check_auth_status() -> str:
        """Check whether the customer is verified in this conversation and for how long."""
        status = await auth_service.get_status(conversation_id)
        return status.model_dump_json()

    return [verify_dni, check_auth_status]
