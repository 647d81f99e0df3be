"""Chatwoot-style helpdesk API client using httpx.

Used to hand a conversation over to the human team: a private note with the
handoff reason is posted and the conversation is reopened so it shows up in
the agents' inbox.
"""

import logging
from typing import Any, Literal

import httpx

from mostrador.core.config import settings

logger = logging.getLogger(__name__)

ConversationStatus = Literal["open", "resolved", "pending"]


class HelpdeskClient:
    """Async client for the helpdesk account API."""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        account_id: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.helpdesk_api_url).rstrip("/")
        self.account_id = account_id or settings.helpdesk_account_id
        self.headers = {
            "api_access_token": access_token or settings.helpdesk_api_token,
            "Content-Type": "application/json",
        }

    def _conversation_url(self, conversation_id: str) -> str:
        return f"{self.base_url}/api/v1/accounts/{self.account_id}/conversations/{conversation_id}"

    async def send_message(
        self, conversation_id: str, content: str, private: bool = False
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(headers=self.headers, timeout=30.0) as client:
            response = await client.post(
                f"{self._conversation_url(conversation_id)}/messages",
                json={"content": content, "message_type": "outgoing", "private": private},
            )
            response.raise_for_status()
            data: dict[str, Any] = response.json()
            return data

    async def update_status(self, conversation_id: str, status: ConversationStatus) -> None:
        async with httpx.AsyncClient(headers=self.headers, timeout=30.0) as client:
            response = await client.post(
                f"{self._conversation_url(conversation_id)}/toggle_status",
                json={"status": status},
            )
            response.raise_for_status()

    async def assign_to_human(self, conversation_id: str, reason: str) -> None:
        """Leave the reason for the agents and reopen the conversation."""
        await self.send_message(conversation_id, f"Derivado por el asistente: {reason}", private=True)
        await self.update_status(conversation_id, "open")
        logger.info("Conversation %s assigned to human team: %s", conversation_id, reason)
