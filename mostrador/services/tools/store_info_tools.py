"""LangChain @tool definition for store contact and policy information."""

import json
from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel

from mostrador.integrations.store.client import StoreClient


class StoreInfoInput(BaseModel):
    """No arguments."""


def create_store_info_tools(store_client: StoreClient) -> list[Any]:
    @tool(args_schema=StoreInfoInput)
    async def get_store_info() -> str:
        """Get the store's contact details: email, phone, WhatsApp, address and website."""
        return json.dumps(await store_client.get_store_info())

    return [get_store_info]
