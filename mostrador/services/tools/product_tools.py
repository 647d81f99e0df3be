"""LangChain @tool definitions for catalog lookups.

Tools are created per request via create_product_tools() and close over the
store client. Every tool returns a JSON string the model reads directly.
"""

import json
from typing import Any

import httpx
from langchain_core.tools import tool
from pydantic import BaseModel, Field

from mostrador.integrations.store.client import StoreClient

# --- Input schemas ---


class SearchProductsInput(BaseModel):
    """Input for product search."""

    query: str = Field(description="Search terms, e.g. 'remera negra' or 'zapatillas running'")
    limit: int = Field(5, description="Maximum number of products to return", ge=1, le=10)


class ProductLookupInput(BaseModel):
    """Input for getting one product."""

    product_id: str = Field(description="The product ID returned by a previous search")


class ProductSkuInput(BaseModel):
    """Input for a SKU lookup."""

    sku: str = Field(description="The product or variant SKU")


def _not_found(error: httpx.HTTPStatusError) -> bool:
    return error.response.status_code == 404


def create_product_tools(store_client: StoreClient) -> list[Any]:
    """Create LangChain tools for catalog search and product details.

    Returns list of @tool-decorated functions for bind_tools().
    """

    @tool(args_schema=SearchProductsInput)
    async def search_nuvemshop_products(query: str, limit: int = 5) -> str:
        """Search the store catalog. Use when the customer is looking for products,
        browsing, or asks whether something is available. Returns prices, variants
        and stock per variant."""
        products = await store_client.search_products(query, limit=limit)
        if not products:
            return json.dumps({"products": [], "message": "No products found matching your search."})
        return json.dumps({"products": products, "total": len(products)})

    @tool(args_schema=ProductLookupInput)
    async def get_nuvemshop_product(product_id: str) -> str:
        """Get full details of one product by ID, including every variant.
        Use for follow-up questions about a product already shown."""
        try:
            product = await store_client.get_product(product_id)
        except httpx.HTTPStatusError as e:
            if _not_found(e):
                return json.dumps({"error": "Product not found"})
            raise
        return json.dumps(product)

    @tool(args_schema=ProductSkuInput)
    async def get_nuvemshop_product_by_sku(sku: str) -> str:
        """Get a product by SKU. Use when the customer gives an exact product code."""
        try:
            product = await store_client.get_product_by_sku(sku)
        except httpx.HTTPStatusError as e:
            if _not_found(e):
                return json.dumps({"error": f"No product with SKU {sku}"})
            raise
        return json.dumps(product)

    return [search_nuvemshop_products, get_nuvemshop_product, get_nuvemshop_product_by_sku]
