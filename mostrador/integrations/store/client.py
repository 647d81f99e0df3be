"""Tiendanube (Nuvemshop) REST API client using httpx.

Responses are reduced to the small dictionaries the specialist tools
return to the model: localized fields are flattened to Spanish and only the
fields the prompts rely on are kept.
"""

import logging
from typing import Any

import httpx

from mostrador.core.config import settings
from mostrador.schemas.auth import CustomerIdentity

logger = logging.getLogger(__name__)

PREFERRED_LANGUAGE = "es"


def localized(value: Any, language: str = PREFERRED_LANGUAGE) -> str | None:
    """Pick one language from a localized ``{"es": ..., "pt": ...}`` field."""
    if isinstance(value, dict):
        return value.get(language) or next((v for v in value.values() if v), None)
    return value


def simplify_product(product: dict[str, Any]) -> dict[str, Any]:
    variants = product.get("variants") or []
    images = product.get("images") or []
    main = variants[0] if variants else {}
    return {
        "id": product.get("id"),
        "name": localized(product.get("name")) or "Unknown Product",
        "description": localized(product.get("description")),
        "price": main.get("price"),
        "sku": main.get("sku"),
        "image_url": images[0].get("src") if images else None,
        "variants": [
            {
                "id": v.get("id"),
                "sku": v.get("sku"),
                "price": v.get("price"),
                "stock": v.get("stock") or 0,
                "values": [localized(x) for x in v.get("values") or []],
            }
            for v in variants
        ],
    }


def simplify_order(order: dict[str, Any]) -> dict[str, Any]:
    customer = order.get("customer") or {}
    return {
        "id": order.get("id"),
        "number": order.get("number"),
        "status": order.get("status"),
        "payment_status": order.get("payment_status"),
        "shipping_status": order.get("shipping_status"),
        "created_at": order.get("created_at"),
        "total": order.get("total"),
        "currency": order.get("currency"),
        "customer_id": str(customer["id"]) if customer.get("id") is not None else None,
        "products": [
            {
                "product_id": p.get("product_id"),
                "name": localized(p.get("name")),
                "sku": p.get("sku"),
                "quantity": p.get("quantity"),
                "price": p.get("price"),
                "variant_values": [localized(x) for x in p.get("variant_values") or []],
            }
            for p in order.get("products") or []
        ],
    }


class StoreClient:
    """Async client for the store backend; also the identity lookup adapter."""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = (base_url or settings.store_api_url).rstrip("/")
        self.headers = {
            "Authentication": f"bearer {access_token or settings.store_api_token}",
            "User-Agent": settings.store_user_agent,
            "Content-Type": "application/json",
        }
        self.timeout = timeout

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}{path}", params=params)
            if not response.is_success:
                logger.warning("Store API GET %s failed: %s", path, response.status_code)
            response.raise_for_status()
            return response.json()

    # Products

    async def search_products(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        products = await self._get(
            "/products", params={"q": query, "per_page": limit, "published": "true"}
        )
        return [simplify_product(p) for p in products or []]

    async def get_product(self, product_id: int | str) -> dict[str, Any]:
        return simplify_product(await self._get(f"/products/{product_id}"))

    async def get_product_by_sku(self, sku: str) -> dict[str, Any]:
        return simplify_product(await self._get(f"/products/sku/{sku}"))

    # Orders

    async def get_order(self, order_id: int | str) -> dict[str, Any]:
        return simplify_order(await self._get(f"/orders/{order_id}"))

    async def get_last_order(self, customer_id: str) -> dict[str, Any] | None:
        orders = await self._get(
            "/orders", params={"customer_ids": customer_id, "per_page": 1, "page": 1}
        )
        if not orders:
            return None
        return simplify_order(orders[0])

    async def get_order_tracking(self, order_id: int | str) -> list[dict[str, Any]]:
        fulfillments = await self._get(f"/orders/{order_id}/fulfillments")
        return [
            {
                "status": f.get("status"),
                "tracking_number": (f.get("tracking_info") or {}).get("code"),
                "tracking_url": (f.get("tracking_info") or {}).get("url"),
                "carrier": ((f.get("shipping") or {}).get("carrier") or {}).get("name"),
                "updated_at": f.get("updated_at"),
            }
            for f in fulfillments or []
        ]

    async def get_payment_history(self, order_id: int | str) -> list[dict[str, Any]]:
        transactions = await self._get(f"/orders/{order_id}/transactions")
        return [
            {
                "status": t.get("status"),
                "payment_method": (t.get("payment_method") or {}).get("type")
                if isinstance(t.get("payment_method"), dict)
                else t.get("payment_method"),
                "amount": (t.get("info") or {}).get("amount") if isinstance(t.get("info"), dict) else None,
                "created_at": t.get("created_at"),
            }
            for t in transactions or []
        ]

    # Store

    async def get_store_info(self) -> dict[str, Any]:
        store = await self._get("/store")
        return {
            "name": localized(store.get("name")),
            "description": localized(store.get("description")),
            "email": store.get("email"),
            "phone": store.get("phone"),
            "address": store.get("address"),
            "url": store.get("original_domain") or store.get("url_with_protocol"),
            "whatsapp": store.get("whatsapp_phone_number"),
        }

    # Identity

    async def find_identification_by_email(self, email: str) -> CustomerIdentity | None:
        """Find the store customer for ``email`` and their identification (DNI)."""
        customers = await self._get("/customers", params={"q": email, "per_page": 10})
        target = email.strip().lower()
        for customer in customers or []:
            if (customer.get("email") or "").strip().lower() != target:
                continue
            return CustomerIdentity(
                customer_id=str(customer["id"]),
                identification=customer.get("identification"),
            )
        return None
