"""Pytest configuration and fixtures for the Mostrador test suite.

Provides:
- A fixed clock (a Wednesday afternoon in Buenos Aires)
- Mock Redis (fakeredis)
- Disabled rate limiting
- Mock ports for the orchestrator (guardrails, persistence, classifier,
  handler, handoff, unknown cases)
- Mock httpx clients for the store and helpdesk integrations
- An HTTP client with the database and orchestrator dependencies overridden
"""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mostrador.core.deps import get_ai_service, get_db, get_redis, get_unknown_case_service
from mostrador.core.rate_limit import limiter
from mostrador.main import app
from mostrador.schemas.ai import HandlerResult, Intent, IntentClassification, ToolInvocation
from mostrador.schemas.guardrail import GuardrailCheck, GuardrailCheckKind, GuardrailResult
from mostrador.schemas.unknown_case import UnknownCaseOutcome

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
CONVERSATION_ID = "conv-123"
CONTACT_ID = "contact-9"
CUSTOMER_EMAIL = "ana@example.com"
CUSTOMER_ID = "555"
CUSTOMER_DNI = "30.123.456"

# Wednesday 2026-10-14 15:00 in Buenos Aires (UTC-3)
FIXED_NOW = datetime(2026, 10, 14, 18, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Tool invocation helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def invocation() -> Callable[..., ToolInvocation]:
    """Factory for ToolInvocation records."""
    counter = {"n": 0}

    def _create(name: str, output: Any = None, **args: Any) -> ToolInvocation:
        counter["n"] += 1
        return ToolInvocation(id=f"call_{counter['n']}", name=name, args=args, output=output)

    return _create


def product_payload(product_id: int = 101, name: str = "Remera Básica", stock: int = 5) -> dict[str, Any]:
    return {
        "id": product_id,
        "name": name,
        "price": "12000.00",
        "sku": f"SKU-{product_id}",
        "variants": [{"id": product_id * 10, "sku": f"SKU-{product_id}-M", "price": "12000.00", "stock": stock, "values": ["M"]}],
    }


def order_payload(order_id: int = 9001, number: int = 1234, status: str = "open") -> dict[str, Any]:
    return {
        "id": order_id,
        "number": number,
        "status": status,
        "payment_status": "paid",
        "shipping_status": "shipped",
        "created_at": "2026-10-01T12:00:00+0000",
        "customer_id": CUSTOMER_ID,
        "products": [
            {"product_id": 101, "name": "Remera Básica", "sku": "SKU-101-M", "variant_values": ["M", "Negro"], "quantity": 1, "price": "12000.00"}
        ],
    }


# ---------------------------------------------------------------------------
# Orchestrator ports
# ---------------------------------------------------------------------------


def allowed(sanitized: str | None = None, metadata: dict[str, str] | None = None) -> GuardrailResult:
    return GuardrailResult(
        allowed=True,
        checks=[GuardrailCheck(kind=GuardrailCheckKind.PII, passed=True)],
        sanitized_content=sanitized,
        pii_metadata=metadata,
    )


def rejected(kind: GuardrailCheckKind) -> GuardrailResult:
    return GuardrailResult(allowed=False, checks=[GuardrailCheck(kind=kind, passed=False, message="blocked")])


@pytest.fixture
def guardrails() -> MagicMock:
    mock = MagicMock()
    mock.validate_input = AsyncMock(return_value=allowed())
    mock.validate_output = AsyncMock(return_value=allowed())
    return mock


@pytest.fixture
def persistence() -> MagicMock:
    mock = MagicMock()
    mock.get_recent_messages = AsyncMock(return_value=[])
    mock.get_conversation_state = AsyncMock(return_value=None)
    mock.update_full_conversation_state = AsyncMock()
    mock.update_conversation_state = AsyncMock()
    mock.set_active_goal = AsyncMock()
    mock.get_customer_auth = AsyncMock(return_value=None)
    mock.get_customer_auth_by_hash = AsyncMock(return_value=None)
    mock.set_customer_auth = AsyncMock()
    mock.save_message = AsyncMock()
    mock.mark_escalated = AsyncMock()
    return mock


@pytest.fixture
def classifier() -> MagicMock:
    mock = MagicMock()
    mock.classify = AsyncMock(
        return_value=IntentClassification(intent=Intent.PRODUCT_INFO, confidence=0.9)
    )
    return mock


@pytest.fixture
def handler() -> MagicMock:
    mock = MagicMock()
    mock.run = AsyncMock(return_value=HandlerResult(text="¡Claro! Te ayudo con eso."))
    return mock


@pytest.fixture
def handoff() -> MagicMock:
    mock = MagicMock()
    mock.assign_to_human = AsyncMock()
    return mock


@pytest.fixture
def unknown_cases() -> MagicMock:
    mock = MagicMock()
    mock.handle = AsyncMock(return_value=UnknownCaseOutcome(should_handoff=False))
    return mock


@pytest.fixture
def identity_lookup() -> MagicMock:
    from mostrador.schemas.auth import CustomerIdentity

    mock = MagicMock()
    mock.find_identification_by_email = AsyncMock(
        return_value=CustomerIdentity(customer_id=CUSTOMER_ID, identification=CUSTOMER_DNI)
    )
    return mock


# ---------------------------------------------------------------------------
# HTTP integrations
# ---------------------------------------------------------------------------


def _mock_response(payload: Any) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    response.is_success = True
    response.status_code = 200
    return response


@pytest.fixture
def mock_store_http() -> Generator[AsyncMock, None, None]:
    """Mock httpx.AsyncClient for StoreClient unit tests."""
    with patch("mostrador.integrations.store.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        mock_client.get.return_value = _mock_response([])
        yield mock_client


@pytest.fixture
def mock_helpdesk_http() -> Generator[AsyncMock, None, None]:
    """Mock httpx.AsyncClient for HelpdeskClient unit tests."""
    with patch("mostrador.integrations.helpdesk.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        mock_client.post.return_value = _mock_response({"id": 1})
        yield mock_client


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def ai_service_mock() -> MagicMock:
    mock = MagicMock()
    mock.process_message = AsyncMock()
    return mock


@pytest.fixture
def unknown_case_service_mock() -> MagicMock:
    mock = MagicMock()
    mock.get_recent = AsyncMock(return_value=[])
    mock.get_stats = AsyncMock()
    return mock


@pytest.fixture
def db_mock() -> AsyncMock:
    return AsyncMock()


@pytest_asyncio.fixture
async def client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    ai_service_mock: MagicMock,
    unknown_case_service_mock: MagicMock,
    db_mock: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with storage and the orchestrator replaced by test doubles."""

    async def _override_db() -> AsyncGenerator[AsyncMock, None]:
        yield db_mock

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_ai_service] = lambda: ai_service_mock
    app.dependency_overrides[get_unknown_case_service] = lambda: unknown_case_service_mock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
