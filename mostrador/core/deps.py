"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.config import settings
from mostrador.core.database import get_async_session
from mostrador.integrations.helpdesk.client import HelpdeskClient
from mostrador.integrations.store.client import StoreClient
from mostrador.services.ai_service import AIService
from mostrador.services.auth_service import AuthService
from mostrador.services.graph.classifier import IntentClassifier
from mostrador.services.graph.handler import GraphHandler
from mostrador.services.guardrails.service import GuardrailService
from mostrador.services.persistence_service import PersistenceService
from mostrador.services.unknown_case_service import UnknownCaseService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]


# Stateless adapters are built once per process


@lru_cache
def get_guardrail_service() -> GuardrailService:
    return GuardrailService()


@lru_cache
def get_classifier() -> IntentClassifier:
    return IntentClassifier()


@lru_cache
def get_store_client() -> StoreClient:
    return StoreClient()


@lru_cache
def get_helpdesk_client() -> HelpdeskClient:
    return HelpdeskClient()


def get_unknown_case_service(db: DBSession) -> UnknownCaseService:
    return UnknownCaseService(db)


def get_ai_service(db: DBSession, redis: RedisClient) -> AIService:
    """Wire the orchestrator for one request."""
    persistence = PersistenceService(db)
    store_client = get_store_client()
    auth_service = AuthService(redis, persistence, store_client)
    return AIService(
        guardrails=get_guardrail_service(),
        persistence=persistence,
        classifier=get_classifier(),
        handler=GraphHandler(store_client, auth_service),
        auth_service=auth_service,
        handoff=get_helpdesk_client(),
        unknown_cases=UnknownCaseService(db),
    )


AIServiceDep = Annotated[AIService, Depends(get_ai_service)]
UnknownCaseServiceDep = Annotated[UnknownCaseService, Depends(get_unknown_case_service)]


__all__ = [
    "AIServiceDep",
    "DBSession",
    "RedisClient",
    "UnknownCaseServiceDep",
    "get_ai_service",
    "get_db",
    "get_redis",
    "get_unknown_case_service",
]
