"""Customer identity verification for private order data.

Flow:
1. A protected tool is called without a session and fails with
   AUTHENTICATION_REQUIRED.
2. The specialist asks for the email and the last digits of the DNI and
   calls ``verify_dni``.
3. The customer is looked up by email in the store and the digits are
   compared against the stored identification.
4. On success a short tool session is stored in Redis and the long account
   verification record is upserted in the database.

Two windows exist. The short session (``auth_session_duration_minutes``)
gates protected tools. The long record (``customer_auth_window_hours``) only
tells the specialist that the customer verified recently. Reading either one
never extends it.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import redis.asyncio as aioredis
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import ValidationError

from mostrador.core.config import settings
from mostrador.core.security import digits_only, hash_email
from mostrador.schemas.auth import (
    AuthSessionData,
    AuthStatus,
    AuthVerificationResult,
    CustomerIdentity,
)
from mostrador.schemas.conversation_state import CustomerAuthState
from mostrador.services.ports import IdentityLookupPort, PersistencePort

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "auth_session"

# Same text for every lookup miss or mismatch so emails cannot be enumerated
VERIFICATION_FAILED_MESSAGE = (
    "No pudimos verificar tu identidad con esos datos. Revisá el email y los dígitos del DNI."
)
SERVICE_UNAVAILABLE_MESSAGE = "El servicio de verificación no está disponible. Probá de nuevo en unos minutos."


class ToolAccessError(Exception):
    """Raised by a protected tool when the conversation has no valid session."""

    code = "TOOL_ACCESS_DENIED"


class AuthenticationRequiredError(ToolAccessError):
    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Customer must verify their identity first") -> None:
        super().__init__(message)


class SessionExpiredError(ToolAccessError):
    code = "SESSION_EXPIRED"

    def __init__(self, message: str = "Authentication session expired, verify again") -> None:
        super().__init__(message)


def session_key(conversation_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{conversation_id}"


class AuthService:
    """Verifies customers and answers whether a conversation may see order data."""

    def __init__(
        self,
        redis: aioredis.Redis,
        persistence: PersistencePort,
        identity_lookup: IdentityLookupPort,
    ) -> None:
        self.redis = redis
        self.persistence = persistence
        self.identity_lookup = identity_lookup

    async def verify(
        self,
        conversation_id: str,
        email: str,
        last_digits: str,
        now: datetime | None = None,
    ) -> AuthVerificationResult:
        """Check the last DNI digits for ``email`` and open a session on success."""
        now = now or datetime.now(UTC)
        digits = settings.auth_dni_digits
        last_digits = last_digits.strip()

        if not settings.auth_enabled:
            logger.warning("Authentication disabled, opening session without verification")
            identity = await self._lookup(email)
            return await self._create_session(
                conversation_id, email, identity.customer_id if identity else None, now
            )

        if len(last_digits) != digits:
            return AuthVerificationResult(
                verified=False,
                error=f"Necesitamos los últimos {digits} dígitos de tu DNI.",
            )
        if not last_digits.isdigit():
            return AuthVerificationResult(
                verified=False,
                error="Los dígitos del DNI deben ser solo números.",
            )

        try:
            identity = await self.identity_lookup.find_identification_by_email(email)
        except Exception:
            logger.exception("Identity lookup failed for conversation %s", conversation_id)
            return AuthVerificationResult(verified=False, error=SERVICE_UNAVAILABLE_MESSAGE)

        if identity is None or not identity.identification:
            logger.warning("Verification failed for conversation %s: no identification on record", conversation_id)
            return AuthVerificationResult(verified=False, error=VERIFICATION_FAILED_MESSAGE)

        stored = digits_only(identity.identification)
        if len(stored) < digits or stored[-digits:] != last_digits:
            logger.warning("Verification failed for conversation %s: digits do not match", conversation_id)
            return AuthVerificationResult(verified=False, error=VERIFICATION_FAILED_MESSAGE)

        logger.info("Customer verified in conversation %s", conversation_id)
        return await self._create_session(conversation_id, email, identity.customer_id, now)

    async def _lookup(self, email: str) -> CustomerIdentity | None:
        try:
            return await self.identity_lookup.find_identification_by_email(email)
        except Exception:
            logger.exception("Identity lookup failed")
            return None

    async def _create_session(
        self,
        conversation_id: str,
        email: str,
        customer_id: str | None,
        now: datetime,
    ) -> AuthVerificationResult:
        email_hash = hash_email(email)
        expires_at = now + timedelta(minutes=settings.auth_session_duration_minutes)
        session = AuthSessionData(
            email_hash=email_hash,
            verified_at=now,
            expires_at=expires_at,
            customer_id=customer_id,
        )
        try:
            # Keep the key for the long window; expiry is read from the payload
            await self.redis.set(
                session_key(conversation_id),
                session.model_dump_json(),
                ex=settings.customer_auth_window_hours * 3600,
            )
        except Exception:
            logger.exception("Failed to store auth session for conversation %s", conversation_id)
            return AuthVerificationResult(verified=False, error=SERVICE_UNAVAILABLE_MESSAGE)

        await self.persistence.set_customer_auth(
            email,
            CustomerAuthState(
                email_hash=email_hash,
                verified=True,
                verified_at=now,
                expires_at=now + timedelta(hours=settings.customer_auth_window_hours),
                verified_in_conversation_id=conversation_id,
            ),
        )
        return AuthVerificationResult(verified=True, expires_at=expires_at)

    async def get_session(self, conversation_id: str) -> AuthSessionData | None:
        """Raw stored session, expired or not."""
        raw = await self.redis.get(session_key(conversation_id))
        if not raw:
            return None
        try:
            return AuthSessionData.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed auth session for conversation %s", conversation_id)
            return None

    async def get_status(self, conversation_id: str, now: datetime | None = None) -> AuthStatus:
        """Session status; a pure read that fails closed."""
        if not settings.auth_enabled:
            return AuthStatus(authenticated=True)

        now = now or datetime.now(UTC)
        try:
            session = await self.get_session(conversation_id)
        except Exception:
            logger.exception("Failed to read auth session for conversation %s", conversation_id)
            return AuthStatus(authenticated=False)

        if session is None:
            return AuthStatus(authenticated=False)
        if now >= session.expires_at:
            return AuthStatus(authenticated=False, expired=True, expires_at=session.expires_at)

        remaining = int((session.expires_at - now).total_seconds() // 60)
        return AuthStatus(
            authenticated=True,
            remaining_minutes=remaining,
            expires_at=session.expires_at,
        )

    async def expire_session(self, conversation_id: str) -> None:
        await self.redis.delete(session_key(conversation_id))
        logger.info("Auth session removed for conversation %s", conversation_id)

    async def get_customer_auth_summary(
        self,
        conversation_id: str,
        email_hash: str | None,
        now: datetime | None = None,
    ) -> str:
        """One-paragraph auth context for the specialist prompt."""
        now = now or datetime.now(UTC)
        status = await self.get_status(conversation_id, now)
        digits = settings.auth_dni_digits

        if status.authenticated:
            if status.remaining_minutes is None:
                return "Authentication is not required. Use order tools directly."
            return (
                f"The customer is authenticated ({status.remaining_minutes}min remaining). "
                "Use order tools directly, do not ask for the DNI again."
            )

        record = None
        if email_hash:
            try:
                record = await self.persistence.get_customer_auth_by_hash(email_hash)
            except Exception:
                logger.exception("Failed to read customer auth for conversation %s", conversation_id)

        if record is not None and record.is_valid(now):
            return (
                f"The customer verified their identity earlier ({record.format_expiry(now)}) "
                f"but this session is not open. Ask only for the last {digits} digits of their DNI "
                "and their email, then call verify_dni."
            )
        if status.expired:
            return (
                "The customer's session expired. Ask for the last "
                f"{digits} digits of their DNI again before using order tools."
            )
        return "The customer is not authenticated yet."


def protect_tool(tool: BaseTool, auth_service: AuthService, conversation_id: str) -> StructuredTool:
    """Wrap ``tool`` so it only runs for a conversation with a valid session.

    Raises:
        SessionExpiredError: The session existed but has expired.
        AuthenticationRequiredError: There is no valid session.
    """

    async def _guarded(**kwargs: Any) -> Any:
        status = await auth_service.get_status(conversation_id)
        if status.expired:
            raise SessionExpiredError()
        if not status.authenticated:
            raise AuthenticationRequiredError()
        return await tool.ainvoke(kwargs)

    return StructuredTool.from_function(
        coroutine=_guarded,
        name=tool.name,
        description=f"{tool.description} (Requires authentication)",
        args_schema=tool.args_schema,
    )
