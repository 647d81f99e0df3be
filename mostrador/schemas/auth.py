"""Customer authentication schemas."""

from datetime import datetime

from mostrador.schemas.common import BaseSchema


class AuthVerificationResult(BaseSchema):
    """Outcome of a DNI verification attempt.

    Callers branch on ``verified``; a failure is never raised.
    """

    verified: bool
    error: str | None = None
    expires_at: datetime | None = None


class AuthStatus(BaseSchema):
    """Read-only view of the tool session for a conversation."""

    authenticated: bool
    expired: bool = False
    remaining_minutes: int | None = None
    expires_at: datetime | None = None


class AuthSessionData(BaseSchema):
    """Payload stored for a short-lived tool session."""

    email_hash: str
    verified_at: datetime
    expires_at: datetime
    customer_id: str | None = None


class CustomerIdentity(BaseSchema):
    """Store customer found by email, as returned by the identity lookup."""

    customer_id: str
    identification: str | None = None
