"""Conversation state schemas.

The state is stored as a JSONB document per conversation. Every field has a
default so that older or partial documents load without branching on
missing keys; ``ConversationState.from_record`` is the only entry point used
when reading from storage.
"""

import enum
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from mostrador.schemas.common import BaseSchema

STATE_VERSION = 1
RECENT_GOALS_LIMIT = 3
SUMMARY_MAX_LENGTH = 200

# Mentions recovered from free text carry no catalog id
UNKNOWN_ID = "unknown"


class MentionContext(str, enum.Enum):
    """Why a product or order entered the conversation."""

    SEARCH = "search"
    QUESTION = "question"
    INTEREST = "interest"
    RECOMMENDATION = "recommendation"
    LOOKUP = "lookup"
    TRACKING = "tracking"
    PAYMENT = "payment"


class GoalType(str, enum.Enum):
    """Customer goal types."""

    ORDER_INQUIRY = "ORDER_INQUIRY"
    PRODUCT_SEARCH = "PRODUCT_SEARCH"
    PRODUCT_QUESTION = "PRODUCT_QUESTION"
    STORE_INFO = "STORE_INFO"
    GREETING = "GREETING"
    EXCHANGE = "EXCHANGE"
    OTHER = "OTHER"


class GoalStatus(str, enum.Enum):
    """Goal lifecycle."""

    ACTIVE = "active"
    COMPLETED = "completed"


class ExchangeStep(str, enum.Enum):
    """Steps of the product exchange flow, in order."""

    IDENTIFY_CUSTOMER = "identify_customer"
    VALIDATE_ORDER = "validate_order"
    SELECT_PRODUCT = "select_product"
    GET_NEW_PRODUCT = "get_new_product"
    CHECK_STOCK = "check_stock"
    CONFIRM_EXCHANGE = "confirm_exchange"
    GET_ADDRESS = "get_address"
    EXPLAIN_POLICY = "explain_policy"
    READY_FOR_HANDOFF = "ready_for_handoff"


class ProductMention(BaseSchema):
    """A catalog product shown or discussed in the conversation."""

    product_id: str
    name: str
    mentioned_at: datetime
    last_mentioned_at: datetime | None = None
    context: MentionContext = MentionContext.SEARCH

    @property
    def seen_at(self) -> datetime:
        """Most recent time the product was mentioned."""
        return self.last_mentioned_at or self.mentioned_at


class OrderMention(BaseSchema):
    """An order looked up or discussed in the conversation."""

    order_id: str
    order_number: str
    mentioned_at: datetime
    last_mentioned_at: datetime | None = None
    context: MentionContext = MentionContext.LOOKUP
    last_known_status: str | None = None

    @property
    def seen_at(self) -> datetime:
        """Most recent time the order was mentioned."""
        return self.last_mentioned_at or self.mentioned_at


class GoalContext(BaseSchema):
    """Lightweight context attached to a goal."""

    order_id: str | None = None
    product_ids: list[str] = Field(default_factory=list)
    topic: str | None = None


class CustomerGoal(BaseSchema):
    """A customer intent tracked across turns."""

    goal_id: str
    type: GoalType
    status: GoalStatus = GoalStatus.ACTIVE
    started_at: datetime
    completed_at: datetime | None = None
    last_activity_at: datetime
    context: GoalContext = Field(default_factory=GoalContext)
    progress_markers: list[str] = Field(default_factory=list)
    detected_from: str = ""


class ExchangeItem(BaseSchema):
    """A line item of the order being exchanged."""

    product_id: str | None = None
    name: str | None = None
    sku: str | None = None
    size: str | None = None
    color: str | None = None


class NewProductSelection(BaseSchema):
    """The replacement product the customer wants."""

    product_id: str | None = None
    name: str | None = None
    size: str | None = None
    color: str | None = None
    has_stock: bool | None = None


class ExchangeState(BaseSchema):
    """Progress of a multi-turn product exchange."""

    step: ExchangeStep = ExchangeStep.IDENTIFY_CUSTOMER
    started_at: datetime
    last_updated_at: datetime
    validation_attempts: int = 0
    order_id: str | None = None
    order_number: str | None = None
    order_status: str | None = None
    order_date: str | None = None
    order_items: list[ExchangeItem] = Field(default_factory=list)
    selected_product: ExchangeItem | None = None
    new_product: NewProductSelection | None = None
    address: str | None = None
    policy_explained: bool = False


class ConversationState(BaseSchema):
    """Accumulated memory of a conversation."""

    version: int = STATE_VERSION
    products: list[ProductMention] = Field(default_factory=list)
    orders: list[OrderMention] = Field(default_factory=list)
    active_goal: CustomerGoal | None = None
    recent_goals: list[CustomerGoal] = Field(default_factory=list)
    last_topic: str | None = None
    summary: str | None = None
    needs_human_help: bool = False
    escalation_reason: str | None = None
    exchange_state: ExchangeState | None = None
    customer_email_hash: str | None = None

    @field_validator("summary")
    @classmethod
    def _truncate_summary(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value[:SUMMARY_MAX_LENGTH]

    @field_validator("recent_goals")
    @classmethod
    def _cap_recent_goals(cls, value: list[CustomerGoal]) -> list[CustomerGoal]:
        return value[:RECENT_GOALS_LIMIT]

    @classmethod
    def from_record(cls, raw: dict[str, Any] | None) -> "ConversationState":
        """Build a state from a stored JSON document, filling defaults.

        ``None`` values are treated like missing keys so that a stored
        ``"products": null`` reads back as an empty list.
        """
        if not raw:
            return cls()
        known = set(cls.model_fields)
        cleaned = {k: v for k, v in raw.items() if k in known and v is not None}
        cleaned["version"] = STATE_VERSION
        return cls.model_validate(cleaned)


class CustomerAuthState(BaseSchema):
    """Long-lived account verification record, keyed by hashed email."""

    email_hash: str
    verified: bool = False
    verified_at: datetime | None = None
    expires_at: datetime | None = None
    verified_in_conversation_id: str | None = None

    def is_valid(self, now: datetime) -> bool:
        return self.verified and self.expires_at is not None and now < self.expires_at

    def remaining_minutes(self, now: datetime) -> int:
        if not self.is_valid(now) or self.expires_at is None:
            return 0
        return int((self.expires_at - now).total_seconds() // 60)

    def format_expiry(self, now: datetime) -> str:
        """Human-readable remaining time, e.g. ``"5h remaining"``."""
        if not self.is_valid(now):
            return "Not authenticated"
        minutes = self.remaining_minutes(now)
        if minutes >= 60:
            return f"{minutes // 60}h remaining"
        return f"{minutes}min remaining"
