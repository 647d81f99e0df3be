"""Initial schema: conversations, messages, state, customer auth, unknown cases.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.execute("CREATE TYPE conversation_status AS ENUM ('active', 'escalated')")
    op.execute("CREATE TYPE message_role AS ENUM ('user', 'assistant', 'system')")

    op.create_table(
        "conversations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("contact_id", sa.String(64), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(name="conversation_status", create_type=False),
            nullable=False,
            server_default="active",
        ),
        sa.Column("extra_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_conversations")),
        sa.UniqueConstraint("external_id", name=op.f("uq_conversations_external_id")),
    )
    op.create_index(op.f("ix_conversations_external_id"), "conversations", ["external_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM(name="message_role", create_type=False),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tool_calls", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["conversation_id"],
            ["conversations.id"],
            name=op.f("fk_messages_conversation_id_conversations"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_messages")),
    )
    op.create_index(op.f("ix_messages_conversation_id"), "messages", ["conversation_id"])

    op.create_table(
        "conversation_states",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("conversation_id", sa.String(64), nullable=False),
        sa.Column("state", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_conversation_states")),
        sa.UniqueConstraint("conversation_id", name=op.f("uq_conversation_states_conversation_id")),
    )
    op.create_index(
        op.f("ix_conversation_states_conversation_id"), "conversation_states", ["conversation_id"]
    )

    op.create_table(
        "customer_auth",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email_hash", sa.String(64), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_in_conversation_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_customer_auth")),
        sa.UniqueConstraint("email_hash", name=op.f("uq_customer_auth_email_hash")),
    )
    op.create_index(op.f("ix_customer_auth_email_hash"), "customer_auth", ["email_hash"])

    op.create_table(
        "unknown_use_cases",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("conversation_id", sa.String(64), nullable=False),
        sa.Column("contact_id", sa.String(64), nullable=True),
        sa.Column("message_content", sa.Text(), nullable=False),
        sa.Column("detected_intent", sa.String(50), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("agent_response", sa.Text(), nullable=True),
        sa.Column("was_handed_off", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("handoff_reason", sa.String(255), nullable=True),
        sa.Column("extra_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_unknown_use_cases")),
    )
    op.create_index(
        op.f("ix_unknown_use_cases_conversation_id"), "unknown_use_cases", ["conversation_id"]
    )
    op.create_index(
        op.f("ix_unknown_use_cases_detected_intent"), "unknown_use_cases", ["detected_intent"]
    )


def downgrade() -> None:
    op.drop_table("unknown_use_cases")
    op.drop_table("customer_auth")
    op.drop_table("conversation_states")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.execute("DROP TYPE IF EXISTS message_role")
    op.execute("DROP TYPE IF EXISTS conversation_status")
