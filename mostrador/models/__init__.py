"""SQLAlchemy models."""

from mostrador.models.base import Base
from mostrador.models.conversation import Conversation, ConversationStatus
from mostrador.models.conversation_state import ConversationStateRecord
from mostrador.models.customer_auth import CustomerAuth
from mostrador.models.message import Message, MessageRole
from mostrador.models.unknown_case import UnknownUseCase

__all__ = [
    # Base
    "Base",
    # Conversations
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageRole",
    "ConversationStateRecord",
    # Auth
    "CustomerAuth",
    # Audit
    "UnknownUseCase",
]
