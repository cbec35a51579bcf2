"""Streaming conversation client for the Jurist Mind inference endpoint."""

from juristmind.chat.client import Attachment, ConversationClient, Identity
from juristmind.chat.models import Conversation, Feedback, Message, Role, Source
from juristmind.chat.state import SessionStateStore

__all__ = [
    "Attachment",
    "Conversation",
    "ConversationClient",
    "Feedback",
    "Identity",
    "Message",
    "Role",
    "SessionStateStore",
    "Source",
]
