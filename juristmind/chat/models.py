"""Conversation and message models for the streaming chat client."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class Feedback(StrEnum):
    NONE = "none"
    LIKED = "liked"
    DISLIKED = "disliked"

    @classmethod
    def from_kind(cls, kind: str) -> Feedback:
        """Map the wire value (``"like"`` / ``"dislike"``) to a state."""
        if kind == "like":
            return cls.LIKED
        if kind == "dislike":
            return cls.DISLIKED
        msg = f"Unknown feedback kind: {kind!r}"
        raise ValueError(msg)


@dataclass(frozen=True)
class Source:
    """A citation attached to an assistant reply."""

    title: str
    url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Source:
        url = str(data.get("url") or "")
        return cls(title=str(data.get("title") or url), url=url)


def make_message_id() -> str:
    """Generate a new message ID."""
    return uuid.uuid4().hex


@dataclass
class Message:
    """A single conversation turn.

    Attributes:
        id: Stable identifier; reused when an assistant turn is regenerated.
        role: ``user`` or ``assistant``.
        text: Accumulation buffer. Assistant text grows as chunks arrive.
        timestamp: Creation time (UTC).
        sources: Citations, assigned once when the stream completes.
        attachment_names: File names sent with a user turn.
        feedback: ``none`` until the user likes or dislikes the reply.
    """

    id: str
    role: Role
    text: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    sources: list[Source] | None = None
    attachment_names: list[str] = field(default_factory=list)
    feedback: Feedback = Feedback.NONE

    @property
    def is_user(self) -> bool:
        return self.role == Role.USER

    @property
    def is_assistant(self) -> bool:
        return self.role == Role.ASSISTANT

    @property
    def liked(self) -> bool:
        return self.feedback == Feedback.LIKED

    @property
    def disliked(self) -> bool:
        return self.feedback == Feedback.DISLIKED

    def append_text(self, chunk: str) -> None:
        self.text += chunk

    def set_sources(self, sources: list[Source]) -> None:
        """Attach citations. Only valid once per stream."""
        if self.sources is not None:
            msg = f"Sources already set for message {self.id}"
            raise RuntimeError(msg)
        self.sources = list(sources)

    def set_feedback(self, feedback: Feedback) -> None:
        """Record feedback. Once given it can flip but never be withdrawn."""
        if feedback == Feedback.NONE:
            msg = "Feedback cannot be reset to none"
            raise ValueError(msg)
        self.feedback = feedback

    def reset_for_regeneration(self) -> None:
        self.text = ""
        self.sources = None


class Conversation:
    """Display-ordered turns plus an id index for in-place updates.

    At most one assistant message is open (streaming) at a time.
    """

    def __init__(self, conversation_id: str | None = None) -> None:
        self.conversation_id = conversation_id
        self._order: list[str] = []
        self._by_id: dict[str, Message] = {}
        self._open_id: str | None = None

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> list[Message]:
        """All messages in display order."""
        return [self._by_id[mid] for mid in self._order]

    @property
    def open_message(self) -> Message | None:
        return self._by_id.get(self._open_id) if self._open_id else None

    def append(self, message: Message) -> Message:
        if message.id in self._by_id:
            msg = f"Duplicate message id: {message.id}"
            raise ValueError(msg)
        self._order.append(message.id)
        self._by_id[message.id] = message
        return message

    def get(self, message_id: str) -> Message | None:
        return self._by_id.get(message_id)

    def index_of(self, message_id: str) -> int:
        return self._order.index(message_id)

    def previous(self, message_id: str) -> Message | None:
        """Return the turn immediately before *message_id*, if any."""
        if message_id not in self._by_id:
            return None
        idx = self._order.index(message_id)
        if idx == 0:
            return None
        return self._by_id[self._order[idx - 1]]

    def open(self, message_id: str) -> Message:
        """Mark an assistant message as the stream's accumulation target."""
        if self._open_id is not None:
            msg = f"Message {self._open_id} is still streaming"
            raise RuntimeError(msg)
        message = self._by_id[message_id]
        if not message.is_assistant:
            msg = f"Only assistant messages can be opened: {message_id}"
            raise ValueError(msg)
        self._open_id = message_id
        return message

    def close(self) -> None:
        self._open_id = None

    def clear(self) -> int:
        """Drop all turns and forget the conversation id. Returns the count."""
        count = len(self._order)
        self._order.clear()
        self._by_id.clear()
        self._open_id = None
        self.conversation_id = None
        return count
