"""Async streaming client for the Jurist Mind inference endpoint.

Submits a question (and optional files) as one multipart request to
``/ask``, consumes the server-sent-event reply, and assembles it into the
open assistant message chunk by chunk. Completed assistant turns support
regenerate, like/dislike feedback, copy and share.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from juristmind.chat.frames import (
    ContentChunk,
    Done,
    FrameBuffer,
    Sentinel,
    SourcesReady,
    classify_frame,
)
from juristmind.chat.models import Conversation, Feedback, Message, Role, make_message_id
from juristmind.chat.ui import Clipboard, LoggingNoticeSink, MemoryClipboard, Notice, NoticeSink
from juristmind.config import settings
from juristmind.errors import (
    AuthRequired,
    FeedbackRejected,
    MalformedFrame,
    SubmitInProgress,
    TransportFailure,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from juristmind.chat.state import SessionStateStore

logger = logging.getLogger(__name__)

STREAM_ERROR_TEXT = "**Error:** Failed to stream response. Please try again."


@dataclass(frozen=True)
class Identity:
    """The signed-in user."""

    user_id: str
    email: str = ""


@dataclass(frozen=True)
class Attachment:
    """A file queued for upload with the next question."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path) -> Attachment:
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content=path.read_bytes(), content_type=content_type)


def format_user_text(question: str, attachment_names: Sequence[str]) -> str:
    """Text shown in the user's bubble for a question and its attachments."""
    if not attachment_names:
        return question
    listing = "Attached files: " + ", ".join(attachment_names)
    if not question:
        return listing
    return f"{question}\n\n{listing}"


class ConversationClient:
    """One chat session against the inference endpoint.

    Args:
        identity: Signed-in user, or None when signed out.
        state_store: Persists the last conversation id between sessions.
        device_key: Key for this user agent in ``state_store``.
        chat_id: Conversation id loaded at init (see :meth:`open`).
        notices: Receives transient user-facing notices.
        clipboard: Target for copy and share.
        http_client: Injected ``httpx.AsyncClient``; one is created when omitted.
    """

    def __init__(
        self,
        *,
        identity: Identity | None = None,
        state_store: SessionStateStore | None = None,
        device_key: str | None = None,
        chat_id: str | None = None,
        notices: NoticeSink | None = None,
        clipboard: Clipboard | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.identity = identity
        self.conversation = Conversation(conversation_id=chat_id)
        self._state_store = state_store
        self._device_key = device_key or settings.device_key
        self._notices = notices or LoggingNoticeSink()
        self._clipboard = clipboard or MemoryClipboard()
        self._http = http_client
        self._owns_http = http_client is None
        self._loading = False
        self._pending_files: list[Attachment] = []
        # user message id -> question as typed (without the attachment listing)
        self._questions: dict[str, str] = {}

    @classmethod
    async def open(
        cls,
        state_store: SessionStateStore,
        *,
        device_key: str | None = None,
        **kwargs: Any,
    ) -> ConversationClient:
        """Create a client, resuming the last conversation id for this device."""
        device = device_key or settings.device_key
        chat_id = await state_store.load_chat_id(device)
        if chat_id:
            logger.info("Resuming conversation %s", chat_id)
        return cls(state_store=state_store, device_key=device, chat_id=chat_id, **kwargs)

    async def __aenter__(self) -> ConversationClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        return self._http

    # -- State -----------------------------------------------------------------

    @property
    def chat_id(self) -> str | None:
        return self.conversation.conversation_id

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def messages(self) -> list[Message]:
        return self.conversation.messages

    @property
    def pending_files(self) -> list[Attachment]:
        return list(self._pending_files)

    def add_files(self, *files: Attachment) -> None:
        self._pending_files.extend(files)

    def remove_file(self, name: str) -> bool:
        """Drop the first pending file called *name*. Returns True if found."""
        for idx, f in enumerate(self._pending_files):
            if f.name == name:
                del self._pending_files[idx]
                return True
        return False

    def can_send(self, question: str = "", files: Sequence[Attachment] | None = None) -> bool:
        """Whether the send control should be enabled."""
        if self._loading or self.identity is None:
            return False
        pending = self._pending_files if files is None else files
        return bool(question.strip()) or bool(pending)

    async def new_conversation(self) -> None:
        """Start over: drop all turns and forget the saved conversation id."""
        self.conversation.clear()
        self._questions.clear()
        if self._state_store is not None:
            await self._state_store.clear_chat_id(self._device_key)

    # -- Submit ----------------------------------------------------------------

    async def submit(
        self,
        question: str = "",
        files: Sequence[Attachment] | None = None,
        *,
        regenerate_id: str | None = None,
    ) -> Message | None:
        """Send a question and stream the reply into an assistant message.

        *files* defaults to the pending upload list. Returns the assistant
        message, or None when there was nothing to send.

        Raises:
            AuthRequired: no signed-in identity; nothing is sent.
            SubmitInProgress: another submit is still streaming.
            ValueError: *regenerate_id* is not an assistant message here.
        """
        question = question.strip()
        uses_pending = files is None
        attachments = list(self._pending_files if uses_pending else files)

        if not question and not attachments:
            return None
        if self.identity is None:
            self._notices.notify(Notice(
                "Authentication Required",
                "Please sign in to chat with JURIST MIND",
                "destructive",
            ))
            msg = "Sign in to chat"
            raise AuthRequired(msg)
        if self._loading:
            msg = "A reply is still streaming"
            raise SubmitInProgress(msg)

        reply = self._prepare_turn(question, attachments, regenerate_id)
        self.conversation.open(reply.id)
        self._loading = True
        try:
            await self._stream(question, attachments, reply)
        except (TransportFailure, httpx.HTTPError) as exc:
            logger.warning("Streaming reply %s failed: %s", reply.id, exc)
            reply.append_text(STREAM_ERROR_TEXT)
            self._notices.notify(Notice(
                "Error", "We are coming soon. Please try again.", "destructive",
            ))
            return reply
        finally:
            self._loading = False
            self.conversation.close()

        if uses_pending:
            self._pending_files.clear()
        logger.info("Reply %s complete (%d chars)", reply.id, len(reply.text))
        return reply

    def _prepare_turn(
        self,
        question: str,
        attachments: list[Attachment],
        regenerate_id: str | None,
    ) -> Message:
        """Append the user turn and an empty reply, or reset a regenerated reply."""
        if regenerate_id is not None:
            reply = self.conversation.get(regenerate_id)
            if reply is None or not reply.is_assistant:
                msg = f"No assistant message {regenerate_id} to regenerate"
                raise ValueError(msg)
            reply.reset_for_regeneration()
            return reply

        names = [a.name for a in attachments]
        user_msg = self.conversation.append(Message(
            id=make_message_id(),
            role=Role.USER,
            text=format_user_text(question, names),
            attachment_names=names,
        ))
        self._questions[user_msg.id] = question
        return self.conversation.append(Message(id=make_message_id(), role=Role.ASSISTANT))

    def _build_parts(self, question: str, attachments: list[Attachment]) -> list[tuple]:
        # (None, value) parts are plain form fields; this keeps the body
        # multipart even when no files are attached.
        parts: list[tuple] = [("question", (None, question))]
        if self.chat_id:
            parts.append(("chat_id", (None, self.chat_id)))
        parts.append(("user_id", (None, self.identity.user_id)))
        for a in attachments:
            parts.append(("files", (a.name, a.content, a.content_type)))
        return parts

    async def _stream(self, question: str, attachments: list[Attachment], reply: Message) -> None:
        """Open the /ask stream and apply frames until a terminal one arrives."""
        parts = self._build_parts(question, attachments)
        logger.info(
            "Submitting question (%d chars, %d file(s)) chat_id=%s",
            len(question),
            len(attachments),
            self.chat_id,
        )
        async with self._client().stream("POST", settings.ask_url, files=parts) as resp:
            if resp.is_error:
                msg = f"HTTP {resp.status_code} from {settings.ask_url}"
                raise TransportFailure(msg)

            buffer = FrameBuffer()
            async for text in resp.aiter_text():
                for frame in buffer.feed(text):
                    if await self._apply_frame(frame, reply):
                        return
            for frame in buffer.flush():
                if await self._apply_frame(frame, reply):
                    return

    async def _apply_frame(self, frame: str, reply: Message) -> bool:
        """Apply one frame to *reply*. Returns True once the stream is finished."""
        try:
            events = classify_frame(frame)
        except MalformedFrame as exc:
            logger.warning("Skipping frame for reply %s: %s", reply.id, exc)
            return False

        for event in events:
            if isinstance(event, ContentChunk):
                reply.append_text(event.text)
            elif isinstance(event, SourcesReady):
                reply.set_sources(event.sources)
            elif isinstance(event, Done):
                if event.chat_id:
                    await self._remember_chat_id(event.chat_id)
                self._loading = False
                return True
            elif isinstance(event, Sentinel):
                return True
        return False

    async def _remember_chat_id(self, chat_id: str) -> None:
        if chat_id != self.conversation.conversation_id:
            logger.info("Conversation id assigned: %s", chat_id)
        self.conversation.conversation_id = chat_id
        if self._state_store is None:
            return
        try:
            await self._state_store.save_chat_id(self._device_key, chat_id)
        except Exception:
            logger.exception("Failed to persist conversation id %s", chat_id)

    # -- Post-reply actions ------------------------------------------------------

    async def regenerate(self, message_id: str) -> Message | None:
        """Re-ask the question that produced *message_id*, rewriting it in place.

        No-op unless *message_id* is an assistant turn directly preceded by a
        user turn. Attachments are not re-sent.
        """
        message = self.conversation.get(message_id)
        if message is None or not message.is_assistant:
            return None
        prompt = self.conversation.previous(message_id)
        if prompt is None or not prompt.is_user:
            return None
        question = self._questions.get(prompt.id, prompt.text)
        return await self.submit(question, (), regenerate_id=message_id)

    async def feedback(self, message_id: str, kind: str) -> bool:
        """Send a like/dislike for a reply. Returns True when recorded."""
        chat_id = self.chat_id
        if not chat_id:
            return False
        message = self.conversation.get(message_id)
        if message is None:
            return False
        state = Feedback.from_kind(kind)

        try:
            await self._post_feedback(chat_id, message_id, kind)
        except (FeedbackRejected, httpx.HTTPError) as exc:
            logger.warning("Feedback for %s failed: %s", message_id, exc)
            self._notices.notify(Notice("Error", "Failed to send feedback.", "destructive"))
            return False

        message.set_feedback(state)
        self._notices.notify(Notice("Feedback sent", f"Message {kind}d successfully."))
        return True

    async def _post_feedback(self, chat_id: str, message_id: str, kind: str) -> None:
        resp = await self._client().post(
            settings.feedback_url,
            json={"chat_id": chat_id, "message_id": message_id, "feedback_type": kind},
        )
        if not resp.is_success:
            msg = f"HTTP {resp.status_code} from {settings.feedback_url}"
            raise FeedbackRejected(msg)

    def share(self, message_id: str) -> str | None:
        """Copy the conversation's share URL. Returns the URL, or None."""
        if not self.chat_id:
            self._notices.notify(Notice(
                "No chat to share", "Start a conversation before sharing.", "warning",
            ))
            return None
        url = settings.share_url(self.chat_id)
        try:
            self._clipboard.write_text(url)
        except Exception:
            logger.exception("Share failed for message %s", message_id)
            self._notices.notify(Notice("Error", "Unable to copy share link.", "destructive"))
            return None
        self._notices.notify(Notice("Shared", "Chat URL copied to clipboard."))
        return url

    def copy(self, text: str) -> None:
        self._clipboard.write_text(text)
        self._notices.notify(Notice("Copied", "Message copied to clipboard."))
