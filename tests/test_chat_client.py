"""Tests for ConversationClient — streaming submit, regenerate, feedback, share."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from juristmind.chat.client import (
    STREAM_ERROR_TEXT,
    Attachment,
    ConversationClient,
    Identity,
    format_user_text,
)
from juristmind.chat.models import Feedback, Role, Source
from juristmind.chat.state import SessionStateStore
from juristmind.errors import AuthRequired, SubmitInProgress
from tests.conftest import RecordingNotices, sse

USER = Identity(user_id="user-42", email="ada@example.com")

REPLY_FRAMES = sse(
    {"content": "Consideration is "},
    {"content": "something of value "},
    {"content": "exchanged between parties."},
    {
        "type": "done",
        "chat_id": "chat-1",
        "chat_url": "https://chat.juristmind.com/chats/chat-1",
        "sources": [{"title": "Currie v Misa", "url": "https://law.test/currie"}],
    },
)
REPLY_TEXT = "Consideration is something of value exchanged between parties."


class FakeBackend:
    """MockTransport handler for /ask and /feedback."""

    def __init__(
        self,
        chunks: list[str] | None = None,
        *,
        status: int = 200,
        feedback_status: int = 200,
    ) -> None:
        self.chunks = chunks if chunks is not None else [REPLY_FRAMES]
        self.status = status
        self.feedback_status = feedback_status
        self.asks: list[httpx.Request] = []
        self.feedback: list[dict] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/feedback":
            self.feedback.append(json.loads(request.content))
            return httpx.Response(self.feedback_status, json={"ok": True})

        self.asks.append(request)
        chunks = list(self.chunks)

        async def body():
            for chunk in chunks:
                yield chunk.encode()

        return httpx.Response(
            self.status,
            headers={"content-type": "text/event-stream"},
            content=body(),
        )


def _client(
    backend: FakeBackend,
    notices: RecordingNotices,
    clipboard=None,
    *,
    identity: Identity | None = USER,
    **kwargs,
) -> ConversationClient:
    return ConversationClient(
        identity=identity,
        notices=notices,
        clipboard=clipboard,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
        **kwargs,
    )


def _split(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


# -- format_user_text ----------------------------------------------------------


def test_format_user_text_question_only() -> None:
    assert format_user_text("Hi", []) == "Hi"


def test_format_user_text_with_files() -> None:
    assert format_user_text("Review this", ["a.pdf", "b.docx"]) == (
        "Review this\n\nAttached files: a.pdf, b.docx"
    )


def test_format_user_text_files_only() -> None:
    assert format_user_text("", ["brief.pdf"]) == "Attached files: brief.pdf"


# -- submit --------------------------------------------------------------------


async def test_submit_streams_reply(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)

    reply = await client.submit("What is consideration in contract law?")

    assert [m.role for m in client.messages] == [Role.USER, Role.ASSISTANT]
    user_msg = client.messages[0]
    assert user_msg.text == "What is consideration in contract law?"
    assert reply is client.messages[1]
    assert reply.text == REPLY_TEXT
    assert reply.sources == [Source("Currie v Misa", "https://law.test/currie")]
    assert client.chat_id == "chat-1"
    assert client.loading is False
    assert client.conversation.open_message is None


async def test_sources_only_arrive_with_terminal_frame(notices: RecordingNotices) -> None:
    client: ConversationClient

    async def backend(request: httpx.Request) -> httpx.Response:
        async def body():
            yield sse({"content": "Part one. "}).encode()
            yield sse({"content": "Part two."}).encode()
            # Both content frames have been applied by now.
            reply = client.conversation.open_message
            assert reply.text == "Part one. Part two."
            assert reply.sources is None
            assert client.loading is True
            yield sse({"type": "done", "sources": [{"title": "T", "url": "U"}]}).encode()

        return httpx.Response(200, content=body())

    client = ConversationClient(
        identity=USER,
        notices=notices,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    reply = await client.submit("q")

    assert reply.sources == [Source("T", "U")]


@pytest.mark.parametrize("chunk_size", [1, 3, 7, 64])
async def test_chunk_boundaries_do_not_change_text(
    notices: RecordingNotices, chunk_size: int
) -> None:
    frames = sse({"content": "Stare "}, {"content": "decisis §1 "}, {"content": "applies."}, "[DONE]")
    whole = _client(FakeBackend([frames]), notices)
    split = _client(FakeBackend(_split(frames, chunk_size)), notices)

    a = await whole.submit("q")
    b = await split.submit("q")

    assert a.text == b.text == "Stare decisis §1 applies."


async def test_malformed_frame_is_skipped(notices: RecordingNotices) -> None:
    frames = (
        sse({"content": "Before "})
        + "data: {this is not json\n\n"
        + sse({"content": "after."}, {"type": "done"})
    )
    client = _client(FakeBackend([frames]), notices)

    reply = await client.submit("q")

    assert reply.text == "Before after."
    assert notices.notices == []


async def test_done_sentinel_stops_reading(notices: RecordingNotices) -> None:
    frames = sse({"content": "kept"}, "[DONE]", {"content": " ignored"})
    client = _client(FakeBackend([frames]), notices)

    reply = await client.submit("q")

    assert reply.text == "kept"


async def test_frames_after_done_are_ignored(notices: RecordingNotices) -> None:
    frames = sse({"content": "kept"}, {"type": "done"}, {"content": " ignored"})
    client = _client(FakeBackend([frames]), notices)

    reply = await client.submit("q")

    assert reply.text == "kept"


async def test_request_is_multipart_without_chat_id(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)

    await client.submit("Define tort")

    request = backend.asks[0]
    assert request.method == "POST"
    assert request.url.path == "/ask"
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.content
    assert b'name="question"' in body
    assert b"Define tort" in body
    assert b'name="user_id"' in body
    assert b"user-42" in body
    assert b'name="chat_id"' not in body
    assert b'name="files"' not in body


async def test_second_submit_sends_chat_id(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)

    await client.submit("first")
    await client.submit("second")

    assert b'name="chat_id"' not in backend.asks[0].content
    assert b'name="chat_id"' in backend.asks[1].content
    assert b"chat-1" in backend.asks[1].content
    assert len(client.messages) == 4


async def test_submit_files_only(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)
    client.add_files(Attachment("brief.pdf", b"%PDF-1.4", "application/pdf"))

    await client.submit("")

    user_msg = client.messages[0]
    assert user_msg.text == "Attached files: brief.pdf"
    assert user_msg.attachment_names == ["brief.pdf"]
    body = backend.asks[0].content
    assert b'filename="brief.pdf"' in body
    assert b"%PDF-1.4" in body
    # Cleared after a successful stream
    assert client.pending_files == []


async def test_empty_submit_is_noop(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)

    assert await client.submit("   ") is None
    assert client.messages == []
    assert backend.asks == []


async def test_unauthenticated_submit_raises(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices, identity=None)

    with pytest.raises(AuthRequired):
        await client.submit("hello")

    assert backend.asks == []
    assert client.messages == []
    assert notices.notices[0].title == "Authentication Required"
    assert notices.notices[0].variant == "destructive"


async def test_http_error_appends_error_text(notices: RecordingNotices) -> None:
    backend = FakeBackend(status=502)
    client = _client(backend, notices)
    client.add_files(Attachment("a.pdf", b"x"))

    reply = await client.submit("q")

    assert reply.text == STREAM_ERROR_TEXT
    assert client.loading is False
    assert notices.titles == ["Error"]
    # File selection survives for a retry
    assert [f.name for f in client.pending_files] == ["a.pdf"]
    assert len(client.messages) == 2


async def test_network_error_appends_error_text(notices: RecordingNotices) -> None:
    def backend(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ConversationClient(
        identity=USER,
        notices=notices,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )

    reply = await client.submit("q")

    assert reply.text.endswith(STREAM_ERROR_TEXT)
    assert client.loading is False
    assert client.chat_id is None


async def test_concurrent_submit_rejected(notices: RecordingNotices) -> None:
    release = asyncio.Event()
    started = asyncio.Event()

    async def backend(request: httpx.Request) -> httpx.Response:
        async def body():
            yield sse({"content": "slow"}).encode()
            started.set()
            await release.wait()
            yield sse({"type": "done"}).encode()

        return httpx.Response(200, content=body())

    client = ConversationClient(
        identity=USER,
        notices=notices,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    task = asyncio.create_task(client.submit("first"))
    await started.wait()

    assert client.can_send("second") is False
    with pytest.raises(SubmitInProgress):
        await client.submit("second")

    release.set()
    reply = await task
    assert reply.text == "slow"
    assert len(client.messages) == 2
    assert client.can_send("second") is True


def test_can_send(notices: RecordingNotices) -> None:
    client = _client(FakeBackend(), notices)
    assert client.can_send("") is False
    assert client.can_send("hi") is True
    client.add_files(Attachment("x.txt", b"x"))
    assert client.can_send("") is True

    signed_out = _client(FakeBackend(), notices, identity=None)
    assert signed_out.can_send("hi") is False


def test_remove_file(notices: RecordingNotices) -> None:
    client = _client(FakeBackend(), notices)
    client.add_files(Attachment("a.pdf", b"1"), Attachment("b.pdf", b"2"))

    assert client.remove_file("a.pdf") is True
    assert client.remove_file("missing.pdf") is False
    assert [f.name for f in client.pending_files] == ["b.pdf"]


def test_attachment_from_path(tmp_path: Path) -> None:
    path = tmp_path / "brief.pdf"
    path.write_bytes(b"%PDF")

    att = Attachment.from_path(path)

    assert att.name == "brief.pdf"
    assert att.content == b"%PDF"
    assert att.content_type == "application/pdf"


# -- regenerate ----------------------------------------------------------------


async def test_regenerate_rewrites_in_place(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)
    client.add_files(Attachment("brief.pdf", b"%PDF"))
    reply = await client.submit("Summarise the brief")
    reply_id = reply.id

    backend.chunks = [sse({"content": "A fresh answer."}, {"type": "done", "chat_id": "chat-1"})]
    regenerated = await client.regenerate(reply_id)

    assert regenerated is reply
    assert len(client.messages) == 2
    assert [m.id for m in client.messages].count(reply_id) == 1
    assert reply.text == "A fresh answer."
    assert reply.sources is None

    body = backend.asks[1].content
    assert b"Summarise the brief" in body
    assert b"Attached files" not in body
    assert b'name="files"' not in body
    assert b"chat-1" in body


async def test_regenerate_user_message_is_noop(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)
    await client.submit("q")

    assert await client.regenerate(client.messages[0].id) is None
    assert await client.regenerate("unknown") is None
    assert len(backend.asks) == 1


async def test_regenerate_without_preceding_user_turn_is_noop(notices: RecordingNotices) -> None:
    from juristmind.chat.models import Message

    backend = FakeBackend()
    client = _client(backend, notices)
    client.conversation.append(Message(id="orphan", role=Role.ASSISTANT, text="hi"))

    assert await client.regenerate("orphan") is None
    assert backend.asks == []


async def test_submit_with_unknown_regenerate_id_raises(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)
    await client.submit("q")

    with pytest.raises(ValueError, match="unknown"):
        await client.submit("q", (), regenerate_id="unknown")

    assert client.loading is False
    assert client.conversation.open_message is None
    assert len(client.messages) == 2
    assert len(backend.asks) == 1


# -- feedback ------------------------------------------------------------------


async def test_feedback_like_then_dislike(notices: RecordingNotices) -> None:
    backend = FakeBackend()
    client = _client(backend, notices)
    reply = await client.submit("q")

    assert await client.feedback(reply.id, "like") is True
    assert reply.liked is True

    assert await client.feedback(reply.id, "dislike") is True
    assert reply.disliked is True
    assert reply.liked is False

    assert backend.feedback == [
        {"chat_id": "chat-1", "message_id": reply.id, "feedback_type": "like"},
        {"chat_id": "chat-1", "message_id": reply.id, "feedback_type": "dislike"},
    ]
    assert "Feedback sent" in notices.titles


async def test_feedback_without_chat_id_is_noop(notices: RecordingNotices) -> None:
    frames = sse({"content": "answer"}, {"type": "done"})
    backend = FakeBackend([frames])
    client = _client(backend, notices)
    reply = await client.submit("q")

    assert await client.feedback(reply.id, "like") is False
    assert backend.feedback == []
    assert reply.feedback is Feedback.NONE


async def test_feedback_rejected_leaves_state(notices: RecordingNotices) -> None:
    backend = FakeBackend(feedback_status=500)
    client = _client(backend, notices)
    reply = await client.submit("q")

    assert await client.feedback(reply.id, "like") is False
    assert reply.feedback is Feedback.NONE
    assert notices.notices[-1].variant == "destructive"


# -- share / copy --------------------------------------------------------------


async def test_share_copies_chat_url(notices: RecordingNotices, clipboard) -> None:
    client = _client(FakeBackend(), notices, clipboard)
    reply = await client.submit("q")

    url = client.share(reply.id)

    assert url == "https://chat.juristmind.com/chats/chat-1"
    assert clipboard.text == url
    assert notices.titles[-1] == "Shared"


def test_share_without_chat_id(notices: RecordingNotices, clipboard) -> None:
    client = _client(FakeBackend(), notices, clipboard)

    assert client.share("whatever") is None
    assert clipboard.text is None
    assert notices.notices[-1].variant == "warning"


def test_copy(notices: RecordingNotices, clipboard) -> None:
    client = _client(FakeBackend(), notices, clipboard)

    client.copy("Some answer")

    assert clipboard.text == "Some answer"
    assert notices.titles == ["Copied"]


# -- Session state -------------------------------------------------------------


async def test_chat_id_saved_and_resumed(tmp_path: Path, notices: RecordingNotices) -> None:
    store = SessionStateStore(db_path=tmp_path / "test.db")
    backend = FakeBackend()

    first = _client(backend, notices, state_store=store, device_key="laptop")
    await first.submit("q")
    assert await store.load_chat_id("laptop") == "chat-1"

    resumed = await ConversationClient.open(
        store,
        device_key="laptop",
        identity=USER,
        notices=notices,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    assert resumed.chat_id == "chat-1"
    await resumed.submit("follow-up")
    assert b"chat-1" in backend.asks[-1].content


async def test_new_conversation_forgets_chat_id(tmp_path: Path, notices: RecordingNotices) -> None:
    store = SessionStateStore(db_path=tmp_path / "test.db")
    client = _client(FakeBackend(), notices, state_store=store, device_key="laptop")
    await client.submit("q")

    await client.new_conversation()

    assert client.messages == []
    assert client.chat_id is None
    assert await store.load_chat_id("laptop") is None


async def test_failed_chat_id_save_keeps_reply(notices: RecordingNotices) -> None:
    store = AsyncMock()
    store.save_chat_id.side_effect = OSError("database is locked")
    client = _client(FakeBackend(), notices, state_store=store, device_key="laptop")
    client.add_files(Attachment("brief.pdf", b"%PDF"))

    reply = await client.submit("q")

    assert reply.text == REPLY_TEXT
    assert client.chat_id == "chat-1"
    assert client.loading is False
    assert client.pending_files == []
    assert notices.titles == []
    store.save_chat_id.assert_awaited_once_with("laptop", "chat-1")
