"""Server-sent-event framing and payload classification for the /ask stream.

The inference endpoint emits blank-line-delimited frames. Data frames carry a
JSON object with any of ``content`` (text to append), ``type == "done"``
(terminal), ``chat_id``, ``chat_url`` and ``sources``. A literal
``data: [DONE]`` frame also ends the stream.

Transport parsing lives here so the client only ever sees typed events.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from juristmind.chat.models import Source
from juristmind.errors import MalformedFrame

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

_FRAME_SEPARATOR = re.compile(r"\r?\n\r?\n")


@dataclass(frozen=True)
class ContentChunk:
    text: str


@dataclass(frozen=True)
class SourcesReady:
    sources: list[Source] = field(default_factory=list)


@dataclass(frozen=True)
class Done:
    chat_id: str | None = None
    chat_url: str | None = None


@dataclass(frozen=True)
class Sentinel:
    """The literal ``[DONE]`` frame."""


StreamEvent = ContentChunk | SourcesReady | Done | Sentinel


class FrameBuffer:
    """Reassembles frames from arbitrarily split chunks of decoded text."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> list[str]:
        """Add *text* and return every frame completed by it."""
        self._pending += text
        parts = _FRAME_SEPARATOR.split(self._pending)
        self._pending = parts.pop()
        return [p for p in parts if p.strip()]

    def flush(self) -> list[str]:
        """Return the trailing frame, if the stream ended without a separator."""
        rest, self._pending = self._pending, ""
        return [rest] if rest.strip() else []


def _data_payload(frame: str) -> str | None:
    """Join the ``data:`` lines of a frame, or None if it has none."""
    lines = [
        line[len(DATA_PREFIX):].strip()
        for line in frame.splitlines()
        if line.startswith(DATA_PREFIX)
    ]
    if not lines:
        return None
    return "\n".join(lines)


def classify_frame(frame: str) -> list[StreamEvent]:
    """Turn one frame into zero or more typed events.

    Raises:
        MalformedFrame: the data payload is not a JSON object.
    """
    payload = _data_payload(frame)
    if payload is None:
        return []
    if payload == DONE_SENTINEL:
        return [Sentinel()]

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedFrame(frame, f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedFrame(frame, "payload is not an object")

    events: list[StreamEvent] = []
    content = data.get("content")
    if content:
        events.append(ContentChunk(text=str(content)))

    if data.get("type") == "done":
        raw_sources = data.get("sources")
        if isinstance(raw_sources, list):
            events.append(SourcesReady(
                sources=[Source.from_dict(s) for s in raw_sources if isinstance(s, dict)],
            ))
        events.append(Done(chat_id=data.get("chat_id") or None, chat_url=data.get("chat_url") or None))

    return events
