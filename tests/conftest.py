"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Any

import pytest

from juristmind.chat.ui import MemoryClipboard, Notice


class RecordingNotices:
    """NoticeSink that keeps every notice for assertions."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notices]


def sse(*payloads: Any) -> str:
    """Encode payloads as server-sent-event data frames."""
    frames = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p)
        frames.append(f"data: {data}\n\n")
    return "".join(frames)


@pytest.fixture
def notices() -> RecordingNotices:
    return RecordingNotices()


@pytest.fixture
def clipboard() -> MemoryClipboard:
    return MemoryClipboard()
