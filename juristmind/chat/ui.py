"""User-facing side effects of the chat client: transient notices and the clipboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """A transient message shown to the user (toast)."""

    title: str
    description: str = ""
    variant: str = "default"  # "default", "destructive" or "warning"


@runtime_checkable
class NoticeSink(Protocol):
    """Anything that can display a notice."""

    def notify(self, notice: Notice) -> None:
        ...


@runtime_checkable
class Clipboard(Protocol):
    def write_text(self, text: str) -> None:
        ...


class LoggingNoticeSink:
    """Headless sink: notices go to the log."""

    def notify(self, notice: Notice) -> None:
        level = logging.WARNING if notice.variant != "default" else logging.INFO
        logger.log(level, "Notice [%s] %s: %s", notice.variant, notice.title, notice.description)


class MemoryClipboard:
    """Keeps the last written text in memory."""

    def __init__(self) -> None:
        self.text: str | None = None

    def write_text(self, text: str) -> None:
        self.text = text
