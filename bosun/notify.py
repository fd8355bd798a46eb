"""Notification data types, content hashing and the notifier interface."""

from __future__ import annotations

import abc
import contextlib
import dataclasses
import hashlib
import json
from contextvars import ContextVar
from typing import Any, Callable, Iterator


class NotifyError(Exception):
    """Raised when a notification operation fails."""


@dataclasses.dataclass
class CardButton:
    """A link button; style is "primary", "danger" or empty."""

    text: str = ""
    url: str = ""
    style: str = ""


@dataclasses.dataclass
class TableCell:
    """A table cell with optional subtitle, emoji, link and formatting."""

    text: str = ""
    subtitle: str = ""
    emoji: str = ""
    url: str = ""
    bold: bool = False
    italic: bool = False


@dataclasses.dataclass
class TableRow:
    """A row in an info table."""

    cells: list[TableCell] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Field:
    """A key/value pair rendered in a two-column layout."""

    key: str = ""
    value: str = ""


@dataclasses.dataclass
class Section:
    """A card block in a notification."""

    text: str = ""
    subtitle: str = ""
    body: str = ""
    icon_url: str = ""
    buttons: list[CardButton] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Content:
    """Rendered notification content: plain text or block fields."""

    text: str = ""
    header: str = ""
    body: str = ""
    actions: list[CardButton] = dataclasses.field(default_factory=list)
    table: list[TableRow] = dataclasses.field(default_factory=list)
    fields: list[Field] = dataclasses.field(default_factory=list)
    sections: list[Section] = dataclasses.field(default_factory=list)
    context: str = ""

    def has_blocks(self) -> bool:
        """Return True if any block-level field is set."""
        return bool(
            self.header
            or self.body
            or self.actions
            or self.table
            or self.fields
            or self.sections
            or self.context
        )


@dataclasses.dataclass
class Item:
    """A per-repository line item in a notification."""

    label: str = ""
    url: str = ""
    detail: str = ""
    body: str = ""
    branch_url: str = ""


@dataclasses.dataclass
class Message:
    """A notification to be sent to a channel."""

    channel: str = ""
    issue_key: str = ""
    title: str = ""
    issue_url: str = ""
    items: list[Item] = dataclasses.field(default_factory=list)
    content: Content = dataclasses.field(default_factory=Content)


@dataclasses.dataclass
class ThreadRef:
    """Identifies an existing notification thread."""

    channel: str = ""
    timestamp: str = ""
    content_hash: str = ""


class Notifier(abc.ABC):
    """Notification operations. Usable as a context manager that closes."""

    @abc.abstractmethod
    def auth_test(self) -> str:
        """Verify credentials and return the authenticated user name."""

    @abc.abstractmethod
    def notify(self, msg: Message) -> ThreadRef:
        """Send a message to a channel and return a reference to it."""

    @abc.abstractmethod
    def find_thread(self, channel: str, issue_key: str) -> ThreadRef:
        """Find a notification for the issue; an empty ThreadRef if none."""

    @abc.abstractmethod
    def reply_to_thread(self, ref: ThreadRef, msg: Message) -> None:
        """Reply to an existing notification thread."""

    @abc.abstractmethod
    def close(self) -> None:
        """Persist any cached state."""

    def __enter__(self) -> "Notifier":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _list_or_null(items: list, convert: Callable[[Any], Any]) -> list | None:
    return [convert(item) for item in items] if items else None


def _button(b: CardButton) -> dict:
    return {"Text": b.text, "URL": b.url, "Style": b.style}


def _cell(c: TableCell) -> dict:
    return {
        "Text": c.text,
        "Subtitle": c.subtitle,
        "Emoji": c.emoji,
        "URL": c.url,
        "Bold": c.bold,
        "Italic": c.italic,
    }


def _row(r: TableRow) -> dict:
    return {"Cells": _list_or_null(r.cells, _cell)}


def _field(f: Field) -> dict:
    return {"Key": f.key, "Value": f.value}


def _section(s: Section) -> dict:
    return {
        "Text": s.text,
        "Subtitle": s.subtitle,
        "Body": s.body,
        "IconURL": s.icon_url,
        "Buttons": _list_or_null(s.buttons, _button),
    }


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _encode(value: Any) -> bytes:
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text).encode("utf-8")


def content_hash(content: Content) -> str:
    """Return a short hash of the content for change detection."""
    doc = {
        "Text": content.text,
        "Header": content.header,
        "Body": content.body,
        "Actions": _list_or_null(content.actions, _button),
        "Table": _list_or_null(content.table, _row),
        "Fields": _list_or_null(content.fields, _field),
        "Sections": _list_or_null(content.sections, _section),
        "Context": content.context,
    }
    return hashlib.sha256(_encode(doc)).digest()[:8].hex()


_NO_CACHE: ContextVar[bool] = ContextVar("bosun_no_cache", default=False)


@contextlib.contextmanager
def no_cache() -> Iterator[None]:
    """Within this block, notifiers bypass cached results."""
    reset_handle = _NO_CACHE.set(True)
    try:
        yield
    finally:
        _NO_CACHE.reset(reset_handle)


def is_no_cache() -> bool:
    """Report whether a cache bypass is in effect."""
    return _NO_CACHE.get()