"""Notifier backed by the Slack Web API, with a small on-disk lookup cache."""

from __future__ import annotations

import dataclasses
import json
import os
import re
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import requests

from bosun.notify import (
    CardButton,
    Content,
    Message,
    Notifier,
    NotifyError,
    Section,
    TableCell,
    TableRow,
    ThreadRef,
    content_hash,
    is_no_cache,
)

DEFAULT_API_URL = "https://slack.com/api/"
CACHE_TTL = timedelta(minutes=5)
METADATA_EVENT_TYPE = "bosun_notification"
CARD_BODY_LIMIT = 200


class SlackError(NotifyError):
    """Raised when a Slack API call fails."""


# --- Persistent cache -------------------------------------------------------


@dataclasses.dataclass
class ApiCache:
    """Channel-name and thread lookups remembered between calls."""

    channels: dict[str, str] = dataclasses.field(default_factory=dict)
    threads: dict[str, ThreadRef] = dataclasses.field(default_factory=dict)


_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    match = _TIMESTAMP.match(value)
    if not match:
        return None
    base, fraction, zone = match.groups()
    micros = (fraction or "").ljust(6, "0")[:6]
    offset = "+00:00" if zone == "Z" else zone
    try:
        return datetime.fromisoformat(f"{base}.{micros}{offset}")
    except ValueError:
        return None


def _format_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _ref_to_json(ref: ThreadRef) -> dict:
    return {"Channel": ref.channel, "Timestamp": ref.timestamp, "ContentHash": ref.content_hash}


def _ref_from_json(data: Any) -> ThreadRef:
    if not isinstance(data, dict):
        return ThreadRef()
    return ThreadRef(
        channel=str(data.get("Channel") or ""),
        timestamp=str(data.get("Timestamp") or ""),
        content_hash=str(data.get("ContentHash") or ""),
    )


def _read_entries(path: Path) -> dict[str, dict[str, tuple[Any, datetime]]]:
    """Read the raw cache file; missing or malformed content yields empty maps."""
    entries: dict[str, dict[str, tuple[Any, datetime]]] = {"channels": {}, "threads": {}}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return entries
    if not isinstance(data, dict):
        return entries
    for section in ("channels", "threads"):
        raw = data.get(section)
        if not isinstance(raw, dict):
            continue
        for key, entry in raw.items():
            if not isinstance(entry, dict):
                continue
            expires = _parse_time(entry.get("expires"))
            if expires is None:
                continue
            entries[section][key] = (entry.get("value"), expires)
    return entries


def load_cache(path: str | os.PathLike | None) -> ApiCache:
    """Load unexpired cache entries from path; an empty cache on any problem."""
    cache = ApiCache()
    if not path:
        return cache
    now = datetime.now(timezone.utc)
    entries = _read_entries(Path(path))
    for key, (value, expires) in entries["channels"].items():
        if now < expires and isinstance(value, str):
            cache.channels[key] = value
    for key, (value, expires) in entries["threads"].items():
        if now < expires:
            cache.threads[key] = _ref_from_json(value)
    return cache


def save_cache(cache: ApiCache, path: str | os.PathLike | None) -> None:
    """Merge the cache into the file at path, pruning expired entries."""
    if not path:
        return
    target = Path(path)
    now = datetime.now(timezone.utc)
    expires = now + CACHE_TTL
    entries = _read_entries(target)

    channels = {
        key: {"value": value, "expires": _format_time(exp)}
        for key, (value, exp) in entries["channels"].items()
        if not now > exp
    }
    threads = {
        key: {"value": value, "expires": _format_time(exp)}
        for key, (value, exp) in entries["threads"].items()
        if not now > exp
    }
    for key, channel_id in cache.channels.items():
        channels[key] = {"value": channel_id, "expires": _format_time(expires)}
    for key, ref in cache.threads.items():
        threads[key] = {"value": _ref_to_json(ref), "expires": _format_time(expires)}

    document: dict[str, Any] = {}
    if channels:
        document["channels"] = channels
    if threads:
        document["threads"] = threads
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(document), encoding="utf-8")
    except OSError:
        pass


# --- Block building ---------------------------------------------------------


def truncate(s: str, max_len: int) -> str:
    """Shorten s to max_len UTF-8 bytes, ending in an ellipsis if cut."""
    encoded = s.encode("utf-8")
    if len(encoded) <= max_len:
        return s
    return encoded[: max_len - 1].decode("utf-8", errors="replace") + "…"


def _text_object(kind: str, text: str, emoji: bool = False) -> dict:
    obj: dict[str, Any] = {"type": kind, "text": text}
    if emoji:
        obj["emoji"] = True
    return obj


def card_block(section: Section, id_prefix: str) -> dict:
    """Build a "card" block for a notification section."""
    card: dict[str, Any] = {
        "type": "card",
        "title": {"type": "mrkdwn", "text": section.text, "verbatim": False},
    }
    if section.icon_url:
        card["icon"] = {"type": "image", "image_url": section.icon_url, "alt_text": "Icon"}
    if section.subtitle:
        card["subtitle"] = {"type": "mrkdwn", "text": section.subtitle, "verbatim": False}
    if section.body:
        card["body"] = {
            "type": "mrkdwn",
            "text": truncate(section.body, CARD_BODY_LIMIT),
            "verbatim": False,
        }
    if section.buttons:
        actions = []
        for i, button in enumerate(section.buttons):
            action: dict[str, Any] = {
                "type": "button",
                "text": {"type": "plain_text", "text": button.text, "emoji": True},
                "url": button.url,
                "action_id": f"{id_prefix}_{i}",
            }
            if button.style:
                action["style"] = button.style
            actions.append(action)
        card["actions"] = actions
    return card


def _styled(element: dict, cell: TableCell) -> dict:
    if cell.bold or cell.italic:
        style: dict[str, bool] = {}
        if cell.bold:
            style["bold"] = True
        if cell.italic:
            style["italic"] = True
        element["style"] = style
    return element


def _rich_text(elements: list[dict]) -> dict:
    return {
        "type": "rich_text",
        "elements": [{"type": "rich_text_section", "elements": elements}],
    }


def build_table_cell(cell: TableCell) -> dict:
    """Convert a table cell to a rich_text cell."""
    if cell.emoji and not cell.text:
        return _rich_text([{"type": "emoji", "name": cell.emoji}])
    if not cell.text and not cell.emoji:
        return _rich_text([{"type": "text", "text": " "}])

    elements: list[dict] = []
    if cell.emoji:
        elements.append({"type": "emoji", "name": cell.emoji})
        elements.append({"type": "text", "text": " "})
    if cell.url:
        elements.append(_styled({"type": "link", "url": cell.url, "text": cell.text}, cell))
    else:
        elements.append(_styled({"type": "text", "text": cell.text}, cell))
    if cell.subtitle:
        elements.append({"type": "text", "text": "\n"})
        elements.append({"type": "text", "text": cell.subtitle})
    return _rich_text(elements)


def table_block(rows: list[TableRow]) -> dict:
    """Build a "table" block; each row is an array of cells."""
    return {
        "type": "table",
        "rows": [[build_table_cell(cell) for cell in row.cells] for row in rows],
    }


def _action_block(index: int, button: CardButton) -> dict:
    element: dict[str, Any] = {
        "type": "button",
        "action_id": f"action_{index}",
        "text": _text_object("plain_text", button.text, emoji=True),
    }
    if button.url:
        element["url"] = button.url
    if button.style:
        element["style"] = button.style
    return {"type": "actions", "elements": [element]}


def build_message_payload(content: Content) -> dict:
    """Build the text and blocks of a message from notification content.

    Content without block fields becomes plain mrkdwn text; otherwise the
    result carries Block Kit blocks plus fallback text.
    """
    if not content.has_blocks():
        return {"text": content.text}

    blocks: list[dict] = []
    if content.header:
        blocks.append({"type": "header", "text": _text_object("plain_text", content.header)})
    if content.body:
        blocks.append({"type": "section", "text": _text_object("mrkdwn", content.body)})
    blocks.extend(_action_block(i, button) for i, button in enumerate(content.actions))
    if content.table:
        blocks.append(table_block(content.table))
    if content.fields:
        fields = []
        for f in content.fields:
            fields.append(_text_object("mrkdwn", f.key))
            fields.append(_text_object("mrkdwn", f.value))
        blocks.append({"type": "section", "fields": fields})
    if content.sections and (content.header or content.body or content.fields):
        blocks.append({"type": "divider"})
    blocks.extend(card_block(s, f"view_{i}") for i, s in enumerate(content.sections))
    if content.context:
        blocks.append(
            {"type": "context", "elements": [_text_object("mrkdwn", content.context)]}
        )

    fallback = content.header
    if content.body:
        fallback = content.header + " — " + content.body
    for f in content.fields:
        fallback += "\n" + f.key + ": " + f.value
    for s in content.sections:
        fallback += "\n" + s.text

    return {"blocks": blocks, "text": fallback}


def _form_payload(payload: dict) -> dict[str, str]:
    form = {"text": payload.get("text", "")}
    if "blocks" in payload:
        form["blocks"] = json.dumps(payload["blocks"])
    return form


def _metadata(issue_key: str) -> str:
    return json.dumps(
        {"event_type": METADATA_EVENT_TYPE, "event_payload": {"issue_key": issue_key}}
    )


# --- Adapter ----------------------------------------------------------------


class SlackAdapter(Notifier):
    """Notifier implementation using the Slack Web API.

    A non-empty cookie is sent as the ``d`` cookie on every request, as
    needed by tokens taken from the desktop client. When cache_path is
    set, lookups are loaded from and persisted to that file.
    """

    def __init__(
        self,
        token: str,
        *,
        cookie: str = "",
        api_url: str = DEFAULT_API_URL,
        cache_path: str | os.PathLike | None = None,
        retries: int = 3,
        session: requests.Session | None = None,
    ) -> None:
        self._token = token
        self._cookie = cookie
        self._api_url = api_url if api_url.endswith("/") else api_url + "/"
        self._cache_path = cache_path
        self._retries = max(0, retries)
        self._session = session if session is not None else requests.Session()
        self.cache = load_cache(cache_path)

    def _call(self, method: str, data: dict[str, Any]) -> dict:
        headers = {"Authorization": f"Bearer {self._token}"}
        if self._cookie:
            headers["Cookie"] = "d=" + self._cookie
        url = self._api_url + method
        attempt = 0
        while True:
            try:
                resp = self._session.post(url, data=data, headers=headers)
            except requests.RequestException as exc:
                raise SlackError(str(exc)) from exc
            if resp.status_code == 429 and attempt < self._retries:
                attempt += 1
                try:
                    delay = float(resp.headers.get("Retry-After", "1"))
                except ValueError:
                    delay = 1.0
                time.sleep(delay)
                continue
            break
        if resp.status_code != 200:
            raise SlackError(f"slack server error: {resp.status_code} {resp.reason}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise SlackError(f"invalid response: {exc}") from exc
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else None
            raise SlackError(str(error or "unknown_error"))
        return body

    def close(self) -> None:
        save_cache(self.cache, self._cache_path)

    def auth_test(self) -> str:
        try:
            body = self._call("auth.test", {})
        except SlackError as exc:
            raise SlackError(f"auth test: {exc}") from exc
        return str(body.get("user") or "")

    def notify(self, msg: Message) -> ThreadRef:
        channel_id = self._resolve_channel_id(msg.channel)
        digest = content_hash(msg.content)
        form = _form_payload(build_message_payload(msg.content))
        form["metadata"] = _metadata(msg.issue_key)
        cache_key = f"{channel_id}:{msg.issue_key}"

        if msg.issue_key:
            try:
                existing = self._find_thread_in_channel(channel_id, msg.issue_key)
            except SlackError:
                existing = ThreadRef()
            if existing.timestamp:
                if existing.content_hash == digest:
                    return existing
                try:
                    self._call(
                        "chat.update",
                        {**form, "channel": channel_id, "ts": existing.timestamp},
                    )
                except SlackError as exc:
                    if "message_not_found" not in str(exc):
                        raise SlackError(f"updating message: {exc}") from exc
                    self.cache.threads.pop(cache_key, None)
                else:
                    updated = dataclasses.replace(existing, content_hash=digest)
                    self.cache.threads[cache_key] = updated
                    return updated

        try:
            body = self._call("chat.postMessage", {**form, "channel": channel_id})
        except SlackError as exc:
            raise SlackError(f"posting message: {exc}") from exc

        ref = ThreadRef(channel=channel_id, timestamp=str(body.get("ts") or ""), content_hash=digest)
        if msg.issue_key:
            self.cache.threads[cache_key] = ref
        return ref

    def find_thread(self, channel: str, issue_key: str) -> ThreadRef:
        channel_id = self._resolve_channel_id(channel)
        return self._find_thread_in_channel(channel_id, issue_key)

    def _find_thread_in_channel(self, channel_id: str, issue_key: str) -> ThreadRef:
        cache_key = f"{channel_id}:{issue_key}"
        if not is_no_cache() and cache_key in self.cache.threads:
            return self.cache.threads[cache_key]

        try:
            body = self._call(
                "conversations.history",
                {"channel": channel_id, "limit": 200, "include_all_metadata": "true"},
            )
        except SlackError as exc:
            raise SlackError(f"fetching channel history: {exc}") from exc

        messages = [m for m in body.get("messages") or [] if isinstance(m, dict)]
        result = self._match_metadata(messages, channel_id, issue_key)
        if not result.timestamp:
            result = self._match_text(messages, channel_id, issue_key)

        self.cache.threads[cache_key] = result
        return result

    @staticmethod
    def _match_metadata(messages: list[dict], channel_id: str, issue_key: str) -> ThreadRef:
        for message in messages:
            metadata = message.get("metadata")
            if not isinstance(metadata, dict) or metadata.get("event_type") != METADATA_EVENT_TYPE:
                continue
            payload = metadata.get("event_payload")
            if not isinstance(payload, dict):
                continue
            key = payload.get("issue_key")
            if isinstance(key, str) and key == issue_key:
                digest = payload.get("content_hash")
                return ThreadRef(
                    channel=channel_id,
                    timestamp=str(message.get("ts") or ""),
                    content_hash=digest if isinstance(digest, str) else "",
                )
        return ThreadRef()

    @staticmethod
    def _match_text(messages: list[dict], channel_id: str, issue_key: str) -> ThreadRef:
        for message in messages:
            found = issue_key in str(message.get("text") or "")
            if not found:
                for block in message.get("blocks") or []:
                    if not isinstance(block, dict) or block.get("type") not in ("section", "header"):
                        continue
                    text = block.get("text")
                    if isinstance(text, dict) and issue_key in str(text.get("text") or ""):
                        found = True
                        break
            if found:
                return ThreadRef(channel=channel_id, timestamp=str(message.get("ts") or ""))
        return ThreadRef()

    def reply_to_thread(self, ref: ThreadRef, msg: Message) -> None:
        form = _form_payload(build_message_payload(msg.content))
        form["thread_ts"] = ref.timestamp
        form["channel"] = ref.channel
        try:
            self._call("chat.postMessage", form)
        except SlackError as exc:
            raise SlackError(f"replying to thread: {exc}") from exc

    def _resolve_channel_id(self, name: str) -> str:
        """Resolve "@U..." user IDs and "#name"/"name" channel names to an ID."""
        if name.startswith("@"):
            return name[1:]
        name = name.removeprefix("#")

        if not is_no_cache() and name in self.cache.channels:
            return self.cache.channels[name]

        cursor = ""
        while True:
            params: dict[str, Any] = {
                "limit": 200,
                "exclude_archived": "true",
                "types": "public_channel,private_channel",
            }
            if cursor:
                params["cursor"] = cursor
            try:
                body = self._call("conversations.list", params)
            except SlackError as exc:
                raise SlackError(f"listing channels: {exc}") from exc

            for channel in body.get("channels") or []:
                if isinstance(channel, dict) and channel.get("name") == name:
                    channel_id = str(channel.get("id") or "")
                    self.cache.channels[name] = channel_id
                    return channel_id

            metadata = body.get("response_metadata")
            cursor = str(metadata.get("next_cursor") or "") if isinstance(metadata, dict) else ""
            if not cursor:
                break

        raise SlackError(f"channel {json.dumps(name, ensure_ascii=False)} not found")