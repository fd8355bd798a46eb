"""Timeline cards: a state glyph in the left gutter, content to its right."""

from __future__ import annotations

import enum
import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Iterator

from wcwidth import wcwidth

APP_VERSION = "dev"
"""Version shown in the upper-right corner of root cards."""

BREADCRUMB_PREFIX = ""
"""Optional glyph before the breadcrumb on the root card closing line."""

BREADCRUMB_POSTFIX = ""
"""Optional glyph after the breadcrumb on the root card closing line."""

LOGO: tuple[str, ...] = ()
"""Art lines drawn inside the root card box."""

TIMELINE_CONN_WIDTH = 5
_MIN_WRAP_WIDTH = 20
_MIN_BOX_INNER = 10
_BREAKPOINTS = " ,.-"

_CONNECTOR = "│"
_GLYPH_PENDING = "◦"
_GLYPH_SUCCESS = "✓"
_GLYPH_SKIPPED = "!"
_GLYPH_FAILED = "✗"
_GLYPH_INFO = "●"
_GLYPH_INPUT = "?"
_GLYPH_ROOT = "╭"
_DOT = "·"

_ANSI = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


class CardState(enum.Enum):
    """Lifecycle state of a card."""

    PENDING = enum.auto()
    RUNNING = enum.auto()
    SUCCESS = enum.auto()
    SKIPPED = enum.auto()
    FAILED = enum.auto()
    INFO = enum.auto()
    INPUT = enum.auto()
    ROOT = enum.auto()
    DATA = enum.auto()


class _Colour(enum.IntEnum):
    PRIMARY = 75
    SECONDARY = 141
    MUTED = 245
    RECESSED = 240
    SUCCESS = 78
    WARNING = 214
    ERROR = 203
    ACCENT = 212
    NORMAL = 252


@dataclass(frozen=True)
class _Style:
    colour: _Colour | None = None
    bold: bool = False

    def __call__(self, text: str) -> str:
        if not text or os.environ.get("NO_COLOR"):
            return text
        codes = []
        if self.bold:
            codes.append("1")
        if self.colour is not None:
            codes.append(f"38;5;{int(self.colour)}")
        if not codes:
            return text
        return f"\x1b[{';'.join(codes)}m{text}\x1b[0m"


_MUTED = _Style(_Colour.MUTED)
_NORMAL = _Style(_Colour.NORMAL)
_ERROR = _Style(_Colour.ERROR)
_RULE = _Style(_Colour.RECESSED)
_TITLE = _Style(_Colour.PRIMARY, bold=True)
_LOGO = _Style(_Colour.SECONDARY, bold=True)
_SEPARATOR = _Style(_Colour.RECESSED, bold=True)

_GLYPHS = {
    CardState.PENDING: (_Colour.MUTED, _GLYPH_PENDING),
    CardState.RUNNING: (_Colour.PRIMARY, _GLYPH_PENDING),
    CardState.SUCCESS: (_Colour.SUCCESS, _GLYPH_SUCCESS),
    CardState.SKIPPED: (_Colour.WARNING, _GLYPH_SKIPPED),
    CardState.FAILED: (_Colour.ERROR, _GLYPH_FAILED),
    CardState.INFO: (_Colour.PRIMARY, _GLYPH_INFO),
    CardState.INPUT: (_Colour.ACCENT, _GLYPH_INPUT),
    CardState.ROOT: (_Colour.RECESSED, _GLYPH_ROOT),
    CardState.DATA: (_Colour.PRIMARY, _GLYPH_INFO),
}


def _term_width() -> int:
    columns = shutil.get_terminal_size((80, 24)).columns
    return columns if columns > 0 else 80


def _char_width(ch: str) -> int:
    return max(0, wcwidth(ch))


def _units(s: str) -> Iterator[tuple[str, int]]:
    """Yield characters with their display width; escape codes count as zero."""
    pos = 0
    for match in _ANSI.finditer(s):
        for ch in s[pos : match.start()]:
            yield ch, _char_width(ch)
        yield match.group(), 0
        pos = match.end()
    for ch in s[pos:]:
        yield ch, _char_width(ch)


def _visible_width(s: str) -> int:
    return max((sum(w for _, w in _units(line)) for line in s.split("\n")), default=0)


def _wrap_line(s: str, limit: int) -> list[str]:
    lines: list[str] = []
    line: list[str] = []
    line_w = 0
    word: list[str] = []
    word_w = 0
    space: list[str] = []
    space_w = 0

    def push_line() -> None:
        nonlocal line, line_w, space, space_w
        lines.append("".join(line))
        line, line_w = [], 0
        space, space_w = [], 0

    def commit_word() -> None:
        nonlocal line_w, word, word_w, space, space_w
        if not word:
            return
        if line and line_w + space_w + word_w > limit:
            push_line()
        line.extend(space)
        line.extend(word)
        line_w += space_w + word_w
        word, word_w = [], 0
        space, space_w = [], 0

    for unit, width in _units(s):
        if width == 0 and unit.startswith("\x1b"):
            word.append(unit)
            continue
        if unit == " ":
            commit_word()
            space.append(unit)
            space_w += width
            continue
        if word_w + width > limit:
            if line:
                push_line()
            lines.append("".join(word))
            word, word_w = [], 0
            space, space_w = [], 0
        word.append(unit)
        word_w += width
        if unit in _BREAKPOINTS:
            commit_word()

    commit_word()
    if line or not lines:
        lines.append("".join(line))
    return lines


def wrap_for_timeline(s: str, width: int | None = None) -> list[str]:
    """Word-wrap s to fit beside the timeline connector.

    width is the terminal width; by default the current terminal's.
    """
    if not s:
        return [""]
    total = width if width is not None else _term_width()
    max_width = max(total - TIMELINE_CONN_WIDTH, _MIN_WRAP_WIDTH)
    if _visible_width(s) <= max_width:
        return [s]
    wrapped: list[str] = []
    for paragraph in s.split("\n"):
        wrapped.extend(_wrap_line(paragraph, max_width))
    return wrapped


def title_case(s: str) -> str:
    """Capitalise fully lower-case words; words with capitals are kept as is."""
    words = []
    for word in s.split():
        if word == word.lower():
            upper = word[0].upper()
            word = (upper if len(upper) == 1 else word[0]) + word[1:]
        words.append(word)
    return " ".join(words)


class _BodyKind(enum.Enum):
    TEXT = enum.auto()
    MUTED = enum.auto()
    KV = enum.auto()
    STDOUT = enum.auto()
    STDERR = enum.auto()
    RAW = enum.auto()


@dataclass
class _Body:
    kind: _BodyKind
    lines: list[str] = field(default_factory=list)
    pairs: list[tuple[str, str]] = field(default_factory=list)


def _render_body(body: _Body) -> list[str]:
    if body.kind is _BodyKind.TEXT:
        return [_NORMAL(line) for line in body.lines]
    if body.kind in (_BodyKind.MUTED, _BodyKind.STDOUT):
        return [_MUTED(line) for line in body.lines]
    if body.kind is _BodyKind.STDERR:
        return [_ERROR(line) for line in body.lines]
    if body.kind is _BodyKind.RAW:
        return list(body.lines)

    max_key = max((len(key) for key, _ in body.pairs), default=0)
    prefix = " " * (max_key + 2)
    out = []
    for key, value in body.pairs:
        first, *rest = value.split("\n")
        out.append(f"{_MUTED(key.ljust(max_key))} {_MUTED(_DOT)} {_NORMAL(first)}")
        out.extend(f"{prefix} {_MUTED(cont)}" for cont in rest)
    return out


class Card:
    """A unit of timeline output: a state glyph, a title and body slots.

    Builder methods return the card so calls can be chained. width fixes
    the terminal width used for layout; by default the current one.
    """

    def __init__(self, state: CardState, title: str, *, width: int | None = None) -> None:
        self.state = state
        self.title = title
        self._width = width
        self._value = ""
        self._subtitle = ""
        self._body: list[_Body] = []
        self._tight = False
        self._indent = 0

    @property
    def is_tight(self) -> bool:
        """Whether comfy spacing after this card is suppressed."""
        return self._tight

    def tight(self) -> "Card":
        """Suppress the spacing that normally follows the card."""
        self._tight = True
        return self

    def indent(self, n: int) -> "Card":
        """Nest the card n levels under a parent's spine."""
        self._indent = n
        return self

    def value(self, s: str) -> "Card":
        """Set an inline value shown after the title, not title-cased."""
        self._value = s
        return self

    def subtitle(self, s: str) -> "Card":
        """Set a muted subtitle line."""
        self._subtitle = s
        return self

    def text(self, *args: str) -> "Card":
        """Append body lines in the default foreground."""
        self._body.append(_Body(_BodyKind.TEXT, list(args)))
        return self

    def muted(self, *args: str) -> "Card":
        """Append dimmed body lines."""
        self._body.append(_Body(_BodyKind.MUTED, list(args)))
        return self

    def kv(self, *args: str) -> "Card":
        """Append aligned key/value lines from alternating keys and values."""
        pairs = list(zip(args[0::2], args[1::2]))
        self._body.append(_Body(_BodyKind.KV, pairs=pairs))
        return self

    def raw(self, *args: str) -> "Card":
        """Append pre-styled body lines unchanged."""
        self._body.append(_Body(_BodyKind.RAW, list(args)))
        return self

    def stdout(self, *args: str) -> "Card":
        """Append standard-output stream lines (muted)."""
        self._body.append(_Body(_BodyKind.STDOUT, list(args)))
        return self

    def stderr(self, *args: str) -> "Card":
        """Append standard-error stream lines (error colour)."""
        self._body.append(_Body(_BodyKind.STDERR, list(args)))
        return self

    def render(self) -> str:
        """Return the card as styled lines, ending in a newline."""
        return self._render_with_glyph(self._glyph())

    def _term(self) -> int:
        return self._width if self._width is not None else _term_width()

    def _glyph(self) -> str:
        colour, glyph = _GLYPHS[self.state]
        return _Style(colour)(glyph)

    def _render_with_glyph(self, glyph: str) -> str:
        out = self._render_inner(glyph)
        if self._indent <= 0:
            return out
        prefix = (" " + _RULE(_CONNECTOR) + "  ") * self._indent
        lines = out.removesuffix("\n").split("\n")
        return "\n".join(prefix + line for line in lines) + "\n"

    def _render_root(self, glyph: str, pad: str) -> list[str]:
        box_inner = max(self._term() - 3, _MIN_BOX_INNER)
        side = _RULE("│")
        out = [f"{pad}{glyph}{_RULE('─' * box_inner + '╮')}"]

        version = _MUTED(APP_VERSION)
        version_width = _visible_width(version)
        for i, line in enumerate(LOGO):
            art_width = _visible_width(line)
            if i == 0:
                right_pad = max(box_inner - 2 - art_width - version_width - 2, 1)
                out.append(f"{pad}{side}  {_LOGO(line)}{' ' * right_pad}{version}  {side}")
            else:
                right_pad = max(box_inner - 2 - art_width, 1)
                out.append(f"{pad}{side}  {_LOGO(line)}{' ' * right_pad}{side}")

        segments = self.title.split(" › ")
        if len(segments) > 1:
            breadcrumb = _SEPARATOR(" › ").join(_TITLE(title_case(seg)) for seg in segments[1:])
            prefix, prefix_width = "", 0
            if BREADCRUMB_PREFIX:
                prefix = _RULE(BREADCRUMB_PREFIX) + " "
                prefix_width = _visible_width(prefix)
            postfix, postfix_width = " ", 1
            if BREADCRUMB_POSTFIX:
                postfix = " " + _RULE(BREADCRUMB_POSTFIX) + " "
                postfix_width = _visible_width(BREADCRUMB_POSTFIX) + 2
            rule_len = max(
                box_inner - 2 - prefix_width - _visible_width(breadcrumb) - postfix_width, 1
            )
            out.append(
                f"{pad}{side}  {prefix}{breadcrumb}{postfix}{_RULE('─' * rule_len + '╯')}"
            )
        else:
            out.append(f"{pad}{side}  {_RULE('─' * (box_inner - 2) + '╯')}")
        return out

    def _render_inner(self, glyph: str) -> str:
        pad = " "
        gap = "  "
        conn = pad + _RULE(_CONNECTOR) + "  "
        width = self._term()

        if self.state is CardState.ROOT:
            lines = self._render_root(glyph, pad)
        elif self._value:
            title = _TITLE(title_case(self.title + ":"))
            lines = [f"{pad}{glyph}{gap}{title} {_MUTED(self._value)}"]
        else:
            lines = [f"{pad}{glyph}{gap}{_TITLE(title_case(self.title))}"]

        if self._subtitle:
            lines.extend(
                conn + _MUTED(line) for line in wrap_for_timeline(self._subtitle, width)
            )

        if self.state is CardState.ROOT and self._body:
            lines.append(conn)

        for body in self._body:
            for line in _render_body(body):
                lines.extend(conn + wrapped for wrapped in wrap_for_timeline(line, width))

        return "".join(line + "\n" for line in lines)