import re

import pytest

from bosun.card import Card, CardState, title_case, wrap_for_timeline

_ANSI = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def plain(s):
    return _ANSI.sub("", s)


def plain_lines(card):
    return plain(card.render()).split("\n")[:-1]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", ""),
        ("hello", "Hello"),
        ("API", "API"),
        ("create new branch", "Create New Branch"),
        ("update UI settings", "Update UI Settings"),
        ("API and UI config", "API And UI Config"),
        ("iPhone setup", "iPhone Setup"),
        ("Hello world", "Hello World"),
        ("a b c", "A B C"),
        ("  hello   world  ", "Hello World"),
    ],
)
def test_title_case(text, expected):
    assert title_case(text) == expected


def test_wrap_empty_string_returns_single_empty_element():
    assert wrap_for_timeline("", 80) == [""]


def test_wrap_short_string_fits_one_line():
    assert wrap_for_timeline("hello world", 80) == ["hello world"]


def test_wrap_long_string_wraps():
    long = "longword " * 20
    got = wrap_for_timeline(long, 80)
    assert len(got) >= 2
    assert all(len(line) <= 75 for line in got)
    assert " ".join(got).split() == long.split()


def test_wrap_respects_minimum_width():
    text = "word " * 10
    got = wrap_for_timeline(text, 10)
    assert len(got) >= 2
    assert all(len(line) <= 20 for line in got)
    assert max(len(line) for line in got) > 5


def test_wrap_hard_splits_overlong_word():
    got = wrap_for_timeline("x" * 50, 25)
    assert got == ["x" * 20, "x" * 20, "x" * 10]


def test_wrap_ignores_escape_codes_in_width():
    styled = "\x1b[1m" + "a" * 70 + "\x1b[0m"
    assert wrap_for_timeline(styled, 80) == [styled]


def test_success_card_title():
    card = Card(CardState.SUCCESS, "create branch", width=80)
    assert plain_lines(card) == [" ✓  Create Branch"]


def test_card_value_after_title():
    card = Card(CardState.INFO, "branch", width=80).value("feature/x")
    assert plain_lines(card) == [" ●  Branch: feature/x"]


@pytest.mark.parametrize(
    "state, glyph",
    [
        (CardState.PENDING, "◦"),
        (CardState.RUNNING, "◦"),
        (CardState.SKIPPED, "!"),
        (CardState.FAILED, "✗"),
        (CardState.INPUT, "?"),
        (CardState.DATA, "●"),
    ],
)
def test_state_glyphs(state, glyph):
    assert plain_lines(Card(state, "x", width=80))[0] == f" {glyph}  X"


def test_subtitle_under_connector():
    card = Card(CardState.FAILED, "push", width=80).subtitle("remote rejected")
    assert plain_lines(card) == [" ✗  Push", " │  remote rejected"]


def test_long_subtitle_wraps():
    card = Card(CardState.INFO, "t", width=40).subtitle("word " * 20)
    lines = plain_lines(card)
    assert len(lines) > 2
    assert all(line.startswith(" │  ") for line in lines[1:])


def test_body_kinds_keep_text():
    card = (
        Card(CardState.SUCCESS, "run", width=80)
        .text("one")
        .muted("two")
        .stdout("three")
        .stderr("four")
    )
    assert plain_lines(card) == [" ✓  Run", " │  one", " │  two", " │  three", " │  four"]


def test_raw_lines_preserved():
    styled = "\x1b[1mX\x1b[0m"
    rendered = Card(CardState.INFO, "t", width=80).raw(styled).render()
    assert rendered.split("\n")[1].endswith(styled)


def test_kv_alignment():
    card = Card(CardState.DATA, "Details", width=80).kv("a", "1", "long", "2")
    assert plain_lines(card) == [" ●  Details", " │  a    · 1", " │  long · 2"]


def test_kv_continuation_lines():
    card = Card(CardState.DATA, "d", width=80).kv("k", "x\ny")
    assert plain_lines(card) == [" ●  D", " │  k · x", " │      y"]


def test_kv_ignores_odd_trailing_key():
    card = Card(CardState.DATA, "d", width=80).kv("k", "v", "dangling")
    assert plain_lines(card) == [" ●  D", " │  k · v"]


def test_indent_prefixes_every_line():
    card = Card(CardState.SUCCESS, "child", width=80).subtitle("s").indent(1)
    assert plain_lines(card) == [" │   ✓  Child", " │   │  s"]


def test_indent_two_levels():
    card = Card(CardState.SUCCESS, "c", width=80).indent(2)
    assert plain_lines(card) == [" │   │   ✓  C"]


def test_root_without_breadcrumb():
    card = Card(CardState.ROOT, "bosun", width=20)
    assert plain_lines(card) == [" ╭" + "─" * 17 + "╮", " │  " + "─" * 15 + "╯"]


def test_root_with_breadcrumb():
    card = Card(CardState.ROOT, "bosun › create branch", width=40)
    lines = plain_lines(card)
    assert lines[-1] == " │  Create Branch " + "─" * 21 + "╯"
    assert all(len(line) == 40 for line in lines)


def test_root_body_separated_by_blank_connector():
    card = Card(CardState.ROOT, "bosun", width=20).text("hi")
    lines = plain_lines(card)
    assert lines[-2:] == [" │  ", " │  hi"]


def test_root_box_has_minimum_inner_width():
    card = Card(CardState.ROOT, "bosun", width=5)
    assert plain_lines(card)[0] == " ╭" + "─" * 10 + "╮"


def test_builders_chain_and_tight():
    card = Card(CardState.INPUT, "name", width=80)
    assert card.tight() is card
    assert card.is_tight is True
    assert plain_lines(card) == [" ?  Name"]


def test_render_ends_with_newline():
    assert Card(CardState.SUCCESS, "x", width=80).render().endswith("\n")