import pytest

from bosun.notify import (
    CardButton,
    Content,
    Field,
    Message,
    Notifier,
    Section,
    TableCell,
    TableRow,
    ThreadRef,
    content_hash,
    is_no_cache,
    no_cache,
)


def test_has_blocks_false_for_text_only():
    assert Content(text="plain message").has_blocks() is False
    assert Content().has_blocks() is False


@pytest.mark.parametrize(
    "content",
    [
        Content(header="PROJ-123: Add widget"),
        Content(body="PROJ-123 is ready for review"),
        Content(actions=[CardButton(text="Open", url="https://jira.example.com")]),
        Content(table=[TableRow(cells=[TableCell(text="a")])]),
        Content(fields=[Field(key="k", value="v")]),
        Content(sections=[Section(text="card")]),
        Content(context="small print"),
    ],
)
def test_has_blocks_true_for_any_block_field(content):
    assert content.has_blocks() is True


def test_content_hash_is_sixteen_hex_chars():
    digest = content_hash(Content(text="hello"))
    assert len(digest) == 16
    assert set(digest) <= set("0123456789abcdef")


def test_content_hash_is_deterministic():
    first = Content(header="h", fields=[Field(key="k", value="v")])
    second = Content(header="h", fields=[Field(key="k", value="v")])
    assert content_hash(first) == content_hash(second)


def test_content_hash_detects_changes():
    base = content_hash(Content(header="h", body="b"))
    assert content_hash(Content(header="h", body="c")) != base
    assert content_hash(Content(header="h", body="b", context="x")) != base


def test_content_hash_distinguishes_nested_fields():
    plain = Content(table=[TableRow(cells=[TableCell(text="a")])])
    bold = Content(table=[TableRow(cells=[TableCell(text="a", bold=True)])])
    assert content_hash(plain) != content_hash(bold)


def test_content_hash_distinguishes_field_placement():
    assert content_hash(Content(text="x")) != content_hash(Content(header="x"))


def test_no_cache_scope():
    assert is_no_cache() is False
    with no_cache():
        assert is_no_cache() is True
        with no_cache():
            assert is_no_cache() is True
        assert is_no_cache() is True
    assert is_no_cache() is False


def test_no_cache_resets_after_exception():
    with pytest.raises(RuntimeError):
        with no_cache():
            raise RuntimeError("boom")
    assert is_no_cache() is False


def test_message_defaults():
    msg = Message(channel="bb-prs")
    assert msg.items == []
    assert msg.content == Content()


def test_thread_ref_defaults_empty():
    ref = ThreadRef()
    assert (ref.channel, ref.timestamp, ref.content_hash) == ("", "", "")


def test_notifier_is_abstract():
    with pytest.raises(TypeError):
        Notifier()


class RecordingNotifier(Notifier):
    def __init__(self):
        self.closed = 0
        self.sent = []

    def auth_test(self):
        return "bot"

    def notify(self, msg):
        self.sent.append(msg)
        return ThreadRef(channel=msg.channel, timestamp=str(len(self.sent)))

    def find_thread(self, channel, issue_key):
        return ThreadRef()

    def reply_to_thread(self, ref, msg):
        self.sent.append(msg)

    def close(self):
        self.closed += 1


def test_notifier_context_manager_closes():
    notifier = RecordingNotifier()
    with notifier as active:
        ref = active.notify(Message(channel="bb-prs"))
    assert ref.channel == "bb-prs"
    assert notifier.closed == 1