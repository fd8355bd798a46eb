# bosun

A library of building blocks for a developer workflow tool. It talks to
Jira, posts to Slack and renders timeline-style terminal output.

- `bosun.issue` holds the tracker data types (`Issue`, `Board`,
  `BoardColumn`, `ListQuery`, `CreateRequest`), the abstract `Tracker`
  interface and `TrackerError`.
- `bosun.jira` provides `JiraAdapter`, a `Tracker` for the Jira REST API
  v3. It also has the helpers `build_jql`, `jira_issue_type` and
  `adf_document`.
- `bosun.notify` holds the notification types (`Message`, `Content`,
  `Section`, `Field`, `TableRow`, `TableCell`, `CardButton`, `Item`,
  `ThreadRef`), the abstract `Notifier` interface and `NotifyError`. It
  also has `content_hash` and the `no_cache()` context manager, with
  `is_no_cache()` to test for it.
- `bosun.slack` provides `SlackAdapter`, a `Notifier` for the Slack Web
  API. It also has the Block Kit builders (`build_message_payload`,
  `card_block`, `table_block`, `build_table_cell`, `truncate`) and the
  cache helpers `load_cache` and `save_cache`.
- `bosun.card` provides `Card` and `CardState` for rendering timeline
  cards, along with `title_case` and `wrap_for_timeline`.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Tracking issues

```python
from bosun.issue import CreateRequest, ListQuery
from bosun.jira import JiraAdapter

jira = JiraAdapter("https://jira.example.com", "user@example.com", "token")

created = jira.create_issue(CreateRequest(project="PROJ", title="Add widget", type="story"))
jira.set_status(created.key, "In Progress")

for item in jira.list_issues(ListQuery(assigned_to_me=True, current_sprint=True)):
    print(item.key, item.status, item.title)
```

`set_status` picks the transition whose target status matches the given
name, ignoring case. If no transition matches, it raises `TrackerError`,
and the message lists the statuses that are available. An HTTP error
status raises `JiraAPIError`, a subclass of `TrackerError` that carries
`status` and `body`. `get_property` returns `None` when the issue has no
property. `delete_property` does nothing when there is nothing to
delete. `board_columns("")` returns `None`. `JiraAdapter` also accepts a
`session=` keyword argument if you want to pass your own
`requests.Session`.

## Sending notifications

```python
from bosun.notify import Content, Message, no_cache
from bosun.slack import SlackAdapter

with SlackAdapter("token", cache_path="slack-cache.json") as slack:
    ref = slack.notify(Message(
        channel="team-prs",
        issue_key="PROJ-123",
        title="Add widget",
        content=Content(header="PROJ-123: Add widget", body="Ready for review"),
    ))
    slack.reply_to_thread(ref, Message(content=Content(text="Preview deployed")))

    with no_cache():
        slack.find_thread("team-prs", "PROJ-123")
```

Channels can be given as `"name"` or `"#name"`. `"@U..."` is passed
through as a user ID. `notify` works as an upsert: when a message for
the same issue key is already in the channel, it is updated in place,
and when its content hash has not changed, nothing is sent at all.
Content that has no block fields is posted as plain text. Otherwise the
message carries blocks and a fallback text.

Channel and thread lookups are remembered for as long as the adapter
lives. If `cache_path` is set, they are loaded from that JSON file when
the adapter is created and merged back into it by `close()`, and entries
expire after five minutes. Without `cache_path`, nothing is written to
disk. Other keyword options are `cookie=` (sent as the `d` cookie on
every request), `api_url=`, `retries=` (how many times to retry on HTTP
429) and `session=`. API failures raise `SlackError`, a subclass of
`NotifyError`.

## Rendering cards

```python
from bosun.card import Card, CardState

print(Card(CardState.SUCCESS, "create branch").subtitle("feature/PROJ-123").render(), end="")
print(Card(CardState.DATA, "Details").kv("Issue", "PROJ-123", "Status", "Ready").render(), end="")
```

A title is title-cased word by word. Words that already contain capitals
are left as they are. Subtitles and body lines wrap to the terminal
width, or to the `width=` keyword argument if you pass one. Colours are
left out when `NO_COLOR` is set. `CardState.ROOT` draws a box across the
full width. Its contents come from the module-level `bosun.card.LOGO`
lines (empty by default) and `APP_VERSION`, and the breadcrumb is taken
from a title of the form `"app › command"`.

## What is not included

This is a library. It has no command-line program of its own. `Card`
only returns rendered strings: it does not print them, animate spinners
or ask for input. `SlackAdapter` needs a token and, optionally, a cookie
passed in. It does not find credentials by itself.