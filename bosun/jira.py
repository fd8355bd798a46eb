"""Issue tracker backed by the Jira REST API v3."""

from __future__ import annotations

import base64
import json
from typing import Any
from urllib.parse import quote_plus

import requests

from bosun.issue import (
    Board,
    BoardColumn,
    CreateRequest,
    Issue,
    ListQuery,
    Tracker,
    TrackerError,
)

PROPERTY_KEY = "bosun"
DEFAULT_MAX_RESULTS = 200


class JiraAPIError(TrackerError):
    """An HTTP error status returned by the Jira API."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"jira API error (HTTP {status}): {body}")


def _go_quote(s: str) -> str:
    escapes = {
        '"': '\\"',
        "\\": "\\\\",
        "\a": "\\a",
        "\b": "\\b",
        "\f": "\\f",
        "\n": "\\n",
        "\r": "\\r",
        "\t": "\\t",
        "\v": "\\v",
    }
    out = []
    for ch in s:
        if ch in escapes:
            out.append(escapes[ch])
        elif ch.isprintable():
            out.append(ch)
        elif ord(ch) < 0x80:
            out.append(f"\\x{ord(ch):02x}")
        elif ord(ch) < 0x10000:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(f"\\U{ord(ch):08x}")
    return '"' + "".join(out) + '"'


def _obj(data: Any, key: str) -> dict:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _items(data: Any, key: str) -> list:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, list) else []


def _str(data: Any, key: str) -> str:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, str) else ""


def build_jql(query: ListQuery) -> str:
    """Assemble a JQL query string from the query's filters."""
    clauses = ["resolution = Unresolved"]
    if query.assigned_to_me:
        clauses.append("assignee = currentUser()")
    if query.statuses:
        quoted = ", ".join(_go_quote(s) for s in query.statuses)
        clauses.append(f"status IN ({quoted})")
    if query.project:
        clauses.append(f"project = {_go_quote(query.project)}")
    if query.current_sprint:
        clauses.append("sprint IN openSprints()")
    return " AND ".join(clauses) + " ORDER BY statusCategory ASC, updated DESC"


def jira_issue_type(t: str) -> str:
    """Map an issue type name to the Jira issue type; defaults to Story."""
    return {"bug": "Bug", "story": "Story", "task": "Task"}.get(t.lower(), "Story")


def adf_document(text: str) -> dict | None:
    """Wrap plain text in a minimal Atlassian Document Format document."""
    if not text:
        return None
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


class JiraAdapter(Tracker):
    """Tracker implementation using the Jira REST API."""

    def __init__(
        self,
        base_url: str,
        email: str,
        token: str,
        session: requests.Session | None = None,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self.base_url = base_url.rstrip("/")
        self._email = email
        self._token = token

    def _request(self, method: str, path: str, body: Any = None) -> requests.Response:
        data = None
        if body is not None:
            try:
                data = json.dumps(body).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise TrackerError(f"marshaling request body: {exc}") from exc

        credentials = base64.b64encode(f"{self._email}:{self._token}".encode()).decode("ascii")
        headers = {
            "Authorization": "Basic " + credentials,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            resp = self._session.request(method, self.base_url + path, data=data, headers=headers)
        except requests.RequestException as exc:
            raise TrackerError(f"executing request: {exc}") from exc

        if resp.status_code >= 400:
            text = resp.text
            resp.close()
            raise JiraAPIError(resp.status_code, text)
        return resp

    @staticmethod
    def _decode(resp: requests.Response, what: str) -> dict:
        try:
            data = resp.json()
        except ValueError as exc:
            raise TrackerError(f"parsing {what}: {exc}") from exc
        finally:
            resp.close()
        if not isinstance(data, dict):
            raise TrackerError(f"parsing {what}: expected a JSON object")
        return data

    def _browse_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    def create_issue(self, req: CreateRequest) -> Issue:
        body = {
            "fields": {
                "project": {"key": req.project},
                "summary": req.title,
                "issuetype": {"name": jira_issue_type(req.type)},
                "description": adf_document(req.description),
            }
        }
        try:
            resp = self._request("POST", "/rest/api/3/issue", body)
        except TrackerError as exc:
            raise TrackerError(f"creating issue: {exc}") from exc
        created = self._decode(resp, "create response")
        return self.get_issue(_str(created, "key"))

    def get_issue(self, issue_key: str) -> Issue:
        path = f"/rest/api/3/issue/{issue_key}?fields=summary,status,issuetype"
        try:
            resp = self._request("GET", path)
        except TrackerError as exc:
            raise TrackerError(f"getting issue {issue_key}: {exc}") from exc
        result = self._decode(resp, "issue response")
        fields = _obj(result, "fields")
        key = _str(result, "key")
        return Issue(
            key=key,
            title=_str(fields, "summary"),
            status=_str(_obj(fields, "status"), "name"),
            type=_str(_obj(fields, "issuetype"), "name"),
            url=self._browse_url(key),
        )

    def set_status(self, issue_key: str, status_name: str) -> None:
        path = f"/rest/api/3/issue/{issue_key}/transitions"
        try:
            resp = self._request("GET", path)
        except TrackerError as exc:
            raise TrackerError(f"getting transitions for {issue_key}: {exc}") from exc
        result = self._decode(resp, "transitions response")

        transition_id = ""
        available = []
        wanted = status_name.casefold()
        for transition in _items(result, "transitions"):
            name = _str(_obj(transition, "to"), "name")
            available.append(name)
            if name.casefold() == wanted:
                transition_id = _str(transition, "id")
                break

        if not transition_id:
            raise TrackerError(
                f"no transition to {_go_quote(status_name)} available for {issue_key} "
                f"(available: {', '.join(available)})"
            )

        try:
            self._request("POST", path, {"transition": {"id": transition_id}}).close()
        except TrackerError as exc:
            raise TrackerError(
                f"transitioning {issue_key} to {_go_quote(status_name)}: {exc}"
            ) from exc

    def list_issues(self, query: ListQuery) -> list[Issue]:
        jql = build_jql(query)
        max_results = query.max_results if query.max_results > 0 else DEFAULT_MAX_RESULTS
        path = (
            f"/rest/api/3/search/jql?jql={quote_plus(jql, safe='')}"
            f"&fields=summary,status,issuetype&maxResults={max_results}"
        )
        try:
            resp = self._request("GET", path)
        except TrackerError as exc:
            raise TrackerError(f"searching issues: {exc}") from exc
        result = self._decode(resp, "search response")

        issues = []
        for raw in _items(result, "issues"):
            fields = _obj(raw, "fields")
            status = _obj(fields, "status")
            key = _str(raw, "key")
            issues.append(
                Issue(
                    key=key,
                    title=_str(fields, "summary"),
                    status=_str(status, "name"),
                    status_id=_str(status, "id"),
                    type=_str(_obj(fields, "issuetype"), "name"),
                    url=self._browse_url(key),
                )
            )
        return issues

    def list_boards(self, project: str) -> list[Board]:
        path = "/rest/agile/1.0/board?maxResults=100"
        if project:
            path += "&projectKeyOrId=" + quote_plus(project, safe="")
        try:
            resp = self._request("GET", path)
        except TrackerError as exc:
            raise TrackerError(f"listing boards: {exc}") from exc
        result = self._decode(resp, "boards response")
        return [
            Board(
                id=str(raw.get("id", 0)) if isinstance(raw, dict) else "0",
                name=_str(raw, "name"),
                type=_str(raw, "type"),
            )
            for raw in _items(result, "values")
        ]

    def board_columns(self, board_id: str) -> list[BoardColumn] | None:
        if not board_id:
            return None
        path = f"/rest/agile/1.0/board/{board_id}/configuration"
        try:
            resp = self._request("GET", path)
        except TrackerError as exc:
            raise TrackerError(f"getting board configuration: {exc}") from exc
        result = self._decode(resp, "board configuration")
        return [
            BoardColumn(
                name=_str(col, "name"),
                status_ids=[_str(s, "id") for s in _items(col, "statuses")],
            )
            for col in _items(_obj(result, "columnConfig"), "columns")
        ]

    def _property_path(self, issue_key: str) -> str:
        return f"/rest/api/3/issue/{issue_key}/properties/{PROPERTY_KEY}"

    def get_property(self, issue_key: str) -> Any:
        try:
            resp = self._request("GET", self._property_path(issue_key))
        except JiraAPIError as exc:
            if exc.status == 404:
                return None
            raise TrackerError(f"getting property for {issue_key}: {exc}") from exc
        except TrackerError as exc:
            raise TrackerError(f"getting property for {issue_key}: {exc}") from exc
        result = self._decode(resp, "property response")
        return result.get("value")

    def set_property(self, issue_key: str, value: Any) -> None:
        try:
            self._request("PUT", self._property_path(issue_key), value).close()
        except TrackerError as exc:
            raise TrackerError(f"setting property for {issue_key}: {exc}") from exc

    def delete_property(self, issue_key: str) -> None:
        try:
            self._request("DELETE", self._property_path(issue_key)).close()
        except JiraAPIError as exc:
            if exc.status == 404:
                return
            raise TrackerError(f"deleting property for {issue_key}: {exc}") from exc
        except TrackerError as exc:
            raise TrackerError(f"deleting property for {issue_key}: {exc}") from exc