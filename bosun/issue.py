"""Issue tracker data types and the tracker interface."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any


class TrackerError(Exception):
    """Raised when an issue tracker operation fails."""


@dataclass
class Issue:
    """An issue from a tracker."""

    key: str = ""
    title: str = ""
    status: str = ""
    status_id: str = ""
    type: str = ""
    url: str = ""


@dataclass
class BoardColumn:
    """A column on an agile board and the status IDs mapped to it."""

    name: str = ""
    status_ids: list[str] = field(default_factory=list)


@dataclass
class Board:
    """An agile board."""

    id: str = ""
    name: str = ""
    type: str = ""


@dataclass
class ListQuery:
    """Filters for listing issues; empty values are ignored."""

    assigned_to_me: bool = False
    statuses: list[str] = field(default_factory=list)
    project: str = ""
    current_sprint: bool = False
    max_results: int = 0


@dataclass
class CreateRequest:
    """The fields needed to create a new issue."""

    project: str = ""
    title: str = ""
    description: str = ""
    type: str = ""
    size: str = ""


class Tracker(abc.ABC):
    """Issue tracking operations."""

    @abc.abstractmethod
    def create_issue(self, req: CreateRequest) -> Issue:
        """Create a new issue and return it."""

    @abc.abstractmethod
    def get_issue(self, issue_key: str) -> Issue:
        """Retrieve an issue by key."""

    @abc.abstractmethod
    def set_status(self, issue_key: str, status_name: str) -> None:
        """Transition an issue to the named status."""

    @abc.abstractmethod
    def list_issues(self, query: ListQuery) -> list[Issue]:
        """Return issues matching the query, most recently updated first."""

    @abc.abstractmethod
    def board_columns(self, board_id: str) -> list[BoardColumn] | None:
        """Return board columns left to right, or None if board_id is empty."""

    @abc.abstractmethod
    def list_boards(self, project: str) -> list[Board]:
        """Return boards visible to the user, optionally for one project."""

    @abc.abstractmethod
    def get_property(self, issue_key: str) -> Any:
        """Return the stored property value of an issue, or None if absent."""

    @abc.abstractmethod
    def set_property(self, issue_key: str, value: Any) -> None:
        """Store a JSON-serialisable property value on an issue."""

    @abc.abstractmethod
    def delete_property(self, issue_key: str) -> None:
        """Remove the stored property; a missing property is not an error."""