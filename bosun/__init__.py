"""Jira and Slack adapters, notification types and terminal timeline cards."""

__version__ = "0.1.0"
__all__ = ["card", "issue", "jira", "notify", "slack"]