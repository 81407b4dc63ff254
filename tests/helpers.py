"""
Helper utilities for tests.
"""

from datetime import UTC, datetime
from typing import Any

from servfault.occurrence import ErrorOccurrence, RequestSnapshot

FIXED_TIME = datetime(2024, 5, 1, 12, 30, 0, tzinfo=UTC)

PAGE = "{code}|{name}|{message}|{id}|{summary}"


def capture(
    error: BaseException,
    request: RequestSnapshot | None = None,
    timestamp: datetime = FIXED_TIME,
) -> ErrorOccurrence:
    """Raise ``error`` so it carries a traceback and capture it as an occurrence."""
    try:
        raise error
    except BaseException as exc:
        return ErrorOccurrence.from_exception(exc, request=request, clock=lambda: timestamp)


class FakeTemplateResolver:
    """Template resolver backed by ``str.format`` templates kept in memory."""

    def __init__(self, templates: dict[str, str] | None = None):
        self.templates = templates or {}
        self.lookups: list[str] = []
        self.rendered: list[tuple[str, dict[str, Any]]] = []

    def exists(self, name: str) -> bool:
        self.lookups.append(name)
        return name in self.templates

    def render(self, name: str, context: dict[str, Any]) -> str:
        self.rendered.append((name, context))
        return self.templates[name].format(**context)


class RecordingSink:
    def __init__(self):
        self.records: list[tuple[str, dict[str, Any]]] = []
        self.errors: list[BaseException | None] = []

    def write(self, message: str, context: dict[str, Any], error=None) -> None:
        self.records.append((message, context))
        self.errors.append(error)


class FailingSink:
    def __init__(self):
        self.calls = 0

    def write(self, message: str, context: dict[str, Any], error=None) -> None:
        self.calls += 1
        raise ConnectionError("Log shipper is down")


class User:
    def __init__(self, id: int, email: str):
        self.id = id
        self.email = email


class BrokenEmailUser:
    """A user whose email lookup fails, like a lazy attribute on a closed session."""

    id = 7

    @property
    def email(self) -> str:
        raise RuntimeError("Session is closed")


class FakeRequest:
    def __init__(self, url: str):
        self.url = url
