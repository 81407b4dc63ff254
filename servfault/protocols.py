"""
Protocol definitions for the collaborators servfault renders through.

The core only needs to know whether a template exists, how to render it
and how to look up a message by key. Hosts plug in their own view layer
and translation catalog by implementing these.
"""

from abc import abstractmethod
from typing import Any, Protocol


class TemplateResolver(Protocol):
    """Protocol for looking up and rendering error views."""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Whether a template with this name can be rendered."""
        ...

    @abstractmethod
    def render(self, name: str, context: dict[str, Any]) -> str:
        """Render the named template with the given context."""
        ...


class Translator(Protocol):
    """Protocol for localized message lookup."""

    @abstractmethod
    def translate(self, key: str) -> str:
        """Return the message for ``key``, or ``key`` itself when there is none."""
        ...
