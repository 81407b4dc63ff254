"""Immutable records describing one error being raised and handled."""

import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType


@dataclass(frozen=True)
class RequestSnapshot:
    """The parts of a request that are worth keeping once an error is raised."""

    url: str | None = None
    path: str | None = None
    method: str | None = None


@dataclass(frozen=True)
class ErrorOccurrence:
    """One instance of an error being raised.

    Created once when the error is first observed and then passed by
    reference to the classifier, identifier, reporter and renderer. The
    original exception is kept for detail rendering but takes no part in
    equality.
    """

    kind: str
    message: str
    trace: tuple[str, ...]
    timestamp: datetime
    lineage: tuple[str, ...] = ()
    request: RequestSnapshot | None = None
    status_code: int | None = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    error: BaseException | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        request: RequestSnapshot | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "ErrorOccurrence":
        """Capture an exception as an occurrence.

        Args:
            error: The raised exception.
            request: Snapshot of the request being served, if any.
            clock: Source of the occurrence timestamp, defaults to UTC now.

        Returns:
            The new occurrence.
        """
        timestamp = clock() if clock else datetime.now(UTC)
        return cls(
            kind=type(error).__name__,
            message=str(error),
            trace=_format_trace(error),
            timestamp=timestamp,
            lineage=tuple(
                qualified_name(klass)
                for klass in type(error).__mro__
                if issubclass(klass, BaseException)
            ),
            request=request,
            status_code=_status_code_of(error),
            headers=MappingProxyType(_headers_of(error)),
            error=error,
        )

    @property
    def top_frame(self) -> str | None:
        """The frame the error was raised from, if a trace was captured."""
        return self.trace[-1] if self.trace else None


def qualified_name(klass: type) -> str:
    """The ``module.QualName`` tag identifying a class across modules."""
    return f"{klass.__module__}.{klass.__qualname__}"


def _format_trace(error: BaseException) -> tuple[str, ...]:
    return tuple(
        f"{frame.filename}:{frame.lineno} in {frame.name}"
        for frame in traceback.extract_tb(error.__traceback__)
    )


def _status_code_of(error: BaseException) -> int | None:
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and not isinstance(status_code, bool):
        return status_code

    return None


def _headers_of(error: BaseException) -> dict[str, str]:
    headers = getattr(error, "headers", None)
    if not isinstance(headers, Mapping):
        return {}

    return {str(name): str(value) for name, value in headers.items()}
