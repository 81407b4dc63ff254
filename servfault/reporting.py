"""Writing structured log records for errors that need attention."""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from tramp.optionals import Optional

from servfault.classification import ErrorClassification, ErrorClassifier
from servfault.identifier import ErrorIdentifier
from servfault.occurrence import ErrorOccurrence

logger = logging.getLogger(__name__)

DEFAULT_REPORT_LOGGER = "servfault.reports"


@dataclass(frozen=True)
class LogContext:
    correlation_id: str
    user_id: Any = None
    user_email: str | None = None
    url: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Context as a flat dict, leaving out the fields that are absent."""
        values = {
            "user": self.user_id,
            "email": self.user_email,
            "url": self.url,
            "identifier": self.correlation_id,
        }
        context = {key: value for key, value in values.items() if value is not None}
        for key, value in self.extra.items():
            context.setdefault(key, value)

        return context


class LogSink(Protocol):
    def write(
        self,
        message: str,
        context: dict[str, Any],
        error: BaseException | None = None,
    ) -> None: ...


class LoggerSink:
    """Sink that emits reports through a standard library logger."""

    def __init__(self, sink_logger: logging.Logger | None = None):
        self.logger = sink_logger or logging.getLogger(DEFAULT_REPORT_LOGGER)

    def write(
        self,
        message: str,
        context: dict[str, Any],
        error: BaseException | None = None,
    ) -> None:
        self.logger.error(message, exc_info=error, extra={"servfault": context})


def _extract(field_name: str, getter: Callable[[], Any]) -> Optional:
    try:
        value = getter()
    except Exception:
        logger.debug("Dropping %s from log context", field_name, exc_info=True)
        return Optional.Nothing()

    if value is None:
        return Optional.Nothing()

    return Optional.Some(value)


def _value(result: Optional) -> Any:
    match result:
        case Optional.Some(value):
            return value
        case _:
            return None


def _error_context(occurrence: ErrorOccurrence) -> dict[str, Any]:
    context_method = getattr(occurrence.error, "context", None)
    if not callable(context_method):
        return {}

    context = context_method()
    if not isinstance(context, Mapping):
        raise TypeError(f"{occurrence.kind}.context() must return a mapping")

    return dict(context)


def build_log_context(
    occurrence: ErrorOccurrence,
    correlation_id: str,
    user: Any = None,
    request: Any = None,
) -> LogContext:
    """Gather the log context for an occurrence.

    The user and request are passed in explicitly. Each field is looked up
    on its own: a user object whose ``email`` property raises still yields
    the user id, and so on.

    Args:
        occurrence: The occurrence being reported.
        correlation_id: The id shared with the rendered response.
        user: The authenticated user, anything with ``id``/``email``.
        request: The current request, anything with a ``url``.

    Returns:
        The log context with failed or missing lookups left out.
    """
    user_id = _extract("user id", lambda: _attribute(user, "id"))
    email = _extract("user email", lambda: _attribute(user, "email"))
    url = _extract("url", lambda: _request_url(occurrence, request))
    extra = _extract("error context", lambda: _error_context(occurrence))

    return LogContext(
        correlation_id=correlation_id,
        user_id=_value(user_id),
        user_email=_value(email),
        url=_value(url),
        extra=_value(extra) or {},
    )


def _attribute(obj: Any, name: str) -> Any:
    if obj is None:
        return None

    if isinstance(obj, Mapping):
        return obj.get(name)

    return getattr(obj, name)


def _request_url(occurrence: ErrorOccurrence, request: Any) -> str | None:
    if request is not None:
        return str(request.url)

    if occurrence.request is not None:
        return occurrence.request.url

    return None


class ErrorReporter:
    """Persists a log record for reportable occurrences.

    Reporting is best effort. Context lookups that fail are left out of the
    record and a sink that fails is noted on this module's logger, but
    ``report`` itself never raises.
    """

    def __init__(
        self,
        sink: LogSink | None = None,
        classifier: ErrorClassifier | None = None,
        identifier: ErrorIdentifier | None = None,
    ):
        self.sink = sink or LoggerSink()
        self.classifier = classifier or ErrorClassifier()
        self.identifier = identifier or ErrorIdentifier()

    def report(
        self,
        occurrence: ErrorOccurrence,
        *,
        user: Any = None,
        request: Any = None,
        correlation_id: str | None = None,
        classification: ErrorClassification | None = None,
    ) -> None:
        classification = classification or self.classifier.classify(occurrence)
        if not classification.reportable:
            logger.debug(
                "Not reporting %s (%s)", occurrence.kind, classification.category
            )
            return

        if correlation_id is None:
            correlation_id = self.identifier.identify(occurrence)

        context = build_log_context(occurrence, correlation_id, user=user, request=request)
        record = {
            "id": correlation_id,
            "category": str(classification.category),
            "message": occurrence.message,
            "context": context.as_dict(),
        }
        try:
            self.sink.write(
                f"{occurrence.kind}: {occurrence.message}", record, occurrence.error
            )
        except Exception:
            try:
                logger.warning(
                    "Failed to write error report %s", correlation_id, exc_info=True
                )
            except Exception:
                pass
