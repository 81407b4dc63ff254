"""The exception handler that ties classification, reporting and rendering together."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from bevy import Container, get_registry

from servfault.classification import ErrorClassification, ErrorClassifier
from servfault.config import ErrorHandlingConfig
from servfault.identifier import ErrorIdentifier
from servfault.occurrence import ErrorOccurrence, RequestSnapshot
from servfault.protocols import TemplateResolver, Translator
from servfault.rendering import ErrorRenderer, RequestMeta, ResponseDescriptor
from servfault.reporting import ErrorReporter, LoggerSink, LogSink
from servfault.translation import CatalogTranslator
from servfault.views import Jinja2TemplateResolver

logger = logging.getLogger(__name__)

# Attribute holding the occurrence captured for an exception
OCCURRENCE_ATTRIBUTE = "_servfault_occurrence"


class ExceptionHandler:
    """Handles errors raised while serving a request.

    Each error is captured once as an :class:`ErrorOccurrence`, classified,
    given a correlation id and then both reported and rendered with that
    same id, so the id on the error page always matches the log record.

    The components are resolved from a bevy container. Build one with
    :meth:`from_config`, which registers the classifier, identifier,
    template resolver, translator, log sink, reporter and renderer.

    Examples:
        Handling an error from a request handler:

        ```python
        handler = ExceptionHandler.from_config(ErrorHandlingConfig.load())

        try:
            ...
        except Exception as error:
            response = handler.handle(
                error,
                RequestMeta.from_headers(accept, path, handler.debug),
                user=current_user,
            )
        ```
    """

    def __init__(
        self,
        container: Container | None = None,
        debug: bool = False,
        clock: Callable[[], datetime] | None = None,
    ):
        self.container = container or get_registry().create_container()
        self.debug = debug
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config: ErrorHandlingConfig | None = None,
        *,
        container: Container | None = None,
        templates: TemplateResolver | None = None,
        translator: Translator | None = None,
        sink: LogSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "ExceptionHandler":
        """Build a handler and its components from configuration.

        Args:
            config: Handler settings, defaults when omitted.
            container: Container to register the components in.
            templates: Template resolver to use instead of the Jinja2 one.
            translator: Translator to use instead of the configured catalog.
            sink: Log sink to use instead of the configured logger.
            clock: Source of occurrence timestamps.

        Returns:
            The configured handler.
        """
        config = config or ErrorHandlingConfig()
        handler = cls(container, debug=config.debug, clock=clock)

        if templates is None:
            templates = Jinja2TemplateResolver(config.template_dirs)

        if translator is None:
            if config.translations:
                translator = CatalogTranslator.from_file(config.translations)
            else:
                translator = CatalogTranslator()

        if sink is None:
            sink = LoggerSink(logging.getLogger(config.logger))

        classifier = ErrorClassifier(config.policies)
        identifier = ErrorIdentifier(config.correlation)

        handler.container.add(ErrorHandlingConfig, config)
        handler.container.add(ErrorClassifier, classifier)
        handler.container.add(ErrorIdentifier, identifier)
        handler.container.add(TemplateResolver, templates)
        handler.container.add(Translator, translator)
        handler.container.add(LogSink, sink)
        handler.container.add(ErrorReporter, ErrorReporter(sink, classifier, identifier))
        handler.container.add(
            ErrorRenderer,
            ErrorRenderer(
                templates,
                translator,
                classifier,
                identifier,
                not_found_redirect=config.not_found_redirect,
                login_locations=config.login_locations,
                default_login=config.default_login,
            ),
        )
        logger.debug(
            "Exception handler configured (debug=%s, correlation=%s)",
            config.debug,
            config.correlation,
        )
        return handler

    @property
    def classifier(self) -> ErrorClassifier:
        return self.container.get(ErrorClassifier)

    @property
    def identifier(self) -> ErrorIdentifier:
        return self.container.get(ErrorIdentifier)

    @property
    def reporter(self) -> ErrorReporter:
        return self.container.get(ErrorReporter)

    @property
    def renderer(self) -> ErrorRenderer:
        return self.container.get(ErrorRenderer)

    def capture(
        self, error: BaseException, request: RequestSnapshot | None = None
    ) -> ErrorOccurrence:
        """Capture an error as an occurrence, once per exception instance.

        The occurrence is kept on the exception, so reporting and rendering
        the same exception in separate calls share its timestamp and so its
        correlation id.
        """
        occurrence = getattr(error, OCCURRENCE_ATTRIBUTE, None)
        if isinstance(occurrence, ErrorOccurrence):
            return occurrence

        occurrence = ErrorOccurrence.from_exception(error, request=request, clock=self.clock)
        _keep_occurrence(error, occurrence)
        return occurrence

    def handle(
        self,
        error: BaseException | ErrorOccurrence,
        request_meta: RequestMeta | None = None,
        *,
        user: Any = None,
        request: Any = None,
        snapshot: RequestSnapshot | None = None,
    ) -> ResponseDescriptor:
        """Report and render an error.

        Args:
            error: The raised exception, or an occurrence already captured.
            request_meta: How the client wants the response, defaults to
                HTML with the handler's debug setting.
            user: The authenticated user for the log context.
            request: The current request for the log context.
            snapshot: Request details to keep on the occurrence.

        Returns:
            The response to send.

        Raises:
            RenderingUnavailable: If no error template can be rendered.
        """
        occurrence = self._occurrence(error, snapshot)
        classification = self.classifier.classify(occurrence)
        correlation_id = self.identifier.identify(occurrence)

        self.reporter.report(
            occurrence,
            user=user,
            request=request,
            correlation_id=correlation_id,
            classification=classification,
        )
        return self.render(
            occurrence,
            request_meta,
            correlation_id=correlation_id,
            classification=classification,
        )

    def report(
        self,
        error: BaseException | ErrorOccurrence,
        *,
        user: Any = None,
        request: Any = None,
        correlation_id: str | None = None,
    ) -> None:
        self.reporter.report(
            self._occurrence(error),
            user=user,
            request=request,
            correlation_id=correlation_id,
        )

    def render(
        self,
        error: BaseException | ErrorOccurrence,
        request_meta: RequestMeta | None = None,
        *,
        correlation_id: str | None = None,
        classification: ErrorClassification | None = None,
    ) -> ResponseDescriptor:
        return self.renderer.render(
            self._occurrence(error),
            request_meta or RequestMeta(debug_mode=self.debug),
            correlation_id=correlation_id,
            classification=classification,
        )

    def _occurrence(
        self,
        error: BaseException | ErrorOccurrence,
        snapshot: RequestSnapshot | None = None,
    ) -> ErrorOccurrence:
        if not isinstance(error, ErrorOccurrence):
            return self.capture(error, snapshot)

        if error.error is not None and not hasattr(error.error, OCCURRENCE_ATTRIBUTE):
            _keep_occurrence(error.error, error)

        return error


def _keep_occurrence(error: BaseException, occurrence: ErrorOccurrence) -> None:
    try:
        setattr(error, OCCURRENCE_ATTRIBUTE, occurrence)
    except AttributeError:
        logger.debug("Cannot keep the occurrence on %s", type(error).__name__)
