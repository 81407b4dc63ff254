import logging
import re
from datetime import timedelta

import pytest

from servfault.classification import ErrorClassifier
from servfault.config import ErrorHandlingConfig
from servfault.exceptions import (
    AuthenticationFailure,
    RenderingUnavailable,
    ResourceNotFound,
    ValidationFailure,
)
from servfault.handler import ExceptionHandler
from servfault.identifier import CorrelationMode
from servfault.occurrence import RequestSnapshot
from servfault.protocols import TemplateResolver, Translator
from servfault.rendering import ErrorRenderer, RequestMeta, ResponseFormat
from servfault.reporting import ErrorReporter, LogSink
from servfault.translation import CatalogTranslator
from tests.helpers import (
    FIXED_TIME,
    FakeTemplateResolver,
    FailingSink,
    RecordingSink,
    User,
    capture,
)

HTML = RequestMeta(ResponseFormat.HTML)


@pytest.fixture
def handler(sink, templates) -> ExceptionHandler:
    return ExceptionHandler.from_config(
        templates=templates, sink=sink, clock=lambda: FIXED_TIME
    )


class TestFromConfig:
    def test_registers_components(self, sink, templates, handler):
        assert handler.container.get(LogSink) is sink
        assert handler.container.get(TemplateResolver) is templates
        assert isinstance(handler.container.get(Translator), CatalogTranslator)
        assert isinstance(handler.classifier, ErrorClassifier)
        assert isinstance(handler.reporter, ErrorReporter)
        assert isinstance(handler.renderer, ErrorRenderer)
        assert handler.reporter.classifier is handler.classifier
        assert handler.renderer.identifier is handler.identifier

    def test_config_values_reach_components(self, sink, templates):
        config = ErrorHandlingConfig(
            debug=True,
            not_found_redirect="/gone",
            correlation=CorrelationMode.STABLE,
        )

        handler = ExceptionHandler.from_config(config, templates=templates, sink=sink)

        assert handler.debug is True
        assert handler.identifier.mode is CorrelationMode.STABLE
        assert handler.renderer.not_found_redirect == "/gone"

    def test_default_collaborators(self, tmp_path):
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text("error:\n  500:\n    name: Kaputt\n")
        config = ErrorHandlingConfig(translations=catalog, logger="tests.handler")

        handler = ExceptionHandler.from_config(config)
        response = handler.handle(ValueError("boom"), HTML)

        assert response.status_code == 500
        assert "500 Kaputt" in response.body
        assert handler.container.get(LogSink).logger.name == "tests.handler"


class TestHandle:
    def test_report_and_page_share_one_id(self, handler, sink):
        response = handler.handle(ValueError("boom"), HTML)

        reported_id = sink.records[0][1]["id"]
        assert response.body.split("|")[3] == reported_id

    def test_id_survives_separate_report_and_render(self, handler, sink):
        occurrence = capture(ValueError("boom"))

        handler.report(occurrence)
        response = handler.render(occurrence, HTML)

        assert response.body.split("|")[3] == sink.records[0][1]["id"]

    def test_raw_exception_keeps_its_id_across_separate_calls(self, sink, templates):
        """Report and render of the same exception agree even on the real clock."""
        handler = ExceptionHandler.from_config(templates=templates, sink=sink)
        try:
            raise ValueError("boom")
        except ValueError as error:
            handler.report(error)
            response = handler.render(error, HTML)

        assert response.body.split("|")[3] == sink.records[0][1]["id"]

    def test_each_exception_is_captured_once(self, sink, templates):
        ticks = iter(
            [FIXED_TIME, FIXED_TIME + timedelta(seconds=1), FIXED_TIME + timedelta(seconds=2)]
        )
        handler = ExceptionHandler.from_config(
            templates=templates, sink=sink, clock=lambda: next(ticks)
        )
        error, other = ValueError("boom"), ValueError("boom")

        assert handler.capture(error) is handler.capture(error)
        assert handler.capture(other).timestamp != handler.capture(error).timestamp

    def test_identifies_once_per_occurrence(self, handler, monkeypatch):
        calls = []
        identify = handler.identifier.identify

        def counting_identify(occurrence):
            calls.append(occurrence)
            return identify(occurrence)

        monkeypatch.setattr(handler.identifier, "identify", counting_identify)

        handler.handle(ValueError("boom"), HTML)

        assert len(calls) == 1

    def test_log_context_uses_explicit_user_and_snapshot(self, handler, sink):
        handler.handle(
            ValueError("boom"),
            HTML,
            user=User(5, "grace@example.com"),
            snapshot=RequestSnapshot(url="https://example.com/orders", method="POST"),
        )

        context = sink.records[0][1]["context"]
        assert context["user"] == 5
        assert context["email"] == "grace@example.com"
        assert context["url"] == "https://example.com/orders"

    def test_user_caused_errors_render_without_report(self, handler, sink):
        response = handler.handle(ValidationFailure(), HTML)

        assert response.status_code == 422
        assert sink.records == []

    def test_unauthenticated_json(self, handler):
        response = handler.handle(AuthenticationFailure(), RequestMeta(ResponseFormat.JSON))

        assert response.status_code == 401
        assert response.body == {"error": "Unauthenticated."}

    def test_default_request_meta_uses_handler_debug(self, sink, templates):
        handler = ExceptionHandler.from_config(
            ErrorHandlingConfig(debug=True), templates=templates, sink=sink
        )

        response = handler.handle(ValueError("boom"))

        assert "<p>ValueError: boom</p>" in response.body
        assert templates.lookups == []

    def test_not_found_redirect(self, sink, templates):
        handler = ExceptionHandler.from_config(
            ErrorHandlingConfig(not_found_redirect="/gone"), templates=templates, sink=sink
        )

        assert handler.handle(ResourceNotFound(), HTML).redirect_to == "/gone"

    def test_failing_sink_does_not_stop_rendering(self, templates):
        handler = ExceptionHandler.from_config(templates=templates, sink=FailingSink())

        assert handler.handle(ValueError("boom"), HTML).status_code == 500

    def test_missing_templates_propagate(self, sink):
        handler = ExceptionHandler.from_config(templates=FakeTemplateResolver(), sink=sink)

        with pytest.raises(RenderingUnavailable):
            handler.handle(KeyError("unregistered"), HTML)

        assert len(sink.records) == 1


class TestDefaultHandler:
    def test_production_page_from_bundled_template(self, caplog):
        handler = ExceptionHandler.from_config(ErrorHandlingConfig(logger="tests.default"))

        with caplog.at_level(logging.ERROR, logger="tests.default"):
            response = handler.handle(ValueError("secret detail"), HTML)

        page_id = re.search(r"<code>([0-9a-f]{16})</code>", response.body).group(1)
        assert caplog.records[0].servfault["id"] == page_id
        assert "secret detail" not in response.body
