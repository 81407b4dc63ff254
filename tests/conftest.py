import pytest

from servfault.classification import ErrorClassifier
from servfault.identifier import ErrorIdentifier
from servfault.rendering import ErrorRenderer
from servfault.translation import CatalogTranslator
from tests.helpers import PAGE, FakeTemplateResolver, RecordingSink


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def identifier() -> ErrorIdentifier:
    return ErrorIdentifier()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def templates() -> FakeTemplateResolver:
    """Resolver with only the generic error page available."""
    return FakeTemplateResolver({"errors/error.html": PAGE})


@pytest.fixture
def renderer(templates, classifier, identifier) -> ErrorRenderer:
    return ErrorRenderer(templates, CatalogTranslator(), classifier, identifier)
