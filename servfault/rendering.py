"""Turning a classified occurrence into an HTTP-shaped response."""

import logging
import traceback
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from markupsafe import escape

from servfault.classification import ErrorCategory, ErrorClassification, ErrorClassifier
from servfault.exceptions import RenderingUnavailable
from servfault.identifier import ErrorIdentifier
from servfault.occurrence import ErrorOccurrence
from servfault.protocols import TemplateResolver, Translator

logger = logging.getLogger(__name__)

GENERIC_TEMPLATE = "errors/error.html"
DEFAULT_LOGIN = "/login"
DEFAULT_LOGIN_LOCATIONS = {"admin": "/admin/login"}


class ResponseFormat(StrEnum):
    JSON = "json"
    HTML = "html"


@dataclass(frozen=True)
class RequestMeta:
    """What the renderer needs to know about the request that failed."""

    preferred_format: ResponseFormat = ResponseFormat.HTML
    path_segment_hint: str | None = None
    debug_mode: bool = False

    @classmethod
    def from_headers(
        cls,
        accept: str | None,
        path: str | None = None,
        debug_mode: bool = False,
        requested_with: str | None = None,
    ) -> "RequestMeta":
        """Build request metadata from an Accept header and a request path.

        JSON is preferred when the first media type in ``accept`` is a JSON
        type, or when the request is an XMLHttpRequest that accepts anything.
        The path segment hint is the first segment of ``path``.
        """
        media_types = [
            part.split(";", 1)[0].strip().lower()
            for part in (accept or "").split(",")
            if part.strip()
        ]
        first = media_types[0] if media_types else ""
        wants_json = "/json" in first or "+json" in first
        is_ajax = (requested_with or "").lower() == "xmlhttprequest"
        if is_ajax and first in ("", "*/*"):
            wants_json = True

        segments = [segment for segment in (path or "").split("/") if segment]

        return cls(
            preferred_format=ResponseFormat.JSON if wants_json else ResponseFormat.HTML,
            path_segment_hint=segments[0] if segments else None,
            debug_mode=debug_mode,
        )


@dataclass(frozen=True)
class ResponseDescriptor:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | dict[str, Any] = ""
    content_type: str = "text/html"
    redirect_to: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_to is not None

    def with_headers(self, headers: Mapping[str, str]) -> "ResponseDescriptor":
        """Copy of this response with ``headers`` added under its own headers."""
        if not headers:
            return self

        return replace(self, headers={**headers, **self.headers})


def redirect(location: str, status_code: int = 302) -> ResponseDescriptor:
    return ResponseDescriptor(
        status_code,
        headers={"Location": location},
        content_type="text/plain",
        redirect_to=location,
    )


class ErrorRenderer:
    """Decides which response an occurrence is answered with.

    The first matching rule wins:

    1. Authentication failures get ``{"error": "Unauthenticated."}`` when the
       client wants JSON, otherwise a redirect to the login page for the
       path segment hint (``/admin/login`` for ``admin``, ``/login`` else).
    2. Not found errors redirect to the configured 404 target, if any.
    3. In debug mode the raw error, message and traceback are shown.
    4. Otherwise JSON clients get the id, code and translated name and
       message. For HTML the ``errors/{code}.html`` template is rendered,
       falling back to ``errors/error.html``. Both missing is a deployment
       problem and raises :class:`RenderingUnavailable`.

    Headers carried by the error, such as ``Retry-After``, are added to
    whichever response is produced.

    Args:
        templates: Resolver for the error views.
        translator: Source of the localized page title and message.
        not_found_redirect: Where to send not found errors instead of
            rendering a page. ``None`` renders as usual.
        login_locations: Login URL per first path segment.
        default_login: Login URL when no segment matches.
    """

    def __init__(
        self,
        templates: TemplateResolver,
        translator: Translator,
        classifier: ErrorClassifier | None = None,
        identifier: ErrorIdentifier | None = None,
        not_found_redirect: str | None = None,
        login_locations: Mapping[str, str] | None = None,
        default_login: str = DEFAULT_LOGIN,
    ):
        self.templates = templates
        self.translator = translator
        self.classifier = classifier or ErrorClassifier()
        self.identifier = identifier or ErrorIdentifier()
        self.not_found_redirect = not_found_redirect
        self.login_locations = dict(
            DEFAULT_LOGIN_LOCATIONS if login_locations is None else login_locations
        )
        self.default_login = default_login

    def render(
        self,
        occurrence: ErrorOccurrence,
        request_meta: RequestMeta,
        *,
        correlation_id: str | None = None,
        classification: ErrorClassification | None = None,
    ) -> ResponseDescriptor:
        classification = classification or self.classifier.classify(occurrence)

        if classification.category is ErrorCategory.AUTHENTICATION:
            response = self._unauthenticated(request_meta)

        elif classification.category is ErrorCategory.NOT_FOUND and self.not_found_redirect:
            response = redirect(self.not_found_redirect)

        else:
            if correlation_id is None:
                correlation_id = self.identifier.identify(occurrence)

            if request_meta.debug_mode:
                response = self._debug_response(
                    occurrence, classification, request_meta, correlation_id
                )
            else:
                response = self._error_page(classification, request_meta, correlation_id)

        return response.with_headers(occurrence.headers)

    def login_location(self, path_segment_hint: str | None) -> str:
        return self.login_locations.get(path_segment_hint or "", self.default_login)

    def _unauthenticated(self, request_meta: RequestMeta) -> ResponseDescriptor:
        if request_meta.preferred_format is ResponseFormat.JSON:
            return ResponseDescriptor(
                401,
                body={"error": "Unauthenticated."},
                content_type="application/json",
            )

        return redirect(self.login_location(request_meta.path_segment_hint))

    def _debug_response(
        self,
        occurrence: ErrorOccurrence,
        classification: ErrorClassification,
        request_meta: RequestMeta,
        correlation_id: str,
    ) -> ResponseDescriptor:
        status_code = classification.status_code
        trace = _full_traceback(occurrence)

        if request_meta.preferred_format is ResponseFormat.JSON:
            return ResponseDescriptor(
                status_code,
                body={
                    "id": correlation_id,
                    "status_code": status_code,
                    "error": occurrence.kind,
                    "message": occurrence.message,
                    "traceback": trace,
                },
                content_type="application/json",
            )

        html_content = f"""<!DOCTYPE html>
<html>
<head>
    <title>{status_code} {escape(occurrence.kind)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; padding: 20px; }}
        h1 {{ color: #d00; }}
        pre {{ background: #f4f4f4; padding: 10px; border-radius: 5px; }}
    </style>
</head>
<body>
    <h1>Error {status_code}</h1>
    <p>{escape(occurrence.kind)}: {escape(occurrence.message)}</p>
    <p>Error ID: <code>{escape(correlation_id)}</code></p>
    <p>Traceback:</p>
    <pre>{escape("".join(trace))}</pre>
</body>
</html>"""
        return ResponseDescriptor(status_code, body=html_content)

    def _error_page(
        self,
        classification: ErrorClassification,
        request_meta: RequestMeta,
        correlation_id: str,
    ) -> ResponseDescriptor:
        code = classification.status_code
        error = {
            "id": correlation_id,
            "code": code,
            "name": self.translator.translate(f"error.{code}.name"),
            "message": self.translator.translate(f"error.{code}.message"),
        }
        if request_meta.preferred_format is ResponseFormat.JSON:
            return ResponseDescriptor(code, body=error, content_type="application/json")

        context = {
            **error,
            # Raw messages are never shown in production
            "summary": "",
        }

        candidates = [f"errors/{code}.html", GENERIC_TEMPLATE]
        for template_name in candidates:
            if self.templates.exists(template_name):
                return ResponseDescriptor(
                    code, body=self.templates.render(template_name, context)
                )

            logger.debug("Error template %s not found", template_name)

        raise RenderingUnavailable(candidates)


def _full_traceback(occurrence: ErrorOccurrence) -> list[str]:
    if occurrence.error is None:
        return [f"{frame}\n" for frame in occurrence.trace]

    return traceback.format_exception(occurrence.error)
