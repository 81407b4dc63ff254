"""Exception handling for Starlette applications."""

import logging

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from servfault.config import ErrorHandlingConfig
from servfault.handler import ExceptionHandler
from servfault.occurrence import RequestSnapshot
from servfault.rendering import RequestMeta, ResponseDescriptor

logger = logging.getLogger(__name__)


class ServFaultMiddleware(BaseHTTPMiddleware):
    """Middleware that reports exceptions and renders error responses."""

    def __init__(self, app, handler: ExceptionHandler | None = None):
        super().__init__(app)
        self.handler = handler or ExceptionHandler.from_config(ErrorHandlingConfig.load())

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            return handle_request_error(self.handler, request, exc)


def install(app: Starlette, handler: ExceptionHandler | None = None) -> ExceptionHandler:
    """Route every error raised by ``app`` through an exception handler.

    Unexpected exceptions are caught by :class:`ServFaultMiddleware`.
    Starlette handles its own ``HTTPException`` (including the 404 for an
    unknown route) before middleware sees it, so a handler is registered for
    it as well.

    Args:
        app: The Starlette application, before it has started.
        handler: The exception handler, loaded from ``servfault.config.yaml``
            and the environment when omitted.

    Returns:
        The handler in use.
    """
    handler = handler or ExceptionHandler.from_config(ErrorHandlingConfig.load())

    async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
        return handle_request_error(handler, request, exc)

    app.add_middleware(ServFaultMiddleware, handler=handler)
    app.add_exception_handler(HTTPException, handle_http_exception)
    return handler


def handle_request_error(
    handler: ExceptionHandler, request: Request, exc: Exception
) -> Response:
    request_meta = RequestMeta.from_headers(
        request.headers.get("accept"),
        request.url.path,
        debug_mode=handler.debug,
        requested_with=request.headers.get("x-requested-with"),
    )
    snapshot = RequestSnapshot(
        url=str(request.url),
        path=request.url.path,
        method=request.method,
    )
    logger.debug("Handling %s for %s %s", type(exc).__name__, request.method, request.url.path)
    descriptor = handler.handle(
        exc,
        request_meta,
        user=request.scope.get("user"),
        request=request,
        snapshot=snapshot,
    )
    return to_starlette_response(descriptor)


def to_starlette_response(descriptor: ResponseDescriptor) -> Response:
    """Convert a response descriptor into a Starlette response."""
    headers = dict(descriptor.headers)

    if descriptor.redirect_to is not None:
        headers.pop("Location", None)
        return RedirectResponse(
            descriptor.redirect_to,
            status_code=descriptor.status_code,
            headers=headers,
        )

    if isinstance(descriptor.body, dict):
        return JSONResponse(
            descriptor.body, status_code=descriptor.status_code, headers=headers
        )

    if descriptor.content_type == "text/html":
        return HTMLResponse(
            descriptor.body, status_code=descriptor.status_code, headers=headers
        )

    return Response(
        descriptor.body,
        status_code=descriptor.status_code,
        headers=headers,
        media_type=descriptor.content_type,
    )
