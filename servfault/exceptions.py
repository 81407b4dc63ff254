from collections.abc import Mapping


class ServFaultException(Exception):
    """Base exception for errors that know how they should be answered over HTTP."""

    status_code = 500  # Default status code
    message: str

    def __init__(
        self,
        message: str | None = None,
        *args,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message, *args)
        if message is not None:
            self.message = message
        elif args and args[0]:
            self.message = str(args[0])
        else:
            self.message = self.__class__.__name__

        self.headers = dict(headers or {})

    def __str__(self) -> str:
        return self.message


class AuthenticationFailure(ServFaultException):
    """Raised when a request needs an authenticated user and has none (401)."""

    status_code = 401

    def __init__(self, message: str = "Unauthenticated.", guards: list[str] | None = None):
        super().__init__(message)
        self.guards = guards or []


class AuthorizationFailure(ServFaultException):
    """Raised when the user is known but not allowed to do this (403)."""

    status_code = 403


class HttpStatusError(ServFaultException):
    """Raised to answer with an arbitrary HTTP status code."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(message or f"HTTP {status_code}", headers=headers)
        self.status_code = status_code


class ResourceNotFound(HttpStatusError):
    """Raised when a route or a model cannot be found (404)."""

    def __init__(self, message: str | None = None, headers: Mapping[str, str] | None = None):
        super().__init__(404, message or "Not Found", headers)


class MethodNotAllowed(HttpStatusError):
    """Raised when a route is found but the method is not allowed (405)."""

    def __init__(self, message: str, allowed_methods: list[str]):
        super().__init__(405, message, {"Allow": ", ".join(allowed_methods)})
        self.allowed_methods = allowed_methods


class TooManyRequests(HttpStatusError):
    """Raised when a client is being throttled (429)."""

    def __init__(self, retry_after: int | None = None, message: str | None = None):
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        super().__init__(429, message or "Too Many Requests", headers)
        self.retry_after = retry_after


class SessionTokenMismatch(ServFaultException):
    """Raised when the CSRF/session token on a request does not match (419)."""

    status_code = 419


class ValidationFailure(ServFaultException):
    """Raised when request data fails validation (422)."""

    status_code = 422

    def __init__(self, message: str | None = None, errors: dict[str, list[str]] | None = None):
        super().__init__(message or "The given data was invalid.")
        self.errors = errors or {}


class RenderingUnavailable(Exception):
    """Raised when no error template can be found for a response.

    This is a misconfiguration of the deployment, not something a single
    request can recover from.
    """

    def __init__(self, template_names: list[str]):
        super().__init__(
            f"No error template could be rendered, tried: {', '.join(template_names)}"
        )
        self.template_names = template_names


class ServFaultConfigError(Exception):
    """Custom exception for configuration errors."""

    pass
