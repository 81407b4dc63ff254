from servfault.classification import (
    ErrorCategory,
    ErrorClassification,
    ErrorClassifier,
    ErrorPolicy,
)
from servfault.config import ErrorHandlingConfig
from servfault.exceptions import (
    AuthenticationFailure,
    AuthorizationFailure,
    HttpStatusError,
    MethodNotAllowed,
    RenderingUnavailable,
    ResourceNotFound,
    ServFaultConfigError,
    ServFaultException,
    SessionTokenMismatch,
    TooManyRequests,
    ValidationFailure,
)
from servfault.handler import ExceptionHandler
from servfault.identifier import CorrelationMode, ErrorIdentifier
from servfault.occurrence import ErrorOccurrence, RequestSnapshot
from servfault.rendering import ErrorRenderer, RequestMeta, ResponseDescriptor, ResponseFormat
from servfault.reporting import ErrorReporter, LogContext, LoggerSink

__all__ = [
    "AuthenticationFailure",
    "AuthorizationFailure",
    "CorrelationMode",
    "ErrorCategory",
    "ErrorClassification",
    "ErrorClassifier",
    "ErrorHandlingConfig",
    "ErrorIdentifier",
    "ErrorOccurrence",
    "ErrorPolicy",
    "ErrorRenderer",
    "ErrorReporter",
    "ExceptionHandler",
    "HttpStatusError",
    "LogContext",
    "LoggerSink",
    "MethodNotAllowed",
    "RenderingUnavailable",
    "RequestMeta",
    "RequestSnapshot",
    "ResourceNotFound",
    "ResponseDescriptor",
    "ResponseFormat",
    "ServFaultConfigError",
    "ServFaultException",
    "SessionTokenMismatch",
    "TooManyRequests",
    "ValidationFailure",
]
__version__ = "0.1.0"
