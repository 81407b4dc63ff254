"""Mapping raised errors to status codes, categories and a reportable flag."""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum

from starlette.exceptions import HTTPException

from servfault.exceptions import (
    AuthenticationFailure,
    AuthorizationFailure,
    HttpStatusError,
    ResourceNotFound,
    SessionTokenMismatch,
    ValidationFailure,
)
from servfault.occurrence import ErrorOccurrence, qualified_name


class ErrorCategory(StrEnum):
    AUTHENTICATION = "Authentication"
    AUTHORIZATION = "Authorization"
    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    TOKEN_MISMATCH = "TokenMismatch"
    HTTP_GENERIC = "HttpGeneric"
    UNHANDLED = "Unhandled"

    @property
    def user_caused(self) -> bool:
        return self is not ErrorCategory.UNHANDLED


@dataclass(frozen=True)
class ErrorClassification:
    status_code: int
    reportable: bool
    category: ErrorCategory


@dataclass(frozen=True)
class ErrorPolicy:
    """How one kind of error is classified.

    A ``status_code`` of ``None`` means the status is taken from the
    occurrence itself, which is how generic HTTP errors carry their code.
    """

    category: ErrorCategory
    reportable: bool = False
    status_code: int | None = None


UNHANDLED = ErrorClassification(500, True, ErrorCategory.UNHANDLED)

DEFAULT_POLICIES: dict[type[BaseException], ErrorPolicy] = {
    AuthenticationFailure: ErrorPolicy(ErrorCategory.AUTHENTICATION, status_code=401),
    AuthorizationFailure: ErrorPolicy(ErrorCategory.AUTHORIZATION, status_code=403),
    HttpStatusError: ErrorPolicy(ErrorCategory.HTTP_GENERIC),
    ResourceNotFound: ErrorPolicy(ErrorCategory.NOT_FOUND, status_code=404),
    SessionTokenMismatch: ErrorPolicy(ErrorCategory.TOKEN_MISMATCH, status_code=419),
    ValidationFailure: ErrorPolicy(ErrorCategory.VALIDATION, status_code=422),
    # Raised by Starlette's own routing and by application code using it
    HTTPException: ErrorPolicy(ErrorCategory.HTTP_GENERIC),
}


class ErrorClassifier:
    """Classifies occurrences against a table of per-kind policies.

    Policies are looked up along the occurrence's lineage, most specific
    class first, so subclasses of a registered kind share its policy unless
    they have one of their own. Anything without a policy is an unhandled
    system error: 500 and reportable.

    Kinds are keyed by their qualified name (``module.QualName``), so two
    unrelated classes that happen to share a name never share a policy.
    A kind given as a bare class name, as configuration files usually do,
    matches any class of that name.

    Examples:
        Registering an application error:

        ```python
        classifier = ErrorClassifier()
        classifier.register(
            PaymentDeclined,
            ErrorPolicy(ErrorCategory.HTTP_GENERIC, status_code=402),
        )
        ```
    """

    def __init__(
        self,
        policies: Mapping[str | type[BaseException], ErrorPolicy] | None = None,
    ):
        self._policies: dict[str, ErrorPolicy] = {}
        for kind, policy in DEFAULT_POLICIES.items():
            self.register(kind, policy)

        for kind, policy in (policies or {}).items():
            self.register(kind, policy)

    def register(self, kind: str | type[BaseException], policy: ErrorPolicy) -> None:
        """Add or replace the policy for an error kind."""
        self._policies[_kind_tag(kind)] = policy

    def dont_report(self, kind: str | type[BaseException]) -> None:
        """Mark a kind as expected so it is never written to the error log."""
        tag = _kind_tag(kind)
        policy = self._policies.get(tag)
        if policy is None:
            self._policies[tag] = ErrorPolicy(ErrorCategory.UNHANDLED, status_code=500)
        else:
            self._policies[tag] = replace(policy, reportable=False)

    def policy_for(self, occurrence: ErrorOccurrence) -> ErrorPolicy | None:
        for qualified in occurrence.lineage or (occurrence.kind,):
            for tag in (qualified, qualified.rpartition(".")[2]):
                if tag in self._policies:
                    return self._policies[tag]

        return None

    def classify(self, occurrence: ErrorOccurrence) -> ErrorClassification:
        policy = self.policy_for(occurrence)
        if policy is None:
            return UNHANDLED

        status_code = policy.status_code
        if status_code is None:
            status_code = occurrence.status_code or 500

        category = policy.category
        if category is ErrorCategory.HTTP_GENERIC and status_code == 404:
            category = ErrorCategory.NOT_FOUND

        return ErrorClassification(status_code, policy.reportable, category)


def _kind_tag(kind: str | type[BaseException]) -> str:
    return kind if isinstance(kind, str) else qualified_name(kind)
