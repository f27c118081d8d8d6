"""Error kinds raised by the workflow engine.

Every error carries a stable ``kind`` (the class name) so retry policies and
failure reports can refer to it without importing the class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .runner import FailureReport


def kind_of(error: BaseException) -> str:
    return type(error).__name__


class FulfillmentError(Exception):
    """Base class for all engine errors.

    ``node`` names the workflow node the error was raised in, once known.
    """

    node: str | None = None

    @property
    def kind(self) -> str:
        return kind_of(self)


class InvalidDefinition(FulfillmentError, ValueError):
    """A workflow definition is structurally invalid."""


class InvalidPath(InvalidDefinition):
    """A path expression, template or intrinsic call could not be parsed."""


class MissingField(FulfillmentError, LookupError):
    """A path expression did not resolve against the current context."""

    def __init__(self, path: str, *, segment: str | None = None) -> None:
        self.path = path
        self.segment = segment
        detail = f" (at {segment})" if segment else ""
        super().__init__(f"Missing field: {path}{detail}")


class IntrinsicFailed(FulfillmentError, ValueError):
    """An intrinsic function could not be applied to its resolved arguments."""


class EndpointNotAllowed(FulfillmentError, ValueError):
    """A rendered endpoint points outside its connector's base URL."""

    def __init__(self, connector: str, url: str) -> None:
        self.connector = connector
        self.url = url
        super().__init__(f"Endpoint {url!r} is outside connector {connector!r}")


class UnknownConnector(FulfillmentError, LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown connector: {name}")


class CredentialNotFound(FulfillmentError, LookupError):
    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Credential not found: {reference}")


class CallFailed(FulfillmentError):
    """An external call failed at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        status_code: int | None = None,
    ) -> None:
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)


class CallTimeout(CallFailed):
    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


class StepFailed(FulfillmentError):
    """A Task exhausted its retries or hit an error its policy does not match."""

    def __init__(self, *, task: str, cause: FulfillmentError, attempts: int) -> None:
        self.task = task
        self.node = task
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"Task {task!r} failed after {attempts} attempt(s): {cause.kind}: {cause}")

    @property
    def error_kind(self) -> str:
        return self.cause.kind


class StepCancelled(FulfillmentError):
    def __init__(self, *, task: str, attempts: int) -> None:
        self.task = task
        self.node = task
        self.attempts = attempts
        super().__init__(f"Task {task!r} cancelled after {attempts} attempt(s)")


class BranchFailed(FulfillmentError):
    """A Parallel branch failed; no aggregation was attempted."""

    def __init__(self, *, node: str, index: int, cause: Exception) -> None:
        self.node = node
        self.index = index
        self.cause = cause
        super().__init__(f"Parallel {node!r} branch {index} failed: {kind_of(cause)}: {cause}")


class WorkflowError(FulfillmentError):
    """Top-level execution failure wrapping the causing node's error."""

    def __init__(self, report: FailureReport) -> None:
        self.report = report
        super().__init__(report.message)
