"""Error taxonomy for the approval engine.

Callers discriminate on the class:

- ValidationError / PermissionDeniedError: fix the request and retry
- ConflictError (and InvalidTransitionError): reload the document and reattempt
- SideEffectWarning: the approval is committed, follow up manually
"""

from typing import Optional


class ApprovalError(Exception):
    """Base class for all errors raised by the approval engine."""

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(ApprovalError):
    """Raised when request input is malformed (amounts, reasons, step bounds)."""


class PermissionDeniedError(ApprovalError):
    """Raised when the acting principal lacks authority for an action."""


class NotFoundError(ApprovalError):
    """Raised when an entity does not exist in the caller's organisation."""


class ConflictError(ApprovalError):
    """Raised when persisted state no longer matches what the caller acted on."""


class InvalidTransitionError(ConflictError):
    """Raised when an action is not legal from the document's current status."""

    def __init__(self, message: str, from_status: str, transition: str):
        super().__init__(message, code="invalid_transition")
        self.from_status = from_status
        self.transition = transition


class ConfigurationError(ApprovalError):
    """Raised when an approval chain cannot be routed to any approver."""


class SideEffectWarning(UserWarning):
    """Non-fatal failure of a post-commit task (notification, PDF, e-mail).

    Attached to an otherwise successful result, never raised by the engine.
    """

    def __init__(self, task_name: str, error: BaseException):
        super().__init__(f"Side effect '{task_name}' failed: {error}")
        self.task_name = task_name
        self.error = error
