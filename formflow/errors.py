"""Structured error types for the formflow workflow engine.

Every refusal the engine makes is one of a small set of exceptions deriving
from FormFlowError. Each carries a ``to_dict()`` envelope so callers can turn
it into a response body without inspecting the exception type:

    {"ok": False, "error": {"type": "...", "message": "...", "fields": [...]}}

Field-level validation problems are reported as FieldError records, collected
in one pass and raised together inside ValidationFailed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from formflow.types import FieldErrorCode, SubmissionStatus


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        field: Name of the field (or pseudo-field such as "comments")
        message: Human-readable error description
        code: Specific validation error code

    Examples:
        >>> err = FieldError(field="mobile_no", message="Mobile No is required")
        >>> err.to_dict()
        {'field': 'mobile_no', 'message': 'Mobile No is required', 'code': 'required'}
    """
    field: str
    message: str
    code: FieldErrorCode = FieldErrorCode.REQUIRED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "field": self.field,
            "message": self.message,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data.get("code", FieldErrorCode.CUSTOM)
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(field=data["field"], message=data["message"], code=code)


class FormFlowError(Exception):
    """Base class for all engine errors."""

    error_type = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an error envelope."""
        return {
            "ok": False,
            "error": {"type": self.error_type, "message": self.message},
        }


class ValidationFailed(FormFlowError):
    """One or more fields failed validation. Recoverable: correct and retry.

    Attributes:
        errors: Every field error found, in field order
    """

    error_type = "validation_failed"

    def __init__(self, errors: Iterable[FieldError], message: str = "Validation failed"):
        self.errors: List[FieldError] = list(errors)
        super().__init__(message)

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"]["fields"] = [e.to_dict() for e in self.errors]
        return result


class InvalidTransition(FormFlowError):
    """The requested action does not apply to the submission's current status.

    Attributes:
        current_status: Status the submission was in when the action was refused
        target_status: Status the action would have produced, when known
    """

    error_type = "invalid_transition"

    def __init__(
        self,
        message: str,
        current_status: Optional[SubmissionStatus] = None,
        target_status: Optional[SubmissionStatus] = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.current_status is not None:
            result["error"]["currentStatus"] = self.current_status.value
        return result


class StaleSubmission(InvalidTransition):
    """The stored status changed between read and commit."""


class NotFound(FormFlowError):
    """Unknown submission, flow, screen or tab."""

    error_type = "not_found"


class Forbidden(FormFlowError):
    """The acting user may not perform this action."""

    error_type = "forbidden"


class DefinitionError(FormFlowError):
    """A flow or screen definition payload is structurally invalid."""

    error_type = "invalid_definition"


__all__ = [
    "FieldError",
    "FormFlowError",
    "ValidationFailed",
    "InvalidTransition",
    "StaleSubmission",
    "NotFound",
    "Forbidden",
    "DefinitionError",
]
