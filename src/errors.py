"""Error taxonomy shared by the matching engine and the workflow state machines.

Every failure surfaced to a caller is a :class:`SchemeMitraError` subclass
with a stable ``code``.  The transport layer renders them through
:meth:`SchemeMitraError.to_response` and ``http_status`` so a UI can tell
"not allowed right now" apart from "not found" and "missing input".
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class SchemeMitraError(Exception):
    """Base exception for the SchemeMitra core."""

    code: ClassVar[str] = "SCHEMEMITRA_ERROR"
    http_status: ClassVar[int] = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class ValidationError(SchemeMitraError):
    """Malformed input: bad rule, missing required field, absent reason/remarks."""

    code = "VALIDATION_ERROR"
    http_status = 422

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError, message: str) -> ValidationError:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors(include_url=False)
        ]
        return cls(message, {"errors": errors})


class RuleConfigurationError(ValidationError):
    """A stored rule is structurally invalid (e.g. unknown operator)."""

    code = "RULE_CONFIGURATION_ERROR"


class NotFoundError(SchemeMitraError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found", {"entity": entity, "id": entity_id})


class UnauthorizedError(SchemeMitraError):
    """Caller is not the owning organizer, an admin, or the applicant."""

    code = "UNAUTHORIZED"
    http_status = 403


class InvalidTransitionError(SchemeMitraError):
    """A state machine refused the requested transition."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity: str, from_state: str, attempted: str) -> None:
        self.entity = entity
        self.from_state = from_state
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity} in status '{from_state}'",
            {"entity": entity, "from": from_state, "attempted": attempted},
        )


class ConflictError(SchemeMitraError):
    """Uniqueness violation or lost compare-and-swap."""

    code = "CONFLICT"
    http_status = 409


class PreconditionFailedError(SchemeMitraError):
    """The caller's or subject's role no longer permits the operation."""

    code = "PRECONDITION_FAILED"
    http_status = 412


__all__ = [
    "ConflictError",
    "ErrorResponse",
    "InvalidTransitionError",
    "NotFoundError",
    "PreconditionFailedError",
    "RuleConfigurationError",
    "SchemeMitraError",
    "UnauthorizedError",
    "ValidationError",
]
