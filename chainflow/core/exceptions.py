"""
Typed error taxonomy for the approval chain engine.

Services raise only these types. The API layer registers one handler for
``ChainflowError`` and maps each subclass to its HTTP status, so every
rejected action reaches the caller with a specific, renderable reason.

Usage:
    from chainflow.core.exceptions import InvalidStateError, NotFoundError

    raise NotFoundError(resource="Request", resource_id=request_id)
    raise InvalidStateError("Step 2 is no longer pending", details={"step": 2})
"""

from typing import Any, Dict, List, Optional


class ChainflowError(Exception):
    """Base class for every error the engine surfaces to callers."""

    status_code: int = 400
    error_code: str = "CHAINFLOW_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ChainflowError):
    """Payload failed form-schema or business-rule validation.

    Recoverable: the user corrects the input and tries again.
    """

    status_code = 422
    error_code = "VALIDATION_ERROR"


class ForbiddenError(ChainflowError):
    """The actor lacks the role required for the action. Never retried."""

    status_code = 403
    error_code = "FORBIDDEN"


class InvalidStateError(ChainflowError):
    """An action precondition no longer holds.

    Covers terminal requests, steps that are not PENDING and the loser of a
    concurrent action. Callers should refresh rather than retry blindly.
    """

    status_code = 409
    error_code = "INVALID_STATE"


class ChainLockedError(InvalidStateError):
    """A new chain version would remove or move a section in-flight requests use."""

    error_code = "CHAIN_LOCKED"


class NotFoundError(ChainflowError):
    """Unknown request, chain, section or history entry id.

    Args:
        resource: Human-readable entity name (e.g. "Request", "WorkflowChain").
        resource_id: The id that was looked up.
    """

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Optional[str] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, details={"resource": resource, "id": resource_id})


class ConfigurationError(ChainflowError):
    """A chain or section is misconfigured (e.g. a step with nobody to approve it).

    Args:
        message: Summary of the failure.
        problems: Every individual configuration problem found.
    """

    status_code = 422
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, problems: Optional[List[str]] = None) -> None:
        self.problems = problems or []
        super().__init__(message, details={"problems": self.problems})
