"""Domain errors surfaced to callers as recoverable conflicts or validation failures"""

from typing import Any


class DomainError(Exception):
    """Base class; the API layer renders these as JSON with status_code"""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, **self.context}


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class DomainValidationError(DomainError):
    status_code = 422
    code = "validation_error"


class InvalidQuoteRequest(DomainValidationError):
    """Malformed quote request, rejected before pricing begins"""

    code = "invalid_quote_request"


class InvalidRatebookData(DomainValidationError):
    """Administrator-supplied reference data that would break lookups"""

    code = "invalid_ratebook_data"


class CapacityConflict(DomainError):
    """Cluster is full (or closed); the caller should retry with another option"""

    status_code = 409
    code = "capacity_conflict"


class WorkflowStateError(DomainError):
    """Decision or transition against a non-current step or a terminal record"""

    status_code = 409
    code = "workflow_state_conflict"
