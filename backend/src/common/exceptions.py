"""Exception taxonomy for DealSpotter.

Every domain error derives from DealSpotterError so the API layer can map
them to HTTP responses in one place (see main.py exception handlers).
"""

from typing import Any, Dict, Optional


class DealSpotterError(Exception):
    """Base exception for all domain errors.

    Attributes:
        message: Human readable error message
        error_code: Machine readable error code used in API responses
        details: Optional structured context
    """

    error_code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DealSpotterError):
    """Raised for malformed input (empty basket, missing correction fields).

    Rejected before any pipeline work and never retried.
    """

    error_code = "validation_error"


class NotFoundError(DealSpotterError):
    """Raised when a referenced catalog entry does not exist."""

    error_code = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with id '{resource_id}' not found",
            details={"resource": resource, "id": str(resource_id)},
        )
        self.resource = resource
        self.resource_id = resource_id


class CandidateSourceError(DealSpotterError):
    """Raised when a catalog or correction query fails.

    The matching pipeline recovers from this locally by advancing to the
    next stage.
    """

    error_code = "candidate_source_error"


class UnexpectedError(DealSpotterError):
    """Any other failure, surfaced to callers as a generic error."""

    error_code = "internal_error"
