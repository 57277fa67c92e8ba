"""
Exception taxonomy for the campaign core.

Validation, lookup and conflict errors are raised synchronously to the
command caller before any state changes. Gateway errors describe a failed
dispatch; the scheduler records them on the schedule entry instead of
propagating them.
"""
from typing import Any, Dict, Optional


class CoreError(Exception):
    """Base class for errors raised by the campaign core."""

    status_code = 400

    def __init__(self, message: str, code: str = "CORE_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to standard error format"""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CoreError):
    """Malformed or invariant-violating input; the store is left unchanged."""

    status_code = 422

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class NotFoundError(CoreError):
    """Reference to an unknown id."""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str, details: Optional[Dict[str, Any]] = None):
        message = f"{resource_type} '{resource_id}' not found"
        details = dict(details or {})
        details.setdefault("resource", resource_type)
        details.setdefault("id", resource_id)
        super().__init__(message, code="NOT_FOUND", details=details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(CoreError):
    """The request contradicts state that can no longer change."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class GatewayError(CoreError):
    """External dispatch failed. Retryable unless ``permanent`` is set."""

    status_code = 502

    def __init__(self, message: str, permanent: bool = False, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="GATEWAY_ERROR", details=details)
        self.permanent = permanent


class InvariantViolation(CoreError):
    """An internal invariant is broken. Indicates a defect, not bad input."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVARIANT_VIOLATION", details=details)
